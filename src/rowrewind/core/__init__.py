"""Core module containing configuration, logging, hooks and exceptions."""
