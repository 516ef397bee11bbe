"""Domain layer: change log entities and pure revert planning."""
