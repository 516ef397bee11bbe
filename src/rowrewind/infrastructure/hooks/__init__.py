"""Infrastructure hooks module.

Contains the change capture hooks.
"""

from rowrewind.infrastructure.hooks.capture_hooks import (
    CAPTURE_EVENTS,
    CAPTURE_HOOK_PRIORITY,
    CaptureHooks,
)

__all__ = [
    "CAPTURE_EVENTS",
    "CAPTURE_HOOK_PRIORITY",
    "CaptureHooks",
]
