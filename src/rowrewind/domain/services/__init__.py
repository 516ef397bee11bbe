"""Domain services for RowRewind.

Services contain logic that doesn't naturally fit within a single entity.
They have no dependencies on infrastructure or external frameworks.
"""

from rowrewind.domain.services.change_clock import (
    TIMESTAMP_FORMAT,
    Clock,
    format_timestamp,
    parse_timestamp,
    to_utc,
    utc_now,
)
from rowrewind.domain.services.revert_planner import (
    CorrectiveAction,
    CorrectiveActionType,
    aselect_representatives,
    corrective_action_for,
    plan_revert,
    select_representatives,
)

__all__ = [
    "TIMESTAMP_FORMAT",
    "Clock",
    "CorrectiveAction",
    "CorrectiveActionType",
    "aselect_representatives",
    "corrective_action_for",
    "format_timestamp",
    "parse_timestamp",
    "plan_revert",
    "select_representatives",
    "to_utc",
    "utc_now",
]
