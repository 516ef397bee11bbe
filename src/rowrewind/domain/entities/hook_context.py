"""Values exchanged between the hook registry and hook callbacks."""

import uuid
from dataclasses import dataclass, field
from typing import Any, Optional


class AbortHookException(Exception):
    """Raise from a before-hook to cancel the row mutation.

    The repository turns it into MutationAbortedError; the enclosing
    transaction is then rolled back by its owner.

    Example:
        async def forbid_negative_totals(event, data, context):
            if (data["row"].get("total") or 0) < 0:
                raise AbortHookException("order total cannot be negative")
            return data
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


@dataclass
class HookContext:
    """Who and what issued a mutation.

    Attributes:
        actor: Free-form caller identity, e.g. a user name.
        request_id: Correlation id; generated when not given.
    """

    actor: Optional[str] = None
    request_id: str = ""

    def __post_init__(self) -> None:
        if not self.request_id:
            self.request_id = f"hk_{uuid.uuid4().hex[:12]}"


@dataclass
class HookResult:
    """Outcome of HookRegistry.trigger().

    Attributes:
        success: False if a hook aborted or a stop_on_error hook raised.
        aborted: A hook raised AbortHookException.
        abort_message: The abort reason.
        errors: One message per hook that raised.
        data: Event data after every hook ran.
    """

    success: bool = True
    aborted: bool = False
    abort_message: Optional[str] = None
    errors: list[str] = field(default_factory=list)
    data: Optional[dict[str, Any]] = None
