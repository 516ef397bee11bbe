"""Application services: provisioning, revert and the public facade."""

from rowrewind.application.services.provisioning_service import ProvisioningService
from rowrewind.application.services.revert_engine import RevertEngine, RevertResult
from rowrewind.application.services.undo_service import OperationResult, UndoService

__all__ = [
    "OperationResult",
    "ProvisioningService",
    "RevertEngine",
    "RevertResult",
    "UndoService",
]
