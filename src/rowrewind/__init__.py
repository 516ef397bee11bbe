"""RowRewind - change logging and point-in-time revert for relational tables.

Captures a snapshot of every row mutation into a per-table change log and
undoes the changes of a time window on demand.
"""

__version__ = "0.1.0"

from rowrewind.application.services import OperationResult, RevertResult, UndoService

__all__ = ["OperationResult", "RevertResult", "UndoService", "__version__"]
