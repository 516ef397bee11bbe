"""Repositories for live tables and their change logs."""

from rowrewind.infrastructure.persistence.repositories.log_store_repository import (
    LogStoreRepository,
)
from rowrewind.infrastructure.persistence.repositories.row_repository import RowRepository

__all__ = [
    "LogStoreRepository",
    "RowRepository",
]
