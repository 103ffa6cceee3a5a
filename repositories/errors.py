"""
Persistence errors.

Repositories raise these instead of returning booleans; services translate
them into OperationResult error kinds.
"""

from __future__ import annotations

from typing import Optional


class StoreUnavailableError(RuntimeError):
    """The remote document store could not be reached or rejected the request."""

    def __init__(self, message: str, *, table: Optional[str] = None):
        self.table = table
        super().__init__(message)


class ConcurrencyConflictError(RuntimeError):
    """A conditional write lost: the stored document changed since it was read."""

    def __init__(self, message: str, *, document_id: Optional[str] = None):
        self.document_id = document_id
        super().__init__(message)


__all__ = ["ConcurrencyConflictError", "StoreUnavailableError"]
