"""
Shared plumbing for services that change quotes.

Every write is: fresh read -> pure domain change -> conditional save on the
version that was read -> audit side effects. Store failures become
OperationResult error kinds; audit failures after the save become warnings.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple, Union

from domain.audit import AuditAction
from domain.quote import Quote
from domain.time import utc_now
from repositories.audit_log_repository import AuditLogRepository
from repositories.errors import ConcurrencyConflictError, StoreUnavailableError
from repositories.quote_repository import QuoteRepository
from services.results import ErrorKind, OperationResult

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class QuoteServiceBase:
    def __init__(
        self,
        quotes: QuoteRepository,
        audit: AuditLogRepository,
        clock: Clock = utc_now,
    ):
        self._quotes = quotes
        self._audit_log = audit
        self._clock = clock

    def _now(self) -> datetime:
        return self._clock()

    def _load(self, quote_id: str) -> Union[Quote, OperationResult]:
        """Fresh read of a quote, or the failure result to return."""

        try:
            quote = self._quotes.get_fresh(quote_id)
        except StoreUnavailableError as e:
            logger.warning("Quote read failed", extra={"quote_id": quote_id, "error": str(e)})
            return OperationResult.fail(ErrorKind.STORAGE_UNAVAILABLE, f"Could not load quote {quote_id}: {e}")
        if quote is None:
            return OperationResult.fail(ErrorKind.NOT_FOUND, f"Quote {quote_id} not found")
        return quote

    def _save(self, quote: Quote, expected_version: Optional[int], original: Optional[Quote] = None) -> Union[Quote, OperationResult]:
        """Conditional save, or the failure result to return."""

        try:
            return self._quotes.save(quote, expected_version)
        except ConcurrencyConflictError as e:
            logger.info("Quote write lost to a concurrent change", extra={"quote_id": quote.id})
            return OperationResult.fail(ErrorKind.CONFLICT, str(e), quote=original)
        except StoreUnavailableError as e:
            logger.warning("Quote write failed", extra={"quote_id": quote.id, "error": str(e)})
            return OperationResult.fail(
                ErrorKind.STORAGE_UNAVAILABLE,
                f"Could not save quote {quote.id}: {e}",
                quote=original,
            )

    def _audit(
        self,
        warnings: List[str],
        quote_id: str,
        action: AuditAction,
        details: str,
        actor: str,
    ) -> None:
        """Append an audit entry; a failure is logged and added to `warnings`."""

        try:
            self._audit_log.append(quote_id, action, details, actor, at=self._now())
        except StoreUnavailableError as e:
            logger.error(
                "Audit entry lost",
                extra={"quote_id": quote_id, "action": AuditAction(action).value, "actor": actor, "error": str(e)},
            )
            warnings.append(f"Audit entry {AuditAction(action).value} was not recorded: {e}")

    def _audit_many(self, quote_id: str, actor: str, entries: List[Tuple[AuditAction, str]]) -> List[str]:
        warnings: List[str] = []
        for action, details in entries:
            self._audit(warnings, quote_id, action, details, actor)
        return warnings


__all__ = ["Clock", "QuoteServiceBase"]
