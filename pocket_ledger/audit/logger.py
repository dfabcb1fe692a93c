"""
Audit Logger

DESIGN DECISION: Every write and every session change is logged.
This provides:
1. Complete traceability
2. Debugging capability
3. User can see history of their changes

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from pocket_ledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from pocket_ledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit store (Google Sheets or memory) for persistence
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_user_signed_up(self, user_id: str, email: str) -> None:
        await self.log(AuditEventBuilder.user_signed_up(user_id=user_id, email=email))

    async def log_user_logged_in(self, user_id: str) -> None:
        await self.log(AuditEventBuilder.user_logged_in(user_id=user_id))

    async def log_user_logged_out(self, user_id: str) -> None:
        await self.log(AuditEventBuilder.user_logged_out(user_id=user_id))

    async def log_login_failed(self, email: str, reason: str) -> None:
        await self.log(AuditEventBuilder.login_failed(email=email, reason=reason))

    async def log_account_deleted(self, user_id: str) -> None:
        await self.log(AuditEventBuilder.account_deleted(user_id=user_id))

    async def log_transaction_saved(
        self,
        owner_id: str,
        transaction_id: UUID,
        kind: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a new ledger entry."""
        event = AuditEventBuilder.transaction_saved(
            owner_id=owner_id,
            transaction_id=transaction_id,
            kind=kind,
            amount=str(amount),
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_updated(
        self,
        owner_id: str,
        transaction_id: UUID,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transaction_updated(
            owner_id=owner_id,
            transaction_id=transaction_id,
            changed_fields=changed_fields,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_deleted(
        self,
        owner_id: str,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transaction_deleted(
            owner_id=owner_id,
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_write_rejected(
        self,
        owner_id: str,
        entity_type: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a write that failed validation."""
        event = AuditEventBuilder.write_rejected(
            owner_id=owner_id,
            entity_type=entity_type,
            issues=issues,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_loan_account_opened(
        self,
        owner_id: str,
        account_id: UUID,
        account_type: str,
        counterparty: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.loan_account_opened(
            owner_id=owner_id,
            account_id=account_id,
            account_type=account_type,
            counterparty=counterparty,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_loan_account_adjusted(
        self,
        owner_id: str,
        account_id: UUID,
        direction: str,
        delta: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a received/paid increment on a sub-account."""
        event = AuditEventBuilder.loan_account_adjusted(
            owner_id=owner_id,
            account_id=account_id,
            direction=direction,
            delta=str(delta),
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_loan_account_deleted(
        self,
        owner_id: str,
        account_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.loan_account_deleted(
            owner_id=owner_id,
            account_id=account_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        owner_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            owner_id=owner_id,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., saving a transaction).
    Pass it through all subsequent operations.
    """
    return uuid4()
