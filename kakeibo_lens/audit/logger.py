"""
Audit Logger

Every significant action in the system is logged with a correlation id,
so a single scan can be traced from the image to the entries it produced.

The audit logger:
- Is async so flows can await it uniformly
- Never raises (a logging failure must not abort a ledger write)
- Supports correlation IDs to trace related events
"""

import logging
import sys
from typing import Optional
from uuid import UUID, uuid4

import structlog

from kakeibo_lens.models.audit import AuditEvent, AuditEventBuilder


def configure_logging(json_output: bool = True, debug: bool = False) -> None:
    """
    Configure structlog on top of the standard library logger.

    Called once at import with JSON output; call again to switch to
    console rendering for local debugging.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=logging.DEBUG if debug else logging.INFO,
    )
    renderer = (
        structlog.processors.JSONRenderer(ensure_ascii=False)
        if json_output
        else structlog.dev.ConsoleRenderer()
    )
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
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Events are written to the structured log and kept in an in-memory
    trail (bounded) so callers and tests can inspect what happened during
    a user action.
    """

    def __init__(self, max_events: int = 1000):
        self._logger = structlog.get_logger("kakeibo_lens.audit")
        self._events: list[AuditEvent] = []
        self._max_events = max_events

    @property
    def events(self) -> list[AuditEvent]:
        """Recorded events, oldest first."""
        return list(self._events)

    def events_for(self, correlation_id: UUID) -> list[AuditEvent]:
        """All recorded events of one user action, in order."""
        return [e for e in self._events if e.correlation_id == correlation_id]

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns True if the event was recorded.
        """
        log_dict = event.to_log_dict()

        try:
            if event.severity.value in ("error", "critical"):
                self._logger.error("audit_event", **log_dict)
            elif event.severity.value == "warning":
                self._logger.warning("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception as e:
            # Log rendering must never break a ledger operation
            print(f"WARNING: Failed to write audit event: {e}", file=sys.stderr)
            return False

        self._events.append(event)
        if len(self._events) > self._max_events:
            del self._events[: len(self._events) - self._max_events]
        return True

    async def log_analysis_started(
        self,
        image_uri: Optional[str],
        image_size: int,
        correlation_id: UUID,
    ) -> None:
        """Log that an image was sent for analysis."""
        await self.log(AuditEventBuilder.analysis_started(
            image_uri=image_uri,
            image_size=image_size,
            correlation_id=correlation_id,
        ))

    async def log_analysis_completed(
        self,
        line_count: int,
        confidence: float,
        correlation_id: UUID,
    ) -> None:
        """Log a successful analysis."""
        await self.log(AuditEventBuilder.analysis_completed(
            line_count=line_count,
            confidence=confidence,
            correlation_id=correlation_id,
        ))

    async def log_analysis_failed(
        self,
        error_type: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log an analysis transport or parse failure."""
        await self.log(AuditEventBuilder.analysis_failed(
            error_type=error_type,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_analysis_empty(self, correlation_id: UUID) -> None:
        """Log an analysis that found nothing."""
        await self.log(AuditEventBuilder.analysis_empty(correlation_id))

    async def log_line_rejected(
        self,
        line_index: int,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        """Log an analyzed line that failed validation."""
        await self.log(AuditEventBuilder.line_rejected(
            line_index=line_index,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_entry_saved(
        self,
        entry_id: str,
        item_name: str,
        amount: int,
        category_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log entry save."""
        await self.log(AuditEventBuilder.entry_saved(
            entry_id=entry_id,
            item_name=item_name,
            amount=amount,
            category_id=category_id,
            correlation_id=correlation_id,
        ))

    async def log_entry_updated(self, entry_id: str, changed_fields: list[str]) -> None:
        await self.log(AuditEventBuilder.entry_updated(entry_id, changed_fields))

    async def log_entry_deleted(self, entry_id: str) -> None:
        await self.log(AuditEventBuilder.entry_deleted(entry_id))

    async def log_save_failed(
        self,
        item_name: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a failed entry write."""
        await self.log(AuditEventBuilder.save_failed(
            item_name=item_name,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_categories_seeded(self, count: int) -> None:
        await self.log(AuditEventBuilder.categories_seeded(count))

    async def log_legacy_data_migrated(self, entries: int, categories: int) -> None:
        await self.log(AuditEventBuilder.legacy_data_migrated(entries, categories))

    async def log_data_cleared(self) -> None:
        await self.log(AuditEventBuilder.data_cleared())

    async def log_export_generated(
        self,
        row_count: int,
        destination: Optional[str] = None,
    ) -> None:
        await self.log(AuditEventBuilder.export_generated(row_count, destination))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a ledger scan).
    Pass it through all subsequent operations.
    """
    return uuid4()
