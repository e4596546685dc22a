"""
Audit Models for Kakeibo Lens

Every significant action in the system is logged for audit purposes.
This provides:
1. Traceability of every ingestion and deletion
2. Debugging information when the vision model misbehaves
3. A way to reconstruct what a user action changed
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from kakeibo_lens.models.ledger import utcnow


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step in the ingestion pipeline has its own event type.
    """
    # Analysis
    ANALYSIS_STARTED = "analysis_started"
    ANALYSIS_COMPLETED = "analysis_completed"
    ANALYSIS_FAILED = "analysis_failed"
    ANALYSIS_EMPTY = "analysis_empty"
    LINE_REJECTED = "line_rejected"

    # Persistence
    ENTRY_SAVED = "entry_saved"
    ENTRY_UPDATED = "entry_updated"
    ENTRY_DELETED = "entry_deleted"
    SAVE_FAILED = "save_failed"
    CATEGORIES_SEEDED = "categories_seeded"
    LEGACY_DATA_MIGRATED = "legacy_data_migrated"
    DATA_CLEARED = "data_cleared"

    # Reporting
    EXPORT_GENERATED = "export_generated"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    One entry of the audit trail.

    ``entity_type``/``entity_id`` name what the event is about (an entry id,
    an image reference, an export path). Events of one scan share a
    ``correlation_id``.
    """

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    correlation_id: Optional[UUID] = None

    description: str = Field(
        ...,
        max_length=500,
        description="Short English summary for the log"
    )
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    is_user_action: bool = Field(
        default=False,
        description="Triggered directly by the user (scan, edit, delete, export)"
    )

    def to_log_dict(self) -> dict:
        """Flatten into structlog key/value pairs."""
        data = self.model_dump(mode="json")
        data["event_type"] = self.event_type.value
        data["severity"] = self.severity.value
        return data


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.analysis_started(image_uri, size, correlation_id)
        event = AuditEventBuilder.entry_saved(entry_id, item, amount, correlation_id)
    """

    @staticmethod
    def analysis_started(
        image_uri: Optional[str],
        image_size: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ANALYSIS_STARTED,
            entity_type="image",
            entity_id=image_uri,
            correlation_id=correlation_id,
            description="Ledger image sent for analysis",
            details={
                "image_size_bytes": image_size,
            },
            is_user_action=True,
        )

    @staticmethod
    def analysis_completed(
        line_count: int,
        confidence: float,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ANALYSIS_COMPLETED,
            entity_type="analysis",
            correlation_id=correlation_id,
            description=f"Analysis returned {line_count} lines with {confidence:.0%} confidence",
            details={
                "line_count": line_count,
                "confidence": confidence,
            },
        )

    @staticmethod
    def analysis_failed(
        error_type: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ANALYSIS_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="analysis",
            correlation_id=correlation_id,
            description=f"Analysis failed: {error_type}",
            error_message=error_message,
            details={
                "error_type": error_type,
            },
        )

    @staticmethod
    def analysis_empty(correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ANALYSIS_EMPTY,
            severity=AuditSeverity.WARNING,
            entity_type="analysis",
            correlation_id=correlation_id,
            description="Analysis found no ledger lines",
        )

    @staticmethod
    def line_rejected(
        line_index: int,
        issues: list[dict],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LINE_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="analysis_line",
            entity_id=str(line_index),
            correlation_id=correlation_id,
            description=f"Line {line_index} rejected with {len(issues)} issues",
            details={
                "issues": issues,
            },
        )

    @staticmethod
    def entry_saved(
        entry_id: str,
        item_name: str,
        amount: int,
        category_id: str,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_SAVED,
            entity_type="entry",
            entity_id=entry_id,
            correlation_id=correlation_id,
            description=f"Entry saved: {item_name} - ¥{amount:,}",
            details={
                "item_name": item_name,
                "amount": amount,
                "category_id": category_id,
            },
        )

    @staticmethod
    def entry_updated(
        entry_id: str,
        changed_fields: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_UPDATED,
            entity_type="entry",
            entity_id=entry_id,
            description=f"Entry updated: {', '.join(changed_fields) or 'no fields'}",
            details={
                "changed_fields": changed_fields,
            },
            is_user_action=True,
        )

    @staticmethod
    def entry_deleted(entry_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_DELETED,
            entity_type="entry",
            entity_id=entry_id,
            description="Entry deleted",
            is_user_action=True,
        )

    @staticmethod
    def save_failed(
        item_name: str,
        error_message: str,
        correlation_id: Optional[UUID]
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="entry",
            correlation_id=correlation_id,
            description=f"Failed to save entry: {item_name}",
            error_message=error_message,
        )

    @staticmethod
    def categories_seeded(count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORIES_SEEDED,
            entity_type="category",
            description=f"Seeded {count} default categories",
            details={
                "count": count,
            },
        )

    @staticmethod
    def legacy_data_migrated(entries: int, categories: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEGACY_DATA_MIGRATED,
            description=(
                f"Migrated {entries} entries and {categories} categories "
                "to per-record storage"
            ),
            details={
                "entries": entries,
                "categories": categories,
            },
        )

    @staticmethod
    def data_cleared() -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_CLEARED,
            severity=AuditSeverity.WARNING,
            description="All ledger data deleted",
            is_user_action=True,
        )

    @staticmethod
    def export_generated(
        row_count: int,
        destination: Optional[str] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPORT_GENERATED,
            entity_type="export",
            entity_id=destination,
            description=f"CSV export with {row_count} rows",
            details={
                "row_count": row_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
