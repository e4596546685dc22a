"""
Main Orchestrator for Kakeibo Lens

This module ties together all the components and defines the
end-to-end ingestion flow:

    image → analysis → validation → category normalization
          → category id resolution → one entry write per line

DESIGN DECISION: The orchestrator enforces the boundaries:
- A failed or unparseable analysis writes nothing
- A line that fails validation is skipped, never guessed
- Each entry write commits on its own; a failure is counted, not rolled back
- Every step is audited

Reporting lives in ReportService; this module only wires it up.
"""

import asyncio
from pathlib import Path
from typing import NamedTuple, Optional
from uuid import UUID

import structlog

from kakeibo_lens.audit import AuditLogger, configure_logging, create_correlation_id
from kakeibo_lens.categorization import CATCH_ALL_CATEGORY, normalize_category_name
from kakeibo_lens.config import get_settings
from kakeibo_lens.models.ledger import (
    AnalysisResult,
    IngestionOutcome,
    IngestionState,
    LedgerEntry,
)
from kakeibo_lens.reports import ReportService
from kakeibo_lens.services.analysis import (
    AnalysisParseError,
    AnalysisServiceInterface,
    AnalysisTransportError,
    EmptyAnalysisError,
    GeminiVisionService,
    HttpAnalysisService,
)
from kakeibo_lens.services.storage import (
    CategoryStore,
    EntryStore,
    GoogleSheetsKeyValueStore,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    StorageError,
    prepare_storage,
)
from kakeibo_lens.validation import EntryValidator, get_user_friendly_summary
from kakeibo_lens.validation.validator import ITEM_NAME_MAX_LENGTH


logger = structlog.get_logger(__name__)


MESSAGE_NO_IMAGE = "画像データが必要です"
MESSAGE_IMAGE_TOO_LARGE = "画像サイズが大きすぎます（上限 {limit}MB）"
MESSAGE_UNSUPPORTED_FORMAT = "対応していない画像形式です: {suffix}"
MESSAGE_ANALYSIS_FAILED = "AI解析に失敗しました。インターネット接続を確認してください。"
MESSAGE_NOTHING_FOUND = "家計簿のデータが見つかりませんでした。もう一度お試しください。"
MESSAGE_SAVED = "{count}件のデータを保存しました"
MESSAGE_SAVE_FAILED = "データの保存に失敗しました"


class IngestionInProgressError(Exception):
    """An ingestion is already running on this flow."""
    pass


class IngestionFlow:
    """
    Orchestrates turning one ledger photo into ledger entries.

    States:
        IDLE → ANALYZING → PERSISTED | EMPTY | FAILED

    The terminal state is reported in the returned IngestionOutcome and
    the flow itself goes back to IDLE, ready for the next photo.
    """

    def __init__(
        self,
        analysis_service: AnalysisServiceInterface,
        entry_store: EntryStore,
        category_store: CategoryStore,
        validator: Optional[EntryValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self._analysis = analysis_service
        self._entries = entry_store
        self._categories = category_store
        self._validator = validator or EntryValidator()
        self._audit_logger = audit_logger
        self._app_settings = get_settings().app
        self._timeout = timeout_seconds or get_settings().analysis.timeout_seconds
        self._state = IngestionState.IDLE

    @property
    def state(self) -> IngestionState:
        return self._state

    def _failed(self, message: str, confidence: Optional[float] = None) -> IngestionOutcome:
        return IngestionOutcome(
            state=IngestionState.FAILED,
            message=message,
            confidence=confidence,
        )

    async def _analyze(self, image_bytes: bytes) -> AnalysisResult:
        """
        Call the analysis service once, bounded by the configured timeout.

        Raises:
            AnalysisTransportError: Unreachable, error status or timeout
            AnalysisParseError: Unusable response
            EmptyAnalysisError: Valid response without any line
        """
        try:
            result = await asyncio.wait_for(
                self._analysis.analyze(image_bytes),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            raise AnalysisTransportError(
                f"Analysis timed out after {self._timeout:g} seconds"
            )

        if not result.entries:
            raise EmptyAnalysisError(f"No lines found (confidence {result.confidence:.2f})")
        return result

    async def _category_ids_by_name(self) -> tuple[dict[str, str], str]:
        """
        Map category names to ids (first category wins per name).

        Raises:
            StorageError: If the catch-all category is missing
        """
        ids_by_name: dict[str, str] = {}
        for category in await self._categories.read_all():
            ids_by_name.setdefault(category.name, category.id)

        catch_all_id = ids_by_name.get(CATCH_ALL_CATEGORY)
        if catch_all_id is None:
            raise StorageError(
                "Catch-all category is missing; run prepare_storage() at startup"
            )
        return ids_by_name, catch_all_id

    async def ingest_image(
        self,
        image_bytes: bytes,
        image_uri: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> IngestionOutcome:
        """
        Analyze one ledger photo and persist the lines found on it.

        Raises:
            IngestionInProgressError: If called while another ingestion runs
        """
        if self._state == IngestionState.ANALYZING:
            raise IngestionInProgressError("An ingestion is already in progress")

        if not image_bytes:
            return self._failed(MESSAGE_NO_IMAGE)
        if len(image_bytes) > self._app_settings.max_upload_size_bytes:
            return self._failed(MESSAGE_IMAGE_TOO_LARGE.format(
                limit=self._app_settings.max_upload_size_mb,
            ))

        correlation_id = correlation_id or create_correlation_id()
        self._state = IngestionState.ANALYZING
        try:
            return await self._run(image_bytes, image_uri, correlation_id)
        finally:
            self._state = IngestionState.IDLE

    async def _run(
        self,
        image_bytes: bytes,
        image_uri: Optional[str],
        correlation_id: UUID,
    ) -> IngestionOutcome:
        if self._audit_logger:
            await self._audit_logger.log_analysis_started(
                image_uri=image_uri,
                image_size=len(image_bytes),
                correlation_id=correlation_id,
            )

        # Step 1: analysis
        try:
            result = await self._analyze(image_bytes)
        except (AnalysisTransportError, AnalysisParseError) as e:
            logger.warning(
                "analysis_failed",
                error_type=type(e).__name__,
                error=str(e),
                correlation_id=str(correlation_id),
            )
            if self._audit_logger:
                await self._audit_logger.log_analysis_failed(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
                if isinstance(e, AnalysisTransportError):
                    await self._audit_logger.log_external_service_error(
                        service=type(self._analysis).__name__,
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
            return self._failed(MESSAGE_ANALYSIS_FAILED)
        except EmptyAnalysisError as e:
            logger.info("analysis_empty", detail=str(e), correlation_id=str(correlation_id))
            if self._audit_logger:
                await self._audit_logger.log_analysis_empty(correlation_id)
            return IngestionOutcome(
                state=IngestionState.EMPTY,
                message=MESSAGE_NOTHING_FOUND,
            )

        if self._audit_logger:
            await self._audit_logger.log_analysis_completed(
                line_count=len(result.entries),
                confidence=result.confidence,
                correlation_id=correlation_id,
            )

        # Step 2: validation
        validations = self._validator.validate_lines(result.entries)
        skipped_issues = [
            issue
            for validation in validations
            if validation.has_errors
            for issue in validation.issues
            if issue.severity == "error"
        ]
        for validation in validations:
            if validation.has_errors and self._audit_logger:
                await self._audit_logger.log_line_rejected(
                    line_index=validation.line_index,
                    issues=[issue.model_dump() for issue in validation.issues],
                    correlation_id=correlation_id,
                )

        # Step 3: normalize and resolve categories
        try:
            ids_by_name, catch_all_id = await self._category_ids_by_name()
        except StorageError as e:
            logger.error("category_lookup_failed", error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            return self._failed(MESSAGE_SAVE_FAILED, result.confidence)

        new_entries = []
        for line, validation in zip(result.entries, validations):
            if validation.has_errors:
                continue
            category_name = normalize_category_name(line.suggested_category)
            new_entries.append(LedgerEntry(
                entry_date=validation.resolved_date,
                item_name=line.item_name[:ITEM_NAME_MAX_LENGTH],
                amount=validation.resolved_amount,
                category_id=ids_by_name.get(category_name, catch_all_id),
                image_uri=image_uri,
            ))

        summary = get_user_friendly_summary(validations)

        if not new_entries:
            return IngestionOutcome(
                state=IngestionState.EMPTY,
                message="\n".join(filter(None, [MESSAGE_NOTHING_FOUND, summary])),
                skipped_lines=skipped_issues,
                confidence=result.confidence,
            )

        # Step 4: persist, one independent write per entry
        batch = await self._entries.add_many(new_entries, correlation_id=correlation_id)

        if not batch.saved:
            return IngestionOutcome(
                state=IngestionState.FAILED,
                message=MESSAGE_SAVE_FAILED,
                skipped_lines=skipped_issues,
                failed_writes=len(batch.failed),
                confidence=result.confidence,
            )

        message = MESSAGE_SAVED.format(count=len(batch.saved))
        if batch.failed:
            message += f"（{len(batch.failed)}件は保存に失敗しました）"

        logger.info(
            "ingestion_persisted",
            saved=len(batch.saved),
            failed=len(batch.failed),
            skipped=len(result.entries) - len(new_entries),
            correlation_id=str(correlation_id),
        )

        return IngestionOutcome(
            state=IngestionState.PERSISTED,
            message="\n".join(filter(None, [message, summary])),
            saved_entries=batch.saved,
            skipped_lines=skipped_issues,
            failed_writes=len(batch.failed),
            confidence=result.confidence,
        )

    async def ingest_file(
        self,
        path: Path,
        correlation_id: Optional[UUID] = None,
    ) -> IngestionOutcome:
        """Read a photo from disk and ingest it, using the path as image_uri."""
        path = Path(path)
        suffix = path.suffix.lstrip(".").lower()
        if suffix not in self._app_settings.supported_formats_list:
            return self._failed(MESSAGE_UNSUPPORTED_FORMAT.format(suffix=path.suffix or path.name))

        image_bytes = path.read_bytes()
        return await self.ingest_image(
            image_bytes,
            image_uri=str(path),
            correlation_id=correlation_id,
        )


# =============================================================================
# WIRING
# =============================================================================

def create_key_value_store(backend: Optional[str] = None) -> KeyValueStore:
    """Build the key-value backend named in settings (or ``backend``)."""
    settings = get_settings().storage
    backend = backend or settings.backend

    if backend == "memory":
        return InMemoryKeyValueStore()
    if backend == "file":
        return JsonFileKeyValueStore(settings.data_path)
    if backend == "sheets":
        return GoogleSheetsKeyValueStore()
    raise ValueError(f"Unknown storage backend: {backend}")


def create_analysis_service(provider: Optional[str] = None) -> AnalysisServiceInterface:
    provider = provider or get_settings().analysis.provider
    if provider == "http":
        return HttpAnalysisService()
    if provider == "gemini":
        return GeminiVisionService()
    raise ValueError(f"Unknown analysis provider: {provider}")


class AppComponents(NamedTuple):
    kv: KeyValueStore
    entries: EntryStore
    categories: CategoryStore
    ingestion: IngestionFlow
    reports: ReportService
    audit_logger: AuditLogger

    async def startup(self):
        """Migrate legacy data and seed default categories."""
        return await prepare_storage(self.kv, self.categories, self.audit_logger)


def create_app_components(
    kv: Optional[KeyValueStore] = None,
    analysis_service: Optional[AnalysisServiceInterface] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        kv: Key-value backend. Built from settings when omitted.
        analysis_service: Analysis collaborator. Built from settings when omitted.

    Call ``await components.startup()`` before the first ingestion.
    """
    app_settings = get_settings().app
    configure_logging(json_output=app_settings.log_json, debug=app_settings.debug_mode)

    audit_logger = AuditLogger()
    if kv is None:
        kv = create_key_value_store()
    entries = EntryStore(kv, audit_logger)
    categories = CategoryStore(kv, audit_logger)

    ingestion = IngestionFlow(
        analysis_service=analysis_service or create_analysis_service(),
        entry_store=entries,
        category_store=categories,
        audit_logger=audit_logger,
    )
    reports = ReportService(entries, categories, audit_logger)

    return AppComponents(
        kv=kv,
        entries=entries,
        categories=categories,
        ingestion=ingestion,
        reports=reports,
        audit_logger=audit_logger,
    )
