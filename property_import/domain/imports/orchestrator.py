"""
Unified import orchestration layer.

Every upload, whether a single entity sheet or a combined workbook, goes
through the same job lifecycle: register the job, validate, process rows in
batches on a worker thread raced against the global deadline, record the
terminal status and schedule the registry cleanup.
"""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from property_import.api.schemas.shared import (
    DEPENDENCY_ORDER,
    AuditInfo,
    ClassifiedError,
    EntityType,
    ErrorStatistics,
    ErrorType,
    ImportResult,
    ImportStatus,
    PerformanceMetrics,
    Severity,
    ValidationReport,
)
from property_import.core.config import Settings
from property_import.core.config import settings as default_settings
from property_import.db.audit import AuditRecorder, LoggingAuditRecorder
from property_import.domain.imports.batch_processor import (
    BatchProcessor,
    BatchResult,
    ProcessorContext,
    iter_batches,
)
from property_import.domain.imports.cache import EntityCacheRegistry
from property_import.domain.imports.creators import CREATORS
from property_import.domain.imports.errors import (
    ImportJobNotFoundError,
    MalformedInputError,
    UnsupportedEntityTypeError,
    summarize_errors,
    timeout_error,
)
from property_import.domain.imports.jobs import ImportJobRegistry
from property_import.domain.imports.processors.excel_processor import (
    RawRecord,
    check_upload,
    parse_records,
    parse_workbook,
)
from property_import.domain.imports.rows import TypedRow, to_typed_row
from property_import.domain.imports.validators import (
    ValidationIssue,
    has_errors,
    validate_record,
    validate_records,
)

logger = logging.getLogger(__name__)

Phase = Tuple[EntityType, List[TypedRow]]


def _log_late_failure(import_id: str) -> Callable[[Future], None]:
    """Done-callback for a worker abandoned at the deadline."""
    def _callback(future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(
                "Import %s worker failed after the timeout: %s", import_id, error, exc_info=error
            )
    return _callback


def coerce_entity_type(entity_type: Union[EntityType, str]) -> EntityType:
    try:
        return EntityType(entity_type)
    except ValueError:
        raise UnsupportedEntityTypeError(entity_type)


def compute_error_statistics(errors: Sequence[ClassifiedError]) -> ErrorStatistics:
    return ErrorStatistics(
        critical_errors=sum(1 for error in errors if error.severity == Severity.ERROR),
        warnings=sum(1 for error in errors if error.severity == Severity.WARNING),
        duplicates=sum(1 for error in errors if error.error_type == ErrorType.DUPLICATE),
        validation_errors=sum(1 for error in errors if error.error_type == ErrorType.VALIDATION),
    )


def build_summary(
    total_rows: int,
    successful_rows: int,
    processing_time_ms: int,
    statistics: ErrorStatistics,
    status: ImportStatus,
) -> str:
    rate = round(successful_rows / total_rows * 100) if total_rows else 0
    avg = processing_time_ms / total_rows if total_rows else 0.0
    parts = [
        f"Import {'timed out' if status == ImportStatus.TIMEOUT else 'finished'}: "
        f"{successful_rows}/{total_rows} rows processed successfully ({rate}%) "
        f"in {processing_time_ms}ms ({avg:.1f} ms/row)."
    ]
    if statistics.critical_errors:
        parts.append(f"{statistics.critical_errors} critical error(s).")
    if statistics.warnings:
        parts.append(f"{statistics.warnings} warning(s).")
    if statistics.duplicates:
        parts.append(f"{statistics.duplicates} duplicate(s) detected.")
    return " ".join(parts)


def build_import_result(
    *,
    import_id: Optional[str],
    status: ImportStatus,
    total_rows: int,
    successful_rows: int,
    errors: List[ClassifiedError],
    processing_time_ms: int,
    transaction_count: int = 0,
    audit_info: Optional[AuditInfo] = None,
) -> ImportResult:
    errors = sorted(errors, key=lambda error: error.position)
    statistics = compute_error_statistics(errors)
    return ImportResult(
        success=statistics.critical_errors == 0,
        total_rows=total_rows,
        successful_rows=successful_rows,
        failed_rows=total_rows - successful_rows,
        errors=errors,
        summary=build_summary(total_rows, successful_rows, processing_time_ms, statistics, status),
        processing_time_ms=processing_time_ms,
        import_id=import_id,
        status=status,
        error_statistics=statistics,
        performance_metrics=PerformanceMetrics(
            avg_ms_per_row=round(processing_time_ms / total_rows, 2) if total_rows else 0.0,
            transaction_count=transaction_count,
        ),
        audit_info=audit_info,
    )


@dataclass
class _RunState:
    """Counters shared between the worker thread and the waiting caller."""
    successful_rows: int = 0
    processed_rows: int = 0
    batches: int = 0
    errors: List[ClassifiedError] = field(default_factory=list)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def apply(self, result: BatchResult) -> None:
        with self.lock:
            self.successful_rows += result.successful_rows
            self.processed_rows += result.processed_rows
            self.errors.extend(result.errors)
            self.batches += 1

    def snapshot(self) -> "_RunState":
        with self.lock:
            return _RunState(
                successful_rows=self.successful_rows,
                processed_rows=self.processed_rows,
                batches=self.batches,
                errors=list(self.errors),
            )


class ImportOrchestrator:
    def __init__(
        self,
        store: Any,
        settings: Optional[Settings] = None,
        registry: Optional[ImportJobRegistry] = None,
        caches: Optional[EntityCacheRegistry] = None,
        audit: Optional[AuditRecorder] = None,
        processor: Optional[BatchProcessor] = None,
    ):
        self.settings = settings or default_settings
        self.store = store
        self.registry = registry or ImportJobRegistry()
        self.caches = caches or EntityCacheRegistry(
            store,
            capacity=self.settings.import_cache_size,
            ttl_seconds=self.settings.import_cache_ttl_seconds,
        )
        self.audit = audit or LoggingAuditRecorder()
        self.processor = processor or BatchProcessor(
            enable_parallel=self.settings.import_enable_parallel_processing,
            max_workers=self.settings.import_parallel_max_workers,
            parallel_threshold=self.settings.import_parallel_threshold,
        )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    def import_file(
        self,
        file_content: bytes,
        file_name: str,
        entity_type: Union[EntityType, str],
        user_id: Optional[str] = None,
    ) -> ImportResult:
        entity_type = coerce_entity_type(entity_type)
        check_upload(file_name, len(file_content), self.settings.import_max_file_size)
        records = parse_records(file_content, file_name)
        return self.run_import(
            records,
            entity_type,
            user_id=user_id,
            file_name=file_name,
            file_size=len(file_content),
        )

    def import_workbook(
        self,
        file_content: bytes,
        file_name: str,
        user_id: Optional[str] = None,
    ) -> ImportResult:
        check_upload(file_name, len(file_content), self.settings.import_max_file_size)
        sheets = parse_workbook(file_content)
        if not any(sheets.values()):
            raise MalformedInputError("The workbook does not contain any data rows")
        return self.run_combined(
            sheets,
            user_id=user_id,
            file_name=file_name,
            file_size=len(file_content),
        )

    def validate_file(
        self,
        file_content: bytes,
        file_name: str,
        entity_type: Union[EntityType, str],
    ) -> ValidationReport:
        entity_type = coerce_entity_type(entity_type)
        check_upload(file_name, len(file_content), self.settings.import_max_file_size)
        records = parse_records(file_content, file_name)
        report = validate_records(records, entity_type)
        logger.info(
            "Validated %s upload '%s': %d/%d valid rows",
            entity_type.value,
            file_name,
            report.valid_rows,
            report.total_rows,
        )
        return report

    def run_import(
        self,
        records: List[RawRecord],
        entity_type: Union[EntityType, str],
        user_id: Optional[str] = None,
        file_name: Optional[str] = None,
        file_size: int = 0,
    ) -> ImportResult:
        """
        Import the records of one entity type.

        Validation is a gate: a single ERROR issue fails the whole job before
        any row is created. Warnings are carried into the result.
        """
        entity_type = coerce_entity_type(entity_type)
        start_time = time.time()
        job = self.registry.create(len(records))
        import_id = job.import_id
        logger.info("Starting %s import %s (%d rows)", entity_type.value, import_id, len(records))

        issues: List[ValidationIssue] = []
        for record in records:
            issues.extend(validate_record(record, entity_type))
        validation_errors = [issue.to_classified() for issue in issues]

        if has_errors(issues):
            logger.warning(
                "Import %s rejected: %d validation issue(s)",
                import_id,
                len(validation_errors),
            )
            self._update_progress(
                import_id,
                status=ImportStatus.FAILED,
                failed_rows=len(records),
                errors=validation_errors,
            )
            self._schedule_cleanup(import_id)
            result = build_import_result(
                import_id=import_id,
                status=ImportStatus.FAILED,
                total_rows=len(records),
                successful_rows=0,
                errors=validation_errors,
                processing_time_ms=self._elapsed_ms(start_time),
                audit_info=self._audit_info(user_id, file_name, file_size),
            )
            self._record_audit(result, entity_type.value, user_id)
            return result

        phases: List[Phase] = [(entity_type, [to_typed_row(record, entity_type) for record in records])]
        return self._execute(
            import_id,
            phases,
            total_rows=len(records),
            initial=_RunState(errors=validation_errors),
            start_time=start_time,
            user_id=user_id,
            file_name=file_name,
            file_size=file_size,
            audit_label=entity_type.value,
        )

    def run_combined(
        self,
        sheets: Dict[EntityType, List[RawRecord]],
        user_id: Optional[str] = None,
        file_name: Optional[str] = None,
        file_size: int = 0,
    ) -> ImportResult:
        """
        Import a combined workbook, one entity type after the other in
        dependency order. Invalid rows are reported and skipped; the rest of
        the upload proceeds. Phases already committed are never rolled back.
        """
        start_time = time.time()
        total_rows = sum(len(sheets.get(entity_type) or []) for entity_type in DEPENDENCY_ORDER)
        job = self.registry.create(total_rows)
        import_id = job.import_id
        logger.info("Starting combined import %s (%d rows)", import_id, total_rows)

        initial = _RunState()
        phases: List[Phase] = []
        for entity_type in DEPENDENCY_ORDER:
            records = sheets.get(entity_type) or []
            rows: List[TypedRow] = []
            for record in records:
                issues = validate_record(record, entity_type)
                initial.errors.extend(issue.to_classified() for issue in issues)
                if has_errors(issues):
                    initial.processed_rows += 1
                    continue
                rows.append(to_typed_row(record, entity_type))
            if rows:
                phases.append((entity_type, rows))

        if initial.processed_rows:
            logger.warning(
                "Combined import %s: %d invalid row(s) skipped",
                import_id,
                initial.processed_rows,
            )

        return self._execute(
            import_id,
            phases,
            total_rows=total_rows,
            initial=initial,
            start_time=start_time,
            user_id=user_id,
            file_name=file_name,
            file_size=file_size,
            audit_label="all",
        )

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------
    def _execute(
        self,
        import_id: str,
        phases: List[Phase],
        *,
        total_rows: int,
        initial: _RunState,
        start_time: float,
        user_id: Optional[str],
        file_name: Optional[str],
        file_size: int,
        audit_label: str,
    ) -> ImportResult:
        state = initial
        cancel = threading.Event()
        timeout_seconds = self.settings.import_timeout_ms / 1000

        self._update_progress(
            import_id,
            status=ImportStatus.PROCESSING,
            processed_rows=state.processed_rows,
            failed_rows=state.processed_rows,
            errors=list(state.errors),
        )

        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="import-run")
        future = executor.submit(self._process_phases, import_id, phases, user_id, state, cancel)
        try:
            future.result(timeout=timeout_seconds)
            status = ImportStatus.COMPLETED
        except FuturesTimeoutError:
            cancel.set()
            future.cancel()
            future.add_done_callback(_log_late_failure(import_id))
            status = ImportStatus.TIMEOUT
            logger.error(
                "Import %s timed out after %d ms; remaining batches will not be started",
                import_id,
                self.settings.import_timeout_ms,
            )
        except Exception:
            cancel.set()
            logger.exception("Import %s failed unexpectedly", import_id)
            self._update_progress(import_id, status=ImportStatus.FAILED)
            self._schedule_cleanup(import_id)
            raise
        finally:
            # A timed-out worker finishes its current batch in the background;
            # its late progress updates are ignored once the job is terminal.
            executor.shutdown(wait=False)

        final = state.snapshot()
        errors = list(final.errors)
        if status == ImportStatus.TIMEOUT:
            errors.append(timeout_error(self.settings.import_timeout_ms))

        self._update_progress(
            import_id,
            status=status,
            processed_rows=final.processed_rows,
            successful_rows=final.successful_rows,
            failed_rows=final.processed_rows - final.successful_rows,
            errors=errors,
        )
        self._schedule_cleanup(import_id)

        result = build_import_result(
            import_id=import_id,
            status=status,
            total_rows=total_rows,
            successful_rows=final.successful_rows,
            errors=errors,
            processing_time_ms=self._elapsed_ms(start_time),
            transaction_count=final.batches,
            audit_info=self._audit_info(user_id, file_name, file_size),
        )
        logger.info("Import %s: %s", import_id, result.summary)
        if errors:
            logger.info("Import %s error breakdown: %s", import_id, summarize_errors(errors)["by_type"])
        self._record_audit(result, audit_label, user_id)
        return result

    def _process_phases(
        self,
        import_id: str,
        phases: List[Phase],
        user_id: Optional[str],
        state: _RunState,
        cancel: threading.Event,
    ) -> None:
        batch_size = self.settings.import_batch_size
        for entity_type, rows in phases:
            context = ProcessorContext(
                import_id=import_id,
                entity_type=entity_type,
                store=self.store,
                caches=self.caches,
                user_id=user_id or self.settings.import_system_user,
            )
            creation_fn = CREATORS[entity_type]
            logger.info("Import %s: processing %d %s rows", import_id, len(rows), entity_type.value)

            for batch in iter_batches(rows, batch_size):
                if cancel.is_set():
                    logger.info("Import %s cancelled before next %s batch", import_id, entity_type.value)
                    return
                result = self.processor.process_batch(batch, creation_fn, context)
                state.apply(result)
                progress = state.snapshot()
                self._update_progress(
                    import_id,
                    processed_rows=progress.processed_rows,
                    successful_rows=progress.successful_rows,
                    failed_rows=progress.processed_rows - progress.successful_rows,
                    errors=progress.errors,
                )

    # ------------------------------------------------------------------
    # Side channels
    # ------------------------------------------------------------------
    def _update_progress(self, import_id: str, **changes: Any) -> None:
        """Best-effort job progress updates; never fails the import if the job is gone."""
        try:
            self.registry.update(import_id, **changes)
        except ImportJobNotFoundError:
            logger.debug("Import job %s no longer tracked; progress update dropped", import_id)

    def _schedule_cleanup(self, import_id: str) -> None:
        try:
            self.registry.schedule_cleanup(import_id, self.settings.import_cleanup_delay_seconds)
        except Exception as exc:  # pragma: no cover - timer creation failure
            logger.warning("Unable to schedule cleanup for import %s: %s", import_id, exc)

    def _audit_info(
        self,
        user_id: Optional[str],
        file_name: Optional[str],
        file_size: int,
    ) -> Optional[AuditInfo]:
        if not user_id:
            return None
        return AuditInfo(
            user_id=user_id,
            timestamp=datetime.now(timezone.utc),
            file_name=file_name or "",
            file_size=file_size,
        )

    def _record_audit(self, result: ImportResult, entity_label: str, user_id: Optional[str]) -> None:
        if not user_id:
            return
        try:
            self.audit.record(
                action="IMPORT",
                entity_type=entity_label,
                entity_id=result.import_id or "",
                summary=result.summary,
                user_id=user_id,
            )
        except Exception as exc:
            logger.warning("Audit record for import %s failed: %s", result.import_id, exc)

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int((time.time() - start_time) * 1000)
