"""
Error taxonomy and classification for the import pipeline.

Creation functions report expected per-row failures as ``RowFailure`` values
and let unexpected faults raise. Both end up in ``classify_error``, which
normalizes them into a ``ClassifiedError`` with a derived severity so the
batch processor and the final result can report them uniformly.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from sqlalchemy.exc import DBAPIError

from property_import.api.schemas.shared import (
    ClassifiedError,
    ErrorType,
    Severity,
)

logger = logging.getLogger(__name__)

# Application-level codes used by the creation functions
DUPLICATE_KEY = "DUPLICATE_KEY"
REFERENCE_NOT_FOUND = "REFERENCE_NOT_FOUND"
RECORD_NOT_FOUND = "RECORD_NOT_FOUND"

# Storage-layer codes: Postgres SQLSTATE, SQLite extended error names, application codes
UNIQUE_VIOLATION_CODES = {
    "23505",
    "SQLITE_CONSTRAINT_UNIQUE",
    "SQLITE_CONSTRAINT_PRIMARYKEY",
    DUPLICATE_KEY,
}
REFERENCE_VIOLATION_CODES = {
    "23503",
    "SQLITE_CONSTRAINT_FOREIGNKEY",
    REFERENCE_NOT_FOUND,
    RECORD_NOT_FOUND,
}

VALIDATION_MARKERS = ("validation", "required", "format", "invalid")
TIMEOUT_MARKERS = ("timeout", "timed out")
DUPLICATE_MARKERS = ("already exists", "duplicate", "unique constraint")

DEFAULT_MESSAGES = {
    ErrorType.DUPLICATE: "Record already exists",
    ErrorType.VALIDATION: "Data validation error",
    ErrorType.CONSTRAINT: "Database constraint violation",
    ErrorType.REFERENCE: "Reference to a nonexistent record",
    ErrorType.TIMEOUT: "Timeout while processing",
    ErrorType.SYSTEM: "Unknown system error",
}


class MalformedInputError(ValueError):
    """Raised when an upload has no sheet, no header or no data rows."""


class UploadTooLargeError(MalformedInputError):
    """Raised when an upload exceeds the configured maximum file size."""

    def __init__(self, size: int, max_size: int):
        self.size = size
        self.max_size = max_size
        super().__init__(
            f"File is too large ({size} bytes); the maximum accepted size is {max_size} bytes."
        )


class UnsupportedEntityTypeError(ValueError):
    """Raised when an entity type name is not one of the importable sheets."""

    def __init__(self, entity_type: Any):
        self.entity_type = entity_type
        super().__init__(f"Unsupported entity type: {entity_type}")


class ImportJobNotFoundError(KeyError):
    """Raised when a progress update targets an unknown or cleaned-up import."""

    def __init__(self, import_id: str):
        self.import_id = import_id
        super().__init__(f"Import {import_id} not found")


class StoreError(Exception):
    """
    Backing-store failure carrying an optional storage code.

    Part of the store contract: stores that are not SQLAlchemy-backed raise
    it so ``classify_error`` can read ``code`` and ``target`` the same way it
    reads driver codes from a ``DBAPIError``.
    """

    def __init__(self, message: str, code: Optional[str] = None, target: Optional[Sequence[str]] = None):
        self.code = code
        self.target = list(target) if target else None
        super().__init__(message)


@dataclass(frozen=True)
class Created:
    """Successful outcome of a per-row creation function."""
    entity: Dict[str, Any]


@dataclass(frozen=True)
class RowFailure:
    """Expected failure of a per-row creation function."""
    message: str
    code: Optional[str] = None
    field: Optional[str] = None
    value: Any = None
    target: Optional[Sequence[str]] = None

    def __str__(self) -> str:
        return self.message


RowOutcome = Union[Created, RowFailure]


def _storage_code(error: Any) -> Optional[str]:
    """Extract a storage-layer constraint code, if the failure carries one."""
    if isinstance(error, (RowFailure, StoreError)):
        return error.code
    if isinstance(error, DBAPIError):
        origin = getattr(error, "orig", None)
        for attr in ("pgcode", "sqlstate", "sqlite_errorname"):
            code = getattr(origin, attr, None)
            if code:
                return str(code)
    return None


def _error_message(error: Any) -> str:
    try:
        if isinstance(error, DBAPIError) and error.orig is not None:
            text = str(error.orig)
        else:
            text = str(error)
    except Exception:  # pragma: no cover - broken __str__
        return type(error).__name__
    return text.strip().splitlines()[0] if text.strip() else ""


def _duplicate_target(error: Any) -> Optional[List[str]]:
    target = getattr(error, "target", None)
    if target:
        return [str(item) for item in target]
    return None


def determine_error_type(error: Any) -> ErrorType:
    code = _storage_code(error)
    if code:
        if code in UNIQUE_VIOLATION_CODES:
            return ErrorType.DUPLICATE
        if code in REFERENCE_VIOLATION_CODES:
            return ErrorType.REFERENCE
        return ErrorType.CONSTRAINT

    message = _error_message(error).lower()
    if any(marker in message for marker in VALIDATION_MARKERS):
        return ErrorType.VALIDATION
    if any(marker in message for marker in TIMEOUT_MARKERS):
        return ErrorType.TIMEOUT
    if any(marker in message for marker in DUPLICATE_MARKERS):
        return ErrorType.DUPLICATE
    return ErrorType.SYSTEM


def severity_for(error_type: ErrorType) -> Severity:
    """Duplicates are skipped with a warning; everything else is an error."""
    if error_type == ErrorType.DUPLICATE:
        return Severity.WARNING
    return Severity.ERROR


def format_error_message(error: Any, error_type: ErrorType) -> str:
    message = _error_message(error)
    if error_type == ErrorType.DUPLICATE:
        target = _duplicate_target(error)
        if target:
            return f"Duplicate detected on: {', '.join(target)}"
    if error_type == ErrorType.CONSTRAINT and isinstance(error, DBAPIError):
        # Raw driver text leaks SQL; keep the user-facing message generic.
        return DEFAULT_MESSAGES[ErrorType.CONSTRAINT]
    return message or DEFAULT_MESSAGES[error_type]


def classify_error(
    error: Any,
    position: int,
    field: Optional[str] = None,
    value: Any = None,
) -> ClassifiedError:
    """
    Map a raised failure or ``RowFailure`` onto the error taxonomy.

    Decision order: storage constraint code, then known message substrings,
    then ``SYSTEM``. Never raises.
    """
    try:
        error_type = determine_error_type(error)
        message = format_error_message(error, error_type)
        code = _storage_code(error) or "UNKNOWN"
    except Exception as exc:  # pragma: no cover - keeps the classifier total
        logger.warning("Unable to classify error at row %s: %s", position, exc)
        error_type = ErrorType.SYSTEM
        message = DEFAULT_MESSAGES[ErrorType.SYSTEM]
        code = "UNKNOWN"

    return ClassifiedError(
        position=position,
        field=field or "general",
        value=value,
        message=message,
        severity=severity_for(error_type),
        error_type=error_type,
        code=code,
    )


def timeout_error(timeout_ms: int) -> ClassifiedError:
    """Job-level error recorded when the global deadline elapses."""
    return ClassifiedError(
        position=0,
        field="general",
        value=None,
        message=f"Import timed out after {timeout_ms} ms; remaining rows were not processed",
        severity=Severity.ERROR,
        error_type=ErrorType.TIMEOUT,
        code="TIMEOUT",
    )


def summarize_errors(errors: Iterable[ClassifiedError]) -> Dict[str, Any]:
    """Aggregate errors by type, severity and field for reporting."""
    errors = list(errors)
    by_type = {error_type.value: 0 for error_type in ErrorType}
    by_severity = {severity.value: 0 for severity in Severity}
    by_field: Counter = Counter()
    for error in errors:
        by_type[error.error_type.value] += 1
        by_severity[error.severity.value] += 1
        by_field[error.field] += 1
    return {
        "total": len(errors),
        "by_type": by_type,
        "by_severity": by_severity,
        "by_field": dict(by_field),
    }
