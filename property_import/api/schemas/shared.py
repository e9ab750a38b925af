from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class EntityType(str, Enum):
    """Importable entity sheets, in dependency order."""
    OWNERS = "owners"
    BUILDINGS = "buildings"
    TENANTS = "tenants"
    LOTS = "lots"


# Later types resolve references to earlier ones through the entity cache.
DEPENDENCY_ORDER = [
    EntityType.OWNERS,
    EntityType.BUILDINGS,
    EntityType.TENANTS,
    EntityType.LOTS,
]


class Severity(str, Enum):
    ERROR = "ERROR"
    WARNING = "WARNING"


class ErrorType(str, Enum):
    """Failure taxonomy shared by validation and creation errors"""
    VALIDATION = "VALIDATION"
    DUPLICATE = "DUPLICATE"
    CONSTRAINT = "CONSTRAINT"
    REFERENCE = "REFERENCE"
    SYSTEM = "SYSTEM"
    TIMEOUT = "TIMEOUT"


class ImportStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    TIMEOUT = "TIMEOUT"


TERMINAL_STATUSES = {ImportStatus.COMPLETED, ImportStatus.FAILED, ImportStatus.TIMEOUT}


class ClassifiedError(BaseModel):
    """A validation or creation failure normalized into the shared taxonomy."""
    position: int
    field: str = "general"
    value: Optional[Any] = None
    message: str
    severity: Severity = Severity.ERROR
    error_type: ErrorType = ErrorType.SYSTEM
    code: str = "UNKNOWN"


class ErrorStatistics(BaseModel):
    critical_errors: int = 0
    warnings: int = 0
    duplicates: int = 0
    validation_errors: int = 0


class PerformanceMetrics(BaseModel):
    avg_ms_per_row: float = 0.0
    transaction_count: int = 0


class AuditInfo(BaseModel):
    user_id: str
    timestamp: datetime
    file_name: str
    file_size: int


class ImportProgress(BaseModel):
    """Live lifecycle record for one import job."""
    import_id: str
    total_rows: int
    processed_rows: int = 0
    successful_rows: int = 0
    failed_rows: int = 0
    progress_percentage: int = 0
    status: ImportStatus = ImportStatus.PENDING
    errors: List[ClassifiedError] = Field(default_factory=list)
    started_at: datetime
    last_updated_at: datetime
    estimated_remaining_ms: Optional[int] = None


class ImportResult(BaseModel):
    """Final outcome of an import job."""
    success: bool
    total_rows: int
    successful_rows: int
    failed_rows: int
    errors: List[ClassifiedError] = Field(default_factory=list)
    summary: str
    processing_time_ms: int
    import_id: Optional[str] = None
    status: Optional[ImportStatus] = None
    error_statistics: ErrorStatistics = Field(default_factory=ErrorStatistics)
    performance_metrics: PerformanceMetrics = Field(default_factory=PerformanceMetrics)
    audit_info: Optional[AuditInfo] = None


class ValidationReport(BaseModel):
    """Outcome of a validate-only pass over an upload."""
    is_valid: bool
    total_rows: int
    valid_rows: int
    invalid_rows: int
    errors: List[ClassifiedError] = Field(default_factory=list)


class ImportJobResponse(BaseModel):
    """Response wrapper for a single import job."""
    success: bool
    job: ImportProgress


class ImportJobListResponse(BaseModel):
    """Response wrapper for the jobs still held in the registry."""
    success: bool
    jobs: List[ImportProgress]
    total_count: int


class TemplateSkeleton(BaseModel):
    entity_type: EntityType
    columns: List[str]
    examples: List[List[str]]


class CacheStatsResponse(BaseModel):
    success: bool
    caches: Dict[str, Dict[str, Any]]
