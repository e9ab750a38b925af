"""
Per-entity validation rules for imported rows.

Validators are pure: they only look at the parsed record, never at the
store, so the whole upload can be checked before anything is created.
Format checks on contact fields are advisory (WARNING); missing identity
fields are always errors.
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from property_import.api.schemas.shared import (
    ClassifiedError,
    EntityType,
    ErrorType,
    Severity,
    ValidationReport,
)
from property_import.domain.imports.processors.excel_processor import RawRecord


# Preset regex patterns for the contact and date fields we check
PRESET_PATTERNS = {
    "email": r"^[^\s@]+@[^\s@]+\.[^\s@]+$",
    "phone": r"^[0-9+\-\s()]{8,15}$",  # Loose matching
    "date_iso": r"^\d{4}-\d{2}-\d{2}$",
}


# Human-readable descriptions for each preset
PRESET_DESCRIPTIONS = {
    "email": "Email address",
    "phone": "Phone number (8-15 digits, spaces, +, -, parentheses)",
    "date_iso": "ISO 8601 date (YYYY-MM-DD)",
}

LOT_TYPES = ["STUDIO", "F1", "F2", "F3", "F4", "F5", "SHOP", "OFFICE", "OTHER"]
LOT_TYPE_ALIASES = {"MAGASIN": "SHOP", "BUREAU": "OFFICE", "AUTRE": "OTHER"}
LOT_STATUSES = ["VACANT", "OCCUPIED"]
LOT_STATUS_ALIASES = {"LIBRE": "VACANT", "OCCUPE": "OCCUPIED", "OCCUPÉ": "OCCUPIED"}

MIN_FLOOR = -5
MAX_FLOOR = 50


@dataclass(frozen=True)
class ValidationIssue:
    position: int
    field: str
    value: Any
    message: str
    severity: Severity = Severity.ERROR

    def to_classified(self) -> ClassifiedError:
        return ClassifiedError(
            position=self.position,
            field=self.field,
            value=self.value,
            message=self.message,
            severity=self.severity,
            error_type=ErrorType.VALIDATION,
            code="VALIDATION",
        )


def get_preset_pattern(preset_name: str) -> Optional[str]:
    """
    Get the regex pattern for a preset validator.

    Args:
        preset_name: Name of the preset validator

    Returns:
        Regex pattern string or None if preset not found
    """
    return PRESET_PATTERNS.get(preset_name)


def get_preset_description(preset_name: str) -> Optional[str]:
    return PRESET_DESCRIPTIONS.get(preset_name)


def validate_with_preset(
    value: Optional[str],
    preset_name: str,
    allow_null: bool = True
) -> Tuple[bool, Optional[str]]:
    """
    Validate a value against a preset pattern.

    Args:
        value: Value to validate
        preset_name: Name of the preset validator
        allow_null: Whether to allow null/empty values

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if allow_null:
            return True, None
        return False, "Value is required"

    pattern = get_preset_pattern(preset_name)
    if pattern is None:
        return False, f"Unknown preset validator: {preset_name}"

    str_val = str(value).strip()
    if not re.match(pattern, str_val):
        description = get_preset_description(preset_name)
        return False, f"Value '{str_val}' does not match {description or preset_name} format"
    return True, None


def list_available_presets() -> dict:
    return PRESET_DESCRIPTIONS.copy()


def parse_decimal(value: Optional[str]) -> Optional[float]:
    """Lenient number parsing: '1 200,50 €' -> 1200.5. Returns None when unparseable."""
    if value is None:
        return None
    cleaned = re.sub(r"[^0-9.,\-]", "", str(value)).replace(",", ".")
    if cleaned.count(".") > 1:
        head, _, tail = cleaned.rpartition(".")
        cleaned = head.replace(".", "") + "." + tail
    try:
        return float(cleaned)
    except ValueError:
        return None


def parse_percentage(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(str(value).replace("%", "").replace(",", ".").strip())
    except ValueError:
        return None


def parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        number = parse_decimal(value)
        if number is not None and number.is_integer():
            return int(number)
        return None


def normalize_choice(value: Optional[str], allowed: Iterable[str], aliases: Dict[str, str]) -> Optional[str]:
    """Return the canonical enumeration value, or None when the value is not recognised."""
    if value is None:
        return None
    token = str(value).strip().upper()
    token = aliases.get(token, token)
    return token if token in allowed else None


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


class _IssueCollector:
    def __init__(self, record: RawRecord):
        self.record = record
        self.issues: List[ValidationIssue] = []

    def add(self, field: str, message: str, severity: Severity = Severity.ERROR) -> None:
        self.issues.append(
            ValidationIssue(
                position=self.record.source_position,
                field=field,
                value=self.record.values.get(field),
                message=message,
                severity=severity,
            )
        )

    def require(self, field: str, message: str) -> bool:
        if _is_blank(self.record.values.get(field)):
            self.add(field, message)
            return False
        return True

    def check_preset(self, field: str, preset: str, message: str) -> None:
        is_valid, _ = validate_with_preset(self.record.values.get(field), preset)
        if not is_valid:
            self.add(field, message, Severity.WARNING)


def validate_owner(record: RawRecord) -> List[ValidationIssue]:
    issues = _IssueCollector(record)
    if issues.require("name", "Owner name is required"):
        if len(record.values["name"].strip()) < 2:
            issues.add("name", "Owner name must contain at least 2 characters")
    issues.check_preset("email", "email", "Invalid email format")
    issues.check_preset("phone", "phone", "Invalid phone format")
    return issues.issues


def validate_building(record: RawRecord) -> List[ValidationIssue]:
    issues = _IssueCollector(record)
    issues.require("name", "Building name is required")
    issues.require("address", "Building address is required")
    issues.require("owner_name", "Owner name is required")

    commission = record.values.get("commission_rate")
    if not _is_blank(commission):
        rate = parse_percentage(commission)
        if rate is None or rate < 0 or rate > 100:
            issues.add("commission_rate", "Commission rate must be between 0 and 100%", Severity.WARNING)
    return issues.issues


def validate_tenant(record: RawRecord) -> List[ValidationIssue]:
    issues = _IssueCollector(record)
    issues.require("name", "Tenant name is required")
    issues.check_preset("email", "email", "Invalid email format")
    issues.check_preset("phone", "phone", "Invalid phone format")

    birth_date = record.values.get("birth_date")
    if not _is_blank(birth_date):
        is_valid, _ = validate_with_preset(birth_date, "date_iso")
        if not is_valid:
            issues.add("birth_date", "Invalid date format (expected YYYY-MM-DD)", Severity.WARNING)
        else:
            try:
                date.fromisoformat(birth_date.strip())
            except ValueError:
                issues.add("birth_date", "Invalid date", Severity.WARNING)
    return issues.issues


def validate_lot(record: RawRecord) -> List[ValidationIssue]:
    issues = _IssueCollector(record)
    issues.require("number", "Lot number is required")
    issues.require("building_name", "Building name is required")

    lot_type = record.values.get("type")
    if not _is_blank(lot_type) and normalize_choice(lot_type, LOT_TYPES, LOT_TYPE_ALIASES) is None:
        issues.add(
            "type",
            f"Invalid type; allowed types: {', '.join(LOT_TYPES)} (defaults to OTHER)",
            Severity.WARNING,
        )

    rent = record.values.get("monthly_rent")
    if not _is_blank(rent):
        amount = parse_decimal(rent)
        if amount is None or amount < 0:
            issues.add("monthly_rent", "Monthly rent must be a positive number", Severity.WARNING)

    status = record.values.get("status")
    if not _is_blank(status) and normalize_choice(status, LOT_STATUSES, LOT_STATUS_ALIASES) is None:
        issues.add(
            "status",
            f"Invalid status; allowed statuses: {', '.join(LOT_STATUSES)} (defaults to VACANT)",
            Severity.WARNING,
        )

    floor = record.values.get("floor")
    if not _is_blank(floor):
        level = parse_int(floor)
        if level is None or level < MIN_FLOOR or level > MAX_FLOOR:
            issues.add("floor", f"Floor must be a number between {MIN_FLOOR} and {MAX_FLOOR}", Severity.WARNING)
    return issues.issues


VALIDATORS: Dict[EntityType, Callable[[RawRecord], List[ValidationIssue]]] = {
    EntityType.OWNERS: validate_owner,
    EntityType.BUILDINGS: validate_building,
    EntityType.TENANTS: validate_tenant,
    EntityType.LOTS: validate_lot,
}


def validate_record(record: RawRecord, entity_type: Union[EntityType, str]) -> List[ValidationIssue]:
    """Validate one record against the rules of its entity type."""
    try:
        validator = VALIDATORS[EntityType(entity_type)]
    except (ValueError, KeyError):
        return [
            ValidationIssue(
                position=record.source_position,
                field="entity_type",
                value=str(getattr(entity_type, "value", entity_type)),
                message="Unsupported entity type",
                severity=Severity.ERROR,
            )
        ]
    return validator(record)


def has_errors(issues: Iterable[ValidationIssue]) -> bool:
    return any(issue.severity == Severity.ERROR for issue in issues)


def validate_records(records: List[RawRecord], entity_type: Union[EntityType, str]) -> ValidationReport:
    """Validate every record and summarize the outcome without creating anything."""
    errors: List[ClassifiedError] = []
    valid_rows = 0
    for record in records:
        issues = validate_record(record, entity_type)
        errors.extend(issue.to_classified() for issue in issues)
        if not has_errors(issues):
            valid_rows += 1

    return ValidationReport(
        is_valid=valid_rows == len(records),
        total_rows=len(records),
        valid_rows=valid_rows,
        invalid_rows=len(records) - valid_rows,
        errors=errors,
    )
