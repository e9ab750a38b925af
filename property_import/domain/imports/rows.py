"""
Typed row variants produced from validated raw records.

Downstream components (creation functions, batch processor) work on these
instead of free-form header dictionaries. Unknown enumeration values fall
back to documented defaults; validation has already warned about them.
"""
from dataclasses import dataclass
from typing import Optional, Union

from property_import.api.schemas.shared import EntityType
from property_import.domain.imports.errors import UnsupportedEntityTypeError
from property_import.domain.imports.processors.excel_processor import RawRecord
from property_import.domain.imports.validators import (
    LOT_STATUS_ALIASES,
    LOT_STATUSES,
    LOT_TYPE_ALIASES,
    LOT_TYPES,
    MAX_FLOOR,
    MIN_FLOOR,
    normalize_choice,
    parse_decimal,
    parse_int,
    parse_percentage,
)

DEFAULT_COMMISSION_RATE = 5.0
DEFAULT_LOT_TYPE = "OTHER"
DEFAULT_LOT_STATUS = "VACANT"
DEFAULT_MONTHLY_RENT = 0.0


@dataclass(frozen=True)
class OwnerRow:
    position: int
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None


@dataclass(frozen=True)
class BuildingRow:
    position: int
    name: str
    address: str
    owner_name: Optional[str] = None
    commission_rate: float = DEFAULT_COMMISSION_RATE
    notes: Optional[str] = None


@dataclass(frozen=True)
class TenantRow:
    position: int
    name: str
    first_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    birth_date: Optional[str] = None


@dataclass(frozen=True)
class LotRow:
    position: int
    number: str
    building_name: str
    type: str = DEFAULT_LOT_TYPE
    floor: Optional[int] = None
    monthly_rent: float = DEFAULT_MONTHLY_RENT
    tenant_name: Optional[str] = None
    status: str = DEFAULT_LOT_STATUS


TypedRow = Union[OwnerRow, BuildingRow, TenantRow, LotRow]


def _text(record: RawRecord, key: str) -> Optional[str]:
    value = record.values.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _commission(value: Optional[str]) -> float:
    rate = parse_percentage(value)
    if rate is None or rate < 0 or rate > 100:
        return DEFAULT_COMMISSION_RATE
    return rate


def _rent(value: Optional[str]) -> float:
    amount = parse_decimal(value)
    if amount is None or amount < 0:
        return DEFAULT_MONTHLY_RENT
    return amount


def _floor(value: Optional[str]) -> Optional[int]:
    level = parse_int(value)
    if level is None or level < MIN_FLOOR or level > MAX_FLOOR:
        return None
    return level


def to_typed_row(record: RawRecord, entity_type: Union[EntityType, str]) -> TypedRow:
    """Map a validated raw record onto the typed row of its entity type."""
    try:
        entity_type = EntityType(entity_type)
    except ValueError:
        raise UnsupportedEntityTypeError(entity_type)

    position = record.source_position
    if entity_type == EntityType.OWNERS:
        return OwnerRow(
            position=position,
            name=_text(record, "name") or "",
            phone=_text(record, "phone"),
            email=_text(record, "email"),
            address=_text(record, "address"),
        )
    if entity_type == EntityType.BUILDINGS:
        name = _text(record, "name") or ""
        return BuildingRow(
            position=position,
            name=name,
            address=_text(record, "address") or name,
            owner_name=_text(record, "owner_name"),
            commission_rate=_commission(_text(record, "commission_rate")),
            notes=_text(record, "notes"),
        )
    if entity_type == EntityType.TENANTS:
        return TenantRow(
            position=position,
            name=_text(record, "name") or "",
            first_name=_text(record, "first_name"),
            phone=_text(record, "phone"),
            email=_text(record, "email"),
            birth_date=_text(record, "birth_date"),
        )
    return LotRow(
        position=position,
        number=_text(record, "number") or "",
        building_name=_text(record, "building_name") or "",
        type=normalize_choice(_text(record, "type"), LOT_TYPES, LOT_TYPE_ALIASES) or DEFAULT_LOT_TYPE,
        floor=_floor(_text(record, "floor")),
        monthly_rent=_rent(_text(record, "monthly_rent")),
        tenant_name=_text(record, "tenant_name"),
        status=normalize_choice(_text(record, "status"), LOT_STATUSES, LOT_STATUS_ALIASES) or DEFAULT_LOT_STATUS,
    )
