"""
Per-entity-type row creation functions.

Each function resolves its natural key and references through the entity
cache before touching the store, creates the record and primes the cache
with it so later rows (and later sheets of a combined upload) can refer to it.
Expected failures are returned as ``RowFailure`` values; store exceptions
propagate to the batch processor for classification.
"""
import logging
import re
import uuid
from typing import Callable, Dict, Optional

from property_import.api.schemas.shared import EntityType
from property_import.domain.imports.batch_processor import ProcessorContext
from property_import.domain.imports.errors import (
    DUPLICATE_KEY,
    REFERENCE_NOT_FOUND,
    Created,
    RowFailure,
    RowOutcome,
)
from property_import.domain.imports.rows import BuildingRow, LotRow, OwnerRow, TenantRow

logger = logging.getLogger(__name__)

# Template example rows carry this marker and must never be imported
EXAMPLE_MARKER = re.compile(r"\(ex[ea]mple\)", re.IGNORECASE)


def is_example_value(value: Optional[str]) -> bool:
    return bool(value) and bool(EXAMPLE_MARKER.search(value))


def generate_building_reference() -> str:
    return f"BLD-{uuid.uuid4().hex[:8].upper()}"


def _invalid_key(label: str, field: str, value: Optional[str]) -> RowFailure:
    return RowFailure(message=f"Invalid or example {label}", field=field, value=value)


def create_owner(row: OwnerRow, context: ProcessorContext) -> RowOutcome:
    if not row.name or is_example_value(row.name):
        return _invalid_key("owner name", "name", row.name)

    owners = context.caches.for_type(EntityType.OWNERS)
    if owners.resolve(row.name) is not None:
        return RowFailure(
            message=f"Owner already exists: {row.name}",
            code=DUPLICATE_KEY,
            field="name",
            value=row.name,
        )

    owner = context.store.create(
        EntityType.OWNERS,
        {
            "name": row.name,
            "phone": row.phone,
            "email": row.email,
            "address": row.address,
            "created_by": context.user_id,
        },
    )
    owners.store(row.name, owner)
    return Created(owner)


def create_building(row: BuildingRow, context: ProcessorContext) -> RowOutcome:
    if not row.name or is_example_value(row.name):
        return _invalid_key("building name", "name", row.name)

    buildings = context.caches.for_type(EntityType.BUILDINGS)
    if buildings.resolve(row.name) is not None:
        return RowFailure(
            message=f"Building already exists: {row.name}",
            code=DUPLICATE_KEY,
            field="name",
            value=row.name,
        )

    owner_id = None
    if row.owner_name:
        owner = context.caches.for_type(EntityType.OWNERS).resolve(row.owner_name)
        if owner is None:
            return RowFailure(
                message=f"Owner not found: {row.owner_name}",
                code=REFERENCE_NOT_FOUND,
                field="owner_name",
                value=row.owner_name,
            )
        owner_id = owner["id"]

    building = context.store.create(
        EntityType.BUILDINGS,
        {
            "name": row.name,
            "address": row.address,
            "owner_id": owner_id,
            "commission_rate": row.commission_rate,
            "notes": row.notes,
            "reference": generate_building_reference(),
            "created_by": context.user_id,
        },
    )
    buildings.store(row.name, building)
    return Created(building)


def create_tenant(row: TenantRow, context: ProcessorContext) -> RowOutcome:
    if not row.name or is_example_value(row.name):
        return _invalid_key("tenant name", "name", row.name)

    tenants = context.caches.for_type(EntityType.TENANTS)
    if tenants.resolve(row.name) is not None:
        return RowFailure(
            message=f"Tenant already exists: {row.name}",
            code=DUPLICATE_KEY,
            field="name",
            value=row.name,
        )

    tenant = context.store.create(
        EntityType.TENANTS,
        {
            "name": row.name,
            "first_name": row.first_name,
            "phone": row.phone,
            "email": row.email,
            "birth_date": row.birth_date,
            "created_by": context.user_id,
        },
    )
    tenants.store(row.name, tenant)
    return Created(tenant)


def create_lot(row: LotRow, context: ProcessorContext) -> RowOutcome:
    if not row.number or is_example_value(row.number):
        return _invalid_key("lot number", "number", row.number)

    building = context.caches.for_type(EntityType.BUILDINGS).resolve(row.building_name)
    if building is None:
        return RowFailure(
            message=f"Building not found: {row.building_name}",
            code=REFERENCE_NOT_FOUND,
            field="building_name",
            value=row.building_name,
        )

    lots = context.caches.for_type(EntityType.LOTS)
    lot_key = (building["id"], row.number)
    if lots.resolve(lot_key) is not None:
        return RowFailure(
            message=f"Lot already exists: {row.number} in {row.building_name}",
            code=DUPLICATE_KEY,
            field="number",
            value=row.number,
        )

    tenant_id = None
    if row.tenant_name:
        tenant = context.caches.for_type(EntityType.TENANTS).resolve(row.tenant_name)
        if tenant is None:
            return RowFailure(
                message=f"Tenant not found: {row.tenant_name}",
                code=REFERENCE_NOT_FOUND,
                field="tenant_name",
                value=row.tenant_name,
            )
        tenant_id = tenant["id"]

    lot = context.store.create(
        EntityType.LOTS,
        {
            "number": row.number,
            "building_id": building["id"],
            "type": row.type,
            "floor": row.floor,
            "monthly_rent": row.monthly_rent,
            "tenant_id": tenant_id,
            "status": row.status,
            "created_by": context.user_id,
        },
    )
    lots.store(lot_key, lot)
    return Created(lot)


CREATORS: Dict[EntityType, Callable[..., RowOutcome]] = {
    EntityType.OWNERS: create_owner,
    EntityType.BUILDINGS: create_building,
    EntityType.TENANTS: create_tenant,
    EntityType.LOTS: create_lot,
}
