"""
Backing-store collaborator for the import pipeline.

Exposes one natural-key lookup and one create per entity type and returns
plain dictionaries so callers never hold on to ORM sessions across threads.
Store failures (IntegrityError etc.) propagate unchanged; the error
classifier reads their driver codes.
"""
import logging
from typing import Any, Dict, Hashable, Optional

from sqlalchemy import inspect, select
from sqlalchemy.orm import sessionmaker

from property_import.api.schemas.shared import EntityType
from property_import.db.models import Building, Lot, Owner, Tenant
from property_import.domain.imports.errors import UnsupportedEntityTypeError

logger = logging.getLogger(__name__)

MODELS = {
    EntityType.OWNERS: Owner,
    EntityType.BUILDINGS: Building,
    EntityType.TENANTS: Tenant,
    EntityType.LOTS: Lot,
}


def _to_entity(instance: Any) -> Dict[str, Any]:
    return {
        column.key: getattr(instance, column.key)
        for column in inspect(instance).mapper.column_attrs
    }


class SqlAlchemyEntityStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @staticmethod
    def _model_for(entity_type: EntityType):
        try:
            return MODELS[EntityType(entity_type)]
        except (ValueError, KeyError):
            raise UnsupportedEntityTypeError(entity_type)

    def find_by_natural_key(self, entity_type: EntityType, key: Hashable) -> Optional[Dict[str, Any]]:
        """
        Look up an entity by its natural key.

        Owners, buildings and tenants are keyed by name; lots by a
        ``(building_id, number)`` tuple.
        """
        model = self._model_for(entity_type)
        if model is Lot:
            building_id, number = key
            statement = select(Lot).where(Lot.building_id == building_id, Lot.number == number)
        else:
            statement = select(model).where(model.name == key)

        with self._session_factory() as session:
            instance = session.execute(statement.limit(1)).scalars().first()
            return _to_entity(instance) if instance is not None else None

    def create(self, entity_type: EntityType, fields: Dict[str, Any]) -> Dict[str, Any]:
        model = self._model_for(entity_type)
        with self._session_factory() as session:
            instance = model(**fields)
            session.add(instance)
            try:
                session.commit()
            except Exception:
                session.rollback()
                raise
            session.refresh(instance)
            entity = _to_entity(instance)
        logger.debug("Created %s #%s", EntityType(entity_type).value, entity.get("id"))
        return entity

    def count(self, entity_type: EntityType) -> int:
        model = self._model_for(entity_type)
        with self._session_factory() as session:
            return session.query(model).count()
