"""
Relational model for imported property data.

Natural keys carry unique constraints so the store remains the final
authority on duplicates when the entity cache misses (for instance two
rows with the same name racing in a parallel batch).
"""
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from property_import.db.session import Base


def _utcnow() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class Owner(Base):
    __tablename__ = "owners"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    address = Column(String(500), nullable=True)
    created_by = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=_utcnow)


class Building(Base):
    __tablename__ = "buildings"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False, index=True)
    address = Column(String(500), nullable=False)
    owner_id = Column(Integer, ForeignKey("owners.id"), nullable=True)
    commission_rate = Column(Float, nullable=False, default=5.0)
    notes = Column(Text, nullable=True)
    reference = Column(String(50), unique=True, nullable=False)
    created_by = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=_utcnow)


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    birth_date = Column(String(10), nullable=True)
    created_by = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=_utcnow)


class Lot(Base):
    __tablename__ = "lots"
    __table_args__ = (UniqueConstraint("building_id", "number", name="uq_lots_building_number"),)

    id = Column(Integer, primary_key=True, index=True)
    number = Column(String(50), nullable=False)
    building_id = Column(Integer, ForeignKey("buildings.id"), nullable=False)
    type = Column(String(20), nullable=False, default="OTHER")
    floor = Column(Integer, nullable=True)
    monthly_rent = Column(Float, nullable=False, default=0.0)
    tenant_id = Column(Integer, ForeignKey("tenants.id"), nullable=True)
    status = Column(String(20), nullable=False, default="VACANT")
    created_by = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=_utcnow)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    action = Column(String(50), nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(255), nullable=False)
    summary = Column(Text, nullable=True)
    user_id = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=_utcnow)


def create_tables(engine) -> None:
    """Create the property tables if they do not exist."""
    Base.metadata.create_all(bind=engine)
