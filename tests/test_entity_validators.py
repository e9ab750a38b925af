"""
Tests for per-entity row validation and typed row mapping.
"""

import pytest

from property_import.api.schemas.shared import EntityType, ErrorType, Severity
from property_import.domain.imports.errors import UnsupportedEntityTypeError
from property_import.domain.imports.processors.excel_processor import RawRecord
from property_import.domain.imports.rows import BuildingRow, LotRow, OwnerRow, to_typed_row
from property_import.domain.imports.validators import (
    has_errors,
    validate_record,
    validate_records,
)
from tests.utils.fakes import make_records


def record(position=2, **values):
    return RawRecord(values=values, source_position=position)


def messages(issues):
    return [issue.message for issue in issues]


class TestOwnerValidation:
    def test_valid_owner(self):
        issues = validate_record(record(name="Alice Martin", email="alice@example.com"), EntityType.OWNERS)
        assert issues == []

    def test_missing_name_is_error(self):
        issues = validate_record(record(name=None, phone="0612345678"), EntityType.OWNERS)
        assert messages(issues) == ["Owner name is required"]
        assert issues[0].severity == Severity.ERROR
        assert issues[0].position == 2

    def test_short_name_is_error(self):
        issues = validate_record(record(name="A"), EntityType.OWNERS)
        assert messages(issues) == ["Owner name must contain at least 2 characters"]
        assert has_errors(issues)

    def test_bad_contact_details_are_warnings(self):
        issues = validate_record(record(name="Alice", email="not-an-email", phone="12"), EntityType.OWNERS)
        assert {issue.field for issue in issues} == {"email", "phone"}
        assert all(issue.severity == Severity.WARNING for issue in issues)
        assert not has_errors(issues)


class TestBuildingValidation:
    def test_required_fields(self):
        issues = validate_record(record(name="Les Pins"), EntityType.BUILDINGS)
        assert set(messages(issues)) == {"Building address is required", "Owner name is required"}

    def test_out_of_range_commission_is_warning(self):
        issues = validate_record(
            record(name="Les Pins", address="1 rue A", owner_name="Alice", commission_rate="150"),
            EntityType.BUILDINGS,
        )
        assert len(issues) == 1
        assert issues[0].field == "commission_rate"
        assert issues[0].severity == Severity.WARNING


class TestTenantValidation:
    def test_birth_date_checks(self):
        bad_format = validate_record(record(name="Durand", birth_date="12/04/1985"), EntityType.TENANTS)
        impossible = validate_record(record(name="Durand", birth_date="1985-02-30"), EntityType.TENANTS)
        valid = validate_record(record(name="Durand", birth_date="1985-04-12"), EntityType.TENANTS)

        assert messages(bad_format) == ["Invalid date format (expected YYYY-MM-DD)"]
        assert messages(impossible) == ["Invalid date"]
        assert valid == []


class TestLotValidation:
    def test_required_fields(self):
        issues = validate_record(record(type="F2"), EntityType.LOTS)
        assert set(messages(issues)) == {"Lot number is required", "Building name is required"}

    def test_enumeration_and_range_warnings(self):
        issues = validate_record(
            record(number="A1", building_name="Les Pins", type="castle", status="rented",
                   floor="99", monthly_rent="-10"),
            EntityType.LOTS,
        )
        assert {issue.field for issue in issues} == {"type", "status", "floor", "monthly_rent"}
        assert not has_errors(issues)

    def test_french_aliases_accepted(self):
        issues = validate_record(
            record(number="A1", building_name="Les Pins", type="magasin", status="libre"),
            EntityType.LOTS,
        )
        assert issues == []


def test_unknown_entity_type_is_reported_as_error():
    issues = validate_record(record(name="x"), "castles")
    assert len(issues) == 1
    assert issues[0].field == "entity_type"
    assert issues[0].severity == Severity.ERROR


def test_validate_records_report():
    records = make_records([
        {"name": "Alice"},
        {"name": ""},
        {"name": "Bob", "email": "bob-at-example"},
    ])
    report = validate_records(records, EntityType.OWNERS)

    assert report.is_valid is False
    assert report.total_rows == 3
    assert report.valid_rows == 2
    assert report.invalid_rows == 1
    assert [error.position for error in report.errors] == [3, 4]
    assert all(error.error_type == ErrorType.VALIDATION for error in report.errors)


class TestTypedRows:
    def test_owner_row(self):
        row = to_typed_row(record(position=5, name=" Alice ", phone="0612345678"), EntityType.OWNERS)
        assert row == OwnerRow(position=5, name="Alice", phone="0612345678")

    def test_building_row_defaults_commission(self):
        row = to_typed_row(
            record(name="Les Pins", address="1 rue A", owner_name="Alice", commission_rate="abc"),
            EntityType.BUILDINGS,
        )
        assert isinstance(row, BuildingRow)
        assert row.commission_rate == 5.0

    def test_lot_row_normalizes_values(self):
        row = to_typed_row(
            record(number="A1", building_name="Les Pins", type="magasin", status="occupe",
                   floor="3", monthly_rent="1 200,50", tenant_name="Durand"),
            EntityType.LOTS,
        )
        assert row == LotRow(
            position=2,
            number="A1",
            building_name="Les Pins",
            type="SHOP",
            floor=3,
            monthly_rent=1200.5,
            tenant_name="Durand",
            status="OCCUPIED",
        )

    def test_lot_row_falls_back_to_defaults(self):
        row = to_typed_row(
            record(number="A1", building_name="Les Pins", type="castle", floor="99", monthly_rent="free"),
            EntityType.LOTS,
        )
        assert row.type == "OTHER"
        assert row.status == "VACANT"
        assert row.floor is None
        assert row.monthly_rent == 0.0

    def test_unknown_entity_type(self):
        with pytest.raises(UnsupportedEntityTypeError):
            to_typed_row(record(name="x"), "castles")
