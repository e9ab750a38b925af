"""
Tests for the downloadable import templates.
"""

import io

import pandas as pd
import pytest

from property_import.api.schemas.shared import EntityType, ErrorType
from property_import.domain.imports.creators import is_example_value
from property_import.domain.imports.errors import UnsupportedEntityTypeError
from property_import.domain.imports.processors.excel_processor import parse_records, parse_workbook
from property_import.domain.imports.templates import (
    TEMPLATE_COLUMNS,
    build_multi_sheet_template,
    build_template,
    template_file_name,
    template_skeleton,
)
from property_import.domain.imports.validators import has_errors, validate_record


@pytest.mark.parametrize("entity_type", list(EntityType))
def test_skeleton_has_two_marked_examples(entity_type):
    skeleton = template_skeleton(entity_type)

    assert skeleton.entity_type == entity_type
    assert skeleton.columns == TEMPLATE_COLUMNS[entity_type]
    assert len(skeleton.examples) == 2
    for example in skeleton.examples:
        assert len(example) == len(skeleton.columns)
        assert is_example_value(example[0])


def test_skeleton_is_a_fresh_copy():
    skeleton = template_skeleton("owners")
    skeleton.columns.append("extra")
    assert "extra" not in template_skeleton("owners").columns


def test_unknown_template():
    with pytest.raises(UnsupportedEntityTypeError):
        template_skeleton("castles")


@pytest.mark.parametrize("entity_type", list(EntityType))
def test_template_round_trips_through_parser_and_validators(entity_type):
    records = parse_records(build_template(entity_type), "template.xlsx")

    assert len(records) == 2
    assert set(records[0].values) == set(TEMPLATE_COLUMNS[entity_type])
    for record in records:
        assert not has_errors(validate_record(record, entity_type))


def test_multi_sheet_template_routes_every_sheet():
    content = build_multi_sheet_template()

    sheet_names = list(pd.read_excel(io.BytesIO(content), sheet_name=None, engine="openpyxl"))
    assert sheet_names == ["Owners", "Buildings", "Tenants", "Lots"]

    sheets = parse_workbook(content)
    assert all(len(sheets[entity_type]) == 2 for entity_type in EntityType)


def test_unedited_template_creates_nothing(fake_store, make_orchestrator):
    result = make_orchestrator(fake_store).import_file(build_template("owners"), "owners.xlsx", "owners")

    assert result.successful_rows == 0
    assert result.error_statistics.validation_errors == 2
    assert all(error.error_type == ErrorType.VALIDATION for error in result.errors)
    assert fake_store.count(EntityType.OWNERS) == 0


def test_template_file_names():
    assert template_file_name("lots") == "import_template_lots.xlsx"
    assert template_file_name() == "import_template_all.xlsx"
