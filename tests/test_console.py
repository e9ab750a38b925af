"""
Tests for the command-line interface.
"""

import pandas as pd
from rich.console import Console

from property_import.api.schemas.shared import EntityType
from property_import.console import ImportConsole, build_parser, main
from tests.utils.fakes import csv_bytes, excel_bytes


def make_console(orchestrator=None):
    return ImportConsole(console=Console(record=True, width=200), orchestrator=orchestrator)


def test_parser_requires_entity_or_all():
    args = build_parser().parse_args(["import", "portfolio.xlsx", "--all", "--user-id", "jdoe"])
    assert args.all is True
    assert args.entity is None
    assert args.user_id == "jdoe"


def test_template_command_writes_workbook(tmp_path):
    cli = make_console()
    output = tmp_path / "owners.xlsx"

    assert main(["template", "owners", "-o", str(output)], import_console=cli) == 0
    frame = pd.read_excel(output, engine="openpyxl")
    assert list(frame.columns)[0] == "name"
    assert "Template written" in cli.console.export_text()


def test_import_command_succeeds(tmp_path, fake_store, make_orchestrator):
    path = tmp_path / "owners.xlsx"
    path.write_bytes(excel_bytes({"Owners": [["name"], ["Alice"], ["Bob"]]}))
    cli = make_console(make_orchestrator(fake_store))

    assert main(["import", str(path), "--entity", "owners", "--user-id", "jdoe"], import_console=cli) == 0
    assert fake_store.count(EntityType.OWNERS) == 2
    assert "2/2 rows processed successfully" in cli.console.export_text()


def test_import_command_reports_failure(tmp_path, fake_store, make_orchestrator):
    path = tmp_path / "owners.csv"
    path.write_bytes(csv_bytes([["name", "email"], ["A", "x@y.z"]]))
    cli = make_console(make_orchestrator(fake_store))

    assert main(["import", str(path), "--entity", "owners"], import_console=cli) == 1
    assert "Row errors" in cli.console.export_text()
    assert fake_store.count(EntityType.OWNERS) == 0


def test_combined_import_command(tmp_path, fake_store, make_orchestrator):
    path = tmp_path / "portfolio.xlsx"
    path.write_bytes(excel_bytes({
        "Owners": [["name"], ["Alice"]],
        "Buildings": [["name", "address", "owner_name"], ["Les Pins", "1 rue A", "Alice"]],
    }))
    cli = make_console(make_orchestrator(fake_store))

    assert main(["import", str(path), "--all"], import_console=cli) == 0
    assert fake_store.count(EntityType.BUILDINGS) == 1


def test_validate_command(tmp_path, fake_store, make_orchestrator):
    path = tmp_path / "lots.csv"
    path.write_bytes(csv_bytes([["number", "building_name"], ["A1", "Les Pins"], ["", "Les Pins"]]))
    cli = make_console(make_orchestrator(fake_store))

    assert main(["validate", str(path), "--entity", "lots"], import_console=cli) == 1
    assert "1/2 valid rows" in cli.console.export_text()


def test_missing_file(tmp_path, fake_store, make_orchestrator):
    cli = make_console(make_orchestrator(fake_store))
    assert main(["import", str(tmp_path / "nope.xlsx"), "--entity", "owners"], import_console=cli) == 2
    assert "File not found" in cli.console.export_text()


def test_malformed_file(tmp_path, fake_store, make_orchestrator):
    path = tmp_path / "owners.json"
    path.write_text("{}")
    cli = make_console(make_orchestrator(fake_store))
    assert main(["import", str(path), "--entity", "owners"], import_console=cli) == 2
