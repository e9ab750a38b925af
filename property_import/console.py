#!/usr/bin/env python3
"""
Command-line interface for bulk property imports.
Runs imports, validate-only checks and template downloads against the
configured database and renders the outcome with rich tables.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from property_import.api.schemas.shared import (
    ClassifiedError,
    EntityType,
    ImportResult,
    Severity,
    ValidationReport,
)
from property_import.core.config import settings
from property_import.core.logging_config import configure_logging
from property_import.domain.imports.errors import MalformedInputError, UnsupportedEntityTypeError
from property_import.domain.imports.templates import (
    build_multi_sheet_template,
    build_template,
    template_file_name,
)

MAX_ERRORS_SHOWN = 50


class ImportConsole:
    """Renders import outcomes on the terminal."""

    def __init__(self, console: Optional[Console] = None, orchestrator=None):
        self.console = console or Console()
        self._orchestrator = orchestrator

    @property
    def orchestrator(self):
        if self._orchestrator is None:
            from property_import.api.dependencies import build_orchestrator
            from property_import.db.models import create_tables
            from property_import.db.session import get_engine

            create_tables(get_engine())
            self._orchestrator = build_orchestrator()
        return self._orchestrator

    def format_errors(self, errors: List[ClassifiedError]) -> None:
        if not errors:
            return
        table = Table(title="Row errors")
        table.add_column("Row", style="dim", justify="right")
        table.add_column("Field", style="cyan")
        table.add_column("Type", style="white")
        table.add_column("Severity", style="white")
        table.add_column("Message", style="white")

        for error in errors[:MAX_ERRORS_SHOWN]:
            severity = (
                "[red]ERROR[/red]" if error.severity == Severity.ERROR else "[yellow]WARNING[/yellow]"
            )
            table.add_row(str(error.position), error.field, error.error_type.value, severity, error.message)
        self.console.print(table)
        if len(errors) > MAX_ERRORS_SHOWN:
            self.console.print(f"[dim]... {len(errors) - MAX_ERRORS_SHOWN} more error(s) not shown[/dim]")

    def format_import_result(self, result: ImportResult) -> None:
        border = "green" if result.success else "red"
        icon = "✅" if result.success else "❌"
        self.console.print(
            Panel(
                f"[{border}]{icon} {result.summary}[/{border}]",
                title=f"Import {result.import_id or ''} ({result.status.value if result.status else 'unknown'})",
                border_style=border,
            )
        )

        stats = Table(title="Statistics")
        stats.add_column("Metric", style="cyan", no_wrap=True)
        stats.add_column("Value", style="white", justify="right")
        stats.add_row("Total rows", str(result.total_rows))
        stats.add_row("Successful rows", str(result.successful_rows))
        stats.add_row("Failed rows", str(result.failed_rows))
        stats.add_row("Critical errors", str(result.error_statistics.critical_errors))
        stats.add_row("Warnings", str(result.error_statistics.warnings))
        stats.add_row("Duplicates", str(result.error_statistics.duplicates))
        stats.add_row("Batches", str(result.performance_metrics.transaction_count))
        stats.add_row("Avg ms/row", f"{result.performance_metrics.avg_ms_per_row:.2f}")
        self.console.print(stats)
        self.format_errors(result.errors)

    def format_validation_report(self, report: ValidationReport) -> None:
        border = "green" if report.is_valid else "red"
        self.console.print(
            Panel(
                f"[{border}]{report.valid_rows}/{report.total_rows} valid rows, "
                f"{report.invalid_rows} invalid[/{border}]",
                title="Validation",
                border_style=border,
            )
        )
        self.format_errors(report.errors)

    def run_import(self, path: Path, entity_type: Optional[str], user_id: Optional[str]) -> int:
        content = path.read_bytes()
        with self.console.status("[bold green]Importing...", spinner="dots"):
            if entity_type is None:
                result = self.orchestrator.import_workbook(content, path.name, user_id)
            else:
                result = self.orchestrator.import_file(content, path.name, entity_type, user_id)
        self.format_import_result(result)
        return 0 if result.success else 1

    def run_validate(self, path: Path, entity_type: str) -> int:
        content = path.read_bytes()
        report = self.orchestrator.validate_file(content, path.name, entity_type)
        self.format_validation_report(report)
        return 0 if report.is_valid else 1

    def run_template(self, target: str, output: Optional[Path]) -> int:
        if target == "multi-sheet":
            content = build_multi_sheet_template()
            default_name = template_file_name()
        else:
            content = build_template(target)
            default_name = template_file_name(target)
        destination = output or Path(default_name)
        destination.write_bytes(content)
        self.console.print(f"[green]Template written to {destination}[/green]")
        return 0


def build_parser() -> argparse.ArgumentParser:
    entity_choices = [entity_type.value for entity_type in EntityType]
    parser = argparse.ArgumentParser(
        prog="property-import",
        description="Bulk import of owners, buildings, tenants and lots",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s import owners.xlsx --entity owners
  %(prog)s import portfolio.xlsx --all --user-id jdoe
  %(prog)s validate lots.csv --entity lots
  %(prog)s template multi-sheet -o template.xlsx
        """
    )
    parser.add_argument('--log-level', default=None, help='Override LOG_LEVEL for this run')
    subparsers = parser.add_subparsers(dest='command', required=True)

    import_parser = subparsers.add_parser('import', help='Import an Excel or CSV file')
    import_parser.add_argument('file', type=Path)
    target = import_parser.add_mutually_exclusive_group(required=True)
    target.add_argument('--entity', choices=entity_choices, help='Entity type of a single-sheet upload')
    target.add_argument('--all', action='store_true', help='Import a combined multi-sheet workbook')
    import_parser.add_argument('--user-id', default=None, help='Uploader recorded on created rows')

    validate_parser = subparsers.add_parser('validate', help='Validate a file without importing it')
    validate_parser.add_argument('file', type=Path)
    validate_parser.add_argument('--entity', choices=entity_choices, required=True)

    template_parser = subparsers.add_parser('template', help='Write an Excel import template')
    template_parser.add_argument('target', choices=entity_choices + ['multi-sheet'])
    template_parser.add_argument('-o', '--output', type=Path, default=None)
    return parser


def main(argv: Optional[List[str]] = None, import_console: Optional[ImportConsole] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level or settings.log_level)
    cli = import_console or ImportConsole()

    try:
        if args.command == 'import':
            return cli.run_import(args.file, None if args.all else args.entity, args.user_id)
        if args.command == 'validate':
            return cli.run_validate(args.file, args.entity)
        return cli.run_template(args.target, args.output)
    except FileNotFoundError as e:
        cli.console.print(f"[red]❌ File not found: {e.filename}[/red]")
        return 2
    except (MalformedInputError, UnsupportedEntityTypeError) as e:
        cli.console.print(f"[red]❌ {e}[/red]")
        return 2


if __name__ == "__main__":
    sys.exit(main())
