import io
import logging
import math
import re
import unicodedata
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import pandas as pd

from property_import.api.schemas.shared import DEPENDENCY_ORDER, EntityType
from property_import.domain.imports.errors import MalformedInputError, UploadTooLargeError

logger = logging.getLogger(__name__)

# Headers of earlier (French) templates mapped to canonical column names
HEADER_ALIASES = {
    "nom": "name",
    "telephone": "phone",
    "tel": "phone",
    "adresse": "address",
    "proprietaire": "owner_name",
    "proprietaire_nom": "owner_name",
    "taux_commission": "commission_rate",
    "prenom": "first_name",
    "date_naissance": "birth_date",
    "numero": "number",
    "immeuble": "building_name",
    "immeuble_nom": "building_name",
    "etage": "floor",
    "loyer_mensuel": "monthly_rent",
    "loyer_mensuel_attendu": "monthly_rent",
    "locataire": "tenant_name",
    "locataire_nom": "tenant_name",
    "statut": "status",
}

# Sheet-name keywords used to route workbook sheets in combined uploads
SHEET_KEYWORDS = {
    EntityType.OWNERS: ["owner", "propriétaire", "proprietaire", "proprio"],
    EntityType.BUILDINGS: ["building", "immeuble"],
    EntityType.TENANTS: ["tenant", "locataire"],
    EntityType.LOTS: ["lot", "unit"],
}


@dataclass(frozen=True)
class RawRecord:
    """One parsed data row: canonical header -> text (or None)."""
    values: Dict[str, Optional[str]] = field(default_factory=dict)
    source_position: int = 0

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self.values.get(key)
        return default if value is None else value


def detect_file_type(filename: str) -> str:
    """Return 'excel' or 'csv' based on the file extension."""
    name = (filename or "").lower()
    if name.endswith((".xlsx", ".xls", ".xlsm")):
        return "excel"
    if name.endswith(".csv"):
        return "csv"
    raise MalformedInputError(
        f"Unsupported file type for '{filename}'. Upload an Excel (.xlsx, .xls) or CSV file."
    )


def check_upload(file_name: str, size: int, max_file_size: int) -> str:
    """Reject empty, oversized or unsupported uploads before parsing."""
    file_type = detect_file_type(file_name)
    if size <= 0:
        raise MalformedInputError("Uploaded file is empty")
    if size > max_file_size:
        raise UploadTooLargeError(size, max_file_size)
    return file_type


def normalize_header(header: Any) -> Optional[str]:
    text = _cell_to_text(header)
    if not text:
        return None
    # Strip accents so "Téléphone" and "telephone" land on the same column
    folded = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    key = re.sub(r"[\s\-]+", "_", folded.strip().lower())
    return HEADER_ALIASES.get(key, key)


def _cell_to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            return str(int(value))
        return str(value)
    if isinstance(value, datetime):
        if value.hour == value.minute == value.second == 0 and not value.microsecond:
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    return text or None


def _frame_to_records(df: pd.DataFrame, sheet_label: str) -> List[RawRecord]:
    """Use the first non-empty row as the header and turn the rest into records."""
    df = df.dropna(how="all")
    if df.empty:
        return []

    header_index = df.index[0]
    headers = [normalize_header(value) for value in df.loc[header_index].tolist()]
    if not any(headers):
        raise MalformedInputError(f"No header row found in sheet '{sheet_label}'")

    records: List[RawRecord] = []
    for index, row in df.loc[df.index > header_index].iterrows():
        values: Dict[str, Optional[str]] = {}
        for header, cell in zip(headers, row.tolist()):
            if not header or header in values:
                continue
            values[header] = _cell_to_text(cell)
        if not any(value is not None for value in values.values()):
            continue
        # Index is 0-based over the raw sheet; positions are 1-based sheet rows
        records.append(RawRecord(values=values, source_position=int(index) + 1))
    return records


def _read_excel(file_content: bytes, sheet_name: Any) -> Any:
    try:
        return pd.read_excel(
            io.BytesIO(file_content),
            sheet_name=sheet_name,
            header=None,
            dtype=object,
            engine="openpyxl",
        )
    except Exception:
        # Fallback to default pandas engine (legacy .xls)
        try:
            return pd.read_excel(io.BytesIO(file_content), sheet_name=sheet_name, header=None, dtype=object)
        except Exception as e:
            raise MalformedInputError(f"Could not read Excel file: {str(e)}")


def _read_csv(file_content: bytes) -> pd.DataFrame:
    # Leading blank lines are skipped like empty leading rows of a sheet,
    # keeping the original line numbers in the index.
    lines = file_content.splitlines(keepends=True)
    skipped = 0
    while skipped < len(lines) and not lines[skipped].strip():
        skipped += 1
    if skipped == len(lines):
        raise MalformedInputError("CSV file is empty")

    try:
        df = pd.read_csv(
            io.BytesIO(b"".join(lines[skipped:])),
            header=None,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=False,
        )
    except pd.errors.EmptyDataError:
        raise MalformedInputError("CSV file is empty")
    except Exception as e:
        raise MalformedInputError(f"Could not read CSV file: {str(e)}")
    df.index = df.index + skipped
    return df


def parse_records(file_content: bytes, file_name: str) -> List[RawRecord]:
    """
    Parse the first sheet of an Excel workbook (or a CSV file) into records.

    Raises:
        MalformedInputError: no sheet, no header or zero data rows.
    """
    file_type = detect_file_type(file_name)
    if file_type == "csv":
        df = _read_csv(file_content)
        sheet_label = file_name
    else:
        sheets = _read_excel(file_content, None)
        if not sheets:
            raise MalformedInputError("The Excel file does not contain any sheet")
        sheet_label, df = next(iter(sheets.items()))

    records = _frame_to_records(df, sheet_label)
    if not records:
        raise MalformedInputError("The uploaded file does not contain any data rows")

    logger.info("Parsed '%s': %d data rows", file_name, len(records))
    return records


def _match_sheet(sheet_names: List[str], keywords: List[str]) -> Optional[str]:
    for name in sheet_names:
        lowered = name.lower()
        if any(keyword in lowered for keyword in keywords):
            return name
    return None


def parse_workbook(file_content: bytes) -> Dict[EntityType, List[RawRecord]]:
    """
    Parse a multi-sheet workbook for a combined upload.

    Sheets are matched to entity types by name; a missing or empty sheet
    yields an empty list.
    """
    sheets = _read_excel(file_content, None)
    if not sheets:
        raise MalformedInputError("The Excel file does not contain any sheet")

    sheet_names = list(sheets.keys())
    parsed: Dict[EntityType, List[RawRecord]] = {}
    for entity_type in DEPENDENCY_ORDER:
        sheet_name = _match_sheet(sheet_names, SHEET_KEYWORDS[entity_type])
        if sheet_name is None:
            parsed[entity_type] = []
            continue
        parsed[entity_type] = _frame_to_records(sheets[sheet_name], sheet_name)
        logger.info(
            "Sheet '%s' mapped to %s: %d data rows",
            sheet_name,
            entity_type.value,
            len(parsed[entity_type]),
        )
    return parsed
