"""
Downloadable Excel templates for each importable entity type.

Example rows carry an ``(example)`` marker on their natural key; the
creation functions reject such rows if a template is uploaded unedited.
"""
import io
import logging
from typing import Dict, List, Union

import pandas as pd

from property_import.api.schemas.shared import DEPENDENCY_ORDER, EntityType, TemplateSkeleton
from property_import.domain.imports.errors import UnsupportedEntityTypeError

logger = logging.getLogger(__name__)

TEMPLATE_COLUMNS: Dict[EntityType, List[str]] = {
    EntityType.OWNERS: ["name", "phone", "email", "address"],
    EntityType.BUILDINGS: ["name", "address", "owner_name", "commission_rate", "notes"],
    EntityType.TENANTS: ["name", "first_name", "phone", "email", "birth_date"],
    EntityType.LOTS: ["number", "building_name", "type", "floor", "monthly_rent", "tenant_name", "status"],
}

TEMPLATE_EXAMPLES: Dict[EntityType, List[List[str]]] = {
    EntityType.OWNERS: [
        ["Jean Dupont (example)", "+33612345678", "jean.dupont@example.com", "12 rue des Lilas, Paris"],
        ["Marie Martin (example)", "+33798765432", "marie.martin@example.com", "4 avenue Foch, Lyon"],
    ],
    EntityType.BUILDINGS: [
        ["Residence Les Palmiers (example)", "25 boulevard Voltaire, Paris", "Jean Dupont (example)", "5", ""],
        ["Immeuble Bellevue (example)", "8 quai Saint-Antoine, Lyon", "Marie Martin (example)", "7.5", "Lift"],
    ],
    EntityType.TENANTS: [
        ["Durand (example)", "Paul", "+33611223344", "paul.durand@example.com", "1985-04-12"],
        ["Leroy (example)", "Sophie", "+33655667788", "sophie.leroy@example.com", "1990-11-03"],
    ],
    EntityType.LOTS: [
        ["A101 (example)", "Residence Les Palmiers (example)", "F2", "1", "750", "Durand (example)", "OCCUPIED"],
        ["B12 (example)", "Immeuble Bellevue (example)", "STUDIO", "0", "520", "", "VACANT"],
    ],
}

SHEET_NAMES: Dict[EntityType, str] = {
    EntityType.OWNERS: "Owners",
    EntityType.BUILDINGS: "Buildings",
    EntityType.TENANTS: "Tenants",
    EntityType.LOTS: "Lots",
}

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _entity_type(entity_type: Union[EntityType, str]) -> EntityType:
    try:
        return EntityType(entity_type)
    except ValueError:
        raise UnsupportedEntityTypeError(entity_type)


def template_skeleton(entity_type: Union[EntityType, str]) -> TemplateSkeleton:
    """Column layout and example rows of the template for ``entity_type``."""
    entity_type = _entity_type(entity_type)
    return TemplateSkeleton(
        entity_type=entity_type,
        columns=list(TEMPLATE_COLUMNS[entity_type]),
        examples=[list(row) for row in TEMPLATE_EXAMPLES[entity_type]],
    )


def _skeleton_frame(skeleton: TemplateSkeleton) -> pd.DataFrame:
    return pd.DataFrame(skeleton.examples, columns=skeleton.columns)


def build_template(entity_type: Union[EntityType, str]) -> bytes:
    skeleton = template_skeleton(entity_type)
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        _skeleton_frame(skeleton).to_excel(writer, sheet_name=SHEET_NAMES[skeleton.entity_type], index=False)
    logger.debug("Built %s template", skeleton.entity_type.value)
    return buffer.getvalue()


def build_multi_sheet_template() -> bytes:
    """One workbook with a sheet per entity type, in dependency order."""
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        for entity_type in DEPENDENCY_ORDER:
            skeleton = template_skeleton(entity_type)
            _skeleton_frame(skeleton).to_excel(writer, sheet_name=SHEET_NAMES[entity_type], index=False)
    return buffer.getvalue()


def template_file_name(entity_type: Union[EntityType, str, None] = None) -> str:
    if entity_type is None:
        return "import_template_all.xlsx"
    return f"import_template_{_entity_type(entity_type).value}.xlsx"
