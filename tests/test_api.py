import io

import pandas as pd

from property_import.api.schemas.shared import EntityType
from property_import.core.config import Settings
from tests.utils.fakes import csv_bytes, excel_bytes

XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def upload(content, filename="owners.xlsx", media_type=XLSX):
    return {"file": (filename, io.BytesIO(content), media_type)}


def owners_workbook(*names):
    return excel_bytes({"Owners": [["name"], *[[name] for name in names]]})


def test_health(api_client):
    response = api_client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_import_entity_and_poll_job(api_client):
    response = api_client.post("/imports/owners", files=upload(owners_workbook("Alice", "Bob")))
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["successful_rows"] == 2
    assert data["status"] == "COMPLETED"
    assert api_client.store.count(EntityType.OWNERS) == 2

    job_response = api_client.get(f"/import-jobs/{data['import_id']}")
    assert job_response.status_code == 200
    job = job_response.json()["job"]
    assert job["status"] == "COMPLETED"
    assert job["progress_percentage"] == 100

    listing = api_client.get("/import-jobs").json()
    assert listing["total_count"] == 1
    assert listing["jobs"][0]["import_id"] == data["import_id"]


def test_validation_failure_is_reported_not_raised(api_client):
    response = api_client.post("/imports/owners", files=upload(owners_workbook("Alice", "B")))
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is False
    assert data["status"] == "FAILED"
    assert data["successful_rows"] == 0
    assert data["errors"][0]["error_type"] == "VALIDATION"


def test_user_header_is_recorded(api_client, audit):
    response = api_client.post(
        "/imports/owners",
        files=upload(owners_workbook("Alice")),
        headers={"X-User-Id": "agent-7"},
    )
    data = response.json()
    assert data["audit_info"]["user_id"] == "agent-7"
    assert data["audit_info"]["file_name"] == "owners.xlsx"
    assert audit.entries[0]["user_id"] == "agent-7"
    assert api_client.store.all(EntityType.OWNERS)[0]["created_by"] == "agent-7"


def test_unknown_job_is_404(api_client):
    assert api_client.get("/import-jobs/import_missing").status_code == 404


def test_unknown_entity_type_is_400(api_client):
    response = api_client.post("/imports/castles", files=upload(owners_workbook("Alice")))
    assert response.status_code == 400
    assert "Unsupported entity type" in response.json()["detail"]


def test_unsupported_file_is_400(api_client):
    response = api_client.post("/imports/owners", files=upload(b"name\nAlice\n", "owners.txt", "text/plain"))
    assert response.status_code == 400


def test_oversized_file_is_413(api_client):
    api_client.orchestrator.settings = Settings(database_url="sqlite://", import_max_file_size=8)
    response = api_client.post("/imports/owners", files=upload(csv_bytes([["name"], ["Alice"]]), "o.csv", "text/csv"))
    assert response.status_code == 413


def test_validate_endpoint(api_client):
    content = csv_bytes([["name", "email"], ["Alice", "alice@example.com"], ["", "x@example.com"]])
    response = api_client.post("/imports/validate/owners", files=upload(content, "owners.csv", "text/csv"))
    assert response.status_code == 200
    report = response.json()
    assert report["is_valid"] is False
    assert report["valid_rows"] == 1
    assert report["errors"][0]["field"] == "name"
    assert api_client.store.count(EntityType.OWNERS) == 0


def test_import_all_endpoint(api_client):
    workbook = excel_bytes({
        "Owners": [["name"], ["Alice"]],
        "Buildings": [["name", "address", "owner_name"], ["Les Pins", "1 rue A", "Alice"]],
        "Lots": [["number", "building_name"], ["A1", "Les Pins"], ["A2", "Les Pins"]],
    })
    response = api_client.post("/imports/all", files=upload(workbook, "portfolio.xlsx"))
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["total_rows"] == 4
    assert data["performance_metrics"]["transaction_count"] == 3


def test_entity_template_download(api_client):
    response = api_client.get("/imports/templates/lots")
    assert response.status_code == 200
    assert response.headers["content-type"] == XLSX
    assert 'filename="import_template_lots.xlsx"' in response.headers["content-disposition"]

    frame = pd.read_excel(io.BytesIO(response.content), engine="openpyxl")
    assert list(frame.columns)[:2] == ["number", "building_name"]
    assert len(frame) == 2


def test_multi_sheet_template_download(api_client):
    response = api_client.get("/imports/templates/multi-sheet")
    assert response.status_code == 200
    sheets = pd.read_excel(io.BytesIO(response.content), sheet_name=None, engine="openpyxl")
    assert list(sheets) == ["Owners", "Buildings", "Tenants", "Lots"]


def test_template_columns_and_unknown_template(api_client):
    columns = api_client.get("/imports/templates/tenants/columns").json()
    assert columns["columns"][0] == "name"
    assert len(columns["examples"]) == 2
    assert api_client.get("/imports/templates/castles").status_code == 400


def test_cache_stats(api_client):
    api_client.post("/imports/owners", files=upload(owners_workbook("Alice")))
    stats = api_client.get("/import-jobs/cache-stats").json()
    assert stats["success"] is True
    assert stats["caches"]["owners"]["size"] == 1


def test_validation_presets(api_client):
    response = api_client.get("/imports/validation-presets")
    assert response.status_code == 200
    assert set(response.json()["presets"]) == {"email", "phone", "date_iso"}
