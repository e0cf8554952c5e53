"""Tests for the FastAPI server using TestClient."""

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from gridbook.project import CONFIG_FILENAME
from gridbook.ui.server import create_app, parse_filter_params


@pytest.fixture
def client(project: Path) -> TestClient:
    (project / CONFIG_FILENAME).write_text("default_rows: 4\ndefault_cols: 3\n")
    return TestClient(create_app(project))


def _edit(client: TestClient, row: int, col: int, text: str, **extra) -> dict:
    resp = client.post("/api/cell", json={"row": row, "col": col, "text": text, **extra})
    assert resp.status_code == 200, resp.text
    return resp.json()


class TestParseFilterParams:
    def test_parse(self) -> None:
        filters = parse_filter_params(["0:abc", "2:x:y"])
        assert [(f.column, f.query) for f in filters] == [(0, "abc"), (2, "x:y")]

    @pytest.mark.parametrize("bad", ["abc", "a:b", ":x"])
    def test_invalid(self, bad: str) -> None:
        with pytest.raises(ValueError):
            parse_filter_params([bad])


class TestWorkbookApi:
    def test_workbook_info(self, client: TestClient) -> None:
        data = client.get("/api/workbook").json()
        assert data["version"] == 0
        assert data["sheets"][0]["name"] == "Sheet1"

    def test_edit_and_view(self, client: TestClient) -> None:
        _edit(client, 0, 0, "6")
        result = _edit(client, 0, 1, "=A1*7")
        assert result["display"] == "42"
        sheet = client.get("/api/sheet").json()
        assert sheet["rows"][0]["cells"][1]["display"] == "42"
        assert sheet["rows"][0]["cells"][1]["addr"] == "B1"

    def test_sheet_filter(self, client: TestClient) -> None:
        _edit(client, 0, 0, "red")
        _edit(client, 1, 0, "blue")
        resp = client.get("/api/sheet", params={"filter": ["0:BL"]})
        assert [r["row"] for r in resp.json()["rows"]] == [1]
        assert client.get("/api/sheet", params={"filter": ["x"]}).status_code == 400

    def test_bad_cell_is_400(self, client: TestClient) -> None:
        resp = client.post("/api/cell", json={"row": 50, "col": 0, "text": "x"})
        assert resp.status_code == 400

    def test_validation_rejection(self, client: TestClient) -> None:
        resp = client.post("/api/cell/validation", json={"row": 0, "col": 0, "values": "Yes,No"})
        assert resp.json()["ok"] is True
        result = _edit(client, 0, 0, "Maybe")
        assert result["ok"] is False
        assert result["notice"]["allowed_values"] == ["Yes", "No"]

    def test_format(self, client: TestClient) -> None:
        _edit(client, 0, 0, "1500")
        resp = client.post("/api/cell/format", json={"row": 0, "col": 0, "type": "number"})
        assert resp.status_code == 200
        assert client.get("/api/sheet").json()["rows"][0]["cells"][0]["display"] == "1,500"
        assert client.post("/api/cell/format", json={"row": 0, "col": 0, "type": "date"}).status_code == 422

    def test_rows_and_cols(self, client: TestClient) -> None:
        assert client.post("/api/rows/insert", json={}).json()["n_rows"] == 5
        assert client.post("/api/cols/remove", json={}).json()["n_cols"] == 2
        assert client.post("/api/rows/remove", json={"sheet_index": 9}).status_code == 400


class TestSheetsApi:
    def test_sheet_lifecycle(self, client: TestClient) -> None:
        added = client.post("/api/sheets", json={"name": "Data"}).json()
        assert added["index"] == 1
        assert client.patch("/api/sheets/1", json={"name": "Inputs"}).json()["name"] == "Inputs"
        assert client.post("/api/sheets/0/activate").json()["active_index"] == 0
        names = [s["name"] for s in client.get("/api/sheets").json()]
        assert names == ["Sheet1", "Inputs"]
        assert client.delete("/api/sheets/1").json()["ok"] is True
        refused = client.delete("/api/sheets/0").json()
        assert refused["ok"] is False

    def test_duplicate_name_is_400(self, client: TestClient) -> None:
        assert client.post("/api/sheets", json={"name": "SHEET1"}).status_code == 400


class TestNamesCsvPivotApi:
    def test_named_ranges(self, client: TestClient) -> None:
        _edit(client, 0, 0, "2")
        assert client.post("/api/names", json={"name": "two", "ref": "A1"}).json()["ok"] is True
        assert client.get("/api/names").json() == {"two": "A1"}
        _edit(client, 1, 0, "=two*two")
        assert client.get("/api/sheet").json()["rows"][1]["cells"][0]["display"] == "4"
        assert client.delete("/api/names/two").json()["ok"] is True
        assert client.delete("/api/names/two").json()["reason"] == "missing"

    def test_csv(self, client: TestClient) -> None:
        resp = client.post("/api/csv/import", json={"text": 'a,"b,c"\nd,e'})
        assert resp.json()["ok"] is True
        export = client.get("/api/csv/export")
        assert export.status_code == 200
        assert export.text.splitlines()[0] == '"a","b,c",""'

    def test_pivot(self, client: TestClient) -> None:
        client.post("/api/csv/import", json={"text": "x,10\ny,5\nx,7"})
        data = client.post("/api/pivot", json={"range": "A1:B3"}).json()
        assert data["kind"] == "result"
        assert data["rows"][0] == {"key": "x", "count": 2, "sum": 17.0}
        bad = client.post("/api/pivot", json={"range": "oops"}).json()
        assert bad == {"kind": "error", "message": "Range must be like A1:C100"}

    def test_functions(self, client: TestClient) -> None:
        data = client.get("/api/functions").json()
        assert set(data) == {"Basics", "Lookup", "DateTime", "Text"}

    def test_events(self, client: TestClient) -> None:
        _edit(client, 0, 0, "1")
        events = client.get("/api/events", params={"event_type": "cell_edited"}).json()
        assert events and events[0]["context"]["addr"] == "A1"
        by_sheet = client.get("/api/events", params={"sheet": "Sheet1", "limit": 5}).json()
        assert 0 < len(by_sheet) <= 5
