"""Tests for the upload and download API routes."""

from __future__ import annotations

from io import BytesIO

import pandas as pd
from fastapi.testclient import TestClient
from starlette.concurrency import run_in_threadpool

from app.core.config import settings
from app.core.errors import StoreError
from app.exports import routes as export_routes
from app.imports import routes as import_routes

STUDENT_HEADERS = ["student_id", "name_1", "name_2", "marks", "class", "class_no", "teacher_id"]


def _upload(client: TestClient, collection: str, content: bytes, filename: str):
    return client.post(
        f"/api/v1/upload/{collection}",
        files={"file": (filename, content, "application/octet-stream")},
    )


class TestUploadRoute:
    """Tests for POST /api/v1/upload/{collection}."""

    def test_successful_upload(self, client, student_store, make_csv):
        content = make_csv(
            STUDENT_HEADERS,
            [["S001", "Chan", "Tai Man", 85, "1A", "01", "T001"]],
        )
        response = _upload(client, "students", content, "students.csv")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["processed"] == 1
        assert body["inserted"] == 1
        assert body["errors"] == []
        assert student_store.records["S001"]["name_1"] == "Chan"

    def test_partial_success_is_200(self, client, make_csv):
        content = make_csv(
            STUDENT_HEADERS,
            [
                ["S001", "Chan", "", 85, "1A", "01", "T001"],
                ["S002", "Lee", "", 70, "1A", "02", "T001"],
                ["S003", "Ho", "", 60, "1B", "01", "T002"],
                ["", "Nobody", "", 0, "1B", "02", "T002"],
            ],
        )
        response = _upload(client, "students", content, "students.csv")

        assert response.status_code == 200
        body = response.json()
        assert body["processed"] == 3
        assert body["errors"] == ["Row 4: Missing student_id"]

    def test_xlsx_upload(self, client, teacher_store, make_xlsx):
        content = make_xlsx(
            ["teacher_id", "name", "password", "responsible_class", "is_admin"],
            [["T001", "Ms Wong", "hash", '["1A","2B"]', "TRUE"]],
        )
        response = _upload(client, "teachers", content, "teachers.xlsx")

        assert response.status_code == 200
        record = teacher_store.records["T001"]
        assert record["responsible_class"] == ["1A", "2B"]
        assert record["is_admin"] is True

    def test_empty_file_is_400(self, client, make_csv):
        response = _upload(client, "students", make_csv(STUDENT_HEADERS, []), "students.csv")

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert "empty" in body["message"]

    def test_unsupported_format_is_400(self, client):
        response = _upload(client, "students", b"%PDF-1.4", "students.pdf")

        assert response.status_code == 400
        assert response.json()["message"] == "Unsupported file format: students.pdf"

    def test_too_large_is_413(self, client, monkeypatch, make_csv):
        monkeypatch.setattr(settings, "max_upload_bytes", 10)
        content = make_csv(STUDENT_HEADERS, [["S001", "Chan", "", 85, "1A", "01", "T001"]])

        response = _upload(client, "students", content, "students.csv")

        assert response.status_code == 413
        assert response.json()["error"]["code"] == "payload_too_large"

    def test_unknown_collection_is_404(self, client, make_csv):
        response = _upload(client, "parents", make_csv(["id"], [["1"]]), "parents.csv")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "not_found"

    def test_missing_file_is_422(self, client):
        response = client.post("/api/v1/upload/students")
        assert response.status_code == 422

    def test_import_runs_in_threadpool(self, client, student_store, make_csv, monkeypatch):
        calls = []

        async def recording(func, *args, **kwargs):
            calls.append(func.__name__)
            return await run_in_threadpool(func, *args, **kwargs)

        monkeypatch.setattr(import_routes, "run_in_threadpool", recording)
        content = make_csv(
            STUDENT_HEADERS,
            [["S001", "Chan", "Tai Man", 85, "1A", "01", "T001"]],
        )
        response = _upload(client, "students", content, "students.csv")

        assert response.status_code == 200
        assert calls == ["import_file"]


class TestDownloadRoute:
    """Tests for GET /api/v1/download/{collection}."""

    def test_download_students(self, client, student_store):
        student_store.records = {
            "S002": {"student_id": "S002", "name_1": "Lee", "class": "1A", "class_no": "02"},
            "S001": {"student_id": "S001", "name_1": "Chan", "class": "1A", "class_no": "01"},
        }
        response = client.get("/api/v1/download/students")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith(
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
        disposition = response.headers["content-disposition"]
        assert disposition.startswith('attachment; filename="students_')
        assert disposition.endswith('.xlsx"')

        df = pd.read_excel(BytesIO(response.content), sheet_name="Students", dtype=str)
        assert list(df["student_id"]) == ["S001", "S002"]

    def test_class_filter(self, client, student_store):
        student_store.records = {
            "S001": {"student_id": "S001", "class": "1A", "class_no": "01"},
            "S002": {"student_id": "S002", "class": "2B", "class_no": "01"},
            "S003": {"student_id": "S003", "class": "3C", "class_no": "01"},
        }
        response = client.get("/api/v1/download/students", params={"classes": "1A,3C"})

        df = pd.read_excel(BytesIO(response.content), dtype=str)
        assert list(df["student_id"]) == ["S001", "S003"]

    def test_unknown_collection_is_404(self, client):
        response = client.get("/api/v1/download/parents")
        assert response.status_code == 404

    def test_store_failure_is_503(self, client, game_store, monkeypatch):
        def failing_scan():
            raise StoreError("scan", "Could not connect to the endpoint URL")

        monkeypatch.setattr(game_store, "scan", failing_scan)
        response = client.get("/api/v1/download/games")

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "store_unavailable"

    def test_export_runs_in_threadpool(self, client, student_store, monkeypatch):
        calls = []

        async def recording(func, *args, **kwargs):
            calls.append(func.__name__)
            return await run_in_threadpool(func, *args, **kwargs)

        monkeypatch.setattr(export_routes, "run_in_threadpool", recording)
        response = client.get("/api/v1/download/students")

        assert response.status_code == 200
        assert calls == ["export_collection"]


class TestHealth:
    """Tests for the health endpoint."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
