"""Tests for spreadsheet exports."""

from __future__ import annotations

from datetime import date
from io import BytesIO

from openpyxl import load_workbook

from app.exports.service import ExportService, export_filename
from app.imports.contracts import GAMES, STUDENTS, TEACHERS
from tests.conftest import FakeStore


class TestExportFilename:
    """Tests for download filenames."""

    def test_filename_has_collection_and_date(self):
        assert export_filename("students", date(2024, 5, 1)) == "students_2024-05-01.xlsx"


class TestCollectRows:
    """Tests for filtering, sorting and column layout."""

    def test_students_sorted_by_class_then_number(self):
        store = FakeStore(
            "student_id",
            [
                {"student_id": "S3", "class": "2A", "class_no": "01"},
                {"student_id": "S2", "class": "1A", "class_no": "02"},
                {"student_id": "S1", "class": "1A", "class_no": "01"},
                {"student_id": "S4"},
            ],
        )
        rows = ExportService(store).collect_rows(STUDENTS)
        assert [row["student_id"] for row in rows] == ["S4", "S1", "S2", "S3"]

    def test_student_class_filter(self):
        store = FakeStore(
            "student_id",
            [
                {"student_id": "S1", "class": "1A", "class_no": "01"},
                {"student_id": "S2", "class": "1B", "class_no": "01"},
            ],
        )
        rows = ExportService(store).collect_rows(STUDENTS, classes=["1B"])
        assert [row["student_id"] for row in rows] == ["S2"]

    def test_filter_ignored_for_collections_without_filter_field(self):
        store = FakeStore("game_id", [{"game_id": "G1"}, {"game_id": "G2"}])
        rows = ExportService(store).collect_rows(GAMES, classes=["1A"])
        assert len(rows) == 2

    def test_columns_follow_export_layout(self):
        store = FakeStore(
            "student_id",
            [{"student_id": "S1", "class": "1A", "created_at": "2024-01-01T00:00:00.000Z"}],
        )
        row = ExportService(store).collect_rows(STUDENTS)[0]
        assert list(row) == list(STUDENTS.export_columns)
        assert "created_at" not in row

    def test_teacher_values_are_rendered(self):
        store = FakeStore(
            "teacher_id",
            [
                {"teacher_id": "T2", "responsible_class": ["1A", "2B"], "is_admin": True},
                {"teacher_id": "T1", "responsible_class": [], "is_admin": False},
            ],
        )
        rows = ExportService(store).collect_rows(TEACHERS)
        assert rows[0]["teacher_id"] == "T1"
        assert rows[0]["responsible_class"] == ""
        assert rows[0]["is_admin"] == "No"
        assert rows[1]["responsible_class"] == "1A, 2B"
        assert rows[1]["is_admin"] == "Yes"


class TestExportWorkbook:
    """Tests for the generated xlsx file."""

    def test_workbook_layout(self):
        store = FakeStore(
            "game_id",
            [{"game_id": "G1", "game_name": "Maze", "accumulated_click": 42}],
        )
        content = ExportService(store).export_collection("games")

        workbook = load_workbook(BytesIO(content))
        sheet = workbook["Games"]
        headers = [cell.value for cell in sheet[1]]
        assert headers == list(GAMES.export_columns)
        assert all(cell.font.bold for cell in sheet[1])
        assert sheet.column_dimensions["A"].width == 12
        assert sheet.column_dimensions["K"].width == 40
        assert sheet.cell(row=2, column=1).value == "G1"
        assert sheet.cell(row=2, column=10).value == 42

    def test_empty_collection_still_has_headers(self):
        content = ExportService(FakeStore("teacher_id")).export_collection("teachers")

        sheet = load_workbook(BytesIO(content))["Teachers"]
        assert [cell.value for cell in sheet[1]] == list(TEACHERS.export_columns)
        assert sheet.max_row == 1
