"""Tests for the ReportExporter class."""

import csv
import io
import os
from datetime import date

import pytest
from docx import Document

from shiftlog.core.models import Report, ReportEntry, ReportSummary
from shiftlog.reporting.exporter import CSV_HEADERS, ReportExporter

HOUR_MS = 3_600_000


def _make_report(entries=None) -> Report:
    """Build a realistic two-day report for testing."""
    if entries is None:
        entries = [
            ReportEntry(2, "2025-01-07", "08:30", "12:00", 3.5 * HOUR_MS, 0, 3.5 * HOUR_MS),
            ReportEntry(1, "2025-01-06", "09:00", "17:00", 8 * HOUR_MS, HOUR_MS, 7 * HOUR_MS),
        ]
    days = len({e.date for e in entries})
    net = sum(e.net_work_ms for e in entries)
    return Report(
        start_date=date(2025, 1, 6),
        end_date=date(2025, 1, 12),
        timezone="America/Chicago",
        entries=entries,
        summary=ReportSummary(
            total_duration_ms=sum(e.duration_ms for e in entries),
            total_breaks_ms=sum(e.break_ms for e in entries),
            total_net_work_ms=net,
            days_worked=days,
            average_daily_work_ms=net / days if days else 0,
        ),
    )


@pytest.fixture
def exporter():
    return ReportExporter()


# ------------------------------------------------------------------
# CSV
# ------------------------------------------------------------------

class TestCsv:

    def test_header_and_rows(self, exporter):
        rows = list(csv.reader(io.StringIO(exporter.to_csv(_make_report()))))
        assert rows[0] == CSV_HEADERS
        assert rows[1] == ["2025-01-07", "08:30", "12:00", "3h 30m", "0h 00m", "3h 30m"]
        assert rows[2] == ["2025-01-06", "09:00", "17:00", "8h 00m", "1h 00m", "7h 00m"]

    def test_summary_block(self, exporter):
        rows = list(csv.reader(io.StringIO(exporter.to_csv(_make_report()))))
        assert rows[3] == []
        assert rows[4] == ["Summary"]
        labels = {r[0]: r[3] for r in rows[5:]}
        assert labels["Total Duration"] == "11h 30m"
        assert labels["Total Breaks"] == "1h 00m"
        assert labels["Total Net Work"] == "10h 30m"
        assert labels["Days Worked"] == "2"
        assert labels["Average Daily Work"] == "5h 15m"

    def test_empty_report(self, exporter):
        rows = list(csv.reader(io.StringIO(exporter.to_csv(_make_report([])))))
        assert rows[0] == CSV_HEADERS
        assert rows[1] == []
        assert rows[2] == ["Summary"]

    def test_export_csv_writes_file(self, exporter, tmp_path):
        path = str(tmp_path / "reports" / "jan.csv")
        result = exporter.export_csv(_make_report(), path)
        assert result == path
        with open(path, encoding="utf-8") as fh:
            assert fh.readline().strip() == ",".join(CSV_HEADERS)


# ------------------------------------------------------------------
# Word
# ------------------------------------------------------------------

class TestDocx:

    def test_creates_file(self, exporter, tmp_path):
        path = str(tmp_path / "report.docx")
        result = exporter.export_docx(_make_report(), "Alex", path)
        assert result == path
        assert os.path.exists(path)

    def test_creates_parent_directories(self, exporter, tmp_path):
        path = str(tmp_path / "a" / "b" / "report.docx")
        exporter.export_docx(_make_report(), "", path)
        assert os.path.exists(path)

    def test_title_and_range(self, exporter, tmp_path):
        path = str(tmp_path / "report.docx")
        exporter.export_docx(_make_report(), "Alex", path)
        text = "\n".join(p.text for p in Document(path).paragraphs)
        assert "ShiftLog Work Report" in text
        assert "January 06, 2025 - January 12, 2025 (America/Chicago)" in text
        assert "Prepared for: Alex" in text

    def test_no_user_name_line(self, exporter, tmp_path):
        path = str(tmp_path / "report.docx")
        exporter.export_docx(_make_report(), "", path)
        text = "\n".join(p.text for p in Document(path).paragraphs)
        assert "Prepared for" not in text

    def test_tables(self, exporter, tmp_path):
        path = str(tmp_path / "report.docx")
        exporter.export_docx(_make_report(), "Alex", path)
        doc = Document(path)
        entries, summary = doc.tables
        assert [c.text for c in entries.rows[0].cells] == CSV_HEADERS
        assert entries.rows[1].cells[0].text == "2025-01-07"
        assert len(entries.rows) == 3
        assert summary.rows[3].cells[0].text == "Days Worked"
        assert summary.rows[3].cells[1].text == "2"

    def test_empty_report(self, exporter, tmp_path):
        path = str(tmp_path / "report.docx")
        exporter.export_docx(_make_report([]), "Alex", path)
        doc = Document(path)
        text = "\n".join(p.text for p in doc.paragraphs)
        assert "No completed sessions in this range." in text
        assert len(doc.tables) == 1
