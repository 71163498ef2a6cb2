"""Report exporter for ShiftLog.

Writes a Report as CSV (the column layout of the web download) or as a Word
(.docx) document using python-docx.
"""

import csv
import io
import logging
import os

from shiftlog.core.models import Report
from shiftlog.reporting.formatter import TextFormatter

logger = logging.getLogger(__name__)

CSV_HEADERS = ["Date", "Start Time", "End Time", "Duration", "Breaks", "Net Work"]


def _ensure_parent(output_path: str) -> None:
    parent_dir = os.path.dirname(output_path)
    if parent_dir:
        os.makedirs(parent_dir, exist_ok=True)


class ReportExporter:
    """Exports report data to CSV text/files and formatted Word documents."""

    # ------------------------------------------------------------------
    # CSV
    # ------------------------------------------------------------------

    def to_csv(self, report: Report) -> str:
        """Render *report* as CSV: one row per entry, then a summary block."""
        fmt = TextFormatter.format_duration
        buf = io.StringIO()
        writer = csv.writer(buf, lineterminator="\n")
        writer.writerow(CSV_HEADERS)
        for entry in report.entries:
            writer.writerow([
                entry.date,
                entry.start_time,
                entry.end_time or "In progress",
                fmt(entry.duration_ms),
                fmt(entry.break_ms),
                fmt(entry.net_work_ms),
            ])

        s = report.summary
        writer.writerow([])
        writer.writerow(["Summary"])
        writer.writerow(["Total Duration", "", "", fmt(s.total_duration_ms)])
        writer.writerow(["Total Breaks", "", "", fmt(s.total_breaks_ms)])
        writer.writerow(["Total Net Work", "", "", fmt(s.total_net_work_ms)])
        writer.writerow(["Days Worked", "", "", str(s.days_worked)])
        writer.writerow(["Average Daily Work", "", "", fmt(s.average_daily_work_ms)])
        return buf.getvalue()

    def export_csv(self, report: Report, output_path: str) -> str:
        """Write :meth:`to_csv` output to *output_path* and return the path."""
        _ensure_parent(output_path)
        with open(output_path, "w", encoding="utf-8", newline="") as fh:
            fh.write(self.to_csv(report))
        logger.info("Exported CSV report to %s", output_path)
        return output_path

    # ------------------------------------------------------------------
    # Word
    # ------------------------------------------------------------------

    def export_docx(self, report: Report, user_name: str, output_path: str) -> str:
        """Generate a .docx file from report data.

        Args:
            report: The report to export.
            user_name: Display name printed under the title; may be empty.
            output_path: File path for the generated .docx file.

        Returns:
            The path to the generated file.

        Raises:
            ImportError: If python-docx is not installed.
        """
        try:
            from docx import Document
        except ImportError:
            raise ImportError(
                "python-docx is required for report export. "
                "Install it with: pip install python-docx"
            )

        _ensure_parent(output_path)

        doc = Document()
        self._add_title(doc, report, user_name)

        doc.add_heading("Sessions", level=1)
        if not report.entries:
            doc.add_paragraph("No completed sessions in this range.")
        else:
            self._add_entries_table(doc, report)

        doc.add_heading("Summary", level=1)
        self._add_summary_table(doc, report)

        doc.save(output_path)
        logger.info("Exported Word report to %s", output_path)
        return output_path

    def _add_title(self, doc, report: Report, user_name: str) -> None:
        """Add the report title, date range, timezone and user name."""
        from docx.enum.text import WD_ALIGN_PARAGRAPH
        from docx.shared import Pt

        title_para = doc.add_paragraph()
        title_para.alignment = WD_ALIGN_PARAGRAPH.CENTER
        run = title_para.add_run("ShiftLog Work Report")
        run.bold = True
        run.font.size = Pt(24)

        start_str = report.start_date.strftime("%B %d, %Y")
        end_str = report.end_date.strftime("%B %d, %Y")
        date_para = doc.add_paragraph()
        date_para.alignment = WD_ALIGN_PARAGRAPH.CENTER
        run = date_para.add_run(f"{start_str} - {end_str} ({report.timezone})")
        run.font.size = Pt(14)

        if user_name:
            name_para = doc.add_paragraph()
            name_para.alignment = WD_ALIGN_PARAGRAPH.CENTER
            run = name_para.add_run(f"Prepared for: {user_name}")
            run.font.size = Pt(12)

    def _add_entries_table(self, doc, report: Report) -> None:
        fmt = TextFormatter.format_duration
        table = doc.add_table(rows=1 + len(report.entries), cols=len(CSV_HEADERS))
        table.style = "Light Grid Accent 1"

        for cell, text in zip(table.rows[0].cells, CSV_HEADERS):
            cell.text = text

        for i, entry in enumerate(report.entries, start=1):
            values = [
                entry.date,
                entry.start_time,
                entry.end_time or "In progress",
                fmt(entry.duration_ms),
                fmt(entry.break_ms),
                fmt(entry.net_work_ms),
            ]
            for cell, text in zip(table.rows[i].cells, values):
                cell.text = text

        self._bold_row(table.rows[0])
        doc.add_paragraph()  # spacing after table

    def _add_summary_table(self, doc, report: Report) -> None:
        fmt = TextFormatter.format_duration
        s = report.summary
        rows = [
            ("Total Duration", fmt(s.total_duration_ms)),
            ("Total Breaks", fmt(s.total_breaks_ms)),
            ("Total Net Work", fmt(s.total_net_work_ms)),
            ("Days Worked", str(s.days_worked)),
            ("Average Daily Work", fmt(s.average_daily_work_ms)),
        ]
        table = doc.add_table(rows=len(rows), cols=2)
        table.style = "Light Grid Accent 1"
        for row, (label, value) in zip(table.rows, rows):
            row.cells[0].text = label
            row.cells[1].text = value

    @staticmethod
    def _bold_row(row) -> None:
        for cell in row.cells:
            for paragraph in cell.paragraphs:
                for run in paragraph.runs:
                    run.bold = True
