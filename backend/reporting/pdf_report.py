"""Render CSV report text as a paginated PDF table."""

from __future__ import annotations

import logging
from datetime import date
from io import BytesIO
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, portrait
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.pdfgen.canvas import Canvas
from reportlab.platypus import Paragraph, SimpleDocTemplate, Table, TableStyle
from reportlab.platypus.doctemplate import LayoutError

from backend.reporting.csv_report import parse_csv
from shared.errors import NoDataError, ReportRenderingError


logger = logging.getLogger(__name__)

PAGE_SIZE = portrait(A4)
SIDE_MARGIN = 40
TITLE_OFFSET = 40
TABLE_TOP = 60
FOOTER_OFFSET = 20
BOTTOM_MARGIN = 40
CELL_FONT_SIZE = 7
CELL_LEADING = 9
CELL_PADDING = 6
# Rows cannot split across pages, so a cell never wraps past this many lines.
MAX_CELL_LINES = 30
TRUNCATION_MARKER = "..."


class _FooterCanvas(Canvas):
    def __init__(self, *args, generated_on: str, title: str, **kwargs):
        super().__init__(*args, **kwargs)
        self._generated_on = generated_on
        self._title = title
        self._saved_page_states: list[dict] = []

    def showPage(self) -> None:  # noqa: N802 (ReportLab API)
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self) -> None:
        page_count = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            if self._pageNumber == 1:
                self._draw_title()
            self._draw_footer(page_count=page_count)
            super().showPage()
        super().save()

    def _draw_title(self) -> None:
        _, page_height = self._pagesize
        self.setFont("Helvetica", 16)
        self.setFillColor(colors.black)
        self.drawString(SIDE_MARGIN, page_height - TITLE_OFFSET, self._title)

    def _draw_footer(self, *, page_count: int) -> None:
        self.setFont("Helvetica", 8)
        self.setFillColor(colors.HexColor("#969696"))
        self.drawString(
            SIDE_MARGIN,
            FOOTER_OFFSET,
            f"Generated on: {self._generated_on} | Page {self._pageNumber}/{page_count}",
        )


def _cell_char_limit(column_width: float) -> int:
    average_char_width = 0.55 * CELL_FONT_SIZE
    chars_per_line = max(int((column_width - 2 * CELL_PADDING) / average_char_width), 1)
    return chars_per_line * MAX_CELL_LINES


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: max(limit - len(TRUNCATION_MARKER), 0)].rstrip() + TRUNCATION_MARKER


def _build_table(headers: list[str], rows: list[list[str]]) -> Table:
    styles = getSampleStyleSheet()
    cell_style = ParagraphStyle(name="Cell", parent=styles["BodyText"], fontSize=CELL_FONT_SIZE, leading=CELL_LEADING)
    header_style = ParagraphStyle(
        name="HeaderCell",
        parent=cell_style,
        fontName="Helvetica-Bold",
        textColor=colors.white,
    )

    column_count = max(len(headers), *(len(row) for row in rows))
    column_width = (PAGE_SIZE[0] - 2 * SIDE_MARGIN) / column_count
    limit = _cell_char_limit(column_width)

    def _cells(values: list[str], style: ParagraphStyle) -> list[Paragraph]:
        padded = values + [""] * (column_count - len(values))
        return [Paragraph(escape(_truncate(cell, limit)), style) for cell in padded]

    table_data = [_cells(headers, header_style)]
    table_data.extend(_cells(row, cell_style) for row in rows)

    table = Table(table_data, colWidths=[column_width] * column_count, repeatRows=1)
    table_style: list[tuple] = [
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#2980BA")),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("TOPPADDING", (0, 0), (-1, -1), 4),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]
    for row_index in range(1, len(table_data)):
        if row_index % 2 == 0:
            table_style.append(("BACKGROUND", (0, row_index), (-1, row_index), colors.HexColor("#F5F5F5")))
    table.setStyle(TableStyle(table_style))
    return table


def generate_table_pdf(csv_text: str, title: str = "Report") -> bytes:
    """Render CSV text (header row first) as a striped A4 portrait table with page footers."""

    parsed = parse_csv(csv_text or "")
    if len(parsed) < 2:
        raise NoDataError("No data available for PDF generation")
    headers, rows = parsed[0], parsed[1:]

    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=PAGE_SIZE,
        leftMargin=SIDE_MARGIN,
        rightMargin=SIDE_MARGIN,
        topMargin=TABLE_TOP,
        bottomMargin=BOTTOM_MARGIN,
        title=title,
    )

    generated_on = date.today().isoformat()
    try:
        doc.build(
            [_build_table(headers, rows)],
            canvasmaker=lambda *args, **kwargs: _FooterCanvas(
                *args,
                generated_on=generated_on,
                title=title,
                **kwargs,
            ),
        )
    except LayoutError as exc:
        logger.exception("pdf_layout_failed title=%s rows=%s", title, len(rows))
        raise ReportRenderingError() from exc
    buffer.seek(0)
    return buffer.read()
