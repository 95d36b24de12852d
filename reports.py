# reports.py
from __future__ import annotations

import io
from datetime import datetime
from typing import Iterable

import pandas as pd
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from domain import TimeRecord
from services import WorkHoursCalculator
from utils import entries_to_dataframe, format_hours, usd

BORDER = colors.HexColor("#C7CCD6")


def dataframe_to_pdf(df: pd.DataFrame, title: str, summary_lines: list[str] | None = None) -> bytes:
    """Renders a table with a centred title and an optional boxed summary underneath."""
    buf = io.BytesIO()
    doc = SimpleDocTemplate(buf, pagesize=landscape(A4), topMargin=24, bottomMargin=24, leftMargin=24, rightMargin=24)
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(name="TitleCentered", parent=styles["Title"], alignment=TA_CENTER)
    summary_style = ParagraphStyle(
        name="Summary", parent=styles["Normal"], alignment=TA_CENTER,
        textColor=colors.black, fontSize=11, leading=13, spaceBefore=2, spaceAfter=2
    )

    story = [Paragraph(title, title_style), Spacer(1, 8)]
    if df.empty:
        story.append(Paragraph("No entries for this period.", styles["Normal"]))
    else:
        data = [list(df.columns)] + df.astype(str).values.tolist()
        table = Table(data, repeatRows=1, hAlign="CENTER")
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#F5F5F7")),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 10),
            ("ALIGN", (0, 0), (-1, -1), "CENTER"),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ("GRID", (0, 0), (-1, -1), 0.25, colors.HexColor("#E0E0E0")),
            ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.whitesmoke, colors.white]),
        ]))
        story.append(table)

    if summary_lines:
        story.append(Spacer(1, 12))
        box = Table(
            [[Paragraph(line, summary_style)] for line in summary_lines],
            colWidths=[min(520, 0.65 * doc.width)],
            hAlign="CENTER",
        )
        box.setStyle(TableStyle([
            ("ALIGN", (0, 0), (-1, -1), "CENTER"),
            ("BOX", (0, 0), (-1, -1), 0.6, BORDER),
            ("TOPPADDING", (0, 0), (-1, -1), 6),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
        ]))
        story.append(box)

    def draw_page_border(canvas, doc_obj):
        canvas.saveState()
        w, h = doc_obj.pagesize
        canvas.setStrokeColor(BORDER)
        canvas.setLineWidth(0.8)
        margin = 12
        canvas.rect(margin, margin, w - 2 * margin, h - 2 * margin)
        canvas.restoreState()

    doc.build(story, onFirstPage=draw_page_border, onLaterPages=draw_page_border)
    return buf.getvalue()


def timesheet_pdf(
    records: Iterable[TimeRecord],
    zone,
    title: str,
    now_utc: datetime,
    hourly_rate: float | None = None,
    calculator: WorkHoursCalculator | None = None,
) -> bytes:
    """Timesheet of closed shifts with total hours and, given a rate, estimated gross pay."""
    calc = calculator or WorkHoursCalculator()
    closed = calc.closed_records(records)
    total = sum(calc.worked_seconds(r, now_utc) for r in closed)

    lines = [f"Total hours: {format_hours(total)}"]
    if hourly_rate:
        lines.append(f"Estimated gross pay: {usd(calc.estimated_earnings(total, hourly_rate))}")
    df = entries_to_dataframe(closed, zone, now_utc, calculator=calc)
    return dataframe_to_pdf(df, title=title, summary_lines=lines)
