"""Monthly municipal performance report as HTML and PDF.

Both renderings are built from the same section list: headline figures
for complaints and revenue, then per-category and per-department tables.
The HTML is for in-browser viewing and printing; the PDF is built with
ReportLab for download and archiving.
"""
from html import escape
from io import BytesIO
from typing import Any, Dict, List, Sequence, Tuple

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from civic_portal.core.config import settings
from civic_portal.utils.time import utcnow

PRIMARY = "#1F4E79"
ACCENT = "#2E86AB"

CSS = f"""
body {{ font-family: Arial, sans-serif; margin: 32px; color: #2b2b2b; }}
header {{ border-bottom: 4px solid {PRIMARY}; padding-bottom: 12px; margin-bottom: 24px; }}
header h1 {{ color: {PRIMARY}; margin: 0; }}
section {{ margin-bottom: 28px; }}
section h2 {{ color: {ACCENT}; font-size: 18px; }}
.figures {{ display: flex; flex-wrap: wrap; gap: 12px; }}
.figure {{ border: 1px solid #d0d7de; border-radius: 6px; padding: 10px 18px; min-width: 140px; }}
.figure span {{ display: block; font-size: 11px; color: #666; text-transform: uppercase; }}
.figure strong {{ font-size: 22px; color: {PRIMARY}; }}
table {{ border-collapse: collapse; width: 100%; }}
th {{ background: {PRIMARY}; color: #fff; text-align: left; padding: 8px; }}
td {{ border-bottom: 1px solid #ddd; padding: 6px 8px; }}
footer {{ color: #777; font-size: 11px; text-align: center; margin-top: 36px; }}
"""

Figures = List[Tuple[str, str]]
Rows = List[List[str]]


def _money(value: float) -> str:
    return f"{settings.currency} {value:,.2f}"


def _complaint_figures(summary: Dict[str, Any]) -> Figures:
    return [
        ("Submitted", str(summary["complaints_submitted"])),
        ("Resolved", str(summary["complaints_resolved"])),
        ("SLA compliance", f"{summary['sla_compliance']}%"),
        ("Avg resolution", f"{summary['average_resolution_hours']:.1f} h"),
    ]


def _revenue_figures(summary: Dict[str, Any]) -> Figures:
    return [
        ("Collected", _money(summary["revenue"])),
        ("Payments", str(summary["payments_count"])),
        ("Late fees", _money(summary["late_fees"])),
        ("Bills issued", str(summary["bills_issued"])),
    ]


def _category_table(summary: Dict[str, Any]) -> Tuple[List[str], Rows]:
    return ["Category", "Complaints"], [
        [row["category"], str(row["count"])] for row in summary.get("categories") or []
    ]


def _department_table(summary: Dict[str, Any]) -> Tuple[List[str], Rows]:
    return ["Department", "Total", "Resolved", "Rate", "Avg hours"], [
        [
            dept["name"],
            str(dept["total"]),
            str(dept["resolved"]),
            f"{dept['resolution_rate']:.1f}%",
            f"{dept['average_resolution_hours']:.1f}",
        ]
        for dept in summary.get("departments") or []
    ]


def _title(summary: Dict[str, Any]) -> str:
    if summary.get("scope") == "jurisdiction":
        return "Monthly Jurisdiction Report"
    return "Monthly Service Report"


# HTML

def _html_figures(title: str, figures: Figures) -> str:
    cells = "".join(
        f'<div class="figure"><span>{escape(label)}</span><strong>{escape(value)}</strong></div>'
        for label, value in figures
    )
    return f'<section><h2>{escape(title)}</h2><div class="figures">{cells}</div></section>'


def _html_table(title: str, headers: Sequence[str], rows: Rows) -> str:
    if not rows:
        return ""
    head = "".join(f"<th>{escape(h)}</th>" for h in headers)
    body = "".join("<tr>" + "".join(f"<td>{escape(c)}</td>" for c in row) + "</tr>" for row in rows)
    return (
        f"<section><h2>{escape(title)}</h2>"
        f"<table><thead><tr>{head}</tr></thead><tbody>{body}</tbody></table></section>"
    )


def generate_monthly_report_html(summary: Dict[str, Any]) -> str:
    """
    Render the monthly summary as a standalone HTML page.

    Args:
        summary: Output of ``analytics.get_monthly_summary``

    Returns:
        HTML string
    """
    period = escape(summary["period_label"])
    title = escape(_title(summary))
    parts = [
        _html_figures("Complaints", _complaint_figures(summary)),
        _html_figures("Revenue", _revenue_figures(summary)),
        _html_table("Complaints by category", *_category_table(summary)),
        _html_table("Department performance", *_department_table(summary)),
    ]
    return (
        "<!DOCTYPE html>\n"
        f'<html><head><meta charset="UTF-8"><title>{title} - {period}</title>'
        f"<style>{CSS}</style></head><body>"
        f"<header><h1>{title}</h1>"
        f"<p>{period} &middot; generated {utcnow():%d %B %Y}</p></header>"
        + "".join(parts)
        + "<footer>Civic Portal &middot; Municipal Services Division</footer></body></html>"
    )


# PDF

def _pdf_table(rows: Rows, widths: Sequence[float]) -> Table:
    table = Table(rows, colWidths=[w * inch for w in widths], repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor(PRIMARY)),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#F2F6FA")]),
        ("LINEBELOW", (0, 0), (-1, -1), 0.25, colors.grey),
        ("BOTTOMPADDING", (0, 0), (-1, 0), 8),
    ]))
    return table


def generate_monthly_report_pdf(summary: Dict[str, Any]) -> BytesIO:
    """Render the monthly summary as a PDF and return the buffer, rewound."""
    buffer = BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, title=f"{_title(summary)} {summary['period_label']}")
    styles = getSampleStyleSheet()
    heading = ParagraphStyle("Section", parent=styles["Heading2"], textColor=colors.HexColor(ACCENT))

    story = [
        Paragraph(_title(summary), ParagraphStyle(
            "ReportTitle", parent=styles["Title"], textColor=colors.HexColor(PRIMARY)
        )),
        Paragraph(f"{escape(summary['period_label'])} &middot; generated {utcnow():%d %B %Y}", styles["Normal"]),
        Spacer(1, 0.25 * inch),
    ]

    figures = [["Metric", "Value"]]
    figures += [[f"Complaints: {label.lower()}", value] for label, value in _complaint_figures(summary)]
    figures += [[f"Revenue: {label.lower()}", value] for label, value in _revenue_figures(summary)]
    story += [Paragraph("Overview", heading), _pdf_table(figures, [3, 2.5]), Spacer(1, 0.25 * inch)]

    for title, (headers, rows), widths in (
        ("Complaints by category", _category_table(summary), [3.5, 2]),
        ("Department performance", _department_table(summary), [2.2, 0.8, 0.9, 0.9, 1]),
    ):
        if rows:
            story += [Paragraph(title, heading), _pdf_table([headers] + rows, widths), Spacer(1, 0.25 * inch)]

    story.append(Paragraph(
        "Civic Portal", ParagraphStyle("Footer", parent=styles["Normal"], fontSize=8, textColor=colors.grey, alignment=1)
    ))
    doc.build(story)
    buffer.seek(0)
    return buffer
