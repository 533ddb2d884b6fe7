"""Shared router helpers."""
from dataclasses import dataclass
from typing import Any, Dict, List

from fastapi import Query
from fastapi.responses import HTMLResponse, Response, StreamingResponse

from civic_portal.services import reports
from civic_portal.services.common import MAX_PAGE_SIZE, clamp_page
from civic_portal.utils.time import utcnow


@dataclass
class Pagination:
    page: int
    page_size: int


def pagination(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
) -> Pagination:
    return Pagination(*clamp_page(page, page_size))


def page_response(items: List[Any], total: int, paging: Pagination) -> Dict[str, Any]:
    return {"data": items, "total": total, "page": paging.page, "page_size": paging.page_size}


def report_response(summary: Dict[str, Any], format: str, filename_prefix: str = "civic_report"):
    """Monthly summary as raw JSON, an HTML page or a PDF download."""
    if format == "json":
        return summary
    if format == "pdf":
        filename = f"{filename_prefix}_{summary['year']}_{summary['month']:02d}.pdf"
        return StreamingResponse(
            reports.generate_monthly_report_pdf(summary),
            media_type="application/pdf",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )
    return HTMLResponse(content=reports.generate_monthly_report_html(summary))


def csv_response(csv_data: str, filename_prefix: str = "complaints") -> Response:
    return Response(
        content=csv_data,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename_prefix}_{utcnow():%Y%m%d}.csv"},
    )
