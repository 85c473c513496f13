import logging
from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Form, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse

from ..api_client import BackendAPIClient, BackendError, get_backend_client
from ..dependencies import get_templates, require_roles
from ..navigation import ADMIN_ROLES, FINANCE_ROLE

router = APIRouter(
    prefix="/admin/finances",
    tags=["finance"],
)

templates = get_templates()

logger = logging.getLogger(__name__)

current_finance = require_roles(FINANCE_ROLE, *ADMIN_ROLES)

REPORT_TYPES = ("Weekly", "Monthly", "Yearly")
REPORT_CATEGORIES = ("Sales", "SalesWithTax", "SalesWithoutTax", "Inventory")
REPORTS_PAGE_SIZE = 10


def _as_list(data: Any) -> list[dict[str, Any]]:
    if isinstance(data, list):
        return [x for x in data if isinstance(x, dict)]
    return []


def _parse_int(value: str | None, default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


# ---------------------------------------------------------------------------
# DASHBOARD финансов
# ---------------------------------------------------------------------------


@router.get("", response_class=HTMLResponse)
async def finance_dashboard(
    request: Request,
    user: dict[str, Any] = Depends(current_finance),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    year = _parse_int(request.query_params.get("year"), date.today().year)

    summary: dict[str, Any] = {}
    monthly: list[dict[str, Any]] = []
    error_message: str | None = None

    try:
        data = await client.finance_summary()
        if isinstance(data, dict):
            summary = data
    except BackendError as e:
        logger.warning("Finance summary load failed: %s", e.message)
        error_message = "Could not load the financial summary."

    try:
        data = await client.finance_monthly_report(year)
        if isinstance(data, dict):
            data = data.get("monthlyData") or data.get("months")
        monthly = _as_list(data)
    except BackendError as e:
        logger.warning("Monthly report load failed: %s", e.message)
        error_message = error_message or "Could not load the monthly report."

    return templates.TemplateResponse(
        "finance/dashboard.html",
        {
            "request": request,
            "user": user,
            "summary": summary,
            "monthly": monthly,
            "year": year,
            "error_message": error_message,
        },
    )


# ---------------------------------------------------------------------------
# INVOICES / PAYMENTS
# ---------------------------------------------------------------------------


@router.get("/invoices", response_class=HTMLResponse)
async def finance_invoices(
    request: Request,
    user: dict[str, Any] = Depends(current_finance),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    status_filter = (request.query_params.get("status") or "").strip().lower() or None

    invoices: list[dict[str, Any]] = []
    error_message: str | None = None
    try:
        invoices = _as_list(await client.finance_invoices())
    except BackendError as e:
        logger.warning("Invoices load failed: %s", e.message)
        error_message = "Could not load invoices."

    if status_filter:
        invoices = [i for i in invoices if str(i.get("status") or "").lower() == status_filter]

    return templates.TemplateResponse(
        "finance/invoices.html",
        {
            "request": request,
            "user": user,
            "invoices": invoices,
            "status_filter": status_filter,
            "error_message": error_message,
        },
    )


@router.get("/payments", response_class=HTMLResponse)
async def finance_payments(
    request: Request,
    user: dict[str, Any] = Depends(current_finance),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    payments: list[dict[str, Any]] = []
    error_message: str | None = None
    try:
        payments = _as_list(await client.finance_payments())
    except BackendError as e:
        logger.warning("Payments load failed: %s", e.message)
        error_message = "Could not load payments."

    total = 0.0
    for p in payments:
        try:
            total += float(p.get("amount") or 0)
        except (TypeError, ValueError):
            continue

    return templates.TemplateResponse(
        "finance/payments.html",
        {
            "request": request,
            "user": user,
            "payments": payments,
            "total": total,
            "error_message": error_message,
        },
    )


# ---------------------------------------------------------------------------
# REPORTS
# ---------------------------------------------------------------------------


async def _render_reports(
    request: Request,
    user: dict[str, Any],
    client: BackendAPIClient,
    page: int = 1,
    error_message: str | None = None,
    form: dict[str, Any] | None = None,
) -> HTMLResponse:
    reports: list[dict[str, Any]] = []
    total_pages = 1

    try:
        data = await client.list_reports(page=page, page_size=REPORTS_PAGE_SIZE)
        if isinstance(data, dict):
            reports = _as_list(data.get("reports"))
            total_pages = max(1, _parse_int(str(data.get("totalPages") or 1), 1))
        else:
            reports = _as_list(data)
    except BackendError as e:
        logger.warning("Reports load failed: %s", e.message)
        error_message = error_message or "Could not load reports."

    return templates.TemplateResponse(
        "finance/reports.html",
        {
            "request": request,
            "user": user,
            "reports": reports,
            "page": page,
            "total_pages": total_pages,
            "report_types": REPORT_TYPES,
            "report_categories": REPORT_CATEGORIES,
            "form": form or {"report_type": "Monthly", "report_category": "Sales"},
            "error_message": error_message,
        },
        status_code=status.HTTP_400_BAD_REQUEST if form else status.HTTP_200_OK,
    )


@router.get("/reports", response_class=HTMLResponse)
async def finance_reports(
    request: Request,
    user: dict[str, Any] = Depends(current_finance),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    page = max(1, _parse_int(request.query_params.get("page"), 1))
    return await _render_reports(request, user, client, page)


@router.post("/reports/generate", response_class=HTMLResponse)
async def finance_report_generate(
    request: Request,
    user: dict[str, Any] = Depends(current_finance),
    client: BackendAPIClient = Depends(get_backend_client),
    report_type: str = Form(""),
    report_category: str = Form(""),
    start_date: str = Form(""),
    end_date: str = Form(""),
    notes: str = Form(""),
) -> HTMLResponse:
    form = {
        "report_type": report_type,
        "report_category": report_category,
        "start_date": start_date,
        "end_date": end_date,
        "notes": notes.strip(),
    }

    error_message: str | None = None
    if report_type not in REPORT_TYPES or report_category not in REPORT_CATEGORIES:
        error_message = "Please choose a report type and category."
    else:
        try:
            start = date.fromisoformat(start_date)
            end = date.fromisoformat(end_date)
        except ValueError:
            error_message = "Please enter valid start and end dates."
        else:
            if start >= end:
                error_message = "Start date must be before end date."

    if error_message:
        return await _render_reports(request, user, client, 1, error_message, form)

    try:
        report = await client.generate_report(
            {
                "reportType": report_type,
                "reportCategory": report_category,
                "startDate": start.isoformat(),
                "endDate": end.isoformat(),
                "notes": form["notes"] or None,
            }
        )
    except BackendError as e:
        return await _render_reports(request, user, client, 1, e.message, form)

    report_id = report.get("reportId") if isinstance(report, dict) else None
    target = f"/admin/finances/reports/{report_id}" if report_id else "/admin/finances/reports"
    return RedirectResponse(url=target, status_code=status.HTTP_303_SEE_OTHER)


@router.get("/reports/{report_id}", response_class=HTMLResponse)
async def finance_report_detail(
    report_id: int,
    request: Request,
    user: dict[str, Any] = Depends(current_finance),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    report = await client.get_report(report_id)

    return templates.TemplateResponse(
        "finance/report_detail.html",
        {"request": request, "user": user, "report": report or {}},
    )


@router.post("/reports/{report_id}/delete", response_class=HTMLResponse)
async def finance_report_delete(
    report_id: int,
    request: Request,
    user: dict[str, Any] = Depends(current_finance),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    try:
        await client.delete_report(report_id)
    except BackendError as e:
        return await _render_reports(request, user, client, 1, e.message)

    return RedirectResponse(url="/admin/finances/reports", status_code=status.HTTP_303_SEE_OTHER)
