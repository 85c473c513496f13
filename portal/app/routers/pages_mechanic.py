import logging
from typing import Any

from fastapi import APIRouter, Depends, Form, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse

from ..api_client import BackendAPIClient, BackendError, get_backend_client
from ..dependencies import get_templates, require_roles
from ..navigation import ADMIN_ROLES, MECHANIC_ROLE

router = APIRouter(
    prefix="/admin/mechanic",
    tags=["mechanic"],
)

templates = get_templates()

logger = logging.getLogger(__name__)

current_mechanic = require_roles(MECHANIC_ROLE, *ADMIN_ROLES)

# backend принимает только эти статусы (регистр не важен)
SERVICE_STATUSES = ("awaiting parts", "in progress", "completed")


def _as_list(data: Any) -> list[dict[str, Any]]:
    if isinstance(data, list):
        return [x for x in data if isinstance(x, dict)]
    return []


def _is_open(item: dict[str, Any]) -> bool:
    return str(item.get("status") or "").lower() not in ("completed", "cancelled")


# ---------------------------------------------------------------------------
# DASHBOARD механика
# ---------------------------------------------------------------------------


@router.get("", response_class=HTMLResponse)
async def mechanic_dashboard(
    request: Request,
    user: dict[str, Any] = Depends(current_mechanic),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    services: list[dict[str, Any]] = []
    appointments: list[dict[str, Any]] = []
    error_message: str | None = None

    try:
        services = _as_list(await client.list_mechanic_services())
        appointments = _as_list(await client.list_appointments())
    except BackendError as e:
        logger.warning("Mechanic dashboard load failed: %s", e.message)
        error_message = "Could not load your workload."

    rating: dict[str, Any] | None = None
    if user.get("userId"):
        try:
            rating = await client.mechanic_rating(int(user["userId"]))
        except BackendError as e:
            logger.info("Mechanic rating load failed: %s", e.message)

    return templates.TemplateResponse(
        "mechanic/dashboard.html",
        {
            "request": request,
            "user": user,
            "open_services": [s for s in services if _is_open(s)],
            "completed_count": sum(1 for s in services if not _is_open(s)),
            "upcoming_appointments": [a for a in appointments if _is_open(a)],
            "rating": rating,
            "error_message": error_message,
        },
    )


# ---------------------------------------------------------------------------
# APPOINTMENTS
# ---------------------------------------------------------------------------


@router.get("/appointments", response_class=HTMLResponse)
async def mechanic_appointments(
    request: Request,
    user: dict[str, Any] = Depends(current_mechanic),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    appointments: list[dict[str, Any]] = []
    error_message: str | None = None
    try:
        appointments = _as_list(await client.list_appointments())
    except BackendError as e:
        logger.warning("Appointments load failed: %s", e.message)
        error_message = "Could not load appointments."

    appointments.sort(key=lambda a: str(a.get("appointmentDate") or ""))

    return templates.TemplateResponse(
        "mechanic/appointments.html",
        {"request": request, "user": user, "appointments": appointments, "error_message": error_message},
    )


@router.get("/appointments/{appointment_id}", response_class=HTMLResponse)
async def mechanic_appointment_detail(
    appointment_id: int,
    request: Request,
    user: dict[str, Any] = Depends(current_mechanic),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    appointment = await client.get_appointment(appointment_id)

    return templates.TemplateResponse(
        "mechanic/appointment_detail.html",
        {"request": request, "user": user, "appointment": appointment or {}},
    )


# ---------------------------------------------------------------------------
# SERVICES (назначенные работы)
# ---------------------------------------------------------------------------


@router.get("/services", response_class=HTMLResponse)
async def mechanic_services(
    request: Request,
    user: dict[str, Any] = Depends(current_mechanic),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    services: list[dict[str, Any]] = []
    error_message: str | None = None
    try:
        services = _as_list(await client.list_mechanic_services())
    except BackendError as e:
        logger.warning("Mechanic services load failed: %s", e.message)
        error_message = "Could not load assigned services."

    return templates.TemplateResponse(
        "mechanic/services.html",
        {"request": request, "user": user, "services": services, "error_message": error_message},
    )


async def _render_service(
    request: Request,
    user: dict[str, Any],
    client: BackendAPIClient,
    transfer_id: int,
    error_message: str | None = None,
) -> HTMLResponse:
    service = await client.get_mechanic_service(transfer_id)
    return templates.TemplateResponse(
        "mechanic/service_detail.html",
        {
            "request": request,
            "user": user,
            "service": service or {},
            "statuses": SERVICE_STATUSES,
            "error_message": error_message,
        },
        status_code=status.HTTP_400_BAD_REQUEST if error_message else status.HTTP_200_OK,
    )


@router.get("/services/{transfer_id}", response_class=HTMLResponse)
async def mechanic_service_detail(
    transfer_id: int,
    request: Request,
    user: dict[str, Any] = Depends(current_mechanic),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    return await _render_service(request, user, client, transfer_id)


@router.post("/services/{transfer_id}/status", response_class=HTMLResponse)
async def mechanic_service_update_status(
    transfer_id: int,
    request: Request,
    user: dict[str, Any] = Depends(current_mechanic),
    client: BackendAPIClient = Depends(get_backend_client),
    service_status: str = Form(""),
    notes: str = Form(""),
) -> HTMLResponse:
    service_status = service_status.strip().lower()
    if service_status not in SERVICE_STATUSES:
        return await _render_service(
            request,
            user,
            client,
            transfer_id,
            f"Status must be one of: {', '.join(SERVICE_STATUSES)}",
        )

    try:
        await client.update_mechanic_service_status(transfer_id, service_status, notes.strip() or None)
    except BackendError as e:
        return await _render_service(request, user, client, transfer_id, e.message)

    return RedirectResponse(url=f"/admin/mechanic/services/{transfer_id}", status_code=status.HTTP_303_SEE_OTHER)
