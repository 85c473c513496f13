import logging
from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Form, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse

from ..api_client import BackendAPIClient, BackendError, get_backend_client
from ..dependencies import get_templates, require_roles
from ..navigation import CUSTOMER_ROLE

router = APIRouter(
    prefix="/customer",
    tags=["customer"],
)

templates = get_templates()

logger = logging.getLogger(__name__)

current_customer = require_roles(CUSTOMER_ROLE)

ORDER_STATUS_LABELS = {
    "pending": "Pending",
    "scheduled": "Scheduled",
    "in progress": "In Progress",
    "awaiting parts": "Awaiting Parts",
    "completed": "Completed",
    "cancelled": "Cancelled",
}


def _as_list(data: Any) -> list[dict[str, Any]]:
    if isinstance(data, list):
        return [x for x in data if isinstance(x, dict)]
    return []


# --------------------------------------------------------------------
# Dashboard
# --------------------------------------------------------------------


@router.get("/dashboard", response_class=HTMLResponse)
async def customer_dashboard(
    request: Request,
    user: dict[str, Any] = Depends(current_customer),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    dashboard: dict[str, Any] = {}
    error_message: str | None = None

    try:
        data = await client.customer_dashboard()
        if isinstance(data, dict):
            dashboard = data
    except BackendError as e:
        logger.warning("Customer dashboard load failed: %s", e.message)
        error_message = "Could not load your dashboard."

    return templates.TemplateResponse(
        "customer/dashboard.html",
        {
            "request": request,
            "user": user,
            "dashboard": dashboard,
            "vehicles": _as_list(dashboard.get("vehicles")),
            "recent_orders": _as_list(dashboard.get("recentOrders")),
            "invoices": _as_list(dashboard.get("invoices")),
            "status_labels": ORDER_STATUS_LABELS,
            "error_message": error_message,
        },
    )


# --------------------------------------------------------------------
# Vehicles
# --------------------------------------------------------------------


async def _render_vehicles(
    request: Request,
    user: dict[str, Any],
    client: BackendAPIClient,
    error_message: str | None = None,
    form: dict[str, Any] | None = None,
) -> HTMLResponse:
    vehicles: list[dict[str, Any]] = []
    try:
        vehicles = _as_list(await client.list_vehicles())
    except BackendError as e:
        logger.warning("Vehicles load failed: %s", e.message)
        error_message = error_message or "Could not load your vehicles."

    return templates.TemplateResponse(
        "customer/vehicles.html",
        {
            "request": request,
            "user": user,
            "vehicles": vehicles,
            "error_message": error_message,
            "form": form or {},
        },
        status_code=status.HTTP_400_BAD_REQUEST if form else status.HTTP_200_OK,
    )


@router.get("/vehicles", response_class=HTMLResponse)
async def vehicles_list(
    request: Request,
    user: dict[str, Any] = Depends(current_customer),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    return await _render_vehicles(request, user, client)


@router.post("/vehicles", response_class=HTMLResponse)
async def vehicle_create(
    request: Request,
    user: dict[str, Any] = Depends(current_customer),
    client: BackendAPIClient = Depends(get_backend_client),
    make: str = Form(""),
    model: str = Form(""),
    year: str = Form(""),
    license_plate: str = Form(""),
) -> HTMLResponse:
    form = {
        "make": make.strip(),
        "model": model.strip(),
        "year": year.strip(),
        "license_plate": license_plate.strip(),
    }

    error_message: str | None = None
    year_value: int | None = None
    max_year = date.today().year + 1

    if not form["make"] or not form["model"] or not form["license_plate"]:
        error_message = "Make, model and license plate are required."
    else:
        try:
            year_value = int(form["year"])
        except ValueError:
            error_message = "Year must be a number."
        else:
            if not 1900 <= year_value <= max_year:
                error_message = f"Year must be between 1900 and {max_year}."

    if error_message:
        return await _render_vehicles(request, user, client, error_message, form)

    try:
        await client.create_vehicle(
            {
                "make": form["make"],
                "model": form["model"],
                "year": year_value,
                "licensePlate": form["license_plate"],
            }
        )
    except BackendError as e:
        return await _render_vehicles(request, user, client, e.message, form)

    return RedirectResponse(url="/customer/vehicles", status_code=status.HTTP_303_SEE_OTHER)


@router.post("/vehicles/{vehicle_id}/delete", response_class=HTMLResponse)
async def vehicle_delete(
    vehicle_id: int,
    request: Request,
    user: dict[str, Any] = Depends(current_customer),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    try:
        await client.delete_vehicle(vehicle_id)
    except BackendError as e:
        return await _render_vehicles(request, user, client, e.message)

    return RedirectResponse(url="/customer/vehicles", status_code=status.HTTP_303_SEE_OTHER)


# --------------------------------------------------------------------
# Services (каталог)
# --------------------------------------------------------------------


@router.get("/service", response_class=HTMLResponse)
async def services_catalog(
    request: Request,
    user: dict[str, Any] = Depends(current_customer),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    category = (request.query_params.get("category") or "").strip() or None

    services: list[dict[str, Any]] = []
    error_message: str | None = None
    try:
        services = _as_list(await client.list_services(category))
    except BackendError as e:
        logger.warning("Services load failed: %s", e.message)
        error_message = "Could not load services."

    categories = sorted({str(s.get("category")) for s in services if s.get("category")})

    return templates.TemplateResponse(
        "customer/services.html",
        {
            "request": request,
            "user": user,
            "services": services,
            "categories": categories,
            "category": category,
            "error_message": error_message,
        },
    )


# --------------------------------------------------------------------
# Orders
# --------------------------------------------------------------------


@router.get("/orders", response_class=HTMLResponse)
async def orders_list(
    request: Request,
    user: dict[str, Any] = Depends(current_customer),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    orders: list[dict[str, Any]] = []
    error_message: str | None = None
    try:
        orders = _as_list(await client.list_my_orders())
    except BackendError as e:
        logger.warning("Orders load failed: %s", e.message)
        error_message = "Could not load your orders."

    orders.sort(key=lambda o: str(o.get("orderDate") or ""), reverse=True)

    return templates.TemplateResponse(
        "customer/orders.html",
        {
            "request": request,
            "user": user,
            "orders": orders,
            "status_labels": ORDER_STATUS_LABELS,
            "error_message": error_message,
        },
    )


INSPECTION_CATEGORY = "inspection"


def _split_services(services: list[dict[str, Any]]) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    """(виды осмотра, остальные услуги): осмотр = услуга с категорией inspection."""
    inspections: list[dict[str, Any]] = []
    extras: list[dict[str, Any]] = []
    for s in services:
        if str(s.get("category") or "").strip().lower() == INSPECTION_CATEGORY:
            inspections.append(s)
        else:
            extras.append(s)
    return inspections, extras


async def _render_order_form(
    request: Request,
    user: dict[str, Any],
    client: BackendAPIClient,
    form: dict[str, Any],
    error_message: str | None = None,
) -> HTMLResponse:
    vehicles: list[dict[str, Any]] = []
    inspection_types: list[dict[str, Any]] = []
    services: list[dict[str, Any]] = []
    time_slots: list[Any] = []

    try:
        vehicles = _as_list(await client.list_vehicles())
        inspection_types, services = _split_services(_as_list(await client.list_services()))
    except BackendError as e:
        logger.warning("Order form data load failed: %s", e.message)
        error_message = error_message or "Could not load your vehicles or services."

    # Слоты показываем только когда дата уже выбрана
    if form.get("inspection_date"):
        try:
            data = await client.available_time_slots(form["inspection_date"])
            if isinstance(data, dict):
                data = data.get("availableSlots") or data.get("timeSlots") or []
            if isinstance(data, list):
                time_slots = data
        except BackendError as e:
            logger.info("Time slots load failed: %s", e.message)

    return templates.TemplateResponse(
        "customer/order_form.html",
        {
            "request": request,
            "user": user,
            "vehicles": vehicles,
            "inspection_types": inspection_types,
            "services": services,
            "time_slots": time_slots,
            "form": form,
            "error_message": error_message,
        },
        status_code=status.HTTP_400_BAD_REQUEST if error_message else status.HTTP_200_OK,
    )


@router.get("/orders/new", response_class=HTMLResponse)
async def order_create_get(
    request: Request,
    user: dict[str, Any] = Depends(current_customer),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    form = {
        "vehicle_id": request.query_params.get("vehicle_id") or "",
        "inspection_type_id": request.query_params.get("inspection_type_id") or "",
        "service_id": request.query_params.get("service_id") or "",
        "inspection_date": request.query_params.get("inspection_date") or "",
        "time_slot": "",
        "notes": "",
    }
    return await _render_order_form(request, user, client, form)


@router.post("/orders/new", response_class=HTMLResponse)
async def order_create_post(
    request: Request,
    user: dict[str, Any] = Depends(current_customer),
    client: BackendAPIClient = Depends(get_backend_client),
    vehicle_id: str = Form(""),
    inspection_type_id: str = Form(""),
    service_id: str = Form(""),
    inspection_date: str = Form(""),
    time_slot: str = Form(""),
    notes: str = Form(""),
) -> HTMLResponse:
    """
    Заказ всегда начинается с осмотра: inspectionTypeId обязателен,
    дополнительная услуга (serviceId) по желанию.
    """
    form = {
        "vehicle_id": vehicle_id.strip(),
        "inspection_type_id": inspection_type_id.strip(),
        "service_id": service_id.strip(),
        "inspection_date": inspection_date.strip(),
        "time_slot": time_slot.strip(),
        "notes": notes.strip(),
    }

    error_message: str | None = None
    parsed_date: date | None = None

    if not form["vehicle_id"].isdigit():
        error_message = "Please select a vehicle."
    elif not form["inspection_type_id"].isdigit():
        error_message = "Please choose an inspection type."
    else:
        try:
            parsed_date = date.fromisoformat(form["inspection_date"])
        except ValueError:
            error_message = "Please pick an inspection date."
        else:
            if parsed_date < date.today():
                error_message = "Inspection date cannot be in the past."
            elif not form["time_slot"]:
                error_message = "Please pick a time slot."

    if form["service_id"] and not form["service_id"].isdigit():
        error_message = error_message or "Invalid service."

    if error_message:
        return await _render_order_form(request, user, client, form, error_message)

    try:
        inspection_types, _ = _split_services(_as_list(await client.list_services()))
    except BackendError as e:
        return await _render_order_form(request, user, client, form, e.message)

    inspection = next(
        (s for s in inspection_types if str(s.get("serviceId")) == form["inspection_type_id"]),
        None,
    )
    if inspection is None:
        return await _render_order_form(request, user, client, form, "Please choose an inspection type.")

    payload = {
        "vehicleId": int(form["vehicle_id"]),
        "inspectionTypeId": int(form["inspection_type_id"]),
        "subCategory": inspection.get("subCategory"),
        "serviceId": int(form["service_id"]) if form["service_id"] else None,
        "inspectionDate": parsed_date.isoformat(),
        "timeSlot": form["time_slot"],
        "notes": form["notes"],
        "includesInspection": True,
    }

    try:
        created = await client.create_order_with_inspection(payload)
    except BackendError as e:
        return await _render_order_form(request, user, client, form, e.message)

    order_id = created.get("orderId") if isinstance(created, dict) else None
    target = f"/customer/orders/{order_id}" if order_id else "/customer/orders"
    return RedirectResponse(url=target, status_code=status.HTTP_303_SEE_OTHER)


@router.get("/orders/{order_id}", response_class=HTMLResponse)
async def order_detail(
    order_id: int,
    request: Request,
    user: dict[str, Any] = Depends(current_customer),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    # 404/403 от backend'а уйдут в общий обработчик BackendError
    order = await client.get_order(order_id)

    return templates.TemplateResponse(
        "customer/order_detail.html",
        {
            "request": request,
            "user": user,
            "order": order or {},
            "status_labels": ORDER_STATUS_LABELS,
        },
    )


# --------------------------------------------------------------------
# Profile
# --------------------------------------------------------------------


async def _render_profile(
    request: Request,
    user: dict[str, Any],
    error_message: str | None = None,
    password_error: str | None = None,
    notice: str | None = None,
) -> HTMLResponse:
    failed = bool(error_message or password_error)
    return templates.TemplateResponse(
        "customer/profile.html",
        {
            "request": request,
            "user": user,
            "error_message": error_message,
            "password_error": password_error,
            "notice": notice,
        },
        status_code=status.HTTP_400_BAD_REQUEST if failed else status.HTTP_200_OK,
    )


@router.get("/profile", response_class=HTMLResponse)
async def profile_get(
    request: Request,
    user: dict[str, Any] = Depends(current_customer),
) -> HTMLResponse:
    notice = None
    if request.query_params.get("updated"):
        notice = "Profile updated."
    elif request.query_params.get("password_changed"):
        notice = "Password changed."
    return await _render_profile(request, user, notice=notice)


@router.post("/profile", response_class=HTMLResponse)
async def profile_post(
    request: Request,
    user: dict[str, Any] = Depends(current_customer),
    client: BackendAPIClient = Depends(get_backend_client),
    name: str = Form(""),
    email: str = Form(""),
    phone: str = Form(""),
    address: str = Form(""),
) -> HTMLResponse:
    name = name.strip()
    email = email.strip()

    if not name:
        return await _render_profile(request, user, error_message="Name cannot be empty.")
    if "@" not in email:
        return await _render_profile(request, user, error_message="Please enter a valid email address.")

    try:
        await client.update_profile(
            {"name": name, "email": email, "phone": phone.strip(), "address": address.strip()}
        )
    except BackendError as e:
        return await _render_profile(request, user, error_message=e.message)

    return RedirectResponse(url="/customer/profile?updated=1", status_code=status.HTTP_303_SEE_OTHER)


@router.post("/profile/password", response_class=HTMLResponse)
async def profile_change_password(
    request: Request,
    user: dict[str, Any] = Depends(current_customer),
    client: BackendAPIClient = Depends(get_backend_client),
    current_password: str = Form(""),
    new_password: str = Form(""),
    confirm_new_password: str = Form(""),
) -> HTMLResponse:
    if not current_password:
        return await _render_profile(request, user, password_error="Current password is required.")
    if len(new_password) < 6:
        return await _render_profile(request, user, password_error="Password must be at least 6 characters.")
    if new_password != confirm_new_password:
        return await _render_profile(request, user, password_error="Passwords do not match.")

    try:
        await client.change_password(
            {
                "currentPassword": current_password,
                "newPassword": new_password,
                "confirmNewPassword": confirm_new_password,
            }
        )
    except BackendError as e:
        return await _render_profile(request, user, password_error=e.message)

    return RedirectResponse(url="/customer/profile?password_changed=1", status_code=status.HTTP_303_SEE_OTHER)


# --------------------------------------------------------------------
# Reviews
# --------------------------------------------------------------------


async def _render_reviews(
    request: Request,
    user: dict[str, Any],
    client: BackendAPIClient,
    error_message: str | None = None,
) -> HTMLResponse:
    orders: list[dict[str, Any]] = []
    try:
        data = await client.pending_reviews()
        if isinstance(data, dict):
            orders = _as_list(data.get("orders"))
    except BackendError as e:
        logger.warning("Pending reviews load failed: %s", e.message)
        error_message = error_message or "Could not load pending reviews."

    return templates.TemplateResponse(
        "customer/reviews.html",
        {
            "request": request,
            "user": user,
            "orders": orders,
            "forced": request.query_params.get("forced") == "true" and bool(orders),
            "error_message": error_message,
        },
        status_code=status.HTTP_400_BAD_REQUEST if error_message else status.HTTP_200_OK,
    )


@router.get("/reviews", response_class=HTMLResponse)
async def reviews_page(
    request: Request,
    user: dict[str, Any] = Depends(current_customer),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    return await _render_reviews(request, user, client)


@router.post("/reviews/{order_id}", response_class=HTMLResponse)
async def review_submit(
    order_id: int,
    request: Request,
    user: dict[str, Any] = Depends(current_customer),
    client: BackendAPIClient = Depends(get_backend_client),
    mechanic_rating: int = Form(0),
    mechanic_comments: str = Form(""),
    workshop_rating: int = Form(0),
    workshop_comments: str = Form(""),
) -> HTMLResponse:
    if not 1 <= mechanic_rating <= 5:
        return await _render_reviews(request, user, client, "Please rate the mechanic from 1 to 5 stars.")
    if workshop_rating and not 1 <= workshop_rating <= 5:
        return await _render_reviews(request, user, client, "Workshop rating must be from 1 to 5 stars.")

    payload = {
        "orderId": order_id,
        "mechanicRating": mechanic_rating,
        "mechanicComments": mechanic_comments.strip() or None,
        "workshopRating": workshop_rating or None,
        "workshopComments": workshop_comments.strip() or None,
    }

    try:
        await client.submit_review(payload)
    except BackendError as e:
        return await _render_reviews(request, user, client, e.message)

    # После отзыва guard должен перепроверить, остались ли ещё заказы
    request.app.state.pending_reviews_cache.invalidate(getattr(request.state, "token", None))

    return RedirectResponse(url="/customer/reviews", status_code=status.HTTP_303_SEE_OTHER)
