import asyncio
import logging
import urllib.parse
from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Form, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse

from ..api_client import BackendAPIClient, BackendError, get_backend_client
from ..dependencies import get_templates, require_roles
from ..navigation import ADMIN_ROLES, FINANCE_ROLE
from ..services.invoices import is_paid, unpack_invoice

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
)

templates = get_templates()

logger = logging.getLogger(__name__)

current_admin = require_roles(*ADMIN_ROLES)
current_admin_or_finance = require_roles(*ADMIN_ROLES, FINANCE_ROLE)

STAFF_ROLES = ("admin", "service_agent", "mechanic", "finance_officer")
ORDER_STATUSES = ("pending", "scheduled", "in progress", "awaiting parts", "completed", "cancelled")
MECHANIC_TABS = ("active", "performance", "scheduled")
TOOL_CONDITIONS = ("New", "Good", "Fair", "Poor")


def _as_list(data: Any) -> list[dict[str, Any]]:
    if isinstance(data, list):
        return [x for x in data if isinstance(x, dict)]
    return []


# ---------------------------------------------------------------------------
# ADMIN DASHBOARD
# ---------------------------------------------------------------------------


@router.get("/dashboard", response_class=HTMLResponse)
async def admin_dashboard(
    request: Request,
    user: dict[str, Any] = Depends(current_admin),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    """
    Дашборд админа: статистика + рейтинг мастерской.
    Рейтинг best-effort: страница не должна падать без него.
    """
    stats: dict[str, Any] = {}
    workshop_rating: dict[str, Any] | None = None
    error_message: str | None = None

    stats_res, rating_res = await asyncio.gather(
        client.admin_dashboard_stats(),
        client.workshop_rating(),
        return_exceptions=True,
    )

    if isinstance(stats_res, BackendError):
        logger.warning("Dashboard stats load failed: %s", stats_res.message)
        error_message = "Could not load dashboard statistics."
    elif isinstance(stats_res, BaseException):
        raise stats_res
    elif isinstance(stats_res, dict):
        stats = stats_res

    if isinstance(rating_res, dict):
        workshop_rating = rating_res
    elif isinstance(rating_res, BackendError):
        logger.info("Workshop rating load failed: %s", rating_res.message)
    elif isinstance(rating_res, BaseException):
        raise rating_res

    return templates.TemplateResponse(
        "admin/dashboard.html",
        {
            "request": request,
            "user": user,
            "stats": stats,
            "recent_orders": _as_list(stats.get("recentOrders")),
            "workshop_rating": workshop_rating,
            "error_message": error_message,
        },
    )


# ---------------------------------------------------------------------------
# USERS / STAFF
# ---------------------------------------------------------------------------


@router.get("/users", response_class=HTMLResponse)
async def admin_users(
    request: Request,
    user: dict[str, Any] = Depends(current_admin),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    role_filter = (request.query_params.get("role") or "").strip() or None

    users: list[dict[str, Any]] = []
    error_message: str | None = None

    try:
        users = _as_list(await client.list_users())
    except BackendError as e:
        logger.warning("Users load failed: %s", e.message)
        error_message = "Could not load users."

    roles = sorted({str(u.get("role")) for u in users if u.get("role")})
    if role_filter:
        users = [u for u in users if u.get("role") == role_filter]

    return templates.TemplateResponse(
        "admin/users.html",
        {
            "request": request,
            "user": user,
            "users": users,
            "roles": roles,
            "role_filter": role_filter,
            "error_message": error_message,
        },
    )


def _render_staff_form(
    request: Request,
    user: dict[str, Any],
    form: dict[str, Any],
    error_message: str | None = None,
) -> HTMLResponse:
    return templates.TemplateResponse(
        "admin/user_create.html",
        {
            "request": request,
            "user": user,
            "form": form,
            "staff_roles": STAFF_ROLES,
            "error_message": error_message,
        },
        status_code=status.HTTP_400_BAD_REQUEST if error_message else status.HTTP_200_OK,
    )


@router.get("/users/create", response_class=HTMLResponse)
async def admin_user_create_get(
    request: Request,
    user: dict[str, Any] = Depends(current_admin),
) -> HTMLResponse:
    return _render_staff_form(request, user, {"role": "mechanic"})


@router.post("/users/create", response_class=HTMLResponse)
async def admin_user_create_post(
    request: Request,
    user: dict[str, Any] = Depends(current_admin),
    client: BackendAPIClient = Depends(get_backend_client),
    username: str = Form(""),
    email: str = Form(""),
    name: str = Form(""),
    role: str = Form(""),
    phone: str = Form(""),
    address: str = Form(""),
    password: str = Form(""),
) -> HTMLResponse:
    form = {
        "username": username.strip(),
        "email": email.strip(),
        "name": name.strip(),
        "role": role.strip(),
        "phone": phone.strip(),
        "address": address.strip(),
    }

    if not form["username"] or not form["name"]:
        return _render_staff_form(request, user, form, "Username and name are required.")
    if "@" not in form["email"]:
        return _render_staff_form(request, user, form, "Please enter a valid email address.")
    if form["role"] not in STAFF_ROLES:
        return _render_staff_form(request, user, form, "Please choose a valid role.")
    if len(password) < 6:
        return _render_staff_form(request, user, form, "Password must be at least 6 characters.")

    try:
        await client.create_staff(
            {
                **form,
                "phone": form["phone"] or None,
                "address": form["address"] or None,
                "password": password,
            }
        )
    except BackendError as e:
        return _render_staff_form(request, user, form, e.message)

    return RedirectResponse(url="/admin/users", status_code=status.HTTP_303_SEE_OTHER)


@router.get("/users/{user_id}", response_class=HTMLResponse)
async def admin_user_detail(
    user_id: int,
    request: Request,
    user: dict[str, Any] = Depends(current_admin),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    target = await client.get_user(user_id)

    return templates.TemplateResponse(
        "admin/user_detail.html",
        {"request": request, "user": user, "target": target or {}, "error_message": None},
    )


@router.post("/users/{user_id}/delete", response_class=HTMLResponse)
async def admin_user_delete(
    user_id: int,
    request: Request,
    user: dict[str, Any] = Depends(current_admin),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    if user.get("userId") == user_id:
        target = await client.get_user(user_id)
        return templates.TemplateResponse(
            "admin/user_detail.html",
            {
                "request": request,
                "user": user,
                "target": target or {},
                "error_message": "You cannot delete your own account.",
            },
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    await client.delete_user(user_id)
    return RedirectResponse(url="/admin/users", status_code=status.HTTP_303_SEE_OTHER)


# ---------------------------------------------------------------------------
# ORDERS
# ---------------------------------------------------------------------------


@router.get("/orders", response_class=HTMLResponse)
async def admin_orders(
    request: Request,
    user: dict[str, Any] = Depends(current_admin),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    status_filter = (request.query_params.get("status") or "").strip().lower() or None

    orders: list[dict[str, Any]] = []
    error_message: str | None = None

    try:
        orders = _as_list(await client.list_orders())
    except BackendError as e:
        logger.warning("Orders load failed: %s", e.message)
        error_message = "Could not load orders."

    if status_filter:
        orders = [o for o in orders if str(o.get("status") or "").lower() == status_filter]

    orders.sort(key=lambda o: str(o.get("orderDate") or ""), reverse=True)

    return templates.TemplateResponse(
        "admin/orders.html",
        {
            "request": request,
            "user": user,
            "orders": orders,
            "statuses": ORDER_STATUSES,
            "status_filter": status_filter,
            "error_message": error_message,
        },
    )


async def _render_order(
    request: Request,
    user: dict[str, Any],
    client: BackendAPIClient,
    order_id: int,
    error_message: str | None = None,
) -> HTMLResponse:
    order = await client.get_order(order_id) or {}

    # Дата и слот берутся из осмотра заказа, по ним ищем свободных механиков
    inspection = order.get("inspection") if isinstance(order.get("inspection"), dict) else {}
    inspection_date = str(inspection.get("scheduledDate") or "")[:10]
    time_slot = inspection.get("timeSlot") or ""

    appointment: dict[str, Any] | None = None
    mechanics: list[dict[str, Any]] = []

    try:
        appointment = next(
            (a for a in _as_list(await client.list_appointments()) if a.get("orderId") == order_id),
            None,
        )
    except BackendError as e:
        logger.info("Appointments load failed for order %s: %s", order_id, e.message)

    if appointment is None and inspection_date and time_slot:
        try:
            mechanics = _as_list(await client.available_mechanics(inspection_date, time_slot, order_id))
        except BackendError as e:
            logger.info("Available mechanics load failed for order %s: %s", order_id, e.message)

    return templates.TemplateResponse(
        "admin/order_detail.html",
        {
            "request": request,
            "user": user,
            "order": order,
            "statuses": ORDER_STATUSES,
            "inspection_date": inspection_date,
            "time_slot": time_slot,
            "appointment": appointment,
            "mechanics": mechanics,
            "error_message": error_message,
        },
        status_code=status.HTTP_400_BAD_REQUEST if error_message else status.HTTP_200_OK,
    )


@router.get("/orders/{order_id}", response_class=HTMLResponse)
async def admin_order_detail(
    order_id: int,
    request: Request,
    user: dict[str, Any] = Depends(current_admin),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    return await _render_order(request, user, client, order_id)


@router.post("/orders/{order_id}/status", response_class=HTMLResponse)
async def admin_order_update_status(
    order_id: int,
    request: Request,
    user: dict[str, Any] = Depends(current_admin),
    client: BackendAPIClient = Depends(get_backend_client),
    order_status: str = Form(""),
    notes: str = Form(""),
) -> HTMLResponse:
    order_status = order_status.strip().lower()
    if order_status not in ORDER_STATUSES:
        return await _render_order(request, user, client, order_id, "Unknown order status.")

    try:
        await client.update_order(order_id, {"status": order_status, "notes": notes.strip() or None})
    except BackendError as e:
        return await _render_order(request, user, client, order_id, e.message)

    return RedirectResponse(url=f"/admin/orders/{order_id}", status_code=status.HTTP_303_SEE_OTHER)


@router.post("/orders/{order_id}/invoice", response_class=HTMLResponse)
async def admin_order_generate_invoice(
    order_id: int,
    request: Request,
    user: dict[str, Any] = Depends(current_admin),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    try:
        data = await client.generate_invoice(order_id)
    except BackendError as e:
        return await _render_order(request, user, client, order_id, e.message)

    invoice_id = None
    if isinstance(data, dict):
        invoice = data.get("invoice") if isinstance(data.get("invoice"), dict) else data
        invoice_id = invoice.get("invoiceId")

    if invoice_id:
        return RedirectResponse(url=f"/admin/invoices/{invoice_id}", status_code=status.HTTP_303_SEE_OTHER)
    return RedirectResponse(url=f"/admin/orders/{order_id}", status_code=status.HTTP_303_SEE_OTHER)


@router.post("/orders/{order_id}/appointment", response_class=HTMLResponse)
async def admin_order_assign_mechanic(
    order_id: int,
    request: Request,
    user: dict[str, Any] = Depends(current_admin),
    client: BackendAPIClient = Depends(get_backend_client),
    mechanic_id: str = Form(""),
    time_slot: str = Form(""),
    notes: str = Form(""),
) -> HTMLResponse:
    """
    Назначение механика. Дату backend берёт из осмотра заказа,
    слот передаём тот, что показан на странице.
    """
    mechanic_id = mechanic_id.strip()
    if not mechanic_id.isdigit():
        return await _render_order(request, user, client, order_id, "Please select a mechanic.")

    try:
        await client.create_appointment(
            {
                "orderId": order_id,
                "mechanicId": int(mechanic_id),
                "timeSlot": time_slot.strip() or None,
                "notes": notes.strip(),
            }
        )
    except BackendError as e:
        return await _render_order(request, user, client, order_id, e.message)

    return RedirectResponse(url=f"/admin/orders/{order_id}", status_code=status.HTTP_303_SEE_OTHER)


# ---------------------------------------------------------------------------
# SERVICES
# ---------------------------------------------------------------------------


async def _render_services(
    request: Request,
    user: dict[str, Any],
    client: BackendAPIClient,
    error_message: str | None = None,
) -> HTMLResponse:
    services: list[dict[str, Any]] = []
    try:
        services = _as_list(await client.list_services())
    except BackendError as e:
        logger.warning("Services load failed: %s", e.message)
        error_message = error_message or "Could not load services."

    return templates.TemplateResponse(
        "admin/services.html",
        {"request": request, "user": user, "services": services, "error_message": error_message},
    )


@router.get("/services", response_class=HTMLResponse)
async def admin_services(
    request: Request,
    user: dict[str, Any] = Depends(current_admin),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    return await _render_services(request, user, client)


@router.get("/services/new", response_class=HTMLResponse)
async def admin_service_new_get(
    request: Request,
    user: dict[str, Any] = Depends(current_admin),
) -> HTMLResponse:
    return templates.TemplateResponse(
        "admin/service_form.html",
        {"request": request, "user": user, "form": {}, "error_message": None},
    )


@router.post("/services/new", response_class=HTMLResponse)
async def admin_service_new_post(
    request: Request,
    user: dict[str, Any] = Depends(current_admin),
    client: BackendAPIClient = Depends(get_backend_client),
    service_name: str = Form(""),
    category: str = Form(""),
    sub_category: str = Form(""),
    price: str = Form(""),
    description: str = Form(""),
) -> HTMLResponse:
    form = {
        "service_name": service_name.strip(),
        "category": category.strip(),
        "sub_category": sub_category.strip(),
        "price": price.strip(),
        "description": description.strip(),
    }

    error_message: str | None = None
    price_value: float | None = None

    if not form["service_name"] or not form["category"]:
        error_message = "Service name and category are required."
    else:
        try:
            price_value = float(form["price"].replace(",", "."))
        except ValueError:
            error_message = "Price must be a number."
        else:
            if price_value < 0:
                error_message = "Price cannot be negative."

    if error_message is None:
        try:
            await client.create_service(
                {
                    "serviceName": form["service_name"],
                    "category": form["category"],
                    "subCategory": form["sub_category"] or None,
                    "price": price_value,
                    "description": form["description"] or None,
                }
            )
        except BackendError as e:
            error_message = e.message
        else:
            return RedirectResponse(url="/admin/services", status_code=status.HTTP_303_SEE_OTHER)

    return templates.TemplateResponse(
        "admin/service_form.html",
        {"request": request, "user": user, "form": form, "error_message": error_message},
        status_code=status.HTTP_400_BAD_REQUEST,
    )


@router.post("/services/{service_id}/delete", response_class=HTMLResponse)
async def admin_service_delete(
    service_id: int,
    request: Request,
    user: dict[str, Any] = Depends(current_admin),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    try:
        await client.delete_service(service_id)
    except BackendError as e:
        return await _render_services(request, user, client, e.message)

    return RedirectResponse(url="/admin/services", status_code=status.HTTP_303_SEE_OTHER)


# ---------------------------------------------------------------------------
# INVENTORY
# ---------------------------------------------------------------------------


def _render_inventory_form(
    request: Request,
    user: dict[str, Any],
    form: dict[str, Any],
    error_message: str | None = None,
) -> HTMLResponse:
    return templates.TemplateResponse(
        "admin/inventory_form.html",
        {
            "request": request,
            "user": user,
            "form": form,
            "conditions": TOOL_CONDITIONS,
            "error_message": error_message,
        },
        status_code=status.HTTP_400_BAD_REQUEST if error_message else status.HTTP_200_OK,
    )


@router.get("/manage-inventory", response_class=HTMLResponse)
async def admin_inventory(
    request: Request,
    user: dict[str, Any] = Depends(current_admin),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    tool_type = (request.query_params.get("type") or "").strip()

    items: list[dict[str, Any]] = []
    error_message: str | None = request.query_params.get("error") or None

    try:
        items = _as_list(await client.list_inventory())
    except BackendError as e:
        logger.warning("Inventory load failed: %s", e.message)
        error_message = error_message or "Could not load inventory."

    types = sorted({str(i.get("toolType")) for i in items if i.get("toolType")})
    if tool_type:
        items = [i for i in items if str(i.get("toolType") or "").lower() == tool_type.lower()]

    return templates.TemplateResponse(
        "admin/inventory.html",
        {
            "request": request,
            "user": user,
            "items": items,
            "types": types,
            "selected_type": tool_type,
            "error_message": error_message,
        },
    )


@router.get("/manage-inventory/new", response_class=HTMLResponse)
async def admin_inventory_new_get(
    request: Request,
    user: dict[str, Any] = Depends(current_admin),
) -> HTMLResponse:
    return _render_inventory_form(request, user, {"condition": "New", "quantity": "1"})


@router.post("/manage-inventory/new", response_class=HTMLResponse)
async def admin_inventory_new_post(
    request: Request,
    user: dict[str, Any] = Depends(current_admin),
    client: BackendAPIClient = Depends(get_backend_client),
    tool_name: str = Form(""),
    tool_type: str = Form(""),
    quantity: str = Form(""),
    condition: str = Form(""),
    price: str = Form(""),
    purchase_date: str = Form(""),
    vendor_name: str = Form(""),
) -> HTMLResponse:
    form = {
        "tool_name": tool_name.strip(),
        "tool_type": tool_type.strip(),
        "quantity": quantity.strip(),
        "condition": condition.strip(),
        "price": price.strip(),
        "purchase_date": purchase_date.strip(),
        "vendor_name": vendor_name.strip(),
    }

    if not form["tool_name"] or not form["tool_type"]:
        return _render_inventory_form(request, user, form, "Tool name and type are required.")

    if not form["quantity"].isdigit() or int(form["quantity"]) < 1:
        return _render_inventory_form(request, user, form, "Quantity must be at least 1.")

    if form["condition"] not in TOOL_CONDITIONS:
        return _render_inventory_form(request, user, form, "Please choose a condition.")

    try:
        price_value = float(form["price"].replace(",", "."))
    except ValueError:
        return _render_inventory_form(request, user, form, "Price must be a number.")
    if price_value < 0:
        return _render_inventory_form(request, user, form, "Price cannot be negative.")

    if form["purchase_date"]:
        try:
            date.fromisoformat(form["purchase_date"])
        except ValueError:
            return _render_inventory_form(request, user, form, "Purchase date is not a valid date.")

    try:
        created = await client.create_inventory(
            {
                "toolName": form["tool_name"],
                "toolType": form["tool_type"],
                "quantity": int(form["quantity"]),
                "condition": form["condition"],
                "price": price_value,
                "purchaseDate": form["purchase_date"] or None,
                "vendorName": form["vendor_name"] or None,
            }
        )
    except BackendError as e:
        return _render_inventory_form(request, user, form, e.message)

    tool_id = created.get("toolId") if isinstance(created, dict) else None
    target = f"/admin/manage-inventory/{tool_id}" if tool_id else "/admin/manage-inventory"
    return RedirectResponse(url=target, status_code=status.HTTP_303_SEE_OTHER)


@router.get("/manage-inventory/{tool_id}", response_class=HTMLResponse)
async def admin_inventory_detail(
    tool_id: int,
    request: Request,
    user: dict[str, Any] = Depends(current_admin),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    # 404 от backend'а уйдёт в общий обработчик BackendError
    item = await client.get_inventory(tool_id)
    item = item if isinstance(item, dict) else {}

    return templates.TemplateResponse(
        "admin/inventory_detail.html",
        {
            "request": request,
            "user": user,
            "item": item,
            "instances": _as_list(item.get("instances")),
            "error_message": request.query_params.get("error") or None,
        },
    )


def _back_to_tool(tool_id: int, error: str | None = None) -> RedirectResponse:
    url = f"/admin/manage-inventory/{tool_id}"
    if error:
        url += "?" + urllib.parse.urlencode({"error": error})
    return RedirectResponse(url=url, status_code=status.HTTP_303_SEE_OTHER)


@router.post("/manage-inventory/{tool_id}/toggle")
async def admin_inventory_toggle(
    tool_id: int,
    request: Request,
    user: dict[str, Any] = Depends(current_admin),
    client: BackendAPIClient = Depends(get_backend_client),
) -> RedirectResponse:
    try:
        await client.toggle_inventory_active(tool_id)
    except BackendError as e:
        return _back_to_tool(tool_id, e.message)
    return _back_to_tool(tool_id)


@router.post("/manage-inventory/{tool_id}/instances/{instance_id}")
async def admin_inventory_instance_update(
    tool_id: int,
    instance_id: int,
    request: Request,
    user: dict[str, Any] = Depends(current_admin),
    client: BackendAPIClient = Depends(get_backend_client),
    is_active: str = Form(""),
) -> RedirectResponse:
    try:
        await client.update_tool_instance(instance_id, is_active.strip().lower() in ("1", "true", "on"))
    except BackendError as e:
        return _back_to_tool(tool_id, e.message)
    return _back_to_tool(tool_id)


@router.post("/manage-inventory/{tool_id}/delete")
async def admin_inventory_delete(
    tool_id: int,
    request: Request,
    user: dict[str, Any] = Depends(current_admin),
    client: BackendAPIClient = Depends(get_backend_client),
) -> RedirectResponse:
    """Backend не удаляет, а гасит позицию и все её экземпляры."""
    try:
        await client.delete_inventory(tool_id)
    except BackendError as e:
        query = urllib.parse.urlencode({"error": e.message})
        return RedirectResponse(url=f"/admin/manage-inventory?{query}", status_code=status.HTTP_303_SEE_OTHER)
    return RedirectResponse(url="/admin/manage-inventory", status_code=status.HTTP_303_SEE_OTHER)


# ---------------------------------------------------------------------------
# MECHANICS
# ---------------------------------------------------------------------------


@router.get("/view-mechanics", response_class=HTMLResponse)
async def admin_view_mechanics(
    request: Request,
    user: dict[str, Any] = Depends(current_admin),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    tab = request.query_params.get("tab") or "active"
    if tab not in MECHANIC_TABS:
        tab = "active"

    mechanics: list[dict[str, Any]] = []
    appointments: list[dict[str, Any]] = []
    error_message: str | None = None

    try:
        mechanics = _as_list(await client.list_mechanics())
    except BackendError as e:
        logger.warning("Mechanics load failed: %s", e.message)
        error_message = "Could not load mechanics."

    if tab == "performance" and mechanics:
        # Рейтинги best-effort, параллельно по каждому механику
        async def _load_rating(mechanic: dict[str, Any]) -> None:
            mechanic_id = mechanic.get("userId")
            mechanic["rating"] = None
            if not mechanic_id:
                return
            try:
                mechanic["rating"] = await client.mechanic_rating(int(mechanic_id))
            except BackendError as e:
                logger.info("Rating load failed for mechanic %s: %s", mechanic_id, e.message)

        await asyncio.gather(*[_load_rating(m) for m in mechanics])

    if tab == "scheduled":
        try:
            appointments = _as_list(await client.list_appointments())
        except BackendError as e:
            logger.warning("Appointments load failed: %s", e.message)
            error_message = error_message or "Could not load scheduled services."

    return templates.TemplateResponse(
        "admin/mechanics.html",
        {
            "request": request,
            "user": user,
            "tab": tab,
            "mechanics": mechanics,
            "appointments": appointments,
            "error_message": error_message,
        },
    )


# ---------------------------------------------------------------------------
# INVOICES (админ и финансы)
# ---------------------------------------------------------------------------


@router.get("/invoices/{invoice_id}", response_class=HTMLResponse)
async def admin_invoice_detail(
    invoice_id: int,
    request: Request,
    user: dict[str, Any] = Depends(current_admin_or_finance),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    data = unpack_invoice(await client.get_invoice(invoice_id))

    return templates.TemplateResponse(
        "admin/invoice_detail.html",
        {
            "request": request,
            "user": user,
            **data,
            "is_paid": is_paid(data["invoice"]),
            "error_message": request.query_params.get("error"),
            "just_paid": request.query_params.get("paid") == "1",
        },
    )
