from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Any

import httpx
from fastapi import Request

from .config import settings

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "An error occurred"


def transform_response(data: Any) -> Any:
    """
    Backend (ASP.NET, ReferenceHandler.Preserve) отдаёт JSON вида
    {"$id": "1", "$values": [...]}. Убираем "$" из ключей и разворачиваем
    обёртку с values в обычный список.
    """
    if isinstance(data, list):
        return [transform_response(item) for item in data]

    if isinstance(data, dict):
        transformed: dict[str, Any] = {}
        for key, value in data.items():
            new_key = key[1:] if isinstance(key, str) and key.startswith("$") else key
            transformed[new_key] = transform_response(value)

        values = transformed.get("values")
        if isinstance(values, list):
            return values

        return transformed

    return data


class BackendError(Exception):
    """Любой не-2xx ответ backend'а (или backend недоступен)."""

    def __init__(self, status_code: int, message: str = DEFAULT_ERROR_MESSAGE, payload: Any = None) -> None:
        super().__init__(f"Backend error {status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.payload = payload


class BackendUnauthorized(BackendError):
    """401 от backend'а: токен протух или не валиден."""


def _error_message(payload: Any) -> str:
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("title")
        if isinstance(message, str) and message.strip():
            return message.strip()
    return DEFAULT_ERROR_MESSAGE


def _clean_params(params: dict[str, Any] | None) -> dict[str, Any] | None:
    # None выкидываем, bool -> "true"/"false"
    if not params:
        return None
    safe: dict[str, Any] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            safe[key] = "true" if value else "false"
        else:
            safe[key] = value
    return safe or None


class BackendAPIClient:
    """
    Тонкий клиент для общения с backend'ом MotoMate.

    - base_url и Bearer-токен проставляются один раз при создании;
    - все ответы прогоняются через transform_response;
    - любой не-2xx превращается в BackendError (401 -> BackendUnauthorized).
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ) -> None:
        self._base_url = (base_url or str(settings.BACKEND_API_URL)).rstrip("/")
        self.token = token

        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=timeout or settings.BACKEND_TIMEOUT,
            transport=transport,
        )

    async def __aenter__(self) -> "BackendAPIClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        try:
            resp = await self._client.request(method, path, json=json, params=_clean_params(params))
        except httpx.HTTPError as e:
            logger.error("Backend request failed: %s %s: %r", method, path, e)
            raise BackendError(502, "Backend is unavailable") from e

        if resp.status_code >= 400:
            try:
                payload = transform_response(resp.json())
            except ValueError:
                payload = resp.text
            message = _error_message(payload)

            if resp.status_code == 401:
                logger.info("Backend returned 401 for %s %s", method, path)
                raise BackendUnauthorized(401, message, payload)

            logger.warning("Backend error %s for %s %s: %s", resp.status_code, method, path, message)
            raise BackendError(resp.status_code, message, payload)

        if resp.status_code == 204 or not resp.content:
            return None

        if "application/json" in resp.headers.get("content-type", ""):
            return transform_response(resp.json())

        return resp.text

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Any = None, params: dict[str, Any] | None = None) -> Any:
        return await self.request("POST", path, json=json, params=params)

    async def put(self, path: str, json: Any = None) -> Any:
        return await self.request("PUT", path, json=json)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)

    # ------------------------------------------------------------------
    # AUTH
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> Any:
        return await self.post("/api/auth/login", {"email": email, "password": password})

    async def register(self, data: dict[str, Any]) -> Any:
        return await self.post("/api/auth/register", data)

    async def get_current_user(self) -> Any:
        return await self.get("/api/auth/me")

    async def update_profile(self, data: dict[str, Any]) -> Any:
        return await self.put("/api/auth/update", data)

    async def change_password(self, data: dict[str, Any]) -> Any:
        return await self.post("/api/auth/change-password", data)

    async def request_password_reset(self, email: str) -> Any:
        return await self.post("/api/auth/reset-password", {"email": email})

    async def reset_password(self, token: str, new_password: str) -> Any:
        return await self.post(
            "/api/auth/reset-password/confirm",
            {"token": token, "newPassword": new_password},
        )

    async def create_staff(self, data: dict[str, Any]) -> Any:
        return await self.post("/api/auth/admin/create-staff", data)

    # ------------------------------------------------------------------
    # USERS
    # ------------------------------------------------------------------

    async def list_users(self) -> Any:
        return await self.get("/api/Users")

    async def list_mechanics(self) -> Any:
        return await self.get("/api/Users/Mechanics")

    async def get_user(self, user_id: int) -> Any:
        return await self.get(f"/api/Users/{user_id}")

    async def delete_user(self, user_id: int) -> Any:
        return await self.delete(f"/api/Users/{user_id}")

    # ------------------------------------------------------------------
    # VEHICLES
    # ------------------------------------------------------------------

    async def list_vehicles(self) -> Any:
        return await self.get("/api/vehicles")

    async def get_vehicle(self, vehicle_id: int) -> Any:
        return await self.get(f"/api/vehicles/{vehicle_id}")

    async def create_vehicle(self, data: dict[str, Any]) -> Any:
        return await self.post("/api/vehicles", data)

    async def delete_vehicle(self, vehicle_id: int) -> Any:
        return await self.delete(f"/api/vehicles/{vehicle_id}")

    # ------------------------------------------------------------------
    # SERVICES (каталог услуг)
    # ------------------------------------------------------------------

    async def list_services(self, category: str | None = None) -> Any:
        if category:
            return await self.get(f"/api/services/category/{category}")
        return await self.get("/api/services")

    async def create_service(self, data: dict[str, Any]) -> Any:
        return await self.post("/api/services", data)

    async def delete_service(self, service_id: int) -> Any:
        return await self.delete(f"/api/services/{service_id}")

    # ------------------------------------------------------------------
    # ORDERS / APPOINTMENTS / TIME SLOTS
    # ------------------------------------------------------------------

    async def list_orders(self) -> Any:
        return await self.get("/api/Orders")

    async def list_my_orders(self) -> Any:
        return await self.get("/api/orders/user")

    async def get_order(self, order_id: int) -> Any:
        return await self.get(f"/api/Orders/{order_id}")

    async def create_order_with_inspection(self, data: dict[str, Any]) -> Any:
        return await self.post("/api/Orders/CreateWithInspection", data)

    async def update_order(self, order_id: int, data: dict[str, Any]) -> Any:
        return await self.put(f"/api/Orders/{order_id}", data)

    async def available_time_slots(self, date: str) -> Any:
        return await self.get("/api/TimeSlots/Available", params={"date": date})

    async def list_appointments(self) -> Any:
        return await self.get("/api/Appointments")

    async def get_appointment(self, appointment_id: int) -> Any:
        return await self.get(f"/api/Appointments/{appointment_id}")

    async def create_appointment(self, data: dict[str, Any]) -> Any:
        return await self.post("/api/Appointments", data)

    async def available_mechanics(self, date: str, time_slot: str, order_id: int | None = None) -> Any:
        return await self.get(
            "/api/Appointments/mechanics/available",
            params={"date": date, "timeSlot": time_slot, "orderId": order_id},
        )

    async def list_mechanic_services(self) -> Any:
        return await self.get("/api/MechanicServices")

    async def get_mechanic_service(self, transfer_id: int) -> Any:
        return await self.get(f"/api/MechanicServices/{transfer_id}")

    async def update_mechanic_service_status(self, transfer_id: int, status: str, notes: str | None = None) -> Any:
        return await self.put(
            f"/api/MechanicServices/{transfer_id}/update-status",
            {"status": status, "notes": notes},
        )

    # ------------------------------------------------------------------
    # Inventory (инструменты мастерской)
    # ------------------------------------------------------------------

    async def list_inventory(self) -> Any:
        return await self.get("/api/Inventory")

    async def get_inventory(self, tool_id: int) -> Any:
        return await self.get(f"/api/Inventory/{tool_id}")

    async def create_inventory(self, data: dict[str, Any]) -> Any:
        return await self.post("/api/Inventory", data)

    async def toggle_inventory_active(self, tool_id: int) -> Any:
        return await self.put(f"/api/Inventory/ToggleActive/{tool_id}", {})

    async def update_tool_instance(self, instance_id: int, is_active: bool) -> Any:
        return await self.put(f"/api/Inventory/Instance/{instance_id}", {"isActive": is_active})

    async def delete_inventory(self, tool_id: int) -> Any:
        return await self.delete(f"/api/Inventory/{tool_id}")

    # ------------------------------------------------------------------
    # INVOICES / PAYMENTS
    # ------------------------------------------------------------------

    async def get_invoice(self, invoice_id: int) -> Any:
        return await self.get(f"/api/Invoices/{invoice_id}")

    async def generate_invoice(self, order_id: int) -> Any:
        return await self.post(f"/api/Invoices/generate-from-order/{order_id}", {})

    async def process_cash_payment(self, invoice_id: int) -> Any:
        return await self.post("/api/Payments/process-cash-payment", {"invoiceId": invoice_id})

    async def process_safepay_payment(self, invoice_id: Any, transaction_id: str) -> Any:
        return await self.post(
            "/api/payments/process-safepay",
            {"invoiceId": invoice_id, "transactionId": transaction_id},
        )

    # ------------------------------------------------------------------
    # NOTIFICATIONS
    # ------------------------------------------------------------------

    async def list_notifications(self) -> Any:
        return await self.get("/api/notifications")

    async def mark_notification_read(self, notification_id: int) -> Any:
        return await self.put(f"/api/notifications/{notification_id}/markasread")

    async def mark_all_notifications_read(self) -> Any:
        return await self.put("/api/notifications/markallasread")

    async def delete_notification(self, notification_id: int) -> Any:
        return await self.delete(f"/api/notifications/{notification_id}")

    # ------------------------------------------------------------------
    # REVIEWS
    # ------------------------------------------------------------------

    async def pending_reviews(self) -> Any:
        return await self.get("/api/Reviews/PendingReviews")

    async def submit_review(self, data: dict[str, Any]) -> Any:
        return await self.post("/api/Reviews/SubmitOrderReview", data)

    async def mechanic_rating(self, mechanic_id: int) -> Any:
        return await self.get(f"/api/Reviews/MechanicRating/{mechanic_id}")

    async def workshop_rating(self) -> Any:
        return await self.get("/api/Reviews/WorkshopRating")

    # ------------------------------------------------------------------
    # DASHBOARDS / FINANCE / REPORTS
    # ------------------------------------------------------------------

    async def admin_dashboard_stats(self) -> Any:
        return await self.get("/api/admin/dashboard/stats")

    async def customer_dashboard(self) -> Any:
        return await self.get("/api/CustomerDashboard")

    async def finance_summary(self) -> Any:
        return await self.get("/api/Finance/summary")

    async def finance_invoices(self) -> Any:
        return await self.get("/api/Finance/invoices")

    async def finance_payments(self) -> Any:
        return await self.get("/api/Finance/payments")

    async def finance_monthly_report(self, year: int | None = None) -> Any:
        return await self.get("/api/Finance/reports/monthly", params={"year": year})

    async def list_reports(self, page: int = 1, page_size: int = 10) -> Any:
        return await self.get("/api/Reports", params={"page": page, "pageSize": page_size})

    async def get_report(self, report_id: int) -> Any:
        return await self.get(f"/api/Reports/{report_id}")

    async def generate_report(self, data: dict[str, Any]) -> Any:
        return await self.post("/api/Reports/generate", data)

    async def delete_report(self, report_id: int) -> Any:
        return await self.delete(f"/api/Reports/{report_id}")


async def get_backend_client(request: Request) -> AsyncGenerator[BackendAPIClient, None]:
    """
    FastAPI dependency: клиент с токеном текущего запроса.

    transport берём из app.state (в тестах туда кладётся httpx.MockTransport).
    """
    client = BackendAPIClient(
        token=getattr(request.state, "token", None),
        transport=getattr(request.app.state, "backend_transport", None),
    )
    try:
        yield client
    finally:
        await client.aclose()
