from __future__ import annotations

import logging
import urllib.parse
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from ..api_client import DEFAULT_ERROR_MESSAGE, BackendAPIClient, BackendError, get_backend_client
from ..config import settings
from ..dependencies import get_current_user, get_templates, require_roles
from ..navigation import ADMIN_ROLES, CUSTOMER_ROLE, FINANCE_ROLE
from ..services.invoices import is_paid, unpack_invoice
from ..services.safepay import SafepayClient, SafepayError, get_safepay

router = APIRouter(tags=["payments"])

templates = get_templates()

logger = logging.getLogger(__name__)

current_customer = require_roles(CUSTOMER_ROLE)
current_cashier = require_roles(*ADMIN_ROLES, FINANCE_ROLE)


def invoice_order_id(invoice_id: Any) -> str:
    return f"invoice-{invoice_id}"


def checkout_return_urls(invoice_id: Any) -> tuple[str, str]:
    """(cancel_url, redirect_url) для Safepay."""
    base = settings.PUBLIC_BASE_URL.rstrip("/")
    query = urllib.parse.urlencode({"invoice": invoice_id})
    return f"{base}/payment/cancel?{query}", f"{base}/payment/success?{query}"


def _payment_error(e: BackendError) -> str:
    if e.message == DEFAULT_ERROR_MESSAGE:
        return "Failed to process payment"
    return e.message


async def _read_json(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


# ---------------------------------------------------------------------------
# Proxy routes (JSON): create-payment -> create-checkout -> process-safepay
# ---------------------------------------------------------------------------


@router.post("/api/create-payment", response_class=JSONResponse)
async def create_payment(
    request: Request,
    safepay: SafepayClient = Depends(get_safepay),
) -> JSONResponse:
    body = await _read_json(request)
    amount = body.get("amount")
    currency = body.get("currency")

    if not amount or not currency:
        return JSONResponse({"error": "Amount and currency are required"}, status_code=400)

    try:
        token = await safepay.create_payment(amount, currency)
    except SafepayError:
        return JSONResponse({"error": "Failed to create payment"}, status_code=500)

    return JSONResponse({"token": token})


@router.post("/api/create-checkout", response_class=JSONResponse)
async def create_checkout(
    request: Request,
    safepay: SafepayClient = Depends(get_safepay),
) -> JSONResponse:
    body = await _read_json(request)
    token = body.get("token")
    order_id = body.get("orderId")
    invoice_id = body.get("invoiceId")

    if not token or not order_id:
        return JSONResponse({"error": "Token and orderId are required"}, status_code=400)

    cancel_url, redirect_url = checkout_return_urls(invoice_id)
    url = safepay.checkout_url(
        token=str(token),
        order_id=str(order_id),
        cancel_url=cancel_url,
        redirect_url=redirect_url,
    )
    return JSONResponse({"url": url})


@router.post("/api/payments/process-safepay", response_class=JSONResponse)
async def process_safepay(
    request: Request,
    client: BackendAPIClient = Depends(get_backend_client),
) -> JSONResponse:
    """
    Подтверждение оплаты на backend'е. Токен берётся из Authorization
    (мобильный клиент) или из cookie, это делает AuthTokenMiddleware.
    """
    body = await _read_json(request)
    invoice_id = body.get("invoiceId")
    transaction_id = body.get("transactionId")

    if not invoice_id or not transaction_id:
        return JSONResponse({"error": "InvoiceId and transactionId are required"}, status_code=400)

    logger.info("Processing payment for invoice #%s with transaction %s", invoice_id, transaction_id)

    # invoiceId уходит как пришёл, валидирует его backend
    try:
        data = await client.process_safepay_payment(invoice_id, str(transaction_id))
    except BackendError as e:
        return JSONResponse(
            {"success": False, "message": _payment_error(e)},
            status_code=e.status_code,
        )

    extra = data if isinstance(data, dict) else {}
    return JSONResponse(
        {
            "success": True,
            "message": "Payment processed successfully",
            **extra,
        }
    )


# ---------------------------------------------------------------------------
# Страница оплаты счёта (клиент)
# ---------------------------------------------------------------------------


def _render_pay_page(
    request: Request,
    user: dict[str, Any],
    data: dict[str, Any],
    error_message: str | None = None,
) -> HTMLResponse:
    return templates.TemplateResponse(
        "payments/pay_invoice.html",
        {
            "request": request,
            "user": user,
            **data,
            "is_paid": is_paid(data["invoice"]),
            "currency": settings.PAYMENT_CURRENCY,
            "error_message": error_message,
        },
        status_code=status.HTTP_400_BAD_REQUEST if error_message else status.HTTP_200_OK,
    )


@router.get("/customer/invoice/pay/{invoice_id}", response_class=HTMLResponse)
async def pay_invoice_get(
    invoice_id: int,
    request: Request,
    user: dict[str, Any] = Depends(current_customer),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    data = unpack_invoice(await client.get_invoice(invoice_id))
    return _render_pay_page(request, user, data)


@router.post("/customer/invoice/pay/{invoice_id}", response_class=HTMLResponse)
async def pay_invoice_post(
    invoice_id: int,
    request: Request,
    user: dict[str, Any] = Depends(current_customer),
    client: BackendAPIClient = Depends(get_backend_client),
    safepay: SafepayClient = Depends(get_safepay),
) -> HTMLResponse:
    """
    Три последовательных шага без ретраев:
    1) токен платежа, 2) URL checkout'а, 3) редирект на Safepay.
    """
    data = unpack_invoice(await client.get_invoice(invoice_id))
    invoice = data["invoice"]

    if is_paid(invoice):
        return _render_pay_page(request, user, data, "This invoice has already been paid.")

    amount = invoice.get("totalAmount")
    if not amount:
        return _render_pay_page(request, user, data, "Invoice amount is missing.")

    try:
        token = await safepay.create_payment(amount, settings.PAYMENT_CURRENCY)
    except SafepayError as e:
        return _render_pay_page(request, user, data, str(e))

    cancel_url, redirect_url = checkout_return_urls(invoice_id)
    url = safepay.checkout_url(
        token=token,
        order_id=invoice_order_id(invoice_id),
        cancel_url=cancel_url,
        redirect_url=redirect_url,
    )
    return RedirectResponse(url=url, status_code=status.HTTP_303_SEE_OTHER)


# ---------------------------------------------------------------------------
# Возврат с Safepay
# ---------------------------------------------------------------------------


def _transaction_id(request: Request) -> str:
    # Safepay может приклеить "?..." к token, отрезаем
    token = request.query_params.get("token") or ""
    if "?" in token:
        token = token.split("?", 1)[0]
    return token or request.query_params.get("tracker") or request.query_params.get("reference") or "safepay_payment"


@router.get("/payment/success", response_class=HTMLResponse)
async def payment_success(
    request: Request,
    user: dict[str, Any] = Depends(get_current_user),
    client: BackendAPIClient = Depends(get_backend_client),
    safepay: SafepayClient = Depends(get_safepay),
) -> HTMLResponse:
    invoice_id = (request.query_params.get("invoice") or "").strip()
    success = False
    error_message: str | None = None

    tracker = request.query_params.get("tracker")
    signature = request.query_params.get("sig")

    if not invoice_id.isdigit():
        error_message = "Missing invoice information"
    elif tracker and signature and not safepay.verify_signature(tracker, signature):
        logger.warning("Safepay signature mismatch for invoice #%s", invoice_id)
        error_message = "Payment signature could not be verified"
    else:
        try:
            data = await client.process_safepay_payment(int(invoice_id), _transaction_id(request))
            if isinstance(data, dict) and data.get("success") is False:
                error_message = data.get("message") or "Payment processing failed"
            else:
                success = True
        except BackendError as e:
            error_message = _payment_error(e)

    return templates.TemplateResponse(
        "payments/result.html",
        {
            "request": request,
            "user": user,
            "success": success,
            "cancelled": False,
            "invoice_id": invoice_id,
            "error_message": error_message,
        },
    )


@router.get("/payment/cancel", response_class=HTMLResponse)
async def payment_cancel(
    request: Request,
    user: dict[str, Any] = Depends(get_current_user),
) -> HTMLResponse:
    return templates.TemplateResponse(
        "payments/result.html",
        {
            "request": request,
            "user": user,
            "success": False,
            "cancelled": True,
            "invoice_id": request.query_params.get("invoice") or "",
            "error_message": None,
        },
    )


# ---------------------------------------------------------------------------
# Оплата наличными (админ / финансы)
# ---------------------------------------------------------------------------


@router.post("/admin/invoices/{invoice_id}/cash-payment")
async def cash_payment(
    invoice_id: int,
    request: Request,
    user: dict[str, Any] = Depends(current_cashier),
    client: BackendAPIClient = Depends(get_backend_client),
) -> RedirectResponse:
    try:
        await client.process_cash_payment(invoice_id)
    except BackendError as e:
        query = urllib.parse.urlencode({"error": e.message})
        return RedirectResponse(url=f"/admin/invoices/{invoice_id}?{query}", status_code=status.HTTP_303_SEE_OTHER)

    return RedirectResponse(url=f"/admin/invoices/{invoice_id}?paid=1", status_code=status.HTTP_303_SEE_OTHER)
