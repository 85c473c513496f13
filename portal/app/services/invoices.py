from typing import Any

PAID_STATUS = "paid"


def unpack_invoice(data: Any) -> dict[str, Any]:
    """
    GET /api/Invoices/{id} отдаёт
    {"invoice": {...}, "invoiceItems": [...], "order", "vehicle", "customer", "mechanic"}.
    Старые ручки отдавали сам invoice без обёртки, поддерживаем оба варианта.
    """
    if not isinstance(data, dict):
        return {"invoice": {}, "items": [], "vehicle": None, "customer": None, "mechanic": None}

    invoice = data.get("invoice") if isinstance(data.get("invoice"), dict) else data

    items = data.get("invoiceItems")
    if not isinstance(items, list):
        items = invoice.get("invoiceItems") if isinstance(invoice.get("invoiceItems"), list) else []

    return {
        "invoice": invoice,
        "items": [i for i in items if isinstance(i, dict)],
        "vehicle": data.get("vehicle"),
        "customer": data.get("customer"),
        "mechanic": data.get("mechanic"),
    }


def is_paid(invoice: dict[str, Any]) -> bool:
    return str(invoice.get("status") or "").lower() == PAID_STATUS
