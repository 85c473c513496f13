from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)

ADMIN_ROLES = ("super_admin", "admin")
MECHANIC_ROLE = "mechanic"
FINANCE_ROLE = "finance_officer"
CUSTOMER_ROLE = "customer"

ROLE_LABELS = {
    "super_admin": "Super Admin",
    "admin": "Admin",
    "mechanic": "Mechanic",
    "finance_officer": "Finance Officer",
    "service_agent": "Service Agent",
    "customer": "Customer",
}

# --------------------------------------------------------------------
# Меню по ролям
# --------------------------------------------------------------------

ADMIN_MENU: list[dict[str, Any]] = [
    {"title": "Dashboard", "url": "/admin/dashboard", "items": []},
    {
        "title": "Staff",
        "url": "#",
        "items": [
            {"title": "Add New Staff", "url": "/admin/users/create"},
            {"title": "View Staff", "url": "/admin/users"},
        ],
    },
    {
        "title": "Mechanics",
        "url": "#",
        "items": [
            {"title": "Active Mechanics", "url": "/admin/view-mechanics?tab=active"},
            {"title": "Performance", "url": "/admin/view-mechanics?tab=performance"},
            {"title": "Scheduled Services", "url": "/admin/view-mechanics?tab=scheduled"},
        ],
    },
    {
        "title": "Services",
        "url": "#",
        "items": [
            {"title": "View Services", "url": "/admin/services"},
            {"title": "Add Services", "url": "/admin/services/new"},
        ],
    },
    {
        "title": "Orders",
        "url": "#",
        "items": [
            {"title": "View Orders", "url": "/admin/orders"},
        ],
    },
    {
        "title": "Finance",
        "url": "#",
        "items": [
            {"title": "View Invoices", "url": "/admin/finances/invoices"},
            {"title": "View Payments", "url": "/admin/finances/payments"},
            {"title": "View Reports", "url": "/admin/finances/reports"},
        ],
    },
    {
        "title": "Inventory",
        "url": "#",
        "items": [
            {"title": "Manage Inventory", "url": "/admin/manage-inventory"},
        ],
    },
    {"title": "Notifications", "url": "/notifications", "items": []},
]

MECHANIC_MENU: list[dict[str, Any]] = [
    {"title": "Dashboard", "url": "/admin/mechanic", "items": []},
    {"title": "Appointments", "url": "/admin/mechanic/appointments", "items": []},
    {"title": "Services", "url": "/admin/mechanic/services", "items": []},
    {"title": "Notifications", "url": "/notifications", "items": []},
]

FINANCE_MENU: list[dict[str, Any]] = [
    {"title": "Dashboard", "url": "/admin/finances", "items": []},
    {"title": "Invoices", "url": "/admin/finances/invoices", "items": []},
    {"title": "Reports", "url": "/admin/finances/reports", "items": []},
    {"title": "Payments", "url": "/admin/finances/payments", "items": []},
    {"title": "Notifications", "url": "/notifications", "items": []},
]

CUSTOMER_MENU: list[dict[str, Any]] = [
    {"title": "Dashboard", "url": "/customer/dashboard", "items": []},
    {"title": "My Vehicles", "url": "/customer/vehicles", "items": []},
    {"title": "Services", "url": "/customer/service", "items": []},
    {"title": "Orders", "url": "/customer/orders", "items": []},
    {"title": "Reviews", "url": "/customer/reviews", "items": []},
    {"title": "Profile", "url": "/customer/profile", "items": []},
]


def sidebar_for_role(role: str | None) -> list[dict[str, Any]]:
    """
    Выбор меню по строке роли.
    Неизвестная роль -> админское меню (так же, как было в исходном UI).
    """
    if not role:
        return []

    if role in ADMIN_ROLES:
        return ADMIN_MENU
    if role == MECHANIC_ROLE:
        return MECHANIC_MENU
    if role == FINANCE_ROLE:
        return FINANCE_MENU
    if role == CUSTOMER_ROLE:
        return CUSTOMER_MENU

    logger.warning("Unrecognized user role: %r", role)
    return ADMIN_MENU


def home_path_for_role(role: str | None) -> str:
    if role in ADMIN_ROLES:
        return "/admin/dashboard"
    if role == MECHANIC_ROLE:
        return "/admin/mechanic"
    if role == FINANCE_ROLE:
        return "/admin/finances"
    return "/customer/dashboard"


def role_label(role: str | None) -> str:
    if not role:
        return "-"
    return ROLE_LABELS.get(role, role.replace("_", " ").title())


def safe_next(value: str | None) -> str | None:
    # Разрешаем только относительные пути
    nxt = (value or "").strip()
    if nxt.startswith("/") and not nxt.startswith("//"):
        return nxt
    return None
