from typing import Any

UNREAD = "unread"


def unread_count(notifications: Any) -> int:
    if not isinstance(notifications, list):
        return 0
    return sum(
        1
        for n in notifications
        if isinstance(n, dict) and n.get("status") == UNREAD
    )


def sort_newest_first(notifications: Any) -> list[dict[str, Any]]:
    if not isinstance(notifications, list):
        return []
    items = [n for n in notifications if isinstance(n, dict)]
    # ISO-даты сравниваются строками корректно
    items.sort(key=lambda n: str(n.get("createdAt") or ""), reverse=True)
    return items
