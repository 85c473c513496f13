import logging
import urllib.parse
from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from ..api_client import BackendAPIClient, BackendError, get_backend_client
from ..config import settings
from ..dependencies import get_current_user, get_templates
from ..notifications import sort_newest_first, unread_count

router = APIRouter(
    prefix="/notifications",
    tags=["notifications"],
)

templates = get_templates()

logger = logging.getLogger(__name__)


@router.get("", response_class=HTMLResponse)
async def notifications_page(
    request: Request,
    user: dict[str, Any] = Depends(get_current_user),
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    notifications: list[dict[str, Any]] = []
    # ошибка предыдущего действия (read / read-all / delete) приходит в ?error=
    error_message: str | None = request.query_params.get("error") or None

    try:
        notifications = sort_newest_first(await client.list_notifications())
    except BackendError as e:
        logger.warning("Notifications load failed: %s", e.message)
        error_message = "Failed to load notifications"

    return templates.TemplateResponse(
        "notifications/list.html",
        {
            "request": request,
            "user": user,
            "notifications": notifications,
            "unread_count": unread_count(notifications),
            "error_message": error_message,
        },
    )


@router.get("/feed", response_class=JSONResponse)
async def notifications_feed(
    request: Request,
    client: BackendAPIClient = Depends(get_backend_client),
) -> JSONResponse:
    """
    JSON для колокольчика в шапке: его опрашивает base.html
    раз в NOTIFICATIONS_POLL_SECONDS.
    """
    if not getattr(request.state, "token", None):
        return JSONResponse({"message": "Authentication required"}, status_code=401)

    # 401 от backend'а уйдёт в общий обработчик (cookie чистится)
    notifications = sort_newest_first(await client.list_notifications())

    return JSONResponse(
        {
            "unreadCount": unread_count(notifications),
            "notifications": notifications,
            "pollSeconds": settings.NOTIFICATIONS_POLL_SECONDS,
        }
    )



def _back_to_list(error: str | None = None) -> RedirectResponse:
    url = "/notifications"
    if error:
        url += "?" + urllib.parse.urlencode({"error": error})
    return RedirectResponse(url=url, status_code=status.HTTP_303_SEE_OTHER)


@router.post("/read-all")
async def notifications_mark_all_read(
    request: Request,
    user: dict[str, Any] = Depends(get_current_user),
    client: BackendAPIClient = Depends(get_backend_client),
) -> RedirectResponse:
    try:
        await client.mark_all_notifications_read()
    except BackendError as e:
        logger.warning("Mark all notifications read failed: %s", e.message)
        return _back_to_list(e.message)

    return _back_to_list()


@router.post("/{notification_id}/read")
async def notification_mark_read(
    notification_id: int,
    request: Request,
    user: dict[str, Any] = Depends(get_current_user),
    client: BackendAPIClient = Depends(get_backend_client),
) -> RedirectResponse:
    try:
        await client.mark_notification_read(notification_id)
    except BackendError as e:
        logger.warning("Mark notification %s read failed: %s", notification_id, e.message)
        return _back_to_list(e.message)

    return _back_to_list()


@router.post("/{notification_id}/delete")
async def notification_delete(
    notification_id: int,
    request: Request,
    user: dict[str, Any] = Depends(get_current_user),
    client: BackendAPIClient = Depends(get_backend_client),
) -> RedirectResponse:
    try:
        await client.delete_notification(notification_id)
    except BackendError as e:
        logger.warning("Delete notification %s failed: %s", notification_id, e.message)
        return _back_to_list(e.message)

    return _back_to_list()
