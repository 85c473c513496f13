from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from ..api_client import BackendAPIClient, BackendError, get_backend_client
from ..dependencies import get_templates
from ..navigation import home_path_for_role

router = APIRouter(tags=["public"])
templates = get_templates()


@router.get("/", response_class=HTMLResponse)
async def index(
    request: Request,
    client: BackendAPIClient = Depends(get_backend_client),
) -> HTMLResponse:
    """
    Лендинг. Если сессия валидна, сразу в кабинет по роли.
    """
    if getattr(request.state, "token", None):
        try:
            user = await client.get_current_user()
        except BackendError:
            # Протухший токен или backend лёг: просто показываем лендинг
            user = None
        if isinstance(user, dict):
            return RedirectResponse(home_path_for_role(user.get("role")), status_code=302)

    return templates.TemplateResponse("public/landing.html", {"request": request, "user": None})


@router.head("/", response_class=HTMLResponse)
async def index_head(_: Request) -> HTMLResponse:
    return HTMLResponse("ok")


@router.get("/health", response_class=HTMLResponse)
async def health(_: Request) -> HTMLResponse:
    return HTMLResponse("ok")


@router.get("/unauthorized", response_class=HTMLResponse)
async def unauthorized(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(
        "public/unauthorized.html",
        {"request": request, "user": None},
        status_code=403,
    )
