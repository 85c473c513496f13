from pathlib import Path
from typing import Any

from fastapi import Depends, HTTPException, Request, status
from fastapi.templating import Jinja2Templates

from .api_client import BackendAPIClient, get_backend_client
from .config import settings
from .navigation import role_label, sidebar_for_role

BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = BASE_DIR / "templates"

_templates: Jinja2Templates | None = None


def get_templates() -> Jinja2Templates:
    """
    Инициализация Jinja2Templates.

    Одна директория и одни globals (меню по роли, подписи ролей) на все роуты.
    """
    global _templates
    if _templates is None:
        _templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
        _templates.env.globals["sidebar_for_role"] = sidebar_for_role
        _templates.env.globals["role_label"] = role_label
        _templates.env.globals["settings"] = settings
    return _templates


async def get_current_user(
    request: Request,
    client: BackendAPIClient = Depends(get_backend_client),
) -> dict[str, Any]:
    """
    Текущий пользователь из /api/auth/me.
    Без токена -> 401 (обработчик в main.py уведёт на /login).
    """
    cached = getattr(request.state, "user", None)
    if cached is not None:
        return cached

    if not getattr(request.state, "token", None):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    user = await client.get_current_user()
    if not isinstance(user, dict):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    request.state.user = user
    return user


def require_roles(*roles: str):
    """
    Фабрика dependency: пускаем только перечисленные роли, иначе 403.
    """

    async def _dependency(user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
        if user.get("role") not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied",
            )
        return user

    return _dependency
