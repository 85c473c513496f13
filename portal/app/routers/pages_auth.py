import logging
from typing import Any

from fastapi import APIRouter, Depends, Form, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse

from ..api_client import DEFAULT_ERROR_MESSAGE, BackendAPIClient, BackendError, get_backend_client
from ..config import settings
from ..dependencies import get_templates
from ..navigation import home_path_for_role, safe_next

router = APIRouter(tags=["auth"])
templates = get_templates()

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
NO_RESPONSE_MESSAGE = "No response from server. Please try again later."


def _set_auth_cookie(resp: RedirectResponse, token: str) -> None:
    resp.set_cookie(
        settings.AUTH_COOKIE_NAME,
        token,
        max_age=settings.AUTH_COOKIE_MAX_AGE,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.AUTH_COOKIE_SECURE,
    )


def _backend_message(e: BackendError, fallback: str) -> str:
    # 502: backend вообще не ответил
    if e.status_code == 502 and e.message == "Backend is unavailable":
        return NO_RESPONSE_MESSAGE
    if e.message and e.message != DEFAULT_ERROR_MESSAGE:
        return e.message
    return fallback


def _login_redirect(data: Any, next_url: str | None) -> RedirectResponse | None:
    """
    Собираем редирект после успешного login/register.
    None, если backend не вернул токен.
    """
    if not isinstance(data, dict):
        return None
    token = data.get("token")
    if not token:
        return None

    user = data.get("user") if isinstance(data.get("user"), dict) else {}
    target = safe_next(next_url) or home_path_for_role(user.get("role"))

    resp = RedirectResponse(url=target, status_code=status.HTTP_303_SEE_OTHER)
    _set_auth_cookie(resp, str(token))
    return resp


# --------------------------------------------------------------------
# Login
# --------------------------------------------------------------------


@router.get("/login", response_class=HTMLResponse)
async def login_get(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(
        "auth/login.html",
        {
            "request": request,
            "user": None,
            "error_message": None,
            "form": {"email": ""},
            "next": safe_next(request.query_params.get("next")),
        },
    )


@router.post("/login", response_class=HTMLResponse)
async def login_post(
    request: Request,
    client: BackendAPIClient = Depends(get_backend_client),
    email: str = Form(""),
    password: str = Form(""),
    next: str = Form(""),
) -> HTMLResponse:
    email = (email or "").strip()

    def _render(error_message: str) -> HTMLResponse:
        return templates.TemplateResponse(
            "auth/login.html",
            {
                "request": request,
                "user": None,
                "error_message": error_message,
                "form": {"email": email},
                "next": safe_next(next),
            },
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    if not email or "@" not in email:
        return _render("Please enter a valid email address.")
    if not password:
        return _render("Password is required.")

    try:
        data = await client.login(email, password)
    except BackendError as e:
        logger.info("Login failed for %s: %s", email, e.message)
        return _render(_backend_message(e, "Invalid email or password"))

    resp = _login_redirect(data, next)
    if resp is None:
        return _render("Invalid email or password")

    return resp


# --------------------------------------------------------------------
# Register
# --------------------------------------------------------------------


@router.get("/register", response_class=HTMLResponse)
async def register_get(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(
        "auth/register.html",
        {"request": request, "user": None, "error_message": None, "form": {}},
    )


@router.post("/register", response_class=HTMLResponse)
async def register_post(
    request: Request,
    client: BackendAPIClient = Depends(get_backend_client),
    username: str = Form(""),
    email: str = Form(""),
    name: str = Form(""),
    phone: str = Form(""),
    address: str = Form(""),
    password: str = Form(""),
    confirm_password: str = Form(""),
) -> HTMLResponse:
    form = {
        "username": username.strip(),
        "email": email.strip(),
        "name": name.strip(),
        "phone": phone.strip(),
        "address": address.strip(),
    }

    error_message: str | None = None
    if not form["username"] or not form["name"]:
        error_message = "Username and name are required."
    elif "@" not in form["email"]:
        error_message = "Please enter a valid email address."
    elif len(password) < MIN_PASSWORD_LENGTH:
        error_message = f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
    elif password != confirm_password:
        error_message = "Passwords do not match."

    if error_message is None:
        payload = {
            **form,
            "phone": form["phone"] or None,
            "address": form["address"] or None,
            "password": password,
            "confirmPassword": confirm_password,
        }
        try:
            data = await client.register(payload)
        except BackendError as e:
            error_message = _backend_message(e, "Registration failed")
        else:
            # Если backend сразу выдал токен, логиним, иначе на /login
            resp = _login_redirect(data, None)
            if resp is not None:
                return resp
            return RedirectResponse(url="/login", status_code=status.HTTP_303_SEE_OTHER)

    return templates.TemplateResponse(
        "auth/register.html",
        {"request": request, "user": None, "error_message": error_message, "form": form},
        status_code=status.HTTP_400_BAD_REQUEST,
    )


# --------------------------------------------------------------------
# Logout
# --------------------------------------------------------------------


@router.get("/logout")
@router.post("/logout")
async def logout(request: Request) -> RedirectResponse:
    resp = RedirectResponse(url="/login", status_code=status.HTTP_303_SEE_OTHER)
    resp.delete_cookie(settings.AUTH_COOKIE_NAME, path="/")
    return resp


# --------------------------------------------------------------------
# Password reset
# --------------------------------------------------------------------


@router.get("/forgot-password", response_class=HTMLResponse)
async def forgot_password_get(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(
        "auth/forgot_password.html",
        {"request": request, "user": None, "error_message": None, "sent": False},
    )


@router.post("/forgot-password", response_class=HTMLResponse)
async def forgot_password_post(
    request: Request,
    client: BackendAPIClient = Depends(get_backend_client),
    email: str = Form(""),
) -> HTMLResponse:
    email = email.strip()
    error_message: str | None = None
    sent = False

    if "@" not in email:
        error_message = "Please enter a valid email address."
    else:
        try:
            await client.request_password_reset(email)
            sent = True
        except BackendError as e:
            error_message = _backend_message(e, "Could not send reset link.")

    return templates.TemplateResponse(
        "auth/forgot_password.html",
        {"request": request, "user": None, "error_message": error_message, "sent": sent},
    )


@router.get("/reset-password", response_class=HTMLResponse)
async def reset_password_get(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(
        "auth/reset_password.html",
        {
            "request": request,
            "user": None,
            "error_message": None,
            "token": request.query_params.get("token") or "",
        },
    )


@router.post("/reset-password", response_class=HTMLResponse)
async def reset_password_post(
    request: Request,
    client: BackendAPIClient = Depends(get_backend_client),
    token: str = Form(""),
    new_password: str = Form(""),
    confirm_password: str = Form(""),
) -> HTMLResponse:
    error_message: str | None = None

    if not token:
        error_message = "Reset link is invalid."
    elif len(new_password) < MIN_PASSWORD_LENGTH:
        error_message = f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
    elif new_password != confirm_password:
        error_message = "Passwords do not match."
    else:
        try:
            await client.reset_password(token, new_password)
        except BackendError as e:
            error_message = _backend_message(e, "Could not reset password.")
        else:
            return RedirectResponse(url="/login", status_code=status.HTTP_303_SEE_OTHER)

    return templates.TemplateResponse(
        "auth/reset_password.html",
        {"request": request, "user": None, "error_message": error_message, "token": token},
        status_code=status.HTTP_400_BAD_REQUEST,
    )
