import logging
import logging.config
import os
import urllib.parse
from pathlib import Path

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api_client import BackendError, BackendUnauthorized
from .config import settings
from .dependencies import get_templates
from .middleware import AuthTokenMiddleware, PendingReviewCache, PendingReviewGuardMiddleware
from .routers import (
    pages_admin,
    pages_auth,
    pages_customer,
    pages_finance,
    pages_mechanic,
    pages_notifications,
    pages_public,
    payments,
)
from .services.safepay import SafepayClient

BASE_DIR = Path(__file__).resolve().parent
STATIC_DIR = BASE_DIR / "static"

logger = logging.getLogger(__name__)

# JSON-ручки: им отвечаем JSON'ом, а не редиректом на /login
_JSON_PREFIXES = ("/api/",)
_JSON_PATHS = ("/notifications/feed",)


def setup_logging(service_name: str) -> dict:
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    log_dir = os.getenv("LOG_DIR", "/app/logs")
    log_to_file = os.getenv("LOG_TO_FILE", "0").lower() in ("1", "true", "yes", "on")

    max_bytes = int(os.getenv("LOG_MAX_BYTES", "10485760"))  # 10MB
    backup_count = int(os.getenv("LOG_BACKUP_COUNT", "5"))

    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": "default",
        }
    }

    root_handlers = ["console"]

    if log_to_file:
        Path(log_dir).mkdir(parents=True, exist_ok=True)

        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": "default",
            "filename": str(Path(log_dir) / f"{service_name}.log"),
            "maxBytes": max_bytes,
            "backupCount": backup_count,
            "encoding": "utf-8",
        }
        handlers["file_error"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "ERROR",
            "formatter": "default",
            "filename": str(Path(log_dir) / f"{service_name}.error.log"),
            "maxBytes": max_bytes,
            "backupCount": backup_count,
            "encoding": "utf-8",
        }
        root_handlers.extend(["file", "file_error"])

    cfg = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s"}
        },
        "handlers": handlers,
        "root": {"level": log_level, "handlers": root_handlers},
        "loggers": {
            "uvicorn": {"level": log_level, "handlers": root_handlers, "propagate": False},
            "uvicorn.error": {"level": log_level, "handlers": root_handlers, "propagate": False},
            "uvicorn.access": {"level": log_level, "handlers": ["console"], "propagate": False},
            "httpx": {"level": "WARNING", "handlers": root_handlers, "propagate": False},
        },
    }

    logging.config.dictConfig(cfg)
    return cfg


def _wants_json(request: Request) -> bool:
    path = request.url.path or "/"
    return path.startswith(_JSON_PREFIXES) or path in _JSON_PATHS


def _clear_auth_cookie(resp: Response) -> None:
    resp.delete_cookie(settings.AUTH_COOKIE_NAME, path="/")


async def backend_unauthorized_handler(request: Request, exc: BackendUnauthorized) -> Response:
    # Токен больше не валиден: чистим cookie и уводим на логин
    if _wants_json(request):
        resp: Response = JSONResponse({"message": exc.message}, status_code=401)
    else:
        resp = RedirectResponse(url="/login", status_code=303)
    _clear_auth_cookie(resp)
    return resp


async def backend_error_handler(request: Request, exc: BackendError) -> Response:
    status_code = exc.status_code if 400 <= exc.status_code < 600 else 502
    if _wants_json(request):
        return JSONResponse({"message": exc.message}, status_code=status_code)

    return get_templates().TemplateResponse(
        "error.html",
        {
            "request": request,
            "user": getattr(request.state, "user", None),
            "status_code": status_code,
            "error_message": exc.message,
        },
        status_code=status_code,
    )


async def auth_http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    if not _wants_json(request):
        if exc.status_code == 401:
            next_path = request.url.path
            if request.url.query:
                next_path = f"{next_path}?{request.url.query}"
            safe = urllib.parse.quote(next_path, safe="/?:=&")
            return RedirectResponse(url=f"/login?next={safe}", status_code=303)

        if exc.status_code == 403:
            return RedirectResponse(url="/unauthorized", status_code=303)

    return await http_exception_handler(request, exc)


def create_app(
    backend_transport: httpx.AsyncBaseTransport | None = None,
    safepay: SafepayClient | None = None,
) -> FastAPI:
    app = FastAPI(
        title="MotoMate Portal",
        debug=settings.DEBUG,
    )

    # None в проде; в тестах сюда кладётся httpx.MockTransport
    app.state.backend_transport = backend_transport
    app.state.safepay = safepay or SafepayClient.from_settings()
    app.state.pending_reviews_cache = PendingReviewCache(settings.PENDING_REVIEWS_CACHE_SECONDS)

    # Статика (CSS/JS)
    if STATIC_DIR.exists():
        app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")

    # Порядок: последний добавленный middleware выполняется первым,
    # поэтому AuthTokenMiddleware добавляем ПОСЛЕ guard'а.
    app.add_middleware(PendingReviewGuardMiddleware)
    app.add_middleware(AuthTokenMiddleware)

    app.add_exception_handler(BackendUnauthorized, backend_unauthorized_handler)
    app.add_exception_handler(BackendError, backend_error_handler)
    app.add_exception_handler(StarletteHTTPException, auth_http_exception_handler)

    app.include_router(pages_public.router)
    app.include_router(pages_auth.router)
    app.include_router(pages_customer.router)
    app.include_router(pages_admin.router)
    app.include_router(pages_mechanic.router)
    app.include_router(pages_finance.router)
    app.include_router(pages_notifications.router)
    app.include_router(payments.router)

    return app


LOG_CONFIG = setup_logging("portal")

app = create_app()


def run() -> None:
    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        log_level=os.getenv("LOG_LEVEL", "INFO").lower(),
        log_config=LOG_CONFIG,  # чтобы uvicorn.access шёл в те же handlers
    )


if __name__ == "__main__":
    run()
