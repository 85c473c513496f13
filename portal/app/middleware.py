from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from .api_client import BackendAPIClient, BackendError
from .config import settings

logger = logging.getLogger(__name__)


class AuthTokenMiddleware(BaseHTTPMiddleware):
    """
    Достаём токен и кладём в request.state.token.

    Поддерживаем:
      - cookie: auth_token (основной сценарий, браузер)
      - header: Authorization: Bearer ... (мобильный клиент / прямые вызовы /api/*)
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        token: str | None = request.cookies.get(settings.AUTH_COOKIE_NAME) or None

        if token is None:
            auth = request.headers.get("authorization") or ""
            if auth.lower().startswith("bearer "):
                token = auth[7:].strip() or None

        request.state.token = token

        return await call_next(request)


class PendingReviewCache:
    """
    Кэш ответа PendingReviews по токену, чтобы не дёргать backend
    на каждый переход по кабинету.
    """

    def __init__(self, ttl_seconds: float) -> None:
        self.ttl_seconds = ttl_seconds
        self._items: dict[str, tuple[float, int]] = {}

    def get(self, token: str) -> int | None:
        item = self._items.get(token)
        if item is None:
            return None
        stored_at, count = item
        if time.monotonic() - stored_at >= self.ttl_seconds:
            self._items.pop(token, None)
            return None
        return count

    def set(self, token: str, count: int) -> None:
        if self.ttl_seconds <= 0:
            return
        now = time.monotonic()
        self._prune(now)
        self._items[token] = (now, count)

    def _prune(self, now: float) -> None:
        # токены, которые больше не приходят (logout, новый токен), иначе висят вечно
        expired = [t for t, (stored_at, _) in self._items.items() if now - stored_at >= self.ttl_seconds]
        for t in expired:
            del self._items[t]

    def __len__(self) -> int:
        return len(self._items)

    def invalidate(self, token: str | None) -> None:
        if token:
            self._items.pop(token, None)


class PendingReviewGuardMiddleware(BaseHTTPMiddleware):
    """
    Guard кабинета клиента: пока есть неоценённые завершённые заказы,
    любые /customer/* (кроме самих отзывов) уводят на /customer/reviews?forced=true.

    Любая ошибка backend'а НЕ блокирует пользователя: просто пропускаем дальше.
    """

    _GUARDED_PREFIX = "/customer/"

    _EXEMPT_PREFIXES = (
        "/api/",
        "/login",
        "/register",
        "/customer/reviews",
        "/static/",
        "/favicon.ico",
    )

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path or "/"

        if not path.startswith(self._GUARDED_PREFIX):
            return await call_next(request)

        if path.startswith(self._EXEMPT_PREFIXES):
            return await call_next(request)

        token = getattr(request.state, "token", None)
        if not token:
            return await call_next(request)

        pending = await self._pending_review_count(request, token)

        if pending > 0:
            return RedirectResponse(url="/customer/reviews?forced=true", status_code=302)

        return await call_next(request)

    async def _pending_review_count(self, request: Request, token: str) -> int:
        cache: PendingReviewCache | None = getattr(request.app.state, "pending_reviews_cache", None)

        if cache is not None:
            cached = cache.get(token)
            if cached is not None:
                return cached

        try:
            async with BackendAPIClient(
                token=token,
                transport=getattr(request.app.state, "backend_transport", None),
            ) as client:
                data = await client.pending_reviews()
            count = int((data or {}).get("pendingReviewCount") or 0)
        except (BackendError, TypeError, ValueError, AttributeError) as e:
            logger.warning("Pending reviews check failed, letting request through: %r", e)
            return 0

        if cache is not None:
            cache.set(token, count)

        return count
