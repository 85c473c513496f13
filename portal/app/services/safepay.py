from __future__ import annotations

import hashlib
import hmac
import logging
import urllib.parse
from typing import Any

import httpx
from fastapi import Request

from ..config import settings

logger = logging.getLogger(__name__)

API_HOSTS = {
    "sandbox": "https://sandbox.api.getsafepay.com",
    "production": "https://api.getsafepay.com",
}

CHECKOUT_HOSTS = {
    "sandbox": "https://sandbox.api.getsafepay.com",
    "production": "https://getsafepay.com",
}


class SafepayError(Exception):
    pass


class SafepayClient:
    """
    Тонкая обёртка над Safepay checkout API.

    Повторяет то, что делает официальный SDK:
      - payments.create  -> POST /order/v1/init, из ответа берём data.token
      - checkout.create  -> просто собирает URL /components?... (без запросов)
      - verify.signature -> HMAC-SHA256(tracker, v1_secret)
    """

    def __init__(
        self,
        api_key: str = "",
        v1_secret: str = "",
        environment: str = "sandbox",
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 10.0,
    ) -> None:
        if environment not in API_HOSTS:
            raise ValueError(f"Unknown Safepay environment: {environment!r}")

        self.api_key = api_key
        self.v1_secret = v1_secret
        self.environment = environment
        self._transport = transport
        self._timeout = timeout

    @classmethod
    def from_settings(cls) -> "SafepayClient":
        return cls(
            api_key=settings.SAFEPAY_API_KEY,
            v1_secret=settings.SAFEPAY_V1_SECRET,
            environment=settings.SAFEPAY_ENVIRONMENT,
        )

    @property
    def api_base_url(self) -> str:
        return API_HOSTS[self.environment]

    @property
    def checkout_base_url(self) -> str:
        return CHECKOUT_HOSTS[self.environment]

    async def create_payment(self, amount: float, currency: str) -> str:
        payload = {
            "client": self.api_key,
            "amount": amount,
            "currency": currency,
            "environment": self.environment,
        }

        try:
            async with httpx.AsyncClient(
                base_url=self.api_base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                resp = await client.post("/order/v1/init", json=payload)
                resp.raise_for_status()
                data: Any = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Safepay: failed to create payment: %r", e)
            raise SafepayError("Failed to create payment") from e

        token = ((data or {}).get("data") or {}).get("token") if isinstance(data, dict) else None
        if not token:
            logger.error("Safepay: init response without token: %r", data)
            raise SafepayError("Failed to create payment")

        return str(token)

    def checkout_url(
        self,
        token: str,
        order_id: str,
        cancel_url: str,
        redirect_url: str,
        source: str = "custom",
        webhooks: bool = True,
    ) -> str:
        params = {
            "env": self.environment,
            "beacon": token,
            "order_id": order_id,
            "source": source,
            "redirect_url": redirect_url,
            "cancel_url": cancel_url,
        }
        if webhooks:
            params["webhooks"] = "true"

        return f"{self.checkout_base_url}/components?{urllib.parse.urlencode(params)}"

    def verify_signature(self, tracker: str, signature: str) -> bool:
        expected = hmac.new(
            self.v1_secret.encode("utf-8"),
            tracker.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return hmac.compare_digest(expected, signature or "")


def get_safepay(request: Request) -> SafepayClient:
    """
    FastAPI dependency. Клиент создаётся один раз в create_app()
    и лежит в app.state.safepay.
    """
    return request.app.state.safepay
