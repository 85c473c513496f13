from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    BACKEND_API_URL: AnyHttpUrl | str = Field(
        default="http://localhost:5177",
        alias="backend_url",
    )
    BACKEND_TIMEOUT: float = 10.0

    # Откуда Safepay вернёт пользователя (success/cancel)
    PUBLIC_BASE_URL: str = "http://localhost:3000"

    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # ---------------------- Session cookie ----------------------
    AUTH_COOKIE_NAME: str = "auth_token"
    AUTH_COOKIE_MAX_AGE: int = 7 * 24 * 3600
    AUTH_COOKIE_SECURE: bool = False

    # ---------------------- UI ----------------------
    NOTIFICATIONS_POLL_SECONDS: int = 60
    PENDING_REVIEWS_CACHE_SECONDS: int = 60

    # ---------------------- Safepay ----------------------
    SAFEPAY_ENVIRONMENT: str = "sandbox"
    SAFEPAY_API_KEY: str = ""
    SAFEPAY_V1_SECRET: str = ""
    PAYMENT_CURRENCY: str = "PKR"


settings = Settings()
