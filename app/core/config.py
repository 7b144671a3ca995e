
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Backend REST que expone eventos, órdenes y promociones
    API_BASE_URL: str = "http://localhost:4000/api"
    APP_BASE_URL: str = "http://localhost:3000"  # URL del frontend para return/cancel URLs
    HTTP_TIMEOUT_SECONDS: float = 10.0

    REDIS_URL: str = "redis://redis:6379/0"

    # Stripe Configuration
    STRIPE_PUBLISHABLE_KEY: str = ""
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""

    # Paystack Configuration
    PAYSTACK_PUBLIC_KEY: str = ""
    PAYSTACK_SECRET_KEY: str = ""
    PAYSTACK_WEBHOOK_SECRET: str = ""  # si está vacío se firma con PAYSTACK_SECRET_KEY
    PAYSTACK_BASE_URL: str = "https://api.paystack.co"

    # Checkout
    HOLD_DURATION_MINUTES: int = 10
    POLL_INTERVAL_SECONDS: float = 2.0
    POLL_MAX_ATTEMPTS: int = 10
    PAYMENT_LEDGER_TTL_SECONDS: int = 60 * 60 * 24 * 30  # 30 días

    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignorar campos extra en .env que no están en el modelo

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def paystack_webhook_secret(self) -> str:
        return self.PAYSTACK_WEBHOOK_SECRET or self.PAYSTACK_SECRET_KEY

settings = Settings()
