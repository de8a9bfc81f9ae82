"""
Application settings, read from the environment (and ``.env``) with pydantic-settings.
"""
import json
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Billing service settings.

    Only SECRET_KEY and DATABASE_URL are required. Without STRIPE_SECRET_KEY
    the service still quotes prices and validates coupons; checkout answers 503.
    """

    APP_NAME: str = "AssineSaude"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = True
    ENVIRONMENT: str = "development"
    UVICORN_PORT: int = 8000

    # JWT issued by the identity provider (HS256 shared secret)
    SECRET_KEY: str
    ALGORITHM: str = "HS256"

    DATABASE_URL: str
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 0

    # Only the coupon validation rate limiter uses Redis
    REDIS_URL: str = "redis://localhost:6379/0"
    COUPON_VALIDATE_RATE_LIMIT_PER_MINUTE: int = 20

    # Browser origins; also the allowlist for Stripe return URLs
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"
    ALLOWED_HOSTS: List[str] = ["localhost", "127.0.0.1"]
    FRONTEND_URL: str = "http://localhost:5173"
    # Página para onde o Stripe devolve o profissional (?checkout=success|canceled)
    CHECKOUT_RETURN_PATH: str = "/dashboard/professional"

    STRIPE_SECRET_KEY: str = ""
    STRIPE_CURRENCY: str = "brl"
    # JSON {"50-monthly": "price_...", ...}; vazio = tabela padrão de produção
    STRIPE_PRICE_IDS: str = ""
    # Cupom inválido bloqueia o checkout em vez de seguir sem desconto
    CHECKOUT_COUPON_FAIL_CLOSED: bool = False

    LOG_LEVEL: str = "INFO"
    # Empty = console only
    LOG_FILE: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def stripe_price_ids_override(self) -> dict[str, str]:
        """STRIPE_PRICE_IDS parsed into a plan_key -> price_id map."""
        if not self.STRIPE_PRICE_IDS.strip():
            return {}
        return {str(k): str(v) for k, v in json.loads(self.STRIPE_PRICE_IDS).items()}


settings = Settings()
