import os
from pathlib import Path
from typing import List, Optional, Tuple

from dotenv import load_dotenv

from .plans import DEFAULT_FALLBACK_PLANS, FallbackPlan

DEFAULT_LEGACY_IDENTIFIER_FORMATS = ("user_{id}", "{id}", "user|{id}")


class Settings:
    """Centralised application configuration sourced from environment variables."""

    def __init__(self) -> None:
        load_dotenv()
        self.database_path = Path(os.getenv("DATABASE_PATH", "data/app.db")).resolve()
        self.stripe_secret_key = os.getenv("STRIPE_SECRET_KEY")
        self.stripe_webhook_secret = os.getenv("STRIPE_WEBHOOK_SECRET")
        self.stripe_webhook_tolerance = self._get_int("STRIPE_WEBHOOK_TOLERANCE", default=300)
        self.auth_jwt_secret = os.getenv("AUTH_JWT_SECRET")
        self.auth_jwks_url = os.getenv("AUTH_JWKS_URL")
        self.auth_jwt_issuer = os.getenv("AUTH_JWT_ISSUER")
        self.auth_jwt_audience = os.getenv("AUTH_JWT_AUDIENCE")
        self.frontend_base_url = os.getenv("FRONTEND_BASE_URL", "http://localhost:3000").rstrip("/")
        self.enable_debug_routes = self._get_bool("ENABLE_DEBUG_ROUTES", default=False)
        self.admin_api_token = os.getenv("ADMIN_API_TOKEN")
        self.legacy_identifier_formats = self._get_formats("LEGACY_IDENTIFIER_FORMATS")
        self.fallback_plans: Tuple[FallbackPlan, ...] = DEFAULT_FALLBACK_PLANS
        origins = os.getenv("CORS_ALLOW_ORIGINS")
        if origins:
            self.cors_allow_origins = [item.strip() for item in origins.split(",") if item.strip()]
        else:
            self.cors_allow_origins = ["*"]

    @staticmethod
    def _get_int(key: str, default: Optional[int] = None) -> int:
        value = os.getenv(key)
        if value is None:
            if default is None:
                raise RuntimeError(f"Missing required environment variable: {key}")
            return default
        try:
            return int(value)
        except ValueError as exc:
            raise RuntimeError(f"Environment variable {key} must be an integer") from exc

    @staticmethod
    def _get_bool(key: str, default: bool = False) -> bool:
        value = os.getenv(key)
        if value is None:
            return default
        return value.strip().lower() in ("1", "true", "yes", "on")

    @staticmethod
    def _get_formats(key: str) -> Tuple[str, ...]:
        value = os.getenv(key)
        if not value:
            return DEFAULT_LEGACY_IDENTIFIER_FORMATS
        formats: List[str] = [item.strip() for item in value.split(",") if item.strip()]
        for template in formats:
            if "{id}" not in template:
                raise RuntimeError(f"Environment variable {key} entries must contain '{{id}}'")
        return tuple(formats)
