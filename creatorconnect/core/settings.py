from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Mapping, Optional

from .errors import ConfigurationError

REQUIRED_ENV_VARS = ("JWT_SECRET", "MONGODB_URI")


def _flag(value: str) -> bool:
    return value not in ("0", "false", "False", "")


@dataclass(frozen=True)
class Settings:
    # Required
    jwt_secret: str = ""
    mongodb_uri: str = ""

    # Database
    mongodb_db: str = ""
    mongodb_timeout_ms: int = 5000

    # HTTP
    frontend_url: str = "http://localhost:3000"
    host: str = "0.0.0.0"
    port: int = 5000
    node_env: str = ""

    # Auth
    jwt_algorithm: str = "HS256"

    # Observability
    log_level: str = "INFO"
    metrics_enabled: bool = True

    # Stripe (webhook verification only)
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""

    default_currency: str = "USD"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> Settings:
        env = os.environ if env is None else env
        return cls(
            jwt_secret=env.get("JWT_SECRET", ""),
            mongodb_uri=env.get("MONGODB_URI", ""),
            mongodb_db=env.get("MONGODB_DB", ""),
            mongodb_timeout_ms=int(env.get("MONGODB_TIMEOUT_MS", "5000")),
            frontend_url=env.get("FRONTEND_URL", "http://localhost:3000").rstrip("/"),
            host=env.get("HOST", "0.0.0.0"),
            port=int(env.get("PORT", "5000")),
            node_env=env.get("NODE_ENV", ""),
            jwt_algorithm=env.get("JWT_ALGORITHM", "HS256"),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            metrics_enabled=_flag(env.get("METRICS_ENABLED", "1")),
            stripe_secret_key=env.get("STRIPE_SECRET_KEY", ""),
            stripe_webhook_secret=env.get("STRIPE_WEBHOOK_SECRET", ""),
            default_currency=env.get("DEFAULT_CURRENCY", "usd").upper(),
        )

    @property
    def is_development(self) -> bool:
        return self.node_env == "development"

    def missing_required(self) -> List[str]:
        values = {"JWT_SECRET": self.jwt_secret, "MONGODB_URI": self.mongodb_uri}
        return [name for name in REQUIRED_ENV_VARS if not values[name].strip()]

    def validate(self) -> None:
        missing = self.missing_required()
        if missing:
            raise ConfigurationError(missing)
