# config.py
# ============================================================================
# CASHFREE PAYMENT GATEWAY - CONFIGURATION
# ============================================================================
# All runtime settings come from the environment (optionally a .env file).
# The Cashfree client secret doubles as the webhook HMAC key and is never
# included in reprs or logs.
# ============================================================================

import os
from dataclasses import dataclass, field
from typing import List, Optional

CASHFREE_TEST_URL = "https://sandbox.cashfree.com/pg"
CASHFREE_PROD_URL = "https://api.cashfree.com/pg"

DEFAULT_API_VERSION = "2023-08-01"


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    """Service configuration."""

    # Database
    database_url: Optional[str] = None
    db_min_pool_size: int = 5
    db_max_pool_size: int = 30
    db_operation_timeout: float = 5.0
    db_list_timeout: float = 10.0

    # Cashfree
    cashfree_client_id: str = ""
    cashfree_client_secret: str = field(default="", repr=False)
    cashfree_environment: str = "TEST"
    cashfree_api_version: str = DEFAULT_API_VERSION
    cashfree_timeout: float = 30.0
    cashfree_max_retries: int = 3
    cashfree_retry_wait: float = 5.0

    # Server
    host: str = "0.0.0.0"
    port: int = 8080
    env: str = "development"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def cashfree_base_url(self) -> str:
        if self.cashfree_environment.upper() == "PROD":
            return CASHFREE_PROD_URL
        return CASHFREE_TEST_URL

    @property
    def webhook_secret(self) -> bytes:
        return self.cashfree_client_secret.encode("utf-8")

    @property
    def debug(self) -> bool:
        return self.env == "development"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL") or None,
            db_min_pool_size=int(os.getenv("DB_MIN_POOL_SIZE", "5")),
            db_max_pool_size=int(os.getenv("DB_MAX_POOL_SIZE", "30")),
            db_operation_timeout=float(os.getenv("DB_OPERATION_TIMEOUT", "5.0")),
            db_list_timeout=float(os.getenv("DB_LIST_TIMEOUT", "10.0")),
            cashfree_client_id=os.getenv("CASHFREE_CLIENT_ID", ""),
            cashfree_client_secret=os.getenv("CASHFREE_CLIENT_SECRET", ""),
            cashfree_environment=os.getenv("CASHFREE_ENVIRONMENT", "TEST"),
            cashfree_api_version=os.getenv("CASHFREE_API_VERSION", DEFAULT_API_VERSION),
            cashfree_timeout=float(os.getenv("CASHFREE_TIMEOUT", "30.0")),
            cashfree_max_retries=int(os.getenv("CASHFREE_MAX_RETRIES", "3")),
            cashfree_retry_wait=float(os.getenv("CASHFREE_RETRY_WAIT", "5.0")),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8080")),
            env=os.getenv("ENV", "development"),
            cors_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()],
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_json=_env_bool("LOG_JSON"),
        )
