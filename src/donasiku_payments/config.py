"""Environment-driven configuration.

Every setting is read with ``os.getenv`` once per invocation and frozen into
pydantic models, so a sweep over many transactions works from one snapshot.
A variable ``X`` may also be provided as ``VITE_X``.
"""

import os
from typing import Optional

from pydantic import BaseModel, Field

DUITKU_SANDBOX_URL = "https://sandbox.duitku.com/webapi/api/merchant"
DUITKU_PRODUCTION_URL = "https://passport.duitku.com/webapi/api/merchant"


def get_env(key: str, default: str = "") -> str:
    """Read an environment variable, falling back to its ``VITE_`` alias."""
    return os.getenv(key) or os.getenv(f"VITE_{key}") or default


def _env_int(key: str, default: int) -> int:
    raw = get_env(key)
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    raw = get_env(key)
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


class DuitkuConfig(BaseModel):
    """Credentials and endpoint for the Duitku merchant API."""
    merchant_code: str = ""
    api_key: str = ""
    sandbox: bool = False
    timeout: float = 15.0
    max_attempts: int = 3

    @property
    def base_url(self) -> str:
        return DUITKU_SANDBOX_URL if self.sandbox else DUITKU_PRODUCTION_URL

    @property
    def is_configured(self) -> bool:
        return bool(self.merchant_code and self.api_key)

    @classmethod
    def from_env(cls) -> "DuitkuConfig":
        return cls(
            merchant_code=get_env("DUITKU_MERCHANT_CODE"),
            api_key=get_env("DUITKU_API_KEY"),
            sandbox=get_env("DUITKU_SANDBOX").lower() == "true",
            timeout=_env_float("DUITKU_TIMEOUT", 15.0),
            max_attempts=_env_int("DUITKU_MAX_ATTEMPTS", 3),
        )


class SmtpConfig(BaseModel):
    """SMTP relay used for donor and campaigner email."""
    host: str = ""
    port: int = 587
    user: str = ""
    password: str = ""
    sender: str = "no-reply@donasiku.com"
    timeout: float = 10.0

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.user and self.password)

    @property
    def use_ssl(self) -> bool:
        return self.port == 465

    @classmethod
    def from_env(cls) -> "SmtpConfig":
        user = get_env("SMTP_USER")
        return cls(
            host=get_env("SMTP_HOST"),
            port=_env_int("SMTP_PORT", 587),
            user=user,
            password=get_env("SMTP_PASSWORD") or get_env("SMTP_PASS"),
            sender=get_env("SMTP_FROM") or get_env("SENDER_EMAIL") or user or "no-reply@donasiku.com",
            timeout=_env_float("SMTP_TIMEOUT", 10.0),
        )


class FonnteConfig(BaseModel):
    """Fonnte WhatsApp gateway settings."""
    token: str = ""
    base_url: str = "https://api.fonnte.com"
    timeout: float = 10.0

    @property
    def is_configured(self) -> bool:
        return bool(self.token)

    @classmethod
    def from_env(cls) -> "FonnteConfig":
        return cls(
            token=get_env("FONNTE_TOKEN"),
            base_url=get_env("FONNTE_BASE_URL", "https://api.fonnte.com").rstrip("/"),
            timeout=_env_float("FONNTE_TIMEOUT", 10.0),
        )


class AppConfig(BaseModel):
    """Top-level configuration snapshot for one invocation."""
    duitku: DuitkuConfig = Field(default_factory=DuitkuConfig)
    smtp: SmtpConfig = Field(default_factory=SmtpConfig)
    fonnte: FonnteConfig = Field(default_factory=FonnteConfig)
    app_url: str = ""
    sweep_batch_size: int = 50
    notification_timeout: float = 20.0
    api_key: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "AppConfig":
        return cls(
            duitku=DuitkuConfig.from_env(),
            smtp=SmtpConfig.from_env(),
            fonnte=FonnteConfig.from_env(),
            app_url=get_env("APP_URL").rstrip("/"),
            sweep_batch_size=_env_int("SWEEP_BATCH_SIZE", 50),
            notification_timeout=_env_float("NOTIFICATION_TIMEOUT", 20.0),
            api_key=get_env("API_KEY") or None,
            log_level=get_env("LOG_LEVEL", "INFO").upper(),
        )
