"""Runtime configuration loaded from the environment.

Each channel reads exactly one settings struct at construction time; a
struct whose required fields are missing selects the channel's disabled
variant instead of failing the process.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping

DEFAULT_SMTP_PORT = 587
DEFAULT_PROVIDER_TIMEOUT_SECONDS = 5.0
DEFAULT_EVENT_BUS_URL = "redis://localhost:6379"
DEFAULT_MAX_WORKERS = 8
DEFAULT_DEAD_LETTER_KEY = "notifications:dead-letter"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class SmtpSettings:
    """SMTP credentials for the email channel.

    Host, user and password are required to enable the channel. SMTP_FROM is
    optional: the sender defaults to the SMTP user, and port defaults to 587.
    """

    host: str = ""
    port: int = DEFAULT_SMTP_PORT
    user: str = ""
    password: str = ""
    from_address: str = ""
    timeout: float = DEFAULT_PROVIDER_TIMEOUT_SECONDS

    @property
    def is_complete(self) -> bool:
        return bool(self.host and self.user and self.password)

    @property
    def sender(self) -> str:
        return self.from_address or self.user


@dataclass(frozen=True)
class TwilioSettings:
    """Twilio credentials for the WhatsApp channel.

    Attributes:
        webhook_url: Public URL Twilio posts to; used to verify signatures
            when the service runs behind a proxy that rewrites the host.
        allow_unsigned_webhooks: Accept webhooks without a signature when no
            auth token is configured (local development only).
    """

    account_sid: str = ""
    auth_token: str = ""
    whatsapp_number: str = ""
    timeout: float = DEFAULT_PROVIDER_TIMEOUT_SECONDS
    webhook_url: str = ""
    allow_unsigned_webhooks: bool = False

    @property
    def is_complete(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.whatsapp_number)


@dataclass(frozen=True)
class EventBusSettings:
    """Redis pub/sub connection and worker pool sizing."""

    url: str = DEFAULT_EVENT_BUS_URL
    max_workers: int = DEFAULT_MAX_WORKERS
    dead_letter_key: str = DEFAULT_DEAD_LETTER_KEY


@dataclass(frozen=True)
class Settings:
    smtp: SmtpSettings = field(default_factory=SmtpSettings)
    twilio: TwilioSettings = field(default_factory=TwilioSettings)
    event_bus: EventBusSettings = field(default_factory=EventBusSettings)


def _int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from None


def _float(environ: Mapping[str, str], key: str, default: float) -> float:
    raw = environ.get(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}") from None


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from environment variables.

    Args:
        environ: Mapping to read from. Defaults to os.environ.

    Raises:
        ValueError: If a numeric variable is not parseable.
    """
    env = os.environ if environ is None else environ

    smtp = SmtpSettings(
        host=env.get("SMTP_HOST", ""),
        port=_int(env, "SMTP_PORT", DEFAULT_SMTP_PORT),
        user=env.get("SMTP_USER", ""),
        password=env.get("SMTP_PASS", ""),
        from_address=env.get("SMTP_FROM", ""),
        timeout=_float(env, "SMTP_TIMEOUT_SECONDS", DEFAULT_PROVIDER_TIMEOUT_SECONDS),
    )

    twilio = TwilioSettings(
        account_sid=env.get("TWILIO_ACCOUNT_SID", ""),
        auth_token=env.get("TWILIO_AUTH_TOKEN", ""),
        whatsapp_number=env.get("TWILIO_WHATSAPP_NUMBER", ""),
        timeout=_float(env, "TWILIO_TIMEOUT_SECONDS", DEFAULT_PROVIDER_TIMEOUT_SECONDS),
        webhook_url=env.get("TWILIO_WEBHOOK_URL", ""),
        allow_unsigned_webhooks=env.get("WHATSAPP_WEBHOOK_ALLOW_UNSIGNED", "").lower() in _TRUTHY,
    )

    event_bus = EventBusSettings(
        url=env.get("EVENT_BUS_URL") or env.get("REDIS_URL") or DEFAULT_EVENT_BUS_URL,
        max_workers=max(1, _int(env, "EVENT_BUS_MAX_WORKERS", DEFAULT_MAX_WORKERS)),
        dead_letter_key=env.get("EVENT_BUS_DEAD_LETTER_KEY", DEFAULT_DEAD_LETTER_KEY),
    )

    return Settings(smtp=smtp, twilio=twilio, event_bus=event_bus)
