from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

try:
    import tomllib  # py311+
except ModuleNotFoundError:  # pragma: no cover
    tomllib = None

from .domain import CHANNELS
from .ids import DEFAULT_PREFIX, is_valid_prefix

BACKENDS = ("memory", "postgres")


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DbConfig:
    host: str
    port: int
    name: str
    user: str
    password: str
    sslmode: str = "disable"


@dataclass(frozen=True)
class ShopConfig:
    name: str = "Smart Laundry"
    order_id_prefix: str = DEFAULT_PREFIX


@dataclass(frozen=True)
class NotificationConfig:
    enabled: bool = False
    channel: str = "sms"
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_phone_number: Optional[str] = None
    twilio_whatsapp_number: Optional[str] = None
    timeout: float = 15.0

    @property
    def has_credentials(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token)


@dataclass(frozen=True)
class AuthConfig:
    cli_user_id: Optional[str] = None
    bootstrap_admin: Optional[str] = None
    tokens: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class AppConfig:
    name: str
    log_level: str
    backend: str
    db: Optional[DbConfig]
    shop: ShopConfig
    notifications: NotificationConfig
    auth: AuthConfig


def _opt_str(section: dict, key: str, env: str) -> Optional[str]:
    value = section.get(key) or os.environ.get(env)
    return str(value) if value else None


def load_config(path: str | Path) -> AppConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config file not found: {p.resolve()}")

    if tomllib is None:
        raise ConfigError("tomllib not available. Use Python 3.11+.")

    try:
        data = tomllib.loads(p.read_text(encoding="utf-8"))
    except Exception as e:
        raise ConfigError(f"Failed to read config TOML: {e}") from e

    return parse_config(data)


def parse_config(data: dict) -> AppConfig:
    try:
        app = data.get("app", {})
        shop = data.get("shop", {})
        notif = data.get("notifications", {})
        auth = data.get("auth", {})

        backend = str(app.get("backend", "postgres"))
        if backend not in BACKENDS:
            raise ConfigError(f"Unknown backend {backend!r}, expected one of {BACKENDS}")

        db_cfg = None
        if "db" in data or backend == "postgres":
            db = data["db"]
            db_cfg = DbConfig(
                host=str(db["host"]),
                port=int(db.get("port", 5432)),
                name=str(db["name"]),
                user=str(db["user"]),
                password=str(db["password"]),
                sslmode=str(db.get("sslmode", "disable")),
            )

        prefix = str(shop.get("order_id_prefix", DEFAULT_PREFIX))
        if not is_valid_prefix(prefix):
            raise ConfigError(f"order_id_prefix must be 1-6 capital letters, got {prefix!r}")

        channel = str(notif.get("channel", "sms"))
        if channel not in CHANNELS:
            raise ConfigError(f"Unknown notification channel {channel!r}")

        tokens = auth.get("tokens", {})
        if not isinstance(tokens, dict):
            raise ConfigError("[auth.tokens] must be a table of token = user_id")

        return AppConfig(
            name=str(app.get("name", "LaundryTrack")),
            log_level=str(app.get("log_level", "INFO")).upper(),
            backend=backend,
            db=db_cfg,
            shop=ShopConfig(
                name=str(shop.get("name", "Smart Laundry")),
                order_id_prefix=prefix,
            ),
            notifications=NotificationConfig(
                enabled=bool(notif.get("enabled", False)),
                channel=channel,
                twilio_account_sid=_opt_str(notif, "twilio_account_sid", "TWILIO_ACCOUNT_SID"),
                twilio_auth_token=_opt_str(notif, "twilio_auth_token", "TWILIO_AUTH_TOKEN"),
                twilio_phone_number=_opt_str(notif, "twilio_phone_number", "TWILIO_PHONE_NUMBER"),
                twilio_whatsapp_number=_opt_str(
                    notif, "twilio_whatsapp_number", "TWILIO_WHATSAPP_NUMBER"
                ),
                timeout=float(notif.get("timeout", 15.0)),
            ),
            auth=AuthConfig(
                cli_user_id=auth.get("cli_user_id"),
                bootstrap_admin=auth.get("bootstrap_admin"),
                tokens={str(k): str(v) for k, v in tokens.items()},
            ),
        )
    except ConfigError:
        raise
    except KeyError as e:
        raise ConfigError(f"Missing config key: {e}") from e
    except Exception as e:
        raise ConfigError(f"Invalid config values: {e}") from e


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
