"""Runtime configuration defaults for the order store, triggers and printers."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping

from kitchen_print.errors import ConfigError

DB_PATH = "data/orders.db"

TRIGGER_FIELD = "payment_status"
TRIGGER_VALUE = "paid"
DEFAULT_PRINTER = "80mm Series Printer"

POLL_INTERVAL_SECONDS = 3.0
REALTIME_TIMEOUT_SECONDS = 10.0
SLIP_GAP_SECONDS = 0.5
TEST_PAGE_GAP_SECONDS = 0.6
LEDGER_CAPACITY = 200
SERVICE_CHARGE_RATE = Decimal("0.02")

# Values copied from the canteen's printed receipts.
SHOP_NAME = "ASTHA HJB Canteen"
SHOP_ADDRESS = ("HJB Hall, IIT Kharagpur", "West Bengal", "+91-9333190224")
STORE_LABEL = "Store: 1"

_KITCHEN_PRINTER_ENV = re.compile(r"^KITCHEN_(\d+)_PRINTER$")


@dataclass(frozen=True)
class ShopProfile:
    """Brand block printed at the top of every slip."""

    name: str = SHOP_NAME
    address: tuple[str, ...] = SHOP_ADDRESS
    store_label: str = STORE_LABEL


@dataclass(frozen=True)
class Settings:
    """Settings read once at startup."""

    db_path: str = DB_PATH
    trigger_field: str = TRIGGER_FIELD
    trigger_value: str = TRIGGER_VALUE
    auto_print: bool = False
    default_printer: str = DEFAULT_PRINTER
    kitchen_printers: Mapping[int, str] = field(default_factory=dict)
    open_cash_drawer: bool = False
    play_sound: bool = False
    poll_interval: float = POLL_INTERVAL_SECONDS
    realtime_timeout: float = REALTIME_TIMEOUT_SECONDS
    slip_gap: float = SLIP_GAP_SECONDS
    ledger_capacity: int = LEDGER_CAPACITY
    service_charge_rate: Decimal = SERVICE_CHARGE_RATE
    shop: ShopProfile = field(default_factory=ShopProfile)
    log_level: str = "INFO"
    log_file: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """
        Build settings from environment variables.

        Flags are enabled only by the literal value `true`. Printer names may be
        wrapped in double quotes, as Windows printer names often are in .env files.
        """
        env = os.environ if environ is None else environ
        default_printer = _unquote(env.get("DEFAULT_PRINTER") or env.get("PRINTER_NAME") or DEFAULT_PRINTER)
        return cls(
            db_path=env.get("KITCHEN_PRINT_DB", DB_PATH),
            trigger_field=env.get("PRINT_TRIGGER_FIELD", TRIGGER_FIELD),
            trigger_value=env.get("PRINT_ON_PAYMENT_STATUS", TRIGGER_VALUE),
            auto_print=_flag(env, "AUTO_PRINT_ENABLED"),
            default_printer=default_printer,
            kitchen_printers=kitchen_printers_from_env(env),
            open_cash_drawer=_flag(env, "OPEN_CASH_DRAWER"),
            play_sound=_flag(env, "PLAY_SOUND"),
            poll_interval=_positive_float(env, "POLL_INTERVAL_SECONDS", POLL_INTERVAL_SECONDS),
            realtime_timeout=_positive_float(env, "REALTIME_TIMEOUT_SECONDS", REALTIME_TIMEOUT_SECONDS),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            log_file=env.get("LOG_FILE") or None,
        )


def kitchen_printers_from_env(env: Mapping[str, str]) -> dict[int, str]:
    """Collect KITCHEN_<N>_PRINTER overrides into a kitchen -> printer mapping."""
    printers: dict[int, str] = {}
    for key, value in env.items():
        match = _KITCHEN_PRINTER_ENV.match(key)
        if match and value:
            printers[int(match.group(1))] = _unquote(value)
    return dict(sorted(printers.items()))


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    return value


def _flag(env: Mapping[str, str], name: str) -> bool:
    return env.get(name, "").strip().lower() == "true"


def _positive_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value
