from __future__ import annotations

import secrets
import time
from datetime import datetime, timezone

_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(value: int) -> str:
    out = ""
    while value:
        value, rem = divmod(value, 36)
        out = _DIGITS[rem] + out
    return out or "0"


def _stamped(prefix: str) -> str:
    return f"{prefix}-{_base36(time.time_ns() // 1_000_000)}-{secrets.token_hex(4)}".upper()


def generate_transaction_id() -> str:
    """TXN-<base36 millis>-<random>"""
    return _stamped("TXN")


def generate_adjustment_request_id() -> str:
    """ADJ-<base36 millis>-<random>"""
    return _stamped("ADJ")


def generate_transfer_id(now: datetime | None = None) -> str:
    """TRF-INV-<YYYYMMDD>-<random>"""
    day = (now or datetime.now(timezone.utc)).strftime("%Y%m%d")
    return f"TRF-INV-{day}-{secrets.token_hex(3).upper()}"
