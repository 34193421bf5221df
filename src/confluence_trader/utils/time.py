"""Time helpers. All persisted timestamps are UTC epoch seconds."""

from __future__ import annotations

from datetime import datetime, timezone
import time


def utc_now_s() -> int:
    return int(time.time())


def format_ts(ts: int | float) -> str:
    return datetime.fromtimestamp(float(ts), tz=timezone.utc).isoformat()
