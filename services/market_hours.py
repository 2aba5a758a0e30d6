"""
NSE trading-session helpers.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time
from typing import Literal
from zoneinfo import ZoneInfo

IST = ZoneInfo("Asia/Kolkata")
MARKET_OPEN = time(9, 15)
MARKET_CLOSE = time(15, 30)


@dataclass(slots=True, frozen=True)
class MarketStatus:
    is_open: bool
    reason: Literal["LIVE", "WEEKEND", "OFF-HOURS"]


def now_ist() -> datetime:
    return datetime.now(tz=IST)


def market_status(now: datetime | None = None) -> MarketStatus:
    """Return whether the NSE cash session is open at `now` (defaults to the current time)."""
    moment = (now or now_ist()).astimezone(IST)
    if moment.weekday() >= 5:
        return MarketStatus(False, "WEEKEND")
    if not MARKET_OPEN <= moment.time().replace(second=0, microsecond=0) <= MARKET_CLOSE:
        return MarketStatus(False, "OFF-HOURS")
    return MarketStatus(True, "LIVE")
