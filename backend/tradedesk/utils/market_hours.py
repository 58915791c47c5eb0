"""
Market hours utility for Indian stock market timing
"""
from datetime import datetime, time, timedelta
from typing import Optional
import pytz

# Indian Standard Time
IST = pytz.timezone('Asia/Kolkata')

PRE_MARKET_START = time(9, 0)
MARKET_OPEN = time(9, 15)
MARKET_CLOSE = time(15, 30)


def _ist_now(now: Optional[datetime] = None) -> datetime:
    if now is None:
        return datetime.now(IST)
    if now.tzinfo is None:
        return IST.localize(now)
    return now.astimezone(IST)


def is_market_day(now: Optional[datetime] = None) -> bool:
    """Check if the date is a trading day (Monday-Friday)"""
    return _ist_now(now).weekday() < 5


def is_market_open(now: Optional[datetime] = None) -> bool:
    """Check if the NSE cash session is open (9:15 AM to 3:30 PM IST)"""
    now = _ist_now(now)
    if not is_market_day(now):
        return False
    return MARKET_OPEN <= now.time() <= MARKET_CLOSE


def is_pre_market(now: Optional[datetime] = None) -> bool:
    """Check if it's pre-market hours (9:00-9:15 AM IST)"""
    now = _ist_now(now)
    if not is_market_day(now):
        return False
    return PRE_MARKET_START <= now.time() < MARKET_OPEN


def get_market_status(now: Optional[datetime] = None) -> str:
    """Get current market status"""
    now = _ist_now(now)

    if not is_market_day(now):
        return "CLOSED_WEEKEND"

    if is_pre_market(now):
        return "PRE_MARKET"

    if is_market_open(now):
        return "OPEN"

    if now.time() < PRE_MARKET_START:
        return "CLOSED_BEFORE_MARKET"
    return "CLOSED_AFTER_MARKET"


def get_next_market_open(now: Optional[datetime] = None) -> datetime:
    """Get the next market opening time"""
    now = _ist_now(now)

    # Before 9:15 AM on a weekday, today's open is next
    if now.weekday() < 5 and now.time() < MARKET_OPEN:
        return now.replace(hour=9, minute=15, second=0, microsecond=0)

    day = now.date() + timedelta(days=1)
    while day.weekday() > 4:
        day += timedelta(days=1)
    return IST.localize(datetime.combine(day, MARKET_OPEN))
