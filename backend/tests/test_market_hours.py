"""
Tests for the NSE session clock.
"""

from datetime import datetime

import pytest
import pytz

from tradedesk.utils.market_hours import (
    IST,
    get_market_status,
    get_next_market_open,
    is_market_open,
    is_pre_market,
)

# 2024-01-15 is a Monday
MONDAY = (2024, 1, 15)


@pytest.mark.parametrize("hour, minute, expected", [
    (8, 0, "CLOSED_BEFORE_MARKET"),
    (9, 5, "PRE_MARKET"),
    (9, 15, "OPEN"),
    (15, 30, "OPEN"),
    (15, 31, "CLOSED_AFTER_MARKET"),
])
def test_weekday_status(hour, minute, expected):
    assert get_market_status(datetime(*MONDAY, hour, minute)) == expected


def test_weekend_is_closed():
    saturday = datetime(2024, 1, 13, 11, 0)
    assert get_market_status(saturday) == "CLOSED_WEEKEND"
    assert not is_market_open(saturday)
    assert not is_pre_market(saturday)


def test_aware_datetimes_are_converted_to_ist():
    # 04:00 UTC is 09:30 IST
    utc_morning = pytz.utc.localize(datetime(*MONDAY, 4, 0))
    assert is_market_open(utc_morning)


def test_next_open_same_day_before_bell():
    next_open = get_next_market_open(datetime(*MONDAY, 8, 30))
    assert next_open == IST.localize(datetime(*MONDAY, 9, 15))


def test_next_open_skips_weekend():
    friday_evening = datetime(2024, 1, 19, 16, 0)
    assert get_next_market_open(friday_evening) == IST.localize(datetime(2024, 1, 22, 9, 15))


def test_next_open_across_month_end():
    wednesday_evening = datetime(2024, 1, 31, 18, 0)
    assert get_next_market_open(wednesday_evening) == IST.localize(datetime(2024, 2, 1, 9, 15))
