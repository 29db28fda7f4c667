from datetime import datetime, timedelta

import pytest

from navwatch.session import SessionPhase, classify, is_settlement_eligible


@pytest.mark.parametrize("day", [19, 20, 21, 22, 23])
def test_weekday_trading_window_is_intraday(day):
    start = datetime(2026, 10, day, 9, 30)
    t = start
    while t <= datetime(2026, 10, day, 15, 0):
        assert classify(t) is SessionPhase.INTRA_TRADING
        t += timedelta(minutes=7)
    assert classify(datetime(2026, 10, day, 15, 0)) is SessionPhase.INTRA_TRADING


@pytest.mark.parametrize("day", [24, 25])
def test_weekend_is_off_at_any_hour(day):
    for hour in range(24):
        assert classify(datetime(2026, 10, day, hour, 45)) is SessionPhase.WEEKEND_OR_OFF


def test_weekday_after_settle_hour():
    assert classify(datetime(2026, 10, 19, 20, 0)) is SessionPhase.POST_CLOSE_SETTLED
    assert classify(datetime(2026, 10, 19, 23, 59)) is SessionPhase.POST_CLOSE_SETTLED
    assert is_settlement_eligible(classify(datetime(2026, 10, 19, 21, 0)))


def test_other_weekday_hours_are_before_settle():
    for t in [datetime(2026, 10, 19, 9, 29), datetime(2026, 10, 19, 15, 1),
              datetime(2026, 10, 19, 19, 59), datetime(2026, 10, 19, 3, 0)]:
        assert classify(t) is SessionPhase.POST_CLOSE_BEFORE_SETTLE


def test_custom_settle_hour():
    assert classify(datetime(2026, 10, 19, 18, 0), settle_hour=18) is SessionPhase.POST_CLOSE_SETTLED
    assert classify(datetime(2026, 10, 19, 18, 0)) is SessionPhase.POST_CLOSE_BEFORE_SETTLE
