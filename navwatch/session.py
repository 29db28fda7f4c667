"""
session.py - 交易时段判断（纯函数，时间由调用方注入）
"""
from datetime import datetime
from enum import Enum

from .config import SETTLE_HOUR, TRADING_END, TRADING_START


class SessionPhase(str, Enum):
    WEEKEND_OR_OFF = "weekend_or_off"
    INTRA_TRADING = "intra_trading"
    POST_CLOSE_BEFORE_SETTLE = "post_close_before_settle"
    POST_CLOSE_SETTLED = "post_close_settled"


def classify(now: datetime, settle_hour: int = SETTLE_HOUR) -> SessionPhase:
    """
    周六日 -> WEEKEND_OR_OFF
    工作日 09:30~15:00（含两端）-> INTRA_TRADING
    工作日 settle_hour 之后 -> POST_CLOSE_SETTLED（是否真的已公布仍取决于数据源）
    其余工作日时段（含盘前）-> POST_CLOSE_BEFORE_SETTLE
    不识别节假日。
    """
    if now.weekday() >= 5:
        return SessionPhase.WEEKEND_OR_OFF

    minutes = now.hour * 60 + now.minute
    start = TRADING_START[0] * 60 + TRADING_START[1]
    end = TRADING_END[0] * 60 + TRADING_END[1]
    if start <= minutes <= end:
        return SessionPhase.INTRA_TRADING
    if now.hour >= settle_hour:
        return SessionPhase.POST_CLOSE_SETTLED
    return SessionPhase.POST_CLOSE_BEFORE_SETTLE


def is_settlement_eligible(phase: SessionPhase) -> bool:
    return phase is SessionPhase.POST_CLOSE_SETTLED


def today_str(now: datetime) -> str:
    return now.strftime("%Y-%m-%d")
