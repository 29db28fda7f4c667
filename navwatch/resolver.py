"""
resolver.py - 单基金估值决策：盘中估值 / 真实净值 / 沿用缓存(None)

决策表（force=False 除非注明）:
  force + 已过结算时间      -> 真实净值
  force + 其他时段          -> 盘中估值
  已过结算时间 + 已是真实值  -> None
  已过结算时间 + 非真实值    -> 真实净值
  收盘后、结算前            -> None
  盘中                      -> 盘中估值
  周末                      -> None

返回 None 表示"本轮没有新数据"，调用方保留原记录。网络异常(FetchError)向上抛出。
"""
import json
import logging
from datetime import datetime
from typing import Callable, Optional, Union

from .config import SETTLE_HOUR
from .models import EstimateValuation, RealValuation
from .providers import FundProvider, JSONPGZ_RE, to_float
from .session import SessionPhase, classify, is_settlement_eligible, today_str

logger = logging.getLogger(__name__)

ValuationResult = Optional[Union[EstimateValuation, RealValuation]]


class ValuationResolver:
    def __init__(
        self,
        provider: FundProvider,
        clock: Callable[[], datetime] = datetime.now,
        settle_hour: int = SETTLE_HOUR,
    ):
        self.provider = provider
        self.clock = clock
        self.settle_hour = settle_hour

    def resolve(self, code: str, is_currently_real: bool = False, force: bool = False) -> ValuationResult:
        now = self.clock()
        phase = classify(now, self.settle_hour)
        settled = is_settlement_eligible(phase)
        logger.debug(f"[Resolver] {code} force={force} phase={phase.value} real={is_currently_real}")

        if force:
            if settled:
                return self.fetch_real_value(code, now)
            return self.fetch_estimate(code, now)

        if settled:
            if is_currently_real:
                return None
            return self.fetch_real_value(code, now)
        if phase is SessionPhase.INTRA_TRADING:
            return self.fetch_estimate(code, now)
        # 收盘后结算前 / 周末：沿用缓存
        return None

    def fetch_real_value(self, code: str, now: datetime) -> Optional[RealValuation]:
        """只有净值日期等于今天才算拿到真实净值，否则视为尚未公布"""
        latest = self.provider.fetch_latest_nav(code)
        today = today_str(now)
        if not latest or latest["date"] != today:
            logger.info(f"[Resolver] {code} 今日净值尚未公布 (最新={latest['date'] if latest else None})")
            return None
        return RealValuation(
            net_value=latest["value"],
            net_value_date=latest["date"],
            estimated_change=latest["change"],
            update_time=now.isoformat(timespec="seconds"),
        )

    def fetch_estimate(self, code: str, now: datetime) -> Union[EstimateValuation, RealValuation, None]:
        text = self.provider.fetch_estimate_text(code)
        return parse_valuation_response(text, now)


def parse_valuation_response(text: str, now: datetime) -> Union[EstimateValuation, RealValuation, None]:
    """
    解析 jsonpgz({...}) 估值数据。
    以下任一条件成立即视为真实净值，此时估值替换为官方净值：
      a) jzrq（净值日期）等于今天
      b) gsz（估值）与 dwjz（净值）相等
    b) 会把盘中恰好零涨跌的估值误判为已结算，已知问题，保持原行为。
    """
    m = JSONPGZ_RE.search(text or "")
    if not m:
        return None
    try:
        data = json.loads(m.group(1))
    except ValueError:
        logger.warning(f"[Resolver] 估值数据无法解析: {text[:100]}")
        return None
    if not isinstance(data, dict):
        return None

    today = today_str(now)
    net_value = to_float(data.get("dwjz"))
    estimated_value = to_float(data.get("gsz"))
    change = to_float(data.get("gszzl"))
    net_value_date = data.get("jzrq") or ""
    gztime = data.get("gztime") or ""
    update_time = gztime or now.isoformat(timespec="seconds")

    is_real = net_value_date == today or (net_value > 0 and net_value == estimated_value)
    if is_real:
        return RealValuation(
            net_value=net_value,
            net_value_date=net_value_date,
            estimated_change=change,
            update_time=update_time,
        )
    return EstimateValuation(
        net_value=net_value,
        net_value_date=net_value_date,
        estimated_value=estimated_value,
        estimated_change=change,
        update_time=update_time,
        is_trading_day=gztime.startswith(today),
    )
