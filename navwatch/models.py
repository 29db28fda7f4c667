"""
models.py - 基金 / 持仓 / 行情 / 估值结果 数据模型
"""
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from .config import MAX_HOLDINGS


class Holding(BaseModel):
    stock_code: str
    stock_name: str = ""
    ratio: float = Field(0.0, ge=0, le=100)   # 持仓占比%
    change: float = 0.0                        # 当日涨跌幅%
    price: float = 0.0


class Quote(BaseModel):
    code: str
    name: str = ""
    price: float = 0.0
    change: float = 0.0
    captured_at: float = 0.0


class EstimateValuation(BaseModel):
    """盘中估值。net_value/net_value_date 是估值所基于的上一个官方净值"""
    kind: Literal["estimate"] = "estimate"
    net_value: float
    net_value_date: str
    estimated_value: float
    estimated_change: float
    update_time: str
    is_trading_day: bool = False

    @property
    def is_real_value(self) -> bool:
        return False


class RealValuation(BaseModel):
    """官方公布的真实净值"""
    kind: Literal["real"] = "real"
    net_value: float
    net_value_date: str
    estimated_change: float
    update_time: str

    @property
    def estimated_value(self) -> float:
        return self.net_value

    @property
    def is_real_value(self) -> bool:
        return True


Valuation = Annotated[Union[EstimateValuation, RealValuation], Field(discriminator="kind")]


class Fund(BaseModel):
    code: str
    name: str = ""
    net_value: float = 0.0
    net_value_date: str = ""
    estimated_value: float = 0.0
    estimated_change: float = 0.0
    update_time: str = ""
    is_real_value: bool = False
    shares: float = 0.0
    holdings: List[Holding] = Field(default_factory=list, max_length=MAX_HOLDINGS)

    def apply_valuation(self, valuation: Union[EstimateValuation, RealValuation]) -> "Fund":
        """把估值结果合并进基金记录，返回新对象

        净值日期只前进不后退；真实净值时估值强制等于净值。
        """
        update = {
            "estimated_change": valuation.estimated_change,
            "update_time": valuation.update_time,
            "is_real_value": valuation.is_real_value,
        }
        newer = valuation.net_value_date >= self.net_value_date
        if newer and valuation.net_value > 0:
            update["net_value"] = valuation.net_value
            update["net_value_date"] = valuation.net_value_date

        if valuation.is_real_value:
            if not newer:
                # 旧日期的"真实"数据不覆盖已有的更新净值
                return self.model_copy(update={"update_time": valuation.update_time})
            update["estimated_value"] = update.get("net_value", self.net_value)
        else:
            update["estimated_value"] = valuation.estimated_value
        return self.model_copy(update=update)

    def is_settled_on(self, day: str) -> bool:
        return self.is_real_value and self.net_value_date == day


class FundBasicInfo(BaseModel):
    code: str
    name: str
    type: str = "混合型"
    net_value: float = 0.0
    net_value_date: str = ""


class FundDetail(FundBasicInfo):
    holdings: List[Holding] = Field(default_factory=list)


class NetValuePoint(BaseModel):
    date: str
    value: float


class ValuationEvent(BaseModel):
    success: bool
    data: Optional[List[Fund]] = None
    error: Optional[str] = None


class WatchlistSummary(BaseModel):
    fund_count: int = 0
    total_estimated_change: Optional[float] = None   # 等权平均涨跌幅%
    total_estimated_profit: Optional[float] = None   # 按份额估算的今日盈亏
