"""
core.py - 自选列表批量刷新（分块并发）+ 自选列表操作
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Callable, Dict, List, NamedTuple, Optional, Sequence, TypeVar

from .config import MAX_CONCURRENT_REQUESTS
from .events import EventHub
from .fetch import FetchError
from .history import NetValueHistory
from .models import Fund, FundDetail, FundBasicInfo, Holding, NetValuePoint, Quote, WatchlistSummary
from .providers import FundProvider
from .quotes import QuoteService
from .resolver import ValuationResolver, ValuationResult

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class WatchlistError(Exception):
    """自选列表操作失败（可直接展示给用户）"""


def batch_execute(
    items: Sequence[T],
    fn: Callable[[T], R],
    concurrency: int = MAX_CONCURRENT_REQUESTS,
) -> List[R]:
    """按 concurrency 分块，块内并发、块间串行，结果顺序与输入一致"""
    results: List[R] = []
    concurrency = max(1, concurrency)
    for i in range(0, len(items), concurrency):
        chunk = items[i:i + concurrency]
        with ThreadPoolExecutor(max_workers=len(chunk)) as pool:
            results.extend(pool.map(fn, chunk))
    return results


class RefreshResult(NamedTuple):
    funds: List[Fund]
    valuations: List[ValuationResult]


def _merge_holdings(holdings: List[Holding], quotes: Dict[str, Quote]) -> List[Holding]:
    if not quotes:
        return holdings
    merged = []
    for h in holdings:
        q = quotes.get(h.stock_code)
        if q is None:
            merged.append(h)
        else:
            merged.append(h.model_copy(update={"change": q.change, "price": q.price}))
    return merged


class WatchlistRefresher:
    def __init__(
        self,
        store,
        resolver: ValuationResolver,
        quotes: QuoteService,
        concurrency: int = MAX_CONCURRENT_REQUESTS,
    ):
        self.store = store
        self.resolver = resolver
        self.quotes = quotes
        self.concurrency = concurrency

    def _resolve_safe(self, fund: Fund, force: bool) -> ValuationResult:
        try:
            return self.resolver.resolve(fund.code, is_currently_real=fund.is_real_value, force=force)
        except (FetchError, ValueError) as e:
            logger.warning(f"[Refresh] {fund.code} 估值获取失败，保留缓存: {e}")
            return None

    def refresh_all(self, force: bool = False, only: Optional[Callable[[Fund], bool]] = None) -> RefreshResult:
        """
        刷新整个自选列表并保存一次。
        only 不为空时只对满足条件的基金发估值请求，其余基金估值位为 None（持仓行情照常刷新）。
        保存失败抛 StorageError。
        """
        watchlist = self.store.get_watchlist()
        logger.info(f"[Refresh] force={force}, funds={len(watchlist)}")
        if not watchlist:
            return RefreshResult([], [])

        def resolve(fund: Fund) -> ValuationResult:
            if only is not None and not only(fund):
                return None
            return self._resolve_safe(fund, force)

        valuations = batch_execute(watchlist, resolve, self.concurrency)
        logger.info(f"[Refresh] 估值结果: {['ok' if v else '-' for v in valuations]}")

        # 所有基金持仓的股票合并成一次行情请求
        stock_codes = []
        for fund in watchlist:
            stock_codes.extend(h.stock_code for h in fund.holdings)
        quote_map = self.quotes.get_quotes(stock_codes)

        by_code = {fund.code: v for fund, v in zip(watchlist, valuations)}

        # 网络请求期间列表可能被增删，按代码合并到最新列表上
        def merge(current: List[Fund]) -> List[Fund]:
            updated: List[Fund] = []
            for fund in current:
                fund = fund.model_copy(update={"holdings": _merge_holdings(fund.holdings, quote_map)})
                valuation = by_code.get(fund.code)
                if valuation is not None:
                    fund = fund.apply_valuation(valuation)
                updated.append(fund)
            return updated

        funds = self.store.update(merge)
        return RefreshResult(funds, [by_code.get(f.code) for f in funds])


class WatchlistService:
    """自选列表的全部用户操作，HTTP 层只做转发"""

    def __init__(
        self,
        store,
        provider: FundProvider,
        resolver: ValuationResolver,
        quotes: QuoteService,
        refresher: WatchlistRefresher,
        history: NetValueHistory,
        events: EventHub,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.provider = provider
        self.resolver = resolver
        self.quotes = quotes
        self.refresher = refresher
        self.history = history
        self.events = events
        self.clock = clock

    # ============================================================
    # 基金搜索 / 添加 / 删除
    # ============================================================

    def search_fund(self, code: str) -> Optional[FundBasicInfo]:
        try:
            return self.provider.search_fund(code)
        except FetchError as e:
            logger.error(f"[Watchlist] 搜索基金失败 {code}: {e}")
            return None

    def get_fund_detail(self, code: str) -> FundDetail:
        info = self.search_fund(code)
        if info is None:
            raise WatchlistError(f"未找到基金: {code}")
        try:
            holdings = self.provider.fetch_holdings(code)
        except FetchError as e:
            logger.error(f"[Watchlist] 持仓获取失败 {code}: {e}")
            holdings = []
        return FundDetail(**info.model_dump(), holdings=holdings)

    def add_fund(self, code: str) -> Fund:
        if any(f.code == code for f in self.store.get_watchlist()):
            raise WatchlistError("该基金已在自选列表中")

        detail = self.get_fund_detail(code)
        try:
            valuation = self.resolver.resolve(code, force=True)
        except FetchError as e:
            logger.warning(f"[Watchlist] {code} 初始估值获取失败: {e}")
            valuation = None

        quote_map = self.quotes.get_quotes(h.stock_code for h in detail.holdings)
        fund = Fund(
            code=detail.code,
            name=detail.name,
            net_value=detail.net_value,
            net_value_date=detail.net_value_date,
            estimated_value=detail.net_value,
            update_time=self.clock().isoformat(timespec="seconds"),
            holdings=_merge_holdings(detail.holdings, quote_map),
        )
        if valuation is not None:
            fund = fund.apply_valuation(valuation)

        def append(current: List[Fund]) -> List[Fund]:
            # 网络请求期间可能已被其他请求加入
            if any(f.code == code for f in current):
                raise WatchlistError("该基金已在自选列表中")
            return current + [fund]

        self.store.update(append)
        logger.info(f"[Watchlist] 已添加 {code} {fund.name}")
        return fund

    def remove_fund(self, code: str) -> None:
        def remove(current: List[Fund]) -> List[Fund]:
            remaining = [f for f in current if f.code != code]
            if len(remaining) == len(current):
                raise WatchlistError("该基金不在自选列表中")
            return remaining

        self.store.update(remove)

    def update_shares(self, code: str, shares: float) -> Fund:
        if shares < 0:
            raise WatchlistError("份额不能为负数")

        def set_shares(current: List[Fund]) -> List[Fund]:
            if not any(f.code == code for f in current):
                raise WatchlistError("该基金不在自选列表中")
            return [f.model_copy(update={"shares": shares}) if f.code == code else f for f in current]

        funds = self.store.update(set_shares)
        return next(f for f in funds if f.code == code)

    # ============================================================
    # 自选列表读写
    # ============================================================

    def get_watchlist(self) -> List[Fund]:
        return self.store.get_watchlist()

    def save_watchlist(self, funds: List[Fund]) -> None:
        self.store.update(lambda _: list(funds))

    def clear_watchlist(self) -> None:
        self.store.update(lambda _: [])

    # ============================================================
    # 刷新 / 历史 / 汇总
    # ============================================================

    def refresh(self, force: bool = True) -> List[Fund]:
        """手动刷新，结果同时推送给订阅方"""
        funds = self.refresher.refresh_all(force=force).funds
        self.events.publish_update(funds)
        return funds

    def net_value_history(self, code: str, range_key: str = "1m") -> List[NetValuePoint]:
        return self.history.fetch(code, range_key)

    def summary(self) -> WatchlistSummary:
        return summarize(self.store.get_watchlist())


def summarize(funds: List[Fund]) -> WatchlistSummary:
    """
    等权平均涨跌幅；今日盈亏 = 份额 × (估值 - 估值/(1+涨跌幅%))
    """
    result = WatchlistSummary(fund_count=len(funds))
    if funds:
        result.total_estimated_change = sum(f.estimated_change for f in funds) / len(funds)

    # 涨跌幅 <= -100% 时无法反推昨日净值，跳过
    with_shares = [f for f in funds if f.shares > 0 and f.estimated_value > 0 and f.estimated_change > -100]
    if with_shares:
        profit = 0.0
        for f in with_shares:
            yesterday = f.estimated_value / (1 + f.estimated_change / 100)
            profit += f.shares * (f.estimated_value - yesterday)
        result.total_estimated_profit = profit
    return result
