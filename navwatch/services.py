"""
services.py - 组装服务实例（由进程入口创建并持有，测试可自行组装）
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .config import Settings
from .core import WatchlistRefresher, WatchlistService
from .events import EventHub
from .history import NetValueHistory
from .providers import FundProvider
from .quotes import QuoteCache, QuoteService
from .resolver import ValuationResolver
from .storage import WatchlistStore
from .updater import IntradayPoller, NetValueUpdater


@dataclass
class Services:
    settings: Settings
    store: object
    events: EventHub
    watchlist: WatchlistService
    updater: NetValueUpdater
    poller: IntradayPoller

    def start(self) -> None:
        self.updater.start()
        self.poller.start()

    def stop(self) -> None:
        self.poller.stop()
        self.updater.stop()


def build_services(
    settings: Settings,
    store=None,
    provider: Optional[FundProvider] = None,
    scheduler=None,
    clock: Callable[[], datetime] = datetime.now,
) -> Services:
    store = store if store is not None else WatchlistStore(settings.data_dir)
    provider = provider or FundProvider(timeout=settings.request_timeout)
    events = EventHub()

    resolver = ValuationResolver(provider, clock=clock, settle_hour=settings.settle_hour)
    quotes = QuoteService(provider.fetch_quotes, QuoteCache(ttl=settings.quotes_ttl))
    refresher = WatchlistRefresher(store, resolver, quotes, concurrency=settings.max_concurrent)
    history = NetValueHistory(provider.fetch_history_page, clock=clock)

    watchlist = WatchlistService(
        store, provider, resolver, quotes, refresher, history, events, clock=clock,
    )
    updater = NetValueUpdater(
        refresher, store, events,
        scheduler=scheduler,
        clock=clock,
        check_hour=settings.check_hour,
        check_minute=settings.check_minute,
        retry_interval=settings.retry_interval,
        max_retries=settings.max_retries,
        settle_hour=settings.settle_hour,
    )
    poller = IntradayPoller(
        refresher, events,
        scheduler=scheduler,
        clock=clock,
        interval=settings.poll_interval,
        settle_hour=settings.settle_hour,
    )
    return Services(settings, store, events, watchlist, updater, poller)
