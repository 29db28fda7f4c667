"""
navwatch - 自选基金盘中估值 + 收盘后真实净值收敛
"""
from .config import Settings, load_settings
from .core import WatchlistError, WatchlistRefresher, WatchlistService, batch_execute
from .fetch import FetchError, HTTPStatusError, NoResponse, RequestTimeout, with_retry
from .models import EstimateValuation, Fund, Holding, Quote, RealValuation
from .resolver import ValuationResolver
from .services import Services, build_services
from .session import SessionPhase, classify
from .storage import StorageError, WatchlistStore
from .updater import IntradayPoller, NetValueUpdater
