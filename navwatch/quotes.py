"""
quotes.py - 股票行情内存缓存（按代码，TTL 60秒）
"""
import logging
import threading
import time
from typing import Callable, Dict, Iterable, List, Tuple

from .config import QUOTES_TTL_SECONDS
from .fetch import FetchError
from .models import Quote

logger = logging.getLogger(__name__)


class QuoteCache:
    """T 时刻抓到的行情在 T+ttl 之前命中，>= T+ttl 视为过期"""

    def __init__(self, ttl: float = QUOTES_TTL_SECONDS):
        self.ttl = ttl
        self._entries: Dict[str, Quote] = {}

    def lookup(self, codes: Iterable[str], now: float) -> Tuple[Dict[str, Quote], List[str]]:
        fresh: Dict[str, Quote] = {}
        missing: List[str] = []
        for code in codes:
            quote = self._entries.get(code)
            if quote is not None and now - quote.captured_at < self.ttl:
                fresh[code] = quote
            else:
                missing.append(code)
        return fresh, missing

    def store(self, quotes: Dict[str, Quote], now: float) -> None:
        for code, quote in quotes.items():
            self._entries[code] = quote.model_copy(update={"captured_at": now})

    def peek(self, code: str):
        """最后一次已知行情（不论是否过期）"""
        return self._entries.get(code)

    def __len__(self) -> int:
        return len(self._entries)


class QuoteService:
    """
    先查缓存，只对缺失/过期的代码发一次批量请求。
    查缓存 -> 请求 -> 写缓存 全程持锁，多线程同时调用不会重复请求同一批代码。
    """

    def __init__(
        self,
        fetch: Callable[[List[str]], Dict[str, Quote]],
        cache: QuoteCache = None,
        clock: Callable[[], float] = time.time,
    ):
        self._fetch = fetch
        self.cache = cache or QuoteCache()
        self.clock = clock
        self._lock = threading.Lock()

    def get_quotes(self, codes: Iterable[str]) -> Dict[str, Quote]:
        unique = list(dict.fromkeys(c for c in codes if c))
        if not unique:
            return {}

        with self._lock:
            now = self.clock()
            result, need_fetch = self.cache.lookup(unique, now)
            if not need_fetch:
                return result

            try:
                fetched = self._fetch(need_fetch)
            except FetchError as e:
                logger.warning(f"[Quotes] 批量行情请求失败({len(need_fetch)}只): {e}")
                return result

            self.cache.store(fetched, now)
            for code in need_fetch:
                if code in fetched:
                    result[code] = self.cache.peek(code)
            logger.debug(f"[Quotes] 缓存命中{len(unique) - len(need_fetch)}只, 新拉取{len(fetched)}只")
            return result
