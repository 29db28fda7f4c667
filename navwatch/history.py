"""
history.py - 历史净值：多页并发拉取 -> 去重 -> 排序 -> 按区间过滤
"""
import calendar
import logging
import math
import re
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from typing import Callable, Dict, List

from .config import HISTORY_PAGE_SIZE
from .fetch import FetchError
from .models import NetValuePoint

logger = logging.getLogger(__name__)

# 区间 -> 大约需要的交易日条数
RANGE_TRADING_DAYS: Dict[str, int] = {
    "1m": 25,
    "3m": 65,
    "6m": 130,
    "1y": 250,
    "3y": 750,
    "all": 3000,
}

# 区间 -> 往前推的自然月数（None 表示从2000年起）
RANGE_MONTHS = {
    "1m": 1,
    "3m": 3,
    "6m": 6,
    "1y": 12,
    "3y": 36,
    "all": None,
}

_ROW_RE = re.compile(r"<tr><td>(\d{4}-\d{2}-\d{2})</td><td[^>]*>([\d.]+)</td>")


def _months_before(day: date, months: int) -> date:
    total = day.year * 12 + (day.month - 1) - months
    year, month = divmod(total, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def range_start_date(range_key: str, today: date) -> str:
    months = RANGE_MONTHS[range_key]
    if months is None:
        start = date(2000, today.month, min(today.day, calendar.monthrange(2000, today.month)[1]))
    else:
        start = _months_before(today, months)
    return start.isoformat()


def parse_history_page(html: str) -> List[NetValuePoint]:
    """页面内按日期倒序，返回时翻转为正序"""
    points = [
        NetValuePoint(date=d, value=float(v))
        for d, v in _ROW_RE.findall(html or "")
    ]
    points.reverse()
    return points


class NetValueHistory:
    def __init__(
        self,
        fetch_page: Callable[[str, int, int], str],
        clock: Callable[[], datetime] = datetime.now,
        page_size: int = HISTORY_PAGE_SIZE,
    ):
        self._fetch_page = fetch_page
        self.clock = clock
        self.page_size = page_size

    def _load_page(self, code: str, page: int) -> List[NetValuePoint]:
        """单页失败只影响该页"""
        try:
            return parse_history_page(self._fetch_page(code, page, self.page_size))
        except (FetchError, ValueError) as e:
            logger.warning(f"[History] {code} 第{page}页获取失败: {e}")
            return []

    def fetch(self, code: str, range_key: str = "1m") -> List[NetValuePoint]:
        if range_key not in RANGE_TRADING_DAYS:
            raise ValueError(f"不支持的区间: {range_key}")

        pages = math.ceil(RANGE_TRADING_DAYS[range_key] / self.page_size)
        with ThreadPoolExecutor(max_workers=pages) as pool:
            page_results = list(pool.map(lambda p: self._load_page(code, p), range(1, pages + 1)))

        by_date: Dict[str, float] = {}
        for page in page_results:
            for point in page:
                if point.date not in by_date:
                    by_date[point.date] = point.value

        start = range_start_date(range_key, self.clock().date())
        return [
            NetValuePoint(date=d, value=by_date[d])
            for d in sorted(by_date)
            if d >= start
        ]
