"""
测试公共夹具：固定时钟、手动调度器、假数据源
"""
import json
from datetime import datetime
from typing import Dict, List, Optional

import pytest

from navwatch.models import Fund, Holding, Quote


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class ManualTask:
    def __init__(self, scheduler, delay, fn):
        self.scheduler = scheduler
        self.delay = delay
        self.fn = fn
        self.cancelled = False

    def cancel(self):
        self.cancelled = True

    @property
    def active(self):
        return not self.cancelled and self in self.scheduler.pending


class ManualScheduler:
    """call_later 只登记，测试里手动 run_next()"""

    def __init__(self):
        self.pending: List[ManualTask] = []
        self.history: List[ManualTask] = []

    def call_later(self, delay, fn):
        task = ManualTask(self, delay, fn)
        self.pending.append(task)
        self.history.append(task)
        return task

    def live(self) -> List[ManualTask]:
        return [t for t in self.pending if not t.cancelled]

    def run_next(self, predicate=None) -> bool:
        for task in list(self.pending):
            if task.cancelled:
                self.pending.remove(task)
                continue
            if predicate is None or predicate(task):
                self.pending.remove(task)
                task.fn()
                return True
        return False


def estimate_payload(code="000001", dwjz="1.0000", gsz="1.0100", gszzl="1.00",
                     jzrq="2026-10-16", gztime="2026-10-19 10:30") -> str:
    body = {"fundcode": code, "name": "测试基金", "jzrq": jzrq, "dwjz": dwjz,
            "gsz": gsz, "gszzl": gszzl, "gztime": gztime}
    return f"jsonpgz({json.dumps(body, ensure_ascii=False)});"


class FakeProvider:
    """按代码返回预置数据，记录调用"""

    def __init__(self):
        self.estimates: Dict[str, str] = {}
        self.navs: Dict[str, Optional[dict]] = {}
        self.holdings: Dict[str, List[Holding]] = {}
        self.quotes: Dict[str, Quote] = {}
        self.search: Dict[str, object] = {}
        self.errors: Dict[str, Exception] = {}
        self.calls: List[tuple] = []

    def _maybe_raise(self, code):
        if code in self.errors:
            raise self.errors[code]

    def fetch_estimate_text(self, code):
        self.calls.append(("estimate", code))
        self._maybe_raise(code)
        return self.estimates.get(code, "")

    def fetch_latest_nav(self, code):
        self.calls.append(("nav", code))
        self._maybe_raise(code)
        return self.navs.get(code)

    def fetch_holdings(self, code):
        self.calls.append(("holdings", code))
        return list(self.holdings.get(code, []))

    def fetch_quotes(self, codes, now=None):
        codes = list(codes)
        self.calls.append(("quotes", tuple(codes)))
        return {c: self.quotes[c] for c in codes if c in self.quotes}

    def search_fund(self, code):
        self.calls.append(("search", code))
        return self.search.get(code)

    def fetch_history_page(self, code, page, per):
        self.calls.append(("history", code, page))
        return ""

    def count(self, kind) -> int:
        return sum(1 for c in self.calls if c[0] == kind)


def make_fund(code: str, **kwargs) -> Fund:
    defaults = dict(
        name=f"基金{code}",
        net_value=1.0,
        net_value_date="2026-10-16",
        estimated_value=1.0,
        update_time="2026-10-16T20:00:00",
    )
    defaults.update(kwargs)
    return Fund(code=code, **defaults)


# 2026-10-19 是周一
MONDAY_INTRADAY = datetime(2026, 10, 19, 10, 30)
MONDAY_AFTER_CLOSE = datetime(2026, 10, 19, 17, 0)
MONDAY_EVENING = datetime(2026, 10, 19, 20, 30)
SATURDAY_NOON = datetime(2026, 10, 24, 12, 0)


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def provider():
    return FakeProvider()
