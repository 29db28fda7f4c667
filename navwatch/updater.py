"""
updater.py - 收盘后真实净值收敛 + 盘中定时估值刷新

NetValueUpdater 状态:
  IDLE --(每日20:00 / 启动检查)--> RUNNING
  RUNNING: 强制刷新未收敛的基金
    全部收敛            -> 推送一次, 重试计数清零, IDLE
    重试次数用尽        -> 推送一次(尽力而为的结果), 清零, IDLE
    未收敛且还有次数    -> 有变化才推送, retry_interval 后再试, 仍为 RUNNING
  RUNNING 期间再次触发直接忽略；任何异常或 stop() 都会释放运行标记。
节假日不识别，节假日当晚会把重试次数耗尽后结束。
"""
import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from .config import (
    CHECK_HOUR, CHECK_MINUTE, MAX_CONVERGE_RETRIES, POLL_INTERVAL_SECONDS,
    RETRY_INTERVAL_SECONDS, SETTLE_HOUR,
)
from .core import WatchlistRefresher
from .events import EventHub
from .fetch import FetchError
from .models import Fund
from .scheduling import ScheduledTask, TimerScheduler
from .session import SessionPhase, classify, is_settlement_eligible, today_str
from .storage import StorageError

logger = logging.getLogger(__name__)


def seconds_until(now: datetime, hour: int, minute: int) -> float:
    """距离下一个 hour:minute 的秒数；今天已过则取明天"""
    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if now >= target:
        target += timedelta(days=1)
    return (target - now).total_seconds()


class NetValueUpdater:
    def __init__(
        self,
        refresher: WatchlistRefresher,
        store,
        events: EventHub,
        scheduler=None,
        clock: Callable[[], datetime] = datetime.now,
        check_hour: int = CHECK_HOUR,
        check_minute: int = CHECK_MINUTE,
        retry_interval: float = RETRY_INTERVAL_SECONDS,
        max_retries: int = MAX_CONVERGE_RETRIES,
        settle_hour: int = SETTLE_HOUR,
    ):
        self.refresher = refresher
        self.store = store
        self.events = events
        self.scheduler = scheduler or TimerScheduler()
        self.clock = clock
        self.check_hour = check_hour
        self.check_minute = check_minute
        self.retry_interval = retry_interval
        self.max_retries = max_retries
        self.settle_hour = settle_hour

        self.retry_count = 0
        self._running = False
        self._lock = threading.Lock()
        self._startup_task: Optional[ScheduledTask] = None
        self._daily_task: Optional[ScheduledTask] = None
        self._retry_task: Optional[ScheduledTask] = None

    @property
    def is_running(self) -> bool:
        return self._running

    # ============================================================
    # 启停
    # ============================================================

    def start(self) -> None:
        """启动补检放到定时线程执行，不阻塞服务就绪"""
        logger.info("[Updater] 启动净值更新服务")
        self._startup_task = self.scheduler.call_later(0, self.check_and_update_if_needed)
        self._schedule_daily_check()

    def stop(self) -> None:
        for task in (self._startup_task, self._daily_task, self._retry_task):
            if task is not None:
                task.cancel()
        self._startup_task = None
        self._daily_task = None
        self._retry_task = None
        with self._lock:
            self._running = False
            self.retry_count = 0

    def _schedule_daily_check(self) -> None:
        delay = seconds_until(self.clock(), self.check_hour, self.check_minute)
        logger.info(f"[Updater] 下次净值检查在 {round(delay / 60)} 分钟后")
        self._daily_task = self.scheduler.call_later(delay, self._on_daily_alarm)

    def _on_daily_alarm(self) -> None:
        # 先排好明天的闹钟，本次检查出错也不影响
        self._schedule_daily_check()
        if classify(self.clock(), self.settle_hour) is SessionPhase.WEEKEND_OR_OFF:
            logger.info("[Updater] 周末，跳过净值检查")
            return
        self.trigger(reset_retries=True)

    # ============================================================
    # 触发
    # ============================================================

    def check_and_update_if_needed(self) -> None:
        """启动时补检：已过结算时间且有基金净值日期不是今天"""
        watchlist = self.store.get_watchlist()
        if not watchlist:
            return
        now = self.clock()
        if not is_settlement_eligible(classify(now, self.settle_hour)):
            return
        today = today_str(now)
        if any(f.net_value_date != today for f in watchlist):
            logger.info("[Updater] 发现净值未更新到今天的基金")
            self.trigger()

    def trigger(self, reset_retries: bool = False) -> bool:
        """开始一轮收敛；已在运行时忽略，返回是否真正开始"""
        with self._lock:
            if self._running:
                logger.info("[Updater] 已有收敛任务在运行，忽略本次触发")
                return False
            self._running = True
            if reset_retries:
                self.retry_count = 0
        self._attempt()
        return True

    # ============================================================
    # 单步
    # ============================================================

    def _attempt(self) -> None:
        self._retry_task = None
        finished = True
        try:
            finished = self._step()
        except (StorageError, FetchError, ValueError) as e:
            logger.error(f"[Updater] 净值更新失败: {e}")
            self.events.publish_error(str(e))
            self.retry_count = 0
        finally:
            if finished:
                with self._lock:
                    self._running = False

    def _step(self) -> bool:
        """返回 True 表示本轮结束（收敛或次数用尽），False 表示已安排重试"""
        today = today_str(self.clock())
        before = self.store.get_watchlist()
        result = self.refresher.refresh_all(
            force=True, only=lambda f: not f.is_settled_on(today)
        )
        funds = result.funds
        changed = _valuation_changed(before, funds)

        for fund in funds:
            if fund.is_settled_on(today):
                continue
            logger.info(f"[Updater] {fund.code} 今日净值尚未公布")

        if all(f.is_settled_on(today) for f in funds):
            logger.info("[Updater] 全部基金净值已更新")
            self.events.publish_update(funds)
            self.retry_count = 0
            return True

        if self.retry_count >= self.max_retries:
            logger.warning("[Updater] 达到最大重试次数，部分基金净值未更新")
            self.events.publish_update(funds)
            self.retry_count = 0
            return True

        if changed:
            self.events.publish_update(funds)
        self.retry_count += 1
        logger.info(f"[Updater] 安排第 {self.retry_count}/{self.max_retries} 次重试，{self.retry_interval:.0f}秒后")
        self._retry_task = self.scheduler.call_later(self.retry_interval, self._attempt)
        return False


def _valuation_changed(before: List[Fund], after: List[Fund]) -> bool:
    old = {f.code: (f.net_value, f.net_value_date, f.estimated_value, f.is_real_value) for f in before}
    for f in after:
        if old.get(f.code) != (f.net_value, f.net_value_date, f.estimated_value, f.is_real_value):
            return True
    return False


class IntradayPoller:
    """盘中每 poll_interval 秒刷新一次估值并推送；非盘中只重新排期"""

    def __init__(
        self,
        refresher: WatchlistRefresher,
        events: EventHub,
        scheduler=None,
        clock: Callable[[], datetime] = datetime.now,
        interval: float = POLL_INTERVAL_SECONDS,
        settle_hour: int = SETTLE_HOUR,
    ):
        self.refresher = refresher
        self.events = events
        self.scheduler = scheduler or TimerScheduler()
        self.clock = clock
        self.interval = interval
        self.settle_hour = settle_hour
        self._task: Optional[ScheduledTask] = None
        self._stopped = True

    def start(self) -> None:
        self._stopped = False
        self._task = self.scheduler.call_later(self.interval, self._tick)

    def stop(self) -> None:
        self._stopped = True
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def _tick(self) -> None:
        if self._stopped:
            return
        try:
            self.poll_once()
        finally:
            if not self._stopped:
                self._task = self.scheduler.call_later(self.interval, self._tick)

    def poll_once(self) -> bool:
        if classify(self.clock(), self.settle_hour) is not SessionPhase.INTRA_TRADING:
            return False
        try:
            result = self.refresher.refresh_all(force=False)
        except (StorageError, FetchError, ValueError) as e:
            logger.error(f"[Poller] 盘中刷新失败: {e}")
            self.events.publish_error(str(e))
            return False
        self.events.publish_update(result.funds)
        return True
