"""
scheduling.py - 可取消的延时任务
"""
import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class ScheduledTask:
    def __init__(self, timer: threading.Timer):
        self._timer = timer

    def cancel(self) -> None:
        self._timer.cancel()

    @property
    def active(self) -> bool:
        return self._timer.is_alive()


class TimerScheduler:
    """threading.Timer 实现，daemon 线程，进程退出不阻塞"""

    def call_later(self, delay: float, fn: Callable[[], None]) -> ScheduledTask:
        timer = threading.Timer(max(0.0, delay), self._run, args=(fn,))
        timer.daemon = True
        timer.start()
        return ScheduledTask(timer)

    @staticmethod
    def _run(fn: Callable[[], None]) -> None:
        try:
            fn()
        except Exception:
            logger.exception("[Scheduler] 定时任务异常")
