"""
events.py - 估值更新事件分发（UI 边界）
"""
import logging
import threading
from typing import Callable, List, Optional

from .models import Fund, ValuationEvent

logger = logging.getLogger(__name__)

Subscriber = Callable[[ValuationEvent], None]


class EventHub:
    def __init__(self):
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()
        self.latest: Optional[ValuationEvent] = None

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)
        return unsubscribe

    def publish_update(self, funds: List[Fund]) -> None:
        self._publish(ValuationEvent(success=True, data=list(funds)))

    def publish_error(self, error: str) -> None:
        self._publish(ValuationEvent(success=False, error=error))

    def _publish(self, event: ValuationEvent) -> None:
        with self._lock:
            self.latest = event
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"[Events] 订阅者处理失败: {e}")
