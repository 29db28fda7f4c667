"""
storage.py - 自选列表持久化（data/watchlist.json）
写入为原子操作（tmp+rename），写失败抛 StorageError，原文件保持不变。
"""
import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, List

from pydantic import ValidationError

from .models import Fund

logger = logging.getLogger(__name__)

CURRENT_VERSION = 1


class StorageError(Exception):
    """自选列表保存失败"""


class WatchlistStore:
    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self.path = self.data_dir / "watchlist.json"
        self._lock = threading.RLock()
        self._migrate_if_needed()

    def _empty(self) -> dict:
        return {
            "version": CURRENT_VERSION,
            "updated_at": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "funds": [],
        }

    def _read(self) -> dict:
        if not self.path.exists():
            return self._empty()
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict) or not isinstance(data.get("funds"), list):
            raise ValueError("watchlist.json 结构异常")
        return data

    def _write(self, data: dict) -> None:
        data["updated_at"] = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        with self._lock:
            try:
                self.data_dir.mkdir(parents=True, exist_ok=True)
                tmp_file = self.path.with_suffix(".tmp")
                with open(tmp_file, "w", encoding="utf-8") as f:
                    json.dump(data, f, ensure_ascii=False, indent=2)
                tmp_file.replace(self.path)
            except (OSError, TypeError, ValueError) as e:
                raise StorageError(f"保存自选列表失败: {e}") from e

    def _migrate_if_needed(self) -> None:
        """v0（无 version 字段）-> v1"""
        try:
            data = self._read()
        except ValueError:
            return
        version = data.get("version", 0)
        if version < CURRENT_VERSION:
            logger.info(f"[Storage] 迁移 watchlist.json v{version} -> v{CURRENT_VERSION}")
            data["version"] = CURRENT_VERSION
            self._write(data)

    def get_watchlist(self) -> List[Fund]:
        try:
            data = self._read()
            return [Fund.model_validate(item) for item in data["funds"]]
        except (ValueError, ValidationError) as e:
            # 文件损坏时重置为空列表
            logger.error(f"[Storage] 读取自选列表失败，重置为空: {e}")
            self._write(self._empty())
            return []

    def save_watchlist(self, funds: List[Fund]) -> None:
        data = self._empty()
        data["funds"] = [f.model_dump() for f in funds]
        self._write(data)

    def update(self, mutate: Callable[[List[Fund]], List[Fund]]) -> List[Fund]:
        """读取 -> mutate -> 保存 全程持锁；mutate 抛异常时不保存"""
        with self._lock:
            funds = mutate(self.get_watchlist())
            self.save_watchlist(funds)
            return funds


class InMemoryWatchlistStore:
    """测试/嵌入用，不落盘"""

    def __init__(self, funds: List[Fund] = None):
        self._funds = [f.model_copy(deep=True) for f in funds or []]
        self._lock = threading.RLock()
        self.save_count = 0

    def update(self, mutate: Callable[[List[Fund]], List[Fund]]) -> List[Fund]:
        with self._lock:
            funds = mutate(self.get_watchlist())
            self.save_watchlist(funds)
            return funds

    def get_watchlist(self) -> List[Fund]:
        return [f.model_copy(deep=True) for f in self._funds]

    def save_watchlist(self, funds: List[Fund]) -> None:
        self._funds = [f.model_copy(deep=True) for f in funds]
        self.save_count += 1
