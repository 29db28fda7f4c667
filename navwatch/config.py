"""
config.py - 全部可调常量 + 环境变量覆盖（NAVWATCH_*）
"""
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

# === 目录 ===
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = BASE_DIR / "data"

# === 网络 ===
REQUEST_TIMEOUT = 20          # 单次请求超时（秒）
MAX_RETRIES = 1               # 超时/无响应时最多重试1次
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

# === 批量刷新 ===
MAX_CONCURRENT_REQUESTS = 5
QUOTES_TTL_SECONDS = 60
MAX_HOLDINGS = 10

# === 交易时段 ===
TRADING_START = (9, 30)
TRADING_END = (15, 0)
SETTLE_HOUR = 20              # 20:00 后官方净值陆续公布

# === 净值收敛 ===
CHECK_HOUR = 20
CHECK_MINUTE = 0
RETRY_INTERVAL_SECONDS = 5 * 60
MAX_CONVERGE_RETRIES = 12     # 5分钟 x 12 ≈ 1小时

# === 盘中轮询 ===
POLL_INTERVAL_SECONDS = 60

# === 历史净值 ===
HISTORY_PAGE_SIZE = 49


class Settings(BaseModel):
    data_dir: Path = DATA_DIR
    request_timeout: float = REQUEST_TIMEOUT
    max_concurrent: int = Field(MAX_CONCURRENT_REQUESTS, ge=1)
    quotes_ttl: float = QUOTES_TTL_SECONDS
    settle_hour: int = Field(SETTLE_HOUR, ge=0, le=23)
    check_hour: int = Field(CHECK_HOUR, ge=0, le=23)
    check_minute: int = Field(CHECK_MINUTE, ge=0, le=59)
    retry_interval: float = RETRY_INTERVAL_SECONDS
    max_retries: int = Field(MAX_CONVERGE_RETRIES, ge=0)
    poll_interval: float = POLL_INTERVAL_SECONDS
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8000


_ENV_PREFIX = "NAVWATCH_"


def load_settings(environ: Optional[dict] = None) -> Settings:
    """从环境变量读取配置，未设置的字段使用默认值"""
    env = os.environ if environ is None else environ
    overrides = {}
    for name in Settings.model_fields:
        raw = env.get(_ENV_PREFIX + name.upper())
        if raw is not None and raw != "":
            overrides[name] = raw
    return Settings(**overrides)
