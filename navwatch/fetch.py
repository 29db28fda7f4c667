"""
fetch.py - HTTP请求 + 超时/无响应重试
只有"请求超时"和"没收到响应"会重试一次；拿到错误状态码的响应直接抛出。
"""
import http.client
import logging
import socket
import time
from typing import Callable, Dict, Optional, TypeVar
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from .config import MAX_RETRIES, REQUEST_TIMEOUT, USER_AGENT

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FetchError(Exception):
    """网络请求失败"""


class RequestTimeout(FetchError):
    pass


class NoResponse(FetchError):
    """连接被拒/DNS失败/连接重置等，没有收到任何响应"""


class HTTPStatusError(FetchError):
    def __init__(self, url: str, status: int):
        super().__init__(f"HTTP {status}: {url}")
        self.url = url
        self.status = status


def with_retry(fn: Callable[[], T], retries: int = MAX_RETRIES) -> T:
    """执行一次网络操作，超时/无响应时最多再试 retries 次"""
    attempt = 0
    while True:
        try:
            return fn()
        except (RequestTimeout, NoResponse) as e:
            if attempt >= retries:
                raise
            attempt += 1
            logger.warning(f"[Fetch] {e}, 重试 {attempt}/{retries}")


def cache_buster() -> int:
    return int(time.time() * 1000)


def http_get(
    url: str,
    params: Optional[Dict[str, object]] = None,
    referer: Optional[str] = None,
    timeout: float = REQUEST_TIMEOUT,
    encoding: str = "utf-8",
) -> str:
    """单次GET，不重试；异常统一映射为 FetchError 子类"""
    if params:
        url = f"{url}{'&' if '?' in url else '?'}{urlencode(params)}"
    headers = {"User-Agent": USER_AGENT}
    if referer:
        headers["Referer"] = referer

    req = Request(url, headers=headers)
    try:
        with urlopen(req, timeout=timeout) as resp:
            return resp.read().decode(encoding, errors="ignore")
    except HTTPError as e:
        raise HTTPStatusError(url, e.code) from e
    except URLError as e:
        if isinstance(e.reason, (socket.timeout, TimeoutError)):
            raise RequestTimeout(f"请求超时: {url}") from e
        raise NoResponse(f"无响应: {url} -> {e.reason}") from e
    except (socket.timeout, TimeoutError) as e:
        raise RequestTimeout(f"请求超时: {url}") from e
    except http.client.HTTPException as e:
        # 状态行损坏 / 响应体不完整，按没收到有效响应处理
        raise NoResponse(f"响应不完整: {url} -> {e!r}") from e
    except OSError as e:
        raise NoResponse(f"无响应: {url} -> {e}") from e


def get_text(url: str, **kwargs) -> str:
    """带重试的GET"""
    return with_retry(lambda: http_get(url, **kwargs))
