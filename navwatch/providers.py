"""
providers.py - 数据源：基金搜索 / 估值 / 真实净值 / 历史净值 / 持仓 / 股票行情
只负责请求和解析原始数据，估值判定逻辑在 resolver.py
"""
import json
import logging
import re
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from .config import MAX_HOLDINGS, REQUEST_TIMEOUT
from .fetch import cache_buster, get_text
from .models import FundBasicInfo, Holding, Quote

logger = logging.getLogger(__name__)

SEARCH_URL = "https://fundsuggest.eastmoney.com/FundSearch/api/FundSearchAPI.ashx"
ESTIMATE_URL = "https://fundgz.1234567.com.cn/js/{code}.js"
NAV_URL = "https://api.fund.eastmoney.com/f10/lsjz"
HISTORY_URL = "https://fundf10.eastmoney.com/F10DataApi.aspx"
HOLDINGS_URL = "https://fundf10.eastmoney.com/FundArchivesDatas.aspx"
QUOTES_URL = "https://hq.sinajs.cn/list={symbols}"

FUND_CATEGORY = 700   # 搜索结果里"基金"分类

JSONPGZ_RE = re.compile(r"jsonpgz\((.+)\)", re.DOTALL)


def to_float(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class FundProvider:
    """天天基金 + 新浪行情。get 为带重试的文本请求，测试时可替换"""

    def __init__(self, get: Callable[..., str] = get_text, timeout: float = REQUEST_TIMEOUT):
        self._get = get
        self.timeout = timeout

    # ============================================================
    # 基金搜索
    # ============================================================

    def search_fund(self, code: str) -> Optional[FundBasicInfo]:
        text = self._get(
            SEARCH_URL,
            params={"callback": "", "m": 1, "key": code},
            timeout=self.timeout,
        )
        info = parse_search_result(text, code)
        if info is None:
            return None
        net_value, net_value_date = self.fetch_net_value(code)
        return info.model_copy(update={"net_value": net_value, "net_value_date": net_value_date})

    def fetch_net_value(self, code: str) -> tuple:
        """从估值接口取最近一个官方净值，失败返回 (0, "")"""
        text = self.fetch_estimate_text(code)
        m = JSONPGZ_RE.search(text)
        if not m:
            return 0.0, ""
        try:
            data = json.loads(m.group(1))
        except ValueError:
            return 0.0, ""
        return to_float(data.get("dwjz")), data.get("jzrq") or ""

    # ============================================================
    # 盘中估值 / 真实净值
    # ============================================================

    def fetch_estimate_text(self, code: str) -> str:
        return self._get(
            ESTIMATE_URL.format(code=code),
            params={"rt": cache_buster()},
            timeout=self.timeout,
        )

    def fetch_latest_nav(self, code: str) -> Optional[dict]:
        """最新一条官方净值 {"date", "value", "change"}，无数据返回 None"""
        text = self._get(
            NAV_URL,
            params={"fundCode": code, "pageIndex": 1, "pageSize": 1},
            referer=f"https://fundf10.eastmoney.com/jjjz_{code}.html",
            timeout=self.timeout,
        )
        return parse_latest_nav(text)

    # ============================================================
    # 历史净值（分页）
    # ============================================================

    def fetch_history_page(self, code: str, page: int, per: int) -> str:
        return self._get(
            HISTORY_URL,
            params={"type": "lsjz", "code": code, "per": per, "page": page},
            timeout=self.timeout,
        )

    # ============================================================
    # 前十大持仓
    # ============================================================

    def fetch_holdings(self, code: str) -> List[Holding]:
        text = self._get(
            HOLDINGS_URL,
            params={
                "type": "jjcc", "code": code, "topline": MAX_HOLDINGS,
                "year": "", "month": "", "rt": cache_buster(),
            },
            referer=f"http://fund.eastmoney.com/{code}.html",
            timeout=self.timeout,
        )
        return parse_holdings(text)

    # ============================================================
    # 股票行情（新浪，一次请求多只）
    # ============================================================

    def fetch_quotes(self, codes: Iterable[str], now: Optional[float] = None) -> Dict[str, Quote]:
        pairs = []
        for code in codes:
            symbol = to_sina_symbol(code)
            if symbol:
                pairs.append((code, symbol))
        if not pairs:
            return {}

        text = self._get(
            QUOTES_URL.format(symbols=",".join(sym for _, sym in pairs)),
            params={"rt": cache_buster()},
            referer="https://finance.sina.com.cn",
            timeout=self.timeout,
            encoding="gbk",
        )
        by_symbol = parse_sina_quotes(text, now)
        return {code: by_symbol[sym].model_copy(update={"code": code})
                for code, sym in pairs if sym in by_symbol}


# ============================================================
# 解析函数
# ============================================================

def parse_search_result(text: str, target_code: str) -> Optional[FundBasicInfo]:
    """搜索接口可能带回调包裹，只取最外层 {...}"""
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        data = json.loads(text[start:end + 1])
    except ValueError:
        return None

    for item in data.get("Datas") or []:
        if item.get("CODE") == target_code and item.get("CATEGORY") == FUND_CATEGORY:
            base = item.get("FundBaseInfo") or {}
            return FundBasicInfo(
                code=item["CODE"],
                name=item.get("NAME") or "",
                type=base.get("FTYPE") or "混合型",
            )
    return None


def parse_latest_nav(text: str) -> Optional[dict]:
    try:
        data = json.loads(text)
    except ValueError:
        logger.warning(f"[NAV] 净值接口返回非JSON: {text[:100]}")
        return None
    items = ((data or {}).get("Data") or {}).get("LSJZList") or []
    if not items:
        return None
    latest = items[0]
    return {
        "date": latest.get("FSRQ") or "",
        "value": to_float(latest.get("DWJZ")),
        "change": to_float(latest.get("JZZZL")),
    }


def parse_holdings(html: str) -> List[Holding]:
    """解析第一张持仓表（最新一期），最多 MAX_HOLDINGS 只"""
    table = re.search(r"<table[^>]*class=['\"]w782 comm tzxq['\"][^>]*>(.*?)</table>", html, re.DOTALL)
    if not table:
        return []

    holdings: List[Holding] = []
    seen = set()
    for row in re.findall(r"<tr[^>]*>(.*?)</tr>", table.group(1), re.DOTALL):
        cells = re.findall(r"<td[^>]*>(.*?)</td>", row, re.DOTALL)
        if len(cells) < 7:
            continue
        code_match = re.search(r"(\d{5,6})", re.sub(r"<[^>]+>", " ", cells[1]))
        if not code_match:
            continue
        stock_code = code_match.group(1)
        if stock_code in seen:
            continue

        stock_name = re.sub(r"<[^>]+>", "", cells[2]).strip() or stock_code
        weight_cell = next((c for c in cells[3:] if "%" in c), "")
        weight_text = re.sub(r"<[^>]+>", "", weight_cell).replace("%", "").strip()
        try:
            ratio = float(weight_text)
        except ValueError:
            continue

        seen.add(stock_code)
        holdings.append(Holding(stock_code=stock_code, stock_name=stock_name, ratio=ratio))
        if len(holdings) >= MAX_HOLDINGS:
            break
    return holdings


def to_sina_symbol(code: str) -> Optional[str]:
    c = code.strip()
    if re.fullmatch(r"\d{6}", c):
        if c.startswith(("5", "6", "9")):
            return f"sh{c}"
        return f"sz{c}"
    if re.fullmatch(r"\d{5}", c):
        return f"hk{c}"
    return None


def parse_sina_quotes(text: str, now: Optional[float] = None) -> Dict[str, Quote]:
    """var hq_str_sh600519="贵州茅台,开盘,昨收,现价,...";"""
    captured_at = now if now is not None else datetime.now().timestamp()
    result: Dict[str, Quote] = {}
    for line in text.strip().splitlines():
        m = re.match(r'var hq_str_((?:s[hz]\d{6})|(?:hk\d{5}))="([^"]*)"', line.strip())
        if not m or not m.group(2):
            continue
        symbol, fields = m.group(1), m.group(2).split(",")
        if symbol.startswith("hk"):
            name_idx, prev_idx, price_idx = 1, 3, 6
        else:
            name_idx, prev_idx, price_idx = 0, 2, 3
        if len(fields) <= price_idx:
            continue

        price = to_float(fields[price_idx])
        prev_close = to_float(fields[prev_idx])
        change = round((price - prev_close) / prev_close * 100, 2) if prev_close > 0 and price > 0 else 0.0
        result[symbol] = Quote(
            code=symbol[2:],
            name=fields[name_idx],
            price=price,
            change=change,
            captured_at=captured_at,
        )
    return result
