from navwatch.fetch import RequestTimeout
from navwatch.models import Quote
from navwatch.providers import parse_sina_quotes, to_sina_symbol
from navwatch.quotes import QuoteCache, QuoteService


class Clock:
    def __init__(self, t):
        self.t = t

    def __call__(self):
        return self.t


def _service(clock):
    fetched = []

    def fetch(codes):
        fetched.append(list(codes))
        return {c: Quote(code=c, price=10.0 + len(fetched), change=1.5) for c in codes}

    return QuoteService(fetch, QuoteCache(ttl=60), clock=clock), fetched


def test_quote_reused_until_ttl_then_refetched():
    clock = Clock(1000.0)
    service, fetched = _service(clock)

    first = service.get_quotes(["600519"])
    assert first["600519"].price == 11.0
    assert first["600519"].captured_at == 1000.0

    clock.t = 1059.9
    assert service.get_quotes(["600519"])["600519"].price == 11.0
    assert len(fetched) == 1

    clock.t = 1060.0
    assert service.get_quotes(["600519"])["600519"].price == 12.0
    assert len(fetched) == 2


def test_only_missing_codes_are_fetched_in_one_request():
    clock = Clock(0.0)
    service, fetched = _service(clock)
    service.get_quotes(["600519", "000858"])
    clock.t = 30.0
    result = service.get_quotes(["600519", "000858", "00700", "600519"])
    assert set(result) == {"600519", "000858", "00700"}
    assert fetched == [["600519", "000858"], ["00700"]]


def test_fetch_failure_returns_cached_only():
    clock = Clock(0.0)
    calls = []

    def fetch(codes):
        calls.append(codes)
        if len(calls) > 1:
            raise RequestTimeout("slow")
        return {c: Quote(code=c, price=1.0) for c in codes}

    service = QuoteService(fetch, QuoteCache(ttl=60), clock=clock)
    service.get_quotes(["600519"])
    result = service.get_quotes(["600519", "000001"])
    assert list(result) == ["600519"]


def test_parse_sina_quotes_a_share_and_hk():
    text = (
        'var hq_str_sh600519="贵州茅台,1700.00,1600.00,1680.00,1690.00";\n'
        'var hq_str_hk00700="TENCENT,腾讯控股,380.0,400.0,410.0,395.0,420.0";\n'
        'var hq_str_sz000001="";\n'
    )
    quotes = parse_sina_quotes(text, now=5.0)
    assert quotes["sh600519"].price == 1680.0
    assert quotes["sh600519"].change == 5.0
    assert quotes["hk00700"].name == "腾讯控股"
    assert quotes["hk00700"].change == 5.0
    assert "sz000001" not in quotes


def test_to_sina_symbol():
    assert to_sina_symbol("600519") == "sh600519"
    assert to_sina_symbol("000858") == "sz000858"
    assert to_sina_symbol("00700") == "hk00700"
    assert to_sina_symbol("AAPL") is None
