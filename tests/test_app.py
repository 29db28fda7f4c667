import pytest
from fastapi.testclient import TestClient

from app import create_app
from conftest import MONDAY_INTRADAY, FixedClock, estimate_payload, make_fund
from navwatch import build_services
from navwatch.config import Settings
from navwatch.models import FundBasicInfo
from navwatch.storage import InMemoryWatchlistStore


@pytest.fixture
def services(provider, scheduler):
    store = InMemoryWatchlistStore([make_fund("000001", shares=200)])
    return build_services(Settings(), store=store, provider=provider,
                          scheduler=scheduler, clock=FixedClock(MONDAY_INTRADAY))


@pytest.fixture
def client(services):
    with TestClient(create_app(services, start_background=False)) as c:
        yield c


def test_get_watchlist(client):
    body = client.get("/v1/watchlist").json()
    assert body["success"] is True
    assert body["data"][0]["code"] == "000001"
    assert body["data"][0]["shares"] == 200


def test_add_fund_validates_code(client):
    assert client.post("/v1/watchlist/12ab").status_code == 400


def test_add_and_remove_fund(client, provider):
    provider.search["000002"] = FundBasicInfo(code="000002", name="华夏回报", net_value=1.0,
                                              net_value_date="2026-10-16")
    provider.estimates["000002"] = estimate_payload(code="000002")

    body = client.post("/v1/watchlist/000002").json()
    assert body["success"] is True
    assert body["data"]["estimated_value"] == 1.01

    dup = client.post("/v1/watchlist/000002").json()
    assert dup["success"] is False

    assert client.delete("/v1/watchlist/000002").json() == {"success": True}
    assert client.delete("/v1/watchlist/000002").json()["success"] is False


def test_update_shares(client):
    body = client.put("/v1/watchlist/000001/shares", json={"shares": 500}).json()
    assert body["data"]["shares"] == 500
    assert client.put("/v1/watchlist/000001/shares", json={"shares": -1}).json()["success"] is False


def test_replace_and_clear_watchlist(client):
    funds = [make_fund("000003").model_dump(), make_fund("000004").model_dump()]
    assert client.put("/v1/watchlist", json={"funds": funds}).json()["success"] is True
    assert [f["code"] for f in client.get("/v1/watchlist").json()["data"]] == ["000003", "000004"]

    client.delete("/v1/watchlist")
    assert client.get("/v1/watchlist").json()["data"] == []


def test_refresh_publishes_latest_event(client, provider):
    assert client.get("/v1/events/latest").json() == {"success": True, "data": None}
    provider.estimates["000001"] = estimate_payload(gsz="1.0500", gszzl="5.00")

    body = client.post("/v1/valuation/refresh").json()
    assert body["data"][0]["estimated_value"] == 1.05

    latest = client.get("/v1/events/latest").json()
    assert latest["success"] is True
    assert latest["data"][0]["estimated_change"] == 5.0


def test_summary(client, provider):
    provider.estimates["000001"] = estimate_payload(gsz="1.1000", gszzl="10.00")
    client.post("/v1/valuation/refresh")
    data = client.get("/v1/watchlist/summary").json()["data"]
    assert data["fund_count"] == 1
    assert data["total_estimated_change"] == pytest.approx(10.0)
    assert data["total_estimated_profit"] == pytest.approx(20.0)


def test_nav_history_range(client):
    assert client.get("/v1/fund/000001/nav-history", params={"range": "2w"}).status_code == 400
    body = client.get("/v1/fund/000001/nav-history", params={"range": "3m"}).json()
    assert body == {"success": True, "data": []}


def test_search_unknown_fund(client):
    assert client.get("/v1/fund/999999/search").json()["success"] is False


def test_health(client):
    assert client.get("/health").json() == {"status": "ok", "updater_running": False}


def test_module_level_app_is_served_by_uvicorn():
    from fastapi import FastAPI

    import app as app_module

    assert isinstance(app_module.app, FastAPI)
    assert "/health" in {route.path for route in app_module.app.routes}
