"""
app.py - API入口：/watchlist + /valuation + /fund + /events
"""
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
import uvicorn

from navwatch import (
    Fund, Services, StorageError, WatchlistError, build_services, load_settings,
)
from navwatch.history import RANGE_TRADING_DAYS


def create_app(services: Optional[Services] = None, start_background: bool = True) -> FastAPI:
    """services 为空时按环境变量配置组装；start_background 控制是否启动定时任务"""
    if services is None:
        services = build_services(load_settings())

    # ============================================================
    # 启动时做一次净值补检并挂上每日定时器，退出时全部取消
    # ============================================================

    @asynccontextmanager
    async def lifespan(app):
        if start_background:
            services.start()
        yield
        services.stop()

    app = FastAPI(
        title="NAV Watch",
        description="自选基金盘中估值 + 收盘后真实净值更新",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    watchlist = services.watchlist

    # ============================================================
    # 数据模型
    # ============================================================

    class WatchlistBody(BaseModel):
        funds: List[Fund]

    class SharesRequest(BaseModel):
        shares: float

    def ok(data=None) -> dict:
        if data is None:
            return {"success": True}
        return {"success": True, "data": data}

    def fail(error: str) -> dict:
        return {"success": False, "error": error}

    # ============================================================
    # 基金搜索
    # ============================================================

    @app.get("/v1/fund/{fund_code}/search")
    def search_fund(fund_code: str):
        """按代码搜索基金（含前十大持仓）"""
        try:
            return ok(watchlist.get_fund_detail(fund_code))
        except WatchlistError as e:
            return fail(str(e))

    @app.get("/v1/fund/{fund_code}/nav-history")
    def get_nav_history(fund_code: str, range_key: str = Query("1m", alias="range")):
        """历史净值，range: 1m/3m/6m/1y/3y/all"""
        if range_key not in RANGE_TRADING_DAYS:
            raise HTTPException(status_code=400, detail=f"range 必须是 {'/'.join(RANGE_TRADING_DAYS)}")
        return ok(watchlist.net_value_history(fund_code, range_key))

    # ============================================================
    # 自选列表
    # ============================================================

    @app.get("/v1/watchlist")
    def get_watchlist():
        return ok(watchlist.get_watchlist())

    @app.put("/v1/watchlist")
    def put_watchlist(body: WatchlistBody):
        """覆盖保存自选列表"""
        try:
            watchlist.save_watchlist(body.funds)
            return ok()
        except StorageError as e:
            return fail(str(e))

    @app.delete("/v1/watchlist")
    def clear_watchlist():
        try:
            watchlist.clear_watchlist()
            return ok()
        except StorageError as e:
            return fail(str(e))

    @app.get("/v1/watchlist/summary")
    def get_summary():
        """等权涨跌幅 + 今日预估盈亏"""
        return ok(watchlist.summary())

    @app.post("/v1/watchlist/{fund_code}")
    def add_fund(fund_code: str):
        if len(fund_code) != 6 or not fund_code.isdigit():
            raise HTTPException(status_code=400, detail="基金代码必须是6位数字")
        try:
            return ok(watchlist.add_fund(fund_code))
        except (WatchlistError, StorageError) as e:
            return fail(str(e))

    @app.delete("/v1/watchlist/{fund_code}")
    def remove_fund(fund_code: str):
        try:
            watchlist.remove_fund(fund_code)
            return ok()
        except (WatchlistError, StorageError) as e:
            return fail(str(e))

    @app.put("/v1/watchlist/{fund_code}/shares")
    def update_shares(fund_code: str, req: SharesRequest):
        """更新持有份额"""
        try:
            return ok(watchlist.update_shares(fund_code, req.shares))
        except (WatchlistError, StorageError) as e:
            return fail(str(e))

    # ============================================================
    # 估值
    # ============================================================

    @app.post("/v1/valuation/refresh")
    def refresh_valuation():
        """手动刷新全部估值"""
        try:
            return ok(watchlist.refresh(force=True))
        except StorageError as e:
            services.events.publish_error(str(e))
            return fail(str(e))

    @app.get("/v1/events/latest")
    def latest_event():
        """最近一次估值推送"""
        event = services.events.latest
        if event is None:
            return {"success": True, "data": None}
        return event.model_dump(exclude_none=True)

    # ============================================================
    # 健康检查
    # ============================================================

    @app.get("/health")
    def health():
        return {"status": "ok", "updater_running": services.updater.is_running}

    return app


# uvicorn app:app 使用的默认实例（按环境变量配置）
app = create_app()


if __name__ == "__main__":
    settings = app.state.services.settings
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )
    uvicorn.run(app, host=settings.host, port=settings.port)
