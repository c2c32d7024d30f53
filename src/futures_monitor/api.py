from __future__ import annotations

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from .monitor import MonitorService
from .state import monitor_state

app = FastAPI(title="Futures Monitor API", version="0.1.0")

_monitor_service: MonitorService | None = None


def set_monitor_service(service: MonitorService | None) -> None:
    global _monitor_service
    _monitor_service = service


def get_monitor_service() -> MonitorService | None:
    return _monitor_service


class RevalidateResponse(BaseModel):
    ok: bool
    revalidated: list[str]


@app.get("/healthz")
async def healthz() -> dict:
    return {"ok": True}


@app.get("/status")
async def status() -> dict:
    return monitor_state.snapshot()


@app.get("/price")
async def price() -> dict:
    body = monitor_state.price_snapshot()
    if body["no_data_yet"]:
        raise HTTPException(status_code=503, detail="no data yet")
    return body


@app.get("/ticker")
async def ticker() -> dict:
    body = monitor_state.ticker_snapshot()
    if body["no_data_yet"]:
        raise HTTPException(status_code=503, detail="no data yet")
    return body


@app.get("/basket")
async def basket() -> dict:
    body = monitor_state.basket_snapshot()
    if body["no_data_yet"]:
        raise HTTPException(status_code=503, detail="no data yet")
    return body


@app.post("/admin/revalidate")
async def revalidate() -> RevalidateResponse:
    service = get_monitor_service()
    if service is None or not service.started:
        raise HTTPException(status_code=503, detail="monitor not running")
    return RevalidateResponse(ok=True, revalidated=service.revalidate())
