# api.py
import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from events import DEVICE_SCAN, Subscription
from guests import GuestExistsError
from network_monitor import NetworkMonitor
from utils import format_mac, is_valid_mac, isoformat, utc_now

logger = logging.getLogger(__name__)


class MacBody(BaseModel):
    mac: Optional[str] = None


class AlertBody(BaseModel):
    mac: Optional[str] = None
    ip: Optional[str] = None
    name: Optional[str] = None


class ResolveBody(BaseModel):
    timeLimit: Optional[float] = None


class GuestBody(BaseModel):
    mac: Optional[str] = None
    name: Optional[str] = None
    timeLimitMinutes: Optional[float] = None


def require_mac(mac: Optional[str]) -> str:
    """Validates a MAC from a request; a missing or malformed MAC is a 400 with no side effects."""
    if not mac:
        raise HTTPException(status_code=400, detail="MAC address required")
    if not is_valid_mac(mac):
        raise HTTPException(status_code=400, detail=f"Invalid MAC address: {mac}")
    return format_mac(mac)

async def _forward(websocket: WebSocket, subscription: Subscription) -> None:
    try:
        while True:
            await websocket.send_json(await subscription.get())
    except Exception as e:  # pylint: disable=broad-except
        logger.debug(f"WebSocket send failed, closing: {e}")
        with suppress(Exception):
            await websocket.close()


def create_app(monitor: NetworkMonitor, scan_interval: float = 0) -> FastAPI:

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await monitor.start()
        scan_task = None
        if scan_interval and scan_interval > 0:
            scan_task = asyncio.create_task(monitor.run_forever(scan_interval))
            logger.info(f"Periodic scan every {scan_interval}s")
        yield
        if scan_task:
            scan_task.cancel()
            with suppress(asyncio.CancelledError):
                await scan_task
        monitor.close()

    app = FastAPI(title="Pi Network Guard", version="0.1.0", lifespan=lifespan)

    @app.get("/health")
    async def health() -> dict:
        return {"ok": True, "ts": isoformat(utc_now()), "scanOk": monitor.last_scan_failure is None}

    @app.get("/devices")
    async def devices() -> list:
        return [d.to_dict() for d in await monitor.refresh()]

    @app.get("/devices/{mac}")
    async def device(mac: str) -> dict:
        record = await monitor.cache.get(require_mac(mac))
        if record is None:
            raise HTTPException(status_code=404, detail="Device not found")
        return record.to_dict()

    @app.post("/devices/block")
    async def block(body: MacBody) -> dict:
        result = await monitor.access.block(require_mac(body.mac))
        if not result.ok:
            raise HTTPException(status_code=500, detail=result.message)
        return {"message": result.message}

    @app.post("/devices/unblock")
    async def unblock(body: MacBody) -> dict:
        result = await monitor.access.unblock(require_mac(body.mac))
        return {"message": result.message}

    @app.post("/devices/alert")
    async def alert(body: AlertBody) -> dict:
        mac = require_mac(body.mac)
        logger.warning(f"ALERT: New device {body.name or 'Unknown'} ({mac}) at {body.ip}")
        monitor.authorization.request(mac, body.ip or "", body.name or "")
        return {"message": "Alert received"}

    @app.get("/requests/pending")
    async def pending_requests() -> list:
        return [r.to_dict() for r in monitor.authorization.pending()]

    @app.post("/requests/{action}/{mac}")
    async def resolve_request(action: str, mac: str, body: Optional[ResolveBody] = None) -> dict:
        if action not in ("approve", "reject"):
            raise HTTPException(status_code=400, detail=f"Unsupported action: {action}")
        mac = require_mac(mac)
        time_limit = body.timeLimit if body else None
        result = await monitor.authorization.resolve(mac, action, time_limit)
        if not result.ok:
            raise HTTPException(status_code=500, detail=result.message)
        verb = "approved" if action == "approve" else "rejected"
        suffix = f" for {time_limit:g} minutes" if action == "approve" and time_limit else ""
        return {"message": f"Device {mac} {verb}{suffix}"}

    @app.post("/guests/add")
    async def add_guest(body: GuestBody) -> dict:
        mac = require_mac(body.mac)
        try:
            guest = await monitor.guests.add(mac, body.name, body.timeLimitMinutes)
        except GuestExistsError:
            raise HTTPException(status_code=400, detail="Guest already exists")
        return {"message": "Guest added successfully", "guest": guest.to_dict()}

    @app.get("/guests/active")
    async def active_guests() -> list:
        return [g.to_dict() for g in await monitor.guests.active()]

    @app.post("/guests/remove")
    async def remove_guest(body: MacBody) -> dict:
        mac = require_mac(body.mac)
        if not await monitor.guests.remove(mac):
            raise HTTPException(status_code=404, detail="Guest not found")
        return {"message": f"Guest {mac} removed successfully"}

    @app.websocket("/ws")
    async def events(websocket: WebSocket):
        await websocket.accept()
        subscription = monitor.broadcaster.subscribe()
        sender = None
        try:
            snapshot = await monitor.cache.devices()
            await websocket.send_json({"type": DEVICE_SCAN, "data": [d.to_dict() for d in snapshot]})
            sender = asyncio.create_task(_forward(websocket, subscription))
            while True:
                message = await websocket.receive_text()
                if message.strip() == "scandevices":
                    await monitor.refresh()
        except WebSocketDisconnect:
            logger.debug("WebSocket client disconnected")
        finally:
            if sender:
                sender.cancel()
                with suppress(asyncio.CancelledError, Exception):
                    await sender
            monitor.broadcaster.unsubscribe(subscription)

    return app
