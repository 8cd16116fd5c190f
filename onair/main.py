import logging
import os
import time
from datetime import datetime, timezone

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from onair.api import channels, guide, programs, scheduler
from onair.db import Base, engine, ensure_sqlite_schema
from onair.services.realtime import channel_hint, hub

Base.metadata.create_all(bind=engine)
ensure_sqlite_schema()

API_KEY = os.getenv("ONAIR_API_KEY", "").strip()
SERVER_PORT = int(os.getenv("ONAIR_SERVER_PORT", "8000"))
LOG_LEVEL = (os.getenv("ONAIR_LOG_LEVEL", "INFO") or "INFO").strip().upper()
QUIET_ACCESS_LOG = os.getenv("ONAIR_QUIET_ACCESS_LOG", "1").strip().lower() in {"1", "true", "yes", "on"}
QUIET_WEBSOCKET_LOG = os.getenv("ONAIR_QUIET_WEBSOCKET_LOG", "1").strip().lower() in {"1", "true", "yes", "on"}
OPEN_PATH_PREFIXES = ("/docs", "/openapi.json", "/redoc", "/healthz")
WATCHED_PREFIXES = ("/programs", "/scheduler", "/channels")

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("onair")

if QUIET_ACCESS_LOG:
    # Keep warning/error lines, suppress normal access noise (200/201 etc).
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

if QUIET_WEBSOCKET_LOG:
    # Viewers drop and reconnect all the time; the transport traces are noise.
    logging.getLogger("websockets").setLevel(logging.CRITICAL)
    logging.getLogger("uvicorn.protocols.websockets").setLevel(logging.CRITICAL)

app = FastAPI(title="onair")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def root():
    return {
        "ok": True,
        "service": "onair-api",
        "time_utc": datetime.now(timezone.utc).isoformat(),
        "docs": "/docs",
    }


@app.get("/healthz")
def healthz():
    return {"ok": True, "server_port": SERVER_PORT, "revision": hub.revision}


@app.get("/now")
def server_now():
    # Viewers compare against this to spot a skewed local clock.
    epoch_ms = int(time.time() * 1000)
    return {
        "epochMs": epoch_ms,
        "iso": datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
    }


@app.websocket("/ws/updates")
async def ws_updates(websocket: WebSocket):
    await hub.connect(websocket)
    try:
        while True:
            await hub.handle_message(websocket, await websocket.receive_text())
    except WebSocketDisconnect:
        await hub.disconnect(websocket)
    except Exception:
        await hub.disconnect(websocket)


@app.middleware("http")
async def api_key_middleware(request: Request, call_next):
    if not API_KEY:
        return await call_next(request)
    path = request.url.path
    if path == "/" or path.startswith(OPEN_PATH_PREFIXES):
        return await call_next(request)
    if request.headers.get("X-API-Key") != API_KEY:
        return JSONResponse({"detail": "Unauthorized"}, status_code=401)
    return await call_next(request)


@app.middleware("http")
async def realtime_mutation_middleware(request: Request, call_next):
    response = await call_next(request)
    method = request.method.upper()
    path = request.url.path
    if response.status_code < 400 and method in {"POST", "PUT", "DELETE"}:
        if path.startswith(WATCHED_PREFIXES):
            await hub.schedule_changed(path, method, channel_hint(path, dict(request.query_params)))
    return response


app.include_router(channels.router)
app.include_router(programs.router)
app.include_router(scheduler.router)
app.include_router(guide.router)
