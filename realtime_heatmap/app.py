import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Set

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from .config import Settings, load_settings
from .feeds import FirebaseStreamPublisher, InMemoryPublisher, SnapshotPublisher, log_task_failure
from .models import PointerEvent, WSMsg
from .pipeline import PipelineCoordinator
from .renderer import LEAVE, MOVE, RemoteRenderer
from .validator import validate

settings = load_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)

views: Set[PipelineCoordinator] = set()  # one per connected map


def build_publisher(s: Settings) -> SnapshotPublisher:
    if s.firebase_database_url:
        return FirebaseStreamPublisher(
            s.firebase_database_url,
            path=s.firebase_path,
            auth=s.firebase_auth,
            reconnect_secs=s.firebase_reconnect_secs,
        )
    logger.warning("[Feed] FIREBASE_DATABASE_URL not set; using an in-memory feed")
    return InMemoryPublisher()


# =========================
# Lifecycle
# =========================

@asynccontextmanager
async def lifespan(app: FastAPI):
    publisher = build_publisher(settings)
    app.state.publisher = publisher
    await publisher.start()
    logger.info("[App] started with %s feed", publisher.kind)
    try:
        yield
    finally:
        for view in list(views):
            view.teardown()
        views.clear()
        await publisher.aclose()
        logger.info("[App] stopped")


app = FastAPI(title="Realtime Incident Heatmap", lifespan=lifespan)


# =========================
# HTTP
# =========================

@app.get("/health")
async def health():
    return {"ok": True, "views": len(views), "publisher": app.state.publisher.kind}


@app.get("/snapshot")
async def snapshot():
    """Read-only view of what every map is currently showing."""
    return validate(app.state.publisher.current).to_geojson()


# =========================
# Map clients
# =========================

POINTER_EVENTS = {"pointer.move": MOVE, "pointer.leave": LEAVE}


def map_init_payload(s: Settings) -> Dict[str, Any]:
    return {
        "accessToken": s.mapbox_access_token,
        "style": s.map_style,
        "center": list(s.map_center),
        "zoom": s.map_zoom,
    }


def handle_client_message(renderer: RemoteRenderer, raw: Any) -> None:
    """Route one client frame into the renderer. Raises ValueError if malformed."""
    msg = WSMsg.model_validate(raw)
    if msg.type == "map.ready":
        renderer.mark_ready(msg.data.get("layers") or [])
    elif msg.type in POINTER_EVENTS:
        evt = PointerEvent.model_validate(msg.data)
        renderer.dispatch(POINTER_EVENTS[msg.type], evt.layer, evt.model_dump())
    else:
        raise ValueError(f"unknown message type {msg.type!r}")


async def _pump(ws: WebSocket, renderer: RemoteRenderer):
    while True:
        msg = await renderer.outbox.get()
        await ws.send_json(msg)


@app.websocket("/ws")
async def ws_endpoint(ws: WebSocket):
    await ws.accept()
    renderer = RemoteRenderer()
    renderer.send("map.init", map_init_payload(settings))
    view = PipelineCoordinator(ws.app.state.publisher, renderer)
    views.add(view)
    writer = asyncio.create_task(_pump(ws, renderer), name="ws-writer")
    writer.add_done_callback(log_task_failure)
    logger.info("[WS] client connected; now %d view(s)", len(views))
    try:
        with view:
            while True:
                text = await ws.receive_text()
                try:
                    handle_client_message(renderer, json.loads(text))
                except ValueError as e:
                    logger.warning("[WS] bad client message: %s", e)
                    renderer.send("error", {"detail": str(e)})
    except WebSocketDisconnect:
        pass
    finally:
        views.discard(view)
        writer.cancel()
        await asyncio.gather(writer, return_exceptions=True)
        logger.info("[WS] client disconnected; now %d view(s)", len(views))


def run():
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
