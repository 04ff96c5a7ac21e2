"""
Server-side mirror of the browser map.

The map itself (Mapbox GL in the browser) is opaque to the pipeline. The
``Renderer`` ABC is the surface the pipeline talks to; ``RemoteRenderer``
keeps a local copy of sources, layers and listeners and turns every mutation
into a ``WSMsg``-shaped command on ``outbox``. The WebSocket endpoint drains
that queue to the client and feeds client messages back in through
``mark_ready`` and ``dispatch``.
"""
import asyncio
import itertools
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Tuple

from .exceptions import DuplicateLayerError, RendererNotReady

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any]], None]

MOVE = "mousemove"
LEAVE = "mouseleave"


class Overlay(ABC):
    """A position-anchored popup."""

    @abstractmethod
    def set_position(self, lnglat: Tuple[float, float]) -> "Overlay": ...

    @abstractmethod
    def set_content(self, html: str) -> "Overlay": ...

    @abstractmethod
    def attach(self) -> "Overlay": ...

    @abstractmethod
    def remove(self) -> None: ...


class Renderer(ABC):
    @abstractmethod
    def on_ready(self, callback: Callable[[], None]) -> None: ...

    @abstractmethod
    def get_style_layers(self) -> List[Dict[str, Any]]: ...

    @abstractmethod
    def source_exists(self, source_id: str) -> bool: ...

    @abstractmethod
    def add_source(self, source_id: str, data: Dict[str, Any]) -> None: ...

    @abstractmethod
    def update_source_data(self, source_id: str, data: Dict[str, Any]) -> None: ...

    @abstractmethod
    def layer_exists(self, layer_id: str) -> bool: ...

    @abstractmethod
    def add_layer(self, spec: Dict[str, Any], before_layer_id: Optional[str] = None) -> None: ...

    @abstractmethod
    def on(self, event: str, layer_id: str, handler: Handler) -> None: ...

    @abstractmethod
    def off(self, event: str, layer_id: str, handler: Handler) -> None: ...

    @abstractmethod
    def create_overlay(self) -> Overlay: ...

    @abstractmethod
    def destroy(self) -> None: ...


class RemotePopup(Overlay):
    def __init__(self, renderer: "RemoteRenderer", popup_id: int):
        self._renderer = renderer
        self.id = popup_id
        self.lnglat: Optional[Tuple[float, float]] = None
        self.html = ""
        self.attached = False

    def _state(self) -> Dict[str, Any]:
        return {"id": self.id, "lngLat": list(self.lnglat) if self.lnglat else None, "html": self.html}

    def set_position(self, lnglat):
        self.lnglat = (float(lnglat[0]), float(lnglat[1]))
        if self.attached:
            self._renderer._emit("overlay.update", self._state())
        return self

    def set_content(self, html):
        self.html = html
        if self.attached:
            self._renderer._emit("overlay.update", self._state())
        return self

    def attach(self):
        if not self.attached:
            self.attached = True
            self._renderer.overlays[self.id] = self
            self._renderer._emit("overlay.add", self._state())
        return self

    def remove(self):
        if self.attached:
            self.attached = False
            self._renderer.overlays.pop(self.id, None)
            self._renderer._emit("overlay.remove", {"id": self.id})


class RemoteRenderer(Renderer):
    def __init__(self):
        self.outbox: asyncio.Queue = asyncio.Queue()
        self.sources: Dict[str, Dict[str, Any]] = {}
        self.layers: List[Dict[str, Any]] = []  # full style stack, bottom first
        self.overlays: Dict[int, RemotePopup] = {}
        self._handlers: Dict[Tuple[str, str], List[Handler]] = {}
        self._ready_callbacks: List[Callable[[], None]] = []
        self._popup_ids = itertools.count(1)
        self.ready = False
        self.closed = False

    # ---- outbound ----

    def _emit(self, msg_type: str, data: Dict[str, Any]) -> None:
        if self.closed:
            return
        self.outbox.put_nowait({"type": msg_type, "data": data})

    def _require_ready(self) -> None:
        if self.closed:
            raise RendererNotReady("renderer has been destroyed")
        if not self.ready:
            raise RendererNotReady("map has not reported ready yet")

    def send(self, msg_type: str, data: Dict[str, Any]) -> None:
        """Queue a message that does not touch map state (init, errors)."""
        self._emit(msg_type, data)

    # ---- lifecycle ----

    def on_ready(self, callback):
        if self.ready:
            callback()
            return
        self._ready_callbacks.append(callback)

    def mark_ready(self, style_layers: Optional[List[Dict[str, Any]]] = None) -> None:
        """Client reported its style loaded. Only the first call counts."""
        if self.ready or self.closed:
            logger.debug("[Map] duplicate ready ignored")
            return
        self.layers = [dict(l) for l in (style_layers or []) if isinstance(l, dict) and l.get("id")]
        self.ready = True
        callbacks, self._ready_callbacks = self._ready_callbacks, []
        for cb in callbacks:
            cb()

    def destroy(self):
        for popup in list(self.overlays.values()):
            popup.remove()
        self.closed = True
        self.sources.clear()
        self.layers.clear()
        self._handlers.clear()
        self._ready_callbacks.clear()

    # ---- sources / layers ----

    def get_style_layers(self):
        return list(self.layers)

    def source_exists(self, source_id):
        return source_id in self.sources

    def add_source(self, source_id, data):
        self._require_ready()
        if source_id in self.sources:
            raise DuplicateLayerError(f"source {source_id!r} already exists")
        self.sources[source_id] = data
        self._emit("source.add", {"id": source_id, "source": {"type": "geojson", "data": data}})

    def update_source_data(self, source_id, data):
        self._require_ready()
        if source_id not in self.sources:
            raise RendererNotReady(f"source {source_id!r} does not exist")
        self.sources[source_id] = data
        self._emit("source.set_data", {"id": source_id, "data": data})

    def layer_exists(self, layer_id):
        return any(l["id"] == layer_id for l in self.layers)

    def add_layer(self, spec, before_layer_id=None):
        self._require_ready()
        if self.layer_exists(spec["id"]):
            raise DuplicateLayerError(f"layer {spec['id']!r} already exists")
        idx = next((i for i, l in enumerate(self.layers) if l["id"] == before_layer_id), None)
        if idx is None:
            self.layers.append(spec)
            before_layer_id = None
        else:
            self.layers.insert(idx, spec)
        self._emit("layer.add", {"layer": spec, "before": before_layer_id})

    # ---- events ----

    def on(self, event, layer_id, handler):
        key = (event, layer_id)
        handlers = self._handlers.setdefault(key, [])
        if not handlers:
            self._emit("events.listen", {"event": event, "layer": layer_id})
        handlers.append(handler)

    def off(self, event, layer_id, handler):
        key = (event, layer_id)
        handlers = self._handlers.get(key, [])
        if handler in handlers:
            handlers.remove(handler)
        if key in self._handlers and not handlers:
            del self._handlers[key]
            self._emit("events.unlisten", {"event": event, "layer": layer_id})

    def listener_count(self, event: str, layer_id: str) -> int:
        return len(self._handlers.get((event, layer_id), []))

    def dispatch(self, event: str, layer_id: str, payload: Dict[str, Any]) -> None:
        if self.closed:
            return
        for handler in list(self._handlers.get((event, layer_id), [])):
            handler(payload)

    # ---- overlays ----

    def create_overlay(self):
        return RemotePopup(self, next(self._popup_ids))
