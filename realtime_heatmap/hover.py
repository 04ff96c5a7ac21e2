"""
Tooltip state machine for the hit-target layer.

    Idle --move(f)--> Showing(f) --move(g)--> Showing(g)
                          |
                        leave
                          v
                         Idle

At most one overlay exists; switching features removes the old popup and
attaches the new one inside a single handler call, so Idle is never
observable in between.
"""
import html
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from .layers import INTERACTION_LAYER_ID
from .models import NA
from .renderer import LEAVE, MOVE, Overlay, Renderer

logger = logging.getLogger(__name__)

TOOLTIP_TEMPLATE = (
    '<div style="background-color: rgba(0,0,0,0.85); padding: 14px 16px; border-radius: 10px; '
    'color: white; font-family: sans-serif; max-width: 250px;">'
    "<strong>COUNTY:</strong> {county}<br/>"
    "<strong>TIME:</strong> {time}<br/>"
    "<strong>INCIDENT:</strong> {title}"
    "</div>"
)


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Showing:
    feature_key: Any
    overlay: Overlay
    position: Optional[Tuple[float, float]] = None
    content: str = ""


HoverState = Union[Idle, Showing]


def tooltip_html(props: Dict[str, Any]) -> str:
    # values come straight from the feed, escape before they hit the DOM
    def esc(key: str) -> str:
        v = props.get(key)
        return html.escape(NA if v is None or v == "" else str(v))

    return TOOLTIP_TEMPLATE.format(county=esc("county"), time=esc("time"), title=esc("title"))


def _properties(feature: Dict[str, Any]) -> Dict[str, Any]:
    props = feature.get("properties")
    return props if isinstance(props, dict) else {}


def _coordinates(feature: Dict[str, Any]) -> Any:
    geometry = feature.get("geometry")
    return geometry.get("coordinates") if isinstance(geometry, dict) else None


def _lnglat(value: Any) -> Optional[Tuple[float, float]]:
    if not isinstance(value, (list, tuple)) or len(value) < 2:
        return None
    try:
        return float(value[0]), float(value[1])
    except (TypeError, ValueError):
        return None


def _feature_key(feature: Dict[str, Any]) -> Any:
    props = _properties(feature)
    if props.get("incident_id") is not None:
        return props["incident_id"]
    if feature.get("id") is not None:
        return feature["id"]
    coords = _coordinates(feature)
    coords = tuple(coords) if isinstance(coords, (list, tuple)) else ()
    return (coords, props.get("county"), props.get("time"), props.get("title"))


def _feature_position(feature: Dict[str, Any], fallback: Any) -> Optional[Tuple[float, float]]:
    return _lnglat(_coordinates(feature)) or _lnglat(fallback)


class HoverController:
    def __init__(self, renderer: Renderer, layer_id: str = INTERACTION_LAYER_ID):
        self.renderer = renderer
        self.layer_id = layer_id
        self.state: HoverState = Idle()
        self.bound = False

    # ---- wiring ----

    def bind(self) -> None:
        if self.bound:
            return
        self.renderer.on(MOVE, self.layer_id, self.on_move)
        self.renderer.on(LEAVE, self.layer_id, self.on_leave)
        self.bound = True

    def unbind(self) -> None:
        if not self.bound:
            return
        self.renderer.off(MOVE, self.layer_id, self.on_move)
        self.renderer.off(LEAVE, self.layer_id, self.on_leave)
        self.bound = False

    def close(self) -> None:
        self.unbind()
        if isinstance(self.state, Showing):
            self.state.overlay.remove()
        self.state = Idle()

    # ---- transitions ----

    def on_move(self, event: Dict[str, Any]) -> None:
        features = event.get("features") or []
        if not features:
            # the renderer should never send this for a layer-scoped move
            return

        top = features[0]
        if not isinstance(top, dict):
            return
        position = _feature_position(top, event.get("lngLat"))
        if position is None:
            # nowhere to anchor a tooltip; don't leave the previous one up
            self.on_leave()
            return

        key = _feature_key(top)
        content = tooltip_html(_properties(top))
        state = self.state
        if isinstance(state, Showing):
            if state.feature_key == key:
                # same feature: only refresh what a newer snapshot changed
                if position != state.position:
                    state.overlay.set_position(position)
                if content != state.content:
                    state.overlay.set_content(content)
                self.state = Showing(key, state.overlay, position, content)
                return
            state.overlay.remove()

        overlay = self.renderer.create_overlay().set_position(position).set_content(content).attach()
        self.state = Showing(key, overlay, position, content)
        logger.debug("[Hover] showing %s", key)

    def on_leave(self, event: Optional[Dict[str, Any]] = None) -> None:
        if isinstance(self.state, Showing):
            self.state.overlay.remove()
            logger.debug("[Hover] hidden %s", self.state.feature_key)
        self.state = Idle()
