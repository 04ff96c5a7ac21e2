import logging
from typing import Any, Dict, List, Optional

from .renderer import Renderer

logger = logging.getLogger(__name__)

DENSITY_LAYER_ID = "heatmap"
INTERACTION_LAYER_ID = "points"

# heatmap-density -> colour; transparent blue at ~0 up to opaque red when critical
DENSITY_COLOR_STOPS = [
    (0.0, "rgba(0, 0, 255, 0)"),
    (0.3, "cyan"),
    (0.5, "lime"),
    (0.7, "yellow"),
    (1.0, "red"),
]


def _zoom_ramp(lo: float, hi: float) -> List[Any]:
    return ["interpolate", ["linear"], ["zoom"], 0, lo, 22, hi]


def density_layer_spec(source_id: str, layer_id: str = DENSITY_LAYER_ID) -> Dict[str, Any]:
    color: List[Any] = ["interpolate", ["linear"], ["heatmap-density"]]
    for stop, c in DENSITY_COLOR_STOPS:
        color += [stop, c]
    return {
        "id": layer_id,
        "type": "heatmap",
        "source": source_id,
        "paint": {
            "heatmap-weight": ["get", "weight"],
            "heatmap-intensity": _zoom_ramp(1, 3),
            "heatmap-radius": _zoom_ramp(2, 40),
            "heatmap-opacity": 0.6,
            "heatmap-color": color,
        },
    }


def interaction_layer_spec(source_id: str, layer_id: str = INTERACTION_LAYER_ID) -> Dict[str, Any]:
    return {
        "id": layer_id,
        "type": "circle",
        "source": source_id,
        "paint": {
            "circle-radius": 6,
            "circle-color": "#000",
            "circle-opacity": 0,
        },
    }


def find_label_layer_id(layers: List[Dict[str, Any]]) -> Optional[str]:
    """First symbol layer that actually draws text, i.e. the basemap labels."""
    for layer in layers:
        if layer.get("type") == "symbol" and (layer.get("layout") or {}).get("text-field"):
            return layer.get("id")
    return None


class LayerProvisioner:
    def __init__(self, renderer: Renderer,
                 density_layer_id: str = DENSITY_LAYER_ID,
                 interaction_layer_id: str = INTERACTION_LAYER_ID):
        self.renderer = renderer
        self.density_layer_id = density_layer_id
        self.interaction_layer_id = interaction_layer_id
        self.density_ready = False
        self.interaction_ready = False

    @property
    def provisioned(self) -> bool:
        return self.density_ready and self.interaction_ready

    def ensure_layers(self, source_id: str, insert_before_label_layer_id: Optional[str] = None) -> bool:
        """
        Create the heat layer (under the labels) and the invisible hit-target
        layer, once each. Returns True if anything was added.
        """
        if self.provisioned:
            return False

        added = False
        if not self.density_ready:
            if not self.renderer.layer_exists(self.density_layer_id):
                self.renderer.add_layer(density_layer_spec(source_id, self.density_layer_id),
                                        insert_before_label_layer_id)
                logger.info("[Layers] %s added before=%s", self.density_layer_id, insert_before_label_layer_id)
                added = True
            self.density_ready = True

        if not self.interaction_ready:
            if not self.renderer.layer_exists(self.interaction_layer_id):
                self.renderer.add_layer(interaction_layer_spec(source_id, self.interaction_layer_id))
                logger.info("[Layers] %s added", self.interaction_layer_id)
                added = True
            self.interaction_ready = True

        return added
