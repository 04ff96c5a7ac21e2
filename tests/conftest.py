"""
Shared fixtures. No live map or Firebase is needed: the RemoteRenderer is
driven directly and its outbox inspected, and the feed is in-memory.
"""
import os

import pytest

# Force the in-memory feed before the app module reads settings
os.environ["FIREBASE_DATABASE_URL"] = ""

from realtime_heatmap.feeds import InMemoryPublisher
from realtime_heatmap.renderer import RemoteRenderer

# A trimmed basemap style: background, roads, then the first text label layer.
BASEMAP_LAYERS = [
    {"id": "background", "type": "background"},
    {"id": "road-street", "type": "line"},
    {"id": "road-shields", "type": "symbol", "layout": {"icon-image": "shield"}},
    {"id": "settlement-label", "type": "symbol", "layout": {"text-field": ["get", "name"]}},
    {"id": "country-label", "type": "symbol", "layout": {"text-field": ["get", "name_en"]}},
]

SCENARIO_SNAPSHOT = {
    "a": {"lat": "1.0", "lon": "2.0", "county": "X", "title": "Crash"},
    "b": {"lat": "bad", "lon": "2.0"},
}


def drain(renderer):
    out = []
    while not renderer.outbox.empty():
        out.append(renderer.outbox.get_nowait())
    return out


def point(incident_id, lon, lat, **props):
    """A feature as the map client reports it under the pointer."""
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [lon, lat]},
        "properties": {"incident_id": incident_id, "weight": 1, **props},
    }


@pytest.fixture()
def renderer():
    r = RemoteRenderer()
    r.mark_ready(BASEMAP_LAYERS)
    return r


@pytest.fixture()
def publisher():
    return InMemoryPublisher()
