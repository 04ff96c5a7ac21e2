import logging

from .models import FeatureCollection
from .renderer import Renderer

logger = logging.getLogger(__name__)

SOURCE_ID = "incidents"


class FeatureSetSynchronizer:
    """Owns the single GeoJSON source; create once, then replace wholesale."""

    def __init__(self, renderer: Renderer, source_id: str = SOURCE_ID):
        self.renderer = renderer
        self.source_id = source_id
        self.created = False

    def sync(self, collection: FeatureCollection) -> str:
        data = collection.to_geojson()
        if not self.created and not self.renderer.source_exists(self.source_id):
            self.renderer.add_source(self.source_id, data)
            logger.info("[Sync] source %s created with %d feature(s)", self.source_id, len(collection))
        else:
            self.renderer.update_source_data(self.source_id, data)
            logger.debug("[Sync] source %s replaced with %d feature(s)", self.source_id, len(collection))
        self.created = True
        return self.source_id
