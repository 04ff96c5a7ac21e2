import logging
from typing import Any, Optional

from .feeds import SnapshotPublisher, Subscription
from .hover import HoverController
from .layers import LayerProvisioner, find_label_layer_id
from .models import FeatureCollection
from .renderer import Renderer
from .synchronizer import FeatureSetSynchronizer
from .validator import validate

logger = logging.getLogger(__name__)


class PipelineCoordinator:
    """
    One live map view.

    mount() waits for the renderer's ready signal, then subscribes to the
    publisher. Every snapshot runs validate -> sync; the first one also
    provisions the layers and binds hover. teardown() releases all of it and
    can be called any number of times.
    """

    def __init__(self, publisher: SnapshotPublisher, renderer: Renderer):
        self.publisher = publisher
        self.renderer = renderer
        self.synchronizer = FeatureSetSynchronizer(renderer)
        self.provisioner = LayerProvisioner(renderer)
        self.hover = HoverController(renderer, self.provisioner.interaction_layer_id)
        self.label_layer_id: Optional[str] = None
        self.collection = FeatureCollection()
        self.snapshots = 0
        self._subscription: Optional[Subscription] = None
        self._mounted = False
        self._alive = True

    @property
    def alive(self) -> bool:
        return self._alive

    def mount(self) -> "PipelineCoordinator":
        if self._mounted or not self._alive:
            return self
        self._mounted = True
        self.renderer.on_ready(self._on_ready)
        return self

    def _on_ready(self) -> None:
        if not self._alive:
            return
        self.label_layer_id = find_label_layer_id(self.renderer.get_style_layers())
        logger.info("[View] map ready; label layer=%s", self.label_layer_id)
        self._subscription = self.publisher.subscribe(self.on_snapshot)

    def on_snapshot(self, snapshot: Any) -> None:
        if not self._alive:
            return
        collection = validate(snapshot)
        source_id = self.synchronizer.sync(collection)
        if not self.provisioner.provisioned:
            self.provisioner.ensure_layers(source_id, self.label_layer_id)
        if not self.hover.bound:
            self.hover.bind()
        self.collection = collection
        self.snapshots += 1

    def teardown(self) -> None:
        if not self._alive:
            return
        self._alive = False
        try:
            if self._subscription is not None:
                self._subscription.cancel()
                self._subscription = None
            self.hover.close()
        finally:
            self.renderer.destroy()
        logger.info("[View] torn down after %d snapshot(s)", self.snapshots)

    def __enter__(self) -> "PipelineCoordinator":
        return self.mount()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.teardown()
