from .validator import validate
from .synchronizer import FeatureSetSynchronizer
from .layers import LayerProvisioner, find_label_layer_id
from .hover import HoverController
from .pipeline import PipelineCoordinator

__all__ = [
    "validate",
    "FeatureSetSynchronizer",
    "LayerProvisioner",
    "find_label_layer_id",
    "HoverController",
    "PipelineCoordinator",
]
