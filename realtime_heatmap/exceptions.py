class HeatmapError(Exception):
    """Base exception for the heatmap pipeline"""
    pass
class RendererNotReady(HeatmapError):
    """A source or layer was touched before the map reported ready"""
    pass
class DuplicateLayerError(HeatmapError):
    """A source or layer id was added twice"""
    pass
class SubscriptionError(HeatmapError):
    """Subscribing to a publisher that is closed"""
    pass
