import logging
import math
from typing import Any, Iterable, Mapping, Optional, Tuple

from .models import NA, FeatureCollection, IncidentFeature, RawRecord

logger = logging.getLogger(__name__)


def _coord(value: Any) -> Optional[float]:
    """Parse one coordinate; None when missing, non-numeric or not finite."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        f = float(value)
    except (TypeError, ValueError, OverflowError):
        # OverflowError: JSON integers too large for a float
        return None
    return f if math.isfinite(f) else None


def _text(value: Any) -> str:
    if value is None or value == "":
        return NA
    return str(value)


def _items(snapshot: Any) -> Iterable[Tuple[str, Any]]:
    if isinstance(snapshot, Mapping):
        return ((str(k), v) for k, v in snapshot.items())
    # Firebase hands back integer-keyed objects as arrays with null holes
    if isinstance(snapshot, (list, tuple)):
        return ((str(i), v) for i, v in enumerate(snapshot) if v is not None)
    return ()


def validate(snapshot: Any) -> FeatureCollection:
    """
    Turn a raw snapshot ({id: record}) into a FeatureCollection.

    - records without a finite lat AND lon are dropped, never defaulted
    - geometry is (lon, lat) even though the source fields are lat/lon
    - county/time/title fall back to "N/A"
    - None or an empty snapshot gives an empty collection
    """
    features = []
    dropped = 0
    for key, rec in _items(snapshot):
        if not isinstance(rec, Mapping):
            dropped += 1
            continue
        raw = RawRecord.model_validate(dict(rec))
        lat = _coord(raw.lat)
        lon = _coord(raw.lon)
        if lat is None or lon is None:
            dropped += 1
            continue
        features.append(IncidentFeature(
            incident_id=key,
            position=(lon, lat),
            county=_text(raw.county),
            time=_text(raw.time),
            title=_text(raw.title),
        ))

    if dropped:
        logger.debug("[Validate] kept=%d dropped=%d malformed record(s)", len(features), dropped)
    return FeatureCollection(features=features)
