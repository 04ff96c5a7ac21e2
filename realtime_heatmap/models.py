from typing import Optional, Dict, Any, List, Tuple

from pydantic import BaseModel, ConfigDict, Field

NA = "N/A"


class RawRecord(BaseModel):
    # only the display fields matter; anything else on the row is ignored
    model_config = ConfigDict(extra="ignore")

    lat: Optional[Any] = None
    lon: Optional[Any] = None
    county: Optional[Any] = None
    time: Optional[Any] = None
    title: Optional[Any] = None


class IncidentFeature(BaseModel):
    incident_id: str
    position: Tuple[float, float]  # (lon, lat), GeoJSON axis order
    county: str = NA
    time: str = NA
    title: str = NA
    weight: int = 1

    def to_geojson(self) -> Dict[str, Any]:
        return {
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": list(self.position)},
            "properties": {
                "incident_id": self.incident_id,
                "county": self.county,
                "time": self.time,
                "title": self.title,
                "weight": self.weight,
            },
        }


class FeatureCollection(BaseModel):
    features: List[IncidentFeature] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.features)

    def to_geojson(self) -> Dict[str, Any]:
        return {
            "type": "FeatureCollection",
            "features": [f.to_geojson() for f in self.features],
        }


class WSMsg(BaseModel):
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)


class HitGeometry(BaseModel):
    model_config = ConfigDict(extra="allow")

    coordinates: Optional[List[float]] = Field(default=None, min_length=2)


class HitFeature(BaseModel):
    """One rendered feature under the pointer, as the map client reports it."""
    model_config = ConfigDict(extra="allow")

    id: Optional[Any] = None
    geometry: Optional[HitGeometry] = None
    properties: Dict[str, Any] = Field(default_factory=dict)


class PointerEvent(BaseModel):
    """A pointer event forwarded by the map client for one layer."""
    layer: str
    features: List[HitFeature] = Field(default_factory=list)
    lngLat: Optional[Tuple[float, float]] = None
