import os
from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv

load_dotenv()


def _getenv_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, default))
    except Exception:
        return default


def _getenv_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, default))
    except Exception:
        return default


def _getenv_lnglat(key: str, default: Tuple[float, float]) -> Tuple[float, float]:
    """MAP_CENTER style "lon,lat"; falls back on anything unparsable."""
    raw = os.getenv(key)
    if not raw:
        return default
    try:
        lon, lat = (float(x) for x in raw.split(","))
    except ValueError:
        return default
    return lon, lat


@dataclass
class Settings:
    firebase_database_url: Optional[str] = None
    firebase_path: str = "incidents"
    firebase_auth: Optional[str] = None
    firebase_reconnect_secs: float = 5.0

    mapbox_access_token: str = ""
    map_style: str = "mapbox://styles/mapbox/light-v10"
    map_center: Tuple[float, float] = (36.8219, -1.2921)  # Nairobi
    map_zoom: float = 6.0

    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000


def load_settings() -> Settings:
    return Settings(
        firebase_database_url=os.getenv("FIREBASE_DATABASE_URL") or None,
        firebase_path=os.getenv("FIREBASE_PATH", "incidents"),
        firebase_auth=os.getenv("FIREBASE_AUTH") or None,
        firebase_reconnect_secs=_getenv_float("FIREBASE_RECONNECT_SECS", 5.0),
        mapbox_access_token=os.getenv("MAPBOX_ACCESS_TOKEN", ""),
        map_style=os.getenv("MAP_STYLE", "mapbox://styles/mapbox/light-v10"),
        map_center=_getenv_lnglat("MAP_CENTER", (36.8219, -1.2921)),
        map_zoom=_getenv_float("MAP_ZOOM", 6.0),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        host=os.getenv("HOST", "0.0.0.0"),
        port=_getenv_int("PORT", 8000),
    )
