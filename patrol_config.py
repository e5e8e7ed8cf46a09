"""
Patrol configuration: corridor, cadence, footprint size and monitored region.
Values come from PatrolConfig defaults, optionally overridden by environment
variables (a local .env is loaded when present).
"""

import os
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from geom.flat_earth import BBox, LatLng


@dataclass(frozen=True)
class RegionBounds:
    """Monitored region; footprints are clamped to it."""
    west: float
    south: float
    east: float
    north: float

    def as_bbox(self) -> BBox:
        return BBox(self.west, self.south, self.east, self.north)

    def contains(self, pt: LatLng) -> bool:
        return self.south <= pt.lat <= self.north and self.west <= pt.lng <= self.east


# Arctic circle box: 168°49'30"W .. 32°4'35"E, 66°33'N .. pole
ARCTIC_REGION = RegionBounds(west=-168.825, south=66.55, east=32.07639, north=90.0)

# 70°43'01.7"N 21°36'10.6"W towards the south-east
DEFAULT_START = LatLng(70.7171, -21.6029)
DEFAULT_END = LatLng(70.0, -20.0)

DEFAULT_MODEL = "google/gemini-2.5-flash"


@dataclass(frozen=True)
class PatrolConfig:
    start: LatLng = DEFAULT_START
    end: LatLng = DEFAULT_END
    forward_heading: float = 135.0
    speed_kmh: float = 700.0
    tick_interval_ms: int = 1000
    analysis_period: int = 90  # ticks between classification requests
    image_refresh_period: int = 60  # ticks between published image updates
    footprint_half_width_km: float = 17.5
    region: RegionBounds = field(default=ARCTIC_REGION)
    data_rate_baseline: float = 500.0
    data_rate_jitter: float = 25.0
    detection_horizon_seconds: Optional[float] = None
    log_capacity: int = 100

    def __post_init__(self) -> None:
        for name, pt in (("start", self.start), ("end", self.end)):
            if not (-90.0 <= pt.lat <= 90.0) or not (-180.0 < pt.lng <= 180.0):
                raise ValueError(f"{name} out of range: {pt}")
        if self.start == self.end:
            raise ValueError("start and end must differ")
        if not (0.0 <= self.forward_heading < 360.0):
            raise ValueError(f"forward_heading must be in [0, 360): {self.forward_heading}")
        if self.speed_kmh <= 0:
            raise ValueError("speed_kmh must be positive")
        if self.tick_interval_ms <= 0:
            raise ValueError("tick_interval_ms must be positive")
        if self.analysis_period < 1 or self.image_refresh_period < 1:
            raise ValueError("analysis_period and image_refresh_period must be >= 1")
        if self.footprint_half_width_km <= 0:
            raise ValueError("footprint_half_width_km must be positive")
        r = self.region
        if r.south >= r.north or r.west >= r.east:
            raise ValueError(f"invalid region bounds: {r}")
        for name, pt in (("start", self.start), ("end", self.end)):
            if not r.contains(pt):
                raise ValueError(f"{name} {pt} lies outside the monitored region {r}")
        if self.detection_horizon_seconds is not None and self.detection_horizon_seconds <= 0:
            raise ValueError("detection_horizon_seconds must be positive when set")
        if self.log_capacity < 1:
            raise ValueError("log_capacity must be >= 1")

    @property
    def tick_interval_s(self) -> float:
        return self.tick_interval_ms / 1000.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start": {"lat": self.start.lat, "lng": self.start.lng},
            "end": {"lat": self.end.lat, "lng": self.end.lng},
            "forward_heading": self.forward_heading,
            "speed_kmh": self.speed_kmh,
            "tick_interval_ms": self.tick_interval_ms,
            "analysis_period": self.analysis_period,
            "image_refresh_period": self.image_refresh_period,
            "footprint_half_width_km": self.footprint_half_width_km,
            "region": {"west": self.region.west, "south": self.region.south,
                       "east": self.region.east, "north": self.region.north},
            "detection_horizon_seconds": self.detection_horizon_seconds,
        }


def _clean(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    # Strip matching single or double quotes around entire value
    if (len(s) >= 2) and ((s[0] == s[-1]) and s[0] in ("'", '"')):
        s = s[1:-1]
    return s or None


def parse_latlng(text: str) -> LatLng:
    """Parse 'lat,lng' into a LatLng."""
    parts = text.split(",")
    if len(parts) != 2:
        raise ValueError(f"expected 'lat,lng', got {text!r}")
    try:
        return LatLng(float(parts[0]), float(parts[1]))
    except ValueError:
        raise ValueError(f"expected 'lat,lng', got {text!r}") from None


def load_config_from_env(base: Optional[PatrolConfig] = None, environ: Optional[Dict[str, str]] = None) -> PatrolConfig:
    """Apply PATROL_* environment overrides on top of `base`.

    Recognised: PATROL_START, PATROL_END ('lat,lng'), PATROL_SPEED_KMH,
    PATROL_TICK_MS, PATROL_ANALYSIS_PERIOD, PATROL_IMAGE_REFRESH_PERIOD,
    PATROL_FOOTPRINT_KM, PATROL_HORIZON_SECONDS.
    """
    if environ is None:
        load_dotenv()
        environ = dict(os.environ)
    cfg = base or PatrolConfig()

    def get(name: str) -> Optional[str]:
        return _clean(environ.get(name))

    overrides: Dict[str, Any] = {}
    if get("PATROL_START"):
        overrides["start"] = parse_latlng(get("PATROL_START"))
    if get("PATROL_END"):
        overrides["end"] = parse_latlng(get("PATROL_END"))
    if get("PATROL_SPEED_KMH"):
        overrides["speed_kmh"] = float(get("PATROL_SPEED_KMH"))
    if get("PATROL_TICK_MS"):
        overrides["tick_interval_ms"] = int(get("PATROL_TICK_MS"))
    if get("PATROL_ANALYSIS_PERIOD"):
        overrides["analysis_period"] = int(get("PATROL_ANALYSIS_PERIOD"))
    if get("PATROL_IMAGE_REFRESH_PERIOD"):
        overrides["image_refresh_period"] = int(get("PATROL_IMAGE_REFRESH_PERIOD"))
    if get("PATROL_FOOTPRINT_KM"):
        overrides["footprint_half_width_km"] = float(get("PATROL_FOOTPRINT_KM"))
    if get("PATROL_HORIZON_SECONDS"):
        overrides["detection_horizon_seconds"] = float(get("PATROL_HORIZON_SECONDS"))
    return replace(cfg, **overrides) if overrides else cfg


def get_model_id(environ: Optional[Dict[str, str]] = None) -> str:
    env = os.environ if environ is None else environ
    return _clean(env.get("PATROL_MODEL")) or DEFAULT_MODEL


def get_api_key(environ: Optional[Dict[str, str]] = None) -> Optional[str]:
    env = os.environ if environ is None else environ
    return _clean(env.get("OPENROUTER_API_KEY"))
