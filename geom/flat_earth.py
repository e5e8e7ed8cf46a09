import math
from dataclasses import dataclass
from typing import Tuple

KM_PER_DEG = 111.32  # flat-earth km per degree of latitude
MIN_COS_LAT = 0.000001


@dataclass(frozen=True)
class LatLng:
    lat: float
    lng: float


@dataclass(frozen=True)
class BBox:
    """Lat/lng aligned box (EPSG:4326)."""
    min_lng: float
    min_lat: float
    max_lng: float
    max_lat: float

    def center(self) -> LatLng:
        return LatLng((self.min_lat + self.max_lat) / 2.0, (self.min_lng + self.max_lng) / 2.0)

    def as_query(self) -> str:
        """minLng,minLat,maxLng,maxLat as used by ArcGIS export requests."""
        return ",".join(str(v) for v in (self.min_lng, self.min_lat, self.max_lng, self.max_lat))


def normalize_lng(lng: float) -> float:
    """Wrap a longitude (or longitude delta) into (-180, 180]."""
    wrapped = (lng + 180.0) % 360.0 - 180.0
    if wrapped == -180.0:
        return 180.0
    return wrapped


def km_per_deg_lng(lat: float) -> float:
    return KM_PER_DEG * max(MIN_COS_LAT, math.cos(math.radians(lat)))


def leg_delta(start: LatLng, end: LatLng) -> Tuple[float, float]:
    """(dLat, dLng) from start to end, longitude along the shortest path."""
    return end.lat - start.lat, normalize_lng(end.lng - start.lng)


def flat_distance_km(start: LatLng, end: LatLng) -> float:
    """Flat-earth distance using the cosine of the average latitude."""
    d_lat, d_lng = leg_delta(start, end)
    avg_lat = (start.lat + end.lat) / 2.0
    cos_lat = math.cos(math.radians(avg_lat))
    return math.hypot(d_lat * KM_PER_DEG, d_lng * KM_PER_DEG * cos_lat)


def square_bbox_km(lat: float, lng: float, half_width_km: float) -> BBox:
    dlat = half_width_km / KM_PER_DEG
    dlng = half_width_km / km_per_deg_lng(lat)
    return BBox(lng - dlng, lat - dlat, lng + dlng, lat + dlat)


def clamp_bbox(box: BBox, bounds: BBox) -> BBox:
    """Intersect `box` with `bounds`; a box outside collapses onto the nearest edge, never inverts."""
    min_lng = min(max(bounds.min_lng, box.min_lng), bounds.max_lng)
    min_lat = min(max(bounds.min_lat, box.min_lat), bounds.max_lat)
    max_lng = max(min(bounds.max_lng, box.max_lng), min_lng)
    max_lat = max(min(bounds.max_lat, box.max_lat), min_lat)
    return BBox(min_lng, min_lat, max_lng, max_lat)
