import math
from typing import Any, List, Optional, Sequence, Tuple

LngLat = Tuple[float, float]


def _as_point(pt: Any) -> Optional[LngLat]:
    if not isinstance(pt, (list, tuple)) or len(pt) < 2:
        return None
    try:
        lng = float(pt[0])
        lat = float(pt[1])
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(lng) and math.isfinite(lat)) or not (-90.0 <= lat <= 90.0):
        return None
    return lng, lat


def close_ring(points: Sequence[LngLat]) -> Tuple[LngLat, ...]:
    ring = list(points)
    if ring and ring[0] != ring[-1]:
        ring.append(ring[0])
    return tuple(ring)


def ring_from_geometry(geometry: Any) -> Optional[Tuple[LngLat, ...]]:
    """Extract the outer ring of a GeoJSON-like Polygon as a closed (lng, lat) ring.

    Accepts {"type": "Polygon", "coordinates": [[[lng, lat], ...]]} or a bare
    coordinates list. Returns None when no usable ring is present (missing,
    empty, non-numeric points, or fewer than 3 distinct vertices).
    """
    coords = geometry.get("coordinates") if isinstance(geometry, dict) else geometry
    if not isinstance(coords, list) or not coords:
        return None
    outer = coords[0]
    # tolerate a single ring given without the outer wrapping list
    if _as_point(outer) is not None:
        outer = coords
    if not isinstance(outer, list) or not outer:
        return None
    pts: List[LngLat] = []
    for raw in outer:
        pt = _as_point(raw)
        if pt is None:
            return None
        pts.append(pt)
    if len(set(pts)) < 3:
        return None
    return close_ring(pts)


def square_ring(lat: float, lng: float, size: float = 0.1) -> Tuple[LngLat, ...]:
    """Closed square ring of side `size` degrees centred on a point."""
    half = size / 2.0
    return (
        (lng - half, lat - half),
        (lng + half, lat - half),
        (lng + half, lat + half),
        (lng - half, lat + half),
        (lng - half, lat - half),
    )


def point_in_ring(lng: float, lat: float, ring: Sequence[LngLat]) -> bool:
    """Ray casting point-in-polygon on (lng, lat) vertices.

    Lng is X and lat is Y. The ring may be closed or open.
    """
    inside = False
    n = len(ring)
    if n < 3:
        return False
    j = n - 1
    for i in range(n):
        xi, yi = ring[i][0], ring[i][1]
        xj, yj = ring[j][0], ring[j][1]
        intersect = ((yi > lat) != (yj > lat)) and (lng < (xj - xi) * (lat - yi) / (yj - yi + 1e-15) + xi)
        if intersect:
            inside = not inside
        j = i
    return inside


def any_ring_contains(lng: float, lat: float, rings: Sequence[Sequence[LngLat]]) -> bool:
    for ring in rings:
        if point_in_ring(lng, lat, ring):
            return True
    return False
