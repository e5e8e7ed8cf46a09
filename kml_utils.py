import xml.etree.ElementTree as ET
from typing import List, Optional, Tuple

from geom.polygons import close_ring

LngLat = Tuple[float, float]
Ring = Tuple[LngLat, ...]


def _tag_name(tag: str) -> str:
    """Return the local tag name without namespace."""
    if '}' in tag:
        return tag.split('}', 1)[1]
    return tag


def _parse_coordinates(text: str) -> List[LngLat]:
    """Parse a KML <coordinates> text block into a list of (lng, lat) tuples.

    KML stores coordinates as lon,lat[,alt], separated by whitespace, which is
    already the order detection boundaries use.
    """
    pts: List[LngLat] = []
    if not text:
        return pts
    for token in text.strip().replace('\n', ' ').split():
        parts = token.split(',')
        if len(parts) < 2:
            continue
        try:
            lng = float(parts[0])
            lat = float(parts[1])
        except ValueError:
            continue
        pts.append((lng, lat))
    return pts


def _first_coordinates(elem: ET.Element) -> Optional[str]:
    for child in elem.iter():
        if _tag_name(child.tag) == 'coordinates':
            return child.text
    return None


def parse_kml_polygons(path: str) -> List[Ring]:
    """Extract outer polygon rings from a KML file as closed (lng, lat) rings.

    - Supports Placemarks with Polygon and MultiGeometry/Polygon children.
    - Only outerBoundaryIs rings are considered (holes are ignored).
    - Rings with fewer than 3 vertices are skipped.
    """
    tree = ET.parse(path)
    root = tree.getroot()

    rings: List[Ring] = []

    def walk_for_polygons(elem: ET.Element) -> None:
        if _tag_name(elem.tag) == 'Polygon':
            outer = None
            for child in elem.iter():
                if _tag_name(child.tag) == 'outerBoundaryIs':
                    outer = child
                    break
            # Fallback: any coordinates under this polygon
            pts = _parse_coordinates(_first_coordinates(outer if outer is not None else elem) or '')
            if len(pts) >= 3:
                rings.append(close_ring(pts))
            return
        for c in list(elem):
            walk_for_polygons(c)

    walk_for_polygons(root)
    return rings


def load_land_mask(path: str) -> List[Ring]:
    """Land polygons for the synthetic classifier; raises ValueError if the file has none."""
    try:
        rings = parse_kml_polygons(path)
    except ET.ParseError as e:
        raise ValueError(f"Invalid KML {path}: {e}") from e
    if not rings:
        raise ValueError(f"No polygons found in KML: {path}")
    return rings
