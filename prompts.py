"""
Prompt templates for pollution detection in satellite imagery.
The instruction asks for the five fields every detection needs: kind,
confidence, boundary polygon, impact area and hazard level.
"""

from typing import Optional

from geom.flat_earth import BBox
from pollution_types import HazardLevel, ImpactArea, PollutionKind

RESPONSE_KEY = "detections"


def get_system_prompt():
    """System prompt for consistent JSON formatting."""
    return "You are an expert satellite image analysis system for environmental monitoring in the Arctic. Return ONLY valid JSON. No extra text or explanations."


def _choices(enum_cls) -> str:
    return "|".join(f'"{m.value}"' for m in enum_cls)


def get_pollution_detection_prompt(footprint: Optional[BBox] = None):
    """Base prompt describing pollution classes, geometry and the response schema."""
    extent = ""
    if footprint is not None:
        extent = (
            f"\nThe image covers longitude {footprint.min_lng:.5f} to {footprint.max_lng:.5f} "
            f"and latitude {footprint.min_lat:.5f} to {footprint.max_lat:.5f} (EPSG:4326). "
            "Express every boundary in these geographic coordinates.\n"
        )
    return f"""Analyze this satellite image for pollution spills such as oil slicks, chemical plumes or debris fields.
{extent}
POLLUTION KINDS:
✓ Oil: dark or iridescent slicks and sheens on water, spill trails from vessels or installations
✓ Chemical: unnaturally coloured plumes, discharge from outfalls, discoloured snow or ice
✓ Physical: debris fields, sediment plumes, floating waste, tailings

DO NOT report these as pollution:
✗ Cloud shadows, cloud cover or haze
✗ Natural sea ice, leads, melt ponds or snow texture
✗ Algal blooms and natural sediment at river mouths unless clearly anomalous
✗ Ship wakes without a slick
✗ Image artifacts, seams or no-data areas

IMPACT AREA: "Water" when the spill is on sea, lake or river surface (including sea ice), "Soil" when it is on land.

HAZARD LEVEL:
- "High": large extent, spreading, or close to coastline/wildlife habitat
- "Medium": moderate extent or uncertain spread
- "Low": small, isolated or weathered

CONFIDENCE SCORING:
- 0.9-1.0: Unmistakable spill with multiple identifying features
- 0.75-0.9: Likely spill with some ambiguity
- 0.5-0.75: Uncertain, could be a natural feature
- below 0.5: Do not report

BOUNDARY: a GeoJSON Polygon whose coordinates are [longitude, latitude] pairs, first point repeated as the last.

If there are no spills, return an empty array.

Respond ONLY with JSON: {{"{RESPONSE_KEY}": [{{"type": {_choices(PollutionKind)}, "confidence": number between 0 and 1, "geometry": {{"type": "Polygon", "coordinates": [[[lng, lat], ...]]}}, "impactArea": {_choices(ImpactArea)}, "hazardLevel": {_choices(HazardLevel)}}}]}}"""
