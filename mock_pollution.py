"""
Synthetic pollution classifier and seed data.
Generates plausible detections around the footprint centre without calling
any service; impact area is decided by a coarse Arctic land mask.
"""

import asyncio
import math
import random
import time
from typing import List, Optional, Sequence, Tuple

from classifier import ClassificationResult, PollutionClassifier
from geom.polygons import any_ring_contains, close_ring, square_ring
from imagery import ImageRef
from pollution_types import (
    CandidateDetection,
    Detection,
    HazardLevel,
    ImpactArea,
    PollutionKind,
)

LngLat = Tuple[float, float]

# Simplified Arctic landmasses as (lng, lat) rings
ARCTIC_LANDMASSES: List[Tuple[LngLat, ...]] = [
    # Greenland
    ((-55, 83.5), (-20, 83), (-15, 81), (-25, 75), (-35, 68), (-50, 60), (-60, 65), (-70, 70), (-60, 78), (-55, 83.5)),
    # Svalbard
    ((10, 80.8), (30, 80.5), (32, 79), (25, 77), (12, 77.5), (10, 80.8)),
    # Canadian Arctic Archipelago and northern Canada
    ((-125, 78), (-110, 82), (-80, 83), (-65, 81), (-60, 75), (-70, 68), (-85, 65), (-100, 68), (-120, 70),
     (-130, 72), (-125, 78)),
    # Northern Siberia
    ((60, 73), (80, 77), (100, 79), (120, 78), (140, 76), (170, 72), (180, 70), (170, 68), (140, 70), (120, 72),
     (100, 73), (80, 72), (60, 73)),
    # Alaska
    ((-168, 71.5), (-155, 71), (-145, 70), (-141, 68), (-150, 67), (-165, 68), (-168, 71.5)),
]


def is_land(lat: float, lng: float, landmasses: Sequence[Sequence[LngLat]] = ARCTIC_LANDMASSES) -> bool:
    return any_ring_contains(lng, lat, landmasses)


def random_ring(lat: float, lng: float, rng: random.Random) -> Tuple[LngLat, ...]:
    """Irregular closed ring of 5-9 vertices, radius 0.2-1.0 degrees."""
    points = 5 + rng.randrange(5)
    radius = 0.2 + rng.random() * 0.8
    coords = []
    for i in range(points):
        angle = (i / points) * 2 * math.pi
        p_lat = lat + math.cos(angle) * radius * (0.5 + rng.random() * 0.5)
        p_lng = lng + math.sin(angle) * radius * (0.5 + rng.random() * 0.5)
        coords.append((p_lng, max(-90.0, min(90.0, p_lat))))
    return close_ring(coords)


class MockPollutionClassifier(PollutionClassifier):
    """Stand-in for the vision service with the same analyze() contract."""

    name = "mock"

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        *,
        detection_probability: float = 0.6,
        max_detections: int = 2,
        spread_deg: float = 1.5,
        latency_s: float = 0.0,
        landmasses: Optional[Sequence[Sequence[LngLat]]] = None,
    ) -> None:
        self._rng = rng or random.Random()
        self.detection_probability = detection_probability
        self.max_detections = max_detections
        self.spread_deg = spread_deg
        self.latency_s = latency_s
        self.landmasses = list(landmasses) if landmasses else ARCTIC_LANDMASSES

    async def analyze(self, image_ref: ImageRef) -> ClassificationResult:
        if self.latency_s > 0:
            await asyncio.sleep(self.latency_s)
        rng = self._rng
        if rng.random() >= self.detection_probability:
            return ClassificationResult()

        detections = []
        for _ in range(1 + rng.randrange(self.max_detections)):
            lat = image_ref.center.lat + (rng.random() - 0.5) * self.spread_deg
            lng = image_ref.center.lng + (rng.random() - 0.5) * self.spread_deg
            impact = ImpactArea.SOIL if is_land(lat, lng, self.landmasses) else ImpactArea.WATER
            detections.append(CandidateDetection(
                boundary=random_ring(lat, lng, rng),
                kind=rng.choice(list(PollutionKind)),
                confidence=0.75 + rng.random() * 0.24,
                impact_area=impact,
                hazard_level=rng.choice(list(HazardLevel)),
            ))
        return ClassificationResult(detections=detections)


# (lat, lng, kind, confidence, impact, hazard)
_SEED = [
    # Barents Sea
    (70.5, 50.1, PollutionKind.OIL, 0.95, ImpactArea.WATER, HazardLevel.HIGH),
    (71.2, 55.6, PollutionKind.OIL, 0.88, ImpactArea.WATER, HazardLevel.MEDIUM),
    (69.8, 45.3, PollutionKind.PHYSICAL, 0.82, ImpactArea.WATER, HazardLevel.LOW),
    (72.0, 51.5, PollutionKind.CHEMICAL, 0.91, ImpactArea.WATER, HazardLevel.MEDIUM),
    # Kara Sea
    (75.5, 80.2, PollutionKind.CHEMICAL, 0.98, ImpactArea.WATER, HazardLevel.HIGH),
    (77.1, 85.9, PollutionKind.PHYSICAL, 0.78, ImpactArea.SOIL, HazardLevel.MEDIUM),
    (76.3, 75.1, PollutionKind.OIL, 0.85, ImpactArea.WATER, HazardLevel.MEDIUM),
    # Laptev Sea
    (74.0, 128.0, PollutionKind.PHYSICAL, 0.92, ImpactArea.WATER, HazardLevel.MEDIUM),
    (73.5, 130.5, PollutionKind.CHEMICAL, 0.84, ImpactArea.WATER, HazardLevel.LOW),
    # East Siberian Sea
    (72.5, 165.0, PollutionKind.OIL, 0.80, ImpactArea.WATER, HazardLevel.LOW),
    (71.8, 175.2, PollutionKind.PHYSICAL, 0.88, ImpactArea.WATER, HazardLevel.MEDIUM),
    # Beaufort Sea
    (70.5, -135.0, PollutionKind.OIL, 0.96, ImpactArea.WATER, HazardLevel.HIGH),
    (71.0, -145.0, PollutionKind.OIL, 0.89, ImpactArea.WATER, HazardLevel.MEDIUM),
    (69.9, -140.5, PollutionKind.PHYSICAL, 0.79, ImpactArea.SOIL, HazardLevel.LOW),
    # Canadian Archipelago
    (75.0, -95.0, PollutionKind.PHYSICAL, 0.85, ImpactArea.WATER, HazardLevel.MEDIUM),
    (78.0, -85.0, PollutionKind.CHEMICAL, 0.90, ImpactArea.SOIL, HazardLevel.MEDIUM),
    # Baffin Bay / Greenland Sea
    (74.0, -60.0, PollutionKind.OIL, 0.82, ImpactArea.WATER, HazardLevel.LOW),
    (77.0, -15.0, PollutionKind.PHYSICAL, 0.91, ImpactArea.WATER, HazardLevel.MEDIUM),
    (79.0, -5.0, PollutionKind.CHEMICAL, 0.87, ImpactArea.WATER, HazardLevel.MEDIUM),
    # Svalbard
    (78.5, 25.0, PollutionKind.OIL, 0.93, ImpactArea.WATER, HazardLevel.HIGH),
    (79.5, 15.0, PollutionKind.PHYSICAL, 0.86, ImpactArea.SOIL, HazardLevel.MEDIUM),
    (77.0, 30.0, PollutionKind.CHEMICAL, 0.81, ImpactArea.WATER, HazardLevel.LOW),
    # Central Arctic
    (85.0, 90.0, PollutionKind.PHYSICAL, 0.75, ImpactArea.WATER, HazardLevel.LOW),
    (88.0, -10.0, PollutionKind.OIL, 0.83, ImpactArea.WATER, HazardLevel.MEDIUM),
]


def seeded_detections(observed_at: Optional[float] = None, size_deg: float = 0.1) -> List[Detection]:
    """Known historical events used to populate the map at startup."""
    ts = time.time() if observed_at is None else observed_at
    return [
        Detection(
            kind=kind,
            confidence=conf,
            boundary=square_ring(lat, lng, size_deg),
            observed_at=ts,
            impact_area=impact,
            hazard_level=hazard,
        )
        for (lat, lng, kind, conf, impact, hazard) in _SEED
    ]
