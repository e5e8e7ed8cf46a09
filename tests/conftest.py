import asyncio
import io
from dataclasses import replace
from typing import List, Optional

import numpy as np
import pytest
from PIL import Image

from classifier import ClassificationResult, PollutionClassifier
from geom.flat_earth import LatLng
from geom.polygons import square_ring
from imagery import ImageRef
from patrol_config import PatrolConfig
from pollution_types import CandidateDetection, Detection, HazardLevel, ImpactArea, PollutionKind


class GatedClassifier(PollutionClassifier):
    """Records calls and blocks each one until `gate` is set.

    The gate is created lazily so it binds to the loop running the test.
    """

    name = "gated"

    def __init__(self, result: Optional[ClassificationResult] = None, error: Optional[BaseException] = None) -> None:
        self.result = result if result is not None else ClassificationResult()
        self.error = error
        self.calls: List[ImageRef] = []
        self._gate: Optional[asyncio.Event] = None

    @property
    def gate(self) -> asyncio.Event:
        if self._gate is None:
            self._gate = asyncio.Event()
        return self._gate

    async def analyze(self, image_ref: ImageRef) -> ClassificationResult:
        self.calls.append(image_ref)
        await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.result


def make_detection(kind=PollutionKind.OIL, hazard=HazardLevel.MEDIUM, impact=ImpactArea.WATER,
                   confidence=0.8, observed_at=1000.0, lat=70.0, lng=-20.0) -> Detection:
    return Detection(
        kind=kind,
        confidence=confidence,
        boundary=square_ring(lat, lng),
        observed_at=observed_at,
        impact_area=impact,
        hazard_level=hazard,
    )


def make_candidate(**kwargs) -> CandidateDetection:
    kwargs.setdefault("boundary", square_ring(70.0, -20.0))
    return CandidateDetection(**kwargs)


def image_bytes(kind: str = "noise", fmt: str = "JPEG", size: int = 64) -> bytes:
    if kind == "noise":
        arr = np.random.RandomState(0).randint(0, 255, (size, size, 3), dtype=np.uint8)
        img = Image.fromarray(arr, "RGB")
    else:
        img = Image.new("RGB", (size, size), (200, 200, 200))
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def short_corridor() -> PatrolConfig:
    """About 38 km along the 70th parallel; 196 ticks per leg at the defaults."""
    return PatrolConfig(start=LatLng(70.0, -21.0), end=LatLng(70.0, -20.0))


@pytest.fixture
def slow_timer_config(short_corridor) -> PatrolConfig:
    """Timer effectively never fires; tests drive tick() by hand."""
    return replace(short_corridor, tick_interval_ms=600000, analysis_period=1, image_refresh_period=1)
