"""
Shared vocabulary for pollution detections.
Defines pollution kinds, hazard/impact enums, the Detection record and the
per-kind registry used to normalise free-text labels and to drive legends.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

LngLat = Tuple[float, float]
Ring = Tuple[LngLat, ...]


class PollutionKind(str, Enum):
    CHEMICAL = "Chemical"
    OIL = "Oil"
    PHYSICAL = "Physical"


class ImpactArea(str, Enum):
    WATER = "Water"
    SOIL = "Soil"


class HazardLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class ConfidenceBucket(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


# Bucket edges; Medium is inclusive on both ends.
CONFIDENCE_MEDIUM_MIN = 0.75
CONFIDENCE_MEDIUM_MAX = 0.90


def confidence_bucket(confidence: float) -> ConfidenceBucket:
    """Coarse Low/Medium/High bucket for a confidence score."""
    if confidence < CONFIDENCE_MEDIUM_MIN:
        return ConfidenceBucket.LOW
    if confidence <= CONFIDENCE_MEDIUM_MAX:
        return ConfidenceBucket.MEDIUM
    return ConfidenceBucket.HIGH


@dataclass
class PollutionKindConfig:
    """Display and parsing configuration for a pollution kind."""
    kind: PollutionKind
    name: str
    description: str
    ui_color: str  # CSS color for map legends
    aliases: Tuple[str, ...] = ()  # lowercase keywords seen in service labels


POLLUTION_KINDS: Dict[PollutionKind, PollutionKindConfig] = {
    PollutionKind.CHEMICAL: PollutionKindConfig(
        kind=PollutionKind.CHEMICAL,
        name="Chemical pollution",
        description="Chemical plumes, discoloured discharge and industrial effluent",
        ui_color="#AB47BC",
        aliases=("chemical", "plume", "effluent", "discharge", "toxic"),
    ),
    PollutionKind.OIL: PollutionKindConfig(
        kind=PollutionKind.OIL,
        name="Oil pollution",
        description="Oil slicks, sheens and petroleum spills",
        ui_color="#212121",
        aliases=("oil", "slick", "sheen", "petroleum", "fuel", "diesel"),
    ),
    PollutionKind.PHYSICAL: PollutionKindConfig(
        kind=PollutionKind.PHYSICAL,
        name="Physical pollution",
        description="Debris fields, sediment plumes and floating waste",
        ui_color="#8D6E63",
        aliases=("physical", "debris", "sediment", "waste", "plastic", "litter"),
    ),
}


def get_pollution_kind(kind: PollutionKind) -> PollutionKindConfig:
    return POLLUTION_KINDS[kind]


def normalize_kind(label: Any) -> Optional[PollutionKind]:
    """Map a free-text label ('Oil Slick', 'chemical plume', 'Oil') to a kind.

    Returns None when nothing matches so the caller can apply its default.
    """
    if isinstance(label, PollutionKind):
        return label
    if not isinstance(label, str) or not label.strip():
        return None
    text = label.strip().lower()
    for kind in PollutionKind:
        if text == kind.value.lower():
            return kind
    for cfg in POLLUTION_KINDS.values():
        if any(alias in text for alias in cfg.aliases):
            return cfg.kind
    return None


def _parse_enum(enum_cls, value: Any):
    if isinstance(value, enum_cls):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip().lower()
    for member in enum_cls:
        if text in (member.value.lower(), member.name.lower()):
            return member
    return None


def parse_kind(value: Any) -> Optional[PollutionKind]:
    """Exact kind name (case-insensitive); use normalize_kind for free text."""
    return _parse_enum(PollutionKind, value)


def parse_impact_area(value: Any) -> Optional[ImpactArea]:
    return _parse_enum(ImpactArea, value)


def parse_hazard_level(value: Any) -> Optional[HazardLevel]:
    return _parse_enum(HazardLevel, value)


def parse_confidence_bucket(value: Any) -> Optional[ConfidenceBucket]:
    return _parse_enum(ConfidenceBucket, value)


def clamp_confidence(value: Any) -> Optional[float]:
    try:
        c = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(c):
        return None
    return max(0.0, min(1.0, c))


@dataclass(frozen=True)
class Detection:
    """A geo-tagged pollution event. Immutable once stored."""
    kind: PollutionKind
    confidence: float
    boundary: Ring  # closed ring of (lng, lat)
    observed_at: float  # epoch seconds
    impact_area: ImpactArea
    hazard_level: HazardLevel

    def __post_init__(self) -> None:
        if not (0.0 <= self.confidence <= 1.0):
            raise ValueError(f"confidence out of range: {self.confidence}")
        if len(self.boundary) < 4 or self.boundary[0] != self.boundary[-1]:
            raise ValueError("boundary must be a closed ring with at least 4 points")

    @property
    def confidence_bucket(self) -> ConfidenceBucket:
        return confidence_bucket(self.confidence)

    def centroid(self) -> LngLat:
        pts = self.boundary[:-1]
        return (
            sum(p[0] for p in pts) / len(pts),
            sum(p[1] for p in pts) / len(pts),
        )

    def to_feature(self) -> Dict[str, Any]:
        """GeoJSON Feature for rendering collaborators."""
        return {
            "type": "Feature",
            "geometry": {
                "type": "Polygon",
                "coordinates": [[list(p) for p in self.boundary]],
            },
            "properties": {
                "kind": self.kind.value,
                "confidence": self.confidence,
                "confidence_bucket": self.confidence_bucket.value,
                "observed_at": self.observed_at,
                "impact_area": self.impact_area.value,
                "hazard_level": self.hazard_level.value,
                "color": POLLUTION_KINDS[self.kind].ui_color,
            },
        }


# Defaults applied to fields a classifier leaves out.
DEFAULT_KIND = PollutionKind.OIL
DEFAULT_CONFIDENCE = 0.8
DEFAULT_IMPACT_AREA = ImpactArea.WATER
DEFAULT_HAZARD_LEVEL = HazardLevel.MEDIUM


@dataclass
class CandidateDetection:
    """Classifier output before it is merged into the store.

    Only the boundary is required; everything else falls back to defaults on merge.
    """
    boundary: Ring
    kind: Optional[PollutionKind] = None
    confidence: Optional[float] = None
    impact_area: Optional[ImpactArea] = None
    hazard_level: Optional[HazardLevel] = None
    label: Optional[str] = None  # raw service label, kept for logs
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_detection(self, observed_at: float) -> Detection:
        return Detection(
            kind=self.kind or DEFAULT_KIND,
            confidence=self.confidence if self.confidence is not None else DEFAULT_CONFIDENCE,
            boundary=self.boundary,
            observed_at=observed_at,
            impact_area=self.impact_area or DEFAULT_IMPACT_AREA,
            hazard_level=self.hazard_level or DEFAULT_HAZARD_LEVEL,
        )


def merge_candidates(candidates: Sequence[CandidateDetection], observed_at: float) -> List[Detection]:
    return [c.to_detection(observed_at) for c in candidates]


def get_ui_config() -> List[Dict[str, Any]]:
    """Legend configuration for every pollution kind."""
    return [
        {
            "id": cfg.kind.value,
            "name": cfg.name,
            "description": cfg.description,
            "color": cfg.ui_color,
        }
        for cfg in POLLUTION_KINDS.values()
    ]
