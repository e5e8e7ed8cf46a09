"""Append-only detection store with faceted filtering.

Detections are kept in insertion order and never edited. A store built with
a horizon drops entries older than the horizon whenever new ones arrive.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from pollution_types import (
    ConfidenceBucket,
    Detection,
    HazardLevel,
    ImpactArea,
    PollutionKind,
    parse_confidence_bucket,
    parse_hazard_level,
    parse_impact_area,
    parse_kind,
)

# facet name -> parser from request strings
FACET_PARSERS: Dict[str, Callable[[Any], Any]] = {
    "kind": parse_kind,
    "hazard_level": parse_hazard_level,
    "impact_area": parse_impact_area,
    "confidence": parse_confidence_bucket,
}


@dataclass
class FilterQuery:
    """Facet sets; an empty facet places no constraint on that attribute."""
    kind: Set[PollutionKind] = field(default_factory=set)
    hazard_level: Set[HazardLevel] = field(default_factory=set)
    impact_area: Set[ImpactArea] = field(default_factory=set)
    confidence: Set[ConfidenceBucket] = field(default_factory=set)

    def toggle(self, facet: str, value: Any) -> bool:
        """Add `value` to `facet` if absent, remove it otherwise.

        Returns True if the value is now selected. Raises ValueError for an
        unknown facet or a value that does not belong to it.
        """
        parser = FACET_PARSERS.get(facet)
        if parser is None:
            raise ValueError(f"Unknown facet: {facet}. Available: {list(FACET_PARSERS)}")
        parsed = parser(value)
        if parsed is None:
            raise ValueError(f"Invalid value for {facet}: {value!r}")
        selected: Set[Any] = getattr(self, facet)
        if parsed in selected:
            selected.discard(parsed)
            return False
        selected.add(parsed)
        return True

    def reset(self) -> None:
        for facet in FACET_PARSERS:
            getattr(self, facet).clear()

    def is_active(self) -> bool:
        return any(getattr(self, facet) for facet in FACET_PARSERS)

    def matches(self, d: Detection) -> bool:
        if self.kind and d.kind not in self.kind:
            return False
        if self.hazard_level and d.hazard_level not in self.hazard_level:
            return False
        if self.impact_area and d.impact_area not in self.impact_area:
            return False
        if self.confidence and d.confidence_bucket not in self.confidence:
            return False
        return True

    def copy(self) -> "FilterQuery":
        return FilterQuery(set(self.kind), set(self.hazard_level), set(self.impact_area), set(self.confidence))

    def to_dict(self) -> Dict[str, List[str]]:
        return {facet: sorted(v.value for v in getattr(self, facet)) for facet in FACET_PARSERS}


class DetectionStore:
    def __init__(self, horizon_seconds: Optional[float] = None, clock: Callable[[], float] = time.time) -> None:
        self.horizon_seconds = horizon_seconds
        self._clock = clock
        self._items: List[Detection] = []
        self._lock = threading.Lock()

    def append(self, detections: Iterable[Detection]) -> int:
        """Add detections at the end; returns how many were added."""
        new = list(detections)
        with self._lock:
            if self.horizon_seconds is not None:
                cutoff = self._clock() - self.horizon_seconds
                self._items = [d for d in self._items if d.observed_at >= cutoff]
            self._items.extend(new)
        return len(new)

    def all(self) -> List[Detection]:
        with self._lock:
            return list(self._items)

    def query(self, filter_query: Optional[FilterQuery] = None) -> List[Detection]:
        items = self.all()
        if filter_query is None or not filter_query.is_active():
            return items
        return [d for d in items if filter_query.matches(d)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


def to_feature_collection(detections: Iterable[Detection]) -> Dict[str, Any]:
    return {"type": "FeatureCollection", "features": [d.to_feature() for d in detections]}
