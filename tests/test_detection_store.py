"""Tests for confidence bucketing, facet filtering and the append-only store."""

import pytest

from conftest import make_detection
from detection_store import DetectionStore, FilterQuery, to_feature_collection
from pollution_types import (
    ConfidenceBucket,
    Detection,
    HazardLevel,
    ImpactArea,
    PollutionKind,
    confidence_bucket,
)


@pytest.mark.parametrize("confidence, bucket", [
    (0.0, ConfidenceBucket.LOW),
    (0.749, ConfidenceBucket.LOW),
    (0.75, ConfidenceBucket.MEDIUM),
    (0.8, ConfidenceBucket.MEDIUM),
    (0.90, ConfidenceBucket.MEDIUM),
    (0.901, ConfidenceBucket.HIGH),
    (1.0, ConfidenceBucket.HIGH),
])
def test_confidence_bucket_edges(confidence, bucket):
    assert confidence_bucket(confidence) is bucket


@pytest.fixture
def two_detections():
    oil_high = make_detection(kind=PollutionKind.OIL, hazard=HazardLevel.HIGH)
    chem_low = make_detection(kind=PollutionKind.CHEMICAL, hazard=HazardLevel.LOW)
    store = DetectionStore()
    store.append([oil_high, chem_low])
    return store, oil_high, chem_low


def test_filter_conjunction(two_detections):
    store, oil_high, chem_low = two_detections

    q = FilterQuery(kind={PollutionKind.OIL})
    assert store.query(q) == [oil_high]

    q = FilterQuery(hazard_level={HazardLevel.LOW})
    assert store.query(q) == [chem_low]

    q = FilterQuery(kind={PollutionKind.OIL}, hazard_level={HazardLevel.LOW})
    assert store.query(q) == []


def test_values_within_a_facet_are_ored(two_detections):
    store, oil_high, chem_low = two_detections
    q = FilterQuery(kind={PollutionKind.OIL, PollutionKind.CHEMICAL})
    assert store.query(q) == [oil_high, chem_low]


def test_empty_query_returns_everything_in_order(two_detections):
    store, oil_high, chem_low = two_detections
    assert store.query(FilterQuery()) == [oil_high, chem_low]
    assert store.query(None) == [oil_high, chem_low]


def test_confidence_and_impact_facets():
    low = make_detection(confidence=0.5, impact=ImpactArea.SOIL)
    high = make_detection(confidence=0.95, impact=ImpactArea.WATER)
    store = DetectionStore()
    store.append([low, high])
    assert store.query(FilterQuery(confidence={ConfidenceBucket.HIGH})) == [high]
    assert store.query(FilterQuery(impact_area={ImpactArea.SOIL})) == [low]


def test_toggle_and_reset():
    q = FilterQuery()
    assert q.toggle("kind", "Oil") is True
    assert q.toggle("hazard_level", "high") is True
    assert q.kind == {PollutionKind.OIL}
    assert q.is_active()
    assert q.toggle("kind", "Oil") is False
    assert q.kind == set()
    q.reset()
    assert not q.is_active()
    assert q.to_dict() == {"kind": [], "hazard_level": [], "impact_area": [], "confidence": []}


@pytest.mark.parametrize("facet, value", [
    ("colour", "Oil"),
    ("kind", "Oil Slick"),
    ("hazard_level", "Extreme"),
    ("confidence", 0.9),
])
def test_toggle_rejects_unknown_facets_and_values(facet, value):
    with pytest.raises(ValueError):
        FilterQuery().toggle(facet, value)


def test_append_preserves_insertion_order_and_returns_copies():
    store = DetectionStore()
    first = [make_detection(lat=70.0 + i) for i in range(3)]
    store.append(first)
    store.append([make_detection(lat=80.0)])
    items = store.all()
    assert [d.boundary[0][1] for d in items] == pytest.approx([69.95, 70.95, 71.95, 79.95])
    items.clear()
    assert len(store) == 4


def test_horizon_prunes_old_entries_on_append():
    now = [10000.0]
    store = DetectionStore(horizon_seconds=600, clock=lambda: now[0])
    store.append([make_detection(observed_at=9000.0), make_detection(observed_at=9500.0)])
    assert len(store) == 2
    now[0] = 10050.0
    store.append([make_detection(observed_at=10050.0)])
    assert [d.observed_at for d in store.all()] == [9500.0, 10050.0]


def test_detection_rejects_open_ring_and_bad_confidence():
    ring = ((0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0))
    with pytest.raises(ValueError):
        Detection(PollutionKind.OIL, 0.5, ring, 0.0, ImpactArea.WATER, HazardLevel.LOW)
    with pytest.raises(ValueError):
        Detection(PollutionKind.OIL, 1.5, ring + (ring[0],), 0.0, ImpactArea.WATER, HazardLevel.LOW)


def test_feature_collection_shape():
    d = make_detection(kind=PollutionKind.CHEMICAL, confidence=0.95)
    fc = to_feature_collection([d])
    feature = fc["features"][0]
    assert fc["type"] == "FeatureCollection"
    assert feature["geometry"]["type"] == "Polygon"
    assert feature["geometry"]["coordinates"][0][0] == feature["geometry"]["coordinates"][0][-1]
    assert feature["properties"]["kind"] == "Chemical"
    assert feature["properties"]["confidence_bucket"] == "High"
