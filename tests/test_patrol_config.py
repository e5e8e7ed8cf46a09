from dataclasses import replace

import pytest

from geom.flat_earth import LatLng
from patrol_config import (
    DEFAULT_MODEL,
    PatrolConfig,
    RegionBounds,
    get_api_key,
    get_model_id,
    load_config_from_env,
    parse_latlng,
)


def test_defaults():
    cfg = PatrolConfig()
    assert cfg.forward_heading == 135.0
    assert cfg.speed_kmh == 700.0
    assert cfg.tick_interval_ms == 1000
    assert cfg.tick_interval_s == 1.0
    assert cfg.analysis_period == 90
    assert cfg.image_refresh_period == 60
    assert cfg.detection_horizon_seconds is None
    assert cfg.to_dict()["region"]["north"] == 90.0


def test_env_overrides_are_applied():
    env = {
        "PATROL_START": "'71.5, -30'",
        "PATROL_END": "72,-25",
        "PATROL_TICK_MS": "250",
        "PATROL_ANALYSIS_PERIOD": "10",
        "PATROL_HORIZON_SECONDS": "3600",
        "PATROL_SPEED_KMH": "",
    }
    cfg = load_config_from_env(environ=env)
    assert cfg.start == LatLng(71.5, -30.0)
    assert cfg.end == LatLng(72.0, -25.0)
    assert cfg.tick_interval_ms == 250
    assert cfg.analysis_period == 10
    assert cfg.detection_horizon_seconds == 3600.0
    assert cfg.speed_kmh == 700.0


def test_env_overrides_respect_base():
    base = PatrolConfig(speed_kmh=300.0)
    assert load_config_from_env(base, environ={}) is base


@pytest.mark.parametrize("env", [
    {"PATROL_START": "70"},
    {"PATROL_START": "north,west"},
    {"PATROL_TICK_MS": "0"},
    {"PATROL_ANALYSIS_PERIOD": "-1"},
    {"PATROL_END": "70.7171,-21.6029"},
])
def test_invalid_env_values_raise(env):
    with pytest.raises(ValueError):
        load_config_from_env(environ=env)


@pytest.mark.parametrize("changes", [
    {"start": LatLng(91.0, 0.0)},
    {"end": LatLng(70.0, -180.0)},
    {"forward_heading": 360.0},
    {"speed_kmh": 0.0},
    {"image_refresh_period": 0},
    {"footprint_half_width_km": -1.0},
    {"region": RegionBounds(west=10.0, south=70.0, east=-10.0, north=80.0)},
    {"detection_horizon_seconds": 0.0},
    {"log_capacity": 0},
])
def test_invalid_config_rejected(changes):
    with pytest.raises(ValueError):
        replace(PatrolConfig(), **changes)


def test_parse_latlng():
    assert parse_latlng(" 70.5 , -20 ") == LatLng(70.5, -20.0)


def test_model_and_key_lookup():
    assert get_model_id({}) == DEFAULT_MODEL
    assert get_model_id({"PATROL_MODEL": '"openai/gpt-4o"'}) == "openai/gpt-4o"
    assert get_api_key({}) is None
    assert get_api_key({"OPENROUTER_API_KEY": " sk-test "}) == "sk-test"


@pytest.mark.parametrize("start, end", [
    (LatLng(75.0, 80.0), LatLng(76.0, 85.0)),
    (LatLng(70.0, -20.0), LatLng(60.0, -20.0)),
])
def test_corridor_outside_region_rejected(start, end):
    with pytest.raises(ValueError, match="outside the monitored region"):
        PatrolConfig(start=start, end=end)


def test_corridor_inside_custom_region_accepted():
    region = RegionBounds(west=-180.0, south=60.0, east=180.0, north=90.0)
    cfg = PatrolConfig(start=LatLng(75.0, 80.0), end=LatLng(76.0, 85.0), region=region)
    assert region.contains(cfg.end)
