"""Corridor patrol kinematics.

The engine is stateless apart from its configuration: every tick the
scheduler hands it the previous Position and the current Direction and gets
back the next Position, the sensor footprint and the (possibly flipped)
direction. Motion is a linear interpolation along a flat-earth leg; when a
leg is finished the agent turns around and patrols the corridor backwards,
forever.
"""

import math
import random
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from geom.flat_earth import BBox, LatLng, clamp_bbox, flat_distance_km, leg_delta, normalize_lng, square_bbox_km
from patrol_config import PatrolConfig


class Direction(str, Enum):
    FORWARD = "forward"
    BACKWARD = "backward"

    def flipped(self) -> "Direction":
        return Direction.BACKWARD if self is Direction.FORWARD else Direction.FORWARD


@dataclass(frozen=True)
class Position:
    lat: float
    lng: float
    heading: float
    data_rate: float
    step_index: int = 0

    def to_dict(self):
        return {
            "lat": self.lat,
            "lng": self.lng,
            "heading": self.heading,
            "data_rate": self.data_rate,
            "step_index": self.step_index,
        }


@dataclass(frozen=True)
class PatrolStep:
    position: Position
    footprint: BBox
    direction: Direction


class PatrolEngine:
    def __init__(self, config: PatrolConfig, rng: Optional[random.Random] = None) -> None:
        self.config = config
        self._rng = rng or random.Random()
        self._total_steps = self._compute_total_steps()

    def _compute_total_steps(self) -> int:
        cfg = self.config
        km_per_tick = cfg.speed_kmh * (cfg.tick_interval_ms / 3600000.0)
        dist_km = flat_distance_km(cfg.start, cfg.end)
        return max(1, math.ceil(dist_km / km_per_tick))

    def total_steps(self) -> int:
        """Ticks per leg; both legs share the same length."""
        return self._total_steps

    def leg(self, direction: Direction) -> Tuple[LatLng, LatLng]:
        if direction is Direction.FORWARD:
            return self.config.start, self.config.end
        return self.config.end, self.config.start

    def heading(self, direction: Direction) -> float:
        fwd = self.config.forward_heading
        return fwd if direction is Direction.FORWARD else (fwd + 180.0) % 360.0

    def initial_position(self) -> Position:
        start = self.config.start
        return Position(
            lat=start.lat,
            lng=normalize_lng(start.lng),
            heading=self.heading(Direction.FORWARD),
            data_rate=self.config.data_rate_baseline,
            step_index=0,
        )

    def footprint(self, lat: float, lng: float) -> BBox:
        box = square_bbox_km(lat, lng, self.config.footprint_half_width_km)
        return clamp_bbox(box, self.config.region.as_bbox())

    def _data_rate(self) -> float:
        jitter = self.config.data_rate_jitter
        return self.config.data_rate_baseline + self._rng.uniform(-jitter, jitter)

    def step(self, prev: Position, direction: Direction) -> PatrolStep:
        step = prev.step_index + 1
        if step >= self._total_steps:
            direction = direction.flipped()
            step = 0

        start, end = self.leg(direction)
        d_lat, d_lng = leg_delta(start, end)
        progress = step / self._total_steps

        lat = max(-90.0, min(90.0, start.lat + d_lat * progress))
        lng = normalize_lng(start.lng + d_lng * progress)

        position = Position(
            lat=lat,
            lng=lng,
            heading=self.heading(direction),
            data_rate=self._data_rate(),
            step_index=step,
        )
        return PatrolStep(position=position, footprint=self.footprint(lat, lng), direction=direction)
