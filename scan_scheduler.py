"""Tick-driven patrol and scan scheduling.

One asyncio timer task calls tick() every `tick_interval_ms`. Each tick moves
the agent along the corridor and, every `analysis_period` ticks, hands the
current footprint to the classifier unless a classification is still in
flight. Results are merged into the DetectionStore only if the patrol
generation that issued the request is still the current one, so anything
that resolves after stop() (or a restart) is dropped on the floor.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from classifier import ClassificationError, ClassificationResult, PollutionClassifier
from detection_store import DetectionStore
from geom.flat_earth import BBox, LatLng
from imagery import ImageRef, footprint_image_url, image_ref_for
from patrol_config import PatrolConfig
from patrol_engine import Direction, PatrolEngine, Position
from pollution_types import merge_candidates
from scan_log import ScanLog

logger = logging.getLogger(__name__)


class ScanState(str, Enum):
    STOPPED = "Stopped"
    IDLE = "Idle"
    SCANNING = "Scanning"
    ANALYZING = "Analyzing"


@dataclass(frozen=True)
class ScanSnapshot:
    """Read-only view published once per tick."""
    state: ScanState
    position: Position
    footprint: BBox
    direction: Direction
    image_url: str
    scan_count: int
    in_flight: bool
    detection_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "position": self.position.to_dict(),
            "footprint": {
                "min_lng": self.footprint.min_lng,
                "min_lat": self.footprint.min_lat,
                "max_lng": self.footprint.max_lng,
                "max_lat": self.footprint.max_lat,
            },
            "direction": self.direction.value,
            "image_url": self.image_url,
            "scan_count": self.scan_count,
            "in_flight": self.in_flight,
            "detection_count": self.detection_count,
        }


TickListener = Callable[[ScanSnapshot], None]


class ScanScheduler:
    def __init__(
        self,
        config: PatrolConfig,
        classifier: PollutionClassifier,
        *,
        store: Optional[DetectionStore] = None,
        log: Optional[ScanLog] = None,
        engine: Optional[PatrolEngine] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.classifier = classifier
        self.engine = engine or PatrolEngine(config)
        self.store = store if store is not None else DetectionStore(config.detection_horizon_seconds, clock)
        self.log = log if log is not None else ScanLog(config.log_capacity)
        self._clock = clock
        self._listeners: List[TickListener] = []

        self._state = ScanState.STOPPED
        self._generation = 0
        self._timer: Optional[asyncio.Task] = None
        self._analysis_task: Optional[asyncio.Task] = None
        self._in_flight = False
        self._reset_patrol()

    # ---------- state ----------
    def _reset_patrol(self) -> None:
        self._scan_count = 0
        self._direction = Direction.FORWARD
        self._position = self.engine.initial_position()
        self._footprint = self.engine.footprint(self._position.lat, self._position.lng)
        self._image_url = footprint_image_url(self._footprint)

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def scan_count(self) -> int:
        return self._scan_count

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def running(self) -> bool:
        return self._state is not ScanState.STOPPED

    def snapshot(self) -> ScanSnapshot:
        return ScanSnapshot(
            state=self._state,
            position=self._position,
            footprint=self._footprint,
            direction=self._direction,
            image_url=self._image_url,
            scan_count=self._scan_count,
            in_flight=self._in_flight,
            detection_count=len(self.store),
        )

    def add_listener(self, listener: TickListener) -> None:
        self._listeners.append(listener)

    # ---------- lifecycle ----------
    def start(self) -> None:
        """Reset the patrol and arm the tick timer. Must run inside an event loop."""
        loop = asyncio.get_running_loop()
        self._cancel_timer()
        self._generation += 1
        self._reset_patrol()
        self._in_flight = False
        self._state = ScanState.IDLE
        self.log.info("Patrol started")
        self._timer = loop.create_task(self._run_timer(self._generation))

    def stop(self) -> None:
        if self._state is ScanState.STOPPED:
            return
        self._cancel_timer()
        self._generation += 1
        self._in_flight = False
        self._state = ScanState.STOPPED
        self.log.info("Patrol stopped")

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _run_timer(self, generation: int) -> None:
        interval = self.config.tick_interval_s
        while generation == self._generation:
            await asyncio.sleep(interval)
            if generation != self._generation:
                break
            self.tick()

    async def wait_idle(self) -> None:
        """Wait for the outstanding classification, if any, to finish."""
        task = self._analysis_task
        if task is not None and not task.done():
            await task

    # ---------- tick ----------
    def tick(self) -> ScanSnapshot:
        if self._state is ScanState.STOPPED:
            return self.snapshot()

        self._scan_count += 1
        step = self.engine.step(self._position, self._direction)
        self._position = step.position
        self._direction = step.direction
        self._footprint = step.footprint

        ref = image_ref_for(step.footprint, LatLng(step.position.lat, step.position.lng), self._scan_count)
        if (self._scan_count - 1) % self.config.image_refresh_period == 0:
            self._image_url = ref.url

        should_analyze = self._scan_count % self.config.analysis_period == 0
        if should_analyze and not self._in_flight:
            self._state = ScanState.SCANNING
            self._in_flight = True
            loop = asyncio.get_running_loop()
            self._analysis_task = loop.create_task(self._analyze(ref, self._generation))
        elif not self._in_flight:
            self._state = ScanState.IDLE

        snap = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception:
                logger.exception("tick listener failed")
        return snap

    # ---------- analysis ----------
    async def _analyze(self, ref: ImageRef, generation: int) -> None:
        if generation != self._generation:
            return
        self._state = ScanState.ANALYZING
        self.log.info("Analyzing latest satellite image...")

        result: Optional[ClassificationResult] = None
        error: Optional[str] = None
        try:
            result = await self.classifier.analyze(ref)
        except ClassificationError as e:
            error = str(e)
        except Exception as e:
            logger.exception("classifier %s raised unexpectedly", self.classifier.name)
            error = f"{e.__class__.__name__}: {e}"

        if generation != self._generation:
            logger.debug("discarding stale classification for scan %d", ref.scan_count)
            return
        try:
            if error is not None:
                self.log.error(f"Classification failed: {error}")
            else:
                self._merge(result)
        finally:
            self._in_flight = False
            self._state = ScanState.IDLE

    def _merge(self, result: ClassificationResult) -> None:
        if not result.detections:
            if result.discarded:
                self.log.info("Analysis returned no usable detections.")
            else:
                self.log.info("No pollution found in the latest image.")
            return
        try:
            detections = merge_candidates(result.detections, self._clock())
        except ValueError as e:
            self.log.error(f"Classification returned invalid detections: {e}")
            return
        self.store.append(detections)
        n = len(detections)
        if result.discarded:
            logger.info("dropped %d malformed detection(s)", result.discarded)
        self.log.success(f"Detected {n} pollution zone{'s' if n != 1 else ''}.")
