import argparse
import asyncio
import logging
import random
import sys
from dataclasses import replace
from typing import Optional

from classifier import OpenRouterPollutionClassifier, PollutionClassifier, RetryPolicy, silence_external_loggers
from detection_store import DetectionStore
from kml_utils import load_land_mask
from mock_pollution import MockPollutionClassifier, seeded_detections
from patrol_config import PatrolConfig, get_api_key, get_model_id, load_config_from_env
from scan_log import EventLogger
from scan_scheduler import ScanScheduler, ScanSnapshot

logger = logging.getLogger(__name__)


def build_classifier(
    backend: str,
    *,
    model: Optional[str] = None,
    events_log: Optional[str] = None,
    land_kml: Optional[str] = None,
    mock_latency: float = 0.0,
    seed: Optional[int] = None,
) -> PollutionClassifier:
    if backend == "mock":
        landmasses = load_land_mask(land_kml) if land_kml else None
        rng = random.Random(seed) if seed is not None else None
        return MockPollutionClassifier(rng, latency_s=mock_latency, landmasses=landmasses)
    if backend == "openrouter":
        return OpenRouterPollutionClassifier(
            model=model or get_model_id(),
            api_key=get_api_key(),
            retry_policy=RetryPolicy(),
            events=EventLogger(events_log),
        )
    raise ValueError(f"Unknown classifier backend: {backend}. Available: ['openrouter', 'mock']")


def build_scheduler(config: PatrolConfig, classifier: PollutionClassifier, *, seed_detections: bool = True) -> ScanScheduler:
    store = DetectionStore(config.detection_horizon_seconds)
    if seed_detections:
        store.append(seeded_detections())
    return ScanScheduler(config, classifier, store=store)


def add_common_args(ap: argparse.ArgumentParser) -> None:
    ap.add_argument("--classifier", type=str, default="openrouter", choices=["openrouter", "mock"], help="Detection backend.")
    ap.add_argument("--model", type=str, default=None, help="OpenRouter model id (default from PATROL_MODEL or google/gemini-2.5-flash).")
    ap.add_argument("--events_log", type=str, default=None, help="Optional JSONL to log per-request classifier events.")
    ap.add_argument("--land_kml", type=str, default=None, help="KML with land polygons for the mock classifier.")
    ap.add_argument("--mock_latency", type=float, default=1.5, help="Simulated analysis time for the mock classifier (seconds).")
    ap.add_argument("--seed", type=int, default=None, help="Random seed for the mock classifier.")
    ap.add_argument("--no_seed_detections", action="store_true", help="Start with an empty detection store.")
    ap.add_argument("--tick_ms", type=int, default=None, help="Override tick interval in milliseconds.")
    ap.add_argument("--analysis_period", type=int, default=None, help="Override ticks between classifications.")
    ap.add_argument("--debug", action="store_true", help="Enable verbose debug logging to console.")


def config_from_args(args: argparse.Namespace) -> PatrolConfig:
    cfg = load_config_from_env()
    overrides = {}
    if args.tick_ms is not None:
        overrides["tick_interval_ms"] = args.tick_ms
    if args.analysis_period is not None:
        overrides["analysis_period"] = args.analysis_period
    if overrides:
        cfg = replace(cfg, **overrides)
    return cfg


def setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )
    silence_external_loggers()


async def run_headless(scheduler: ScanScheduler, ticks: Optional[int]) -> None:
    done = asyncio.Event()

    def on_tick(snap: ScanSnapshot) -> None:
        logger.debug(
            "tick %d state=%s lat=%.4f lng=%.4f heading=%.0f",
            snap.scan_count, snap.state.value, snap.position.lat, snap.position.lng, snap.position.heading,
        )
        if ticks is not None and snap.scan_count >= ticks:
            done.set()

    scheduler.add_listener(on_tick)
    scheduler.start()
    try:
        await done.wait()
    finally:
        scheduler.stop()
        await scheduler.wait_idle()


def main() -> None:
    ap = argparse.ArgumentParser(description="Run the Arctic pollution patrol without the HTTP surface.")
    add_common_args(ap)
    ap.add_argument("--ticks", type=int, default=None, help="Stop after this many ticks (default: run until interrupted).")
    args = ap.parse_args()

    setup_logging(args.debug)
    try:
        config = config_from_args(args)
        classifier = build_classifier(
            args.classifier,
            model=args.model,
            events_log=args.events_log,
            land_kml=args.land_kml,
            mock_latency=args.mock_latency,
            seed=args.seed,
        )
    except (ValueError, OSError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.classifier == "openrouter" and not get_api_key():
        print("Missing OPENROUTER_API_KEY in environment", file=sys.stderr)
        sys.exit(1)

    scheduler = build_scheduler(config, classifier, seed_detections=not args.no_seed_detections)
    print(f"Classifier: {classifier.name}", file=sys.stderr)
    print(f"Corridor: {config.start} -> {config.end}, {scheduler.engine.total_steps()} ticks per leg", file=sys.stderr)

    try:
        asyncio.run(run_headless(scheduler, args.ticks))
    except KeyboardInterrupt:
        pass
    print(f"Detections in store: {len(scheduler.store)}", file=sys.stderr)


if __name__ == "__main__":
    main()
