import argparse
import asyncio
import logging
import sys
import threading
from typing import Any, Callable, Optional

from flask import Flask, jsonify, request

from detection_store import FilterQuery, to_feature_collection
from patrol_config import get_api_key
from pollution_types import get_ui_config
from run_patrol import add_common_args, build_classifier, build_scheduler, config_from_args, setup_logging
from scan_scheduler import ScanScheduler

app = Flask(__name__)


# Reduce noisy request logs for polling endpoints to keep console readable.
def _configure_request_logging():
    wl = logging.getLogger('werkzeug')

    class _PollEndpointFilter(logging.Filter):
        def filter(self, record):
            msg = record.getMessage()
            return not (('/status' in msg) or ('/logs' in msg))

    wl.addFilter(_PollEndpointFilter())


_configure_request_logging()


class SchedulerRunner:
    """Hosts the scheduler's event loop in a daemon thread.

    Flask handlers run on worker threads; anything that touches scheduler
    state is marshalled onto the loop with call().
    """

    def __init__(self, scheduler: ScanScheduler) -> None:
        self.scheduler = scheduler
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name="patrol-loop", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    @staticmethod
    async def _invoke(fn: Callable[..., Any], *args) -> Any:
        return fn(*args)

    def call(self, fn: Callable[..., Any], *args, timeout: float = 5.0) -> Any:
        fut = asyncio.run_coroutine_threadsafe(self._invoke(fn, *args), self.loop)
        return fut.result(timeout)

    def shutdown(self) -> None:
        if self.loop.is_running():
            self.call(self.scheduler.stop)
            self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=5.0)
        self.loop.close()


# Shared app state: one runner and the operator's current filter.
STATE = {"runner": None, "filters": FilterQuery()}
STATE_LOCK = threading.Lock()


def init_app(scheduler: ScanScheduler) -> SchedulerRunner:
    runner = SchedulerRunner(scheduler)
    with STATE_LOCK:
        old: Optional[SchedulerRunner] = STATE["runner"]
        STATE["runner"] = runner
        STATE["filters"] = FilterQuery()
    if old is not None:
        old.shutdown()
    return runner


def _runner() -> SchedulerRunner:
    runner = STATE["runner"]
    if runner is None:
        raise RuntimeError("monitor_app used before init_app()")
    return runner


@app.route("/status")
def status():
    runner = _runner()
    snap = runner.call(runner.scheduler.snapshot)
    return jsonify(snap.to_dict())


@app.route("/scan/start", methods=["POST"])
def scan_start():
    runner = _runner()
    runner.call(runner.scheduler.start)
    return jsonify({"status": "ok", "state": runner.scheduler.state.value})


@app.route("/scan/stop", methods=["POST"])
def scan_stop():
    runner = _runner()
    runner.call(runner.scheduler.stop)
    return jsonify({"status": "ok", "state": runner.scheduler.state.value})


@app.route("/detections")
def get_detections():
    runner = _runner()
    with STATE_LOCK:
        query = STATE["filters"].copy()
    detections = runner.scheduler.store.query(query)
    body = to_feature_collection(detections)
    body["total"] = len(runner.scheduler.store)
    return jsonify(body)


@app.route("/filters", methods=["GET"])
def get_filters():
    with STATE_LOCK:
        return jsonify(STATE["filters"].to_dict())


@app.route("/filters/toggle", methods=["POST"])
def toggle_filter():
    payload = request.get_json(force=True, silent=True) or {}
    facet = payload.get("facet")
    value = payload.get("value")
    if not facet or value is None:
        return jsonify({"error": "facet and value required"}), 400
    with STATE_LOCK:
        try:
            selected = STATE["filters"].toggle(facet, value)
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        filters = STATE["filters"].to_dict()
    return jsonify({"status": "ok", "selected": selected, "filters": filters})


@app.route("/filters/reset", methods=["POST"])
def reset_filters():
    with STATE_LOCK:
        STATE["filters"].reset()
        return jsonify({"status": "ok", "filters": STATE["filters"].to_dict()})


@app.route("/logs")
def get_logs():
    runner = _runner()
    limit = request.args.get("limit", type=int)
    if limit is not None and limit < 0:
        return jsonify({"error": "limit must be >= 0"}), 400
    return jsonify([e.to_dict() for e in runner.scheduler.log.entries(limit)])


@app.route("/pollution_types")
def pollution_types():
    """Kind registry for map legends."""
    return jsonify(get_ui_config())


def main() -> None:
    ap = argparse.ArgumentParser(description="Serve the Arctic pollution patrol over HTTP.")
    add_common_args(ap)
    ap.add_argument("--port", type=int, default=5001)
    ap.add_argument("--autostart", action="store_true", help="Start patrolling immediately.")
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

    runner = init_app(build_scheduler(config, classifier, seed_detections=not args.no_seed_detections))
    if args.autostart:
        runner.call(runner.scheduler.start)
    try:
        app.run(port=args.port, threaded=True)
    finally:
        runner.shutdown()


if __name__ == "__main__":
    main()
