import json
import logging
import os
import threading
from typing import List


_METRICS_PATH = os.getenv("METRICS_PATH", "storage/metrics.json")

_lock = threading.Lock()

logger = logging.getLogger(__name__)

ROTATION_OUTCOMES = ("succeeded", "rate_limited", "auth_failed", "exhausted")


class MetricsTracker:

    def __init__(self, path: str = _METRICS_PATH):

        self._path = path

        self._metrics = {

            "total_requests": 0,
            "successful_requests": 0,
            "failed_requests": 0,

            "total_latency": 0.0,
            "avg_latency": 0.0,

            # latency history (for percentile calculation)
            "latencies": [],

            # key rotation outcomes, one count per attempt
            "key_rotation": {outcome: 0 for outcome in ROTATION_OUTCOMES},

        }

        self._load()


    def _load(self):

        if not self._path or not os.path.exists(self._path):
            return

        try:

            with open(self._path, "r") as f:

                data = json.load(f)

            # Backward compatibility
            data.setdefault("latencies", [])

            rotation = data.setdefault("key_rotation", {})

            for outcome in ROTATION_OUTCOMES:
                rotation.setdefault(outcome, 0)

            self._metrics = data

        except (OSError, ValueError) as e:

            logger.warning(
                "Metrics file unreadable, starting fresh",
                extra={"path": self._path, "error": str(e)},
            )


    def _save(self):

        if not self._path:
            return

        try:

            directory = os.path.dirname(self._path)

            if directory:
                os.makedirs(directory, exist_ok=True)

            with open(self._path, "w") as f:

                json.dump(self._metrics, f, indent=2)

        except OSError as e:

            # Counters stay correct in memory; only persistence is lost
            logger.warning(
                "Metrics file not writable",
                extra={"path": self._path, "error": str(e)},
            )


    def record_success(self, latency: float):

        with _lock:

            self._metrics["total_requests"] += 1

            self._metrics["successful_requests"] += 1

            self._metrics["total_latency"] += latency

            self._metrics["avg_latency"] = (
                self._metrics["total_latency"]
                / self._metrics["total_requests"]
            )

            self._metrics["latencies"].append(latency)

            self._save()


    def record_failure(self):

        with _lock:

            self._metrics["total_requests"] += 1

            self._metrics["failed_requests"] += 1

            self._save()


    def record_rotation(self, outcome: str):

        if outcome not in ROTATION_OUTCOMES:
            raise ValueError(f"Unknown rotation outcome: {outcome}")

        with _lock:

            self._metrics["key_rotation"][outcome] += 1

            self._save()


    def get_metrics(self):

        with _lock:

            metrics = dict(self._metrics)
            metrics["key_rotation"] = dict(self._metrics["key_rotation"])
            metrics.pop("latencies", None)

        metrics["p95_latency"] = self.get_latency_percentile(95)

        return metrics


    def get_latency_percentile(self, percentile: float) -> float:

        latencies: List[float] = self._metrics.get("latencies", [])

        if not latencies:
            return 0.0

        sorted_latencies = sorted(latencies)

        index = int(len(sorted_latencies) * percentile / 100)

        index = min(index, len(sorted_latencies) - 1)

        return sorted_latencies[index]


    def reset(self):

        with _lock:

            self._metrics["total_requests"] = 0
            self._metrics["successful_requests"] = 0
            self._metrics["failed_requests"] = 0
            self._metrics["total_latency"] = 0.0
            self._metrics["avg_latency"] = 0.0
            self._metrics["latencies"] = []
            self._metrics["key_rotation"] = {outcome: 0 for outcome in ROTATION_OUTCOMES}


metrics_tracker = MetricsTracker()
