"""Recommendation metrics for the API.

Counts recommendation calls, calls that returned nothing, and their
latency. Surfaced by the /status endpoint.
"""

import threading
from typing import Dict, Union


class MetricsService:
    """Thread-safe recommendation counters.

    One process-wide instance lives at ``metrics_service``.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.reset()

    def record_recommendation(self, latency_ms: float, num_results: int) -> None:
        """Record a recommendation call.

        Args:
            latency_ms: Latency in milliseconds.
            num_results: Number of recommendations returned.
        """
        with self._lock:
            self._request_count += 1
            if num_results == 0:
                self._empty_count += 1
            self._total_latency_ms += latency_ms
            self._min_latency_ms = min(self._min_latency_ms, latency_ms)
            self._max_latency_ms = max(self._max_latency_ms, latency_ms)

    def record_error(self) -> None:
        with self._lock:
            self._error_count += 1

    def get_metrics(self) -> Dict[str, Union[int, float]]:
        """Get a snapshot of the counters.

        Returns:
            Dictionary with:
            - recommendation_count: Total recommendation calls
            - empty_result_count: Calls that returned no recommendations
            - error_count: Calls that failed
            - average_latency_ms / min_latency_ms / max_latency_ms
        """
        with self._lock:
            count = self._request_count
            return {
                "recommendation_count": count,
                "empty_result_count": self._empty_count,
                "error_count": self._error_count,
                "average_latency_ms": round(self._total_latency_ms / count, 2) if count else 0.0,
                "min_latency_ms": round(self._min_latency_ms, 2) if count else 0.0,
                "max_latency_ms": round(self._max_latency_ms, 2),
            }

    def reset(self) -> None:
        """Reset all counters."""
        with self._lock:
            self._request_count = 0
            self._empty_count = 0
            self._error_count = 0
            self._total_latency_ms = 0.0
            self._min_latency_ms = float("inf")
            self._max_latency_ms = 0.0


# Process-wide instance
metrics_service = MetricsService()
