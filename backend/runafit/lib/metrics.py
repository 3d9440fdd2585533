"""
Prometheus-compatible metrics for observability.

Tracks the booking engine's outcomes:
- Reservations booked (by entry point) and rejected (by reason)
- Cancellations (by outcome)
- Recurring series bookings
- Credit warnings and pack sales

Usage:
    from runafit.lib.metrics import get_metrics_collector

    metrics = get_metrics_collector()
    metrics.increment_booked(entry="client")
    metrics.increment_rejected(reason="slot_full")

    # Export for Prometheus
    prometheus_output = metrics.export_prometheus()
"""

from typing import Dict, Tuple
from threading import Lock


class MetricsCollector:
    """
    Prometheus-style counter collector.

    Counters:
    - reservations_booked_total: committed reservations (labels: entry)
    - reservations_rejected_total: rejected booking attempts (labels: reason)
    - reservations_cancelled_total: cancellation attempts (labels: outcome)
    - series_bookings_total: per-date results of series bookings (labels: outcome)
    - credit_warnings_total: low balance / expiry warnings (labels: kind)
    - credit_lots_sold_total: pack sales (labels: renewal)

    Thread-safe for concurrent increments.
    """

    HELP_TEXTS = {
        "reservations_booked_total": "Total number of committed reservations",
        "reservations_rejected_total": "Total number of rejected booking attempts",
        "reservations_cancelled_total": "Total number of cancellation attempts by outcome",
        "series_bookings_total": "Total number of per-date results in series bookings",
        "credit_warnings_total": "Total number of credit warnings emitted",
        "credit_lots_sold_total": "Total number of packs sold",
    }

    def __init__(self):
        self._lock = Lock()

        # Counters: key = (metric_name, labels_tuple), value = count
        self._counters: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], int] = {}

    def _get_counter_key(self, metric_name: str, labels: Dict[str, str]) -> Tuple[str, Tuple[Tuple[str, str], ...]]:
        """Generate unique key for counter with sorted labels."""
        return (metric_name, tuple(sorted(labels.items())))

    def _increment(self, metric_name: str, labels: Dict[str, str], amount: int = 1):
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + amount

    def _get_value(self, metric_name: str, labels: Dict[str, str]) -> int:
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            return self._counters.get(key, 0)

    # ===== Reservation Metrics =====

    def increment_booked(self, entry: str = "client", amount: int = 1):
        """
        Increment committed reservations.

        Args:
            entry: Entry point (client, series, admin)
            amount: Increment amount
        """
        self._increment("reservations_booked_total", {"entry": entry.lower()}, amount)

    def increment_rejected(self, reason: str, amount: int = 1):
        """Increment rejected booking attempts for a failure reason."""
        self._increment("reservations_rejected_total", {"reason": reason.lower()}, amount)

    def increment_cancelled(self, outcome: str = "cancelled", amount: int = 1):
        """
        Increment cancellation attempts.

        Args:
            outcome: cancelled, already_cancelled, rejected, confirmation_required
            amount: Increment amount
        """
        self._increment("reservations_cancelled_total", {"outcome": outcome.lower()}, amount)

    def increment_series(self, outcome: str, amount: int = 1):
        """Increment per-date series outcomes (booked / failed)."""
        self._increment("series_bookings_total", {"outcome": outcome.lower()}, amount)

    # ===== Credit Metrics =====

    def increment_credit_warnings(self, kind: str, amount: int = 1):
        """Increment credit warnings (low_balance / expiring)."""
        self._increment("credit_warnings_total", {"kind": kind.lower()}, amount)

    def increment_lots_sold(self, renewal: bool = False, amount: int = 1):
        """Increment pack sales."""
        self._increment("credit_lots_sold_total", {"renewal": str(renewal).lower()}, amount)

    # ===== Export =====

    def export_prometheus(self) -> str:
        """
        Export all metrics in Prometheus text format.

        Returns:
            Prometheus-compatible text output
        """
        output_lines = []

        metrics_by_name: Dict[str, list] = {}
        with self._lock:
            for (metric_name, labels_tuple), value in self._counters.items():
                metrics_by_name.setdefault(metric_name, []).append((dict(labels_tuple), value))

        for metric_name in sorted(metrics_by_name.keys()):
            help_text = self.HELP_TEXTS.get(metric_name, "Counter metric")
            output_lines.append(f"# HELP {metric_name} {help_text}")
            output_lines.append(f"# TYPE {metric_name} counter")

            for labels_dict, value in sorted(metrics_by_name[metric_name], key=lambda x: str(x[0])):
                labels_str = ",".join([f'{k}="{v}"' for k, v in sorted(labels_dict.items())])
                output_lines.append(f"{metric_name}{{{labels_str}}} {value}")

            output_lines.append("")

        return "\n".join(output_lines)

    def get_counter_value(self, metric_name: str, labels: Dict[str, str]) -> int:
        """Get current value of a specific counter."""
        return self._get_value(metric_name, labels)

    def reset_all(self):
        """Reset all counters (for testing)."""
        with self._lock:
            self._counters.clear()


# Global singleton instance
_metrics_collector: MetricsCollector | None = None
_metrics_lock = Lock()


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector singleton."""
    global _metrics_collector
    if _metrics_collector is None:
        with _metrics_lock:
            if _metrics_collector is None:
                _metrics_collector = MetricsCollector()
    return _metrics_collector


def reset_metrics():
    """Reset global metrics collector (for testing)."""
    with _metrics_lock:
        if _metrics_collector is not None:
            _metrics_collector.reset_all()
