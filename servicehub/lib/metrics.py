"""
Prometheus-compatible metrics for observability.

Tracks booking engine activity:
- Bookings created and slot conflicts rejected
- State transitions (by from/to status and actor role)
- Review writes and rating recomputes (including cache repairs)

Usage:
    from servicehub.lib.metrics import get_metrics_collector

    metrics = get_metrics_collector()
    metrics.increment_transitions(from_status="pending", to_status="confirmed", role="provider")

    # Export for Prometheus
    prometheus_output = metrics.export_prometheus()
"""

from typing import Dict, Optional, Tuple
from threading import Lock


class MetricsCollector:
    """
    Prometheus-style metrics collector for the booking engine.

    Counters:
    - bookings_created_total
    - slot_conflicts_total
    - booking_transitions_total (labels: from_status, to_status, role)
    - reviews_total (labels: action)
    - rating_recomputes_total (labels: entity)
    - rating_cache_repairs_total (labels: entity)

    Thread-safe for concurrent increments.
    """

    HELP_TEXTS = {
        "bookings_created_total": "Total number of bookings created",
        "slot_conflicts_total": "Total number of booking attempts rejected for an occupied slot",
        "booking_transitions_total": "Total number of applied booking status transitions",
        "reviews_total": "Total number of review writes by action",
        "rating_recomputes_total": "Total number of rating aggregate recomputes",
        "rating_cache_repairs_total": "Total number of corrupt rating caches repaired on read",
    }

    def __init__(self):
        self._lock = Lock()

        # Counters: key = (metric_name, labels_tuple), value = count
        self._counters: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], int] = {}

    def _get_counter_key(self, metric_name: str, labels: Dict[str, str]) -> Tuple[str, Tuple[Tuple[str, str], ...]]:
        """Generate unique key for counter with sorted labels."""
        return (metric_name, tuple(sorted(labels.items())))

    def _increment(self, metric_name: str, labels: Optional[Dict[str, str]] = None, amount: int = 1):
        """Thread-safe increment of counter."""
        key = self._get_counter_key(metric_name, labels or {})
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + amount

    # ===== Booking Metrics =====

    def increment_bookings_created(self, amount: int = 1):
        self._increment("bookings_created_total", amount=amount)

    def increment_slot_conflicts(self, amount: int = 1):
        self._increment("slot_conflicts_total", amount=amount)

    def increment_transitions(self, from_status: str, to_status: str, role: str, amount: int = 1):
        """
        Increment applied transitions counter.

        Args:
            from_status: Status before the transition
            to_status: Status after the transition
            role: Actor role (customer, provider, admin)
            amount: Increment amount (default 1)
        """
        labels = {
            "from_status": from_status.lower(),
            "to_status": to_status.lower(),
            "role": role.lower(),
        }
        self._increment("booking_transitions_total", labels, amount)

    # ===== Review / Rating Metrics =====

    def increment_reviews(self, action: str, amount: int = 1):
        """Increment review writes (created, edited, hidden, shown, deleted, responded, helpful_marked, helpful_removed)."""
        self._increment("reviews_total", {"action": action.lower()}, amount)

    def increment_rating_recomputes(self, entity: str, amount: int = 1):
        self._increment("rating_recomputes_total", {"entity": entity.lower()}, amount)

    def increment_rating_cache_repairs(self, entity: str, amount: int = 1):
        self._increment("rating_cache_repairs_total", {"entity": entity.lower()}, amount)

    # ===== Export =====

    def export_prometheus(self) -> str:
        """
        Export all metrics in Prometheus text format.

        Returns:
            Prometheus-compatible text output
        """
        output_lines = []

        # Group counters by metric name
        metrics_by_name: Dict[str, list] = {}
        with self._lock:
            for (metric_name, labels_tuple), value in self._counters.items():
                metrics_by_name.setdefault(metric_name, []).append((dict(labels_tuple), value))

        for metric_name in sorted(metrics_by_name.keys()):
            help_text = self.HELP_TEXTS.get(metric_name, "Counter metric")
            output_lines.append(f"# HELP {metric_name} {help_text}")
            output_lines.append(f"# TYPE {metric_name} counter")

            for labels_dict, value in sorted(metrics_by_name[metric_name], key=lambda x: str(x[0])):
                if labels_dict:
                    labels_str = ",".join([f'{k}="{v}"' for k, v in sorted(labels_dict.items())])
                    output_lines.append(f"{metric_name}{{{labels_str}}} {value}")
                else:
                    output_lines.append(f"{metric_name} {value}")

            output_lines.append("")  # Blank line between metrics

        return "\n".join(output_lines)

    def get_counter_value(self, metric_name: str, labels: Optional[Dict[str, str]] = None) -> int:
        """
        Get current value of a specific counter.

        Args:
            metric_name: Name of the metric
            labels: Label filters

        Returns:
            Current counter value
        """
        key = self._get_counter_key(metric_name, labels or {})
        with self._lock:
            return self._counters.get(key, 0)

    def reset_all(self):
        """Reset all counters (for testing)."""
        with self._lock:
            self._counters.clear()


# Global singleton instance
_metrics_collector: Optional[MetricsCollector] = None
_metrics_lock = Lock()


def get_metrics_collector() -> MetricsCollector:
    """
    Get global metrics collector singleton.

    Returns:
        MetricsCollector instance
    """
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
