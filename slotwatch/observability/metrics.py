"""
Observability metrics for watchers.
Counts deliveries, stale drops, demotions and transport errors.
"""

from typing import Dict, List
import json

# Simple metrics tracking without Prometheus dependency
class SimpleMetrics:
    """Simple metrics tracking for observability."""

    def __init__(self):
        self.counters: Dict[str, int] = {}
        self.gauges: Dict[str, float] = {}

    @staticmethod
    def _key(name: str, labels: Dict[str, str] = None) -> str:
        return f"{name}_{json.dumps(labels or {}, sort_keys=True)}"

    def inc_counter(self, name: str, labels: Dict[str, str] = None):
        """Increment a counter."""
        key = self._key(name, labels)
        self.counters[key] = self.counters.get(key, 0) + 1

    def set_gauge(self, name: str, value: float, labels: Dict[str, str] = None):
        """Set a gauge value."""
        self.gauges[self._key(name, labels)] = value

    def get_counter(self, name: str, labels: Dict[str, str] = None) -> int:
        return self.counters.get(self._key(name, labels), 0)

    def drop_labelled(self, label: str, value: str) -> int:
        """Remove every series carrying ``label=value``. Returns how many were removed."""
        removed = 0
        for series in (self.counters, self.gauges):
            for key in [k for k in series if self._labels(k).get(label) == value]:
                del series[key]
                removed += 1
        return removed

    @staticmethod
    def _labels(key: str) -> Dict[str, str]:
        return json.loads(key[key.index("_{") + 1:])

    def get_metrics(self) -> str:
        """Get metrics in text format."""
        lines: List[str] = []
        for key, value in self.counters.items():
            lines.append(f"# TYPE {key.split('_{')[0]} counter")
            lines.append(f"{key} {value}")
        for key, value in self.gauges.items():
            lines.append(f"# TYPE {key.split('_{')[0]} gauge")
            lines.append(f"{key} {value}")
        return "\n".join(lines)

    def reset(self):
        self.counters.clear()
        self.gauges.clear()

# Global metrics instance
_metrics = SimpleMetrics()

def record_update_delivered(resource: str, version: int):
    """Record an update admitted by the version gate."""
    _metrics.inc_counter("watcher_updates", {"resource": resource})
    _metrics.set_gauge("watcher_last_version", float(version), {"resource": resource})

def record_update_dropped(resource: str):
    """Record a stale or duplicate update rejected by the gate."""
    _metrics.inc_counter("watcher_dropped", {"resource": resource})

def record_demotion(resource: str, reason: str):
    """Record a push -> poll transition."""
    _metrics.inc_counter("watcher_demotions", {"resource": resource, "reason": reason})

def record_poll_error(resource: str):
    """Record a failed snapshot poll."""
    _metrics.inc_counter("watcher_poll_errors", {"resource": resource})

def release_resource(resource: str):
    """Forget a stopped watcher's series; keys embed the address, so they would pile up otherwise."""
    _metrics.drop_labelled("resource", resource)

def get_counter(name: str, labels: Dict[str, str] = None) -> int:
    return _metrics.get_counter(name, labels)

def get_metrics() -> str:
    """Get metrics in text format."""
    return _metrics.get_metrics()

def reset_metrics():
    """Reset all metrics (for testing)."""
    _metrics.reset()
