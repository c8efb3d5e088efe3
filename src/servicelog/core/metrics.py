"""
Prometheus metrics registry.

Process-wide, get-or-register counters keyed by stable dotted names.
Counters are never reset; an exporter scrapes them from the underlying
prometheus_client registry.
"""

import threading
from typing import Dict, Optional

import structlog
from prometheus_client import REGISTRY, CollectorRegistry, Counter

logger = structlog.get_logger(__name__)


def prometheus_name(name: str) -> str:
    """Map a dotted metric name onto a legal Prometheus metric name."""
    return name.replace(".", "_").replace("-", "_")


class MetricsRegistry:
    """
    Named counter registry.

    Registering the same name twice returns the counter created first,
    so appenders living in one process share their counters.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.collector_registry = registry if registry is not None else REGISTRY
        self._counters: Dict[str, Counter] = {}
        self._lock = threading.Lock()

    def get_or_register_counter(self, name: str, documentation: str = "") -> Counter:
        """Return the counter registered under ``name``, creating it if needed."""
        with self._lock:
            counter = self._counters.get(name)
            if counter is None:
                counter = Counter(
                    prometheus_name(name),
                    documentation or name,
                    registry=self.collector_registry,
                )
                self._counters[name] = counter
                logger.debug("Counter registered", metric=name)
            return counter

    def counter_value(self, name: str) -> float:
        """Current value of a registered counter (0 when never registered)."""
        value = self.collector_registry.get_sample_value(f"{prometheus_name(name)}_total")
        return value if value is not None else 0.0

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._counters)


# Global registry instance
_metrics_registry: Optional[MetricsRegistry] = None
_metrics_registry_lock = threading.Lock()


def get_metrics_registry() -> MetricsRegistry:
    """Get or create the process-wide metrics registry."""
    global _metrics_registry

    with _metrics_registry_lock:
        if _metrics_registry is None:
            _metrics_registry = MetricsRegistry()
        return _metrics_registry
