from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram

_log = logging.getLogger(__name__)

LOOKUP_BUCKETS: Tuple[float, ...] = (
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    1.5,
    2.0,
    5.0,
)


# -----------------------------------------------------------------------------
# Metrics must never fail a detection; failures are logged at DEBUG only.
# -----------------------------------------------------------------------------
def best_effort(msg: str, fn: Callable[[], Any]) -> None:
    try:
        fn()
    except Exception as e:  # pragma: no cover
        _log.debug("%s: %s", msg, e)


def _existing(reg: CollectorRegistry, name: str) -> Any:
    names_map = getattr(reg, "_names_to_collectors", None)
    if isinstance(names_map, dict):
        return names_map.get(name)
    return None


def _get_or_create_counter(
    name: str,
    doc: str,
    labelnames: Tuple[str, ...] = (),
    registry: Optional[CollectorRegistry] = None,
) -> Counter:
    reg = registry or REGISTRY
    found = _existing(reg, name)
    if isinstance(found, Counter):
        return found
    try:
        return Counter(name, doc, labelnames=labelnames, registry=reg)
    except ValueError:
        # Another module created it first; fetch and reuse.
        found = _existing(reg, name)
        if isinstance(found, Counter):
            return found
    # Unregistered collector: counts, but is not exposed.
    return Counter(name, doc, labelnames=labelnames, registry=None)


def _get_or_create_histogram(
    name: str,
    doc: str,
    labelnames: Tuple[str, ...] = (),
    registry: Optional[CollectorRegistry] = None,
    buckets: Tuple[float, ...] = (),
) -> Histogram:
    reg = registry or REGISTRY
    found = _existing(reg, name)
    if isinstance(found, Histogram):
        return found
    try:
        return Histogram(
            name,
            doc,
            labelnames=labelnames,
            registry=reg,
            buckets=buckets or Histogram.DEFAULT_BUCKETS,
        )
    except ValueError:
        found = _existing(reg, name)
        if isinstance(found, Histogram):
            return found
    return Histogram(name, doc, labelnames=labelnames, registry=None)


@dataclass
class DetectionMetrics:
    lookup_total: Counter  # labeled by source, outcome
    lookup_duration_seconds: Histogram  # labeled by source
    verdict_total: Counter  # labeled by connection_type

    def observe_lookup(self, source: str, outcome: str, seconds: float) -> None:
        best_effort(
            "observe lookup",
            lambda: self.lookup_total.labels(source=source, outcome=outcome).inc(),
        )
        best_effort(
            "observe lookup latency",
            lambda: self.lookup_duration_seconds.labels(source=source).observe(
                max(0.0, seconds)
            ),
        )

    def observe_verdict(self, connection_type: str) -> None:
        best_effort(
            "observe verdict",
            lambda: self.verdict_total.labels(connection_type=connection_type).inc(),
        )


def make_detection_metrics(registry: CollectorRegistry) -> DetectionMetrics:
    return DetectionMetrics(
        lookup_total=_get_or_create_counter(
            "iptracker_lookup_total",
            "External lookups by source and outcome.",
            labelnames=("source", "outcome"),
            registry=registry,
        ),
        lookup_duration_seconds=_get_or_create_histogram(
            "iptracker_lookup_duration_seconds",
            "Wall time spent per lookup slot, including timeouts.",
            labelnames=("source",),
            registry=registry,
            buckets=LOOKUP_BUCKETS,
        ),
        verdict_total=_get_or_create_counter(
            "iptracker_verdict_total",
            "Detection verdicts by connection type.",
            labelnames=("connection_type",),
            registry=registry,
        ),
    )


# Singleton (safe due to get_or_create semantics)
DETECTION_METRICS: DetectionMetrics = make_detection_metrics(REGISTRY)
