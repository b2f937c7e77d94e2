from __future__ import annotations

from typing import Optional

from iptracker.config import Settings
from iptracker.telemetry.metrics import DETECTION_METRICS, DetectionMetrics

from .engine import DetectionEngine
from .errors import LookupFailure, LookupMalformed, LookupTimeout, LookupUnavailable
from .lookups import FunctionProvider, GeoProvider, LookupProvider, TorProvider
from .models import (
    Confidence,
    ConnectionType,
    DetectionVerdict,
    GeoLookupResult,
    RequestSignals,
    TorLookupResult,
)
from .patterns import TorPatternRules
from .providers import ClientFactory, build_geo_providers, build_tor_providers
from .signals import extract, parse_forwarded_for, resolve_candidate_ip


def build_engine(
    settings: Settings,
    client: Optional[ClientFactory] = None,
    metrics: Optional[DetectionMetrics] = DETECTION_METRICS,
) -> DetectionEngine:
    """Wire a ``DetectionEngine`` from settings using the HTTP providers."""
    return DetectionEngine(
        build_geo_providers(settings, client),
        build_tor_providers(settings, client),
        geo_timeout_ms=settings.GEO_TIMEOUT_MS,
        tor_timeout_ms=settings.TOR_TIMEOUT_MS,
        tor_patterns=TorPatternRules.from_tokens(
            settings.tor_isp_patterns, settings.tor_as_patterns
        ),
        metrics=metrics,
    )


__all__ = [
    "Confidence",
    "ConnectionType",
    "DetectionEngine",
    "DetectionVerdict",
    "FunctionProvider",
    "GeoLookupResult",
    "GeoProvider",
    "LookupFailure",
    "LookupMalformed",
    "LookupProvider",
    "LookupTimeout",
    "LookupUnavailable",
    "RequestSignals",
    "TorLookupResult",
    "TorPatternRules",
    "TorProvider",
    "build_engine",
    "extract",
    "parse_forwarded_for",
    "resolve_candidate_ip",
]
