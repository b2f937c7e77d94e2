"""Connection-type classifier.

Combines header/chain analysis with two best-effort external lookups and
produces a :class:`DetectionVerdict`. The engine holds only configuration
(providers, budgets, pattern rules); every ``detect`` call is independent, so
any number may run concurrently.

Classification priority (first match wins)::

    Tor Network   Tor lookup asserts it, or ISP/org names match Tor patterns
    Hosting/VPS   geolocation hosting flag
    Proxy/VPN     geolocation proxy flag
    Proxy Chain   more than one hop in X-Forwarded-For
    Proxy/VPN     any proxy-indicating header present
    Direct        nothing else matched
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence

from iptracker.telemetry.metrics import DETECTION_METRICS, DetectionMetrics

from .lookups import GeoProvider, LookupSlot, TorProvider
from .models import (
    TOR_HIDDEN_IP,
    UNKNOWN_IP,
    Confidence,
    ConnectionType,
    DetectionVerdict,
    GeoLookupResult,
    RequestSignals,
    TorLookupResult,
)
from .patterns import TorPatternRules, is_automated_user_agent
from .signals import matched_headers as _matched_headers

log = logging.getLogger(__name__)

TOR_METHOD_EXIT_LIST = "Official Tor Exit Node List"
TOR_METHOD_ISP_PATTERN = "ISP Pattern Analysis"

DEFAULT_GEO_TIMEOUT_MS = 2000
DEFAULT_TOR_TIMEOUT_MS = 1000

_EXPLANATIONS = {
    ConnectionType.TOR_NETWORK: (
        "Traffic is routed through the Tor network. The real IP address is hidden "
        "by design and cannot be recovered from this request."
    ),
    ConnectionType.DIRECT: (
        "The request appears to come directly from the client with no proxy in between."
    ),
}
_PROXY_EXPLANATION = (
    "The request appears to pass through a proxy, VPN or hosting provider, which "
    "may hide the real IP address."
)


def _classify(
    *,
    is_tor: bool,
    geo: Optional[GeoLookupResult],
    header_signal: bool,
    has_multiple_ips: bool,
) -> ConnectionType:
    if is_tor:
        return ConnectionType.TOR_NETWORK
    if geo is not None and geo.is_hosting:
        return ConnectionType.HOSTING_VPS
    if geo is not None and geo.is_proxy:
        return ConnectionType.PROXY_VPN
    if has_multiple_ips:
        return ConnectionType.PROXY_CHAIN
    if header_signal:
        return ConnectionType.PROXY_VPN
    return ConnectionType.DIRECT


class DetectionEngine:
    def __init__(
        self,
        geo_providers: Sequence[GeoProvider] = (),
        tor_providers: Sequence[TorProvider] = (),
        *,
        geo_timeout_ms: int = DEFAULT_GEO_TIMEOUT_MS,
        tor_timeout_ms: int = DEFAULT_TOR_TIMEOUT_MS,
        tor_patterns: Optional[TorPatternRules] = None,
        metrics: Optional[DetectionMetrics] = DETECTION_METRICS,
    ) -> None:
        if tor_timeout_ms >= geo_timeout_ms:
            raise ValueError(
                f"tor_timeout_ms ({tor_timeout_ms}) must be lower than "
                f"geo_timeout_ms ({geo_timeout_ms})"
            )
        self.geo_slot: LookupSlot[GeoLookupResult] = LookupSlot(
            "geolocation", geo_providers, geo_timeout_ms, metrics
        )
        self.tor_slot: LookupSlot[TorLookupResult] = LookupSlot(
            "tor", tor_providers, tor_timeout_ms, metrics
        )
        self.tor_patterns = tor_patterns or TorPatternRules()
        self._metrics = metrics

    async def _lookups(
        self, ip: str
    ) -> tuple[Optional[GeoLookupResult], Optional[TorLookupResult]]:
        if not ip or ip == UNKNOWN_IP:
            return None, None
        # Independent tasks with independent budgets; neither waits on the other.
        geo, tor = await asyncio.gather(self.geo_slot.run(ip), self.tor_slot.run(ip))
        return geo, tor

    async def detect(self, signals: RequestSignals) -> DetectionVerdict:
        headers = tuple(_matched_headers(signals))
        ip_chain = tuple(signals.ip_chain)
        has_multiple_ips = len(ip_chain) > 1
        is_automated = is_automated_user_agent(signals.user_agent)
        header_signal = bool(headers) or has_multiple_ips

        geo, tor = await self._lookups(signals.candidate_ip)

        is_tor = False
        tor_method = ""
        if tor is not None and tor.is_known_tor_exit:
            is_tor = True
            tor_method = TOR_METHOD_EXIT_LIST
        elif self.tor_patterns.matches(geo):
            is_tor = True
            tor_method = TOR_METHOD_ISP_PATTERN

        connection_type = _classify(
            is_tor=is_tor,
            geo=geo,
            header_signal=header_signal,
            has_multiple_ips=has_multiple_ips,
        )

        score = len(headers)
        if has_multiple_ips:
            score += 2
        if is_automated:
            score += 1
        if is_tor:
            score += 5

        is_likely_proxy = header_signal or is_tor

        if is_tor:
            real_ip = TOR_HIDDEN_IP
        elif ip_chain:
            real_ip = ip_chain[0]
        else:
            real_ip = signals.candidate_ip

        verdict = DetectionVerdict(
            is_likely_proxy=is_likely_proxy,
            is_tor_network=is_tor,
            tor_detection_method=tor_method,
            matched_headers=headers,
            ip_chain=ip_chain,
            proxy_chain_tail=ip_chain[1:],
            has_multiple_ips=has_multiple_ips,
            resolved_real_ip=real_ip,
            is_automated_client=is_automated,
            score=score,
            confidence=Confidence.HIGH if is_likely_proxy else Confidence.LOW,
            connection_type=connection_type,
            explanation=_EXPLANATIONS.get(connection_type, _PROXY_EXPLANATION),
            geolocation=geo,
        )

        if self._metrics is not None:
            self._metrics.observe_verdict(connection_type.value)
        log.debug(
            "detection verdict",
            extra={
                "event": "verdict",
                "connection_type": connection_type.value,
                "score": score,
                "tor_method": tor_method or None,
            },
        )
        return verdict
