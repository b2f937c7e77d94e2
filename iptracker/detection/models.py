from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

TOR_HIDDEN_IP = "Hidden by Tor Network"
UNKNOWN_IP = "unknown"


class ConnectionType(str, Enum):
    DIRECT = "Direct"
    PROXY_VPN = "Proxy/VPN"
    PROXY_CHAIN = "Proxy Chain"
    HOSTING_VPS = "Hosting/VPS"
    TOR_NETWORK = "Tor Network"


class Confidence(str, Enum):
    HIGH = "High"
    LOW = "Low"


@dataclass(frozen=True)
class RequestSignals:
    """
    Normalized per-request input for the detection engine.

    ``client_headers`` only ever holds names from the recognized proxy header
    set, lower-cased, in the fixed enumeration order.
    """

    client_headers: Mapping[str, str] = field(default_factory=dict)
    ip_chain: Tuple[str, ...] = ()
    candidate_ip: str = UNKNOWN_IP
    user_agent: str = ""


@dataclass(frozen=True)
class GeoLookupResult:
    country: Optional[str] = None
    country_code: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    isp: Optional[str] = None
    organization: Optional[str] = None
    as_number: Optional[str] = None
    is_proxy: bool = False
    is_hosting: bool = False
    source: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TorLookupResult:
    is_known_tor_exit: bool = False
    source: str = ""


@dataclass(frozen=True)
class DetectionVerdict:
    is_likely_proxy: bool
    is_tor_network: bool
    tor_detection_method: str
    matched_headers: Tuple[Tuple[str, str], ...]
    ip_chain: Tuple[str, ...]
    proxy_chain_tail: Tuple[str, ...]
    has_multiple_ips: bool
    resolved_real_ip: str
    is_automated_client: bool
    score: int
    confidence: Confidence
    connection_type: ConnectionType
    explanation: str
    geolocation: Optional[GeoLookupResult] = None

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready shape used by the visitor-info routes."""
        return {
            "isLikelyProxy": self.is_likely_proxy,
            "isTorNetwork": self.is_tor_network,
            "torDetectionMethod": self.tor_detection_method,
            "matchedHeaders": [{"name": n, "value": v} for n, v in self.matched_headers],
            "ipChain": list(self.ip_chain),
            "proxyChainTail": list(self.proxy_chain_tail),
            "hasMultipleIPs": self.has_multiple_ips,
            "resolvedRealIP": self.resolved_real_ip,
            "isAutomatedClient": self.is_automated_client,
            "score": self.score,
            "confidence": self.confidence.value,
            "connectionType": self.connection_type.value,
            "explanation": self.explanation,
            "geolocation": self.geolocation.to_dict() if self.geolocation else None,
        }
