from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Tuple

from .models import UNKNOWN_IP, RequestSignals

# Order matters: matched headers are reported in this order.
PROXY_HEADERS: Tuple[str, ...] = (
    "x-forwarded-for",
    "x-real-ip",
    "x-forwarded-proto",
    "x-forwarded-host",
    "x-cluster-client-ip",
    "x-originating-ip",
    "cf-connecting-ip",
    "true-client-ip",
    "x-client-ip",
    "fastly-client-ip",
    "x-azure-clientip",
    "x-azure-socketip",
)


def _lower_keys(headers: Mapping[str, str]) -> Dict[str, str]:
    # Repeated header lines fold into one comma-joined value, in arrival order.
    # Starlette's ``Headers.items()`` yields every raw line, duplicates included.
    out: Dict[str, str] = {}
    for k, v in headers.items():
        key = str(k).strip().lower()
        value = "" if v is None else str(v)
        out[key] = f"{out[key]}, {value}" if key in out else value
    return out


def parse_forwarded_for(value: Optional[str]) -> Tuple[str, ...]:
    """
    Split an X-Forwarded-For value into trimmed, non-empty hops.

    Entries are not validated as addresses; a junk hop is still a hop.
    """
    if not value:
        return ()
    return tuple(part.strip() for part in value.split(",") if part.strip())


def resolve_candidate_ip(headers: Mapping[str, str]) -> str:
    """
    Boundary precedence: CDN header, first forwarded hop, X-Real-IP, sentinel.
    """
    lowered = _lower_keys(headers)
    cf = lowered.get("cf-connecting-ip", "").strip()
    if cf:
        return cf
    chain = parse_forwarded_for(lowered.get("x-forwarded-for"))
    if chain:
        return chain[0]
    real_ip = lowered.get("x-real-ip", "").strip()
    if real_ip:
        return real_ip
    return UNKNOWN_IP


def extract(headers: Mapping[str, str], candidate_ip: Optional[str] = None) -> RequestSignals:
    """Build ``RequestSignals`` from raw header pairs. Never raises."""
    lowered = _lower_keys(headers)
    client_headers: Dict[str, str] = {}
    for name in PROXY_HEADERS:
        if name in lowered:
            client_headers[name] = lowered[name]

    ip = candidate_ip if candidate_ip else resolve_candidate_ip(lowered)
    return RequestSignals(
        client_headers=client_headers,
        ip_chain=parse_forwarded_for(lowered.get("x-forwarded-for")),
        candidate_ip=ip,
        user_agent=lowered.get("user-agent", ""),
    )


def matched_headers(signals: RequestSignals) -> List[Tuple[str, str]]:
    return [(name, value) for name, value in signals.client_headers.items() if value]
