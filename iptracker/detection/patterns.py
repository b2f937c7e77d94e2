from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Tuple

from .models import GeoLookupResult

AUTOMATED_UA_TOKENS: Tuple[str, ...] = ("bot", "crawler", "spider", "scraper")

DEFAULT_TOR_ISP_TOKENS: Tuple[str, ...] = ("tor", "exit", "relay", "privacy foundation")


def is_automated_user_agent(user_agent: str) -> bool:
    ua = (user_agent or "").lower()
    return any(token in ua for token in AUTOMATED_UA_TOKENS)


def _normalize(tokens: Iterable[str]) -> Tuple[str, ...]:
    return tuple(t.strip().lower() for t in tokens if t and t.strip())


@dataclass(frozen=True)
class TorPatternRules:
    """
    ISP / organization naming rules used when the exit-node list is silent.

    This is a heuristic. Short tokens such as "tor" also match names like
    "Victoria Networks", and plenty of exit relays sit in ordinary hosting
    ranges. Operators are expected to tune the token lists per deployment.
    """

    isp_tokens: Tuple[str, ...] = DEFAULT_TOR_ISP_TOKENS
    as_tokens: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_tokens(
        cls, isp_tokens: Iterable[str], as_tokens: Optional[Iterable[str]] = None
    ) -> "TorPatternRules":
        return cls(isp_tokens=_normalize(isp_tokens), as_tokens=_normalize(as_tokens or ()))

    def matches(self, geo: Optional[GeoLookupResult]) -> bool:
        if geo is None:
            return False
        names = [(geo.isp or "").lower(), (geo.organization or "").lower()]
        for token in self.isp_tokens:
            if any(token in name for name in names if name):
                return True
        as_field = (geo.as_number or "").lower()
        if as_field:
            for token in self.as_tokens:
                if token in as_field:
                    return True
        return False
