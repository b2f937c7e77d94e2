"""httpx-backed lookup providers.

These are the only pieces of the detection package that touch the network.
Each maps one upstream JSON shape onto the engine's result types and turns
transport/HTTP/decoding problems into the lookup error taxonomy.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import httpx

from iptracker.config import Settings
from iptracker.net.http_client import get_http_client

from .errors import LookupMalformed, LookupUnavailable
from .lookups import GeoProvider, TorProvider
from .models import GeoLookupResult, TorLookupResult

log = logging.getLogger(__name__)

ClientFactory = Callable[[], httpx.AsyncClient]


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_bool(value: Any) -> bool:
    # Absent or null booleans mean "not flagged", never a parse error.
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return False


class _JsonProvider:
    name = "json"

    def __init__(self, url_template: str, client: Optional[ClientFactory] = None) -> None:
        self.url_template = url_template
        self._client = client or get_http_client

    def _url(self, ip: str) -> str:
        return self.url_template.replace("{ip}", quote(ip, safe=":."))

    async def _get_json(self, ip: str) -> Dict[str, Any]:
        url = self._url(ip)
        try:
            resp = await self._client().get(url, headers={"Accept": "application/json"})
        except httpx.HTTPError as exc:
            raise LookupUnavailable(f"{type(exc).__name__}: {exc}", source=self.name) from exc
        if resp.status_code != 200:
            raise LookupUnavailable(f"HTTP {resp.status_code}", source=self.name)
        try:
            body = resp.json()
        except ValueError as exc:
            raise LookupUnavailable("response is not JSON", source=self.name) from exc
        if not isinstance(body, dict):
            raise LookupMalformed(f"expected object, got {type(body).__name__}", source=self.name)
        return body


class IpApiGeoProvider(_JsonProvider):
    """ip-api.com: ``{status, country, countryCode, region, city, isp, org, as, proxy, hosting}``."""

    name = "ip-api"

    async def lookup(self, ip: str) -> Optional[GeoLookupResult]:
        body = await self._get_json(ip)
        status = body.get("status")
        if status != "success":
            raise LookupUnavailable(
                f"status={status!r} message={body.get('message')!r}", source=self.name
            )
        return GeoLookupResult(
            country=_opt_str(body.get("country")),
            country_code=_opt_str(body.get("countryCode")),
            region=_opt_str(body.get("region")),
            city=_opt_str(body.get("city")),
            isp=_opt_str(body.get("isp")),
            organization=_opt_str(body.get("org")),
            as_number=_opt_str(body.get("as")),
            is_proxy=_as_bool(body.get("proxy")),
            is_hosting=_as_bool(body.get("hosting")),
            source=self.name,
        )


class IpApiCoGeoProvider(_JsonProvider):
    """ipapi.co: no proxy/hosting flags, so it only feeds the ISP pattern path."""

    name = "ipapi.co"

    async def lookup(self, ip: str) -> Optional[GeoLookupResult]:
        body = await self._get_json(ip)
        if body.get("error"):
            raise LookupUnavailable(f"reason={body.get('reason')!r}", source=self.name)
        if "ip" not in body and "country_name" not in body:
            raise LookupMalformed("missing ip/country fields", source=self.name)
        org = _opt_str(body.get("org"))
        return GeoLookupResult(
            country=_opt_str(body.get("country_name")),
            country_code=_opt_str(body.get("country_code")),
            region=_opt_str(body.get("region")),
            city=_opt_str(body.get("city")),
            isp=org,
            organization=org,
            as_number=_opt_str(body.get("asn")),
            source=self.name,
        )


class TorExitProvider(_JsonProvider):
    """Exit-node list service answering ``{"isTor": bool}`` for an IP."""

    name = "tor-exit-list"

    async def lookup(self, ip: str) -> Optional[TorLookupResult]:
        body = await self._get_json(ip)
        for key in ("isTor", "IsTor", "is_tor"):
            if key in body:
                return TorLookupResult(is_known_tor_exit=_as_bool(body[key]), source=self.name)
        raise LookupMalformed("missing isTor field", source=self.name)


def _settings_client(settings: Settings) -> ClientFactory:
    # The shared client is built lazily, with this app's pool settings.
    return lambda: get_http_client(settings)


_GEO_FACTORIES = {
    "ip-api": lambda s, c: IpApiGeoProvider(s.GEO_IP_API_URL, c),
    "ipapi.co": lambda s, c: IpApiCoGeoProvider(s.GEO_IPAPI_CO_URL, c),
}


def build_geo_providers(
    settings: Settings, client: Optional[ClientFactory] = None
) -> List[GeoProvider]:
    """
    Factory for geolocation providers by canonical name.
    Unknown names are skipped with a warning.
    """
    client = client or _settings_client(settings)
    out: List[GeoProvider] = []
    for name in settings.geo_provider_names:
        factory = _GEO_FACTORIES.get(name)
        if factory is None:
            log.warning("unknown geolocation provider %r ignored", name)
            continue
        out.append(factory(settings, client))
    return out


def build_tor_providers(
    settings: Settings, client: Optional[ClientFactory] = None
) -> List[TorProvider]:
    url = (settings.TOR_LOOKUP_URL or "").strip()
    if not url:
        return []
    client = client or _settings_client(settings)
    return [TorExitProvider(url, client)]
