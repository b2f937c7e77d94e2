from __future__ import annotations

from typing import Callable

import httpx
import pytest

from iptracker.config import Settings
from iptracker.detection import (
    LookupMalformed,
    LookupUnavailable,
    RequestSignals,
    build_engine,
)
from iptracker.detection.providers import (
    IpApiCoGeoProvider,
    IpApiGeoProvider,
    TorExitProvider,
    build_geo_providers,
    build_tor_providers,
)
from iptracker.net.http_client import close_http_client, get_http_client

IP_API_OK = {
    "status": "success",
    "country": "Netherlands",
    "countryCode": "NL",
    "region": "NH",
    "city": "Amsterdam",
    "isp": "Stichting Tor Exit",
    "org": "Tor Privacy Foundation",
    "as": "AS1101 Example",
    "proxy": True,
    "hosting": False,
}


def _client(handler: Callable[[httpx.Request], httpx.Response]):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return lambda: client


async def test_ip_api_maps_fields() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json=IP_API_OK)

    provider = IpApiGeoProvider("http://geo.test/json/{ip}?fields=all", _client(handler))
    geo = await provider.lookup("203.0.113.9")

    assert seen == ["http://geo.test/json/203.0.113.9?fields=all"]
    assert geo.country == "Netherlands"
    assert geo.country_code == "NL"
    assert geo.organization == "Tor Privacy Foundation"
    assert geo.as_number == "AS1101 Example"
    assert geo.is_proxy is True
    assert geo.is_hosting is False
    assert geo.source == "ip-api"


async def test_ip_api_missing_flags_default_to_false() -> None:
    body = {"status": "success", "country": "Chile", "isp": "Entel"}
    provider = IpApiGeoProvider(
        "http://geo.test/{ip}", _client(lambda r: httpx.Response(200, json=body))
    )
    geo = await provider.lookup("192.0.2.1")
    assert geo.is_proxy is False
    assert geo.is_hosting is False
    assert geo.city is None


async def test_ip_api_fail_status_is_unavailable() -> None:
    body = {"status": "fail", "message": "private range"}
    provider = IpApiGeoProvider(
        "http://geo.test/{ip}", _client(lambda r: httpx.Response(200, json=body))
    )
    with pytest.raises(LookupUnavailable):
        await provider.lookup("10.0.0.1")


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(503, json={"status": "success"}),
        httpx.Response(200, text="<html>rate limited</html>"),
    ],
)
async def test_http_and_decode_failures_are_unavailable(response: httpx.Response) -> None:
    provider = IpApiGeoProvider("http://geo.test/{ip}", _client(lambda r: response))
    with pytest.raises(LookupUnavailable):
        await provider.lookup("192.0.2.1")


async def test_transport_errors_are_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    provider = TorExitProvider("http://tor.test/{ip}", _client(handler))
    with pytest.raises(LookupUnavailable):
        await provider.lookup("192.0.2.1")


async def test_non_object_body_is_malformed() -> None:
    provider = IpApiGeoProvider(
        "http://geo.test/{ip}", _client(lambda r: httpx.Response(200, json=["x"]))
    )
    with pytest.raises(LookupMalformed):
        await provider.lookup("192.0.2.1")


async def test_tor_provider_reads_is_tor() -> None:
    provider = TorExitProvider(
        "http://tor.test/check?ip={ip}",
        _client(lambda r: httpx.Response(200, json={"isTor": True})),
    )
    result = await provider.lookup("192.0.2.1")
    assert result.is_known_tor_exit is True


async def test_tor_provider_without_flag_is_malformed() -> None:
    provider = TorExitProvider(
        "http://tor.test/{ip}", _client(lambda r: httpx.Response(200, json={"ip": "x"}))
    )
    with pytest.raises(LookupMalformed):
        await provider.lookup("192.0.2.1")


async def test_ipapi_co_maps_org_into_isp_and_org() -> None:
    body = {
        "ip": "192.0.2.1",
        "city": "Oslo",
        "region": "Oslo",
        "country_name": "Norway",
        "country_code": "NO",
        "org": "Telenor Norge AS",
        "asn": "AS2119",
    }
    provider = IpApiCoGeoProvider(
        "https://geo2.test/{ip}/json/", _client(lambda r: httpx.Response(200, json=body))
    )
    geo = await provider.lookup("192.0.2.1")
    assert geo.country == "Norway"
    assert geo.isp == geo.organization == "Telenor Norge AS"
    assert geo.as_number == "AS2119"
    assert geo.is_proxy is False


async def test_ipapi_co_error_payload_is_unavailable() -> None:
    body = {"error": True, "reason": "RateLimited"}
    provider = IpApiCoGeoProvider(
        "https://geo2.test/{ip}/json/", _client(lambda r: httpx.Response(200, json=body))
    )
    with pytest.raises(LookupUnavailable):
        await provider.lookup("192.0.2.1")


def test_build_providers_from_settings(settings: Settings) -> None:
    s = settings.model_copy(
        update={
            "GEO_PROVIDERS": "ip-api, ipapi.co, nope",
            "TOR_LOOKUP_URL": "http://tor.test/{ip}",
        }
    )
    geo = build_geo_providers(s)
    assert [p.name for p in geo] == ["ip-api", "ipapi.co"]
    assert [p.name for p in build_tor_providers(s)] == ["tor-exit-list"]
    assert build_tor_providers(settings) == []


async def test_engine_over_http_providers(settings: Settings, metrics) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "tor.test":
            return httpx.Response(200, json={"isTor": False})
        return httpx.Response(200, json=IP_API_OK)

    s = settings.model_copy(
        update={"GEO_IP_API_URL": "http://geo.test/{ip}", "TOR_LOOKUP_URL": "http://tor.test/{ip}"}
    )
    engine = build_engine(s, client=_client(handler), metrics=metrics)

    v = await engine.detect(RequestSignals(candidate_ip="203.0.113.9"))
    assert v.is_tor_network is True
    assert v.tor_detection_method == "ISP Pattern Analysis"
    assert v.geolocation is not None and v.geolocation.city == "Amsterdam"


async def test_default_client_uses_app_settings(settings: Settings) -> None:
    await close_http_client()
    s = settings.model_copy(update={"HTTPX_TIMEOUT_S": 3, "TOR_LOOKUP_URL": "http://tor.test/{ip}"})
    [geo] = build_geo_providers(s)
    [tor] = build_tor_providers(s)
    try:
        client = geo._client()
        assert client.timeout.read == 3.0
        assert tor._client() is client is get_http_client()
    finally:
        await close_http_client()
