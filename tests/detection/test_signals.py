from __future__ import annotations

import pytest
from starlette.datastructures import Headers

from iptracker.detection import extract, parse_forwarded_for, resolve_candidate_ip
from iptracker.detection.signals import PROXY_HEADERS, matched_headers


@pytest.mark.parametrize(
    "raw",
    ["1.1.1.1, 2.2.2.2", "1.1.1.1,2.2.2.2", " 1.1.1.1 , 2.2.2.2 "],
)
def test_forwarded_for_is_whitespace_insensitive(raw: str) -> None:
    assert parse_forwarded_for(raw) == ("1.1.1.1", "2.2.2.2")


def test_forwarded_for_drops_empty_hops_and_keeps_junk() -> None:
    assert parse_forwarded_for(",1.1.1.1,, not-an-ip ,") == ("1.1.1.1", "not-an-ip")
    assert parse_forwarded_for("") == ()
    assert parse_forwarded_for(None) == ()
    assert parse_forwarded_for(" , ,") == ()


def test_extract_matches_headers_case_insensitively() -> None:
    signals = extract(
        {
            "X-Forwarded-For": "203.0.113.5, 10.0.0.1",
            "CF-Connecting-IP": "198.51.100.7",
            "User-Agent": "Mozilla/5.0",
            "Accept": "*/*",
        }
    )
    assert dict(signals.client_headers) == {
        "x-forwarded-for": "203.0.113.5, 10.0.0.1",
        "cf-connecting-ip": "198.51.100.7",
    }
    assert signals.ip_chain == ("203.0.113.5", "10.0.0.1")
    assert signals.user_agent == "Mozilla/5.0"
    # CDN header wins the candidate precedence
    assert signals.candidate_ip == "198.51.100.7"


def test_client_headers_follow_enumeration_order() -> None:
    headers = {name.upper(): f"v-{i}" for i, name in enumerate(reversed(PROXY_HEADERS))}
    signals = extract(headers)
    assert list(signals.client_headers) == list(PROXY_HEADERS)


def test_candidate_ip_precedence() -> None:
    assert resolve_candidate_ip({"x-real-ip": "10.1.1.1"}) == "10.1.1.1"
    assert (
        resolve_candidate_ip({"x-real-ip": "10.1.1.1", "x-forwarded-for": " 9.9.9.9 ,8.8.8.8"})
        == "9.9.9.9"
    )
    assert resolve_candidate_ip({}) == "unknown"


def test_explicit_candidate_ip_is_kept() -> None:
    signals = extract({"x-real-ip": "10.1.1.1"}, candidate_ip="192.0.2.1")
    assert signals.candidate_ip == "192.0.2.1"


def test_matched_headers_skip_only_empty_values() -> None:
    signals = extract({"x-real-ip": "", "x-forwarded-host": "  ", "x-client-ip": "192.0.2.9"})
    assert "x-real-ip" in signals.client_headers
    assert matched_headers(signals) == [
        ("x-forwarded-host", "  "),
        ("x-client-ip", "192.0.2.9"),
    ]


def test_repeated_header_lines_are_joined() -> None:
    headers = Headers(
        raw=[
            (b"x-forwarded-for", b"203.0.113.5"),
            (b"X-Forwarded-For", b"10.0.0.1"),
            (b"user-agent", b"Mozilla/5.0"),
        ]
    )
    signals = extract(headers)
    assert signals.client_headers["x-forwarded-for"] == "203.0.113.5, 10.0.0.1"
    assert signals.ip_chain == ("203.0.113.5", "10.0.0.1")
    assert signals.candidate_ip == "203.0.113.5"


def test_missing_user_agent_is_empty() -> None:
    assert extract({}).user_agent == ""
