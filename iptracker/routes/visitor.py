from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from iptracker.detection import DetectionEngine, extract, resolve_candidate_ip
from iptracker.telemetry.logging import event_logger

router = APIRouter(prefix="/api", tags=["visitor"])

log = logging.getLogger(__name__)


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _engine(request: Request) -> DetectionEngine:
    return request.app.state.engine


def _header(request: Request, name: str, default: str | None = None) -> str | None:
    value = ", ".join(request.headers.getlist(name))
    return value if value else default


async def _detect(request: Request, ip: str) -> Dict[str, Any]:
    signals = extract(request.headers, candidate_ip=ip)
    verdict = await _engine(request).detect(signals)
    return verdict.to_dict()


@router.get("/visitor-info")
async def visitor_info(request: Request) -> JSONResponse:
    timestamp = _iso_now()
    ip = resolve_candidate_ip(request.headers)
    url = str(request.url)

    info: Dict[str, Any] = {
        "timestamp": timestamp,
        "ip": ip,
        "userAgent": _header(request, "user-agent", "Unknown"),
        "referer": _header(request, "referer", "Direct"),
        "acceptLanguage": _header(request, "accept-language", "Unknown"),
        "acceptEncoding": _header(request, "accept-encoding", "Unknown"),
        "host": _header(request, "host", "Unknown"),
        "connection": _header(request, "connection", "Unknown"),
        "xForwardedFor": _header(request, "x-forwarded-for"),
        "xRealIp": _header(request, "x-real-ip"),
        "cfConnectingIP": _header(request, "cf-connecting-ip"),
        "cfRay": _header(request, "cf-ray"),
        "cfCountry": _header(request, "cf-ipcountry"),
        "method": request.method,
        "url": url,
        "protocol": "https" if url.startswith("https") else "http",
    }
    info["detection"] = await _detect(request, ip)

    event_logger(log, "visitor_info").info("visitor info request", extra={"visitor": info})

    return JSONResponse(
        {
            "success": True,
            "data": info,
            "message": "Visitor information captured successfully",
        }
    )


@router.post("/visitor-info")
async def log_visit(request: Request) -> JSONResponse:
    timestamp = _iso_now()
    ip = resolve_candidate_ip(request.headers)

    try:
        client_data = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        log.warning(
            "failed to process visitor data",
            extra={"event": "visitor_data_error", "reason": type(exc).__name__},
        )
        return JSONResponse(
            {"success": False, "error": "Failed to process visitor data"},
            status_code=400,
        )

    detection = await _detect(request, ip)
    record = {
        "timestamp": timestamp,
        "serverDetected": {
            "ip": ip,
            "userAgent": _header(request, "user-agent", "Unknown"),
            "referer": _header(request, "referer", "Direct"),
            "host": _header(request, "host", "Unknown"),
        },
        "clientReported": client_data,
        "detection": detection,
    }
    event_logger(log, "visitor_data_logged").info("visitor data logged", extra={"visit": record})

    return JSONResponse(
        {
            "success": True,
            "message": "Visit logged successfully",
            "serverDetectedIP": ip,
            "timestamp": timestamp,
            "detection": detection,
        }
    )
