"""
lambda_handler.py — AWS Lambda + API Gateway wrapper for point summaries.

Expected API Gateway queries:
    GET /summary?point=18.34,-64.93      (lat,lon)
    GET /summary?parcel=Estate%20Bovoni

The engine is loaded once per container and reused across invocations.
Always returns a JSON envelope; never raises.
"""

import json
import logging
import traceback

from floodrisk.engine import FloodRiskEngine

logger = logging.getLogger(__name__)

_engine: FloodRiskEngine | None = None


def get_engine() -> FloodRiskEngine:
    """Return the container-wide engine, loading it on first use."""
    global _engine
    if _engine is None:
        engine = FloodRiskEngine()
        engine.load()
        _engine = engine
    return _engine


def reset_engine():
    """Drop the cached engine so the next call reloads it."""
    global _engine
    _engine = None


def _parse_point(value: str) -> tuple[float, float]:
    """Parse 'lat,lon' into a (lon, lat) tuple."""
    parts = value.strip().split(",")
    if len(parts) != 2:
        raise ValueError(f"Expected 'lat,lon', got '{value}'")
    lat, lon = float(parts[0]), float(parts[1])
    return (lon, lat)


def _response(status_code: int, body: dict) -> dict:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body, default=str),
    }


def handler(event, context):
    """
    AWS Lambda entrypoint for the summary API.

    Invoked via API Gateway HTTP API (v2 payload format).
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    params = (event or {}).get("queryStringParameters") or {}
    raw_point = params.get("point", "")
    parcel_name = params.get("parcel", "")

    if not raw_point and not parcel_name:
        return _response(400, {
            "status": "error",
            "message": "Missing required query parameter: point (format: lat,lon) or parcel",
        })

    try:
        point = _parse_point(raw_point) if raw_point else None
    except ValueError as e:
        return _response(400, {"status": "error", "message": str(e)})

    try:
        resolver = get_engine().resolver
        if point is not None:
            summary = resolver.summarize_point(point)
        else:
            summary = resolver.summarize_parcel(parcel_name)
    except Exception as e:
        logger.error("Summary failed: %s\n%s", e, traceback.format_exc())
        return _response(500, {
            "status": "error",
            "message": "Internal server error",
        })

    return _response(200, summary)
