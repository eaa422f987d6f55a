# routes.py -- Read-only status endpoints
# Exposes collector liveness and per-probe counters. No flow data is served.

from __future__ import annotations

import time
from typing import Any

from fastapi import APIRouter, HTTPException, Request

from .. import __version__
from ..netflow.collector import Collector

router = APIRouter(prefix="/api")


def get_collector(request: Request) -> Collector | None:
    return getattr(request.app.state, "collector", None)


@router.get("/health")
def health_check(request: Request) -> dict:
    """Health endpoint for Docker healthcheck and monitoring."""
    collector = get_collector(request)
    start_time = getattr(request.app.state, "start_time", 0)
    result: dict[str, Any] = {
        "status": "ok",
        "version": __version__,
        "uptime_s": round(time.time() - start_time, 1),
    }
    if collector is None:
        result["status"] = "starting"
        result["probes"] = 0
        return result

    stats = collector.stats()
    result["probes"] = len(stats)
    if any(s["state"] != "receiving" for s in stats):
        result["status"] = "degraded"
    return result


@router.get("/probes")
def list_probes(request: Request) -> list[dict]:
    collector = get_collector(request)
    return collector.stats() if collector is not None else []


@router.get("/probes/{name}")
def get_probe(name: str, request: Request) -> dict:
    collector = get_collector(request)
    stats = collector.probe_stats(name) if collector is not None else None
    if stats is None:
        raise HTTPException(status_code=404, detail=f"Unknown probe: {name}")
    return stats
