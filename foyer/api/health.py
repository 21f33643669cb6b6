"""
Health check API endpoint.

Aggregates health status from the Strongroom gates wired into the app.
"""

from __future__ import annotations

from typing import Any, Dict, Tuple

from fastapi import APIRouter, Response

from strongroom.shared import db_service


def _database_health() -> Dict[str, Any]:
    initialized = db_service.is_initialized()
    return {
        "gate": "Database",
        "healthy": initialized,
        "initialized": initialized,
        "details": {},
    }


def _collect_health_data(services) -> Tuple[bool, Dict[str, Any]]:
    """
    Collect health data from all gates.

    Returns:
        Tuple of (all_healthy, gates_dict)
    """
    gates: Dict[str, Any] = {}
    all_healthy = True

    try:
        gates.update(services.health())
    except Exception as e:
        gates["Services"] = {"healthy": False, "error": str(e)}

    gates["Database"] = _database_health()

    for status in gates.values():
        if not status.get("healthy", False):
            all_healthy = False

    return all_healthy, gates


def create_router(services) -> APIRouter:
    router = APIRouter()

    @router.get("/api/health")
    async def api_health(response: Response) -> Dict[str, Any]:
        """
        Get aggregated health status from all gates.

        Returns 200 when healthy, 503 when unhealthy.
        """
        all_healthy, gates = _collect_health_data(services)

        if not all_healthy:
            response.status_code = 503

        return {
            "healthy": all_healthy,
            "gates": gates,
        }

    @router.get("/api/health/gate/{gate_name}")
    async def api_health_gate(gate_name: str) -> Dict[str, Any]:
        """Health status for one gate (name is case-insensitive)."""
        _, gates = _collect_health_data(services)

        normalized = gate_name.lower()
        for name, status in gates.items():
            if name.lower() == normalized:
                return status

        return {
            "error": f"Unknown gate: {gate_name}",
            "available": list(gates),
        }

    @router.get("/api/health/summary")
    async def api_health_summary(response: Response) -> Dict[str, Any]:
        """
        Get a quick health summary (just healthy/unhealthy per gate).

        Returns 200 when healthy, 503 when unhealthy.
        """
        all_healthy, gates = _collect_health_data(services)

        summary = {name: status.get("healthy", False) for name, status in gates.items()}

        if not all_healthy:
            response.status_code = 503

        return {
            "healthy": all_healthy,
            "gates": summary,
        }

    return router


__all__ = ["create_router"]
