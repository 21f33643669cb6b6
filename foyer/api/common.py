from __future__ import annotations

from typing import Optional

from fastapi import FastAPI, Header
from fastapi.requests import Request
from fastapi.responses import JSONResponse

from strongroom.shared.errors import StrongroomError
from strongroom.shared.gate import GateLogger

_log = GateLogger.get("Foyer")

ANONYMOUS = "anonymous"


async def acting_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    """User named by the X-User-Id header; authentication happens upstream."""
    return x_user_id or ANONYMOUS


def install_error_handlers(app: FastAPI) -> None:
    """Translate StrongroomError into {"error", "details"} responses."""

    @app.exception_handler(StrongroomError)
    async def strongroom_error_handler(request: Request, exc: StrongroomError):
        if exc.status_code >= 500:
            _log.error(f"{request.method} {request.url.path} failed: {exc.message}")
        else:
            _log.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


__all__ = ["acting_user", "install_error_handlers", "ANONYMOUS"]
