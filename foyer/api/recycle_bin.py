from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse

from strongroom.shared.errors import InvalidInput, NotFound, StrongroomError
from strongroom.shared.gate import GateLogger

from foyer.api.common import acting_user
from foyer.services.events import recycle_bin_topic

_log = GateLogger.get("Foyer.RecycleBin")

RECYCLE_TOPIC_PREFIX = "recycle_bin_"


class RestoreRequest(BaseModel):
    restore_path: Optional[str] = Field(default=None, alias="restorePath")


class BulkRestoreRequest(BaseModel):
    recycle_bin_ids: List[str] = Field(default_factory=list, alias="recycleBinIds")
    restore_path: Optional[str] = Field(default=None, alias="restorePath")


class BulkDeleteRequest(BaseModel):
    recycle_bin_ids: List[str] = Field(default_factory=list, alias="recycleBinIds")
    reason: str = "manual"


def create_router(services) -> APIRouter:
    router = APIRouter(prefix="/recycle-bin")
    recycle_bin = services.recycle_bin
    event_bus = services.event_bus

    async def _list(
        client_id: Optional[str],
        page: int,
        limit: int,
        file_type: Optional[str],
        sort_by: str,
        sort_order: str,
        search: Optional[str],
    ) -> Dict[str, Any]:
        if sort_order not in ("asc", "desc"):
            raise InvalidInput("sortOrder must be 'asc' or 'desc'")
        result = await recycle_bin.list_items(
            client_id,
            page=page,
            limit=limit,
            file_type=file_type,
            sort_by=sort_by,
            sort_order=1 if sort_order == "asc" else -1,
            search=search,
        )
        return {"success": True, **result}

    # ========== Queries ==========

    @router.get("/items")
    async def list_items(
        client_id: Optional[str] = Query(default=None, alias="clientId"),
        page: int = 1,
        limit: int = 20,
        file_type: Optional[str] = Query(default=None, alias="fileType"),
        sort_by: str = Query(default="deletedAt", alias="sortBy"),
        sort_order: str = Query(default="desc", alias="sortOrder"),
        search: Optional[str] = None,
    ):
        """Active items, across clients unless clientId is given."""
        return await _list(client_id, page, limit, file_type, sort_by, sort_order, search)

    @router.get("/client/{client_id}")
    async def list_client_items(
        client_id: str,
        page: int = 1,
        limit: int = 20,
        file_type: Optional[str] = Query(default=None, alias="fileType"),
        sort_by: str = Query(default="deletedAt", alias="sortBy"),
        sort_order: str = Query(default="desc", alias="sortOrder"),
        search: Optional[str] = None,
    ):
        return await _list(client_id, page, limit, file_type, sort_by, sort_order, search)

    @router.get("/summary")
    async def summary(client_id: Optional[str] = Query(default=None, alias="clientId")):
        """Per-client summaries plus the overall totals."""
        client_ids = [client_id] if client_id else await recycle_bin.client_ids()
        summaries = {}
        for cid in client_ids:
            summaries[cid] = await recycle_bin.summary(cid)

        return {
            "success": True,
            "summaries": summaries,
            "overallSummary": await recycle_bin.summary(client_id),
        }

    @router.get("/item/{recycle_bin_id}")
    async def get_item(recycle_bin_id: str):
        """One item including its audit log."""
        return {"success": True, "item": await recycle_bin.get_item(recycle_bin_id)}

    @router.get("/events")
    async def recycle_bin_events(client_id: Optional[str] = Query(default=None, alias="clientId")):
        """SSE stream of recycle bin events, for one client or all of them."""

        async def generate():
            topic = recycle_bin_topic(client_id) if client_id else None
            queue = await event_bus.subscribe(topic)
            try:
                yield {
                    "event": "system",
                    "data": json.dumps({"message": "Connected to recycle bin stream", "clientId": client_id}),
                }

                while True:
                    try:
                        event = await asyncio.wait_for(queue.get(), timeout=30.0)
                    except asyncio.TimeoutError:
                        yield {"event": "ping", "data": "{}"}
                        continue

                    # The global stream also carries project folder events
                    event_topic = event.get("topic")
                    if topic is None and event_topic and not event_topic.startswith(RECYCLE_TOPIC_PREFIX):
                        continue
                    yield {
                        "event": event["type"],
                        "data": json.dumps(event["data"]),
                    }

            except asyncio.CancelledError:
                pass
            finally:
                await event_bus.unsubscribe(queue)

        return EventSourceResponse(generate())

    # ========== Restore ==========

    @router.post("/restore/{recycle_bin_id}")
    async def restore(recycle_bin_id: str, data: Optional[RestoreRequest] = None, user_id: str = Depends(acting_user)):
        data = data or RestoreRequest()
        result = await recycle_bin.restore(recycle_bin_id, user_id=user_id, restore_path=data.restore_path)
        return {"success": True, "message": "File restored successfully", **result}

    @router.post("/restore-bulk")
    async def restore_bulk(data: BulkRestoreRequest, user_id: str = Depends(acting_user)):
        """Restore several items; one failure does not stop the rest."""
        if not data.recycle_bin_ids:
            raise InvalidInput("recycleBinIds must be a non-empty list")

        results = []
        for recycle_bin_id in data.recycle_bin_ids:
            try:
                restored = await recycle_bin.restore(
                    recycle_bin_id, user_id=user_id, restore_path=data.restore_path,
                )
                results.append({"recycleBinId": recycle_bin_id, "success": True, **restored})
            except StrongroomError as e:
                _log.warning(f"Bulk restore of {recycle_bin_id} failed: {e.message}")
                results.append({"recycleBinId": recycle_bin_id, "success": False, "error": e.message})

        restored_count = sum(1 for r in results if r["success"])
        return {
            "success": True,
            "restoredCount": restored_count,
            "failedCount": len(results) - restored_count,
            "results": results,
        }

    # ========== Permanent delete ==========

    @router.delete("/permanent/{recycle_bin_id}")
    async def permanent_delete(recycle_bin_id: str, user_id: str = Depends(acting_user)):
        result = await recycle_bin.permanently_delete([recycle_bin_id], user_id=user_id)
        if not result["deletedCount"]:
            raise NotFound("File not found or already deleted", details=recycle_bin_id)
        return {"success": True, "message": "File permanently deleted", **result}

    @router.delete("/permanent-bulk")
    async def permanent_delete_bulk(data: BulkDeleteRequest, user_id: str = Depends(acting_user)):
        if not data.recycle_bin_ids:
            raise InvalidInput("recycleBinIds must be a non-empty list")
        result = await recycle_bin.permanently_delete(data.recycle_bin_ids, user_id=user_id, reason=data.reason)
        return {"success": True, **result}

    # ========== Cleanup ==========

    @router.post("/cleanup")
    async def cleanup():
        """Run the retention and size cleanup now."""
        result = await recycle_bin.run_scheduled_cleanup()
        return {"success": True, "message": "Cleanup completed", **result}

    return router


__all__ = ["create_router"]
