"""Snapshot export: download or publish to a blob key."""
from typing import Optional

from fastapi import APIRouter, Body, Depends
from fastapi.responses import Response
from pydantic import BaseModel

from playledger.api.state import AppState, get_state
from playledger.config import SNAPSHOT_SUFFIX

router = APIRouter()


class ExportBody(BaseModel):
    """Destination key under the exports directory; omit to write the actor's own snapshot."""
    key: Optional[str] = None


@router.get("/{actor}")
def download(actor: str, state: AppState = Depends(get_state)):
    """Return the actor's snapshot bytes without writing anything."""
    blob = state.service.export(actor)
    return Response(
        content=blob,
        media_type="application/gzip",
        headers={"Content-Disposition": f'attachment; filename="{actor}{SNAPSHOT_SUFFIX}"'},
    )


@router.post("/{actor}")
def publish(
    actor: str,
    body: ExportBody | None = Body(None),
    state: AppState = Depends(get_state),
):
    """Write the actor's snapshot to the data store."""
    key = body.key if body else None
    if key:
        blob = state.service.export(actor, key)
    else:
        blob = state.service.persist(actor)
    return {"ok": True, "bytes": len(blob)}
