"""On-demand fetch of recently played tracks."""
from fastapi import APIRouter, Depends

from playledger.api.state import AppState, get_state

router = APIRouter()


@router.post("/{actor}")
def update(actor: str, state: AppState = Depends(get_state)):
    """Fetch recently played tracks for actor and merge them into the store."""
    result = state.service.update(actor)
    return {
        "added": result.plays_added,
        "tracks_added": result.tracks_added,
        "plays": result.plays_total,
        "tracks": result.tracks_total,
    }
