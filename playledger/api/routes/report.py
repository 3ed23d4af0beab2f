"""Listening reports: playbacks, artists, tracks."""
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query

from playledger.api.state import AppState, get_state
from playledger.config import REPORT_WINDOW_HOURS
from playledger.core.report import total_time
from playledger.models.report import ArtistStats, PlaybackView, ReportOptions, SortOrder, TrackStats
from playledger.models.store import Artist

router = APIRouter()


def _parse_time(value: str) -> datetime:
    """RFC3339 to aware datetime; naive values are taken as UTC."""
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        raise ValueError(f"invalid time {value!r}, expected RFC3339") from None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _options(
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = None,
    artist: str = "",
    track: str = "",
) -> ReportOptions:
    start = None
    if from_:
        start = _parse_time(from_)
    elif REPORT_WINDOW_HOURS > 0:
        start = datetime.now(timezone.utc) - timedelta(hours=REPORT_WINDOW_HOURS)
    return ReportOptions(
        start=start,
        end=_parse_time(to) if to else None,
        artist=artist,
        track=track,
    )


def _artists(artists: list[Artist]) -> list[dict]:
    return [{"id": a.id, "name": a.name} for a in artists]


def _playback_to_dict(p: PlaybackView) -> dict:
    return {
        "start_time": p.timestamp,
        "playback_seconds": p.playback_time.total_seconds(),
        "track": {"id": p.track.id, "name": p.track.name, "uri": p.track.uri},
        "artists": _artists(p.track.artists),
    }


def _track_to_dict(t: TrackStats) -> dict:
    return {
        "id": t.track_id,
        "name": t.name,
        "plays": t.plays,
        "seconds": t.time.total_seconds(),
        "artists": _artists(t.artists),
    }


def _artist_to_dict(a: ArtistStats) -> dict:
    return {
        "id": a.artist_id,
        "name": a.name,
        "plays": a.plays,
        "seconds": a.time.total_seconds(),
        "track_count": len(a.tracks),
        "tracks": [_track_to_dict(t) for t in a.tracks],
    }


@router.get("/{actor}/playbacks")
def playbacks(
    actor: str,
    options: ReportOptions = Depends(_options),
    state: AppState = Depends(get_state),
):
    """Playbacks, most recent first, with estimated listening time."""
    plays = state.service.report(actor, options=options)
    return {
        "total_seconds": total_time(plays).total_seconds(),
        "playbacks": [_playback_to_dict(p) for p in plays],
    }


@router.get("/{actor}/artists")
def artists(
    actor: str,
    sort: SortOrder = SortOrder.PLAYS,
    options: ReportOptions = Depends(_options),
    state: AppState = Depends(get_state),
):
    """Artists ranked by plays, listening time, or distinct tracks."""
    stats = state.service.artist_report(actor, options=options, order=sort)
    return {"sort": sort.value, "artists": [_artist_to_dict(a) for a in stats]}


@router.get("/{actor}/tracks")
def tracks(
    actor: str,
    sort: SortOrder = SortOrder.PLAYS,
    options: ReportOptions = Depends(_options),
    state: AppState = Depends(get_state),
):
    """Tracks ranked by plays or listening time."""
    stats = state.service.track_report(actor, options=options, order=sort)
    return {"sort": sort.value, "tracks": [_track_to_dict(t) for t in stats]}
