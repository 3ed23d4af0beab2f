"""Derive playback views and artist/track aggregates from a Store."""
import logging
from datetime import timedelta
from typing import Dict, List, Union

from playledger.core.ledger import parse_timestamp, timestamp_sort_key
from playledger.models.report import (
    ArtistStats,
    PlaybackView,
    ReportOptions,
    SortOrder,
    TrackStats,
)
from playledger.models.store import Store, Track

logger = logging.getLogger(__name__)


def _matches(track: Track, options: ReportOptions) -> bool:
    if options.track and options.track.lower() not in track.name.lower():
        return False
    if options.artist:
        needle = options.artist.lower()
        return any(needle in a.name.lower() for a in track.artists)
    return True


def get_playbacks(store: Store, options: ReportOptions) -> List[PlaybackView]:
    """Filtered playbacks, most recent first, with estimated listening time.

    A play lasts its track's duration, cut short by the next (later) play in
    the filtered list, so skipped tracks are not counted in full. The most
    recent play has nothing after it and keeps the full duration.

    Caller must hold the ledger lock.
    """
    plays: List[PlaybackView] = []
    for ts, playback in store.playbacks.items():
        start_time = parse_timestamp(ts)
        if options.start is not None and start_time < options.start:
            continue
        if options.end is not None and start_time > options.end:
            continue

        track = store.tracks.get(playback.track_id)
        if track is None:
            logger.debug("Report: playback %s references unknown track %s", ts, playback.track_id)
            continue
        if not _matches(track, options):
            continue
        plays.append(PlaybackView(timestamp=ts, start_time=start_time, track=track))

    plays.sort(key=lambda p: (timestamp_sort_key(p.timestamp), p.timestamp), reverse=True)

    for i, play in enumerate(plays):
        play.playback_time = play.track.duration
        if i > 0:
            gap = plays[i - 1].start_time - play.start_time
            if gap < play.playback_time:
                play.playback_time = gap
    return plays


def _metric(stats: Union[TrackStats, ArtistStats], order: SortOrder):
    if order == SortOrder.TIME:
        return stats.time
    if order == SortOrder.TRACKS and isinstance(stats, ArtistStats):
        return len(stats.tracks)
    return stats.plays


def _sort(items: list, order: SortOrder) -> None:
    # Metric descending, name ascending on ties.
    items.sort(key=lambda s: s.name)
    items.sort(key=lambda s: _metric(s, order), reverse=True)


def track_stats(plays: List[PlaybackView], order: SortOrder = SortOrder.PLAYS) -> List[TrackStats]:
    """Plays and listening time per track."""
    by_id: Dict[str, TrackStats] = {}
    for play in plays:
        stats = by_id.get(play.track.id)
        if stats is None:
            stats = by_id[play.track.id] = TrackStats(
                track_id=play.track.id,
                name=play.track.name,
                artists=list(play.track.artists),
            )
        stats.plays += 1
        stats.time += play.playback_time
    out = list(by_id.values())
    _sort(out, order)
    return out


def artist_stats(plays: List[PlaybackView], order: SortOrder = SortOrder.PLAYS) -> List[ArtistStats]:
    """Plays, listening time and per-track breakdown per artist.

    A play counts towards every artist credited on the track.
    """
    by_id: Dict[str, ArtistStats] = {}
    tracks_by_artist: Dict[str, Dict[str, TrackStats]] = {}
    for play in plays:
        for artist in play.track.artists:
            stats = by_id.get(artist.id)
            if stats is None:
                stats = by_id[artist.id] = ArtistStats(artist_id=artist.id, name=artist.name)
                tracks_by_artist[artist.id] = {}
            stats.plays += 1
            stats.time += play.playback_time

            per_track = tracks_by_artist[artist.id]
            track = per_track.get(play.track.id)
            if track is None:
                track = per_track[play.track.id] = TrackStats(
                    track_id=play.track.id,
                    name=play.track.name,
                    artists=list(play.track.artists),
                )
                stats.tracks.append(track)
            track.plays += 1
            track.time += play.playback_time

    # Every nested entry is a single track, so "tracks" ranks them by plays.
    nested_order = SortOrder.PLAYS if order == SortOrder.TRACKS else order
    out = list(by_id.values())
    for stats in out:
        _sort(stats.tracks, nested_order)
    _sort(out, order)
    return out


def total_time(plays: List[PlaybackView]) -> timedelta:
    return sum((p.playback_time for p in plays), timedelta(0))
