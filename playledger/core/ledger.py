"""One actor's Store and live Spotify client behind a single lock."""
import logging
import re
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Iterator, Optional, Tuple

from playledger.models.store import Artist, Playback, PlayedItem, Store, Track

logger = logging.getLogger(__name__)

_TIMESTAMP_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d{1,9}))?"
    r"(?P<tz>Z|z|[+-]\d{2}:\d{2})$"
)


def format_timestamp(played_at: str) -> str:
    """Normalize an RFC3339 timestamp to the UTC key used for playbacks.

    Keeps up to nanosecond precision and trims trailing fractional zeros,
    e.g. "2024-03-01T10:00:00.120+01:00" -> "2024-03-01T09:00:00.12Z".
    """
    match = _TIMESTAMP_RE.match(played_at.strip())
    if not match:
        raise ValueError(f"invalid timestamp: {played_at!r}")
    tz = match.group("tz")
    base = datetime.fromisoformat(match.group("base").replace(" ", "T") + ("+00:00" if tz in ("Z", "z") else tz))
    out = base.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")
    frac = (match.group("frac") or "").rstrip("0")
    if frac:
        out += "." + frac
    return out + "Z"


def parse_timestamp(key: str) -> datetime:
    """Parse a playback key into an aware datetime (microsecond precision)."""
    match = _TIMESTAMP_RE.match(key)
    if not match:
        raise ValueError(f"invalid timestamp: {key!r}")
    tz = match.group("tz")
    frac = (match.group("frac") or "")[:6].ljust(6, "0")
    text = match.group("base").replace(" ", "T") + "." + frac + ("+00:00" if tz in ("Z", "z") else tz)
    return datetime.fromisoformat(text)


def timestamp_sort_key(key: str) -> Tuple[datetime, int]:
    """(UTC second, nanoseconds) for ordering playback keys at full precision.

    Keys trim trailing zeros, so they do not sort correctly as strings.
    """
    match = _TIMESTAMP_RE.match(key)
    if not match:
        raise ValueError(f"invalid timestamp: {key!r}")
    tz = match.group("tz")
    second = datetime.fromisoformat(match.group("base").replace(" ", "T") + ("+00:00" if tz in ("Z", "z") else tz))
    return second.astimezone(timezone.utc), int((match.group("frac") or "").ljust(9, "0"))


@dataclass
class IngestResult:
    plays_added: int = 0
    tracks_added: int = 0
    plays_total: int = 0
    tracks_total: int = 0


class Ledger:
    """Store plus live client for one actor.

    Every read or write of the Store, and every swap of the client, happens
    while holding ``_lock``. The client is anything with ``fetch_recent``.
    """

    def __init__(self, store: Optional[Store] = None, client=None) -> None:
        self._lock = threading.Lock()
        self._store = store if store is not None else Store.empty()
        self._client = client

    @contextmanager
    def locked(self) -> Iterator[Store]:
        """Hold the lock and yield the Store for multi-field reads or auth changes."""
        with self._lock:
            yield self._store

    @property
    def client(self):
        with self._lock:
            return self._client

    def set_credentials(self, token: bytes, client) -> None:
        """Replace token and client together."""
        with self._lock:
            self._store.auth.token = token
            self._client = client

    def replace_token(self, client, token: bytes) -> bool:
        """Update the stored token if client is still the live one and the token differs."""
        with self._lock:
            if client is not self._client or token == self._store.auth.token:
                return False
            self._store.auth.token = token
            return True

    def ingest(self, items: Iterable[PlayedItem]) -> IngestResult:
        """Merge fetched events. Existing playbacks and tracks are never overwritten."""
        prepared = [(format_timestamp(item.played_at), item) for item in items]
        result = IngestResult()
        with self._lock:
            for ts, item in prepared:
                if ts not in self._store.playbacks:
                    self._store.playbacks[ts] = Playback(
                        track_id=item.track.id,
                        track_uri=item.track.uri,
                        context_type=item.context_type,
                        context_uri=item.context_uri,
                    )
                    result.plays_added += 1
                if item.track.id not in self._store.tracks:
                    self._store.tracks[item.track.id] = _copy_track(item.track)
                    result.tracks_added += 1
            result.plays_total = len(self._store.playbacks)
            result.tracks_total = len(self._store.tracks)
        logger.debug(
            "Ingest: +%d plays, +%d tracks (%d/%d total)",
            result.plays_added,
            result.tracks_added,
            result.plays_total,
            result.tracks_total,
        )
        return result


def _copy_track(track: Track) -> Track:
    return Track(
        id=track.id,
        uri=track.uri,
        type=track.type,
        name=track.name,
        duration_ms=track.duration_ms,
        artists=[Artist(id=a.id, uri=a.uri, name=a.name) for a in track.artists],
    )
