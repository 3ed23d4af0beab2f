"""Stored listening history: tracks, playbacks, auth."""
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List, Optional


@dataclass
class Artist:
    id: str
    uri: str
    name: str


@dataclass
class Track:
    """Track metadata; immutable once observed."""
    id: str
    uri: str
    type: str
    name: str
    duration_ms: int
    artists: List[Artist] = field(default_factory=list)

    @property
    def duration(self) -> timedelta:
        return timedelta(milliseconds=self.duration_ms)


@dataclass
class Playback:
    """One listening event. Keyed in Store.playbacks by its start timestamp."""
    track_id: str
    track_uri: str
    context_type: str
    context_uri: str


@dataclass
class Auth:
    client_id: str = ""
    client_secret: str = ""
    token: bytes = b""  # JSON-encoded spotipy token dict


@dataclass
class Store:
    """Everything recorded for one actor."""
    playbacks: Dict[str, Playback] = field(default_factory=dict)
    tracks: Dict[str, Track] = field(default_factory=dict)
    auth: Auth = field(default_factory=Auth)
    # Older snapshots kept the token at the top level; never written by new code.
    legacy_token: Optional[bytes] = None

    @classmethod
    def empty(cls) -> "Store":
        return cls()


@dataclass
class PlayedItem:
    """Raw recently-played event as returned by the playback source."""
    played_at: str
    track: Track
    context_type: str = ""
    context_uri: str = ""
