"""Report inputs and derived views."""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from playledger.models.store import Artist, Track


class SortOrder(str, Enum):
    PLAYS = "plays"
    TIME = "time"
    TRACKS = "tracks"


@dataclass
class ReportOptions:
    """Filters for a report. Empty substrings match everything."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    artist: str = ""
    track: str = ""


@dataclass
class PlaybackView:
    """A playback resolved against its track, with estimated listening time."""
    timestamp: str
    start_time: datetime
    track: Track
    playback_time: timedelta = timedelta(0)


@dataclass
class TrackStats:
    track_id: str
    name: str
    artists: List[Artist] = field(default_factory=list)
    plays: int = 0
    time: timedelta = timedelta(0)


@dataclass
class ArtistStats:
    artist_id: str
    name: str
    plays: int = 0
    time: timedelta = timedelta(0)
    tracks: List[TrackStats] = field(default_factory=list)
