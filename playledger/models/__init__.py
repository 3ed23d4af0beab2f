"""Data models for stored history and reports."""
from playledger.models.report import (
    ArtistStats,
    PlaybackView,
    ReportOptions,
    SortOrder,
    TrackStats,
)
from playledger.models.store import Artist, Auth, Playback, PlayedItem, Store, Track

__all__ = [
    "Artist",
    "ArtistStats",
    "Auth",
    "Playback",
    "PlaybackView",
    "PlayedItem",
    "ReportOptions",
    "SortOrder",
    "Store",
    "Track",
    "TrackStats",
]
