"""Spotify API via Spotipy: recently played fetcher and OAuth authenticator."""
import logging
from typing import List, Optional

import requests
from spotipy import Spotify
from spotipy.cache_handler import MemoryCacheHandler
from spotipy.exceptions import SpotifyException
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError

from playledger.config import (
    SPOTIFY_RECENT_LIMIT,
    SPOTIFY_REDIRECT_URI,
    SPOTIFY_REQUEST_TIMEOUT_SEC,
    SPOTIFY_RETRIES,
    SPOTIFY_SCOPES,
)
from playledger.core.errors import AuthError, TransientSourceError
from playledger.core.ledger import format_timestamp
from playledger.models.store import Artist, PlayedItem, Track

logger = logging.getLogger(__name__)


def parse_recently_played(response: Optional[dict]) -> List[PlayedItem]:
    """Map a current_user_recently_played() response to PlayedItems.

    Items without a track id or played_at (local files, podcasts) are skipped,
    and so are items whose played_at is not an RFC3339 timestamp.
    """
    out = []
    for item in (response or {}).get("items") or []:
        track = item.get("track") or {}
        played_at = item.get("played_at")
        if not track.get("id") or not played_at:
            continue
        try:
            format_timestamp(str(played_at))
        except ValueError:
            logger.warning("Skipping recently played item %s: bad played_at %r", track.get("id"), played_at)
            continue
        context = item.get("context") or {}
        out.append(
            PlayedItem(
                played_at=played_at,
                track=Track(
                    id=track["id"],
                    uri=track.get("uri", ""),
                    type=track.get("type", "track"),
                    name=track.get("name", ""),
                    duration_ms=int(track.get("duration_ms") or 0),
                    artists=[
                        Artist(id=a.get("id") or "", uri=a.get("uri", ""), name=a.get("name", ""))
                        for a in track.get("artists") or []
                    ],
                ),
                context_type=context.get("type") or "",
                context_uri=context.get("uri") or "",
            )
        )
    return out


class SpotifyFetcher:
    """Authenticated client for one actor's recently played history."""

    def __init__(self, sp: Spotify, auth_manager: Optional[SpotifyOAuth] = None) -> None:
        self._sp = sp
        self._auth = auth_manager

    def fetch_recent(self, limit: int = SPOTIFY_RECENT_LIMIT) -> List[PlayedItem]:
        try:
            response = self._sp.current_user_recently_played(limit=limit)
        except (SpotifyException, SpotifyOauthError, requests.RequestException) as e:
            raise TransientSourceError(f"get recently played: {e}") from e
        return parse_recently_played(response)

    def token_info(self) -> Optional[dict]:
        """Current token, refreshed by spotipy when it expired."""
        if self._auth is None:
            return None
        return self._auth.cache_handler.get_cached_token()


class SpotifyAuthenticator:
    """OAuth authorization-code flow bound to one client id/secret pair."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str = SPOTIFY_REDIRECT_URI,
        scope: str = SPOTIFY_SCOPES,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scope = scope

    def _oauth(self, cache: MemoryCacheHandler) -> SpotifyOAuth:
        return SpotifyOAuth(
            client_id=self.client_id,
            client_secret=self.client_secret,
            redirect_uri=self.redirect_uri,
            scope=self.scope,
            cache_handler=cache,
            open_browser=False,
            requests_timeout=SPOTIFY_REQUEST_TIMEOUT_SEC,
        )

    def auth_url(self, state: str) -> str:
        return self._oauth(MemoryCacheHandler()).get_authorize_url(state=state)

    def exchange(self, code: str) -> dict:
        """Exchange an authorization code for a token dict."""
        cache = MemoryCacheHandler()
        try:
            self._oauth(cache).get_access_token(code=code, as_dict=False, check_cache=False)
        except (SpotifyOauthError, requests.RequestException) as e:
            raise AuthError(f"exchange authorization code: {e}") from e
        token_info = cache.get_cached_token()
        if not token_info:
            raise AuthError("exchange authorization code: no token returned")
        return token_info

    def client(self, token_info: dict) -> SpotifyFetcher:
        """Fetcher using token_info, refreshing it as needed."""
        oauth = self._oauth(MemoryCacheHandler(token_info=token_info))
        sp = Spotify(
            auth_manager=oauth,
            requests_timeout=SPOTIFY_REQUEST_TIMEOUT_SEC,
            retries=SPOTIFY_RETRIES,
        )
        return SpotifyFetcher(sp, oauth)
