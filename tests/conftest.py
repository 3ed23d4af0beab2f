"""
Test configuration and fixtures for pytest.
"""

import time

import pytest

from playledger.core.blob_store import FileBlobStore
from playledger.core.errors import AuthError
from playledger.core.service import PlayLedgerService
from playledger.models.store import Artist, PlayedItem, Track

ENO = Artist(id="eno", uri="spotify:artist:eno", name="Brian Eno")
BYRNE = Artist(id="byrne", uri="spotify:artist:byrne", name="David Byrne")
BEATLES = Artist(id="beatles", uri="spotify:artist:beatles", name="The Beatles")


def make_track(track_id="t1", name="An Ending", duration_ms=200_000, artists=None):
    return Track(
        id=track_id,
        uri=f"spotify:track:{track_id}",
        type="track",
        name=name,
        duration_ms=duration_ms,
        artists=list(artists if artists is not None else [ENO]),
    )


def make_item(played_at, track=None, context_uri="spotify:album:apollo"):
    return PlayedItem(
        played_at=played_at,
        track=track or make_track(),
        context_type="album",
        context_uri=context_uri,
    )


def wait_for(predicate, timeout=5.0):
    """Poll until predicate() is true or fail."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return
        time.sleep(0.01)
    raise AssertionError("condition not met in time")


class FakeFetcher:
    """Stands in for SpotifyFetcher."""

    def __init__(self, items=None, error=None, token=None):
        self.items = list(items or [])
        self.error = error
        self.token = token
        self.calls = 0

    def fetch_recent(self, limit=50):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.items)

    def token_info(self):
        return self.token


TOKEN_INFO = {
    "access_token": "access",
    "token_type": "Bearer",
    "expires_in": 3600,
    "expires_at": 4102444800,
    "refresh_token": "refresh",
    "scope": "user-read-recently-played",
}


class FakeAuthenticator:
    """Stands in for SpotifyAuthenticator; every client() is the shared fetcher."""

    def __init__(self, client_id, client_secret, fetcher):
        self.client_id = client_id
        self.client_secret = client_secret
        self.fetcher = fetcher
        self.exchanged = []

    def auth_url(self, state):
        return f"https://accounts.example/authorize?client_id={self.client_id}&state={state}"

    def exchange(self, code):
        if code == "bad-code":
            raise AuthError("exchange authorization code: invalid_grant")
        self.exchanged.append(code)
        return dict(TOKEN_INFO, access_token=f"access-{code}")

    def client(self, token_info):
        self.fetcher.token = token_info
        return self.fetcher


@pytest.fixture(autouse=True)
def no_env_credentials(monkeypatch):
    """Keep a developer's .env from leaking client credentials into tests."""
    monkeypatch.setattr("playledger.core.auth.SPOTIFY_CLIENT_ID", "")
    monkeypatch.setattr("playledger.core.auth.SPOTIFY_CLIENT_SECRET", "")


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def authenticator_factory(fetcher):
    created = []

    def factory(client_id, client_secret):
        auth = FakeAuthenticator(client_id, client_secret, fetcher)
        created.append(auth)
        return auth

    factory.created = created
    return factory


@pytest.fixture
def blobs(tmp_path):
    return FileBlobStore(tmp_path / "data")


@pytest.fixture
def service(blobs, authenticator_factory):
    return PlayLedgerService(blobs, actors=["alice"], authenticator_factory=authenticator_factory)


@pytest.fixture
def authorized_service(service, fetcher):
    """Service whose actor 'alice' has completed authorization."""
    url = service.authorize("alice", "client-id", "client-secret")
    state = url.split("state=")[1]
    service.callback("alice", state, "code-1")
    return service
