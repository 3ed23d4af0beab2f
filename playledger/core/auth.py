"""OAuth client credentials, pending authorization state, and token storage."""
import json
import logging
import secrets
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from playledger.config import SPOTIFY_CLIENT_ID, SPOTIFY_CLIENT_SECRET
from playledger.core.errors import AuthError, SerializationError
from playledger.core.ledger import Ledger
from playledger.core.spotify_client import SpotifyAuthenticator

logger = logging.getLogger(__name__)

STATE_BYTES = 32


@dataclass
class PendingAuthorization:
    state: str
    authenticator: SpotifyAuthenticator


class AuthTokenManager:
    """Authorization for one actor.

    Client id/secret and the token live in the ledger's Store (under its
    lock). Only the latest pending authorization is accepted by callback().
    """

    def __init__(
        self,
        ledger: Ledger,
        authenticator_factory: Callable[[str, str], SpotifyAuthenticator] = SpotifyAuthenticator,
    ) -> None:
        self._ledger = ledger
        self._factory = authenticator_factory
        self._lock = threading.Lock()
        self._pending: Optional[PendingAuthorization] = None

    def pending_state(self) -> Optional[str]:
        with self._lock:
            return self._pending.state if self._pending else None

    def authorize(self, client_id: str = "", client_secret: str = "") -> str:
        """Start an authorization attempt and return the URL to send the user to.

        Empty arguments reuse the stored client id/secret, or the ones from
        the environment when nothing is stored yet; non-empty ones replace them.
        """
        with self._ledger.locked() as store:
            client_id = client_id or store.auth.client_id or SPOTIFY_CLIENT_ID
            client_secret = client_secret or store.auth.client_secret or SPOTIFY_CLIENT_SECRET
            if client_id:
                store.auth.client_id = client_id
            if client_secret:
                store.auth.client_secret = client_secret
            client_id, client_secret = store.auth.client_id, store.auth.client_secret
        if not client_id or not client_secret:
            raise AuthError("missing client id/secret")

        pending = PendingAuthorization(
            state=secrets.token_urlsafe(STATE_BYTES),
            authenticator=self._factory(client_id, client_secret),
        )
        with self._lock:
            self._pending = pending
        logger.info("Auth: new authorization pending")
        return pending.authenticator.auth_url(pending.state)

    def callback(self, state: str, code: str) -> None:
        """Complete the pending authorization with the code from the redirect."""
        pending = self._check_state(state)
        token_info = pending.authenticator.exchange(code)
        client = pending.authenticator.client(token_info)
        token = json.dumps(token_info).encode("utf-8")
        with self._lock:
            if self._pending is not pending:
                raise AuthError("authorization was superseded by a newer request")
            self._ledger.set_credentials(token, client)
            self._pending = None
        logger.info("Auth: token updated")

    def _check_state(self, state: str) -> PendingAuthorization:
        with self._lock:
            pending = self._pending
        if pending is None:
            raise AuthError("no authorization pending")
        if not secrets.compare_digest(pending.state.encode("utf-8"), (state or "").encode("utf-8")):
            raise AuthError("authorization state does not match pending request")
        return pending

    def restore_client(self) -> bool:
        """Rebuild the live client from the stored token. Returns False if there is none."""
        with self._ledger.locked() as store:
            token = store.auth.token
            client_id, client_secret = store.auth.client_id, store.auth.client_secret
        if not token:
            logger.warning("Auth: no token stored, authorize to start updates")
            return False
        try:
            token_info = json.loads(token.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise SerializationError(f"unmarshal oauth token: {e}") from e
        if not client_id or not client_secret:
            logger.warning("Auth: no client id/secret stored, token cannot be refreshed")
        client = self._factory(client_id, client_secret).client(token_info)
        self._ledger.set_credentials(token, client)
        return True

    def sync_token(self, client) -> bool:
        """Store the client's token if spotipy refreshed it. Returns True when changed."""
        token_info = client.token_info()
        if not token_info:
            return False
        token = json.dumps(token_info).encode("utf-8")
        changed = self._ledger.replace_token(client, token)
        if changed:
            logger.debug("Auth: stored refreshed token")
        return changed
