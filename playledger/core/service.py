"""Per-actor update, export, report and authorization operations."""
import dataclasses
import logging
import re
import secrets
import threading
import time
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from playledger.config import EXPORT_SUBDIR, snapshot_key
from playledger.core.auth import AuthTokenManager
from playledger.core.blob_store import FileBlobStore
from playledger.core.coalescer import Coalescer
from playledger.core.errors import AuthError, PlayLedgerError, SerializationError, TransientSourceError
from playledger.core.ledger import IngestResult, Ledger
from playledger.core.report import artist_stats, get_playbacks, track_stats
from playledger.core.snapshot import encode_payload, load_store, save_store, store_to_dict
from playledger.core.spotify_client import SpotifyAuthenticator
from playledger.models.report import ArtistStats, PlaybackView, ReportOptions, SortOrder, TrackStats

logger = logging.getLogger(__name__)

_ACTOR_RE = re.compile(r"^[A-Za-z0-9_-][A-Za-z0-9_.-]*$")


@dataclasses.dataclass
class Actor:
    name: str
    ledger: Ledger
    auth: AuthTokenManager


class _ActorSlot:
    def __init__(self) -> None:
        self.init_lock = threading.Lock()
        self.actor: Optional[Actor] = None


class PlayLedgerService:
    """Entry point for the API layer and the background loops.

    Actors are loaded from their snapshot on first use. Updates and exports
    go through a Coalescer so concurrent triggers for the same actor share
    one Spotify call or one snapshot write. Reports read the Store directly.

    Snapshots live in ``blobs``; exports to a caller-chosen key go to
    ``export_blobs`` (default: the ``exports`` directory under ``blobs``).
    """

    def __init__(
        self,
        blobs: FileBlobStore,
        actors: Iterable[str] = (),
        authenticator_factory: Callable[[str, str], SpotifyAuthenticator] = SpotifyAuthenticator,
        export_blobs: Optional[FileBlobStore] = None,
    ) -> None:
        self._blobs = blobs
        self._export_blobs = export_blobs or FileBlobStore(blobs.root / EXPORT_SUBDIR)
        self._factory = authenticator_factory
        self._configured = [a for a in actors]
        self._lock = threading.Lock()
        self._slots: Dict[str, _ActorSlot] = {}
        self._updates: Coalescer[IngestResult] = Coalescer("update")
        self._exports: Coalescer[bytes] = Coalescer("export")

    # -------- actors --------
    def _actor(self, name: str) -> Actor:
        if not _ACTOR_RE.match(name or ""):
            raise ValueError(f"invalid actor name: {name!r}")
        with self._lock:
            slot = self._slots.get(name)
            if slot is None:
                slot = self._slots[name] = _ActorSlot()
        # Loading one actor must not hold up the others.
        with slot.init_lock:
            if slot.actor is None:
                slot.actor = self._load(name)
            return slot.actor

    def _load(self, name: str) -> Actor:
        store = load_store(self._blobs, snapshot_key(name))
        ledger = Ledger(store)
        auth = AuthTokenManager(ledger, self._factory)
        try:
            auth.restore_client()
        except SerializationError as e:
            # History is still usable; authorize again to replace the token.
            logger.warning("Actor %s: stored token unusable, authorization required: %s", name, e)
        logger.info("Actor %s loaded", name)
        return Actor(name=name, ledger=ledger, auth=auth)

    def actors(self) -> List[str]:
        """Configured actors plus any loaded on demand."""
        with self._lock:
            loaded = [name for name, slot in self._slots.items() if slot.actor is not None]
        return sorted(set(self._configured) | set(loaded))

    def actor_for_state(self, state: str) -> Optional[str]:
        """Actor whose pending authorization uses state, if any."""
        with self._lock:
            slots = list(self._slots.items())
        for name, slot in slots:
            if slot.actor is None:
                continue
            pending = slot.actor.auth.pending_state()
            if pending and secrets.compare_digest(pending.encode("utf-8"), (state or "").encode("utf-8")):
                return name
        return None

    # -------- update --------
    def update(self, actor: str) -> IngestResult:
        """Fetch recently played tracks and merge them into the actor's Store."""
        a = self._actor(actor)
        return self._updates.do(actor, lambda: self._update(a))

    def _update(self, a: Actor) -> IngestResult:
        client = a.ledger.client
        if client is None:
            raise AuthError(f"{a.name}: not authorized")
        started = time.monotonic()
        items = client.fetch_recent()
        try:
            result = a.ledger.ingest(items)
        except ValueError as e:
            raise TransientSourceError(f"{a.name}: malformed recently played item: {e}") from e
        a.auth.sync_token(client)
        logger.info(
            "Updated %s in %.2fs: plays_new=%d tracks_new=%d plays_all=%d tracks_all=%d",
            a.name,
            time.monotonic() - started,
            result.plays_added,
            result.tracks_added,
            result.plays_total,
            result.tracks_total,
        )
        return result

    # -------- export --------
    def export(self, actor: str, destination_key: Optional[str] = None) -> bytes:
        """Snapshot bytes for actor, also published to destination_key when given.

        destination_key is resolved inside the export store, never next to
        the actors' own snapshots.
        """
        a = self._actor(actor)
        return self._exports.do(
            ("export", actor, destination_key),
            lambda: self._export(a, self._export_blobs, destination_key),
        )

    def persist(self, actor: str) -> bytes:
        """Write the actor's own snapshot."""
        a = self._actor(actor)
        return self._exports.do(
            ("snapshot", actor),
            lambda: self._export(a, self._blobs, snapshot_key(actor)),
        )

    def _export(self, a: Actor, blobs: FileBlobStore, key: Optional[str]) -> bytes:
        with a.ledger.locked() as store:
            data = store_to_dict(store)
        blob = encode_payload(data)
        if key:
            save_store(blobs, key, blob)
            logger.info("Exported %s to %s (%d bytes)", a.name, blobs.root / key, len(blob))
        return blob

    # -------- reports --------
    def report(
        self,
        actor: str,
        since: Optional[datetime] = None,
        options: Optional[ReportOptions] = None,
    ) -> List[PlaybackView]:
        """Playbacks most recent first; since overrides options.start."""
        options = options or ReportOptions()
        if since is not None:
            options = dataclasses.replace(options, start=since)
        a = self._actor(actor)
        with a.ledger.locked() as store:
            return get_playbacks(store, options)

    def artist_report(
        self,
        actor: str,
        options: Optional[ReportOptions] = None,
        order: SortOrder = SortOrder.PLAYS,
    ) -> List[ArtistStats]:
        return artist_stats(self.report(actor, options=options), order)

    def track_report(
        self,
        actor: str,
        options: Optional[ReportOptions] = None,
        order: SortOrder = SortOrder.PLAYS,
    ) -> List[TrackStats]:
        return track_stats(self.report(actor, options=options), order)

    # -------- auth --------
    def authorize(self, actor: str, client_id: str = "", client_secret: str = "") -> str:
        return self._actor(actor).auth.authorize(client_id, client_secret)

    def callback(self, actor: str, state: str, code: str) -> None:
        """Finish authorization and persist the new token."""
        self._actor(actor).auth.callback(state, code)
        self.persist(actor)

    # -------- loops --------
    # One actor's failure never stops the loop for the others.
    def update_all(self) -> None:
        for actor in self.actors():
            try:
                self.update(actor)
            except PlayLedgerError as e:
                logger.warning("Update %s failed: %s", actor, e)
            except Exception:
                logger.exception("Update %s failed unexpectedly", actor)

    def persist_all(self) -> None:
        with self._lock:
            loaded = [name for name, slot in self._slots.items() if slot.actor is not None]
        for actor in sorted(loaded):
            try:
                self.persist(actor)
            except PlayLedgerError as e:
                logger.warning("Export %s failed: %s", actor, e)
            except Exception:
                logger.exception("Export %s failed unexpectedly", actor)

    def final_export(self, timeout: float) -> bool:
        """Best-effort export on shutdown, waiting at most timeout seconds."""
        t = threading.Thread(target=self.persist_all, name="final-export", daemon=True)
        t.start()
        t.join(timeout=timeout)
        if t.is_alive():
            logger.warning("Final export did not finish within %.1fs", timeout)
            return False
        return True
