"""Serialize a Store to compressed snapshot bytes and load it back."""
import base64
import binascii
import gzip
import json
import logging
import zlib
from typing import Any, Dict

from playledger.core.blob_store import FileBlobStore
from playledger.core.errors import BlobNotFoundError, DurabilityError, SerializationError
from playledger.core.ledger import parse_timestamp
from playledger.models.store import Artist, Auth, Playback, Store, Track

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


def _b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def store_to_dict(store: Store) -> Dict[str, Any]:
    """Plain-dict form of a Store. Call while holding the ledger lock."""
    data: Dict[str, Any] = {
        "version": SNAPSHOT_VERSION,
        "playbacks": {
            ts: {
                "track_id": p.track_id,
                "track_uri": p.track_uri,
                "context_type": p.context_type,
                "context_uri": p.context_uri,
            }
            for ts, p in store.playbacks.items()
        },
        "tracks": {
            track_id: {
                "id": t.id,
                "uri": t.uri,
                "type": t.type,
                "name": t.name,
                "duration_ms": t.duration_ms,
                "artists": [{"id": a.id, "uri": a.uri, "name": a.name} for a in t.artists],
            }
            for track_id, t in store.tracks.items()
        },
        "auth": {
            "client_id": store.auth.client_id,
            "client_secret": store.auth.client_secret,
            "token": _b64(store.auth.token),
        },
    }
    if store.legacy_token:
        data["token"] = _b64(store.legacy_token)
    return data


def encode_payload(data: Dict[str, Any]) -> bytes:
    raw = json.dumps(data, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return gzip.compress(raw, mtime=0)


def encode_store(store: Store) -> bytes:
    """Compact JSON, gzip-compressed. Same Store, same bytes."""
    return encode_payload(store_to_dict(store))


def _text(item: Dict[str, Any], name: str, required: bool = False) -> str:
    if required:
        value = item[name]
    else:
        value = item.get(name, "")
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a string, got {type(value).__name__}")
    return value


def _duration_ms(item: Dict[str, Any]) -> int:
    value = item.get("duration_ms", 0)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise TypeError(f"duration_ms must be a non-negative integer, got {value!r}")
    return value


def _playback_key(ts: str) -> str:
    # Reports parse every key, so an unparseable one is a corrupt snapshot.
    parse_timestamp(ts)
    return ts


def store_from_dict(data: Dict[str, Any]) -> Store:
    """Build a Store from its dict form. Raises SerializationError on bad shape."""
    if not isinstance(data, dict):
        raise SerializationError("snapshot is not an object")
    version = data.get("version", SNAPSHOT_VERSION)
    if version != SNAPSHOT_VERSION:
        raise SerializationError(f"unsupported snapshot version {version!r}")
    try:
        playbacks = {
            _playback_key(ts): Playback(
                track_id=_text(item, "track_id", required=True),
                track_uri=_text(item, "track_uri"),
                context_type=_text(item, "context_type"),
                context_uri=_text(item, "context_uri"),
            )
            for ts, item in (data.get("playbacks") or {}).items()
        }
        tracks = {
            str(track_id): Track(
                id=_text(item, "id", required=True),
                uri=_text(item, "uri"),
                type=_text(item, "type"),
                name=_text(item, "name"),
                duration_ms=_duration_ms(item),
                artists=[
                    Artist(id=_text(a, "id", required=True), uri=_text(a, "uri"), name=_text(a, "name"))
                    for a in item.get("artists") or []
                ],
            )
            for track_id, item in (data.get("tracks") or {}).items()
        }
        auth_data = data.get("auth") or {}
        auth = Auth(
            client_id=_text(auth_data, "client_id"),
            client_secret=_text(auth_data, "client_secret"),
            token=base64.b64decode(auth_data.get("token") or "", validate=True),
        )
        legacy = data.get("token")
        legacy_token = base64.b64decode(legacy, validate=True) if legacy else None
    except (KeyError, TypeError, ValueError, AttributeError, binascii.Error) as e:
        raise SerializationError(f"malformed snapshot: {e}") from e

    if not auth.token and legacy_token:
        logger.warning("Snapshot: auth token empty, falling back to deprecated top-level token field")
        auth.token = legacy_token
    return Store(playbacks=playbacks, tracks=tracks, auth=auth, legacy_token=legacy_token)


def decode_store(blob: bytes) -> Store:
    """Inverse of encode_store."""
    try:
        raw = gzip.decompress(blob)
    except (OSError, EOFError, zlib.error) as e:
        raise SerializationError(f"decompress snapshot: {e}") from e
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise SerializationError(f"parse snapshot: {e}") from e
    return store_from_dict(data)


def load_store(blobs: FileBlobStore, key: str) -> Store:
    """Load a Store from the blob store; a missing key yields an empty Store."""
    try:
        handle = blobs.open_read(key)
    except BlobNotFoundError:
        logger.warning("Snapshot %s not found, starting with an empty store", key)
        return Store.empty()
    except OSError as e:
        raise DurabilityError(f"open snapshot {key}: {e}") from e
    try:
        with handle:
            blob = handle.read()
    except OSError as e:
        raise DurabilityError(f"read snapshot {key}: {e}") from e
    store = decode_store(blob)
    logger.info(
        "Snapshot %s loaded: %d plays, %d tracks",
        key,
        len(store.playbacks),
        len(store.tracks),
    )
    return store


def save_store(blobs: FileBlobStore, key: str, blob: bytes) -> None:
    """Publish encoded snapshot bytes; the previous snapshot survives any failure."""
    try:
        with blobs.open_write(key) as handle:
            handle.write(blob)
    except OSError as e:
        raise DurabilityError(f"write snapshot {key}: {e}") from e
