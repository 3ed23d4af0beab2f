"""Errors surfaced by core operations to the API layer."""


class PlayLedgerError(Exception):
    """Base class for playledger errors."""


class TransientSourceError(PlayLedgerError):
    """Fetching recently played tracks failed; safe to retry later."""


class SerializationError(PlayLedgerError):
    """Snapshot bytes are corrupt or not a snapshot."""


class DurabilityError(PlayLedgerError):
    """Reading or publishing a snapshot failed."""


class AuthError(PlayLedgerError):
    """Missing client credentials, unknown authorization state, or no token yet."""


class BlobNotFoundError(PlayLedgerError):
    """Requested blob key does not exist."""
