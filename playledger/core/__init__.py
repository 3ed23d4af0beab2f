"""Core services: ledger, snapshots, coalescing, reports, Spotify auth."""
from playledger.core.ledger import Ledger
from playledger.core.service import PlayLedgerService

__all__ = ["Ledger", "PlayLedgerService"]
