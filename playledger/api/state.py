"""Shared application state (injected into routes)."""
from typing import List

from playledger.config import (
    ACTORS,
    DATA_DIR,
    EXPORT_INTERVAL_SEC,
    SHUTDOWN_EXPORT_SEC,
    UPDATE_INTERVAL_SEC,
)
from playledger.core.blob_store import FileBlobStore
from playledger.core.scheduler import PeriodicTask
from playledger.core.service import PlayLedgerService


class AppState:
    def __init__(self, service: PlayLedgerService) -> None:
        self.service = service
        self._tasks: List[PeriodicTask] = []

    def start_loops(
        self,
        update_interval: float = UPDATE_INTERVAL_SEC,
        export_interval: float = EXPORT_INTERVAL_SEC,
    ) -> None:
        self._tasks = [
            PeriodicTask("update-loop", update_interval, self.service.update_all),
            PeriodicTask("export-loop", export_interval, self.service.persist_all),
        ]
        for task in self._tasks:
            task.start()

    def shutdown(self, export_timeout: float = SHUTDOWN_EXPORT_SEC) -> None:
        for task in self._tasks:
            task.stop()
        self._tasks = []
        self.service.final_export(export_timeout)


_state = AppState(PlayLedgerService(FileBlobStore(DATA_DIR), actors=ACTORS))


def get_state() -> AppState:
    return _state
