"""Key/value blob storage on the local filesystem with atomic publish."""
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator, Union

from playledger.core.errors import BlobNotFoundError

logger = logging.getLogger(__name__)


class FileBlobStore:
    """Blobs are files under ``root``; keys are relative paths."""

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root).resolve()

    def _path(self, key: str) -> Path:
        p = (self.root / key).resolve()
        if p == self.root or self.root not in p.parents:
            raise ValueError(f"blob key outside store: {key!r}")
        return p

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def open_read(self, key: str) -> BinaryIO:
        """Open a blob for reading. Raises BlobNotFoundError if missing."""
        p = self._path(key)
        try:
            return p.open("rb")
        except FileNotFoundError as e:
            raise BlobNotFoundError(key) from e

    @contextmanager
    def open_write(self, key: str) -> Iterator[BinaryIO]:
        """Write a blob; it becomes visible only if the block exits cleanly.

        Data goes to a temporary file in the same directory, which replaces
        the target in one rename. On error the temporary file is removed and
        any previous blob stays as it was.
        """
        p = self._path(key)
        p.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=str(p.parent), prefix=p.name + ".", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as handle:
                yield handle
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, p)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
        logger.debug("Blob written: %s", p)
