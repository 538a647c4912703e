"""
ingestion/checkpoint.py - Last-processed-block persistence.

The reader only depends on the CheckpointStore protocol; callers inject a
store. The stored value is the number of the last block fully processed.
"""

import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from core.exceptions import CheckpointError
from core.logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class CheckpointStore(Protocol):
    """Single persisted integer. The block reader is its only writer."""

    def load(self) -> Optional[int]:
        """Return the stored block number, or None if nothing was stored yet."""
        ...

    def save(self, block_number: int) -> None:
        """Overwrite the stored block number."""
        ...


class MemoryCheckpointStore:
    """In-process store; state is lost on restart."""

    def __init__(self, initial: Optional[int] = None):
        self._value = initial
        self.saves: list[int] = []

    def load(self) -> Optional[int]:
        return self._value

    def save(self, block_number: int) -> None:
        self._value = block_number
        self.saves.append(block_number)


class FileCheckpointStore:
    """
    Block number stored as text in a single file.

    Writes go to a temp file in the same directory and are moved into place
    with os.replace, so a crash never leaves a half-written checkpoint.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> Optional[int]:
        try:
            text = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CheckpointError(
                f"Cannot read checkpoint: {e}",
                details={"path": str(self.path)},
            ) from e

        if not text:
            return None

        try:
            return int(text)
        except ValueError as e:
            raise CheckpointError(
                f"Corrupt checkpoint content: {text[:32]!r}",
                details={"path": str(self.path)},
            ) from e

    def save(self, block_number: int) -> None:
        directory = self.path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=f".{self.path.name}.")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(str(block_number))
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise CheckpointError(
                f"Cannot write checkpoint: {e}",
                details={"path": str(self.path), "block_number": block_number},
            ) from e

        logger.debug(
            "Checkpoint saved",
            extra={"context": {"path": str(self.path), "block_number": block_number}},
        )
