"""
File-backed pagination checkpoints.

One file per (source, direction) holding a single line of UTF-8 text: the
opaque cursor of the last page whose records are durably stored. A missing
file reads as an empty cursor.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Union

from core.config import settings
from core.exceptions import FileError
from models.base import DataSource, Direction

logger = logging.getLogger(__name__)


class FileCheckpoint:
    """
    Cursor for a single (source, direction) pair.

    Writes go to a temporary file in the same directory and are moved into
    place with ``os.replace``, so a crash leaves either the old or the new
    cursor on disk, never a truncated one. The in-memory value only changes
    after the file has been written.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._value: Optional[str] = None

    def read(self) -> str:
        """
        Current cursor ("" when no checkpoint exists yet).

        Raises:
            FileError: The file exists but cannot be read
        """
        if self._value is not None:
            return self._value
        try:
            self._value = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            self._value = ""
        except (OSError, UnicodeDecodeError) as e:
            raise FileError(
                "Failed to read checkpoint",
                context={"path": str(self.path), "operation": "read"},
                original_exception=e
            )
        return self._value

    def write(self, cursor: str) -> bool:
        """
        Persist ``cursor``; returns False when it was already stored.

        Raises:
            FileError: The cursor could not be persisted
        """
        if self._value is not None and cursor == self._value:
            return False

        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=str(self.path.parent), prefix=f".{self.path.name}.")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(cursor)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            raise FileError(
                "Failed to write checkpoint",
                context={"path": str(self.path), "operation": "write", "cursor": cursor},
                original_exception=e
            )
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

        self._value = cursor
        logger.debug(f"Checkpoint {self.path.name} -> {cursor}")
        return True

    def clear(self):
        """Forget the cursor so the next walk starts over"""
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise FileError(
                "Failed to remove checkpoint",
                context={"path": str(self.path), "operation": "delete"},
                original_exception=e
            )
        self._value = ""


class CheckpointStore:
    """Hands out one ``FileCheckpoint`` per (source, direction)"""

    def __init__(self, directory: Optional[Union[str, Path]] = None):
        self.directory = Path(directory or settings.CHECKPOINT_DIR)
        self._checkpoints: Dict[str, FileCheckpoint] = {}

    def path_for(self, source: DataSource, direction: Direction) -> Path:
        return self.directory / f"{source.value}_{direction.value}_cursor.txt"

    def cursor(self, source: DataSource, direction: Direction) -> FileCheckpoint:
        key = f"{source.value}:{direction.value}"
        if key not in self._checkpoints:
            self._checkpoints[key] = FileCheckpoint(self.path_for(source, direction))
        return self._checkpoints[key]

    def snapshot(self) -> Dict[str, str]:
        """Cursors currently on disk, keyed "source:direction" """
        result = {}
        for source in DataSource:
            for direction in Direction:
                path = self.path_for(source, direction)
                if path.exists():
                    try:
                        result[f"{source.value}:{direction.value}"] = self.cursor(source, direction).read()
                    except FileError as e:
                        logger.warning(f"Unreadable checkpoint {path}: {e}")
        return result
