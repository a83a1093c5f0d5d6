"""
Queue store - durable, ordered list of queue entries in a JSON file.

Writes go to a temporary file in the same directory which then replaces the
queue file, so readers never see a partially written queue.
"""

import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Sequence, Tuple, Union

import structlog

from userop_batcher.core.operation import InvalidOperationError, QueueEntry

logger = structlog.get_logger(__name__)


class QueueStoreError(Exception):
    """Raised when the queue file exists but cannot be used."""
    pass


@dataclass
class MalformedEntry:
    """A raw queue item that could not be parsed into an entry."""

    index: int
    item: Any
    reason: str


class QueueStore:
    """
    JSON file holding the pending queue.

    The file is a JSON array of entries. A missing file, or one whose top
    level is not an array, reads as an empty queue.
    """

    def __init__(self, path: Union[str, Path]):
        """
        Initialize the store.

        Args:
            path: Location of the queue file
        """
        self.path = Path(path).resolve()

    def load_raw(self) -> List[Any]:
        """
        Read the queue file without parsing entries.

        Raises:
            QueueStoreError: If the file is not valid JSON
        """
        if not self.path.exists():
            return []

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise QueueStoreError(f"Queue file {self.path} is not valid JSON: {e}")

        if not isinstance(data, list):
            logger.warning("queue_not_a_list", path=str(self.path))
            return []

        return data

    def load(self) -> List[QueueEntry]:
        """
        Load all queue entries in order.

        Raises:
            QueueStoreError: If the file or one of its entries is malformed
        """
        entries = self.parse(self.load_raw())
        logger.debug("queue_loaded", path=str(self.path), size=len(entries))
        return entries

    @staticmethod
    def parse(items: List[Any]) -> List[QueueEntry]:
        """
        Parse raw queue items into entries.

        Raises:
            QueueStoreError: If an item is malformed
        """
        entries = []
        for index, item in enumerate(items):
            try:
                entries.append(QueueEntry.from_dict(item))
            except InvalidOperationError as e:
                raise QueueStoreError(f"Queue entry {index} is malformed: {e}")
        return entries

    @staticmethod
    def parse_lenient(items: List[Any]) -> Tuple[List[QueueEntry], List[MalformedEntry]]:
        """
        Parse raw queue items, setting aside those that cannot be parsed.

        Returns:
            Parsed entries in queue order, and the malformed items
        """
        entries = []
        malformed = []
        for index, item in enumerate(items):
            try:
                entries.append(QueueEntry.from_dict(item))
            except InvalidOperationError as e:
                malformed.append(MalformedEntry(index=index, item=item, reason=str(e)))
        return entries, malformed

    def save(self, entries: Sequence[QueueEntry]) -> None:
        """
        Atomically replace the queue file.

        Args:
            entries: Full queue contents, in order
        """
        self.save_raw([entry.to_dict() for entry in entries])
        logger.debug("queue_saved", path=str(self.path), size=len(entries))

    def save_raw(self, items: List[Any]) -> None:
        """Atomically replace the queue file with already-serialized items."""
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(
            prefix=f".{self.path.name}.",
            suffix=".tmp",
            dir=str(self.path.parent),
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(items, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
