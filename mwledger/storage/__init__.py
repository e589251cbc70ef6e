"""
Temporal Storage Layer

RESPONSIBILITY: Durable, ordered, append-only persistence of update events
ALLOWED INPUTS: UpdateEvent records produced by the event log
OUTPUTS: The same records, read back in event-id order

WHAT THIS LAYER MUST NOT DO:
============================
- Validate, transform or interpret events
- Maintain indexes or derived series
- Delete or modify existing records (append-only)

BOUNDARY ENFORCEMENT:
=====================
- The event log is the only writer
- Backend I/O failures surface as StorageError, never as raw OSError
- Any backend honouring append/read_after can replace the reference ones
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import InvalidOperation
from typing import Iterator, List, Optional
import json
import logging
import os

from ..contracts.base import ErrorCode, StorageError
from ..contracts.temporal import EventId, UpdateEvent
from ..domain.serialization import dumps_event, event_from_record

logger = logging.getLogger(__name__)


# =============================================================================
# STORAGE INTERFACES (Dependency Inversion)
# =============================================================================

class StorageBackend:
    """
    Abstract storage backend interface.

    Implementations can use different storage systems (memory, file, database)
    while maintaining the same append-only, ordered semantics.
    """

    def append(self, event: UpdateEvent) -> None:
        """Durably write one event after all previously written ones."""
        raise NotImplementedError

    def iter_events(self) -> Iterator[UpdateEvent]:
        """Yield every stored event in write order."""
        raise NotImplementedError

    def read_after(self, event_id: Optional[EventId] = None) -> List[UpdateEvent]:
        """Events with id strictly greater than event_id (all when None)."""
        floor = event_id.value if event_id else 0
        return [e for e in self.iter_events() if e.event_id.value > floor]

    def close(self) -> None:
        pass


# =============================================================================
# IN-MEMORY STORAGE BACKEND (Reference Implementation)
# =============================================================================

class InMemoryStorageBackend(StorageBackend):
    """
    In-memory implementation of storage backend.

    Suitable for testing and for deployments where the log is rebuilt
    from an upstream source on start.
    """

    def __init__(self):
        self._events: List[UpdateEvent] = []

    def append(self, event: UpdateEvent) -> None:
        self._events.append(event)

    def iter_events(self) -> Iterator[UpdateEvent]:
        return iter(list(self._events))

    def read_after(self, event_id: Optional[EventId] = None) -> List[UpdateEvent]:
        # Ids are contiguous from 1, so the id doubles as a list offset
        floor = event_id.value if event_id else 0
        return list(self._events[max(floor, 0):])

    def __len__(self) -> int:
        return len(self._events)


# =============================================================================
# FILE-BASED STORAGE BACKEND
# =============================================================================

class JsonlStorageBackend(StorageBackend):
    """
    File-based implementation of storage backend.

    One JSON object per line in ``events.jsonl``. Lines are only ever
    appended. A failed append truncates the file back to its previous
    length, and a trailing line left without its newline by an
    interrupted process is dropped when the backend is opened.
    """

    FILE_NAME = "events.jsonl"

    def __init__(self, storage_dir: str, fsync: bool = False):
        self._storage_dir = storage_dir
        self._events_file = os.path.join(storage_dir, self.FILE_NAME)
        self._fsync = fsync

        try:
            os.makedirs(storage_dir, exist_ok=True)
            self._repair_torn_tail()
        except OSError as e:
            raise StorageError(
                f"Cannot open storage directory: {e}",
                ErrorCode.STORAGE_FAILURE,
                storage_dir=storage_dir
            ) from e

    @property
    def path(self) -> str:
        return self._events_file

    def append(self, event: UpdateEvent) -> None:
        data = (dumps_event(event) + '\n').encode('utf-8')
        try:
            with open(self._events_file, 'ab', buffering=0) as f:
                offset = f.seek(0, os.SEEK_END)
                try:
                    self._write_all(f, data)
                    if self._fsync:
                        os.fsync(f.fileno())
                except OSError:
                    # No partial record may outlive a failed append
                    f.truncate(offset)
                    raise
        except OSError as e:
            raise StorageError(
                f"Failed to append event {event.event_id.value}: {e}",
                ErrorCode.STORAGE_FAILURE,
                event_id=event.event_id.value
            ) from e

    def _write_all(self, f, data: bytes) -> None:
        view = memoryview(data)
        while view:
            written = f.write(view)
            view = view[written:]

    def _repair_torn_tail(self) -> None:
        if not os.path.exists(self._events_file):
            return
        with open(self._events_file, 'rb+') as f:
            size = f.seek(0, os.SEEK_END)
            if size == 0:
                return
            f.seek(size - 1)
            if f.read(1) == b'\n':
                return

            keep = 0
            position = size
            while position > 0:
                step = min(4096, position)
                position -= step
                f.seek(position)
                newline = f.read(step).rfind(b'\n')
                if newline >= 0:
                    keep = position + newline + 1
                    break

            logger.warning(
                "Dropping %d bytes of an interrupted write at the end of %s",
                size - keep, self._events_file
            )
            f.truncate(keep)

    def iter_events(self) -> Iterator[UpdateEvent]:
        if not os.path.exists(self._events_file):
            return
        try:
            with open(self._events_file, 'r', encoding='utf-8') as f:
                for line_number, line in enumerate(f, start=1):
                    if not line.strip():
                        continue
                    yield self._parse_line(line, line_number)
        except OSError as e:
            raise StorageError(
                f"Failed to read {self._events_file}: {e}",
                ErrorCode.STORAGE_FAILURE
            ) from e

    def _parse_line(self, line: str, line_number: int) -> UpdateEvent:
        try:
            return event_from_record(json.loads(line))
        except (KeyError, TypeError, ValueError, InvalidOperation) as e:
            raise StorageError(
                f"Corrupt record at line {line_number}: {e}",
                ErrorCode.TIMELINE_CORRUPTION,
                line=line_number,
                path=self._events_file
            ) from e


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class StorageConfig:
    """Configuration for the persistence collaborator."""
    backend_type: str = "memory"  # "memory" or "file"
    storage_dir: Optional[str] = None
    fsync: bool = False


def create_backend(config: Optional[StorageConfig] = None) -> StorageBackend:
    """Create storage backend based on configuration."""
    config = config or StorageConfig()
    if config.backend_type == "file":
        if not config.storage_dir:
            raise StorageError(
                "File storage requires storage_dir",
                ErrorCode.STORAGE_FAILURE
            )
        logger.info("Using JSONL storage at %s", config.storage_dir)
        return JsonlStorageBackend(config.storage_dir, fsync=config.fsync)
    if config.backend_type != "memory":
        raise StorageError(
            f"Unknown storage backend: {config.backend_type}",
            ErrorCode.STORAGE_FAILURE
        )
    return InMemoryStorageBackend()
