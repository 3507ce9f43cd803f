"""
Region States

A State is the content of one region file at one point in time. There
are two kinds:

- InternalState holds only the 4096-byte lookup table. It is what we
  keep when a region's payload is unchanged and only its table moved,
  which is exactly what a chunk deletion does.
- ExternalState holds the whole file. We fall back to it whenever the
  payload changed (or we have nothing to compare against), because then
  restoring the table alone would not be safe.

Whole-file states can be large, so an ExternalState may move its bytes
out of memory into a private temp file. Its residency is one of
InMemory, OnDisk or Released. Memory -> disk happens at most once and
Released is final; reading a released state raises ReleasedStateError.
"""

import logging
import os
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from .errors import ReleasedStateError
from .region import HEADER_SIZE_BYTES, read_header, read_region
from .spill import SpillStore

logger = logging.getLogger(__name__)


# ── Residency ────────────────────────────────────────────────────


@dataclass(frozen=True)
class InMemory:
    data: bytes


@dataclass(frozen=True)
class OnDisk:
    path: Path


@dataclass(frozen=True)
class Released:
    pass


RELEASED = Released()


def _write_region(path: Path, content: bytes):
    """Overwrite a region file in place, keeping its mode, owner and links."""
    with open(path, "wb") as f:
        f.write(content)
        f.flush()
        os.fsync(f.fileno())


# ── States ───────────────────────────────────────────────────────


class State(ABC):
    """Common interface of InternalState and ExternalState."""

    is_internal: bool

    @abstractmethod
    def header(self) -> bytes:
        """The 4096-byte lookup table."""

    def header_matches(self, other: "State") -> bool:
        """True if the lookup tables of both states are byte-identical."""
        return self.header() == other.header()

    @abstractmethod
    def size(self) -> int:
        """Bytes held in memory."""

    def on_disk_size(self) -> int:
        return 0

    def allow_to_disk(self, spill: SpillStore):
        pass

    def release(self):
        pass

    @abstractmethod
    def write_state(self, path: Path):
        """Write this state back to the region file at ``path``."""


class InternalState(State):
    """Lookup table only. Always held in memory."""

    is_internal = True

    def __init__(self, data: bytes):
        if len(data) != HEADER_SIZE_BYTES:
            raise ValueError(
                f"Internal state must be {HEADER_SIZE_BYTES} bytes, got {len(data)}"
            )
        self.data = bytes(data)

    @classmethod
    def capture(cls, path: Path) -> "InternalState":
        return cls(read_header(path))

    def header(self) -> bytes:
        return self.data

    def size(self) -> int:
        return HEADER_SIZE_BYTES

    def write_state(self, path: Path):
        """Restore the lookup table in place, leaving the payload as it is."""
        with open(path, "r+b") as f:
            f.seek(0)
            f.write(self.data)
            f.flush()
            os.fsync(f.fileno())

    def __repr__(self) -> str:
        return "InternalState()"


class ExternalState(State):
    """A whole region file, held in memory or spilled to a temp file."""

    is_internal = False

    def __init__(self, data: bytes):
        self.length = len(data)
        self._residency: InMemory | OnDisk | Released = InMemory(bytes(data))
        self._lock = threading.Lock()

    @classmethod
    def capture(cls, path: Path) -> "ExternalState":
        return cls(read_region(path))

    @property
    def residency(self) -> InMemory | OnDisk | Released:
        return self._residency

    @property
    def is_released(self) -> bool:
        return isinstance(self._residency, Released)

    def _read_range(self, start: int, end: int | None = None) -> bytes:
        """Read ``[start, end)`` of the captured file; ``end=None`` reads to the end."""
        end = self.length if end is None else min(end, self.length)
        start = min(start, end)
        with self._lock:
            residency = self._residency
            if isinstance(residency, InMemory):
                return residency.data[start:end]
            if isinstance(residency, OnDisk):
                return SpillStore.read_range(residency.path, start, end)
        raise ReleasedStateError("Attempted to access a released external state")

    def content(self) -> bytes:
        return self._read_range(0)

    def header(self) -> bytes:
        return self._read_range(0, HEADER_SIZE_BYTES)

    def payload(self) -> bytes:
        return self._read_range(HEADER_SIZE_BYTES)

    def data_matches(self, other: State) -> bool:
        """True if everything after the lookup table is byte-identical.

        An InternalState has no payload to compare, so never matches.
        """
        if other.is_internal:
            return False
        return self.payload() == other.payload()

    def as_internal(self) -> InternalState:
        if self.length < HEADER_SIZE_BYTES:
            raise OSError(
                f"Captured region is {self.length} bytes, shorter than its lookup table"
            )
        return InternalState(self.header())

    def size(self) -> int:
        return self.length if isinstance(self._residency, InMemory) else 0

    def on_disk_size(self) -> int:
        return self.length if isinstance(self._residency, OnDisk) else 0

    def allow_to_disk(self, spill: SpillStore):
        """Move the captured bytes to a private temp file.

        A no-op when already on disk. If the temp file cannot be written
        the state stays in memory and the failure is logged.
        """
        with self._lock:
            residency = self._residency
            if isinstance(residency, Released):
                raise RuntimeError("Attempted to spill a released external state")
            if isinstance(residency, OnDisk):
                return
            try:
                path = spill.write(residency.data)
            except OSError as e:
                logger.warning("Failed to commit external state to disk: %s", e)
                return
            self._residency = OnDisk(path)
        logger.debug("Spilled %d byte state to %s", self.length, path)

    def release(self):
        """Drop the captured bytes and any temp file. Safe to call multiple times."""
        with self._lock:
            residency = self._residency
            self._residency = RELEASED
        if isinstance(residency, OnDisk):
            SpillStore.delete(residency.path)

    def write_state(self, path: Path):
        """Replace the region file at ``path`` with the captured bytes."""
        _write_region(path, self.content())

    def __repr__(self) -> str:
        return f"ExternalState(length={self.length}, residency={type(self._residency).__name__})"
