"""
Region Files

The on-disk unit this package edits. A region file stores up to 1024
chunks for a 32x32 area of the world:

    [0, 4096)     lookup table, 1024 big-endian u32 entries
    [4096, EOF)   payload (opaque to us)

Entry ``i = x + z * 32`` belongs to the chunk at local coordinates
``(x, z)``. A zero entry means the chunk is absent, so "deleting" a chunk
is nothing more than zeroing its four table bytes. The payload is left
in place and becomes unreachable.
"""

import logging
import struct
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

HEADER_SIZE_BYTES = 4096
ENTRY_SIZE_BYTES = 4
SLOT_COUNT = HEADER_SIZE_BYTES // ENTRY_SIZE_BYTES
REGION_WIDTH = 32
# A region needs both the location table and the timestamp table before
# we trust its table enough to edit it.
MIN_EDITABLE_SIZE = 2 * HEADER_SIZE_BYTES

DEFAULT_EXTENSION = "mca"

_EMPTY_ENTRY = struct.pack(">I", 0)
_HEADER_STRUCT = struct.Struct(f">{SLOT_COUNT}I")


class CorruptRegionError(ValueError):
    """Raised when a region file is too short to hold an editable table."""

    def __init__(self, path: Path, length: int):
        super().__init__(
            f"Region file {path} is {length} bytes, expected at least {MIN_EDITABLE_SIZE}"
        )
        self.path = path
        self.length = length


@dataclass(frozen=True)
class RegionPos:
    """Position of a region file, in region coordinates."""

    x: int
    z: int

    def file_name(self, extension: str = DEFAULT_EXTENSION) -> str:
        return f"r.{self.x}.{self.z}.{extension}"

    @classmethod
    def from_file_name(cls, name: str) -> "RegionPos | None":
        """Parse ``r.<x>.<z>.<ext>``. Returns None for anything else."""
        parts = name.split(".")
        if len(parts) != 4 or parts[0] != "r":
            return None
        try:
            return cls(int(parts[1]), int(parts[2]))
        except ValueError:
            return None

    def chunk_at(self, slot: int) -> "ChunkPos":
        """World chunk position of a table slot in this region."""
        return ChunkPos(
            (self.x << 5) + slot % REGION_WIDTH,
            (self.z << 5) + slot // REGION_WIDTH,
        )


@dataclass(frozen=True)
class ChunkPos:
    """Position of a chunk, in world chunk coordinates."""

    x: int
    z: int

    @property
    def region(self) -> RegionPos:
        return RegionPos(self.x >> 5, self.z >> 5)

    @property
    def slot(self) -> int:
        return (self.x & 31) + (self.z & 31) * REGION_WIDTH

    @classmethod
    def parse(cls, text: str) -> "ChunkPos":
        """Parse ``"x,z"``."""
        try:
            x, z = text.split(",")
            return cls(int(x), int(z))
        except ValueError:
            raise ValueError(f"Invalid chunk position {text!r}, expected X,Z") from None


def group_by_region(chunks) -> dict[RegionPos, list[ChunkPos]]:
    """Bucket chunk positions by the region that contains them.

    Order within each bucket follows the input order; duplicates are kept
    once.
    """
    selection: dict[RegionPos, list[ChunkPos]] = {}
    for chunk in chunks:
        bucket = selection.setdefault(chunk.region, [])
        if chunk not in bucket:
            bucket.append(chunk)
    return selection


# ── Reading ──────────────────────────────────────────────────────


def read_header(path: Path) -> bytes:
    """Read exactly the lookup table of a region file.

    Raises OSError if the file is shorter than the table.
    """
    with open(path, "rb") as f:
        data = f.read(HEADER_SIZE_BYTES)
    if len(data) != HEADER_SIZE_BYTES:
        raise OSError(
            f"Short read of region header {path}: got {len(data)} of {HEADER_SIZE_BYTES} bytes"
        )
    return data


def read_region(path: Path) -> bytes:
    """Read a whole region file."""
    return Path(path).read_bytes()


def chunk_entries(header: bytes) -> tuple[int, ...]:
    """Decode the 1024 lookup table entries."""
    return _HEADER_STRUCT.unpack_from(header, 0)


def present_chunks(path: Path, region_pos: RegionPos) -> list[ChunkPos]:
    """Chunks with a non-zero table entry, in slot order."""
    entries = chunk_entries(read_header(path))
    return [region_pos.chunk_at(slot) for slot, entry in enumerate(entries) if entry != 0]


# ── Mutation ─────────────────────────────────────────────────────


def delete_chunks(path: Path, chunks) -> int:
    """Mark chunks absent by zeroing their lookup table entries in place.

    Every chunk must lie in the region stored at ``path``. Only the four
    table bytes of each chunk are written; the rest of the file is left
    untouched. Returns the number of entries written.

    Raises CorruptRegionError if the file is too short to be edited
    safely, and OSError for any I/O failure.
    """
    written = 0
    with open(path, "r+b") as f:
        f.seek(0, 2)
        length = f.tell()
        if length < MIN_EDITABLE_SIZE:
            raise CorruptRegionError(Path(path), length)

        for chunk in chunks:
            f.seek(ENTRY_SIZE_BYTES * chunk.slot)
            f.write(_EMPTY_ENTRY)
            written += 1
        f.flush()
    logger.debug("Zeroed %d table entries in %s", written, path)
    return written


def list_regions(region_dir: Path, extension: str = DEFAULT_EXTENSION) -> list[RegionPos]:
    """Region files present in a directory, sorted by position."""
    region_dir = Path(region_dir)
    if not region_dir.is_dir():
        return []
    found = []
    for entry in region_dir.iterdir():
        if not entry.is_file() or not entry.name.endswith(f".{extension}"):
            continue
        pos = RegionPos.from_file_name(entry.name)
        if pos is not None:
            found.append(pos)
    return sorted(found, key=lambda p: (p.x, p.z))
