"""
Shared pytest fixtures.

Region files are synthetic but laid out like the real thing: a full
lookup table with every slot occupied, a timestamp table, and a few
sectors of seeded random payload.
"""

import random
import struct

import pytest

from regionsnap.region import HEADER_SIZE_BYTES, SLOT_COUNT, RegionPos


def _build_region(seed: int, sectors: int = 4) -> bytes:
    rng = random.Random(seed)
    entries = [((2 + slot) << 8) | 1 for slot in range(SLOT_COUNT)]
    header = struct.pack(f">{SLOT_COUNT}I", *entries)
    timestamps = bytes(rng.getrandbits(8) for _ in range(HEADER_SIZE_BYTES))
    payload = bytes(rng.getrandbits(8) for _ in range(sectors * 4096))
    return header + timestamps + payload


@pytest.fixture
def world_dir(tmp_path):
    world = tmp_path / "world"
    (world / "region").mkdir(parents=True)
    return world


@pytest.fixture
def make_region(world_dir):
    """Factory: write a region file into the world and return its path."""

    def _make(pos: RegionPos, seed: int | None = None, content: bytes | None = None):
        if content is None:
            content = _build_region(seed if seed is not None else hash((pos.x, pos.z)) & 0xFFFF)
        path = world_dir / "region" / pos.file_name()
        path.write_bytes(content)
        return path

    return _make


@pytest.fixture
def region_grid(make_region):
    """A 4x4 grid of regions, (-2..1) x (-2..1). Returns {pos: original bytes}."""
    originals = {}
    for i, rx in enumerate(range(-2, 2)):
        for j, rz in enumerate(range(-2, 2)):
            pos = RegionPos(rx, rz)
            path = make_region(pos, seed=i * 4 + j)
            originals[pos] = path.read_bytes()
    return originals


@pytest.fixture
def region_bytes():
    """Factory: synthetic region file content for a seed."""
    return _build_region
