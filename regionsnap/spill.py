"""
Spill Storage

Private temporary files for state snapshots that have been moved out of
memory. Every file lives in one directory owned by the SpillStore. Files
are deleted when their state is released, and whatever is left over is
removed when the store is closed or the process exits.
"""

import atexit
import logging
import os
import shutil
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


class SpillStore:
    """Owner of the temp files backing on-disk states."""

    PREFIX = "regionsnap-"

    def __init__(self, base_dir: Path | None = None):
        if base_dir is not None:
            Path(base_dir).mkdir(parents=True, exist_ok=True)
        self.root = Path(tempfile.mkdtemp(prefix=self.PREFIX, dir=base_dir))
        self._closed = False
        atexit.register(self.close)

    def write(self, content: bytes) -> Path:
        """Write content to a new private file and return its path.

        The file is fully written and synced before the path is returned;
        a failed write leaves no file behind.
        """
        if self._closed:
            raise RuntimeError(f"Spill store {self.root} is closed")
        fd, tmp_path = tempfile.mkstemp(dir=str(self.root), prefix="state-", suffix=".bin")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
        except Exception:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        return Path(tmp_path)

    @staticmethod
    def read_range(path: Path, start: int, end: int) -> bytes:
        """Read ``[start, end)`` from a spilled file; a short read raises OSError."""
        with open(path, "rb") as f:
            f.seek(start)
            data = f.read(end - start)
        if len(data) != end - start:
            raise OSError(
                f"Failed to read spilled state {path}: read {len(data)} bytes, "
                f"expected {start} to {end}"
            )
        return data

    @staticmethod
    def delete(path: Path):
        """Delete one spilled file. Missing files are fine."""
        try:
            Path(path).unlink(missing_ok=True)
        except OSError as e:
            logger.info("Failed to delete temporary file %s: %s", path, e)

    def file_count(self) -> int:
        if not self.root.exists():
            return 0
        return sum(1 for _ in self.root.iterdir())

    def close(self):
        """Remove the spill directory. Safe to call multiple times."""
        if self._closed:
            return
        self._closed = True
        atexit.unregister(self.close)
        shutil.rmtree(self.root, ignore_errors=True)
