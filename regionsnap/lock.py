"""
World Lock

Exclusive access to a world directory for structural edits.

Cross-platform advisory locking via atomic mkdir: creating the lock
directory either succeeds or raises because it already exists. The
holder's details go into ``owner.json`` inside it so a lock left behind
by a dead process can be reclaimed.

    <world>/regionsnap.lockdir/             existence = locked
    <world>/regionsnap.lockdir/owner.json   who holds it

``try_lock()`` never waits. A second edit while one is in flight is
refused, not queued.
"""

import json
import logging
import os
import shutil
import socket
import tempfile
import threading
import time
from pathlib import Path

logger = logging.getLogger(__name__)

LOCK_DIR_NAME = "regionsnap.lockdir"


def _hostname() -> str:
    """Get hostname, cached after first call."""
    if not hasattr(_hostname, "_cached"):
        _hostname._cached = socket.gethostname()
    return _hostname._cached


def _atomic_write(path: Path, content: str):
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        Path(tmp_path).replace(path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


class WorldLock:
    """Non-blocking exclusive lock on one world directory."""

    # Max age before a lock is considered stale regardless of PID
    LOCK_MAX_AGE_SECONDS = 3600 * 4

    def __init__(self, world_dir: Path):
        self.world_dir = Path(world_dir)
        self.lock_dir = self.world_dir / LOCK_DIR_NAME
        self._held = False
        self._mutex = threading.Lock()

    @property
    def held(self) -> bool:
        return self._held

    def try_lock(self) -> bool:
        """Acquire the lock if it is free. Returns False if someone holds it."""
        with self._mutex:
            if self._held:
                return False
            try:
                self.lock_dir.mkdir(parents=True, exist_ok=False)
            except FileExistsError:
                owner = self.owner()
                if owner and not self._is_lock_stale(owner):
                    return False
                logger.info("Reclaiming stale world lock %s (owner=%s)", self.lock_dir, owner)
                self._force_remove()
                try:
                    self.lock_dir.mkdir(parents=True, exist_ok=False)
                except FileExistsError:
                    return False

            _atomic_write(
                self.lock_dir / "owner.json",
                json.dumps(
                    {
                        "acquired_at": time.time(),
                        "pid": os.getpid(),
                        "hostname": _hostname(),
                    },
                    indent=2,
                ),
            )
            self._held = True
            return True

    def release(self):
        """Release the lock if this instance holds it."""
        with self._mutex:
            if not self._held:
                return
            self._force_remove()
            self._held = False

    def owner(self) -> dict | None:
        """Owner metadata of the current lock, or None if unlocked/unreadable."""
        owner_path = self.lock_dir / "owner.json"
        if not owner_path.exists():
            return None
        try:
            return json.loads(owner_path.read_text())
        except (json.JSONDecodeError, OSError):
            return None

    def _force_remove(self):
        if self.lock_dir.exists():
            shutil.rmtree(self.lock_dir)

    def _is_lock_stale(self, owner: dict) -> bool:
        """
        A lock is stale if the owning PID no longer exists on this host,
        or it is older than LOCK_MAX_AGE_SECONDS.
        """
        acquired_at = owner.get("acquired_at", 0)
        if (time.time() - acquired_at) > self.LOCK_MAX_AGE_SECONDS:
            return True

        if owner.get("hostname") == _hostname():
            pid = owner.get("pid")
            if pid is not None and not self._is_process_alive(pid):
                return True

        return False

    @staticmethod
    def _is_process_alive(pid: int) -> bool:
        """Signal 0 checks existence without killing. Assume alive when unsure."""
        if os.name == "nt":
            try:
                import ctypes

                kernel32 = ctypes.windll.kernel32
                PROCESS_QUERY_LIMITED_INFORMATION = 0x1000  # noqa: N806
                handle = kernel32.OpenProcess(PROCESS_QUERY_LIMITED_INFORMATION, False, pid)
                if handle:
                    kernel32.CloseHandle(handle)
                    return True
                return False
            except (AttributeError, OSError):
                return True
        try:
            os.kill(pid, 0)
            return True
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        except OSError:
            return False
