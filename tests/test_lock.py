"""WorldLock acquisition, contention and stale-lock reclamation."""

import json
import os
import time

from regionsnap.lock import LOCK_DIR_NAME, WorldLock, _hostname


def _plant_owner(lock_dir, **owner):
    lock_dir.mkdir(parents=True)
    (lock_dir / "owner.json").write_text(json.dumps(owner))


class TestTryLock:
    def test_acquire_and_release(self, world_dir):
        lock = WorldLock(world_dir)
        assert lock.try_lock()
        assert lock.held
        assert (world_dir / LOCK_DIR_NAME).is_dir()

        owner = lock.owner()
        assert owner["pid"] == os.getpid()
        assert owner["hostname"] == _hostname()

        lock.release()
        assert not lock.held
        assert not (world_dir / LOCK_DIR_NAME).exists()
        assert lock.owner() is None

    def test_not_reentrant(self, world_dir):
        lock = WorldLock(world_dir)
        assert lock.try_lock()
        assert not lock.try_lock()
        lock.release()

    def test_second_holder_refused(self, world_dir):
        first = WorldLock(world_dir)
        second = WorldLock(world_dir)
        assert first.try_lock()
        assert not second.try_lock()
        first.release()
        assert second.try_lock()
        second.release()

    def test_release_without_holding_leaves_other_lock(self, world_dir):
        first = WorldLock(world_dir)
        first.try_lock()
        WorldLock(world_dir).release()
        assert (world_dir / LOCK_DIR_NAME).exists()
        first.release()


class TestStaleLocks:
    def test_old_lock_is_reclaimed(self, world_dir):
        _plant_owner(
            world_dir / LOCK_DIR_NAME,
            acquired_at=time.time() - WorldLock.LOCK_MAX_AGE_SECONDS - 10,
            pid=os.getpid(),
            hostname=_hostname(),
        )
        lock = WorldLock(world_dir)
        assert lock.try_lock()
        assert lock.owner()["acquired_at"] > time.time() - 60
        lock.release()

    def test_dead_pid_is_reclaimed(self, world_dir, monkeypatch):
        _plant_owner(
            world_dir / LOCK_DIR_NAME,
            acquired_at=time.time(),
            pid=999999,
            hostname=_hostname(),
        )
        monkeypatch.setattr(WorldLock, "_is_process_alive", staticmethod(lambda pid: False))
        lock = WorldLock(world_dir)
        assert lock.try_lock()
        lock.release()

    def test_live_lock_on_other_host_kept(self, world_dir):
        _plant_owner(
            world_dir / LOCK_DIR_NAME,
            acquired_at=time.time(),
            pid=1,
            hostname="some-other-host",
        )
        assert not WorldLock(world_dir).try_lock()
        assert (world_dir / LOCK_DIR_NAME / "owner.json").exists()

    def test_lock_without_owner_file_is_reclaimed(self, world_dir):
        (world_dir / LOCK_DIR_NAME).mkdir()
        lock = WorldLock(world_dir)
        assert lock.try_lock()
        lock.release()
