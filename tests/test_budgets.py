"""History memory budget: status and spilling."""

import pytest

from regionsnap.budgets import BudgetConfig, compute_budget_status, enforce_budget
from regionsnap.region import ChunkPos, RegionPos, delete_chunks
from regionsnap.spill import SpillStore
from regionsnap.tracker import StateTracker

A = RegionPos(0, 0)
B = RegionPos(1, 0)


@pytest.fixture
def spill(tmp_path):
    s = SpillStore(tmp_path / "spill")
    yield s
    s.close()


@pytest.fixture
def tracker(world_dir, make_region):
    make_region(A, seed=1)
    make_region(B, seed=2)
    t = StateTracker(world_dir / "region")
    yield t
    t.remove_all_states()


class TestStatus:
    def test_under_limit(self, tracker):
        tracker.snapshot_state([A])
        status = compute_budget_status(tracker, BudgetConfig(max_memory_bytes=10**9))
        assert not status.exceeded
        assert status.warnings == []
        assert status.state_count == 1
        assert status.memory_bytes == tracker.total_bytes()

    def test_threshold_warning(self, tracker):
        tracker.snapshot_state([A])
        used = tracker.total_bytes()
        config = BudgetConfig(max_memory_bytes=used + 1, alert_threshold_pct=50)
        status = compute_budget_status(tracker, config)
        assert not status.exceeded
        assert len(status.warnings) == 1
        assert "%" in status.warnings[0]
        assert status.to_dict()["warnings"] == status.warnings

    def test_exceeded(self, tracker):
        tracker.snapshot_state([A])
        status = compute_budget_status(tracker, BudgetConfig(max_memory_bytes=1))
        assert status.exceeded

    def test_to_dict(self, tracker):
        status = compute_budget_status(tracker, BudgetConfig(max_memory_bytes=100))
        d = status.to_dict()
        assert d["config"]["max_memory_bytes"] == 100
        assert d["memory_bytes"] == 0


class TestEnforce:
    def test_within_limit_spills_nothing(self, tracker, spill):
        tracker.snapshot_state([A, B])
        assert enforce_budget(tracker, BudgetConfig(max_memory_bytes=10**9), spill) == 0
        assert spill.file_count() == 0

    def test_spills_oldest_first_until_within_limit(self, tracker, spill, world_dir):
        tracker.snapshot_state([A])
        first = tracker.current_state().get(A)
        path = world_dir / "region" / A.file_name()
        data = bytearray(path.read_bytes())
        data[-1] ^= 0xFF
        path.write_bytes(bytes(data))
        tracker.snapshot_state([A])
        second = tracker.current_state().get(A)

        limit = tracker.total_bytes() - 1
        assert enforce_budget(tracker, BudgetConfig(max_memory_bytes=limit), spill) == 1
        assert first.size() == 0
        assert second.size() == second.length
        assert tracker.total_bytes() <= limit

    def test_internal_states_stay_in_memory(self, tracker, spill, world_dir):
        tracker.snapshot_state([A])
        delete_chunks(world_dir / "region" / A.file_name(), [ChunkPos(0, 0)])
        tracker.snapshot_state([A])
        internal = tracker.current_state().get(A)

        enforce_budget(tracker, BudgetConfig(max_memory_bytes=1), spill)
        assert internal.is_internal
        assert internal.size() > 0
        assert tracker.total_on_disk_bytes() > 0
