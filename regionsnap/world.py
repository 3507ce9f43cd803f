"""
World State

Coordinates destructive edits of a world's region files with the undo
history kept by a StateTracker.

A chunk deletion runs as:

    try lock -> snapshot before -> zero table entries -> snapshot after
             -> hand-off to the notification context -> unlock

Everything up to and including the snapshot before the edit happens on
the calling thread. If the lock is taken or a region cannot be read
there, nothing has been written yet and the call returns None.

From the first write on, the operation cannot be cancelled. Region
writes run on a worker pool and failures are collected, not raised. The
snapshot after the edit always runs, even when writes failed, because
the history would otherwise no longer describe what is on disk. Any
problem ends up in the Failure attached to the OperationResult that the
returned future resolves to.

Undo and redo restore the states recorded in the previous/next history
entry, with the same locking and failure aggregation.

Collaborators are plain objects; any of them may be omitted:

    world       reset_chunk(pos), chunk_updated(pos), chunk_deleted(pos)
    map_loader  region_updated(pos)
    notifier    executor-like object with submit(fn, *args); callbacks to
                world and map_loader only ever run through it, in order
"""

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .budgets import BudgetConfig, compute_budget_status, enforce_budget
from .config import EditorConfig, load_config
from .errors import Failure, FailureCause, FailureKind, OperationFailedError, Severity
from .lock import WorldLock
from .region import ChunkPos, CorruptRegionError, RegionPos, delete_chunks, group_by_region
from .spill import SpillStore
from .tracker import StateTracker

logger = logging.getLogger(__name__)


class OperationKind(Enum):
    DELETE = "delete"
    UNDO = "undo"
    REDO = "redo"


@dataclass
class OperationResult:
    """Outcome of a delete/undo/redo that ran to completion."""

    kind: OperationKind
    regions: list[RegionPos]
    written: list[RegionPos] = field(default_factory=list)
    skipped: list[RegionPos] = field(default_factory=list)
    failure: Failure | None = None
    snapshot_taken: bool = False
    # Resolves once the world/map loader have been told about the change
    notified: Future | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    def raise_for_failure(self):
        if self.failure is not None:
            raise OperationFailedError(self.failure)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "regions": [[p.x, p.z] for p in self.regions],
            "written": [[p.x, p.z] for p in self.written],
            "skipped": [[p.x, p.z] for p in self.skipped],
            "snapshot_taken": self.snapshot_taken,
            "failure": self.failure.to_dict() if self.failure else None,
        }


class WorldState:
    """Undoable chunk deletion for one world directory."""

    def __init__(
        self,
        world_dir: Path,
        world=None,
        map_loader=None,
        config: EditorConfig | None = None,
        lock: WorldLock | None = None,
        executor: Executor | None = None,
        notifier: Executor | None = None,
        spill: SpillStore | None = None,
    ):
        self.world_dir = Path(world_dir)
        self.config = config if config is not None else load_config(self.world_dir)
        self.region_dir = self.world_dir / self.config.region_dir
        self.world = world
        self.map_loader = map_loader
        self.lock = lock if lock is not None else WorldLock(self.world_dir)
        self.tracker = StateTracker(self.region_dir, self.config.extension)
        self.budget = BudgetConfig(
            max_memory_bytes=self.config.memory_limit,
            alert_threshold_pct=self.config.alert_threshold_pct,
        )

        self._owns_spill = spill is None
        self.spill = spill if spill is not None else SpillStore(self.config.spill_dir)
        self._owns_executor = executor is None
        self._executor = executor
        self._owns_notifier = notifier is None
        self._notifier = (
            notifier
            if notifier is not None
            else ThreadPoolExecutor(max_workers=1, thread_name_prefix="regionsnap-notify")
        )
        # One operation at a time holds the world lock, so one worker
        # is enough to sequence the tail of every operation.
        self._pipeline = ThreadPoolExecutor(max_workers=1, thread_name_prefix="regionsnap-op")
        self._closed = False

    def region_path(self, pos: RegionPos) -> Path:
        return self.tracker.region_path(pos)

    def _io_executor(self, executor: Executor | None) -> Executor:
        if executor is not None:
            return executor
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.config.worker_count, thread_name_prefix="regionsnap-io"
            )
        return self._executor

    def _check_budget(self):
        status = compute_budget_status(self.tracker, self.budget)
        for warning in status.warnings:
            logger.info("Undo history: %s", warning)
        if status.exceeded:
            enforce_budget(self.tracker, self.budget, self.spill)

    # ── Delete ────────────────────────────────────────────────────

    def delete_chunks(self, chunks, executor: Executor | None = None) -> Future | None:
        """Delete chunks, recording enough history to undo it.

        Returns a future resolving to an OperationResult, or None if the
        operation could not start (world locked, or a region could not be
        read before the edit). Nothing is written in the None case.
        """
        if self._closed:
            raise RuntimeError("WorldState is closed")
        if not self.lock.try_lock():
            logger.info("World %s is locked, not deleting chunks", self.world_dir)
            return None

        try:
            selection = group_by_region(chunks)
            regions = list(selection)

            try:
                # Refresh the current entry so undo restores what is on
                # disk right now, not what it was after the last edit.
                if self.tracker.has_state():
                    self.tracker.snapshot_current_state(regions)
                else:
                    self.tracker.snapshot_state(regions)
            except OSError as e:
                logger.warning("Could not take snapshot of regions, aborting: %s", e)
                self.lock.release()
                return None
            self._check_budget()

            pool = self._io_executor(executor)
            writes = {
                pos: pool.submit(delete_chunks, self.region_path(pos), selection[pos])
                for pos in regions
            }
            return self._pipeline.submit(self._finish_delete, selection, writes)
        except BaseException:
            self.lock.release()
            raise

    def _finish_delete(
        self, selection: dict[RegionPos, list[ChunkPos]], writes: dict[RegionPos, Future]
    ) -> OperationResult:
        regions = list(selection)
        result = OperationResult(OperationKind.DELETE, regions=regions)
        try:
            causes = []
            for pos, future in writes.items():
                try:
                    future.result()
                except CorruptRegionError as e:
                    logger.warning("Missing header in region file %s, skipping: %s", e.path, e)
                    result.skipped.append(pos)
                except Exception as e:
                    logger.warning(
                        "Failed to delete chunks from %s: %s", pos.file_name(self.config.extension), e
                    )
                    causes.append(FailureCause(FailureKind.MUTATION, pos, e))
                else:
                    result.written.append(pos)
            failure = Failure.collect(
                Severity.ERROR, "Failed to delete chunks from some regions.", causes
            )

            # The edit is on disk now. The after-snapshot must be taken no
            # matter what happened above.
            try:
                taken, snap_failures = self.tracker.snapshot_state_no_fail(regions)
            except Exception as e:
                logger.warning("Snapshot after deleting chunks failed: %s", e)
                taken, snap_failures = False, [(None, e)]
            result.snapshot_taken = taken

            post = [FailureCause(FailureKind.POST_SNAPSHOT, pos, e) for pos, e in snap_failures]
            if post and failure is None:
                failure = Failure.collect(
                    Severity.WARNING,
                    "Failed to take a complete snapshot after deleting chunks. "
                    "The chunks HAVE been deleted.",
                    post,
                )
            elif post:
                for cause in post:
                    failure.add(cause)
            result.failure = failure
            self._check_budget()

            deleted = [chunk for pos in result.written for chunk in selection[pos]]
            result.notified = self._notifier.submit(self._notify_deleted, deleted)
        finally:
            self.lock.release()

        if result.failure is not None:
            logger.warning("%s", result.failure)
        return result

    def _notify_deleted(self, chunks: list[ChunkPos]):
        if self.world is None:
            return
        for chunk in chunks:
            self.world.reset_chunk(chunk)
            self.world.chunk_updated(chunk)
            self.world.chunk_deleted(chunk)

    # ── Undo / Redo ───────────────────────────────────────────────

    def undo(self, executor: Executor | None = None) -> Future | None:
        """Restore the regions recorded in the previous history entry.

        Returns None if there is nothing to undo or the world is locked.
        """
        return self._restore(OperationKind.UNDO, executor)

    def redo(self, executor: Executor | None = None) -> Future | None:
        """Re-apply the history entry after the cursor (an undone edit)."""
        return self._restore(OperationKind.REDO, executor)

    def can_undo(self) -> bool:
        return self.tracker.has_previous_state()

    def can_redo(self) -> bool:
        return self.tracker.has_next_state()

    def _restore(self, kind: OperationKind, executor: Executor | None) -> Future | None:
        if self._closed:
            raise RuntimeError("WorldState is closed")
        available = self.can_undo if kind is OperationKind.UNDO else self.can_redo
        if not available():
            logger.info("Nothing to %s", kind.value)
            return None
        if not self.lock.try_lock():
            logger.info("World %s is locked, not running %s", self.world_dir, kind.value)
            return None

        try:
            if not available():
                self.lock.release()
                return None
            if kind is OperationKind.UNDO:
                group = self.tracker.previous_state()
            else:
                group = self.tracker.next_state()

            pool = self._io_executor(executor)
            writes = {
                pos: pool.submit(state.write_state, self.region_path(pos))
                for pos, state in group.states.items()
            }
            return self._pipeline.submit(self._finish_restore, kind, writes)
        except BaseException:
            self.lock.release()
            raise

    def _finish_restore(self, kind: OperationKind, writes: dict[RegionPos, Future]):
        result = OperationResult(kind, regions=list(writes))
        try:
            causes = []
            for pos, future in writes.items():
                try:
                    future.result()
                except Exception as e:
                    logger.warning(
                        "Failed to restore %s during %s: %s",
                        pos.file_name(self.config.extension),
                        kind.value,
                        e,
                    )
                    causes.append(FailureCause(FailureKind.MUTATION, pos, e))
                else:
                    result.written.append(pos)
            result.failure = Failure.collect(
                Severity.ERROR, f"Failed to restore some regions during {kind.value}.", causes
            )
            result.notified = self._notifier.submit(self._notify_regions, list(result.written))
        finally:
            self.lock.release()
        return result

    def _notify_regions(self, regions: list[RegionPos]):
        if self.map_loader is None:
            return
        for pos in regions:
            self.map_loader.region_updated(pos)

    # ── Status / lifecycle ────────────────────────────────────────

    def status(self) -> dict:
        budget = compute_budget_status(self.tracker, self.budget)
        return {
            "world": str(self.world_dir),
            "history": self.tracker.state_count(),
            "current_index": self.tracker.current_index,
            "can_undo": self.can_undo(),
            "can_redo": self.can_redo(),
            "memory": budget.to_dict(),
        }

    def close(self):
        """Wait for in-flight work, drop history and temp files. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        self._pipeline.shutdown(wait=True)
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=True)
        if self._owns_notifier:
            self._notifier.shutdown(wait=True)
        self.tracker.remove_all_states()
        if self._owns_spill:
            self.spill.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
