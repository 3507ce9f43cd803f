"""
State Tracker

Linear undo history for a world's region files.

Each entry is a StateGroup: the states of a set of regions captured at
one moment. The tracker keeps the groups in order plus a cursor to the
group that describes "now". Undo/redo move the cursor; taking a new
snapshot while the cursor is not at the end throws away the redo tail,
like any linear undo stack.

Snapshots are diffed against history to keep memory bounded. For every
region we look back from the cursor for the most recent state of any
kind and the most recent whole-file state:

    payload unchanged, table unchanged  -> nothing new for this region
    payload unchanged, table changed    -> keep only the table
    anything else                       -> keep the whole file

If no region changed at all, no group is recorded.
"""

import logging
from pathlib import Path
from types import MappingProxyType

from .region import DEFAULT_EXTENSION, HEADER_SIZE_BYTES, RegionPos
from .state import ExternalState, State

logger = logging.getLogger(__name__)


class StateGroup:
    """The states of a set of regions at one moment in history."""

    def __init__(self):
        self._states: dict[RegionPos, State] = {}
        self._has_external = False

    def put(self, pos: RegionPos, state: State):
        self._states[pos] = state
        if not state.is_internal:
            self._has_external = True

    def get(self, pos: RegionPos) -> State | None:
        return self._states.get(pos)

    def has_external(self) -> bool:
        return self._has_external

    @property
    def states(self) -> MappingProxyType:
        return MappingProxyType(self._states)

    def size(self) -> int:
        return sum(state.size() for state in self._states.values())

    def on_disk_size(self) -> int:
        return sum(state.on_disk_size() for state in self._states.values())

    def release(self):
        for state in self._states.values():
            state.release()

    def __contains__(self, pos) -> bool:
        return pos in self._states

    def __len__(self) -> int:
        return len(self._states)

    def __repr__(self) -> str:
        internal = sum(1 for s in self._states.values() if s.is_internal)
        return f"StateGroup(regions={len(self._states)}, internal={internal})"


class StateTracker:
    """Ordered history of StateGroups with a cursor."""

    NO_STATE = -1

    def __init__(self, region_dir: Path, extension: str = DEFAULT_EXTENSION):
        self.region_dir = Path(region_dir)
        self.extension = extension
        self._states: list[StateGroup] = []
        self._current = self.NO_STATE

    def region_path(self, pos: RegionPos) -> Path:
        return self.region_dir / pos.file_name(self.extension)

    @property
    def current_index(self) -> int:
        return self._current

    # ── History lookups ───────────────────────────────────────────

    def _find_previous(self, pos: RegionPos) -> State | None:
        """Most recent state of ``pos`` at or before the cursor."""
        for i in range(self._current, -1, -1):
            state = self._states[i].get(pos)
            if state is not None:
                return state
        return None

    def _find_previous_external(self, pos: RegionPos) -> ExternalState | None:
        """Most recent whole-file state of ``pos`` at or before the cursor."""
        for i in range(self._current, -1, -1):
            state = self._states[i].get(pos)
            if state is not None and not state.is_internal:
                return state
        return None

    # ── Capture ───────────────────────────────────────────────────

    def _capture_region(self, pos: RegionPos) -> tuple[State, bool]:
        """Capture one region; returns (state, differs_from_history)."""
        new_state = ExternalState.capture(self.region_path(pos))
        if self._current == self.NO_STATE:
            return new_state, True

        previous_any = self._find_previous(pos)
        previous_external = self._find_previous_external(pos)
        if previous_any is None or previous_external is None:
            return new_state, True

        try:
            if not previous_external.data_matches(new_state):
                return new_state, True
            if previous_any.header_matches(new_state):
                return new_state, False
            if new_state.length < HEADER_SIZE_BYTES:
                return new_state, True
            # Only the table moved: the baseline already holds the payload.
            internal = new_state.as_internal()
        except Exception:
            new_state.release()
            raise
        new_state.release()
        return internal, True

    def _snapshot(self, positions, no_fail: bool = False):
        """Build a group for ``positions``.

        Returns (group or None when nothing differs, failures). With
        ``no_fail`` per-region errors are collected and the region left
        out; otherwise the first error is raised and nothing is kept.
        """
        group = StateGroup()
        failures: list[tuple[RegionPos, OSError]] = []
        any_differ = False
        for pos in positions:
            try:
                state, differs = self._capture_region(pos)
            except OSError as e:
                if not no_fail:
                    group.release()
                    raise
                logger.warning("Failed to snapshot region %s: %s", pos.file_name(self.extension), e)
                failures.append((pos, e))
                continue
            group.put(pos, state)
            any_differ = any_differ or differs

        if not any_differ:
            group.release()
            return None, failures
        return group, failures

    def _append(self, group: StateGroup):
        self.remove_future_states()
        self._states.append(group)
        self._current = len(self._states) - 1
        logger.debug("Recorded %r at index %d", group, self._current)

    def snapshot_state(self, positions) -> bool:
        """Record the current disk state of ``positions`` as a new history entry.

        Returns True if a snapshot was taken (something differed from
        history). Raises OSError if any region cannot be read; history is
        unchanged in that case.
        """
        group, _ = self._snapshot(list(positions))
        if group is None:
            return False
        self._append(group)
        return True

    def snapshot_state_no_fail(self, positions) -> tuple[bool, list[tuple[RegionPos, OSError]]]:
        """Like snapshot_state, but unreadable regions are skipped and reported.

        Returns (snapshot_taken, [(region, error), ...]).
        """
        group, failures = self._snapshot(list(positions), no_fail=True)
        if group is None:
            return False, failures
        self._append(group)
        return True, failures

    def snapshot_current_state(self, positions=None) -> bool:
        """Re-take the current entry in place.

        Used right before a new edit so that changes made to the world
        since the last recorded state are part of what undo restores.
        ``positions`` defaults to the regions of the current entry. Regions
        of the current entry outside ``positions`` are carried over as is.
        Returns True if the entry was replaced.
        """
        if self._current == self.NO_STATE:
            return False
        if positions is None:
            positions = list(self._states[self._current].states.keys())

        group, _ = self._snapshot(list(positions))
        if group is None:
            return False

        self.remove_future_states()
        replaced = self._states[self._current]
        for pos, state in replaced.states.items():
            if pos in group:
                state.release()
            else:
                group.put(pos, state)
        self._states[self._current] = group
        logger.debug("Replaced entry %d with %r", self._current, group)
        return True

    # ── Navigation ────────────────────────────────────────────────

    def has_state(self) -> bool:
        return self._current != self.NO_STATE

    def current_state(self) -> StateGroup:
        if self._current == self.NO_STATE:
            raise LookupError("Tried to get current state when none exists")
        return self._states[self._current]

    def has_previous_state(self) -> bool:
        return self._current > 0

    def previous_state(self) -> StateGroup:
        if not self.has_previous_state():
            raise IndexError("Tried to get previous state when none exists")
        self._current -= 1
        return self._states[self._current]

    def has_next_state(self) -> bool:
        return self._current + 1 < len(self._states)

    def next_state(self) -> StateGroup:
        if not self.has_next_state():
            raise IndexError("Tried to get next state when none exists")
        self._current += 1
        return self._states[self._current]

    # ── Maintenance ───────────────────────────────────────────────

    def remove_future_states(self):
        """Drop every entry after the cursor."""
        if self._current == self.NO_STATE:
            return
        future = self._states[self._current + 1:]
        del self._states[self._current + 1:]
        for group in future:
            group.release()
        if future:
            logger.debug("Discarded %d redo entries", len(future))

    def state_count(self) -> int:
        return len(self._states)

    def remove_all_states(self):
        states = self._states
        self._states = []
        self._current = self.NO_STATE
        for group in states:
            group.release()

    def groups(self) -> tuple[StateGroup, ...]:
        """All entries, oldest first."""
        return tuple(self._states)

    def total_bytes(self) -> int:
        """Bytes of state held in memory."""
        return sum(group.size() for group in self._states)

    def total_on_disk_bytes(self) -> int:
        return sum(group.on_disk_size() for group in self._states)
