"""
Memory Budgets

How much undo history may sit in memory. Whole-file states can be
several megabytes each, so once the in-memory total crosses the limit
the oldest ones are moved to temp files. Table-only states are small and
always stay in memory.
"""

import logging
from dataclasses import dataclass, field

from .serializable import Serializable
from .spill import SpillStore

logger = logging.getLogger(__name__)


@dataclass
class BudgetConfig(Serializable):
    """Memory limit for one tracker's history."""

    max_memory_bytes: int
    alert_threshold_pct: float = 80.0


@dataclass
class BudgetStatus(Serializable):
    """Current memory usage and status."""

    config: BudgetConfig
    memory_bytes: int = 0
    on_disk_bytes: int = 0
    state_count: int = 0
    warnings: list = field(default_factory=list)
    exceeded: bool = False


def compute_budget_status(tracker, config: BudgetConfig) -> BudgetStatus:
    memory = tracker.total_bytes()
    status = BudgetStatus(
        config=config,
        memory_bytes=memory,
        on_disk_bytes=tracker.total_on_disk_bytes(),
        state_count=tracker.state_count(),
    )
    limit = config.max_memory_bytes
    if memory > limit:
        status.exceeded = True
    elif memory * 100 >= limit * config.alert_threshold_pct:
        pct = memory * 100 / limit if limit else 100.0
        status.warnings.append(f"history memory at {pct:.0f}% of {limit} bytes")
    return status


def enforce_budget(tracker, config: BudgetConfig, spill: SpillStore) -> int:
    """Spill whole-file states to disk, oldest first, until within the limit.

    Returns the number of states spilled. States that fail to spill stay
    in memory (the failure is logged by the state), so the result may
    still be over the limit.
    """
    memory = tracker.total_bytes()
    if memory <= config.max_memory_bytes:
        return 0

    spilled = 0
    candidates = [
        state
        for group in tracker.groups()
        for state in group.states.values()
        if not state.is_internal and state.size() > 0
    ]
    for state in candidates:
        if memory <= config.max_memory_bytes:
            break
        before = state.size()
        state.allow_to_disk(spill)
        if state.size() == 0:
            memory -= before
            spilled += 1

    logger.debug(
        "Spilled %d states; history now %d bytes in memory (limit %d)",
        spilled,
        memory,
        config.max_memory_bytes,
    )
    return spilled
