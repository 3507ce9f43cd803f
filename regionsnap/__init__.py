"""
regionsnap — Undoable edits for region files

Deletes chunks from region-file worlds by clearing their lookup table
entries, and keeps a linear undo/redo history of the affected files.
History stores only the lookup table when that is all that changed,
and whole files otherwise.
"""

__version__ = "0.1.0"

__all__ = [
    # Region files
    "RegionPos",
    "ChunkPos",
    "HEADER_SIZE_BYTES",
    "CorruptRegionError",
    # States and history
    "InternalState",
    "ExternalState",
    "StateGroup",
    "StateTracker",
    "ReleasedStateError",
    # Orchestration
    "WorldState",
    "WorldLock",
    "OperationResult",
    "OperationKind",
    "Failure",
    "OperationFailedError",
    # Configuration
    "EditorConfig",
    "load_config",
]


# Lazy imports, resolved on first access
def __getattr__(name):
    if name in ("RegionPos", "ChunkPos", "HEADER_SIZE_BYTES", "CorruptRegionError"):
        from . import region

        return getattr(region, name)
    if name in ("InternalState", "ExternalState"):
        from .state import ExternalState, InternalState

        return InternalState if name == "InternalState" else ExternalState
    if name in ("StateGroup", "StateTracker"):
        from .tracker import StateGroup, StateTracker

        return StateGroup if name == "StateGroup" else StateTracker
    if name in ("ReleasedStateError", "Failure", "OperationFailedError"):
        from . import errors

        return getattr(errors, name)
    if name in ("WorldState", "OperationResult", "OperationKind"):
        from . import world

        return getattr(world, name)
    if name == "WorldLock":
        from .lock import WorldLock

        return WorldLock
    if name in ("EditorConfig", "load_config"):
        from . import config

        return getattr(config, name)
    raise AttributeError(f"module 'regionsnap' has no attribute {name!r}")
