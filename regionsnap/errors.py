"""
Errors

Failures fall in two groups:

- Before anything is written (lock contention, an unreadable region
  during the snapshot taken before an edit), the operation simply does
  not start. Nothing on disk changed, so the caller gets ``None`` and a
  log line.
- Once the destructive write has begun, the operation always runs to
  the end. Per-region problems are collected into a single Failure
  (one primary error plus the rest as secondary causes) and attached to
  the completed operation's result, so the fact that data changed on
  disk is never hidden behind an error.
"""

from dataclasses import dataclass, field
from enum import Enum

from .region import CorruptRegionError, RegionPos

__all__ = [
    "CorruptRegionError",
    "Failure",
    "FailureCause",
    "FailureKind",
    "OperationFailedError",
    "ReleasedStateError",
    "Severity",
]


class ReleasedStateError(OSError):
    """Raised when the content of a released state is accessed."""


class Severity(Enum):
    ERROR = "error"  # The edit itself did not fully apply
    WARNING = "warning"  # The edit applied; bookkeeping afterwards was incomplete


class FailureKind(Enum):
    MUTATION = "mutation"  # Writing a region during delete/undo/redo
    POST_SNAPSHOT = "post_snapshot"  # Recording the after-state


@dataclass
class FailureCause:
    kind: FailureKind
    region: RegionPos | None
    error: BaseException

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "region": None if self.region is None else [self.region.x, self.region.z],
            "error": f"{type(self.error).__name__}: {self.error}",
        }


@dataclass
class Failure:
    """A primary failure with its secondary causes, in the order they occurred."""

    severity: Severity
    message: str
    primary: FailureCause
    secondary: list[FailureCause] = field(default_factory=list)

    @classmethod
    def collect(
        cls, severity: Severity, message: str, causes: list[FailureCause]
    ) -> "Failure | None":
        """Build a Failure from collected causes; None when there are none."""
        if not causes:
            return None
        return cls(severity=severity, message=message, primary=causes[0], secondary=causes[1:])

    def add(self, cause: FailureCause):
        self.secondary.append(cause)

    def causes(self) -> list[FailureCause]:
        return [self.primary, *self.secondary]

    def errors(self) -> list[BaseException]:
        return [c.error for c in self.causes()]

    def to_dict(self) -> dict:
        return {
            "severity": self.severity.value,
            "message": self.message,
            "causes": [c.to_dict() for c in self.causes()],
        }

    def __str__(self) -> str:
        lines = [self.message]
        for cause in self.causes():
            where = "" if cause.region is None else f" r.{cause.region.x}.{cause.region.z}"
            lines.append(f"  [{cause.kind.value}]{where}: {cause.error}")
        return "\n".join(lines)


class OperationFailedError(Exception):
    """Raised by ``OperationResult.raise_for_failure()``."""

    def __init__(self, failure: Failure):
        super().__init__(str(failure))
        self.failure = failure
