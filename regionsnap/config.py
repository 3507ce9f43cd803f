"""
Editor Configuration

Per-world settings, read from ``<world>/regionsnap.json`` when present.
Every key is optional. Limits of 0 mean "use the default"; negative
limits are rejected.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from .region import DEFAULT_EXTENSION
from .serializable import Serializable

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "regionsnap.json"

# Bump when the config schema changes
CONFIG_VERSION = "0.1.0"

DEFAULT_MAX_WORKERS = 4
DEFAULT_MAX_MEMORY_BYTES = 256 * 1024 * 1024


@dataclass
class EditorConfig(Serializable):
    version: str = CONFIG_VERSION
    region_dir: str = "region"
    extension: str = DEFAULT_EXTENSION
    max_workers: int = 0
    max_memory_bytes: int = 0
    alert_threshold_pct: float = 80.0
    spill_dir: Path | None = None

    _skip_none = True

    def __post_init__(self):
        if self.max_workers < 0:
            raise ValueError(
                f"Invalid config: max_workers must be >= 0, got {self.max_workers}\n"
                f"  Use 0 for the default ({DEFAULT_MAX_WORKERS} workers)"
            )
        if self.max_memory_bytes < 0:
            raise ValueError(
                f"Invalid config: max_memory_bytes must be >= 0, got {self.max_memory_bytes}\n"
                f"  Use 0 for the default limit ({DEFAULT_MAX_MEMORY_BYTES} bytes)\n"
                f"  Set to very large value (e.g., 10**12) for effectively unlimited"
            )
        if not 0 < self.alert_threshold_pct <= 100:
            raise ValueError(
                f"Invalid config: alert_threshold_pct must be in (0, 100], "
                f"got {self.alert_threshold_pct}"
            )
        if not self.extension or "." in self.extension:
            raise ValueError(f"Invalid config: bad region file extension {self.extension!r}")

    @property
    def worker_count(self) -> int:
        return self.max_workers if self.max_workers > 0 else DEFAULT_MAX_WORKERS

    @property
    def memory_limit(self) -> int:
        return self.max_memory_bytes if self.max_memory_bytes > 0 else DEFAULT_MAX_MEMORY_BYTES


KNOWN_CONFIG_KEYS = frozenset(
    {
        "version",
        "region_dir",
        "extension",
        "max_workers",
        "max_memory_bytes",
        "alert_threshold_pct",
        "spill_dir",
    }
)


def validate_config(data: dict) -> None:
    """Check the config version and warn on unknown keys."""
    version = data.get("version")
    if version:
        if version > CONFIG_VERSION:
            raise ValueError(
                f"Config version {version} is newer than this version of "
                f"regionsnap ({CONFIG_VERSION}). Please upgrade to use this world."
            )
        if version < CONFIG_VERSION:
            logger.info("Config version %s is older than current %s", version, CONFIG_VERSION)

    unknown_keys = set(data.keys()) - KNOWN_CONFIG_KEYS
    if unknown_keys:
        logger.warning("Unknown config keys (ignored): %s", ", ".join(sorted(unknown_keys)))


def load_config(world_dir: Path) -> EditorConfig:
    """Load the config of a world, falling back to defaults when absent."""
    config_path = Path(world_dir) / CONFIG_FILE_NAME
    if not config_path.exists():
        return EditorConfig()
    try:
        data = json.loads(config_path.read_text())
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid config file {config_path}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Invalid config file {config_path}: expected a JSON object")
    validate_config(data)
    known = {k: v for k, v in data.items() if k in KNOWN_CONFIG_KEYS}
    return EditorConfig.from_dict(known)


def save_config(world_dir: Path, config: EditorConfig) -> Path:
    config_path = Path(world_dir) / CONFIG_FILE_NAME
    config_path.write_text(json.dumps(config.to_dict(), indent=2))
    return config_path
