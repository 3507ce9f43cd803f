"""EditorConfig loading and validation."""

import json
import logging

import pytest

from regionsnap.config import (
    CONFIG_FILE_NAME,
    DEFAULT_MAX_MEMORY_BYTES,
    DEFAULT_MAX_WORKERS,
    EditorConfig,
    load_config,
    save_config,
)


class TestDefaults:
    def test_missing_file_gives_defaults(self, world_dir):
        config = load_config(world_dir)
        assert config == EditorConfig()
        assert config.region_dir == "region"
        assert config.extension == "mca"
        assert config.worker_count == DEFAULT_MAX_WORKERS
        assert config.memory_limit == DEFAULT_MAX_MEMORY_BYTES

    def test_explicit_limits(self):
        config = EditorConfig(max_workers=2, max_memory_bytes=1024)
        assert config.worker_count == 2
        assert config.memory_limit == 1024


class TestValidation:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_workers": -1},
            {"max_memory_bytes": -5},
            {"alert_threshold_pct": 0},
            {"alert_threshold_pct": 150},
            {"extension": ""},
            {"extension": ".mca"},
        ],
    )
    def test_rejects_bad_values(self, kwargs):
        with pytest.raises(ValueError, match="Invalid config"):
            EditorConfig(**kwargs)

    def test_newer_version_rejected(self, world_dir):
        (world_dir / CONFIG_FILE_NAME).write_text(json.dumps({"version": "9.0.0"}))
        with pytest.raises(ValueError, match="newer"):
            load_config(world_dir)

    def test_unknown_keys_warned_and_ignored(self, world_dir, caplog):
        (world_dir / CONFIG_FILE_NAME).write_text(
            json.dumps({"max_workers": 3, "colour": "blue"})
        )
        with caplog.at_level(logging.WARNING, logger="regionsnap.config"):
            config = load_config(world_dir)
        assert config.max_workers == 3
        assert "colour" in caplog.text

    def test_invalid_json(self, world_dir):
        (world_dir / CONFIG_FILE_NAME).write_text("{not json")
        with pytest.raises(ValueError, match="Invalid config file"):
            load_config(world_dir)

    def test_non_object(self, world_dir):
        (world_dir / CONFIG_FILE_NAME).write_text("[1, 2]")
        with pytest.raises(ValueError, match="JSON object"):
            load_config(world_dir)


class TestRoundTrip:
    def test_save_then_load(self, world_dir, tmp_path):
        config = EditorConfig(region_dir="DIM-1/region", max_workers=8, spill_dir=tmp_path / "spill")
        path = save_config(world_dir, config)
        assert path.name == CONFIG_FILE_NAME
        assert "spill_dir" in json.loads(path.read_text())

        assert load_config(world_dir) == config

    def test_none_fields_omitted(self, world_dir):
        path = save_config(world_dir, EditorConfig())
        assert "spill_dir" not in json.loads(path.read_text())
