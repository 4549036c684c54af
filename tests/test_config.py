"""Tests for configuration loading and validation."""
from pathlib import Path

import pytest
from pydantic import ValidationError as PydanticValidationError

from notura.config import _USER_ENV, NoturaConfig


class TestConfigDefaults:
    """Tests for default values and environment overrides."""

    def test_defaults(self, monkeypatch):
        for var in (
            "NOTURA_DATABASE_PATH", "NOTURA_IMAGES_DIR", "NOTURA_SEARCH_LIMIT",
            "NOTURA_HIGHLIGHT_WINDOW", "NOTURA_SNIPPET_TOKENS", "NOTURA_BUSY_TIMEOUT_MS",
        ):
            monkeypatch.delenv(var, raising=False)
        cfg = NoturaConfig()
        assert cfg.database_path == Path("data/notura.db")
        assert cfg.images_dir == Path("data/images")
        assert cfg.search_limit == 50
        assert cfg.highlight_window == 30
        assert cfg.snippet_tokens == 32
        assert cfg.busy_timeout_ms == 5000

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("NOTURA_SEARCH_LIMIT", "10")
        monkeypatch.setenv("NOTURA_DATABASE_PATH", "/tmp/other.db")
        cfg = NoturaConfig()
        assert cfg.search_limit == 10
        assert cfg.database_path == Path("/tmp/other.db")

    def test_metrics_file_default_and_override(self, monkeypatch, tmp_path):
        monkeypatch.delenv("NOTURA_METRICS_FILE", raising=False)
        assert NoturaConfig().metrics_file == Path.home() / ".notura" / "metrics.json"

        monkeypatch.setenv("NOTURA_METRICS_FILE", str(tmp_path / "m.json"))
        assert NoturaConfig().metrics_file == tmp_path / "m.json"

    def test_user_env_path(self):
        assert _USER_ENV == Path.home() / ".notura" / ".env"

    @pytest.mark.parametrize("field,value", [
        ("search_limit", 0),
        ("highlight_window", -1),
        ("snippet_tokens", 65),
        ("busy_timeout_ms", -5),
    ])
    def test_limits_validated(self, field, value):
        with pytest.raises(PydanticValidationError):
            NoturaConfig(**{field: value})


class TestConfigPaths:
    """Tests for path helpers."""

    def test_relative_paths_resolve_against_base_dir(self, tmp_path):
        cfg = NoturaConfig(base_dir=tmp_path, database_path=Path("db/x.db"))
        assert cfg.get_db_url() == f"sqlite:///{tmp_path / 'db' / 'x.db'}"
        assert (tmp_path / "db").is_dir()

    def test_absolute_path_kept(self, tmp_path):
        cfg = NoturaConfig(base_dir=Path("/elsewhere"))
        assert cfg.get_absolute_path(tmp_path) == tmp_path

    def test_images_dir_created(self, tmp_path):
        cfg = NoturaConfig(base_dir=tmp_path, images_dir=Path("pics"))
        assert cfg.get_images_dir() == tmp_path / "pics"
        assert (tmp_path / "pics").is_dir()
