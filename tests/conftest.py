"""Common test fixtures for Notura Store."""

from pathlib import Path

import pytest

from notura.config import config
from notura.models.db_models import init_db
from notura.observability import metrics
from notura.services.notura_service import NoturaService
from notura.storage.collection_repository import CollectionRepository
from notura.storage.image_repository import ImageRepository
from notura.storage.note_repository import NoteRepository


@pytest.fixture
def test_config(tmp_path, monkeypatch):
    """Point config at a per-test directory (auto-restored even on crash)."""
    monkeypatch.setattr(config, "base_dir", tmp_path)
    monkeypatch.setattr(config, "database_path", Path("data") / "test_notura.db")
    monkeypatch.setattr(config, "images_dir", Path("data") / "images")
    yield config


@pytest.fixture
def engine(test_config):
    """Engine on a fresh database file, disposed after the test."""
    engine = init_db(test_config.get_db_url())
    yield engine
    engine.dispose()


@pytest.fixture
def images_dir(test_config) -> Path:
    return test_config.get_images_dir()


@pytest.fixture
def note_repository(engine):
    return NoteRepository(engine)


@pytest.fixture
def collection_repository(engine):
    return CollectionRepository(engine)


@pytest.fixture
def image_repository(engine, images_dir):
    return ImageRepository(engine, images_dir)


@pytest.fixture
def service(engine, images_dir):
    """A NoturaService over the per-test database."""
    metrics.reset()
    yield NoturaService(engine, images_dir=images_dir)
