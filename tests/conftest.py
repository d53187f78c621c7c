"""Pytest configuration and fixtures."""
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Generator, List, Optional

import pytest
from sqlalchemy.orm import Session

from filetagger import models  # noqa: F401
from filetagger.core.config import Settings
from filetagger.core.database import Base, create_sqlite_engine, dispose_engine, session_factory
from filetagger.repositories.record_store import RecordStore
from filetagger.schemas import StoreSnapshot
from filetagger.services.database_manager import DatabaseManager

SATELLITE_FILE_TIME = datetime(2024, 1, 1, 12, 0, 0)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with an isolated data folder and no release delay."""
    return Settings(
        DATA_DIR=tmp_path / "appdata",
        RELEASE_DELAY_SECONDS=0.0,
        DELETE_RETRY_ATTEMPTS=1,
    )


@pytest.fixture
def db(tmp_path: Path) -> Generator[Session, None, None]:
    """Session on a fresh store file."""
    engine = create_sqlite_engine(tmp_path / "models.db")
    Base.metadata.create_all(bind=engine)
    db = session_factory(engine)()
    try:
        yield db
    finally:
        db.close()
        dispose_engine(engine)


@pytest.fixture
def central(settings: Settings) -> Generator[RecordStore, None, None]:
    """Open central store."""
    store = RecordStore.open_central(settings)
    try:
        yield store
    finally:
        store.close()


@pytest.fixture
def manager(settings: Settings) -> DatabaseManager:
    return DatabaseManager(settings)


@pytest.fixture
def watched_dir(tmp_path: Path) -> Path:
    """Directory holding a.jpg, b.jpg and docs/c.txt."""
    directory = tmp_path / "photos"
    (directory / "docs").mkdir(parents=True)
    (directory / "a.jpg").write_bytes(b"a" * 10)
    (directory / "b.jpg").write_bytes(b"b" * 20)
    (directory / "docs" / "c.txt").write_text("notes")
    return directory


@pytest.fixture
def make_satellite(settings: Settings) -> Callable[..., Path]:
    """Factory writing a satellite store into a directory.

    ``files`` maps relative paths to tag names; ``tags`` maps tag names to
    descriptions (tags listed there but not in ``files`` stay unused).
    """

    def _make(
        directory: Path,
        files: Optional[Dict[str, List[str]]] = None,
        tags: Optional[Dict[str, str]] = None,
        location_name: Optional[str] = None,
    ) -> Path:
        location = Path(directory) / (location_name or settings.SATELLITE_DIR_NAME)
        with RecordStore.open_satellite(location, settings) as store:
            local = store.local_directory(str(directory))
            for name, description in (tags or {}).items():
                store.upsert_tag(local.id, name, description)
            for relative_path, names in (files or {}).items():
                record = store.upsert_file(local.id, relative_path, None, 10, SATELLITE_FILE_TIME)
                for name in names:
                    tag = store.upsert_tag(local.id, name)
                    store.link_file_tag(record.id, tag.id)
            store.commit()
        return location

    return _make


@pytest.fixture
def satellite_reader(settings: Settings) -> Callable[[Path], StoreSnapshot]:
    """Reads a satellite store completely, read-only."""

    def _read(location: Path) -> StoreSnapshot:
        with RecordStore.open_satellite(location, settings, read_only=True) as store:
            return store.snapshot()

    return _read
