"""Tests for Pull, Push, Cleanup and duplicate Merge."""
import shutil
from datetime import datetime
from pathlib import Path

import pytest

from filetagger.core.config import Settings
from filetagger.core.errors import StorageUnavailable
from filetagger.models.tag import Tag
from filetagger.repositories.record_store import RecordStore
from filetagger.services.database_manager import DatabaseManager


@pytest.fixture
def quiet_settings(settings: Settings) -> Settings:
    """Settings without the automatic push after tag changes."""
    return settings.model_copy(update={"SYNC_SATELLITE_ON_CHANGE": False})


def _tag_names(snapshot):
    return sorted(tag.name for tag in snapshot.tags)


def _files_with_tags(manager: DatabaseManager):
    return {item.file_name: sorted(item.tags) for item in manager.get_all_files_with_tags()}


# Pull

def test_add_directory_pulls_satellite(manager: DatabaseManager, watched_dir: Path, make_satellite) -> None:
    """Test that watching a directory imports its existing satellite."""
    make_satellite(watched_dir, files={"a.jpg": ["photo", "family"], "docs/c.txt": ["notes"]})

    result = manager.add_directory(watched_dir)

    assert result.found == 1
    assert result.pulled == 1
    assert result.tags_imported == 3
    assert result.files_imported == 2
    assert result.associations_imported == 3
    assert result.succeeded
    assert _files_with_tags(manager) == {"a.jpg": ["family", "photo"], "c.txt": ["notes"]}


def test_pull_is_idempotent(manager: DatabaseManager, watched_dir: Path, make_satellite) -> None:
    """Test that pulling unchanged satellites imports nothing the second time."""
    make_satellite(watched_dir, files={"a.jpg": ["photo"], "b.jpg": ["photo", "work"]})
    manager.add_directory(watched_dir)

    result = manager.pull_from_folder(watched_dir)

    assert result.pulled == 1
    assert result.tags_imported == 0
    assert result.tags_updated == 0
    assert result.files_imported == 0
    assert result.files_updated == 0
    assert result.associations_imported == 0


def test_pull_matches_tags_ignoring_case(
    quiet_settings: Settings, watched_dir: Path, make_satellite
) -> None:
    """Test that satellite tag Work and central tag work are the same tag."""
    manager = DatabaseManager(quiet_settings)
    manager.add_directory(watched_dir)
    manager.create_tag(watched_dir, "work")
    make_satellite(watched_dir, files={"a.jpg": ["Work"]})

    result = manager.pull_from_folder(watched_dir)

    assert result.tags_imported == 0
    assert result.associations_imported == 1
    assert manager.get_all_tag_names() == ["work"]


def test_pull_continues_past_unreadable_satellite(
    manager: DatabaseManager, watched_dir: Path, make_satellite
) -> None:
    """Test that one corrupt satellite is reported and the others are still imported."""
    make_satellite(watched_dir, files={"a.jpg": ["photo"]})
    broken = watched_dir / ".filetagger (1)"
    broken.mkdir()
    (broken / "tags.db").write_bytes(b"definitely not an sqlite database" * 10)

    result = manager.add_directory(watched_dir)

    assert result.found == 2
    assert result.pulled == 1
    assert result.tags_imported == 1
    assert len(result.errors) == 1
    assert ".filetagger (1)" in result.errors[0]


def test_pull_unwatched_directory(manager: DatabaseManager, watched_dir: Path, make_satellite) -> None:
    """Test that pulling a path that is not watched imports nothing."""
    make_satellite(watched_dir, files={"a.jpg": ["photo"]})

    result = manager.pull_from_folder(watched_dir)

    assert result.pulled == 0
    assert not result.succeeded
    assert manager.get_all_tag_names() == []


def test_pull_all_folders(manager: DatabaseManager, tmp_path: Path, make_satellite) -> None:
    """Test that every active directory is pulled."""
    first = tmp_path / "first"
    second = tmp_path / "second"
    first.mkdir()
    second.mkdir()
    manager.add_directory(first)
    manager.add_directory(second)
    make_satellite(first, tags={"one": ""})
    make_satellite(second, tags={"two": ""})

    results = manager.pull_all_folders()

    assert [r.tags_imported for r in results] == [1, 1]
    assert manager.get_all_tag_names() == ["one", "two"]


def _write_raw_tags(location: Path, directory: Path, settings: Settings, tagged: dict) -> None:
    """Write tags verbatim, bypassing name validation, each on its own file."""
    written = datetime(2024, 1, 1)
    with RecordStore.open_satellite(location, settings) as store:
        local = store.local_directory(str(directory))
        for relative_path, name in tagged.items():
            record = store.upsert_file(local.id, relative_path, None, 10, written)
            tag = store.tags.create(
                Tag(directory_id=local.id, name=name, created_at=written, last_used_at=written)
            )
            store.link_file_tag(record.id, tag.id)
        store.commit()


def test_pull_strips_padded_tag_names(settings: Settings, manager: DatabaseManager, watched_dir: Path) -> None:
    """Test that a satellite tag with surrounding spaces matches on every pull."""
    _write_raw_tags(watched_dir / ".filetagger", watched_dir, settings, {"a.jpg": " Work "})

    first = manager.add_directory(watched_dir)
    second = manager.pull_from_folder(watched_dir)

    assert first.tags_imported == 1
    assert second.succeeded
    assert second.pulled == 1
    assert second.tags_imported == 0
    assert manager.get_all_tag_names() == ["Work"]


def test_pull_skips_blank_tag_name(settings: Settings, manager: DatabaseManager, watched_dir: Path) -> None:
    """Test that one unusable tag name is reported while the rest is imported."""
    _write_raw_tags(watched_dir / ".filetagger", watched_dir, settings, {"a.jpg": "   ", "b.jpg": "photo"})

    result = manager.add_directory(watched_dir)

    assert result.pulled == 1
    assert result.tags_imported == 1
    assert result.associations_imported == 1
    assert len(result.errors) == 1
    assert "Skipped tag" in result.errors[0]
    assert _files_with_tags(manager) == {"b.jpg": ["photo"]}


# Push

def test_push_creates_canonical_satellite(
    quiet_settings: Settings, watched_dir: Path, satellite_reader
) -> None:
    """Test that pushing writes the directory's records into a new satellite."""
    manager = DatabaseManager(quiet_settings)
    manager.add_directory(watched_dir)
    manager.add_tag_to_file(watched_dir / "a.jpg", "photo", "Pictures")
    assert not (watched_dir / ".filetagger").exists()

    result = manager.push_to_folder(watched_dir)

    assert result.tags_exported == 1
    assert result.files_exported == 1
    assert result.associations_exported == 1
    snapshot = satellite_reader(watched_dir / ".filetagger")
    assert _tag_names(snapshot) == ["photo"]
    assert snapshot.tags[0].description == "Pictures"
    assert [d.path for d in snapshot.directories] == [str(watched_dir)]


def test_push_then_pull_round_trip(manager: DatabaseManager, watched_dir: Path, satellite_reader) -> None:
    """Test that a freshly pushed satellite pulls back without new associations."""
    manager.add_directory(watched_dir)
    manager.add_tag_to_file(watched_dir / "a.jpg", "photo")
    manager.add_tag_to_file(watched_dir / "b.jpg", "work")
    shutil.rmtree(watched_dir / ".filetagger")

    manager.push_to_folder(watched_dir)
    result = manager.pull_from_folder(watched_dir)

    assert _tag_names(satellite_reader(watched_dir / ".filetagger")) == ["photo", "work"]
    assert result.tags_imported == 0
    assert result.associations_imported == 0
    assert manager.get_all_tag_names() == ["photo", "work"]


def test_push_keeps_satellite_only_data(
    manager: DatabaseManager, watched_dir: Path, make_satellite, satellite_reader
) -> None:
    """Test that push never removes satellite records by default."""
    manager.add_directory(watched_dir)
    make_satellite(watched_dir, files={"b.jpg": ["extra"]})

    result = manager.push_to_folder(watched_dir)

    assert result.tags_pruned == 0
    assert _tag_names(satellite_reader(watched_dir / ".filetagger")) == ["extra"]


def test_push_prunes_when_enabled(
    settings: Settings, watched_dir: Path, make_satellite, satellite_reader
) -> None:
    """Test that PUSH_PRUNES_SATELLITE removes satellite-only records."""
    manager = DatabaseManager(
        settings.model_copy(update={"PUSH_PRUNES_SATELLITE": True, "SYNC_SATELLITE_ON_CHANGE": False})
    )
    manager.add_directory(watched_dir)
    manager.add_tag_to_file(watched_dir / "a.jpg", "photo")
    make_satellite(watched_dir, files={"b.jpg": ["extra"]})

    result = manager.push_to_folder(watched_dir)

    assert result.tags_exported == 1
    assert result.tags_pruned == 1
    assert result.files_pruned == 1
    assert result.associations_pruned == 1
    snapshot = satellite_reader(watched_dir / ".filetagger")
    assert _tag_names(snapshot) == ["photo"]
    assert [f.relative_path for f in snapshot.files] == ["a.jpg"]


def test_push_carries_case_of_central_names(
    quiet_settings: Settings, watched_dir: Path, make_satellite, satellite_reader
) -> None:
    """Test that push rewrites a satellite tag whose name differs only in case."""
    manager = DatabaseManager(quiet_settings)
    manager.add_directory(watched_dir)
    make_satellite(watched_dir, files={"a.jpg": ["work"]})
    manager.pull_from_folder(watched_dir)
    manager.rename_tag("work", "Work")

    result = manager.push_to_folder(watched_dir)

    assert result.tags_updated == 1
    assert [t.name for t in satellite_reader(watched_dir / ".filetagger").tags] == ["Work"]


def test_push_unopenable_satellite_raises(manager: DatabaseManager, watched_dir: Path) -> None:
    """Test that a satellite that cannot be created raises StorageUnavailable."""
    manager.add_directory(watched_dir)
    (watched_dir / ".filetagger").write_text("a file where the satellite folder should be")

    with pytest.raises(StorageUnavailable):
        manager.push_to_folder(watched_dir)

    results = manager.push_all_folders()
    assert len(results) == 1
    assert len(results[0].errors) == 1


# Cleanup

def test_cleanup_leaves_one_fresh_satellite(
    manager: DatabaseManager, watched_dir: Path, make_satellite, satellite_reader
) -> None:
    """Test that cleanup pulls everything, removes all satellites and pushes one."""
    manager.add_directory(watched_dir)
    make_satellite(watched_dir, files={"a.jpg": ["photo"]})
    make_satellite(watched_dir, files={"b.jpg": ["urgent"]}, location_name=".filetagger (1)")

    result = manager.cleanup_folder(watched_dir)

    assert result.succeeded
    assert result.pull_result.pulled == 2
    assert result.directories_deleted == 2
    assert result.push_result.tags_exported == 2
    assert not (watched_dir / ".filetagger (1)").exists()
    assert _tag_names(satellite_reader(watched_dir / ".filetagger")) == ["photo", "urgent"]
    assert _files_with_tags(manager) == {"a.jpg": ["photo"], "b.jpg": ["urgent"]}


def test_cleanup_reports_push_failure(manager: DatabaseManager, watched_dir: Path) -> None:
    """Test that a failing push is recorded instead of raised."""
    manager.add_directory(watched_dir)
    (watched_dir / ".filetagger").write_text("blocked")

    result = manager.cleanup_folder(watched_dir)

    assert result.push_result is None
    assert len(result.errors) == 1
    assert ".filetagger" in result.errors[0]


# Merge

def test_merge_duplicates_scenario(manager: DatabaseManager, watched_dir: Path, make_satellite) -> None:
    """Test folding a sync-conflict copy of the satellite into the central store."""
    manager.add_directory(watched_dir)
    base = make_satellite(watched_dir, files={"a.jpg": ["photo"]})
    duplicate = make_satellite(
        watched_dir, files={"b.jpg": ["photo"], "a.jpg": ["urgent"]}, location_name=".filetagger (1)"
    )

    result = manager.merge_all_duplicate_databases()

    assert result.succeeded
    assert result.directories_with_duplicates == 1
    assert result.duplicate_databases_found == 1
    assert result.duplicate_databases_deleted == 1
    assert result.tags_merged >= 2
    assert result.associations_merged == 3
    assert base.exists()
    assert not duplicate.exists()
    assert manager.get_all_tag_names() == ["photo", "urgent"]
    assert _files_with_tags(manager) == {"a.jpg": ["photo", "urgent"], "b.jpg": ["photo"]}


def test_merge_without_canonical_pushes_fresh_satellite(
    manager: DatabaseManager, watched_dir: Path, make_satellite, satellite_reader
) -> None:
    """Test that a directory left with only duplicates gets a canonical satellite."""
    manager.add_directory(watched_dir)
    duplicate = make_satellite(watched_dir, files={"a.jpg": ["photo"]}, location_name=".filetagger_2")

    result = manager.merge_all_duplicate_databases()

    assert result.duplicate_databases_deleted == 1
    assert not duplicate.exists()
    assert _tag_names(satellite_reader(watched_dir / ".filetagger")) == ["photo"]


def test_merge_without_duplicates_does_nothing(
    manager: DatabaseManager, watched_dir: Path, make_satellite
) -> None:
    """Test that directories without duplicates are left untouched."""
    manager.add_directory(watched_dir)
    base = make_satellite(watched_dir, files={"a.jpg": ["photo"]})

    result = manager.merge_all_duplicate_databases()

    assert result.directories_with_duplicates == 0
    assert result.duplicate_databases_found == 0
    assert base.exists()


def test_initialize_pulls_changes_made_while_closed(
    settings: Settings, watched_dir: Path, make_satellite
) -> None:
    """Test that startup imports satellites written by another machine."""
    DatabaseManager(settings).add_directory(watched_dir)
    make_satellite(watched_dir, files={"a.jpg": ["photo"]})

    manager = DatabaseManager(settings)
    [result] = manager.initialize()

    assert result.tags_imported == 1
    assert manager.get_all_tag_names() == ["photo"]
