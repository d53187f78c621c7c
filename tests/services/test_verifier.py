"""Tests for file-existence verification."""
import shutil
from pathlib import Path

from filetagger.services.database_manager import DatabaseManager


def test_missing_file_is_removed(manager: DatabaseManager, watched_dir: Path) -> None:
    """Test that a deleted file loses its record and associations."""
    manager.add_directory(watched_dir)
    manager.add_tag_to_file(watched_dir / "a.jpg", "photo")
    manager.add_tag_to_file(watched_dir / "b.jpg", "photo")
    manager.add_tag_to_file(watched_dir / "b.jpg", "Urgent")
    (watched_dir / "b.jpg").unlink()

    result = manager.verify_and_cleanup_tagged_files()

    assert result.total_checked == 2
    assert result.existing == 1
    assert result.missing_count == 1
    assert result.missing_files == [str(watched_dir / "b.jpg")]
    assert result.affected_tags == ["photo", "Urgent"]
    assert result.succeeded
    assert manager.get_tags_for_file(watched_dir / "b.jpg") == []

    tags = {info.name: info.total_usage_count for info in manager.get_all_available_tags()}
    assert tags == {"photo": 1}


def test_nothing_missing(manager: DatabaseManager, watched_dir: Path) -> None:
    """Test that a consistent store is left alone."""
    manager.add_directory(watched_dir)
    manager.add_tag_to_file(watched_dir / "docs" / "c.txt", "notes")

    result = manager.verify_and_cleanup_tagged_files()

    assert result.total_checked == 1
    assert result.missing_count == 0
    assert result.affected_tags == []


def test_unavailable_directory_is_reported(manager: DatabaseManager, tmp_path: Path, watched_dir: Path) -> None:
    """Test that records of a vanished directory root are kept and reported."""
    removable = tmp_path / "usb"
    removable.mkdir()
    (removable / "song.mp3").write_bytes(b"x")
    manager.add_directory(watched_dir)
    manager.add_directory(removable)
    manager.add_tag_to_file(removable / "song.mp3", "music")
    manager.add_tag_to_file(watched_dir / "a.jpg", "photo")
    shutil.rmtree(removable)

    result = manager.verify_and_cleanup_tagged_files()

    assert result.total_checked == 1
    assert result.missing_count == 0
    assert len(result.errors) == 1
    assert str(removable) in result.errors[0]
    assert "music" in manager.get_all_tag_names()


def test_verification_does_not_touch_satellites(
    manager: DatabaseManager, watched_dir: Path, satellite_reader
) -> None:
    """Test that satellites keep their records after verification."""
    manager.add_directory(watched_dir)
    manager.add_tag_to_file(watched_dir / "a.jpg", "photo")
    (watched_dir / "a.jpg").unlink()

    manager.verify_and_cleanup_tagged_files()

    snapshot = satellite_reader(watched_dir / ".filetagger")
    assert [f.relative_path for f in snapshot.files] == ["a.jpg"]
