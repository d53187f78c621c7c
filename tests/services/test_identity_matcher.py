"""Tests for identity matching and merging."""
from datetime import datetime, timedelta

import pytest

from filetagger.schemas import FileData, TagData
from filetagger.services.identity_matcher import (
    file_changed,
    file_key,
    identity_key,
    index_files,
    index_tags,
    match_file,
    match_tag,
    merge_file,
    merge_tag,
    tag_changed,
)

T0 = datetime(2024, 1, 1, 12, 0, 0)


def _tag(name: str, description: str = "", created: datetime = T0, used: datetime = T0, id: int = 1) -> TagData:
    return TagData(id=id, name=name, description=description, created_at=created, last_used_at=used)


def _file(path: str, size: int = 10, modified: datetime = T0, id: int = 1) -> FileData:
    return FileData(
        id=id,
        file_name=path.replace("\\", "/").rsplit("/", 1)[-1],
        relative_path=path,
        file_size=size,
        last_modified=modified,
        created_at=T0,
    )


def test_identity_key_is_case_insensitive() -> None:
    """Test that keys fold case, including non-ASCII letters."""
    assert identity_key("Work") == identity_key("WORK")
    assert identity_key("Straße") == identity_key("STRASSE")


def test_file_key_normalizes_separators() -> None:
    """Test that back slashes and forward slashes compare equal."""
    assert file_key("Sub\\A.jpg") == file_key("sub/a.JPG")


def test_match_tag() -> None:
    """Test matching a tag among candidates by name."""
    candidates = [_tag("photo", id=1), _tag("work", id=2)]

    assert match_tag(_tag("WORK", id=9), candidates).id == 2
    assert match_tag(_tag("missing", id=9), candidates) is None


def test_match_file() -> None:
    """Test matching a file among candidates by relative path."""
    candidates = [_file("a.jpg", id=1), _file("sub/b.jpg", id=2)]

    assert match_file(_file("SUB\\B.JPG", id=9), candidates).id == 2
    assert match_file(_file("c.jpg", id=9), candidates) is None


def test_index_helpers() -> None:
    """Test that indexes are keyed by identity key."""
    assert set(index_tags([_tag("Photo")])) == {"photo"}
    assert set(index_files([_file("Sub\\A.jpg")])) == {"sub/a.jpg"}


@pytest.mark.parametrize("offset", [-5, 0, 5])
def test_merge_tag_timestamps(offset: int) -> None:
    """Test that last_used_at is the later and created_at the earlier of both sides."""
    existing = _tag("work", created=T0, used=T0)
    incoming = _tag("Work", created=T0 + timedelta(days=offset), used=T0 + timedelta(days=offset), id=7)

    merged = merge_tag(existing, incoming)

    assert merged.last_used_at == max(existing.last_used_at, incoming.last_used_at)
    assert merged.created_at == min(existing.created_at, incoming.created_at)
    assert merged.id == existing.id
    assert merged.name == "work"


def test_merge_tag_adopts_incoming_spelling() -> None:
    """Test that the incoming name spelling replaces the existing one only on request."""
    existing = _tag("work")
    incoming = _tag("Work", id=7)

    assert merge_tag(existing, incoming).name == "work"
    assert not tag_changed(existing, merge_tag(existing, incoming))

    adopted = merge_tag(existing, incoming, adopt_name=True)
    assert adopted.name == "Work"
    assert adopted.id == existing.id
    assert tag_changed(existing, adopted)


def test_merge_tag_description_from_newer_side() -> None:
    """Test that the more recently used side provides the description."""
    existing = _tag("work", "old", used=T0)
    incoming = _tag("work", "new", used=T0 + timedelta(hours=1))

    assert merge_tag(existing, incoming).description == "new"
    assert merge_tag(incoming, existing).description == "new"


def test_merge_tag_description_tie() -> None:
    """Test that on a tie the existing description wins unless it is empty."""
    assert merge_tag(_tag("w", "mine"), _tag("w", "theirs")).description == "mine"
    assert merge_tag(_tag("w", ""), _tag("w", "theirs")).description == "theirs"


def test_merge_file_follows_newer_side() -> None:
    """Test that size and name come from the side modified last."""
    existing = _file("a.jpg", size=10, modified=T0)
    incoming = _file("A.JPG", size=99, modified=T0 + timedelta(minutes=1))

    merged = merge_file(existing, incoming)

    assert merged.last_modified == incoming.last_modified
    assert merged.file_size == 99
    assert merged.file_name == "A.JPG"
    assert merged.relative_path == "a.jpg"


def test_merge_file_keeps_newer_existing() -> None:
    """Test that an older incoming record changes nothing."""
    existing = _file("a.jpg", size=10, modified=T0 + timedelta(days=1))
    incoming = _file("a.jpg", size=99, modified=T0)

    assert not file_changed(existing, merge_file(existing, incoming))


def test_changed_helpers() -> None:
    """Test that identical merges require no write."""
    tag = _tag("work", "d")
    assert not tag_changed(tag, merge_tag(tag, tag.model_copy()))
    assert tag_changed(tag, merge_tag(tag, _tag("work", "d", used=T0 + timedelta(seconds=1))))
