import pytest

from dashboard.library import LibraryAdmin, TrackNotFoundError, format_duration, has_placeholder_durations
from shared.models import Album, TrackStatus
from conftest import make_track


@pytest.fixture
def library(store, storage):
    return LibraryAdmin(store, storage)


def test_format_duration():
    assert format_duration(0) == "0:00"
    assert format_duration(65) == "1:05"
    assert format_duration(180) == "3:00"
    assert format_duration(3600) == "60:00"
    assert format_duration(None) == "0:00"


def test_has_placeholder_durations():
    assert has_placeholder_durations([make_track(duration=200), make_track(duration=180)])
    assert not has_placeholder_durations([make_track(duration=200)])
    assert not has_placeholder_durations([])


def test_browse_filters(store, library):
    store.insert_track(make_track(title="Blue Train", artist="Coltrane", genre="Jazz"))
    store.insert_track(make_track(title="Paranoid", artist="Black Sabbath", genre="Rock",
                                  status=TrackStatus.INACTIVE))
    store.insert_track(make_track(title="So What", album="Kind of Blue", genre="Jazz",
                                  uploader_id="artist-2"))

    assert {t.title for t in library.browse(search="blue")} == {"Blue Train", "So What"}
    assert {t.title for t in library.browse(genre="Rock")} == {"Paranoid"}
    assert {t.title for t in library.browse(status="inactive")} == {"Paranoid"}
    assert {t.title for t in library.browse(uploader_id="artist-2")} == {"So What"}
    assert len(library.browse()) == 3


def test_browse_rejects_unknown_status(library):
    with pytest.raises(ValueError):
        library.browse(status="archived")


def test_browse_newest_first(store, library):
    first = make_track(title="Old", created_at="2024-01-01T00:00:00")
    second = make_track(title="New", created_at="2025-01-01T00:00:00")
    store.insert_track(first)
    store.insert_track(second)
    assert [t.title for t in library.browse()] == ["New", "Old"]


def test_edit_updates_fields(store, library):
    track = store.insert_track(make_track())
    updated = library.edit(track.id, {"title": "Renamed", "status": "draft", "is_public": False, "year": 2020})

    assert updated.title == "Renamed"
    assert updated.status == TrackStatus.DRAFT
    assert updated.is_public is False
    assert updated.year == 2020


def test_edit_rejects_protected_fields(store, library):
    track = store.insert_track(make_track())
    with pytest.raises(ValueError):
        library.edit(track.id, {"duration": 10})
    with pytest.raises(ValueError):
        library.edit(track.id, {"status": "archived"})


def test_edit_missing_track(library):
    with pytest.raises(TrackNotFoundError):
        library.edit("missing", {"title": "x"})


def test_delete_removes_row_and_audio(store, storage, library):
    storage.upload_bytes(b"abc", "123-song.mp3")
    track = store.insert_track(make_track(audio_url=storage.get_public_url("123-song.mp3")))

    deleted = library.delete(track.id, remove_audio=True)

    assert deleted.id == track.id
    assert store.get_track(track.id) is None
    assert not storage.file_exists("123-song.mp3")


def test_delete_keeps_audio_by_default(store, storage, library):
    storage.upload_bytes(b"abc", "keep.mp3")
    track = store.insert_track(make_track(audio_url="keep.mp3"))

    library.delete(track.id)
    assert storage.file_exists("keep.mp3")


def test_delete_missing_track(library):
    with pytest.raises(TrackNotFoundError):
        library.delete("missing")


def test_albums(store, library):
    store.insert_album(Album(id="b", title="Second", owner_id="artist-1"))
    store.insert_album(Album(id="a", title="First", owner_id="artist-1"))
    store.insert_album(Album(id="c", title="Theirs", owner_id="artist-2"))

    assert [a.title for a in library.albums("artist-1")] == ["First", "Second"]


def test_edit_rejects_track_id_in_changes(store, library):
    track = store.insert_track(make_track())
    with pytest.raises(ValueError):
        library.edit(track.id, {"track_id": "x"})
    assert store.get_track(track.id).title == "Untitled"


def test_stats_by_status(store, library):
    store.insert_track(make_track(status=TrackStatus.DRAFT))
    store.insert_track(make_track(status=TrackStatus.ACTIVE, uploader_id="artist-2"))
    assert library.stats() == {"tracks": 2, "active": 1, "inactive": 0, "draft": 1}
    assert library.stats("artist-2")["tracks"] == 1
