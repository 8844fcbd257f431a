import pytest
from click.testing import CliRunner

from dashboard.cli import cli
from shared.database import TrackStore
from shared.models import Album, TrackStatus
from conftest import make_track


@pytest.fixture
def env(tmp_path, monkeypatch):
    monkeypatch.setenv("MELODIA_CONFIG_DIR", str(tmp_path / "conf"))
    monkeypatch.setenv("MELODIA_DB_PATH", str(tmp_path / "tracks.db"))
    monkeypatch.setenv("MELODIA_STORAGE_PATH", str(tmp_path / "storage"))
    monkeypatch.delenv("MELODIA_BUCKET", raising=False)
    monkeypatch.delenv("MELODIA_PUBLIC_BASE_URL", raising=False)
    return tmp_path


@pytest.fixture
def runner():
    return CliRunner()


def test_init_local(runner, env):
    result = runner.invoke(cli, ['init', '--storage-path', str(env / "storage"),
                                 '--db-path', str(env / "tracks.db")])
    assert result.exit_code == 0, result.output
    assert "Configuration saved" in result.output
    assert (env / "conf" / "config.json").exists()


def test_tracks_empty(runner, env):
    result = runner.invoke(cli, ['tracks'])
    assert result.exit_code == 0, result.output
    assert "No tracks found" in result.output


def test_tracks_lists_and_hints_placeholder(runner, env):
    store = TrackStore(str(env / "tracks.db"))
    store.insert_track(make_track(title="Waiting", duration=180))

    result = runner.invoke(cli, ['tracks'])
    assert result.exit_code == 0, result.output
    assert "Waiting" in result.output
    assert "3:00" in result.output
    assert "fix-durations" in result.output


def test_tracks_summary_counts_statuses(runner, env):
    store = TrackStore(str(env / "tracks.db"))
    store.insert_track(make_track(title="Live", duration=200, status=TrackStatus.ACTIVE))
    store.insert_track(make_track(title="Hidden", duration=200, status=TrackStatus.INACTIVE))
    store.insert_track(make_track(title="Unfinished", duration=200, status=TrackStatus.DRAFT))

    result = runner.invoke(cli, ['tracks', '--status', 'draft'])
    assert result.exit_code == 0, result.output
    assert "1 track(s) shown" in result.output
    assert "3 total" in result.output
    assert "1 active" in result.output
    assert "1 draft" in result.output
    assert "1 inactive" in result.output


def test_edit_by_short_id(runner, env):
    store = TrackStore(str(env / "tracks.db"))
    track = store.insert_track(make_track(title="Before"))

    result = runner.invoke(cli, ['edit', track.id[:8], '--title', 'After', '--private'])
    assert result.exit_code == 0, result.output
    updated = store.get_track(track.id)
    assert updated.title == "After"
    assert updated.is_public is False


def test_edit_unknown_track(runner, env):
    result = runner.invoke(cli, ['edit', 'deadbeef', '--title', 'x'])
    assert "Track not found" in result.output


def test_delete_with_yes(runner, env):
    store = TrackStore(str(env / "tracks.db"))
    track = store.insert_track(make_track(title="Gone"))

    result = runner.invoke(cli, ['delete', track.id, '--yes'])
    assert result.exit_code == 0, result.output
    assert store.get_track(track.id) is None


def test_estimate_unreadable_file(runner, env):
    path = env / "noise.mp3"
    path.write_bytes(b"\0" * (16 * 1024 * 20))

    result = runner.invoke(cli, ['estimate', str(path), '--timeout', '2'])
    assert result.exit_code == 0, result.output
    assert "approximated" in result.output
    assert "0:20" in result.output


def test_estimate_rejects_non_positive_timeout(runner, env):
    path = env / "noise.mp3"
    path.write_bytes(b"\0" * 1024)

    for timeout in ('0', '-1'):
        result = runner.invoke(cli, ['estimate', str(path), '--timeout', timeout])
        assert result.exit_code == 2
        assert "Traceback" not in result.output


def test_fix_durations_nothing_to_do(runner, env):
    result = runner.invoke(cli, ['fix-durations'])
    assert result.exit_code == 0, result.output
    assert "No tracks with placeholder durations" in result.output


def test_albums(runner, env):
    TrackStore(str(env / "tracks.db")).insert_album(Album(id="al-1", title="Debut", owner_id="artist-1"))
    result = runner.invoke(cli, ['albums', '--owner', 'artist-1'])
    assert "Debut" in result.output


def test_upload_rejects_unsupported(runner, env):
    path = env / "readme.txt"
    path.write_text("not audio")
    result = runner.invoke(cli, ['upload', str(path), '--uploader', 'artist-1'])
    assert result.exit_code == 0, result.output
    assert "Unsupported file format" in result.output
