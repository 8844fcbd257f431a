import sqlite3
from unittest.mock import MagicMock

from botocore.exceptions import NoCredentialsError

from dashboard.correction import CorrectionStatus, DurationCorrector
from dashboard.duration import DurationEstimator
from dashboard.links import LinkResolver
from dashboard.storage_provider import StorageError
from conftest import fixed_decoder, failing_decoder, make_track


def _stored_track(store, storage, name="song.mp3", duration=180, uploader_id="artist-1", data=b"\0" * 64):
    storage.upload_bytes(data, name)
    track = make_track(title=name, duration=duration, audio_url=storage.get_public_url(name),
                       uploader_id=uploader_id, file_size=len(data))
    store.insert_track(track)
    return track


def _corrector(store, storage, decoder):
    estimator = DurationEstimator(decoder=decoder, local_timeout=1, remote_timeout=1)
    return DurationCorrector(store, estimator, LinkResolver(storage), workers=2)


def test_sweep_corrects_placeholder_durations(store, storage):
    track = _stored_track(store, storage)
    report = _corrector(store, storage, fixed_decoder(200.4)).run()

    assert report.scanned == 1
    assert report.corrected == 1
    assert report.results[0].new_duration == 200
    assert store.get_track(track.id).duration == 200


def test_sweep_is_idempotent(store, storage):
    _stored_track(store, storage, "a.mp3")
    _stored_track(store, storage, "b.mp3")
    corrector = _corrector(store, storage, fixed_decoder(200))

    first = corrector.run()
    second = corrector.run()

    assert first.corrected == 2
    assert second.scanned == 0
    assert second.corrected == 0


def test_sweep_ignores_tracks_off_placeholder(store, storage):
    _stored_track(store, storage, "done.mp3", duration=215)
    seen = []

    def recording(source):
        seen.append(source)
        return 100

    report = _corrector(store, storage, recording).run()
    assert report.scanned == 0
    assert seen == []


def test_approximations_are_not_written(store, storage):
    track = _stored_track(store, storage, data=b"\0" * (16 * 1024 * 90))
    report = _corrector(store, storage, failing_decoder).run()

    assert report.unmeasured == 1
    assert report.results[0].status == CorrectionStatus.UNMEASURED
    assert not report.results[0].estimate.is_measured
    assert store.get_track(track.id).duration == 180


def test_measured_placeholder_is_unchanged(store, storage):
    track = _stored_track(store, storage)
    report = _corrector(store, storage, fixed_decoder(180.6)).run()

    assert report.unchanged == 1
    assert store.get_track(track.id).duration == 180


def test_sweep_filters_by_uploader(store, storage):
    mine = _stored_track(store, storage, "mine.mp3", uploader_id="artist-1")
    other = _stored_track(store, storage, "other.mp3", uploader_id="artist-2")

    report = _corrector(store, storage, fixed_decoder(240)).run(uploader_id="artist-1")

    assert [r.track_id for r in report.results] == [mine.id]
    assert store.get_track(mine.id).duration == 240
    assert store.get_track(other.id).duration == 180


def test_persist_failure_does_not_stop_sweep(store, storage, monkeypatch):
    first = _stored_track(store, storage, "first.mp3")
    second = _stored_track(store, storage, "second.mp3")
    original = store.update_duration

    def flaky(track_id, seconds):
        if track_id == first.id:
            raise sqlite3.OperationalError("database is locked")
        return original(track_id, seconds)

    monkeypatch.setattr(store, "update_duration", flaky)
    report = _corrector(store, storage, fixed_decoder(222)).run()

    statuses = {r.track_id: r for r in report.results}
    assert statuses[first.id].status == CorrectionStatus.PERSIST_FAILED
    assert "locked" in statuses[first.id].error
    assert statuses[second.id].status == CorrectionStatus.CORRECTED
    assert store.get_track(first.id).duration == 180
    assert store.get_track(second.id).duration == 222
    assert report.failed == 1


def test_unreachable_audio_is_unmeasured(store, storage):
    track = make_track(audio_url=storage.get_public_url("missing.mp3"))
    store.insert_track(track)

    report = _corrector(store, storage, fixed_decoder(200)).run()
    assert report.results[0].status == CorrectionStatus.UNMEASURED
    assert "not reachable" in report.results[0].error
    assert store.get_track(track.id).duration == 180


def test_bare_keys_are_resolved_through_storage(store, storage):
    storage.upload_bytes(b"\0" * 10, "123-key.mp3")
    track = make_track(audio_url="123-key.mp3")
    store.insert_track(track)

    report = _corrector(store, storage, fixed_decoder(301)).run()
    assert report.corrected == 1
    assert store.get_track(track.id).duration == 301


def test_results_follow_candidate_order_and_callback(store, storage):
    tracks = [_stored_track(store, storage, f"t{i}.mp3") for i in range(5)]
    seen = []
    report = _corrector(store, storage, fixed_decoder(200)).run(on_result=seen.append)

    candidate_ids = [t.id for t in store.find_by_duration(200)]
    assert sorted(r.track_id for r in report.results) == sorted(t.id for t in tracks)
    assert [r.track_id for r in report.results] == candidate_ids
    assert len(seen) == 5
    assert report.to_dict()['corrected'] == 5


def test_unexpected_error_on_one_track_does_not_abort_sweep(store):
    storage = MagicMock()
    storage.get_public_url.side_effect = StorageError("No public URL", status=403)
    storage.get_signed_url.side_effect = NoCredentialsError()
    good = store.insert_track(make_track(title="remote", audio_url="https://cdn.example.com/a.mp3",
                                         file_size=1000))
    bad = store.insert_track(make_track(title="no credentials", audio_url="b.mp3"))

    estimator = DurationEstimator(decoder=fixed_decoder(200), local_timeout=1, remote_timeout=1)
    resolver = LinkResolver(storage, session=MagicMock())
    report = DurationCorrector(store, estimator, resolver, workers=2).run()

    results = {r.track_id: r for r in report.results}
    assert results[good.id].status == CorrectionStatus.CORRECTED
    assert results[bad.id].status == CorrectionStatus.ERROR
    assert "credentials" in results[bad.id].error.lower()
    assert report.failed == 1
    assert store.get_track(good.id).duration == 200
    assert store.get_track(bad.id).duration == 180


def test_remote_size_comes_from_content_length(store):
    session = MagicMock()
    session.head.return_value = MagicMock(ok=True, headers={'Content-Length': str(16 * 1024 * 90)})
    track = store.insert_track(make_track(audio_url="https://cdn.example.com/a.mp3", file_size=0))

    estimator = DurationEstimator(decoder=failing_decoder, local_timeout=1, remote_timeout=1)
    report = DurationCorrector(store, estimator, LinkResolver(session=session)).run()

    result = report.results[0]
    assert result.status == CorrectionStatus.UNMEASURED
    assert result.estimate.seconds == 90
    assert store.get_track(track.id).duration == 180
