import pytest

from shared.database import TrackStore
from shared.models import DashboardConfig, StorageProvider, Track
from dashboard.duration import DurationEstimator
from dashboard.local_provider import LocalStorageProvider
from dashboard.services import build_services


def fixed_decoder(value):
    """Decoder that always answers with the given value."""
    def decode(source):
        return value
    return decode


def failing_decoder(source):
    raise RuntimeError("corrupt container")


def make_track(**overrides):
    data = {
        'id': Track.generate_id(),
        'title': 'Untitled',
        'duration': 180,
        'audio_url': 'song.mp3',
        'uploader_id': 'artist-1',
    }
    data.update(overrides)
    return Track(**data)


@pytest.fixture
def store(tmp_path):
    return TrackStore(str(tmp_path / "tracks.db"))


@pytest.fixture
def storage(tmp_path):
    provider = LocalStorageProvider()
    assert provider.authenticate({'base_path': str(tmp_path / "storage"), 'bucket': 'music'})
    return provider


@pytest.fixture
def config(tmp_path):
    return DashboardConfig(
        provider=StorageProvider.LOCAL,
        endpoint=str(tmp_path / "storage"),
        bucket='music',
        database_path=str(tmp_path / "tracks.db"),
    )


@pytest.fixture
def services(config, store, storage):
    estimator = DurationEstimator(decoder=fixed_decoder(200.7), local_timeout=1, remote_timeout=1)
    return build_services(config, storage=storage, estimator=estimator, store=store)
