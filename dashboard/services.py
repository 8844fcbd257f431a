"""
Wiring of the dashboard services from a configuration.
"""

from dataclasses import dataclass
from typing import Optional

from shared.database import TrackStore
from shared.models import DashboardConfig
from .correction import DurationCorrector
from .duration import DurationEstimator
from .library import LibraryAdmin
from .links import LinkResolver
from .provider_factory import StorageProviderFactory
from .storage_provider import S3StorageProvider
from .uploader import UploadEngine


@dataclass
class Services:
    config: DashboardConfig
    store: TrackStore
    storage: S3StorageProvider
    estimator: DurationEstimator
    resolver: LinkResolver
    library: LibraryAdmin
    uploader: UploadEngine
    corrector: DurationCorrector


def build_services(config: DashboardConfig,
                   storage: Optional[S3StorageProvider] = None,
                   estimator: Optional[DurationEstimator] = None,
                   store: Optional[TrackStore] = None) -> Services:
    """
    Create every service for a config. Collaborators can be passed in
    (tests use fakes for the storage and the decoder).
    """
    store = store or TrackStore(config.database_path)
    storage = storage or StorageProviderFactory.from_config(config)
    estimator = estimator or DurationEstimator(
        local_timeout=config.local_decode_timeout,
        remote_timeout=config.remote_decode_timeout,
    )
    resolver = LinkResolver(storage)
    return Services(
        config=config,
        store=store,
        storage=storage,
        estimator=estimator,
        resolver=resolver,
        library=LibraryAdmin(store, storage),
        uploader=UploadEngine(store, storage, estimator, max_upload_bytes=config.max_upload_bytes),
        corrector=DurationCorrector(store, estimator, resolver, workers=config.sweep_workers),
    )
