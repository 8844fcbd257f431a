"""
Batch correction of placeholder track durations.

Tracks uploaded before their duration could be read were stored with the
180 second placeholder. The sweep re-measures those tracks and writes back
any real duration it finds. Tracks that no longer sit at the placeholder are
never touched, so running the sweep twice changes nothing the second time.
A track that is genuinely three minutes long is re-measured on every run.
"""

import concurrent.futures
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional
from urllib.parse import urlparse
from urllib.request import url2pathname

from shared.constants import PLACEHOLDER_DURATION, DEFAULT_SWEEP_WORKERS
from shared.database import TrackStore
from shared.models import Track
from .duration import AudioAsset, DurationEstimate, DurationEstimator
from .links import LinkResolver

logger = logging.getLogger(__name__)


class CorrectionStatus(Enum):
    CORRECTED = "corrected"            # measured, differs from placeholder, written back
    UNCHANGED = "unchanged"            # measured exactly the placeholder
    UNMEASURED = "unmeasured"          # could not decode; approximations are not written
    PERSIST_FAILED = "persist_failed"  # measured, but the update failed
    ERROR = "error"                    # unexpected failure while handling the track


@dataclass
class CorrectionResult:
    track_id: str
    title: str
    status: CorrectionStatus
    old_duration: int
    new_duration: Optional[int] = None
    estimate: Optional[DurationEstimate] = None
    error: Optional[str] = None

    def to_dict(self):
        return {
            'track_id': self.track_id,
            'title': self.title,
            'status': self.status.value,
            'old_duration': self.old_duration,
            'new_duration': self.new_duration,
            'estimate': self.estimate.to_dict() if self.estimate else None,
            'error': self.error,
        }


@dataclass
class SweepReport:
    results: List[CorrectionResult] = field(default_factory=list)

    def _count(self, status: CorrectionStatus) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def scanned(self) -> int:
        return len(self.results)

    @property
    def corrected(self) -> int:
        return self._count(CorrectionStatus.CORRECTED)

    @property
    def unchanged(self) -> int:
        return self._count(CorrectionStatus.UNCHANGED)

    @property
    def unmeasured(self) -> int:
        return self._count(CorrectionStatus.UNMEASURED)

    @property
    def failed(self) -> int:
        return self._count(CorrectionStatus.PERSIST_FAILED) + self._count(CorrectionStatus.ERROR)

    def to_dict(self):
        return {
            'scanned': self.scanned,
            'corrected': self.corrected,
            'unchanged': self.unchanged,
            'unmeasured': self.unmeasured,
            'failed': self.failed,
            'results': [r.to_dict() for r in self.results],
        }


class DurationCorrector:
    """
    Re-estimates tracks stuck at the placeholder duration.

    Args:
        store: Track rows to scan and update
        estimator: Estimator used with its remote timeout
        resolver: Turns stored keys into URLs (full URLs pass through)
        workers: Tracks measured in parallel
    """

    def __init__(self, store: TrackStore, estimator: DurationEstimator,
                 resolver: Optional[LinkResolver] = None,
                 workers: int = DEFAULT_SWEEP_WORKERS,
                 placeholder: int = PLACEHOLDER_DURATION):
        self.store = store
        self.estimator = estimator
        self.resolver = resolver or LinkResolver()
        self.workers = max(1, workers)
        self.placeholder = placeholder

    def candidates(self, uploader_id: Optional[str] = None) -> List[Track]:
        """Tracks at the placeholder duration that have audio to measure."""
        return [t for t in self.store.find_by_duration(self.placeholder, uploader_id) if t.audio_url]

    def run(self, uploader_id: Optional[str] = None,
            on_result: Optional[Callable[[CorrectionResult], None]] = None) -> SweepReport:
        """
        Run one sweep and wait for every track to settle.

        Args:
            uploader_id: Restrict the sweep to one artist's uploads
            on_result: Called with each result as it completes

        Returns:
            SweepReport with one result per candidate, in candidate order
        """
        tracks = self.candidates(uploader_id)
        logger.info("Duration sweep: %d track(s) at %ss", len(tracks), self.placeholder)
        if not tracks:
            return SweepReport()

        by_id = {}
        with ThreadPoolExecutor(max_workers=min(self.workers, len(tracks))) as executor:
            future_to_track = {executor.submit(self._guarded_correct, track): track for track in tracks}
            for future in concurrent.futures.as_completed(future_to_track):
                result = future.result()
                by_id[result.track_id] = result
                if on_result:
                    on_result(result)

        report = SweepReport([by_id[t.id] for t in tracks])
        logger.info(
            "Duration sweep complete: %d corrected, %d unchanged, %d unmeasured, %d failed",
            report.corrected, report.unchanged, report.unmeasured, report.failed
        )
        return report

    def _guarded_correct(self, track: Track) -> CorrectionResult:
        try:
            return self._correct(track)
        except Exception as e:
            # One bad record must not abort the sweep
            logger.error("Error checking duration of '%s': %s", track.title, e)
            return CorrectionResult(track.id, track.title, CorrectionStatus.ERROR, track.duration,
                                    error=str(e) or type(e).__name__)

    def _asset_for(self, track: Track) -> Optional[AudioAsset]:
        url = self.resolver.resolve(track.audio_url)
        if url is None:
            return None
        if url.startswith('file://'):
            path = Path(url2pathname(urlparse(url).path))
            if path.is_file():
                return AudioAsset.from_path(path)
            return None
        size = track.file_size or self.resolver.content_length(url)
        return AudioAsset.from_url(url, size=size, recorded_duration=track.duration)

    def _correct(self, track: Track) -> CorrectionResult:
        result = CorrectionResult(track.id, track.title, CorrectionStatus.UNMEASURED, track.duration)

        asset = self._asset_for(track)
        if asset is None:
            result.error = f"Audio not reachable: {track.audio_url}"
            logger.warning("Skipping '%s': %s", track.title, result.error)
            return result

        estimate = self.estimator.estimate(asset, timeout=self.estimator.remote_timeout)
        result.estimate = estimate
        if not estimate.is_measured:
            return result
        if estimate.seconds == self.placeholder:
            result.status = CorrectionStatus.UNCHANGED
            return result

        result.new_duration = estimate.seconds
        try:
            updated = self.store.update_duration(track.id, estimate.seconds)
        except Exception as e:
            logger.error("Error correcting duration for '%s': %s", track.title, e)
            result.status = CorrectionStatus.PERSIST_FAILED
            result.error = str(e)
            return result

        if not updated:
            result.status = CorrectionStatus.PERSIST_FAILED
            result.error = "Track no longer exists"
            return result

        logger.info("Duration corrected for '%s': %ss", track.title, estimate.seconds)
        result.status = CorrectionStatus.CORRECTED
        return result
