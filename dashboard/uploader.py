"""
Upload engine for new tracks.

Validates a selected file, estimates its duration, stores the audio object
and inserts the track row. Each file moves through editing, uploading and
complete (or error) states that callers can render as progress.
"""

import logging
import re
import sqlite3
import time
import concurrent.futures
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from shared.constants import (
    ALLOWED_AUDIO_MIME_TYPES,
    MAX_UPLOAD_BYTES,
    MAX_TRACK_DURATION,
    DEFAULT_GENRE,
    PLACEHOLDER_DURATION,
    UPLOAD_CACHE_CONTROL,
)
from shared.database import TrackStore
from shared.models import Track, TrackStatus
from .duration import AudioAsset, DurationEstimate, DurationEstimator
from .storage_provider import S3StorageProvider, StorageError

logger = logging.getLogger(__name__)

# Extensions accepted when the MIME type is missing or non-standard (audio/x-wav, ...)
ALLOWED_AUDIO_EXTENSIONS = {'.mp3', '.wav', '.ogg', '.aac', '.webm', '.mp4', '.m4a', '.opus'}

_UNSAFE_KEY_CHARS = re.compile(r'[^a-zA-Z0-9.-]')


class UploadStatus(Enum):
    EDITING = "editing"
    UPLOADING = "uploading"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class UploadProgress:
    """Progress information for one file in the upload list."""
    file_name: str
    progress: int
    status: UploadStatus
    error: Optional[str] = None

    def __str__(self) -> str:
        text = f"{self.file_name}: {self.status.value} {self.progress}%"
        return f"{text} ({self.error})" if self.error else text

    def to_dict(self):
        return {
            'file_name': self.file_name,
            'progress': self.progress,
            'status': self.status.value,
            'error': self.error,
        }


@dataclass
class UploadDraft:
    """Metadata of a validated file, editable before the upload starts."""
    asset: AudioAsset
    title: str
    duration: int = PLACEHOLDER_DURATION
    genre: str = DEFAULT_GENRE
    album_id: Optional[str] = None
    estimate: Optional[DurationEstimate] = None

    EDITABLE = ('title', 'genre', 'album_id', 'duration')

    def update(self, **changes) -> 'UploadDraft':
        for key, value in changes.items():
            if key not in self.EDITABLE:
                raise ValueError(f"Field '{key}' cannot be edited")
            if key == 'duration':
                value = int(value)
                if not 1 <= value <= MAX_TRACK_DURATION:
                    raise ValueError(f"Duration must be between 1 and {MAX_TRACK_DURATION} seconds")
            setattr(self, key, value)
        return self


@dataclass
class ValidationResult:
    valid: bool
    error: Optional[str] = None
    draft: Optional[UploadDraft] = None


@dataclass
class UploadResult:
    file_name: str
    status: UploadStatus
    track: Optional[Track] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == UploadStatus.COMPLETE


ProgressCallback = Callable[[UploadProgress], None]


def describe_storage_error(error: StorageError) -> str:
    """User-facing message for a failed object upload."""
    message = str(error)
    if error.code == 'NoSuchBucket' or 'Bucket not found' in message:
        return 'The storage bucket does not exist. Configure storage first.'
    if error.status == 403 or error.code == 'AccessDenied' or 'Policy' in message:
        return 'Permission denied. Check the bucket access policies.'
    if error.status == 413 or error.code == 'EntityTooLarge' or '413' in message:
        return 'File too large'
    if error.status == 401 or '401' in message:
        return 'Not authorized. Check your storage credentials.'
    return 'Error uploading file'


class UploadEngine:
    """Handles validation, storage and registration of new tracks."""

    def __init__(self, store: TrackStore, storage: S3StorageProvider,
                 estimator: DurationEstimator,
                 max_upload_bytes: int = MAX_UPLOAD_BYTES,
                 clock: Callable[[], float] = time.time):
        self.store = store
        self.storage = storage
        self.estimator = estimator
        self.max_upload_bytes = max_upload_bytes
        self.clock = clock

    def is_supported(self, asset: AudioAsset) -> bool:
        if asset.mime_type in ALLOWED_AUDIO_MIME_TYPES or asset.is_voice_note:
            return True
        return Path(asset.name).suffix.lower() in ALLOWED_AUDIO_EXTENSIONS

    def validate(self, asset: AudioAsset) -> ValidationResult:
        """
        Check a selected file and prepare its draft metadata.

        Rejects unsupported types, files over the size ceiling and audio that
        decodes to more than one hour.
        """
        if not self.is_supported(asset):
            return ValidationResult(False, 'Unsupported file format. Use MP3, WAV, OGG, AAC, OPUS or M4A.')

        if asset.size > self.max_upload_bytes:
            limit_mb = self.max_upload_bytes // (1024 * 1024)
            return ValidationResult(False, f'File is too large. Maximum size: {limit_mb}MB.')

        estimate = self.estimator.estimate(asset, timeout=self.estimator.local_timeout)
        if estimate.raw_seconds is not None and estimate.raw_seconds > MAX_TRACK_DURATION:
            return ValidationResult(False, 'Track is too long. Maximum duration: 1 hour.')

        draft = UploadDraft(
            asset=asset,
            title=asset.stem,
            duration=estimate.seconds,
            estimate=estimate,
        )
        return ValidationResult(True, draft=draft)

    def object_key(self, file_name: str) -> str:
        """Storage key: upload time in ms plus the sanitized file name."""
        return f"{int(self.clock() * 1000)}-{_UNSAFE_KEY_CHARS.sub('_', file_name)}"

    def upload(self, draft: UploadDraft, uploader_id: str,
               progress_callback: Optional[ProgressCallback] = None) -> UploadResult:
        """
        Store the audio object and insert the track row.

        Returns:
            UploadResult; failures are reported in it rather than raised
        """
        asset = draft.asset
        name = asset.name

        def report(progress: int, status: UploadStatus, error: Optional[str] = None):
            if progress_callback:
                progress_callback(UploadProgress(name, progress, status, error))

        def fail(message: str) -> UploadResult:
            report(0, UploadStatus.ERROR, message)
            return UploadResult(name, UploadStatus.ERROR, error=message)

        if asset.is_remote:
            return fail('Only local files can be uploaded')

        report(10, UploadStatus.UPLOADING)
        key = self.object_key(name)
        report(50, UploadStatus.UPLOADING)

        try:
            if asset.path is not None:
                self.storage.upload_file(asset.path, key, content_type=asset.mime_type,
                                         cache_control=UPLOAD_CACHE_CONTROL)
            else:
                self.storage.upload_bytes(asset.data, key, content_type=asset.mime_type,
                                          cache_control=UPLOAD_CACHE_CONTROL)
        except StorageError as e:
            logger.error("Upload error for %s: %s", name, e)
            return fail(describe_storage_error(e))

        report(90, UploadStatus.UPLOADING)

        try:
            audio_url = self.storage.get_public_url(key)
        except StorageError as e:
            logger.warning("No public URL for %s (%s); storing the key", key, e)
            audio_url = key

        track = Track(
            id=Track.generate_id(),
            title=draft.title or asset.stem,
            duration=draft.duration,
            audio_url=audio_url,
            uploader_id=uploader_id,
            album_id=draft.album_id or None,
            genre=draft.genre or DEFAULT_GENRE,
            year=datetime.now().year,
            is_public=True,
            status=TrackStatus.ACTIVE,
            file_size=asset.size,
        )

        try:
            self.store.insert_track(track)
        except sqlite3.Error as e:
            logger.error("Error saving track %s: %s", name, e)
            if not self.storage.delete_file(key):
                logger.warning("Orphaned object left in storage: %s", key)
            return fail('Error saving to database')

        report(100, UploadStatus.COMPLETE)
        logger.info("Uploaded '%s' as %s (%ss)", track.title, key, track.duration)
        return UploadResult(name, UploadStatus.COMPLETE, track=track)

    def run(self, paths: Sequence[str], uploader_id: str,
            genre: Optional[str] = None, album_id: Optional[str] = None,
            parallel: int = 1,
            progress_callback: Optional[ProgressCallback] = None) -> List[UploadResult]:
        """
        Validate and upload several local files.

        Returns:
            One UploadResult per path, in input order
        """
        def process(path: str) -> UploadResult:
            try:
                asset = AudioAsset.from_path(path)
            except OSError as e:
                return UploadResult(Path(path).name, UploadStatus.ERROR, error=str(e))

            validation = self.validate(asset)
            if not validation.valid:
                if progress_callback:
                    progress_callback(UploadProgress(asset.name, 0, UploadStatus.ERROR, validation.error))
                return UploadResult(asset.name, UploadStatus.ERROR, error=validation.error)

            draft = validation.draft
            if genre:
                draft.update(genre=genre)
            if album_id:
                draft.update(album_id=album_id)
            if progress_callback:
                progress_callback(UploadProgress(asset.name, 0, UploadStatus.EDITING))
            return self.upload(draft, uploader_id, progress_callback)

        if parallel <= 1:
            return [process(p) for p in paths]

        results = {}
        with ThreadPoolExecutor(max_workers=parallel) as executor:
            future_to_path = {executor.submit(process, p): p for p in paths}
            for future in concurrent.futures.as_completed(future_to_path):
                results[future_to_path[future]] = future.result()
        return [results[p] for p in paths]
