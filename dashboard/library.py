"""
Library administration: browse, edit and delete tracks.
"""

import logging
from typing import Any, Dict, List, Optional

from shared.constants import PLACEHOLDER_DURATION
from shared.database import TrackStore
from shared.models import Album, Track, TrackStatus, EDITABLE_TRACK_FIELDS
from .storage_provider import S3StorageProvider

logger = logging.getLogger(__name__)

ALL = "all"


class TrackNotFoundError(LookupError):
    """No track with the given ID."""


def format_duration(seconds: int) -> str:
    """Format seconds as m:ss."""
    seconds = max(int(seconds or 0), 0)
    minutes, secs = divmod(seconds, 60)
    return f"{minutes}:{secs:02d}"


def has_placeholder_durations(tracks: List[Track]) -> bool:
    """True if any track still carries the placeholder duration."""
    return any(t.duration == PLACEHOLDER_DURATION for t in tracks)


def matches(track: Track, search: str = "", genre: str = ALL, status: str = ALL) -> bool:
    if search:
        needle = search.lower()
        haystack = [track.title, track.artist, track.album]
        if not any(value and needle in value.lower() for value in haystack):
            return False
    if genre != ALL and track.genre != genre:
        return False
    if status != ALL and track.status.value != status:
        return False
    return True


class LibraryAdmin:
    """Track management for the admin library and the artist's own music page."""

    def __init__(self, store: TrackStore, storage: Optional[S3StorageProvider] = None):
        self.store = store
        self.storage = storage

    def browse(self, search: str = "", genre: str = ALL, status: str = ALL,
               uploader_id: Optional[str] = None) -> List[Track]:
        """
        List tracks newest first.

        Args:
            search: Case-insensitive match on title, artist or album
            genre: Exact genre, or "all"
            status: Track status value, or "all"
            uploader_id: Only tracks uploaded by this user
        """
        if status != ALL:
            TrackStatus(status)  # raises ValueError for unknown states
        if search:
            tracks = self.store.search_tracks(search, uploader_id=uploader_id)
        else:
            tracks = self.store.list_tracks(uploader_id=uploader_id)
        return [t for t in tracks if matches(t, search, genre, status)]

    def get(self, track_id: str) -> Track:
        track = self.store.get_track(track_id)
        if track is None:
            raise TrackNotFoundError(track_id)
        return track

    def edit(self, track_id: str, changes: Dict[str, Any]) -> Track:
        """
        Update editable fields of a track.

        Args:
            changes: Field name to new value, limited to EDITABLE_TRACK_FIELDS

        Raises:
            ValueError: For fields that cannot be edited or bad status values
            TrackNotFoundError: If the track does not exist
        """
        invalid = set(changes) - set(EDITABLE_TRACK_FIELDS)
        if invalid:
            raise ValueError(f"Fields cannot be edited: {', '.join(sorted(invalid))}")

        values: Dict[str, Any] = dict(changes)
        if 'status' in values and not isinstance(values['status'], TrackStatus):
            values['status'] = TrackStatus(values['status'])
        if 'is_public' in values:
            values['is_public'] = 1 if values['is_public'] else 0

        if not self.store.update_track(track_id, values):
            raise TrackNotFoundError(track_id)
        logger.info("Track %s updated: %s", track_id, ', '.join(sorted(changes)) or 'no changes')
        return self.get(track_id)

    def delete(self, track_id: str, remove_audio: bool = False) -> Track:
        """
        Delete a track row, optionally removing its audio object as well.

        Returns:
            The deleted track
        """
        track = self.get(track_id)
        if not self.store.delete_track(track_id):
            raise TrackNotFoundError(track_id)

        if remove_audio and self.storage is not None:
            key = self.storage.key_from_url(track.audio_url)
            if key is None:
                logger.warning("Audio of %s is not in the configured bucket: %s", track_id, track.audio_url)
            elif not self.storage.delete_file(key):
                logger.warning("Could not delete audio object %s", key)

        logger.info("Track %s ('%s') deleted", track_id, track.title)
        return track

    def albums(self, owner_id: str) -> List[Album]:
        return self.store.list_albums(owner_id)

    def stats(self, uploader_id: Optional[str] = None) -> Dict[str, int]:
        """Track counts in total and per status."""
        return self.store.get_stats(uploader_id)
