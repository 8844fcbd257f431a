"""
Data models for tracks, albums and dashboard configuration.

This module defines the core data structures shared by the CLI, the web
dashboard and the relational store.
"""

from dataclasses import dataclass, asdict, field, fields
from typing import Dict, Optional, Any
from enum import Enum
import json
import uuid
from datetime import datetime

from shared.constants import (
    DEFAULT_GENRE,
    LOCAL_DECODE_TIMEOUT,
    REMOTE_DECODE_TIMEOUT,
    MAX_UPLOAD_BYTES,
    DEFAULT_SWEEP_WORKERS,
    MUSIC_BUCKET,
)


class StorageProvider(Enum):
    """Supported object storage backends."""
    LOCAL = "local"
    CLOUDFLARE_R2 = "r2"


class TrackStatus(Enum):
    """Publication state of a track."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    DRAFT = "draft"


# Fields an admin or artist may change from the library view
EDITABLE_TRACK_FIELDS = (
    "title", "artist", "album", "album_id", "genre", "year", "status",
    "is_public", "lyrics", "image_url", "track_number",
)


@dataclass
class Track:
    """
    Represents a single track row.

    Attributes:
        id: Unique identifier (UUID)
        title: Song title
        duration: Duration in seconds
        audio_url: Public URL or storage key of the audio object
        uploader_id: ID of the user who uploaded the track
        artist: Display artist name (optional)
        album: Album title (optional)
        album_id: Album the track belongs to (optional)
        genre: Music genre
        year: Release year (optional)
        image_url: Cover image URL (optional)
        lyrics: Lyrics text (optional)
        plays: Play count
        favorites: Times marked as favorite
        downloads: Download count
        is_public: Whether listeners can see the track
        status: Publication state
        track_number: Position in album (optional)
        file_size: Size of the stored audio in bytes
        created_at: ISO timestamp of creation
    """
    id: str
    title: str
    duration: int
    audio_url: str
    uploader_id: str = ""
    artist: Optional[str] = None
    album: Optional[str] = None
    album_id: Optional[str] = None
    genre: str = DEFAULT_GENRE
    year: Optional[int] = None
    image_url: Optional[str] = None
    lyrics: Optional[str] = None
    plays: int = 0
    favorites: int = 0
    downloads: int = 0
    is_public: bool = True
    status: TrackStatus = TrackStatus.ACTIVE
    track_number: Optional[int] = None
    file_size: int = 0
    created_at: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    @staticmethod
    def generate_id() -> str:
        """New random track ID."""
        return str(uuid.uuid4())

    def to_dict(self) -> Dict[str, Any]:
        """Convert track to a JSON-friendly dictionary."""
        data = asdict(self)
        data['status'] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Track':
        """Build a Track from a row or JSON object, ignoring unknown keys."""
        field_names = {f.name for f in fields(cls)}
        filtered_data = {k: v for k, v in data.items() if k in field_names}
        if 'status' in filtered_data and not isinstance(filtered_data['status'], TrackStatus):
            filtered_data['status'] = TrackStatus(filtered_data['status'])
        if 'is_public' in filtered_data:
            filtered_data['is_public'] = bool(filtered_data['is_public'])
        return cls(**filtered_data)


@dataclass
class Album:
    """An album an artist can attach uploads to."""
    id: str
    title: str
    owner_id: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DashboardConfig:
    """
    Dashboard configuration stored locally on each machine.

    Contains storage credentials, the path of the track database and
    the limits used by the upload and correction flows.
    """
    provider: StorageProvider
    endpoint: str
    bucket: str = MUSIC_BUCKET
    access_key_id: str = ""
    secret_access_key: str = ""
    region: Optional[str] = None
    public_base_url: Optional[str] = None
    database_path: Optional[str] = None
    local_decode_timeout: float = LOCAL_DECODE_TIMEOUT
    remote_decode_timeout: float = REMOTE_DECODE_TIMEOUT
    max_upload_bytes: int = MAX_UPLOAD_BYTES
    sweep_workers: int = DEFAULT_SWEEP_WORKERS
    is_encrypted: bool = False

    def __post_init__(self):
        if self.local_decode_timeout <= 0 or self.remote_decode_timeout <= 0:
            raise ValueError("Decode timeouts must be positive")
        if self.sweep_workers < 1:
            raise ValueError("sweep_workers must be at least 1")

    def credentials(self) -> Dict[str, Any]:
        """Credentials dictionary accepted by S3StorageProvider.authenticate()."""
        creds = {
            'access_key_id': self.access_key_id,
            'secret_access_key': self.secret_access_key,
            'endpoint': self.endpoint,
            'region': self.region,
            'bucket': self.bucket,
            'public_base_url': self.public_base_url,
        }
        # R2 endpoints look like https://<account_id>.r2.cloudflarestorage.com
        if self.provider == StorageProvider.CLOUDFLARE_R2 and self.endpoint:
            try:
                creds['account_id'] = self.endpoint.split('//')[1].split('.')[0]
            except IndexError:
                pass
        return creds

    def to_dict(self, encrypt: bool = True) -> Dict[str, Any]:
        """Config as a dict; credentials are encrypted unless encrypt=False."""
        from shared.crypto import CredentialManager

        data = asdict(self)
        data['provider'] = self.provider.value

        if encrypt and not self.is_encrypted and self.secret_access_key:
            data['access_key_id'] = CredentialManager.encrypt(self.access_key_id)
            data['secret_access_key'] = CredentialManager.encrypt(self.secret_access_key)
            data['is_encrypted'] = True

        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DashboardConfig':
        """Create DashboardConfig from dictionary, decrypting if necessary."""
        from shared.crypto import CredentialManager

        field_names = {f.name for f in fields(cls)}
        filtered_data = {k: v for k, v in data.items() if k in field_names}

        filtered_data['provider'] = StorageProvider(filtered_data['provider'])

        if filtered_data.get('is_encrypted', False):
            dec_id = CredentialManager.decrypt(filtered_data['access_key_id'])
            dec_key = CredentialManager.decrypt(filtered_data['secret_access_key'])

            # Wrong machine: keep the encrypted strings, authentication will fail later
            if dec_id is not None and dec_key is not None:
                filtered_data['access_key_id'] = dec_id
                filtered_data['secret_access_key'] = dec_key
                filtered_data['is_encrypted'] = False

        return cls(**filtered_data)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str) -> 'DashboardConfig':
        return cls.from_dict(json.loads(json_str))
