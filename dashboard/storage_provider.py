"""
Object storage interface for track audio.

The dashboard keeps audio objects in a bucket (local directory, Cloudflare R2
or another S3-compatible service). Track rows store either the object's
public URL or its bare key; this interface turns keys back into URLs.
"""

from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, List


class StorageError(Exception):
    """
    A storage operation failed.

    Attributes:
        status: HTTP-like status code when the backend reported one
        code: Backend error code (e.g. 'NoSuchBucket'), if any
    """

    def __init__(self, message: str, status: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.code = code


class S3StorageProvider(ABC):
    """
    Bucket operations needed by uploads, deletes and link resolution.

    Each backend (local filesystem, Cloudflare R2, ...) implements it so the
    upload flow and the correction sweep never depend on a concrete store.
    """

    bucket_name: Optional[str] = None

    @abstractmethod
    def authenticate(self, credentials: Dict[str, Any]) -> bool:
        """
        Connect to the backend and select the bucket.

        Args:
            credentials: Output of DashboardConfig.credentials() (keys,
                endpoint, bucket, public_base_url)

        Returns:
            False when the backend rejects the credentials
        """

    @abstractmethod
    def upload_file(self, local_path: str, remote_key: str,
                    content_type: Optional[str] = None,
                    cache_control: Optional[str] = None) -> None:
        """
        Store a local audio file under ``remote_key``.

        Args:
            content_type: MIME type kept with the object
            cache_control: Max-age in seconds for the Cache-Control header

        Raises:
            StorageError: If the object could not be written
        """

    @abstractmethod
    def upload_bytes(self, data: bytes, remote_key: str,
                     content_type: Optional[str] = None,
                     cache_control: Optional[str] = None) -> None:
        """Same as upload_file() for data held in memory."""

    @abstractmethod
    def download_file(self, remote_key: str, local_path: str) -> bool:
        """Copy an object to ``local_path``; False if it cannot be fetched."""

    @abstractmethod
    def delete_file(self, remote_key: str) -> bool:
        """Remove an object; False if the backend refused."""

    @abstractmethod
    def file_exists(self, remote_key: str) -> bool:
        pass

    @abstractmethod
    def list_files(self, prefix: Optional[str] = None,
                   limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Objects in the bucket, at most ``limit`` of them.

        Returns:
            Dicts with 'key', 'size' and 'modified'
        """

    @abstractmethod
    def get_public_url(self, remote_key: str) -> str:
        """
        Unsigned URL of an object.

        Raises:
            StorageError: If the bucket has no public address
        """

    @abstractmethod
    def get_signed_url(self, remote_key: str, expires_in: int = 3600) -> str:
        """
        URL valid for ``expires_in`` seconds.

        Raises:
            StorageError: If the URL cannot be generated
        """

    def key_from_url(self, url: str) -> Optional[str]:
        """
        Recover the object key from a URL produced by get_public_url().

        Returns None for URLs that do not point into this bucket.
        """
        if not url:
            return None
        if '://' not in url:
            return url
        try:
            prefix = self.get_public_url('')
        except StorageError:
            return None
        if prefix and url.startswith(prefix):
            return url[len(prefix):] or None
        return None
