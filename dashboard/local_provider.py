"""
Bucket kept in a directory on local disk.

Each bucket is a sub-directory of the storage root; keys are relative paths
inside it.
"""

import logging
import os
import shutil
from typing import Optional, Dict, Any, List
from pathlib import Path

from .storage_provider import S3StorageProvider, StorageError

logger = logging.getLogger(__name__)


class LocalStorageProvider(S3StorageProvider):
    """Directory-backed bucket for development and self-hosted setups."""

    def __init__(self):
        self.base_path: Optional[Path] = None
        self.bucket_name: Optional[str] = None
        self.public_base_url: Optional[str] = None

    def authenticate(self, credentials: Dict[str, Any]) -> bool:
        """
        Select the storage root (no real authentication).
        The 'base_path' or 'endpoint' entry is the storage root directory.
        """
        path = credentials.get('base_path') or credentials.get('endpoint')
        if not path:
            return False

        self.base_path = Path(path).expanduser().absolute()
        self.base_path.mkdir(parents=True, exist_ok=True)
        if credentials.get('bucket'):
            self.bucket_name = credentials['bucket']
        self.public_base_url = credentials.get('public_base_url')
        return True

    def _bucket_root(self) -> Path:
        if self.base_path is None:
            raise StorageError("Storage not authenticated")
        if not self.bucket_name:
            raise StorageError("Bucket not found: no bucket selected", status=404, code="NoSuchBucket")
        return self.base_path / self.bucket_name

    def _get_path(self, remote_key: str) -> Path:
        """File path of a key, refusing keys that leave the bucket."""
        root = self._bucket_root()
        path = (root / remote_key).resolve()
        if root.resolve() not in path.parents and path != root.resolve():
            raise StorageError(f"Key escapes bucket: {remote_key}", status=400)
        return path

    def upload_file(self, local_path: str, remote_key: str,
                    content_type: Optional[str] = None,
                    cache_control: Optional[str] = None) -> None:
        dest_path = self._get_path(remote_key)
        if Path(local_path).resolve() == dest_path:
            return
        try:
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(local_path, dest_path)
        except OSError as e:
            raise StorageError(f"Local upload failed: {e}") from e

    def upload_bytes(self, data: bytes, remote_key: str,
                     content_type: Optional[str] = None,
                     cache_control: Optional[str] = None) -> None:
        dest_path = self._get_path(remote_key)
        try:
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            dest_path.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Local upload failed: {e}") from e

    def download_file(self, remote_key: str, local_path: str) -> bool:
        try:
            src_path = self._get_path(remote_key)
            if not src_path.exists():
                return False
            if src_path == Path(local_path).resolve():
                return True
            shutil.copy2(src_path, local_path)
            return True
        except (OSError, StorageError) as e:
            logger.error("Local download error: %s", e)
            return False

    def delete_file(self, remote_key: str) -> bool:
        try:
            path = self._get_path(remote_key)
            if path.exists():
                os.remove(path)
            return True
        except (OSError, StorageError) as e:
            logger.error("Local delete error: %s", e)
            return False

    def file_exists(self, remote_key: str) -> bool:
        return self._get_path(remote_key).exists()

    def list_files(self, prefix: Optional[str] = None,
                   limit: Optional[int] = None) -> List[Dict[str, Any]]:
        bucket_root = self._bucket_root()
        if not bucket_root.exists():
            return []

        files = []
        for full_path in sorted(bucket_root.rglob('*')):
            if not full_path.is_file():
                continue
            key = full_path.relative_to(bucket_root).as_posix()
            if prefix and not key.startswith(prefix):
                continue
            stat = full_path.stat()
            files.append({'key': key, 'size': stat.st_size, 'modified': stat.st_mtime})
            if limit is not None and len(files) >= limit:
                break
        return files

    def get_public_url(self, remote_key: str) -> str:
        """Configured public base URL, or a file:// URL into the bucket."""
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{remote_key}"
        return self._bucket_root().absolute().as_uri() + "/" + remote_key

    def get_signed_url(self, remote_key: str, expires_in: int = 3600) -> str:
        # Local files need no signature
        return self._get_path(remote_key).as_uri()
