"""
Storage link resolution and accessibility checks.

Track rows may hold a full URL or a bare storage key. Keys are turned into
the bucket's public URL, falling back to a signed URL when the bucket has no
public address.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List, Dict, Any
from urllib.parse import urlparse
from urllib.request import url2pathname

import requests

from shared.constants import SIGNED_URL_EXPIRY, DIAGNOSE_LIST_LIMIT, DEFAULT_NETWORK_TIMEOUT
from .storage_provider import S3StorageProvider, StorageError

logger = logging.getLogger(__name__)

_FULL_URL_SCHEMES = ('http://', 'https://', 'file://')


def _build_session() -> requests.Session:
    session = requests.Session()
    adapter = requests.adapters.HTTPAdapter(pool_connections=10, pool_maxsize=10, max_retries=2)
    session.mount('https://', adapter)
    session.mount('http://', adapter)
    return session


@dataclass
class UrlCheck:
    """Result of checking a URL with a HEAD request."""
    url: str
    ok: bool
    status: Optional[int] = None
    error: Optional[str] = None


@dataclass
class StorageDiagnosis:
    """Outcome of diagnose_storage()."""
    files: List[Dict[str, Any]] = field(default_factory=list)
    public_check: Optional[UrlCheck] = None
    signed_check: Optional[UrlCheck] = None
    error: Optional[str] = None

    @property
    def healthy(self) -> bool:
        if self.error:
            return False
        if not self.files:
            return True
        return any(c is not None and c.ok for c in (self.public_check, self.signed_check))


class LinkResolver:
    """Turns stored audio references into fetchable URLs."""

    def __init__(self, storage: Optional[S3StorageProvider] = None,
                 session: Optional[requests.Session] = None,
                 timeout: float = DEFAULT_NETWORK_TIMEOUT):
        self.storage = storage
        self.session = session or _build_session()
        self.timeout = timeout

    def resolve(self, audio_url: Optional[str]) -> Optional[str]:
        """
        Resolve a stored reference to a URL.

        Returns:
            The URL, or None if the reference is empty or cannot be resolved
        """
        if not audio_url:
            return None
        if audio_url.startswith(_FULL_URL_SCHEMES):
            return audio_url
        if self.storage is None:
            logger.warning("No storage configured to resolve key %s", audio_url)
            return None

        try:
            return self.storage.get_public_url(audio_url)
        except StorageError as e:
            logger.info("No public URL for %s (%s), trying a signed URL", audio_url, e)

        try:
            return self.storage.get_signed_url(audio_url, expires_in=SIGNED_URL_EXPIRY)
        except StorageError as e:
            logger.error("Could not generate a signed URL for %s: %s", audio_url, e)
            return None

    def check_url(self, url: str) -> UrlCheck:
        """HEAD the URL (or stat a file:// URL) to see whether it is reachable."""
        if url.startswith('file://'):
            path = Path(url2pathname(urlparse(url).path))
            ok = path.is_file()
            return UrlCheck(url, ok, status=200 if ok else 404)

        try:
            response = self.session.head(url, timeout=self.timeout, allow_redirects=True)
        except requests.RequestException as e:
            logger.warning("Error checking %s: %s", url, e)
            return UrlCheck(url, False, error=str(e))

        if not response.ok:
            logger.warning("URL not accessible: %s (status %s)", url, response.status_code)
        return UrlCheck(url, response.ok, status=response.status_code)

    def content_length(self, url: str) -> int:
        """Size reported by the server for a URL, or 0 if unknown."""
        if url.startswith('file://'):
            path = Path(url2pathname(urlparse(url).path))
            return path.stat().st_size if path.is_file() else 0
        try:
            response = self.session.head(url, timeout=self.timeout, allow_redirects=True)
            return int(response.headers.get('Content-Length', 0)) if response.ok else 0
        except (requests.RequestException, ValueError):
            return 0


def diagnose_storage(storage: S3StorageProvider, resolver: Optional[LinkResolver] = None,
                     limit: int = DIAGNOSE_LIST_LIMIT) -> StorageDiagnosis:
    """
    Check that stored audio can actually be fetched.

    Lists a few objects, then probes the first one through its public URL,
    and through a signed URL if the public one is not reachable.
    """
    resolver = resolver or LinkResolver(storage)
    diagnosis = StorageDiagnosis()

    try:
        diagnosis.files = storage.list_files(limit=limit)
    except StorageError as e:
        logger.error("Error listing files: %s", e)
        diagnosis.error = str(e)
        return diagnosis

    if not diagnosis.files:
        logger.info("Bucket %s is empty", storage.bucket_name)
        return diagnosis

    key = diagnosis.files[0]['key']
    try:
        diagnosis.public_check = resolver.check_url(storage.get_public_url(key))
    except StorageError as e:
        logger.info("No public URL for %s: %s", key, e)

    if diagnosis.public_check is None or not diagnosis.public_check.ok:
        try:
            diagnosis.signed_check = resolver.check_url(
                storage.get_signed_url(key, expires_in=SIGNED_URL_EXPIRY)
            )
        except StorageError as e:
            logger.error("Error generating signed URL for %s: %s", key, e)
            diagnosis.error = str(e)

    return diagnosis
