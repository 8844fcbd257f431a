from unittest.mock import MagicMock

import requests

from dashboard.links import LinkResolver, diagnose_storage
from dashboard.storage_provider import StorageError


def _response(status, headers=None):
    response = MagicMock()
    response.status_code = status
    response.ok = status < 400
    response.headers = headers or {}
    return response


def test_full_urls_pass_through(storage):
    resolver = LinkResolver(storage)
    assert resolver.resolve("https://cdn.example.com/a.mp3") == "https://cdn.example.com/a.mp3"
    assert resolver.resolve("file:///music/a.mp3") == "file:///music/a.mp3"
    assert resolver.resolve("") is None
    assert resolver.resolve(None) is None


def test_keys_use_public_url(storage):
    storage.public_base_url = "https://cdn.example.com/music"
    assert LinkResolver(storage).resolve("123-a.mp3") == "https://cdn.example.com/music/123-a.mp3"


def test_keys_fall_back_to_signed_url():
    storage = MagicMock()
    storage.get_public_url.side_effect = StorageError("No public access", status=403)
    storage.get_signed_url.return_value = "https://signed.example.com/a.mp3?sig=1"

    assert LinkResolver(storage).resolve("a.mp3") == "https://signed.example.com/a.mp3?sig=1"
    storage.get_signed_url.assert_called_once_with("a.mp3", expires_in=3600)


def test_unresolvable_key():
    storage = MagicMock()
    storage.get_public_url.side_effect = StorageError("no public")
    storage.get_signed_url.side_effect = StorageError("no signing")
    assert LinkResolver(storage).resolve("a.mp3") is None
    assert LinkResolver().resolve("a.mp3") is None


def test_check_url_uses_head():
    session = MagicMock()
    session.head.return_value = _response(200)
    check = LinkResolver(session=session).check_url("https://cdn.example.com/a.mp3")

    assert check.ok
    assert check.status == 200
    session.head.assert_called_once_with("https://cdn.example.com/a.mp3", timeout=10, allow_redirects=True)


def test_check_url_reports_failures():
    session = MagicMock()
    session.head.return_value = _response(403)
    assert not LinkResolver(session=session).check_url("https://x/a.mp3").ok

    session.head.side_effect = requests.ConnectionError("refused")
    check = LinkResolver(session=session).check_url("https://x/a.mp3")
    assert not check.ok
    assert "refused" in check.error


def test_check_file_url(storage):
    storage.upload_bytes(b"abc", "here.mp3")
    resolver = LinkResolver(storage)
    assert resolver.check_url(storage.get_public_url("here.mp3")).ok
    assert not resolver.check_url(storage.get_public_url("gone.mp3")).ok
    assert resolver.content_length(storage.get_public_url("here.mp3")) == 3


def test_content_length_from_headers():
    session = MagicMock()
    session.head.return_value = _response(200, {'Content-Length': '1234'})
    assert LinkResolver(session=session).content_length("https://x/a.mp3") == 1234


def test_diagnose_empty_bucket(storage):
    diagnosis = diagnose_storage(storage)
    assert diagnosis.files == []
    assert diagnosis.healthy


def test_diagnose_local_bucket(storage):
    storage.upload_bytes(b"abc", "a.mp3")
    diagnosis = diagnose_storage(storage)
    assert len(diagnosis.files) == 1
    assert diagnosis.public_check.ok
    assert diagnosis.signed_check is None
    assert diagnosis.healthy


def test_diagnose_falls_back_to_signed_url():
    storage = MagicMock()
    storage.list_files.return_value = [{'key': 'a.mp3', 'size': 3, 'modified': 0}]
    storage.get_public_url.return_value = "https://public.example.com/a.mp3"
    storage.get_signed_url.return_value = "https://signed.example.com/a.mp3"
    session = MagicMock()
    session.head.side_effect = [_response(404), _response(200)]

    diagnosis = diagnose_storage(storage, LinkResolver(storage, session=session))

    assert not diagnosis.public_check.ok
    assert diagnosis.signed_check.ok
    assert diagnosis.healthy


def test_diagnose_listing_error():
    storage = MagicMock()
    storage.list_files.side_effect = StorageError("Bucket not found", status=404)
    diagnosis = diagnose_storage(storage, LinkResolver(storage, session=MagicMock()))
    assert diagnosis.error == "Bucket not found"
    assert not diagnosis.healthy
