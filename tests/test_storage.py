import pytest

from app.core.exceptions import StorageError
from app.core.rate_limit import RateLimiter
from app.services.storage import manual_file_key, sanitize_filename


def test_upload_download_and_list(storage):
    storage.upload("manual-pages", "3/page_1.jpg", b"one")
    storage.upload("manual-pages", "3/page_2.jpg", b"two")
    storage.upload("manual-pages", "4/page_1.jpg", b"other")

    assert storage.download("manual-pages", "3/page_2.jpg") == b"two"
    assert storage.list("manual-pages", "3/") == ["3/page_1.jpg", "3/page_2.jpg"]
    assert storage.public_url("manual-pages", "3/page_1.jpg") == "http://testserver/api/files/manual-pages/3/page_1.jpg"


def test_upload_without_upsert_does_not_overwrite(storage):
    storage.upload("manuals", "a.pdf", b"first")

    with pytest.raises(StorageError):
        storage.upload("manuals", "a.pdf", b"second")
    storage.upload("manuals", "a.pdf", b"second", upsert=True)
    assert storage.download("manuals", "a.pdf") == b"second"


def test_remove_prefix_only_touches_one_folder(storage):
    storage.upload("manual-pages", "3/page_1.jpg", b"one")
    storage.upload("manual-pages", "31/page_1.jpg", b"other")

    assert storage.remove_prefix("manual-pages", "3/") == 1
    assert storage.list("manual-pages") == ["31/page_1.jpg"]


def test_keys_cannot_escape_the_bucket(storage):
    with pytest.raises(StorageError):
        storage.local_path("manuals", "../../etc/passwd")
    with pytest.raises(StorageError):
        storage.local_path("../outside", "x")


def test_missing_object(storage):
    with pytest.raises(StorageError):
        storage.download("manuals", "missing.pdf")


def test_filename_sanitizing():
    assert sanitize_filename("../../Manual de Serviço (v2).pdf") == "Manual_de_Serviço_v2.pdf"
    assert sanitize_filename(".hidden.pdf") == "hidden.pdf"
    assert manual_file_key("op manual.pdf").endswith("_op_manual.pdf")


def test_rate_limiter_windows():
    limiter = RateLimiter(requests_per_minute=2, requests_per_hour=3)

    assert limiter.is_allowed("10.0.0.1", now=0)[0]
    assert limiter.is_allowed("10.0.0.1", now=1)[0]
    assert not limiter.is_allowed("10.0.0.1", now=2)[0]
    assert limiter.is_allowed("10.0.0.2", now=2)[0]
    assert limiter.is_allowed("10.0.0.1", now=61)[0]
    assert not limiter.is_allowed("10.0.0.1", now=62)[0]
    assert limiter.is_allowed("10.0.0.1", now=3700)[0]
