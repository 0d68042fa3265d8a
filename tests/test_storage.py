"""Tests for voucher image storage."""
import pytest

from vouchervault.core.errors import ValidationFailed
from vouchervault.services.storage_service import ImageStorage

PUBLIC_URL = "http://localhost:8000/uploads"


@pytest.fixture
def storage(tmp_path):
    return ImageStorage(str(tmp_path / "uploads"), PUBLIC_URL + "/", max_size=1024)


@pytest.mark.asyncio
async def test_upload_and_delete(storage):
    url = await storage.upload_image(b"\x89PNG data", "image/png")

    name = storage.filename_from_url(url)
    assert url.startswith(PUBLIC_URL + "/voucher-")
    assert name.endswith(".png")
    assert (storage.upload_dir / name).read_bytes() == b"\x89PNG data"

    assert await storage.delete_image(url) is True
    assert not (storage.upload_dir / name).exists()
    # Second delete is harmless
    assert await storage.delete_image(url) is False


@pytest.mark.asyncio
@pytest.mark.parametrize("data, content_type", [
    (b"data", "application/pdf"),
    (b"", "image/jpeg"),
    (b"x" * 2048, "image/jpeg"),
])
async def test_upload_rejects_bad_images(storage, data, content_type):
    with pytest.raises(ValidationFailed):
        await storage.upload_image(data, content_type)


@pytest.mark.asyncio
async def test_foreign_urls_are_ignored(storage):
    assert await storage.delete_image("https://example.com/logo.png") is False
    assert await storage.delete_image(None) is False
    assert storage.filename_from_url(PUBLIC_URL + "/secret.txt") is None
