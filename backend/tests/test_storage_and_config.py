import io
from pathlib import Path

import pytest
from PIL import Image

from conftest import make_png, make_upload
from scoreboard.config import Settings
from scoreboard.utils.storage import FileStorage, UploadRejected


def _image_bytes(fmt: str) -> bytes:
    bio = io.BytesIO()
    Image.new("RGB", (16, 16), "blue").save(bio, format=fmt)
    return bio.getvalue()


def test_store_names_file_after_detected_format(storage):
    first = storage.store(make_upload(make_png(), "Holiday.Photo.JPEG"))
    second = storage.store(make_upload(_image_bytes("JPEG"), "Holiday.Photo.png"))
    assert first.endswith(".png")
    assert second.endswith(".jpg")
    assert (storage.root / first).exists()
    assert (storage.root / second).exists()


def test_store_generates_unique_names(storage):
    first = storage.store(make_upload(make_png(), "noext"))
    second = storage.store(make_upload(make_png(), "noext"))
    assert first != second
    assert first.endswith(".png")


def test_image_named_html_is_stored_as_image(storage):
    name = storage.store(make_upload(make_png() + b"<script>alert(1)</script>", "evil.html"))
    assert name.endswith(".png")
    assert not name.endswith(".html")


def test_store_rejects_unsupported_image_formats(storage):
    with pytest.raises(UploadRejected, match="PNG, JPEG"):
        storage.store(make_upload(_image_bytes("TIFF"), "scan.tiff"))
    assert list(storage.root.iterdir()) == []


def test_store_write_failure_raises_runtime_error(storage, monkeypatch):
    def fail(self, data):
        raise OSError("disk full")

    monkeypatch.setattr(Path, "write_bytes", fail)
    with pytest.raises(RuntimeError, match="Failed to store file"):
        storage.store(make_upload(make_png()))


def test_store_ignores_missing_upload(storage):
    assert storage.store(None) is None


def test_store_rejects_non_images(storage):
    with pytest.raises(UploadRejected):
        storage.store(make_upload(b"definitely not an image", "x.gif"))


def test_delete_is_safe_for_unknown_and_traversal_names(storage, tmp_path):
    outside = tmp_path / "keep.txt"
    outside.write_text("keep")
    storage.delete("../keep.txt")
    storage.delete("missing.png")
    storage.delete(None)
    assert outside.exists()


def test_storage_creates_nested_directory(tmp_path):
    root = tmp_path / "a" / "b" / "uploads"
    FileStorage(root, max_bytes=1024)
    assert root.is_dir()


def test_settings_reject_default_secret_outside_dev(monkeypatch):
    monkeypatch.setenv("ENV", "prod")
    monkeypatch.delenv("JWT_SECRET", raising=False)
    monkeypatch.delenv("ALLOW_INSECURE_JWT", raising=False)
    with pytest.raises(RuntimeError):
        Settings()
    monkeypatch.setenv("JWT_SECRET", "s3cret")
    assert Settings().ENV == "prod"


def test_settings_read_upload_dir(monkeypatch, tmp_path):
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "up"))
    monkeypatch.setenv("MAX_UPLOAD_BYTES", "2048")
    s = Settings()
    assert s.UPLOAD_DIR == (tmp_path / "up").resolve()
    assert s.MAX_UPLOAD_BYTES == 2048
