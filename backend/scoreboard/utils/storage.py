"""Storage for images attached to habit entries.

Uploads are verified with Pillow and written under the configured upload
directory with a random `uuid4` name. The extension comes from the detected
image format, never from the client's filename, because `/uploads/` serves
files with a content type derived from it.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Optional
from uuid import uuid4

from PIL import Image

_LOGGER = logging.getLogger("scoreboard.storage")


class UploadRejected(ValueError):
    """The uploaded file is not an acceptable image."""


# Pillow format name -> stored extension; anything else is refused
IMAGE_EXTENSIONS = {
    "PNG": ".png",
    "JPEG": ".jpg",
    "GIF": ".gif",
    "WEBP": ".webp",
    "BMP": ".bmp",
}


def _verify_image(payload: bytes) -> str:
    """Return the stored extension for `payload` or raise `UploadRejected`."""
    try:
        img = Image.open(io.BytesIO(payload))
        fmt = img.format
        img.verify()
    except Exception:
        raise UploadRejected("Image must be a valid picture file")
    if fmt not in IMAGE_EXTENSIONS:
        raise UploadRejected("Image must be a PNG, JPEG, GIF, WebP or BMP file")
    return IMAGE_EXTENSIONS[fmt]


class FileStorage:
    """Write and remove uploaded images inside `root`."""

    def __init__(self, root: Path, max_bytes: int):
        self.root = Path(root)
        self.max_bytes = max_bytes
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            _LOGGER.exception("could not create upload directory %s", self.root)
            raise RuntimeError("Failed to create upload directory") from exc

    def store(self, upload) -> Optional[str]:
        """Persist an uploaded image and return its generated filename.

        `upload` is a Starlette/FastAPI `UploadFile`. A missing upload or a
        browser's empty file field yields `None`.
        """
        if upload is None or not upload.filename:
            return None
        payload = upload.file.read(self.max_bytes + 1)
        if not payload:
            return None
        if len(payload) > self.max_bytes:
            raise UploadRejected(f"Image must be at most {self.max_bytes // 1024} KB")
        filename = uuid4().hex + _verify_image(payload)
        try:
            (self.root / filename).write_bytes(payload)
        except OSError as exc:
            _LOGGER.exception("failed to store upload %s", filename)
            raise RuntimeError("Failed to store file") from exc
        _LOGGER.info("stored upload %s (%d bytes)", filename, len(payload))
        return filename

    def delete(self, filename: Optional[str]) -> None:
        """Remove a previously stored file; missing files are ignored."""
        if not filename:
            return
        path = self.root / Path(filename).name
        try:
            path.unlink(missing_ok=True)
        except OSError:
            _LOGGER.warning("could not remove stored upload %s", filename, exc_info=True)
