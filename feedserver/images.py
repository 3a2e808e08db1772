"""On-disk storage for post images."""
from __future__ import annotations

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Callable, Optional, Protocol

logger = logging.getLogger("feedserver.images")

ALLOWED_CONTENT_TYPES = frozenset({"image/png", "image/jpg", "image/jpeg"})
DEFAULT_URL_PREFIX = "images"


class Upload(Protocol):
    """The subset of :class:`fastapi.UploadFile` the image store relies on."""

    filename: Optional[str]
    content_type: Optional[str]
    file: BinaryIO


def _timestamp(now: datetime) -> str:
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ImageStore:
    """Store uploaded images and clean up the ones that are replaced or removed."""

    def __init__(
        self,
        directory: Path,
        *,
        url_prefix: str = DEFAULT_URL_PREFIX,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._directory = Path(directory)
        self._prefix = url_prefix.strip("/")
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def directory(self) -> Path:
        return self._directory

    def store(self, upload: Optional[Upload]) -> Optional[str]:
        """Persist ``upload`` and return its relative path.

        Uploads with an unsupported content type are skipped and ``None`` is
        returned; the caller decides whether a missing image is an error.
        """

        if upload is None or not upload.filename:
            return None
        if (upload.content_type or "").lower() not in ALLOWED_CONTENT_TYPES:
            logger.info(
                "Ignoring upload %s with unsupported content type %s",
                upload.filename,
                upload.content_type,
            )
            return None

        original = PurePosixPath(upload.filename.replace("\\", "/")).name
        if not original:
            return None
        filename = f"{_timestamp(self._clock())}-{original}"

        self._directory.mkdir(parents=True, exist_ok=True)
        destination = self._directory / filename
        with destination.open("wb") as buffer:
            shutil.copyfileobj(upload.file, buffer)

        logger.info("Stored image %s", filename)
        return f"{self._prefix}/{filename}"

    def remove(self, path: Optional[str]) -> None:
        """Delete the image at ``path``. Failures are logged and never raised."""

        if not path:
            return
        target = self._resolve(path)
        if target is None:
            logger.warning("Refusing to remove image outside the image directory: %s", path)
            return
        try:
            target.unlink()
        except FileNotFoundError:
            logger.warning("Image %s was already removed", path)
        except OSError:
            logger.warning("Failed to remove image %s", path, exc_info=True)
        else:
            logger.info("Removed image %s", path)

    def _resolve(self, path: str) -> Optional[Path]:
        relative = PurePosixPath(path.replace("\\", "/").lstrip("/"))
        parts = relative.parts
        if parts and parts[0] == self._prefix:
            parts = parts[1:]
        if not parts:
            return None
        root = self._directory.resolve(strict=False)
        candidate = root.joinpath(*parts).resolve(strict=False)
        if candidate == root or root not in candidate.parents:
            return None
        return candidate


__all__ = ["ALLOWED_CONTENT_TYPES", "ImageStore", "Upload"]
