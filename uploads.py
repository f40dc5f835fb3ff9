"""
Image upload adapter.

``validate_image`` enforces the size and type rules; the storage classes
persist accepted bytes under a unique name and hand back a public URL.
"""

import io
import logging
import re
import secrets
import time
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError

from config import UPLOAD_URL_PREFIX, Settings
from errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_TYPES = re.compile(r"jpeg|jpg|png|gif")
ALLOWED_EXTENSIONS = {".jpeg", ".jpg", ".png", ".gif"}

SIGNATURES = (
    (b"\xff\xd8\xff", "jpeg"),
    (b"\x89PNG\r\n\x1a\n", "png"),
    (b"GIF87a", "gif"),
    (b"GIF89a", "gif"),
)


def sniff_image_type(data: bytes) -> Optional[str]:
    for signature, kind in SIGNATURES:
        if data.startswith(signature):
            return kind
    return None


def validate_image(data: bytes, content_type: Optional[str], filename: Optional[str], max_bytes: int) -> str:
    """Check an upload against the allowed types and size, returning its extension."""
    if len(data) > max_bytes:
        raise ValidationError(
            f"File too large: limit is {max_bytes // (1024 * 1024)} MB", field="image"
        )
    if not data:
        raise ValidationError("Uploaded file is empty", field="image")

    extension = Path(filename or "").suffix.lower()
    if not ALLOWED_TYPES.search(content_type or "") or extension not in ALLOWED_EXTENSIONS:
        raise ValidationError("Error: File type not supported", field="image")
    if sniff_image_type(data) is None:
        raise ValidationError("Error: File content is not a supported image", field="image")
    return extension


class ImageStorage:
    """Validates and persists images; subclasses supply the backend."""

    def __init__(self, max_bytes: int):
        self.max_bytes = max_bytes

    def store(self, data: bytes, content_type: Optional[str], filename: Optional[str], base_url: str = "") -> str:
        extension = validate_image(data, content_type, filename, self.max_bytes)
        url = self._save(data, extension, base_url)
        logger.info("Stored image %s (%d bytes)", url, len(data))
        return url

    def discard(self, url: Optional[str]) -> None:
        """Remove the asset behind ``url`` if this backend owns it."""
        raise NotImplementedError

    def _save(self, data: bytes, extension: str, base_url: str) -> str:
        raise NotImplementedError


class LocalImageStorage(ImageStorage):
    def __init__(self, directory: Path, max_bytes: int):
        super().__init__(max_bytes)
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def unique_name(extension: str) -> str:
        return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}{extension}"

    def _save(self, data: bytes, extension: str, base_url: str) -> str:
        name = self.unique_name(extension)
        try:
            (self.directory / name).write_bytes(data)
        except OSError as exc:
            raise StorageError("File upload failed", details={"reason": str(exc)}) from exc
        return f"{base_url.rstrip('/')}{UPLOAD_URL_PREFIX}/{name}"

    def discard(self, url: Optional[str]) -> None:
        if not url:
            return
        path = urlparse(url).path
        if not path.startswith(UPLOAD_URL_PREFIX + "/"):
            return
        # Only the final path component, never a path relative to the directory.
        target = self.directory / Path(path).name
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError("Could not remove stored image", details={"reason": str(exc)}) from exc
        logger.info("Removed image %s", target.name)


class CloudinaryImageStorage(ImageStorage):
    def __init__(self, settings: Settings):
        super().__init__(settings.max_upload_bytes)
        self.folder = settings.cloudinary_folder
        # Without explicit credentials the SDK reads CLOUDINARY_URL itself.
        if settings.cloudinary_cloud_name:
            cloudinary.config(
                cloud_name=settings.cloudinary_cloud_name,
                api_key=settings.cloudinary_api_key,
                api_secret=settings.cloudinary_api_secret,
                secure=True,
            )

    def _save(self, data: bytes, extension: str, base_url: str) -> str:
        try:
            result = cloudinary.uploader.upload(io.BytesIO(data), folder=self.folder, resource_type="image")
        except CloudinaryError as exc:
            raise StorageError("File upload failed", details={"reason": str(exc)}) from exc
        return result["secure_url"]

    @staticmethod
    def public_id(url: str) -> Optional[str]:
        """``.../image/upload/v1712345/folder/name.png`` -> ``folder/name``."""
        path = urlparse(url).path
        marker = "/upload/"
        if marker not in path:
            return None
        parts = path.split(marker, 1)[1].split("/")
        if parts and re.fullmatch(r"v\d+", parts[0]):
            parts = parts[1:]
        if not parts or not parts[-1]:
            return None
        parts[-1] = parts[-1].rsplit(".", 1)[0]
        return "/".join(parts)

    def discard(self, url: Optional[str]) -> None:
        public_id = self.public_id(url) if url else None
        if not public_id:
            return
        try:
            cloudinary.uploader.destroy(public_id, resource_type="image")
        except CloudinaryError as exc:
            raise StorageError("Could not remove stored image", details={"reason": str(exc)}) from exc
        logger.info("Removed cloud image %s", public_id)


def build_storage(settings: Settings) -> ImageStorage:
    if settings.upload_backend == "cloudinary":
        return CloudinaryImageStorage(settings)
    if settings.uses_local_storage:
        return LocalImageStorage(settings.upload_dir, settings.max_upload_bytes)
    raise ValueError(f"Unknown UPLOAD_BACKEND {settings.upload_backend!r}")
