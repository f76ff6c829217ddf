"""Local filesystem storage for original receipt images."""

import io
import re
from datetime import UTC, datetime
from pathlib import Path, PurePath

from PIL import Image, UnidentifiedImageError

from receiptlens.logging import get_logger
from receiptlens.models import ImageFileInfo

logger = get_logger(__name__)

IMAGE_URL_PREFIX = "/storage/images"

_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class LocalImageStore:
    """Saves receipt images under an upload directory, re-encoded as JPEG.

    Images are shrunk to fit inside max_dimension x max_dimension (never
    enlarged). Bytes Pillow cannot decode are stored unchanged under their
    original extension.
    """

    def __init__(
        self, upload_dir: str | Path = "uploads", max_dimension: int = 2048, quality: int = 85
    ) -> None:
        self.upload_dir = Path(upload_dir)
        self.max_dimension = max_dimension
        self.quality = quality

    def save(self, image_bytes: bytes, image_id: str, filename: str | None = None) -> str:
        """Store an image and return the stored file name.

        Args:
            image_bytes: Raw uploaded bytes
            image_id: Extraction ID used as the file stem
            filename: Original upload name, used for the fallback extension

        Returns:
            File name relative to the upload directory
        """
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        stem = _UNSAFE_ID_CHARS.sub("_", image_id)

        try:
            with Image.open(io.BytesIO(image_bytes)) as img:
                img.thumbnail((self.max_dimension, self.max_dimension))
                if img.mode != "RGB":
                    img = img.convert("RGB")
                stored_name = f"{stem}.jpg"
                img.save(
                    self.upload_dir / stored_name,
                    format="JPEG",
                    quality=self.quality,
                    progressive=True,
                )
        except (UnidentifiedImageError, OSError) as e:
            extension = PurePath(filename or "").suffix.lower() or ".jpg"
            stored_name = f"{stem}{extension}"
            logger.warning(f"Image re-encoding failed ({e}); storing original bytes")
            (self.upload_dir / stored_name).write_bytes(image_bytes)

        return stored_name

    def url_for(self, stored_name: str) -> str:
        return f"{IMAGE_URL_PREFIX}/{stored_name}"

    def get_path(self, stored_name: str) -> Path:
        """Resolve a stored file name, rejecting anything outside the upload dir.

        Raises:
            FileNotFoundError: If the name is unsafe or the file does not exist
        """
        root = self.upload_dir.resolve()
        path = (root / stored_name).resolve()
        if path.parent != root or not path.is_file():
            raise FileNotFoundError(f"File not found: {stored_name}")
        return path

    def stats(self, stored_name: str) -> ImageFileInfo:
        """Size and creation time of a stored image.

        Raises:
            FileNotFoundError: If the name is unsafe or the file does not exist
        """
        stat = self.get_path(stored_name).stat()
        # st_birthtime is missing on most Linux filesystems
        created = getattr(stat, "st_birthtime", stat.st_mtime)
        return ImageFileInfo(
            file_name=stored_name,
            size=stat.st_size,
            created_at=datetime.fromtimestamp(created, UTC),
            url=self.url_for(stored_name),
        )

    def exists(self, stored_name: str) -> bool:
        try:
            self.get_path(stored_name)
        except FileNotFoundError:
            return False
        return True

    def delete(self, stored_name: str) -> bool:
        try:
            self.get_path(stored_name).unlink()
        except FileNotFoundError:
            return False
        return True
