from __future__ import annotations
import io
import logging
import os
import uuid
from PIL import Image, ImageDraw, UnidentifiedImageError

from errors import InvalidInputError, NotFoundError

logger = logging.getLogger(__name__)


class ImageService:
    """Store uploaded session photos and avatars on local disk."""

    BUCKETS = ("sessions", "avatars")
    FORMATS = {"PNG": "png", "JPEG": "jpg", "GIF": "gif", "WEBP": "webp"}
    AVATAR_COLORS = ["#f97316", "#0ea5e9", "#10b981", "#8b5cf6", "#ef4444"]

    def __init__(self, upload_dir: str = "uploads") -> None:
        self.upload_dir = upload_dir
        for bucket in self.BUCKETS:
            os.makedirs(os.path.join(upload_dir, bucket), exist_ok=True)

    def save(self, bucket: str, data: bytes) -> str:
        """Validate ``data`` as an image, store it and return its public path."""
        if bucket not in self.BUCKETS:
            raise ValueError(f"unknown bucket {bucket}")
        try:
            with Image.open(io.BytesIO(data)) as img:
                fmt = img.format
                img.verify()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError):
            raise InvalidInputError("Uploaded file is not a valid image")
        ext = self.FORMATS.get(fmt or "")
        if ext is None:
            raise InvalidInputError(f"Unsupported image format {fmt}")
        name = f"{uuid.uuid4().hex}.{ext}"
        with open(os.path.join(self.upload_dir, bucket, name), "wb") as f:
            f.write(data)
        logger.info("stored %s image %s (%d bytes)", bucket, name, len(data))
        return f"/uploads/{bucket}/{name}"

    def discard(self, reference: str | None) -> None:
        """Remove a stored image; unknown references are ignored."""
        path = self.path_for(reference)
        if path is not None:
            os.remove(path)
            logger.info("discarded image %s", reference)

    def resolve(self, bucket: str, name: str) -> str:
        """Return the file path for a stored image or raise ``NotFoundError``."""
        if bucket not in self.BUCKETS or os.path.basename(name) != name or name.startswith("."):
            raise NotFoundError("Image not found")
        path = os.path.join(self.upload_dir, bucket, name)
        if not os.path.isfile(path):
            raise NotFoundError("Image not found")
        return path

    def path_for(self, reference: str | None) -> str | None:
        """Map a ``/uploads/<bucket>/<name>`` reference to a local file, if stored."""
        if not reference or not reference.startswith("/uploads/"):
            return None
        parts = reference[len("/uploads/"):].split("/")
        if len(parts) != 2:
            return None
        try:
            return self.resolve(parts[0], parts[1])
        except NotFoundError:
            return None

    def default_avatar(self, user_id: int) -> bytes:
        color = self.AVATAR_COLORS[user_id % len(self.AVATAR_COLORS)]
        return self._generate_avatar(color)

    def _generate_avatar(self, color: str) -> bytes:
        img = Image.new("RGBA", (64, 64), (255, 255, 255, 0))
        draw = ImageDraw.Draw(img)
        draw.ellipse((8, 8, 56, 56), fill=color)
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        return buf.getvalue()
