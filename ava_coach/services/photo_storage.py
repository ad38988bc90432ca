import io
import logging
import os
import uuid

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger("ava_coach.photo_storage")

MAX_IMAGE_SIZE = 1024


class InvalidImageError(ValueError):
    pass


class PhotoStorage:
    """Saves meal photos to disk, downscaled so the longest side is at most MAX_IMAGE_SIZE."""

    def __init__(self, upload_dir: str, public_base_url: str = "", max_size: int = MAX_IMAGE_SIZE):
        self.upload_dir = upload_dir
        self.public_base_url = public_base_url.rstrip("/")
        self.max_size = max_size
        os.makedirs(self.upload_dir, exist_ok=True)

    def _resize_image(self, image_bytes: bytes) -> bytes:
        """Keep the aspect ratio and re-encode as JPEG."""
        try:
            img = Image.open(io.BytesIO(image_bytes))
            img.load()
        except (UnidentifiedImageError, OSError) as e:
            raise InvalidImageError(f"Not a valid image: {e}") from e

        orig_size = len(image_bytes)
        if img.mode != "RGB":
            img = img.convert("RGB")

        width, height = img.size
        if width > self.max_size or height > self.max_size:
            if width > height:
                new_width = self.max_size
                new_height = int(height * (self.max_size / width))
            else:
                new_height = self.max_size
                new_width = int(width * (self.max_size / height))
            img = img.resize((new_width, new_height), Image.Resampling.LANCZOS)
            logger.info(
                "Image resized: %dx%d -> %dx%d", width, height, new_width, new_height
            )

        output = io.BytesIO()
        img.save(output, format="JPEG", quality=85)
        resized_bytes = output.getvalue()
        logger.info(
            "Image stored: %.1fKB -> %.1fKB", orig_size / 1024, len(resized_bytes) / 1024
        )
        return resized_bytes

    def save(self, image_bytes: bytes) -> tuple[str, int]:
        """Store an image and return (filename, stored size in bytes)."""
        data = self._resize_image(image_bytes)
        filename = f"{uuid.uuid4().hex}.jpg"
        with open(os.path.join(self.upload_dir, filename), "wb") as f:
            f.write(data)
        return filename, len(data)

    def url_for(self, filename: str) -> str:
        return f"{self.public_base_url}/uploads/{filename}"
