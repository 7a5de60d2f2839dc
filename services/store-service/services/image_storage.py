"""Product image storage on the local upload directory."""
import logging
import os
import secrets
import time
from typing import Optional
from fastapi import UploadFile

from config import MAX_IMAGE_SIZE, UPLOAD_DIR
from errors import AppError

logger = logging.getLogger(__name__)

PUBLIC_PREFIX = "/uploads"


class ImageStorage:
    """Stores uploaded images under UPLOAD_DIR, served statically at /uploads."""

    def __init__(self, upload_dir: str = UPLOAD_DIR, max_size: int = MAX_IMAGE_SIZE):
        self.upload_dir = upload_dir
        self.max_size = max_size

    async def save_product_image(self, upload: UploadFile) -> str:
        """
        Validate and store an uploaded product image.

        Args:
            upload: Multipart file part

        Returns:
            Public URL of the stored file, e.g. /uploads/products/product-<ms>-<rand>.jpg

        Raises:
            AppError: 400 for a non-image content type or a file over the size limit
        """
        if not (upload.content_type or "").startswith("image/"):
            raise AppError("Only image files are allowed", 400)

        content = await upload.read(self.max_size + 1)
        if len(content) > self.max_size:
            raise AppError(f"Image exceeds the maximum size of {self.max_size // (1024 * 1024)}MB", 400)

        _, extension = os.path.splitext(upload.filename or "")
        filename = f"product-{int(time.time() * 1000)}-{secrets.randbelow(10 ** 9)}{extension.lower()}"
        directory = os.path.join(self.upload_dir, "products")
        os.makedirs(directory, exist_ok=True)
        with open(os.path.join(directory, filename), "wb") as handle:
            handle.write(content)

        logger.info("Stored product image", extra={
            "image_file": filename,
            "size_bytes": len(content),
            "content_type": upload.content_type
        })
        return f"{PUBLIC_PREFIX}/products/{filename}"

    def delete_image(self, url: Optional[str]) -> None:
        """Remove a previously stored image. URLs outside /uploads are ignored."""
        if not url or not url.startswith(f"{PUBLIC_PREFIX}/"):
            return
        relative = url[len(PUBLIC_PREFIX) + 1:]
        path = os.path.normpath(os.path.join(self.upload_dir, relative))
        if not path.startswith(os.path.normpath(self.upload_dir)):
            return
        try:
            os.remove(path)
        except FileNotFoundError:
            logger.warning("Image already removed", extra={"image_url": url})
