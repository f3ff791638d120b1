"""Validation for user-supplied images (avatars and message attachments)."""

import base64
import binascii
import logging
import re
from typing import Tuple

import magic  # pip install python-magic (or python-magic-bin on Windows)

logger = logging.getLogger(__name__)

# data:image/png;base64,iVBORw0...
DATA_URL_REGEX = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^,;]+)*),(?P<data>.*)$", re.DOTALL)

# Allowed MIME types, mapped to the extension used for the stored object
IMAGE_MIME_TO_EXTENSION = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/bmp": "bmp",
    "image/avif": "avif",
}


class ImageTooLargeError(ValueError):
    """Image exceeds the configured upload limit."""


class ImageProcessor:
    """Checks that uploaded bytes really are an image we accept."""

    @staticmethod
    def detect_mime_type(content: bytes) -> str:
        """Detect MIME type using libmagic (prevents content-type spoofing)."""
        return magic.from_buffer(content[:4096], mime=True)

    @staticmethod
    def validate_image(content: bytes, max_bytes: int) -> Tuple[str, str]:
        """
        Validate raw image bytes.

        Returns:
            Tuple of (mime_type, file_extension)

        Raises:
            ImageTooLargeError: content is larger than `max_bytes`
            ValueError: content is empty or not an allowed image type
        """
        if not content:
            raise ValueError("Image file is empty")
        if len(content) > max_bytes:
            raise ImageTooLargeError(f"Image too large. Maximum size: {max_bytes // (1024 * 1024)}MB")

        mime_type = ImageProcessor.detect_mime_type(content)
        extension = IMAGE_MIME_TO_EXTENSION.get(mime_type)
        if not extension:
            logger.info(f"Rejected upload with MIME type {mime_type}")
            raise ValueError("Only image files are allowed!")
        return mime_type, extension

    @staticmethod
    def decode_data_url(data_url: str) -> bytes:
        """
        Decode a base64 `data:` URL (or a bare base64 string) into bytes.

        Raises:
            ValueError: not base64, or a non-base64 data URL
        """
        payload = data_url.strip()
        match = DATA_URL_REGEX.match(payload)
        if match:
            if ";base64" not in match.group("params"):
                raise ValueError("Image data URL must be base64 encoded")
            payload = match.group("data")

        try:
            return base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError("Image is not valid base64 data") from e
