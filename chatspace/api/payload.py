"""Request body helpers shared by routes that accept JSON or multipart uploads."""

import json
import logging
from typing import Any, Dict, Optional, Tuple, Type, TypeVar

from fastapi import HTTPException, Request, status
from pydantic import BaseModel, ValidationError
from starlette.datastructures import UploadFile

from chatspace.core.config import get_settings
from chatspace.services.image_processor import ImageProcessor, ImageTooLargeError
from chatspace.services.storage_service import get_storage_service

logger = logging.getLogger(__name__)
settings = get_settings()

SchemaT = TypeVar("SchemaT", bound=BaseModel)

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")

# Room for boundaries and text fields on top of the image itself
FORM_OVERHEAD_BYTES = 1024 * 1024


async def read_payload(request: Request, file_field: str) -> Tuple[Dict[str, Any], Optional[UploadFile]]:
    """
    Read a JSON or form body.

    Returns:
        Tuple of (fields, uploaded file under `file_field` or None)
    """
    content_type = request.headers.get("content-type", "").lower()

    if content_type.startswith(FORM_CONTENT_TYPES):
        reject_oversized_form(request)
        form = await request.form()
        fields = {key: value for key, value in form.items() if isinstance(value, str)}
        upload = form.get(file_field)
        if not isinstance(upload, UploadFile) or not upload.filename:
            upload = None
        return fields, upload

    body = await request.body()
    if not body:
        return {}, None
    try:
        data = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed JSON body")
    if not isinstance(data, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="JSON body must be an object")
    return data, None


def reject_oversized_form(request: Request) -> None:
    """Refuse a form whose declared length cannot fit one image under the upload limit."""
    content_length = request.headers.get("content-length")
    if not content_length or not content_length.isdigit():
        return
    if int(content_length) > settings.max_upload_size_bytes + FORM_OVERHEAD_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Image too large. Maximum size: {settings.max_upload_size_mb}MB",
        )


def parse_fields(schema: Type[SchemaT], fields: Dict[str, Any]) -> SchemaT:
    """Validate fields against `schema`, turning errors into a 400."""
    try:
        return schema.model_validate(fields)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{location}: {first.get('msg')}" if location else first.get("msg"),
        )


async def read_upload(upload: UploadFile) -> bytes:
    """
    Load at most one byte past the limit into memory.

    The form parser has already spooled the whole part to a temporary file by
    now; oversized requests with a declared length are turned away earlier by
    reject_oversized_form.
    """
    return await upload.read(settings.max_upload_size_bytes + 1)


async def store_image(content: bytes, folder: str) -> str:
    """
    Validate image bytes and hand them to the media host.

    Raises:
        HTTPException 413: larger than MAX_UPLOAD_SIZE_MB
        HTTPException 400: empty or not an image
        HTTPException 500: media host failed
    """
    try:
        mime_type, extension = ImageProcessor.validate_image(content, settings.max_upload_size_bytes)
    except ImageTooLargeError as e:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    success, url = await get_storage_service().upload_image(content, folder, extension, mime_type)
    if not success:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Image upload failed",
        )
    return url
