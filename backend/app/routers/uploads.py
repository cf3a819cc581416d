"""
Logo upload router.

Endpoints:
  POST   /api/uploads            — validate and store an uploaded logo
  GET    /api/uploads/{file_id}  — stored upload metadata
  DELETE /api/uploads/{file_id}  — remove an upload
"""

import logging

from fastapi import APIRouter, File, HTTPException, UploadFile

from app import config
from app.models.logo import FileData
from app.services import job_store
from app.services.file_validator import determine_file_type, validate_file
from app.services.job_store import JobNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter()


def _error(status_code: int, message: str, error_code: str, **extra) -> HTTPException:
    """Build an HTTPException with a structured detail payload."""
    return HTTPException(
        status_code=status_code,
        detail={"detail": message, "error_code": error_code, **extra},
    )


def _size_limit_message() -> str:
    return f"File size exceeds the maximum limit of {config.MAX_FILE_SIZE_BYTES / 1024 / 1024:g}MB."


@router.post("", status_code=201)
async def upload_logo(file: UploadFile = File(...)) -> dict:
    """
    Validate an uploaded logo (SVG, PNG, JPEG or CSS) and store it for
    processing.

    Returns the file_id to pass to POST /api/jobs together with the
    validator's warnings.

    Raises:
        400 file_too_large / unsupported_file_type / validation_failed
    """
    # Cheap size check before reading the body
    if file.size is not None and file.size > config.MAX_FILE_SIZE_BYTES:
        raise _error(400, _size_limit_message(), "file_too_large")

    content = await file.read()
    if len(content) > config.MAX_FILE_SIZE_BYTES:
        raise _error(400, _size_limit_message(), "file_too_large")

    filename = file.filename or "upload"
    mime_type = file.content_type or ""

    file_type = determine_file_type(mime_type, filename)
    if file_type is None:
        raise _error(
            400,
            "Unsupported file type. Please upload SVG, PNG, JPEG, or CSS files.",
            "unsupported_file_type",
        )

    file_data = FileData(
        buffer=content,
        original_name=filename,
        mime_type=mime_type,
        size=len(content),
        file_type=file_type,
    )

    validation = validate_file(file_data)
    if not validation.valid:
        raise _error(
            400,
            "File validation failed",
            "validation_failed",
            errors=validation.errors,
            warnings=validation.warnings,
        )

    file_id = job_store.save_upload(file_data)

    return {
        "file_id": file_id,
        "file_name": filename,
        "file_type": file_type.value,
        "size": len(content),
        "validation": validation.model_dump(),
    }


@router.get("/{file_id}")
async def get_upload(file_id: str) -> dict:
    """Metadata of a stored upload (the file content is not returned)."""
    try:
        return job_store.load_upload_metadata(file_id)
    except JobNotFoundError as e:
        raise _error(404, e.message, "file_not_found")


@router.delete("/{file_id}")
async def delete_upload(file_id: str) -> dict:
    if not job_store.delete_upload(file_id):
        raise _error(404, f"File '{file_id}' not found", "file_not_found")
    return {"file_id": file_id, "deleted": True}
