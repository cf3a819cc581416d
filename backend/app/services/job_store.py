"""
Filesystem store for uploads, job status records and job results.

Uploads live in config.UPLOAD_DIR as <file_id>.<ext> plus a
<file_id>.meta.json sidecar. Job artifacts live in config.RESULTS_DIR as
<process_id>.<kind> files. Everything expires after FILE_EXPIRY_SECONDS
(see cleanup_expired_files).

Public API:
  save_upload(file_data)            -> file_id
  load_upload(file_id)              -> FileData
  upload_exists(file_id)            -> bool
  delete_upload(file_id)            -> bool
  new_process_id()                  -> str
  save_status(process_id, status)
  load_status(process_id)           -> JobStatus
  save_result(process_id, result)
  load_result(process_id)           -> ProcessingResult
  cleanup_expired_files(max_age)    -> int
"""

import json
import logging
import re
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from app import config
from app.models.logo import (
    FileData,
    FileType,
    JobState,
    JobStatus,
    ProcessingMetadata,
    ProcessingResult,
    ProcessingWarning,
)
from app.services.image_processor import convert_to_base64_data_uri

logger = logging.getLogger(__name__)

_ID_RE = re.compile(r"^[A-Za-z0-9-]{1,64}$")

_EXTENSIONS = {
    FileType.SVG: ".svg",
    FileType.PNG: ".png",
    FileType.JPEG: ".jpg",
    FileType.CSS: ".css",
}


class JobNotFoundError(Exception):
    """Raised when an upload or job record does not exist (or has expired)."""
    def __init__(self, message: str, error_code: str = "not_found"):
        super().__init__(message)
        self.error_code = error_code
        self.message = message


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _check_id(value: str, kind: str) -> str:
    if not value or not _ID_RE.match(value):
        raise JobNotFoundError(f"{kind} '{value}' not found")
    return value


def _upload_dir() -> Path:
    path = Path(config.UPLOAD_DIR)
    path.mkdir(parents=True, exist_ok=True)
    return path


def _results_dir() -> Path:
    path = Path(config.RESULTS_DIR)
    path.mkdir(parents=True, exist_ok=True)
    return path


def _result_path(process_id: str, suffix: str) -> Path:
    return _results_dir() / f"{process_id}{suffix}"


def _write_json(path: Path, payload: dict) -> None:
    # Write-then-rename so readers never see a half-written record
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    tmp.replace(path)


def _read_json(path: Path) -> Optional[dict]:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None


# ---------------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------------

def save_upload(file_data: FileData) -> str:
    """Persist an uploaded file and return its new file_id."""
    file_id = str(uuid.uuid4())
    directory = _upload_dir()
    file_type = FileType(file_data.file_type)

    (directory / f"{file_id}{_EXTENSIONS[file_type]}").write_bytes(file_data.buffer)
    _write_json(directory / f"{file_id}.meta.json", {
        "file_id": file_id,
        "original_name": file_data.original_name,
        "mime_type": file_data.mime_type,
        "size": file_data.size,
        "file_type": file_type.value,
        "uploaded_at": _now_iso(),
    })
    logger.info("Stored upload %s (%s, %d bytes)", file_id, file_data.original_name, file_data.size)
    return file_id


def load_upload(file_id: str) -> FileData:
    """
    Raises:
        JobNotFoundError: no upload with this id (or it has expired).
    """
    _check_id(file_id, "File")
    directory = _upload_dir()
    meta = _read_json(directory / f"{file_id}.meta.json")
    if meta is None:
        raise JobNotFoundError(f"File '{file_id}' not found")

    file_type = FileType(meta["file_type"])
    try:
        buffer = (directory / f"{file_id}{_EXTENSIONS[file_type]}").read_bytes()
    except FileNotFoundError:
        raise JobNotFoundError(f"File '{file_id}' not found")

    return FileData(
        buffer=buffer,
        original_name=meta["original_name"],
        mime_type=meta["mime_type"],
        size=meta["size"],
        file_type=file_type,
    )


def load_upload_metadata(file_id: str) -> dict:
    _check_id(file_id, "File")
    meta = _read_json(_upload_dir() / f"{file_id}.meta.json")
    if meta is None:
        raise JobNotFoundError(f"File '{file_id}' not found")
    return meta


def upload_exists(file_id: str) -> bool:
    if not file_id or not _ID_RE.match(file_id):
        return False
    return (_upload_dir() / f"{file_id}.meta.json").exists()


def delete_upload(file_id: str) -> bool:
    """Remove an upload and its sidecar. Returns False when nothing existed."""
    if not file_id or not _ID_RE.match(file_id):
        return False
    deleted = False
    for path in _upload_dir().glob(f"{file_id}.*"):
        path.unlink(missing_ok=True)
        deleted = True
    if deleted:
        logger.info("Deleted upload %s", file_id)
    return deleted


# ---------------------------------------------------------------------------
# Job status and results
# ---------------------------------------------------------------------------

def new_process_id() -> str:
    return str(uuid.uuid4())


def save_status(process_id: str, status: JobStatus) -> None:
    _check_id(process_id, "Job")
    _write_json(_result_path(process_id, ".status.json"), status.model_dump(mode="json"))


def update_status(
    process_id: str,
    state: JobState,
    step: str,
    progress: int,
    message: str = "",
    error: Optional[str] = None,
) -> JobStatus:
    status = JobStatus(
        status=state,
        step=step,
        progress=progress,
        message=message,
        error=error,
        updated_at=_now_iso(),
    )
    save_status(process_id, status)
    return status


def load_status(process_id: str) -> JobStatus:
    """A job with no status record yet is reported as pending."""
    _check_id(process_id, "Job")
    data = _read_json(_result_path(process_id, ".status.json"))
    if data is None:
        return JobStatus(
            status=JobState.PENDING,
            step="validating",
            progress=0,
            message="Waiting to start processing",
            updated_at=_now_iso(),
        )
    return JobStatus.model_validate(data)


def save_result(process_id: str, result: ProcessingResult) -> None:
    """Write every artifact of a finished job and mark it complete."""
    _check_id(process_id, "Job")
    raster_suffix = ".jpg" if result.fallback_mime_type == "image/jpeg" else ".png"
    original = result.original_file

    _result_path(process_id, ".html").write_text(result.html_snippet, encoding="utf-8")
    _result_path(process_id, raster_suffix).write_bytes(result.png_fallback)
    _result_path(process_id, ".vml").write_text(result.vml_code, encoding="utf-8")
    _result_path(process_id, ".source").write_bytes(original.buffer)
    if result.optimized_svg is not None:
        _result_path(process_id, ".svg").write_text(result.optimized_svg, encoding="utf-8")

    _write_json(_result_path(process_id, ".meta.json"), {
        "process_id": process_id,
        "original_file": {
            "original_name": original.original_name,
            "mime_type": original.mime_type,
            "size": original.size,
            "file_type": FileType(original.file_type).value,
        },
        "fallback_mime_type": result.fallback_mime_type,
        "png_is_placeholder": result.png_is_placeholder,
        "vml_is_placeholder": result.vml_is_placeholder,
        "generate_previews": result.generate_previews,
        "has_svg": result.optimized_svg is not None,
        "warnings": [w.model_dump(mode="json") for w in result.warnings],
        "metadata": result.metadata.model_dump(mode="json"),
    })

    update_status(process_id, JobState.COMPLETE, "complete", 100, "Processing complete")


def load_result(process_id: str) -> ProcessingResult:
    """
    Rebuild a ProcessingResult from its stored artifacts.

    Raises:
        JobNotFoundError: the job has no stored result.
    """
    _check_id(process_id, "Job")
    meta = _read_json(_result_path(process_id, ".meta.json"))
    if meta is None:
        raise JobNotFoundError(f"Result for job '{process_id}' not found")

    raster_suffix = ".jpg" if meta["fallback_mime_type"] == "image/jpeg" else ".png"
    try:
        html = _result_path(process_id, ".html").read_text(encoding="utf-8")
        raster = _result_path(process_id, raster_suffix).read_bytes()
        vml = _result_path(process_id, ".vml").read_text(encoding="utf-8")
        source = _result_path(process_id, ".source").read_bytes()
        svg = _result_path(process_id, ".svg").read_text(encoding="utf-8") if meta["has_svg"] else None
    except FileNotFoundError as e:
        raise JobNotFoundError(f"Result for job '{process_id}' is incomplete: {e.filename}")

    original = meta["original_file"]
    return ProcessingResult(
        original_file=FileData(buffer=source, **original),
        optimized_svg=svg,
        png_fallback=raster,
        fallback_mime_type=meta["fallback_mime_type"],
        vml_code=vml,
        base64_data_uri=convert_to_base64_data_uri(raster, meta["fallback_mime_type"]),
        html_snippet=html,
        warnings=[ProcessingWarning.model_validate(w) for w in meta["warnings"]],
        metadata=ProcessingMetadata.model_validate(meta["metadata"]),
        png_is_placeholder=meta["png_is_placeholder"],
        vml_is_placeholder=meta["vml_is_placeholder"],
        generate_previews=meta.get("generate_previews", True),
    )


# ---------------------------------------------------------------------------
# Cleanup
# ---------------------------------------------------------------------------

def cleanup_expired_files(max_age_seconds: Optional[int] = None, now: Optional[float] = None) -> int:
    """Delete upload and result files older than max_age_seconds. Returns the count."""
    max_age = config.FILE_EXPIRY_SECONDS if max_age_seconds is None else max_age_seconds
    cutoff = (now if now is not None else time.time()) - max_age

    removed = 0
    for directory in (_upload_dir(), _results_dir()):
        for path in directory.iterdir():
            if not path.is_file():
                continue
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error(f"Error cleaning up {path}: {e}")

    if removed:
        logger.info("Cleaned up %d expired file(s)", removed)
    return removed
