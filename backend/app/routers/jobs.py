"""
Processing job router.

Endpoints:
  POST /api/jobs                          — run the pipeline for an upload
  GET  /api/jobs/{process_id}/status      — job status record
  GET  /api/jobs/{process_id}/preview     — HTML, client previews and notes
  GET  /api/jobs/{process_id}/download    — ZIP package
"""

import io
import logging

from fastapi import APIRouter, HTTPException, Query
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse

from app import config
from app.models.logo import JobRequest, JobState, ProcessingResult
from app.services import job_store, preview_generator
from app.services.file_processing import FileProcessingError, process_file
from app.services.image_processor import convert_to_base64_data_uri
from app.services.job_store import JobNotFoundError
from app.services.package_generator import generate_package

logger = logging.getLogger(__name__)

router = APIRouter()


def _error(status_code: int, message: str, error_code: str) -> HTTPException:
    """Build an HTTPException with a structured detail payload."""
    return HTTPException(
        status_code=status_code,
        detail={"detail": message, "error_code": error_code},
    )


def _load_finished_result(process_id: str) -> ProcessingResult:
    """
    Load a job's result, mapping a missing one to 409 (still running or
    failed) or 404 (unknown job).
    """
    try:
        return job_store.load_result(process_id)
    except JobNotFoundError:
        pass

    status = _load_status(process_id)
    if status.status == JobState.PROCESSING:
        raise _error(409, "Processing is not complete yet", "processing_incomplete")
    if status.status == JobState.ERROR:
        raise _error(409, f"Processing failed: {status.error or 'unknown error'}", "processing_failed")
    raise _error(404, f"Job '{process_id}' not found", "job_not_found")


def _load_status(process_id: str):
    try:
        return job_store.load_status(process_id)
    except JobNotFoundError as e:
        raise _error(404, e.message, "job_not_found")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("", status_code=201)
async def create_job(request: JobRequest) -> dict:
    """
    Process a stored upload and persist the result.

    Stage failures inside the pipeline do not fail the request; they are
    returned as warnings. Only an unknown upload (404) or an unprocessable
    input (400) fails it.
    """
    try:
        file_data = job_store.load_upload(request.file_id)
    except JobNotFoundError as e:
        raise _error(404, e.message, "file_not_found")

    process_id = job_store.new_process_id()
    job_store.update_status(process_id, JobState.PROCESSING, "optimizing", 10, "Processing started")

    try:
        result = await run_in_threadpool(process_file, file_data, request.options)
    except FileProcessingError as e:
        job_store.update_status(process_id, JobState.ERROR, "error", 0, "Processing failed", error=e.message)
        raise _error(400, e.message, e.error_code)
    except Exception as e:
        logger.error(f"Processing job {process_id} failed unexpectedly: {e}", exc_info=True)
        job_store.update_status(process_id, JobState.ERROR, "error", 0, "Processing failed", error=str(e))
        raise _error(500, "Processing failed", "processing_failed")

    job_store.save_result(process_id, result)

    return {
        "process_id": process_id,
        "status": JobState.COMPLETE.value,
        "warnings": [w.model_dump(mode="json") for w in result.warnings],
        "metadata": result.metadata.model_dump(mode="json"),
    }


@router.get("/{process_id}/status")
async def get_job_status(process_id: str) -> dict:
    return _load_status(process_id).model_dump(mode="json")


@router.get("/{process_id}/preview")
async def get_job_preview(
    process_id: str,
    render_images: bool = Query(False, description="Include per-client preview PNGs as data URIs"),
) -> dict:
    """
    Everything the UI needs to show the result: the HTML snippet, which
    fallback each email client is predicted to use, text summaries and
    rendering notes.
    """
    result = _load_finished_result(process_id)
    previews = preview_generator.generate_client_previews(
        result, render_images=render_images and result.generate_previews,
    )

    return {
        "process_id": process_id,
        "html_snippet": result.html_snippet,
        "previews": [
            {
                "client": p.client,
                "fallback_used": p.fallback_used.value,
                "estimated_quality": p.estimated_quality.value,
                "preview_image": (
                    convert_to_base64_data_uri(p.preview_image, "image/png") if p.preview_image else None
                ),
            }
            for p in previews
        ],
        "text_previews": preview_generator.generate_text_previews(previews),
        "platform_notes": preview_generator.generate_platform_notes(previews),
        "warnings": [w.model_dump(mode="json") for w in result.warnings],
        "metadata": result.metadata.model_dump(mode="json"),
    }


@router.get("/{process_id}/download")
async def download_package(process_id: str) -> StreamingResponse:
    """
    ZIP package with the snippet, images, VML, previews and a README.

    Preview images are left out when the job was created with
    generate_previews=false.
    """
    result = _load_finished_result(process_id)

    previews = preview_generator.generate_client_previews(result, render_images=result.generate_previews)

    try:
        package = generate_package(result, previews)
    except Exception as e:
        logger.error(f"Failed to build package for {process_id}: {e}", exc_info=True)
        raise _error(500, "Failed to generate package", "package_failed")

    return StreamingResponse(
        io.BytesIO(package),
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="{config.PACKAGE_FILENAME}"',
        },
    )
