"""
Filesystem job store tests.

Every test points config.UPLOAD_DIR and config.RESULTS_DIR at a pytest
tmp_path so nothing touches the real storage directories.
"""

import os
import time
from unittest.mock import patch

import pytest

from app.models.logo import (
    FileData,
    FileType,
    JobState,
    ProcessingMetadata,
    ProcessingResult,
    ProcessingWarning,
    Severity,
    WarningKind,
)
from app.services import job_store
from app.services.job_store import JobNotFoundError


@pytest.fixture
def storage(tmp_path):
    with patch("app.config.UPLOAD_DIR", tmp_path / "uploads"), \
         patch("app.config.RESULTS_DIR", tmp_path / "results"):
        yield tmp_path


def _make_file(file_type: FileType = FileType.SVG, buffer: bytes = b"<svg/>") -> FileData:
    return FileData(
        buffer=buffer,
        original_name=f"logo.{file_type.value}",
        mime_type="image/svg+xml" if file_type == FileType.SVG else f"image/{file_type.value}",
        size=len(buffer),
        file_type=file_type,
    )


def _make_result(file_type: FileType = FileType.SVG, mime: str = "image/png", svg: str = "<svg/>") -> ProcessingResult:
    return ProcessingResult(
        original_file=_make_file(file_type),
        optimized_svg=svg,
        png_fallback=b"raster-bytes",
        fallback_mime_type=mime,
        vml_code="<!--[if vml]><v:rect></v:rect><![endif]-->",
        base64_data_uri="ignored",
        html_snippet="<div><img></div>",
        warnings=[ProcessingWarning(kind=WarningKind.FILE_SIZE, message="big", severity=Severity.MEDIUM)],
        metadata=ProcessingMetadata(original_file_size=6, optimized_file_size=6, compression_ratio=1.0,
                                    processing_time_ms=3.5, generated_at="2024-01-01T00:00:00+00:00"),
        vml_is_placeholder=True,
    )


class TestUploads:
    def test_save_and_load(self, storage):
        file_id = job_store.save_upload(_make_file())

        assert (storage / "uploads" / f"{file_id}.svg").read_bytes() == b"<svg/>"
        loaded = job_store.load_upload(file_id)
        assert loaded == _make_file()

    def test_jpeg_extension(self, storage):
        file_id = job_store.save_upload(_make_file(FileType.JPEG, b"\xff\xd8"))
        assert (storage / "uploads" / f"{file_id}.jpg").exists()
        assert job_store.load_upload(file_id).file_type == FileType.JPEG

    def test_metadata(self, storage):
        file_id = job_store.save_upload(_make_file())
        meta = job_store.load_upload_metadata(file_id)
        assert meta["file_id"] == file_id
        assert meta["original_name"] == "logo.svg"
        assert meta["file_type"] == "svg"
        assert "uploaded_at" in meta

    def test_exists_and_delete(self, storage):
        file_id = job_store.save_upload(_make_file())
        assert job_store.upload_exists(file_id) is True
        assert job_store.delete_upload(file_id) is True
        assert job_store.upload_exists(file_id) is False
        assert list((storage / "uploads").iterdir()) == []
        assert job_store.delete_upload(file_id) is False

    def test_missing_upload(self, storage):
        with pytest.raises(JobNotFoundError):
            job_store.load_upload("00000000-0000-0000-0000-000000000000")

    def test_path_like_ids_are_rejected(self, storage):
        with pytest.raises(JobNotFoundError):
            job_store.load_upload("../secrets")
        assert job_store.upload_exists("../secrets") is False
        assert job_store.delete_upload("*") is False


class TestStatus:
    def test_unknown_job_is_pending(self, storage):
        status = job_store.load_status(job_store.new_process_id())
        assert status.status == JobState.PENDING
        assert status.progress == 0

    def test_update_and_load(self, storage):
        pid = job_store.new_process_id()
        job_store.update_status(pid, JobState.ERROR, "error", 0, "Processing failed", error="boom")

        status = job_store.load_status(pid)
        assert status.status == JobState.ERROR
        assert status.error == "boom"
        assert not list((storage / "results").glob("*.tmp"))


class TestResults:
    def test_round_trip(self, storage):
        pid = job_store.new_process_id()
        original = _make_result()
        job_store.save_result(pid, original)

        loaded = job_store.load_result(pid)
        assert loaded.html_snippet == original.html_snippet
        assert loaded.png_fallback == original.png_fallback
        assert loaded.vml_code == original.vml_code
        assert loaded.optimized_svg == "<svg/>"
        assert loaded.original_file == original.original_file
        assert loaded.warnings == original.warnings
        assert loaded.metadata == original.metadata
        assert loaded.vml_is_placeholder is True
        assert loaded.base64_data_uri == "data:image/png;base64,cmFzdGVyLWJ5dGVz"

    def test_preview_flag_round_trips(self, storage):
        pid = job_store.new_process_id()
        job_store.save_result(pid, _make_result().model_copy(update={"generate_previews": False}))
        assert job_store.load_result(pid).generate_previews is False

    def test_save_marks_job_complete(self, storage):
        pid = job_store.new_process_id()
        job_store.save_result(pid, _make_result())
        status = job_store.load_status(pid)
        assert status.status == JobState.COMPLETE
        assert status.progress == 100

    def test_jpeg_result_without_svg(self, storage):
        pid = job_store.new_process_id()
        job_store.save_result(pid, _make_result(FileType.JPEG, mime="image/jpeg", svg=None))

        assert (storage / "results" / f"{pid}.jpg").exists()
        assert not (storage / "results" / f"{pid}.svg").exists()
        loaded = job_store.load_result(pid)
        assert loaded.optimized_svg is None
        assert loaded.fallback_mime_type == "image/jpeg"

    def test_missing_result(self, storage):
        with pytest.raises(JobNotFoundError):
            job_store.load_result(job_store.new_process_id())

    def test_incomplete_result(self, storage):
        pid = job_store.new_process_id()
        job_store.save_result(pid, _make_result())
        (storage / "results" / f"{pid}.vml").unlink()
        with pytest.raises(JobNotFoundError) as exc:
            job_store.load_result(pid)
        assert "incomplete" in exc.value.message


class TestCleanup:
    def test_removes_only_expired_files(self, storage):
        old_id = job_store.save_upload(_make_file())
        new_id = job_store.save_upload(_make_file())

        an_hour_ago = time.time() - 3600
        for path in (storage / "uploads").glob(f"{old_id}.*"):
            os.utime(path, (an_hour_ago, an_hour_ago))

        removed = job_store.cleanup_expired_files(max_age_seconds=600)

        assert removed == 2
        assert job_store.upload_exists(old_id) is False
        assert job_store.upload_exists(new_id) is True

    def test_uses_configured_expiry(self, storage):
        job_store.save_upload(_make_file())
        with patch("app.config.FILE_EXPIRY_SECONDS", 60):
            assert job_store.cleanup_expired_files(now=time.time() + 120) == 2
