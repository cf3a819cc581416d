"""
Logo processing pipeline.

Routes an uploaded file through the SVG, raster and VML stages and
composes the email HTML. Stage failures never abort a job: each one is
recorded as a warning and replaced by a simpler output (original SVG,
placeholder PNG, placeholder VML). Only an unknown file type or an empty
input aborts, before any stage runs.

Public API:
  process_file(file_data, options) -> ProcessingResult

Raises:
  UnsupportedFileTypeError, InvalidInputError
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from html import escape
from typing import Optional

from app import config
from app.models.logo import (
    Dimensions,
    FallbackData,
    FileData,
    FileType,
    ProcessingMetadata,
    ProcessingOptions,
    ProcessingResult,
    ProcessingWarning,
    Severity,
    WarningKind,
)
from app.services import html_template, image_processor, svg_processor, vml_generator
from app.services.fallback import StageOutcome, run_strategies

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class FileProcessingError(Exception):
    """Base class for errors that abort a processing job."""
    def __init__(self, message: str, error_code: str = "processing_failed"):
        super().__init__(message)
        self.error_code = error_code
        self.message = message


class UnsupportedFileTypeError(FileProcessingError):
    def __init__(self, message: str, error_code: str = "unsupported_file_type"):
        super().__init__(message, error_code)


class InvalidInputError(FileProcessingError):
    def __init__(self, message: str, error_code: str = "invalid_input"):
        super().__init__(message, error_code)


# ---------------------------------------------------------------------------
# Working state
# ---------------------------------------------------------------------------

@dataclass
class _Artifacts:
    png: bytes = b""
    png_mime: str = "image/png"
    png_is_placeholder: bool = False
    optimized_svg: Optional[str] = None
    vml: str = ""
    vml_is_placeholder: bool = False
    warnings: list[ProcessingWarning] = field(default_factory=list)

    def warn(self, kind: WarningKind, message: str, severity: Severity) -> None:
        self.warnings.append(ProcessingWarning(kind=kind, message=message, severity=severity))

    def use_placeholder_png(self, dims: Dimensions) -> None:
        self.png = image_processor.create_fallback_image(dims.width, dims.height)
        self.png_mime = "image/png"
        self.png_is_placeholder = True

    def use_placeholder_vml(self, dims: Dimensions) -> None:
        self.vml = vml_generator.generate_placeholder_vml(dims.width, dims.height)
        self.vml_is_placeholder = True


def _record_failures(
    artifacts: _Artifacts,
    outcome: StageOutcome,
    kind: WarningKind,
    severity: Severity,
    template: str,
) -> None:
    """One warning per failed strategy."""
    for failure in outcome.failures:
        artifacts.warn(kind, template.format(error=failure.message), severity)


# ---------------------------------------------------------------------------
# Branches
# ---------------------------------------------------------------------------

def _process_svg(file_data: FileData, options: ProcessingOptions, dims: Dimensions, id_prefix: str) -> _Artifacts:
    artifacts = _Artifacts()
    source = file_data.buffer.decode("utf-8", errors="replace")

    svg_output = svg_processor.process_svg(source, id_prefix=id_prefix)
    artifacts.warnings.extend(svg_output.warnings)
    optimized = svg_output.optimized_svg
    artifacts.optimized_svg = optimized

    blockers = svg_processor.vml_blockers(optimized)

    png_outcome = run_strategies("rasterize", [
        ("svg-to-png", lambda: image_processor.generate_png_from_svg(optimized, dims.width, dims.height)),
    ])
    _record_failures(
        artifacts, png_outcome, WarningKind.RASTER_CONVERSION, Severity.HIGH,
        "Failed to generate PNG fallback from SVG ({error}); a placeholder image is used instead",
    )
    if png_outcome.succeeded:
        artifacts.png = png_outcome.value
    else:
        artifacts.use_placeholder_png(dims)

    if blockers:
        artifacts.warn(
            WarningKind.VML_CONVERSION,
            "This SVG contains features that cannot be converted to VML for Outlook "
            f"({'; '.join(blockers)}). PNG fallback will be used instead.",
            Severity.MEDIUM,
        )
        artifacts.use_placeholder_vml(dims)
        return artifacts

    vml_outcome = run_strategies("vml", [
        ("svg-to-vml", lambda: _convert_vml(optimized, dims)),
    ])
    _record_failures(
        artifacts, vml_outcome, WarningKind.VML_CONVERSION, Severity.HIGH,
        "VML conversion failed ({error}); Outlook will show a placeholder",
    )
    if vml_outcome.succeeded:
        conversion = vml_outcome.value
        artifacts.vml = conversion.vml_code
        artifacts.warnings.extend(conversion.warnings)
    else:
        artifacts.use_placeholder_vml(dims)
    return artifacts


def _convert_vml(svg: str, dims: Dimensions) -> vml_generator.VmlConversionResult:
    conversion = vml_generator.convert_svg_to_vml(svg, dims.width, dims.height)
    styled = vml_generator.add_outlook_styling(conversion.vml_code)
    validation = vml_generator.validate_vml(styled)
    if not validation.valid:
        problems = "; ".join(w.message for w in validation.warnings if w.severity == Severity.HIGH)
        raise vml_generator.VmlConversionError(f"generated VML is invalid: {problems}", "invalid_vml")
    return vml_generator.VmlConversionResult(
        vml_code=styled,
        warnings=conversion.warnings + validation.warnings,
    )


def _process_raster(file_data: FileData, options: ProcessingOptions, dims: Dimensions) -> _Artifacts:
    artifacts = _Artifacts()
    is_jpeg = file_data.file_type == FileType.JPEG
    mime = "image/jpeg" if is_jpeg else "image/png"
    level = options.optimization_level.value
    quality = config.QUALITY_LADDER.get(level)

    def optimize():
        optimized = image_processor.optimize_image(
            file_data.buffer, mime, dims.width, dims.height, optimization_level=level,
        )
        artifacts.warnings.extend(optimized.warnings)
        return optimized.buffer, optimized.mime_type

    def compress():
        if is_jpeg:
            return image_processor.compress_jpeg(file_data.buffer, quality or config.JPEG_QUALITY), "image/jpeg"
        return image_processor.compress_png(file_data.buffer, quality or config.PNG_QUALITY), "image/png"

    outcome = run_strategies("optimize-image", [("optimize", optimize), ("compress", compress)])
    for failure in outcome.failures:
        if failure.strategy == "optimize":
            artifacts.warn(
                WarningKind.FILE_SIZE,
                f"Image optimization failed ({failure.message}); trying a plain re-compression",
                Severity.MEDIUM,
            )
        else:
            artifacts.warn(
                WarningKind.RASTER_CONVERSION,
                f"Image compression failed ({failure.message}); a placeholder image is used instead",
                Severity.HIGH,
            )

    if outcome.succeeded:
        artifacts.png, artifacts.png_mime = outcome.value
    else:
        artifacts.use_placeholder_png(dims)

    artifacts.warn(
        WarningKind.VML_CONVERSION,
        "Raster logos cannot be converted to VML; Outlook will show the image fallback",
        Severity.LOW,
    )
    artifacts.use_placeholder_vml(dims)
    return artifacts


def _process_css(file_data: FileData, options: ProcessingOptions, dims: Dimensions) -> _Artifacts:
    artifacts = _Artifacts()
    artifacts.warn(
        WarningKind.CSS_COMPATIBILITY,
        "CSS logos cannot be converted for email clients; a placeholder image is used. "
        "Upload an SVG or PNG version of the logo for best results.",
        Severity.HIGH,
    )
    artifacts.use_placeholder_png(dims)
    artifacts.use_placeholder_vml(dims)
    return artifacts


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------

def _plain_img_html(data_uri: str, dims: Dimensions, alt_text: str) -> str:
    alt = escape(alt_text, quote=True)
    return (
        f'<img src="{data_uri}" width="{dims.width}" height="{dims.height}" alt="{alt}" '
        f'style="display: block; max-width: 100%; height: auto; border: 0;">'
    )


def _compose(artifacts: _Artifacts, dims: Dimensions, alt_text: str) -> tuple[str, str]:
    try:
        data_uri = image_processor.convert_to_base64_data_uri(artifacts.png, artifacts.png_mime)
    except image_processor.ImageProcessingError as e:
        artifacts.warn(WarningKind.RASTER_CONVERSION, f"Could not encode the fallback image: {e.message}", Severity.HIGH)
        artifacts.png = image_processor.MINIMAL_PNG
        artifacts.png_mime = "image/png"
        artifacts.png_is_placeholder = True
        data_uri = image_processor.convert_to_base64_data_uri(artifacts.png, artifacts.png_mime)

    fallback_data = FallbackData(
        svg_content=artifacts.optimized_svg,
        png_data_uri=data_uri,
        vml_code=artifacts.vml,
        dimensions=dims,
        alt_text=alt_text,
    )
    outcome = run_strategies("compose", [
        ("layered", lambda: html_template.generate_email_html(fallback_data)),
        ("plain-img", lambda: _plain_img_html(data_uri, dims, alt_text)),
    ])
    _record_failures(
        artifacts, outcome, WarningKind.HTML_COMPATIBILITY, Severity.HIGH,
        "Layered HTML composition failed ({error}); only the image fallback is included",
    )
    return data_uri, outcome.value


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def process_file(file_data: FileData, options: ProcessingOptions) -> ProcessingResult:
    """
    Run the full pipeline for one uploaded file.

    Raises:
        InvalidInputError: file_data is missing or has an empty buffer.
        UnsupportedFileTypeError: file type is not svg/png/jpeg/css.
    """
    started = time.perf_counter()

    if file_data is None or not file_data.buffer:
        raise InvalidInputError("No file content to process")
    try:
        file_type = FileType(file_data.file_type)
    except ValueError:
        raise UnsupportedFileTypeError(f"Unsupported file type: {file_data.file_type}")

    dims = options.dimensions or Dimensions(width=config.DEFAULT_WIDTH, height=config.DEFAULT_HEIGHT)
    id_prefix = options.id_prefix or f"logo-{uuid.uuid4().hex[:8]}"

    if file_type == FileType.SVG:
        artifacts = _process_svg(file_data, options, dims, id_prefix)
    elif file_type in (FileType.PNG, FileType.JPEG):
        artifacts = _process_raster(file_data, options, dims)
    else:
        artifacts = _process_css(file_data, options, dims)

    data_uri, html = _compose(artifacts, dims, options.alt_text)

    for issue in html_template.validate_html(html).warnings:
        artifacts.warn(WarningKind.HTML_COMPATIBILITY, issue, Severity.LOW)

    original_size = file_data.size or len(file_data.buffer)
    if artifacts.optimized_svg is not None:
        optimized_size = len(artifacts.optimized_svg.encode("utf-8"))
    else:
        optimized_size = len(artifacts.png)
    elapsed_ms = (time.perf_counter() - started) * 1000

    metadata = ProcessingMetadata(
        original_file_size=original_size,
        optimized_file_size=optimized_size,
        compression_ratio=round(optimized_size / original_size, 4),
        processing_time_ms=round(elapsed_ms, 2),
        generated_at=datetime.now(timezone.utc).isoformat(),
    )

    logger.info(
        "Processed %s (%s) in %.1f ms with %d warning(s)",
        file_data.original_name, file_type.value, elapsed_ms, len(artifacts.warnings),
    )

    return ProcessingResult(
        original_file=file_data,
        optimized_svg=artifacts.optimized_svg,
        png_fallback=artifacts.png,
        fallback_mime_type=artifacts.png_mime,
        vml_code=artifacts.vml,
        base64_data_uri=data_uri,
        html_snippet=html,
        warnings=artifacts.warnings,
        metadata=metadata,
        png_is_placeholder=artifacts.png_is_placeholder,
        vml_is_placeholder=artifacts.vml_is_placeholder,
        generate_previews=options.generate_previews,
    )
