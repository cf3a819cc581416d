"""
Per-client preview predictions.

Projects a ProcessingResult onto each configured email client: which
fallback layer it will render and how good that is likely to look.
Everything here is derived and can be recomputed at any time.

Public API:
  generate_client_previews(result, clients, render_images) -> list[ClientPreview]
  determine_fallback_type(client, result)                  -> FallbackType
  estimate_quality(fallback, result)                       -> QualityRating
  generate_preview_image(fallback, result)                 -> bytes
  generate_text_previews(previews)                         -> list[str]
"""

import logging
from typing import Iterable, Optional

from app import config
from app.models.email_client import get_client_config
from app.models.logo import (
    ClientPreview,
    FallbackType,
    ProcessingResult,
    QualityRating,
    Severity,
    WarningKind,
)
from app.services import image_processor
from app.services.platform_details import get_platform_rendering_notes

logger = logging.getLogger(__name__)

_FALLBACK_NAMES = {
    FallbackType.SVG: "SVG vector",
    FallbackType.PNG: "PNG raster",
    FallbackType.VML: "VML vector",
}


def determine_fallback_type(client_id: str, result: ProcessingResult) -> FallbackType:
    """
    SVG when the client renders SVG and the result has one, VML when the
    client renders VML and the VML is a real drawing, PNG otherwise.
    """
    client = get_client_config(client_id)
    if client is None:
        return FallbackType.PNG
    if client.supports_svg and result.optimized_svg:
        return FallbackType.SVG
    if client.supports_vml and result.vml_code and not result.vml_is_placeholder:
        return FallbackType.VML
    return FallbackType.PNG


def estimate_quality(fallback: FallbackType, result: ProcessingResult) -> QualityRating:
    has_complexity_warning = any(
        w.kind == WarningKind.SVG_COMPLEXITY and w.severity == Severity.HIGH for w in result.warnings
    )
    has_vml_warning = any(
        w.kind == WarningKind.VML_CONVERSION and w.severity != Severity.LOW for w in result.warnings
    )

    if fallback == FallbackType.SVG:
        return QualityRating.GOOD if has_complexity_warning else QualityRating.EXCELLENT
    if fallback == FallbackType.VML:
        if has_vml_warning:
            return QualityRating.FAIR
        return QualityRating.GOOD if has_complexity_warning else QualityRating.EXCELLENT
    return QualityRating.POOR if result.png_is_placeholder else QualityRating.GOOD


def generate_preview_image(fallback: FallbackType, result: ProcessingResult) -> bytes:
    """
    Render a PREVIEW_WIDTH x PREVIEW_HEIGHT thumbnail of what the client
    shows. VML cannot be rendered here, so VML clients get the PNG.
    """
    width, height = config.PREVIEW_WIDTH, config.PREVIEW_HEIGHT

    if fallback == FallbackType.SVG and result.optimized_svg:
        try:
            rendered = image_processor.generate_png_from_svg(result.optimized_svg, width, height)
            return image_processor.pad_to_canvas(rendered, width, height)
        except image_processor.ImageProcessingError as e:
            logger.warning("SVG preview rendering failed, using PNG fallback: %s", e.message)

    try:
        return image_processor.pad_to_canvas(result.png_fallback, width, height)
    except image_processor.ImageProcessingError as e:
        logger.warning("Preview rendering failed, using placeholder: %s", e.message)
        return image_processor.create_fallback_image(width, height)


def generate_client_previews(
    result: ProcessingResult,
    clients: Optional[Iterable[str]] = None,
    render_images: bool = False,
) -> list[ClientPreview]:
    """One ClientPreview per known client id; unknown ids are skipped."""
    previews = []
    for client_id in clients if clients is not None else config.PREVIEW_CLIENTS:
        client = get_client_config(client_id)
        if client is None:
            logger.debug("Skipping preview for unknown client %r", client_id)
            continue
        fallback = determine_fallback_type(client.id.value, result)
        previews.append(ClientPreview(
            client=client.id.value,
            fallback_used=fallback,
            estimated_quality=estimate_quality(fallback, result),
            preview_image=generate_preview_image(fallback, result) if render_images else None,
        ))
    return previews


def generate_text_previews(previews: list[ClientPreview]) -> list[str]:
    lines = []
    for preview in previews:
        client = get_client_config(preview.client)
        name = client.name if client else preview.client
        lines.append(
            f"{name}: Will use {_FALLBACK_NAMES[preview.fallback_used]} format "
            f"with {preview.estimated_quality.value} rendering quality."
        )
    return lines


def generate_platform_notes(previews: list[ClientPreview]) -> dict[str, str]:
    """client id -> rendering notes for the fallback that client uses."""
    return {p.client: get_platform_rendering_notes(p.client, p.fallback_used) for p in previews}
