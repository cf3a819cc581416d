"""
Downloadable ZIP package for a finished job.

Public API:
  generate_package(result, previews, instructions) -> bytes
  generate_default_instructions(result)            -> str
  generate_instructions(base, result)              -> str
"""

import io
import json
import logging
import zipfile
from typing import Optional

from app.models.logo import ClientPreview, ProcessingResult

logger = logging.getLogger(__name__)

HTML_NAME = "email-logo.html"
SVG_NAME = "logo.svg"
VML_NAME = "outlook.vml"
METADATA_NAME = "metadata.json"
README_NAME = "README.txt"


def format_file_size(size: int) -> str:
    """Bytes as KB below 1 MB, MB above: 500 -> '0.49 KB', 2 MiB -> '2.00 MB'."""
    if size < 1024 * 1024:
        return f"{size / 1024:.2f} KB"
    return f"{size / 1024 / 1024:.2f} MB"


def generate_default_instructions(result: Optional[ProcessingResult] = None) -> str:
    lines = [
        "How to Use",
        "==========",
        "",
        f"1. Copy the HTML code from {HTML_NAME}.",
        "2. Paste it directly into your email template where the logo should appear.",
        "3. Send a test email to the clients you care about before a real send.",
        "",
        "The code includes fallbacks for all major email clients:",
        "  - SVG for modern clients (Apple Mail, Thunderbird)",
        "  - PNG for clients that don't support SVG (Gmail, Yahoo, most webmail)",
        "  - VML for Outlook Desktop",
        "",
        "All images are embedded as data URIs. No external hosting is required.",
    ]
    if result is not None and result.vml_is_placeholder:
        lines += [
            "",
            "Note: this logo could not be drawn in VML. Outlook Desktop shows a gray",
            "placeholder box; consider a simpler SVG version of the logo.",
        ]
    return "\n".join(lines)


def generate_instructions(base_instructions: str, result: ProcessingResult) -> str:
    """Append processing details and a compatibility overview to the base text."""
    meta = result.metadata
    sections = [
        base_instructions,
        "",
        "Processing Details",
        "------------------",
        f"Original File: {result.original_file.original_name}",
        f"Original File Size: {format_file_size(meta.original_file_size)}",
        f"Optimized File Size: {format_file_size(meta.optimized_file_size)}",
        f"Compression Ratio: {meta.compression_ratio:.2f}x",
        f"Processing Time: {meta.processing_time_ms:.2f}ms",
        f"Generated At: {meta.generated_at}",
        "",
        "Email Client Compatibility",
        "--------------------------",
        "Modern Clients (Apple Mail, Thunderbird): inline SVG",
        "Web Clients (Gmail, Yahoo): PNG image",
        "Outlook Desktop: VML" + (" placeholder" if result.vml_is_placeholder else " drawing"),
    ]
    if result.warnings:
        sections += ["", "Warnings", "--------"]
        sections += [f"[{w.severity.value}] {w.kind.value}: {w.message}" for w in result.warnings]
    sections += [
        "",
        "Integration Steps",
        "-----------------",
        "1. Open your email template in code view.",
        "2. Paste the snippet inside the table cell that should hold the logo.",
        "3. Keep the conditional comments intact; Outlook relies on them.",
    ]
    return "\n".join(sections)


def _metadata_json(result: ProcessingResult, previews: list[ClientPreview]) -> str:
    payload = {
        "original_file": {
            "name": result.original_file.original_name,
            "mime_type": result.original_file.mime_type,
            "size": result.original_file.size,
        },
        "fallback_mime_type": result.fallback_mime_type,
        "png_is_placeholder": result.png_is_placeholder,
        "vml_is_placeholder": result.vml_is_placeholder,
        "metadata": result.metadata.model_dump(mode="json"),
        "warnings": [w.model_dump(mode="json") for w in result.warnings],
        "previews": [p.model_dump(mode="json", exclude={"preview_image"}) for p in previews],
    }
    return json.dumps(payload, indent=2)


def generate_package(
    result: ProcessingResult,
    previews: list[ClientPreview],
    instructions: Optional[str] = None,
) -> bytes:
    """
    Build the ZIP: HTML snippet, raster fallback, optimized SVG (when
    present), VML, per-client preview images, metadata and a README.
    Previews without an image are listed in metadata only.
    """
    raster_name = "logo.jpg" if result.fallback_mime_type == "image/jpeg" else "logo.png"
    readme = generate_instructions(instructions or generate_default_instructions(result), result)

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
        archive.writestr(HTML_NAME, result.html_snippet)
        archive.writestr(raster_name, result.png_fallback)
        if result.optimized_svg:
            archive.writestr(SVG_NAME, result.optimized_svg)
        archive.writestr(VML_NAME, result.vml_code)
        for preview in previews:
            if preview.preview_image:
                archive.writestr(f"previews/{preview.client}.png", preview.preview_image)
        archive.writestr(METADATA_NAME, _metadata_json(result, previews))
        archive.writestr(README_NAME, readme)

    data = buffer.getvalue()
    logger.debug("Built package for %s: %d bytes", result.original_file.original_name, len(data))
    return data
