"""
Upload validation.

Classifies an uploaded file and checks type, size and structural sanity
before it enters the processing pipeline. Pure functions, no side effects.

Public API:
  determine_file_type(mime_type, filename) -> FileType | None
  validate_file(file_data)                 -> ValidationResult
"""

import logging
import xml.etree.ElementTree as ET
from typing import Optional

from app import config
from app.models.logo import FileData, FileType, ValidationResult

logger = logging.getLogger(__name__)

ANIMATION_ELEMENTS = {"animate", "animateTransform", "animateMotion", "animateColor", "set"}

# MIME types that say nothing about the content; fall back to the extension
_GENERIC_MIME_TYPES = {"", "application/octet-stream", "binary/octet-stream"}


def _local_name(tag: str) -> str:
    """Strip the '{namespace}' part of an ElementTree tag."""
    if tag.startswith("{"):
        return tag.rsplit("}", 1)[1]
    return tag


def _extension(filename: Optional[str]) -> str:
    if not filename:
        return ""
    dot = filename.rfind(".")
    if dot == -1:
        return ""
    return filename[dot:].lower()


def determine_file_type(mime_type: Optional[str], filename: Optional[str] = None) -> Optional[FileType]:
    """
    Classify a file from its declared MIME type.

    The filename extension is only consulted when the MIME type is missing
    or generic (e.g. application/octet-stream). Returns None when the file
    is not one of svg/png/jpeg/css.
    """
    mime = (mime_type or "").split(";")[0].strip().lower()

    for file_type, accepted in config.ACCEPTED_FILE_TYPES.items():
        if mime in accepted:
            return FileType(file_type)

    if mime in _GENERIC_MIME_TYPES:
        guessed = config.ACCEPTED_EXTENSIONS.get(_extension(filename))
        if guessed:
            return FileType(guessed)

    return None


def _check_svg_structure(buffer: bytes, result: ValidationResult) -> None:
    try:
        root = ET.fromstring(buffer)
    except ET.ParseError as e:
        result.valid = False
        result.errors.append(f"SVG markup could not be parsed: {e}")
        return

    if _local_name(root.tag) != "svg":
        result.valid = False
        result.errors.append("File does not contain a root <svg> element.")
        return

    node_count = 0
    has_animation = False
    for element in root.iter():
        node_count += 1
        if _local_name(element.tag) in ANIMATION_ELEMENTS:
            has_animation = True

    if has_animation:
        result.warnings.append(
            "SVG contains animation elements which will not render in most email clients "
            "and cannot be converted to VML."
        )
    if node_count > config.SVG_COMPLEX_NODE_COUNT:
        result.warnings.append(
            f"SVG contains {node_count} elements; complex features may not render correctly "
            "and may not convert to VML."
        )
    result.warnings.append("Complex SVG elements may not convert well to VML for Outlook.")


def validate_file(file_data: FileData) -> ValidationResult:
    """
    Validate an uploaded file.

    Rejections (errors): oversized, empty, unsupported MIME type, SVG
    without a root <svg> element. Everything else is a warning.
    """
    result = ValidationResult(valid=True)
    size = len(file_data.buffer)

    if size == 0:
        result.valid = False
        result.errors.append("File is empty.")

    if size > config.MAX_FILE_SIZE_BYTES or file_data.size > config.MAX_FILE_SIZE_BYTES:
        limit_mb = config.MAX_FILE_SIZE_BYTES / 1024 / 1024
        result.valid = False
        result.errors.append(f"File size exceeds the maximum limit of {limit_mb:g}MB.")

    file_type = determine_file_type(file_data.mime_type, file_data.original_name)
    if file_type is None:
        result.valid = False
        result.errors.append("Unsupported file type. Please upload SVG, PNG, JPEG, or CSS files.")
        return result

    if file_type is FileType.SVG and size > 0:
        _check_svg_structure(file_data.buffer, result)
    elif file_type is FileType.CSS:
        result.warnings.append(
            "CSS logos have limited support in email clients and will be replaced by a placeholder image."
        )

    if not result.valid:
        logger.info("Rejected upload %r: %s", file_data.original_name, "; ".join(result.errors))

    return result
