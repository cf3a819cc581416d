"""
Raster image service.

Rasterizes SVG to PNG, normalizes/compresses PNG and JPEG uploads and
synthesizes placeholder images when nothing better is available.

Public API:
  generate_png_from_svg(svg, width, height)           -> bytes
  optimize_image(buffer, mime_type, ...)              -> ImageOptimizationResult
  compress_png(buffer, quality)                       -> bytes
  compress_jpeg(buffer, quality)                      -> bytes
  resize_image(buffer, width, height)                 -> bytes
  create_fallback_image(width, height, color)         -> bytes   (never raises)
  convert_to_base64_data_uri(buffer, mime_type)       -> str
"""

import base64
import io
import logging
from dataclasses import dataclass, field
from typing import Optional, Union

from PIL import Image, ImageOps, UnidentifiedImageError

from app import config
from app.models.logo import ProcessingWarning, Severity, WarningKind

logger = logging.getLogger(__name__)

# 1x1 RGBA PNG, the floor under every placeholder path
MINIMAL_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ImageProcessingError(Exception):
    """Raised when an image cannot be decoded, re-encoded or encoded to base64."""
    def __init__(self, message: str, error_code: str = "image_processing_failed"):
        super().__init__(message)
        self.error_code = error_code
        self.message = message


class RasterizationError(ImageProcessingError):
    """Raised when SVG markup cannot be rasterized."""
    def __init__(self, message: str, error_code: str = "rasterization_failed"):
        super().__init__(message, error_code)


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class ImageInfo:
    format: str
    width: int
    height: int
    size: int  # bytes


@dataclass
class ImageOptimizationResult:
    """Result of optimize_image()."""
    buffer: bytes
    info: ImageInfo
    mime_type: str
    warnings: list[ProcessingWarning] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _open_image(buffer: bytes) -> Image.Image:
    if not buffer:
        raise ImageProcessingError("Image buffer is empty", "empty_image")
    try:
        image = Image.open(io.BytesIO(buffer))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ImageProcessingError(f"Could not decode image: {e}", "corrupted_image")
    return image


def _quality_for(optimization_level: Optional[str], default: int) -> int:
    if optimization_level is None:
        return default
    level = getattr(optimization_level, "value", optimization_level)
    return config.QUALITY_LADDER.get(level, default)


def _encode_png(image: Image.Image, quality: int = config.PNG_QUALITY) -> bytes:
    """
    Encode as PNG with maximum zlib compression.

    Below quality 80 the image is quantized to a 256-color palette, which is
    the PNG equivalent of a lossy quality setting.
    """
    if image.mode not in ("RGB", "RGBA", "L", "LA", "P"):
        image = image.convert("RGBA")
    if quality < 80 and image.mode != "P":
        if image.mode not in ("RGB", "RGBA"):
            image = image.convert("RGBA")
        image = image.quantize(colors=256, method=Image.Quantize.FASTOCTREE)
    out = io.BytesIO()
    image.save(out, format="PNG", optimize=True, compress_level=config.PNG_COMPRESS_LEVEL)
    return out.getvalue()


def _encode_jpeg(image: Image.Image, quality: int = config.JPEG_QUALITY) -> bytes:
    if image.mode in ("RGBA", "LA", "P"):
        # JPEG has no alpha channel: flatten onto white
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        image = background
    elif image.mode != "RGB":
        image = image.convert("RGB")
    out = io.BytesIO()
    image.save(
        out,
        format="JPEG",
        quality=quality,
        progressive=config.JPEG_PROGRESSIVE,
        optimize=True,
    )
    return out.getvalue()


def _fit_inside(image: Image.Image, width: Optional[int], height: Optional[int]) -> Image.Image:
    """Shrink to fit inside width x height, keeping aspect ratio. Never enlarges."""
    if not width or not height:
        return image
    if image.width <= width and image.height <= height:
        return image
    resized = image.copy()
    resized.thumbnail((width, height), Image.Resampling.LANCZOS)
    return resized


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def generate_png_from_svg(
    svg: Union[str, bytes],
    width: Optional[int] = None,
    height: Optional[int] = None,
) -> bytes:
    """
    Rasterize SVG markup to a PNG of the given size.

    Raises:
        RasterizationError: the rasterizer could not process the input.
    """
    width = width or config.DEFAULT_WIDTH
    height = height or config.DEFAULT_HEIGHT
    data = svg.encode("utf-8") if isinstance(svg, str) else svg
    if not data:
        raise RasterizationError("No SVG content to rasterize", "empty_svg")

    # cairosvg needs the native cairo library; import failures are reported
    # like any other rasterization failure
    try:
        import cairosvg
    except (ImportError, OSError) as e:
        raise RasterizationError(f"SVG rasterizer unavailable: {e}", "rasterizer_unavailable")

    try:
        rendered = cairosvg.svg2png(bytestring=data, output_width=width, output_height=height)
    except Exception as e:
        logger.warning("SVG to PNG conversion failed: %s", e)
        raise RasterizationError(f"Failed to convert SVG to PNG: {e}")

    if not rendered:
        raise RasterizationError("Rasterizer returned an empty image")

    # Re-encode through Pillow for consistent compression settings
    try:
        return _encode_png(_open_image(rendered))
    except ImageProcessingError as e:
        raise RasterizationError(f"Rasterized PNG could not be re-encoded: {e.message}")


def optimize_image(
    buffer: bytes,
    mime_type: str,
    width: Optional[int] = None,
    height: Optional[int] = None,
    quality: Optional[int] = None,
    optimization_level: Optional[str] = None,
) -> ImageOptimizationResult:
    """
    Normalize a PNG or JPEG: fit it inside the target box and re-encode it
    with the quality chosen by optimization_level (low/medium/high).

    Other formats are coerced to PNG with a warning.

    Raises:
        ImageProcessingError: the image could not be decoded or encoded.
    """
    warnings: list[ProcessingWarning] = []
    width = width or config.DEFAULT_WIDTH
    height = height or config.DEFAULT_HEIGHT

    image = _open_image(buffer)

    if image.width * image.height > config.LARGE_IMAGE_AREA:
        warnings.append(ProcessingWarning(
            kind=WarningKind.FILE_SIZE,
            message="Image dimensions are very large and may cause issues in email clients",
            severity=Severity.MEDIUM,
        ))

    image = _fit_inside(image, width, height)
    mime = (mime_type or "").lower()

    try:
        if mime == "image/png":
            out_mime = "image/png"
            output = _encode_png(image, quality or _quality_for(optimization_level, config.PNG_QUALITY))
        elif mime in ("image/jpeg", "image/jpg"):
            out_mime = "image/jpeg"
            output = _encode_jpeg(image, quality or _quality_for(optimization_level, config.JPEG_QUALITY))
        else:
            out_mime = "image/png"
            output = _encode_png(image)
            warnings.append(ProcessingWarning(
                kind=WarningKind.FILE_SIZE,
                message=f"Unsupported image format: {mime_type}. Converted to PNG.",
                severity=Severity.MEDIUM,
            ))
    except (OSError, ValueError) as e:
        raise ImageProcessingError(f"Failed to optimize image: {e}", "optimization_failed")

    if len(output) > config.MAX_FILE_SIZE_BYTES / 2:
        warnings.append(ProcessingWarning(
            kind=WarningKind.FILE_SIZE,
            message="Optimized image is still large and may cause issues in email clients",
            severity=Severity.MEDIUM,
        ))

    info = ImageInfo(
        format="png" if out_mime == "image/png" else "jpeg",
        width=image.width,
        height=image.height,
        size=len(output),
    )
    return ImageOptimizationResult(buffer=output, info=info, mime_type=out_mime, warnings=warnings)


def compress_png(buffer: bytes, quality: int = config.PNG_QUALITY) -> bytes:
    """Re-encode an image as a maximally compressed PNG."""
    image = _open_image(buffer)
    try:
        return _encode_png(image, quality)
    except (OSError, ValueError) as e:
        raise ImageProcessingError(f"Failed to compress PNG: {e}", "compression_failed")


def compress_jpeg(buffer: bytes, quality: int = config.JPEG_QUALITY) -> bytes:
    """Re-encode an image as a progressive JPEG."""
    image = _open_image(buffer)
    try:
        return _encode_jpeg(image, quality)
    except (OSError, ValueError) as e:
        raise ImageProcessingError(f"Failed to compress JPEG: {e}", "compression_failed")


def resize_image(buffer: bytes, width: int, height: int) -> bytes:
    """Shrink an image to fit inside width x height; output is PNG."""
    image = _open_image(buffer)
    return _encode_png(_fit_inside(image, width, height))


def pad_to_canvas(buffer: bytes, width: int, height: int) -> bytes:
    """Scale an image to fit a width x height transparent canvas, centered."""
    image = _open_image(buffer).convert("RGBA")
    canvas = ImageOps.pad(image, (width, height), color=(255, 255, 255, 0))
    return _encode_png(canvas)


def _encode_placeholder(width: int, height: int, color: Union[tuple, str]) -> bytes:
    fill = color if isinstance(color, str) else tuple(color)
    image = Image.new("RGBA", (int(width), int(height)), fill)
    out = io.BytesIO()
    image.save(out, format="PNG", optimize=True)
    return out.getvalue()


def create_fallback_image(
    width: Optional[int] = None,
    height: Optional[int] = None,
    color: Union[tuple, str] = config.PLACEHOLDER_COLOR,
) -> bytes:
    """
    Synthesize a flat-color placeholder PNG.

    color is an RGBA tuple or any color string Pillow understands
    ("#ff0000", "red"). Never raises: an unusable color falls back to the
    default gray at the requested size. If that fails too the result is a
    1x1 image.
    """
    width = width or config.DEFAULT_WIDTH
    height = height or config.DEFAULT_HEIGHT
    attempts = [
        (width, height, color),
        (width, height, config.PLACEHOLDER_COLOR),
        (1, 1, config.PLACEHOLDER_COLOR),
    ]
    for w, h, c in attempts:
        try:
            return _encode_placeholder(w, h, c)
        except Exception as e:
            logger.error(f"Fallback image creation failed ({w}x{h}, {c}): {e}")
    return MINIMAL_PNG


def convert_to_base64_data_uri(buffer: bytes, mime_type: str) -> str:
    """
    Encode a buffer as a data URI: data:<mime>;base64,<payload>.

    Raises:
        ImageProcessingError: the buffer is not bytes-like.
    """
    try:
        payload = base64.b64encode(buffer).decode("ascii")
    except (TypeError, ValueError) as e:
        raise ImageProcessingError(f"Failed to convert image to base64: {e}", "encoding_failed")
    return f"data:{mime_type};base64,{payload}"
