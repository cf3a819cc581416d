"""
Raster image service tests.

Images are built in memory with Pillow. The SVG rasterizer is replaced
with a fake cairosvg module so these tests do not need native cairo.
"""

import io
import sys
from unittest.mock import MagicMock, patch

import pytest
from PIL import Image

from app.models.logo import WarningKind
from app.services.image_processor import (
    MINIMAL_PNG,
    ImageProcessingError,
    RasterizationError,
    compress_jpeg,
    compress_png,
    convert_to_base64_data_uri,
    create_fallback_image,
    generate_png_from_svg,
    optimize_image,
    pad_to_canvas,
    resize_image,
)


def _make_image(width: int, height: int, fmt: str = "PNG", color=(200, 30, 30, 255)) -> bytes:
    mode = "RGBA" if fmt == "PNG" else "RGB"
    image = Image.new(mode, (width, height), color if mode == "RGBA" else color[:3])
    out = io.BytesIO()
    image.save(out, format=fmt)
    return out.getvalue()


def _open(buffer: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(buffer))
    image.load()
    return image


def _fake_cairosvg(rendered: bytes = None, error: Exception = None) -> MagicMock:
    module = MagicMock()
    if error is not None:
        module.svg2png.side_effect = error
    else:
        module.svg2png.return_value = rendered
    return module


class TestGeneratePngFromSvg:
    def test_returns_png_from_rasterizer(self):
        fake = _fake_cairosvg(rendered=_make_image(120, 80))
        with patch.dict(sys.modules, {"cairosvg": fake}):
            png = generate_png_from_svg("<svg/>", 120, 80)

        assert _open(png).format == "PNG"
        assert _open(png).size == (120, 80)
        kwargs = fake.svg2png.call_args.kwargs
        assert kwargs["bytestring"] == b"<svg/>"
        assert kwargs["output_width"] == 120
        assert kwargs["output_height"] == 80

    def test_defaults_to_configured_size(self):
        fake = _fake_cairosvg(rendered=_make_image(200, 200))
        with patch.dict(sys.modules, {"cairosvg": fake}):
            generate_png_from_svg(b"<svg/>")
        assert fake.svg2png.call_args.kwargs["output_width"] == 200

    def test_rasterizer_error_is_wrapped(self):
        fake = _fake_cairosvg(error=ValueError("bad svg"))
        with patch.dict(sys.modules, {"cairosvg": fake}):
            with pytest.raises(RasterizationError) as exc:
                generate_png_from_svg("<svg/>")
        assert "bad svg" in exc.value.message

    def test_empty_svg_rejected(self):
        with pytest.raises(RasterizationError) as exc:
            generate_png_from_svg("")
        assert exc.value.error_code == "empty_svg"

    def test_empty_render_rejected(self):
        with patch.dict(sys.modules, {"cairosvg": _fake_cairosvg(rendered=b"")}):
            with pytest.raises(RasterizationError):
                generate_png_from_svg("<svg/>")


class TestOptimizeImage:
    def test_png_is_shrunk_to_fit(self):
        result = optimize_image(_make_image(400, 300), "image/png", 200, 200)
        assert result.mime_type == "image/png"
        assert (result.info.width, result.info.height) == (200, 150)
        assert _open(result.buffer).format == "PNG"
        assert result.info.size == len(result.buffer)

    def test_small_image_is_not_enlarged(self):
        result = optimize_image(_make_image(50, 40), "image/png", 200, 200)
        assert (result.info.width, result.info.height) == (50, 40)

    def test_jpeg_stays_progressive_jpeg(self):
        result = optimize_image(_make_image(300, 300, "JPEG"), "image/jpeg")
        image = _open(result.buffer)
        assert result.mime_type == "image/jpeg"
        assert image.format == "JPEG"
        assert image.info.get("progressive") == 1

    def test_high_optimization_quantizes_png(self):
        result = optimize_image(_make_image(100, 100), "image/png", optimization_level="high")
        assert _open(result.buffer).mode == "P"

    def test_unsupported_format_is_coerced_to_png(self):
        result = optimize_image(_make_image(10, 10), "image/gif")
        assert result.mime_type == "image/png"
        assert any("Unsupported image format" in w.message for w in result.warnings)

    def test_large_area_warning(self):
        with patch("app.config.LARGE_IMAGE_AREA", 100):
            result = optimize_image(_make_image(20, 20), "image/png")
        assert any(w.kind == WarningKind.FILE_SIZE and "very large" in w.message for w in result.warnings)

    def test_corrupt_input_raises(self):
        with pytest.raises(ImageProcessingError) as exc:
            optimize_image(b"definitely not an image", "image/png")
        assert exc.value.error_code == "corrupted_image"

    def test_empty_input_raises(self):
        with pytest.raises(ImageProcessingError) as exc:
            optimize_image(b"", "image/png")
        assert exc.value.error_code == "empty_image"


class TestCompressAndResize:
    def test_compress_png(self):
        assert _open(compress_png(_make_image(30, 30, "JPEG"))).format == "PNG"

    def test_compress_jpeg_flattens_alpha(self):
        out = _open(compress_jpeg(_make_image(30, 30, color=(0, 0, 0, 0))))
        assert out.format == "JPEG"
        assert out.mode == "RGB"
        # transparent pixels land on white
        assert out.getpixel((15, 15))[0] > 240

    def test_resize_image_keeps_aspect_ratio(self):
        out = _open(resize_image(_make_image(600, 200), 300, 300))
        assert out.size == (300, 100)

    def test_pad_to_canvas(self):
        out = _open(pad_to_canvas(_make_image(100, 100), 300, 200))
        assert out.size == (300, 200)


class TestCreateFallbackImage:
    def test_default_placeholder(self):
        image = _open(create_fallback_image())
        assert image.size == (200, 200)

    def test_custom_size(self):
        assert _open(create_fallback_image(64, 32)).size == (64, 32)

    def test_invalid_size_falls_back_to_minimal_image(self):
        image = _open(create_fallback_image(-5, 10))
        assert image.size == (1, 1)

    def test_invalid_color_keeps_requested_size(self):
        image = _open(create_fallback_image(10, 10, color="not-a-color"))
        assert image.size == (10, 10)
        assert image.convert("RGBA").getpixel((0, 0)) == (200, 200, 200, 255)

    def test_accepts_hex_color_string(self):
        image = _open(create_fallback_image(10, 10, "#ff0000"))
        assert image.size == (10, 10)
        assert image.convert("RGBA").getpixel((0, 0)) == (255, 0, 0, 255)

    def test_returns_constant_when_pillow_fails(self):
        with patch("app.services.image_processor.Image.new", side_effect=RuntimeError("no memory")):
            assert create_fallback_image() == MINIMAL_PNG

    def test_minimal_png_is_a_png(self):
        assert _open(MINIMAL_PNG).size == (1, 1)


class TestBase64DataUri:
    def test_encodes_payload(self):
        assert convert_to_base64_data_uri(b"abc", "image/png") == "data:image/png;base64,YWJj"

    def test_jpeg_mime_type(self):
        assert convert_to_base64_data_uri(b"\xff\xd8", "image/jpeg").startswith("data:image/jpeg;base64,")

    def test_non_bytes_raises(self):
        with pytest.raises(ImageProcessingError):
            convert_to_base64_data_uri(None, "image/png")
