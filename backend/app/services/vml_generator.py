"""
VML generation for Outlook desktop.

Converts simple SVGs (basic shapes and paths without arcs or transforms)
into a VML <v:group> wrapped in an Outlook conditional comment, and
produces a placeholder block when conversion is not possible.

Public API:
  convert_svg_to_vml(svg, width, height)  -> VmlConversionResult
  generate_placeholder_vml(width, height) -> str
  add_outlook_styling(vml)                -> str
  validate_vml(vml)                       -> VmlValidation

Coordinate model: the SVG viewBox is mapped onto an integer coordinate
space (longest side = COORD_RESOLUTION units) that the group stretches over
width x height pixels. Children are positioned in that unitless space.
"""

import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from html import escape
from typing import Optional, Union

from app import config
from app.models.logo import ProcessingWarning, Severity, WarningKind
from app.services.svg_processor import SvgOptimizationError, local_name, parse_svg

logger = logging.getLogger(__name__)

VML_NS = "urn:schemas-microsoft-com:vml"
OFFICE_NS = "urn:schemas-microsoft-com:office:office"

COORD_RESOLUTION = 1000
LARGE_VML_CHARS = 10000

OUTLOOK_STYLE_BLOCK = """<!--[if gte mso 9]>
<style type="text/css">
  v\\:* {behavior:url(#default#VML);}
  o\\:* {behavior:url(#default#VML);}
  w\\:* {behavior:url(#default#VML);}
  .shape {behavior:url(#default#VML);}
</style>
<![endif]-->
"""

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class VmlConversionError(Exception):
    """Raised when an SVG cannot be expressed as VML."""
    def __init__(self, message: str, error_code: str = "vml_conversion_failed"):
        super().__init__(message)
        self.error_code = error_code
        self.message = message


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class VmlConversionResult:
    vml_code: str
    warnings: list[ProcessingWarning] = field(default_factory=list)


@dataclass
class VmlValidation:
    valid: bool
    warnings: list[ProcessingWarning] = field(default_factory=list)


@dataclass
class _Paint:
    """Presentation attributes inherited down the tree."""
    fill: Optional[str] = "#000000"
    stroke: Optional[str] = None
    stroke_width: float = 1.0
    opacity: float = 1.0
    fill_opacity: float = 1.0


@dataclass
class _Viewport:
    min_x: float
    min_y: float
    scale: float        # viewBox units -> coordinate units
    px_per_unit: float  # viewBox units -> output pixels

    def x(self, value: float) -> int:
        return round((value - self.min_x) * self.scale)

    def y(self, value: float) -> int:
        return round((value - self.min_y) * self.scale)

    def length(self, value: float) -> int:
        return round(value * self.scale)


# ---------------------------------------------------------------------------
# Attribute parsing
# ---------------------------------------------------------------------------

_NUMBER_RE = re.compile(r"[-+]?(?:\d*\.\d+|\d+\.?)(?:[eE][-+]?\d+)?")
_PATH_TOKEN_RE = re.compile(r"[MmLlHhVvCcSsQqTtAaZz]|[-+]?(?:\d*\.\d+|\d+\.?)(?:[eE][-+]?\d+)?")
_RGB_RE = re.compile(r"rgb\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*\)", re.IGNORECASE)
_HEX_RE = re.compile(r"^#([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")

# Number of arguments each path command consumes per repetition
_PATH_ARITY = {"m": 2, "l": 2, "h": 1, "v": 1, "c": 6, "s": 4, "q": 4, "t": 2, "a": 7, "z": 0}

_SKIPPED_ELEMENTS = {"title", "desc", "metadata", "defs", "style"}


def _number(value: Optional[str], default: float = 0.0) -> float:
    if value is None:
        return default
    match = _NUMBER_RE.search(value)
    if not match:
        return default
    return float(match.group(0))


def _style_declarations(el: ET.Element) -> dict[str, str]:
    declarations = {}
    for part in el.attrib.get("style", "").split(";"):
        if ":" in part:
            name, value = part.split(":", 1)
            declarations[name.strip().lower()] = value.strip()
    return declarations


def _presentation(el: ET.Element) -> dict[str, str]:
    """Presentation attributes; inline style wins over attributes."""
    values = {local_name(k): v for k, v in el.attrib.items()}
    values.update(_style_declarations(el))
    return values


def convert_color(value: Optional[str]) -> Optional[str]:
    """
    Translate an SVG paint value to a VML color.

    Returns None for 'none'/'transparent'. Raises VmlConversionError for
    gradient or pattern references.
    """
    if value is None:
        return None
    value = value.strip()
    lowered = value.lower()
    if lowered in ("", "none", "transparent"):
        return None
    if lowered.startswith("url("):
        raise VmlConversionError("Gradient and pattern paints cannot be converted to VML", "unsupported_paint")
    if lowered == "currentcolor":
        return "#000000"

    hex_match = _HEX_RE.match(value)
    if hex_match:
        digits = hex_match.group(1)
        if len(digits) == 3:
            digits = "".join(ch * 2 for ch in digits)
        return f"#{digits.lower()}"

    rgb_match = _RGB_RE.match(value)
    if rgb_match:
        r, g, b = (min(int(c), 255) for c in rgb_match.groups())
        return f"#{r:02x}{g:02x}{b:02x}"

    # Named colors are understood by VML as-is
    if lowered.isalpha():
        return lowered
    raise VmlConversionError(f"Unsupported color value: {value!r}", "unsupported_paint")


def _inherit(paint: _Paint, el: ET.Element) -> _Paint:
    values = _presentation(el)
    child = _Paint(
        fill=paint.fill,
        stroke=paint.stroke,
        stroke_width=paint.stroke_width,
        opacity=paint.opacity,
        fill_opacity=paint.fill_opacity,
    )
    if "fill" in values:
        child.fill = convert_color(values["fill"])
    if "stroke" in values:
        child.stroke = convert_color(values["stroke"])
    if "stroke-width" in values:
        child.stroke_width = _number(values["stroke-width"], paint.stroke_width)
    if "opacity" in values:
        child.opacity = paint.opacity * _number(values["opacity"], 1.0)
    if "fill-opacity" in values:
        child.fill_opacity = _number(values["fill-opacity"], 1.0)
    return child


def _viewbox(root: ET.Element, width: int, height: int) -> tuple[float, float, float, float]:
    raw = root.attrib.get("viewBox")
    if raw:
        parts = [float(p) for p in _NUMBER_RE.findall(raw)]
        if len(parts) == 4 and parts[2] > 0 and parts[3] > 0:
            return parts[0], parts[1], parts[2], parts[3]
        raise VmlConversionError(f"Invalid viewBox: {raw!r}", "invalid_viewbox")

    svg_width = _number(root.attrib.get("width"), 0)
    svg_height = _number(root.attrib.get("height"), 0)
    if svg_width > 0 and svg_height > 0:
        return 0.0, 0.0, svg_width, svg_height
    return 0.0, 0.0, float(width), float(height)


# ---------------------------------------------------------------------------
# Path conversion
# ---------------------------------------------------------------------------

def _path_commands(d: str) -> list[tuple[str, list[float]]]:
    """Split path data into (command, args) pairs, expanding implicit repeats."""
    tokens = _PATH_TOKEN_RE.findall(d)
    commands: list[tuple[str, list[float]]] = []
    i = 0
    current: Optional[str] = None
    while i < len(tokens):
        token = tokens[i]
        if token.isalpha():
            current = token
            i += 1
            if current in "zZ":
                commands.append((current, []))
                continue
        elif current is None:
            raise VmlConversionError("Path data must start with a command", "invalid_path")

        arity = _PATH_ARITY[current.lower()]
        if arity == 0:
            raise VmlConversionError("Unexpected number after closepath", "invalid_path")
        args = tokens[i:i + arity]
        if len(args) < arity or any(arg.isalpha() for arg in args):
            raise VmlConversionError(f"Incomplete arguments for path command '{current}'", "invalid_path")
        commands.append((current, [float(a) for a in args]))
        i += arity
        # Coordinates after a moveto are implicit linetos
        if current == "M":
            current = "L"
        elif current == "m":
            current = "l"
    return commands


def convert_path_data(d: str, viewport: _Viewport) -> str:
    """
    Translate SVG path data into a VML path string (m/l/c/x/e).

    Quadratic curves are raised to cubics; arcs raise VmlConversionError.
    """
    out: list[str] = []
    x = y = 0.0
    start_x = start_y = 0.0
    last_cubic: Optional[tuple[float, float]] = None
    last_quad: Optional[tuple[float, float]] = None

    def point(px: float, py: float) -> str:
        return f"{viewport.x(px)},{viewport.y(py)}"

    def cubic(x1, y1, x2, y2, ex, ey) -> None:
        out.append(f"c {point(x1, y1)},{point(x2, y2)},{point(ex, ey)}")

    for command, args in _path_commands(d):
        upper = command.upper()
        relative = command != upper
        ox, oy = (x, y) if relative else (0.0, 0.0)

        if upper == "A":
            raise VmlConversionError("Arc path segments cannot be converted to VML", "unsupported_arc")

        if upper == "M":
            x, y = ox + args[0], oy + args[1]
            start_x, start_y = x, y
            out.append(f"m {point(x, y)}")
        elif upper == "L":
            x, y = ox + args[0], oy + args[1]
            out.append(f"l {point(x, y)}")
        elif upper == "H":
            x = ox + args[0]
            out.append(f"l {point(x, y)}")
        elif upper == "V":
            y = oy + args[0]
            out.append(f"l {point(x, y)}")
        elif upper == "C":
            x1, y1 = ox + args[0], oy + args[1]
            x2, y2 = ox + args[2], oy + args[3]
            ex, ey = ox + args[4], oy + args[5]
            cubic(x1, y1, x2, y2, ex, ey)
            last_cubic = (x2, y2)
            x, y = ex, ey
        elif upper == "S":
            if last_cubic is not None:
                x1, y1 = 2 * x - last_cubic[0], 2 * y - last_cubic[1]
            else:
                x1, y1 = x, y
            x2, y2 = ox + args[0], oy + args[1]
            ex, ey = ox + args[2], oy + args[3]
            cubic(x1, y1, x2, y2, ex, ey)
            last_cubic = (x2, y2)
            x, y = ex, ey
        elif upper in ("Q", "T"):
            if upper == "Q":
                qx, qy = ox + args[0], oy + args[1]
                ex, ey = ox + args[2], oy + args[3]
            else:
                if last_quad is not None:
                    qx, qy = 2 * x - last_quad[0], 2 * y - last_quad[1]
                else:
                    qx, qy = x, y
                ex, ey = ox + args[0], oy + args[1]
            cubic(
                x + 2.0 / 3.0 * (qx - x), y + 2.0 / 3.0 * (qy - y),
                ex + 2.0 / 3.0 * (qx - ex), ey + 2.0 / 3.0 * (qy - ey),
                ex, ey,
            )
            last_quad = (qx, qy)
            x, y = ex, ey
        elif upper == "Z":
            out.append("x")
            x, y = start_x, start_y

        if upper not in ("C", "S"):
            last_cubic = None
        if upper not in ("Q", "T"):
            last_quad = None

    if not out:
        raise VmlConversionError("Path has no drawable segments", "invalid_path")
    out.append("e")
    return " ".join(out)


def _points(raw: str) -> list[tuple[float, float]]:
    numbers = [float(n) for n in _NUMBER_RE.findall(raw or "")]
    if len(numbers) < 4 or len(numbers) % 2:
        raise VmlConversionError("Polyline/polygon needs at least two coordinate pairs", "invalid_points")
    return list(zip(numbers[0::2], numbers[1::2]))


# ---------------------------------------------------------------------------
# Shape conversion
# ---------------------------------------------------------------------------

def _paint_attributes(paint: _Paint, viewport: _Viewport, fillable: bool = True) -> str:
    attrs = []
    if fillable and paint.fill:
        attrs.append(f'fillcolor="{paint.fill}"')
    else:
        attrs.append('filled="f"')
    if paint.stroke and paint.stroke_width > 0:
        weight = paint.stroke_width * viewport.px_per_unit
        attrs.append(f'strokecolor="{paint.stroke}" strokeweight="{weight:g}px"')
    else:
        attrs.append('stroked="f"')
    return " ".join(attrs)


def _shape_children(paint: _Paint, fillable: bool = True) -> str:
    opacity = paint.opacity * paint.fill_opacity
    if fillable and paint.fill and opacity < 1:
        return f'<v:fill opacity="{opacity:g}"/>'
    return ""


def _box_style(left: int, top: int, width: int, height: int) -> str:
    return f"position:absolute;left:{left};top:{top};width:{width};height:{height};"


def _element(tag: str, attrs: str, children: str = "") -> str:
    if children:
        return f"<{tag} {attrs}>{children}</{tag}>"
    return f"<{tag} {attrs}></{tag}>"


def _convert_rect(el: ET.Element, paint: _Paint, viewport: _Viewport) -> str:
    x, y = _number(el.attrib.get("x")), _number(el.attrib.get("y"))
    w, h = _number(el.attrib.get("width")), _number(el.attrib.get("height"))
    if w <= 0 or h <= 0:
        return ""
    style = _box_style(viewport.x(x), viewport.y(y), viewport.length(w), viewport.length(h))
    paint_attrs = _paint_attributes(paint, viewport)

    rx = el.attrib.get("rx")
    ry = el.attrib.get("ry")
    radius = _number(rx if rx is not None else ry, 0)
    if radius > 0:
        arcsize = min(radius / min(w, h), 0.5)
        attrs = f'style="{style}" arcsize="{arcsize:.4g}" {paint_attrs}'
        return _element("v:roundrect", attrs, _shape_children(paint))
    return _element("v:rect", f'style="{style}" {paint_attrs}', _shape_children(paint))


def _convert_oval(el: ET.Element, paint: _Paint, viewport: _Viewport, circle: bool) -> str:
    cx, cy = _number(el.attrib.get("cx")), _number(el.attrib.get("cy"))
    if circle:
        rx = ry = _number(el.attrib.get("r"))
    else:
        rx, ry = _number(el.attrib.get("rx")), _number(el.attrib.get("ry"))
    if rx <= 0 or ry <= 0:
        return ""
    style = _box_style(viewport.x(cx - rx), viewport.y(cy - ry), viewport.length(2 * rx), viewport.length(2 * ry))
    return _element("v:oval", f'style="{style}" {_paint_attributes(paint, viewport)}', _shape_children(paint))


def _convert_line(el: ET.Element, paint: _Paint, viewport: _Viewport) -> str:
    x1, y1 = _number(el.attrib.get("x1")), _number(el.attrib.get("y1"))
    x2, y2 = _number(el.attrib.get("x2")), _number(el.attrib.get("y2"))
    attrs = (
        f'from="{viewport.x(x1)},{viewport.y(y1)}" to="{viewport.x(x2)},{viewport.y(y2)}" '
        f"{_paint_attributes(paint, viewport, fillable=False)}"
    )
    return _element("v:line", attrs)


def _shape(path: str, paint: _Paint, viewport: _Viewport, coordsize: str, fillable: bool = True) -> str:
    width, height = coordsize.split(",")
    attrs = (
        f'style="{_box_style(0, 0, int(width), int(height))}" coordsize="{coordsize}" '
        f'path="{path}" {_paint_attributes(paint, viewport, fillable)}'
    )
    return _element("v:shape", attrs, _shape_children(paint, fillable))


def _convert_poly(el: ET.Element, paint: _Paint, viewport: _Viewport, coordsize: str, closed: bool) -> str:
    pts = _points(el.attrib.get("points", ""))
    segments = [f"m {viewport.x(pts[0][0])},{viewport.y(pts[0][1])}"]
    segments.extend(f"l {viewport.x(px)},{viewport.y(py)}" for px, py in pts[1:])
    if closed:
        segments.append("x")
    segments.append("e")
    # SVG fills open polylines too, implicitly closed
    return _shape(" ".join(segments), paint, viewport, coordsize)


def _convert_children(
    parent: ET.Element,
    paint: _Paint,
    viewport: _Viewport,
    coordsize: str,
    out: list[str],
    warnings: list[ProcessingWarning],
) -> None:
    for el in parent:
        if not isinstance(el.tag, str):
            continue
        name = local_name(el.tag)
        if name in _SKIPPED_ELEMENTS:
            continue
        if "transform" in el.attrib:
            raise VmlConversionError(f"<{name}> uses a transform, which cannot be converted to VML", "unsupported_transform")

        values = _presentation(el)
        if values.get("display") == "none" or values.get("visibility") == "hidden":
            continue
        if "stroke-dasharray" in values and values["stroke-dasharray"] != "none":
            warnings.append(ProcessingWarning(
                kind=WarningKind.VML_CONVERSION,
                message=f"Dashed stroke on <{name}> is rendered solid in Outlook",
                severity=Severity.LOW,
            ))

        style = _inherit(paint, el)
        if name in ("g", "svg"):
            _convert_children(el, style, viewport, coordsize, out, warnings)
        elif name == "rect":
            out.append(_convert_rect(el, style, viewport))
        elif name == "circle":
            out.append(_convert_oval(el, style, viewport, circle=True))
        elif name == "ellipse":
            out.append(_convert_oval(el, style, viewport, circle=False))
        elif name == "line":
            out.append(_convert_line(el, style, viewport))
        elif name == "polyline":
            out.append(_convert_poly(el, style, viewport, coordsize, closed=False))
        elif name == "polygon":
            out.append(_convert_poly(el, style, viewport, coordsize, closed=True))
        elif name == "path":
            path = convert_path_data(el.attrib.get("d", ""), viewport)
            out.append(_shape(path, style, viewport, coordsize))
        else:
            raise VmlConversionError(f"<{name}> elements cannot be converted to VML", "unsupported_element")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def convert_svg_to_vml(
    svg: Union[str, bytes],
    width: Optional[int] = None,
    height: Optional[int] = None,
) -> VmlConversionResult:
    """
    Convert an SVG made of basic shapes into VML.

    The result is always wrapped in <!--[if vml]> ... <![endif]-->.

    Raises:
        VmlConversionError: the SVG is invalid or uses a feature VML cannot
            express (arcs, transforms, gradients, text, images, ...).
    """
    width = width or config.DEFAULT_WIDTH
    height = height or config.DEFAULT_HEIGHT
    warnings: list[ProcessingWarning] = []

    try:
        root = parse_svg(svg)
    except SvgOptimizationError as e:
        raise VmlConversionError(e.message, "invalid_svg")

    min_x, min_y, vb_width, vb_height = _viewbox(root, width, height)
    scale = COORD_RESOLUTION / max(vb_width, vb_height)
    viewport = _Viewport(
        min_x=min_x,
        min_y=min_y,
        scale=scale,
        px_per_unit=min(width / vb_width, height / vb_height),
    )
    coordsize = f"{round(vb_width * scale)},{round(vb_height * scale)}"

    if "transform" in root.attrib:
        raise VmlConversionError("Root <svg> uses a transform, which cannot be converted to VML", "unsupported_transform")

    if abs(vb_width / vb_height - width / height) > 0.01:
        warnings.append(ProcessingWarning(
            kind=WarningKind.VML_CONVERSION,
            message="Output dimensions do not match the SVG aspect ratio; the VML will be stretched",
            severity=Severity.LOW,
        ))

    shapes: list[str] = []
    _convert_children(root, _inherit(_Paint(), root), viewport, coordsize, shapes, warnings)
    shapes = [s for s in shapes if s]
    if not shapes:
        raise VmlConversionError("SVG contains no drawable shapes", "empty_svg")

    body = "\n".join(f"  {s}" for s in shapes)
    vml = (
        "<!--[if vml]>\n"
        f'<v:group xmlns:v="{VML_NS}" xmlns:o="{OFFICE_NS}" '
        f'coordsize="{coordsize}" coordorigin="0,0" '
        f'style="width:{width}px;height:{height}px;display:inline-block;vertical-align:top;">\n'
        f"{body}\n"
        "</v:group>\n"
        "<![endif]-->"
    )
    logger.debug("Converted SVG to VML: %d shapes, %d chars", len(shapes), len(vml))
    return VmlConversionResult(vml_code=vml, warnings=warnings)


def generate_placeholder_vml(width: Optional[int] = None, height: Optional[int] = None, label: str = "Image") -> str:
    """A gray labelled box used when the logo cannot be drawn in VML."""
    width = width or config.DEFAULT_WIDTH
    height = height or config.DEFAULT_HEIGHT
    return (
        "<!--[if vml]>\n"
        f'<v:rect xmlns:v="{VML_NS}" xmlns:o="{OFFICE_NS}" '
        f'style="width:{width}px;height:{height}px;display:inline-block;" fillcolor="#CCCCCC" stroked="f">\n'
        '  <v:textbox inset="0,0,0,0">\n'
        f'    <center style="color:#666666;font-family:Arial;font-size:12px;">{escape(label)}</center>\n'
        "  </v:textbox>\n"
        "</v:rect>\n"
        "<![endif]-->"
    )


def add_outlook_styling(vml: str) -> str:
    """
    Prepend the mso style block that enables VML behaviour in Outlook and
    make sure the office namespace is declared. Idempotent.
    """
    if vml.startswith(OUTLOOK_STYLE_BLOCK):
        return vml
    styled = vml
    if f'xmlns:o="{OFFICE_NS}"' not in styled:
        styled = re.sub(r"<v:(group|rect)\b", rf'<v:\1 xmlns:o="{OFFICE_NS}"', styled, count=1)
    return OUTLOOK_STYLE_BLOCK + styled


def validate_vml(vml: str) -> VmlValidation:
    """
    Static checks for Outlook compatibility. Valid means no high-severity
    warnings.
    """
    warnings: list[ProcessingWarning] = []

    def warn(message: str, severity: Severity) -> None:
        warnings.append(ProcessingWarning(kind=WarningKind.VML_CONVERSION, message=message, severity=severity))

    if f'xmlns:v="{VML_NS}"' not in vml:
        warn("VML code is missing required namespace declarations", Severity.HIGH)
    if "<!--[if vml]>" not in vml:
        warn("VML code should be wrapped in Outlook conditional comments", Severity.HIGH)
    if not re.search(r"<v:(rect|roundrect|oval|shape|group|line|polyline)\b", vml):
        warn("VML code does not contain any standard VML elements", Severity.HIGH)
    if len(vml) > LARGE_VML_CHARS:
        warn("VML code is very large and may cause performance issues in Outlook", Severity.MEDIUM)

    return VmlValidation(
        valid=not any(w.severity == Severity.HIGH for w in warnings),
        warnings=warnings,
    )
