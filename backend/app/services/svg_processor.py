"""
SVG processing service.

Sanitizes and optimizes uploaded SVG markup and decides whether an SVG is
simple enough to be vectorized into VML for Outlook.

Public API:
  process_svg(svg_source, id_prefix, max_passes) -> SvgProcessingOutput
  optimize_svg(svg_source, id_prefix, max_passes) -> str
  sanitize_svg(svg_source)                        -> str
  analyze_svg_complexity(svg_source)              -> list[ProcessingWarning]
  vml_blockers(svg_source, policy)                -> list[str]
  can_convert_to_vml(svg_source, policy)          -> bool
"""

import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Optional, Union

from app import config
from app.models.logo import ProcessingWarning, Severity, WarningKind

logger = logging.getLogger(__name__)

SVG_NS = "http://www.w3.org/2000/svg"
XLINK_NS = "http://www.w3.org/1999/xlink"
XML_NS = "http://www.w3.org/XML/1998/namespace"

# Serialize SVG as the default namespace instead of ns0:
ET.register_namespace("", SVG_NS)
ET.register_namespace("xlink", XLINK_NS)

SvgSource = Union[str, bytes]

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class SvgOptimizationError(Exception):
    """Raised when SVG markup cannot be parsed or optimized."""
    def __init__(self, message: str, error_code: str = "optimization_failed"):
        super().__init__(message)
        self.error_code = error_code
        self.message = message


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class SvgProcessingOutput:
    """Result of process_svg()."""
    optimized_svg: str
    warnings: list[ProcessingWarning] = field(default_factory=list)
    optimized: bool = True  # False when the original source was returned


@dataclass(frozen=True)
class VmlPolicy:
    """
    What an SVG may contain to be converted to VML.

    Anything that is neither a shape nor a structural element blocks
    conversion.
    """
    shape_elements: frozenset = frozenset(
        {"rect", "circle", "ellipse", "line", "polyline", "polygon", "path"}
    )
    structural_elements: frozenset = frozenset({"svg", "g", "title", "desc", "metadata", "defs"})
    blocking_attributes: frozenset = frozenset({"filter", "mask", "clip-path"})
    max_path_segments: int = 50
    max_shapes: int = 200


DEFAULT_VML_POLICY = VmlPolicy()

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

ANIMATION_ELEMENTS = {"animate", "animateTransform", "animateMotion", "animateColor", "set"}
GRADIENT_ELEMENTS = {"linearGradient", "radialGradient"}
TEXT_ELEMENTS = {"text", "tspan", "textPath"}

# Elements whose text content is significant
_TEXT_CONTENT_ELEMENTS = TEXT_ELEMENTS | {"style", "title", "desc"}

# Elements removed by the optimizer
_STRIP_ELEMENTS = {"metadata"}

# Attributes holding whitespace-separated ID lists
_IDREF_LIST_ATTRS = {"aria-labelledby", "aria-describedby"}
# SMIL timing attributes that can name another element ("id.event")
_SMIL_TIMING_ATTRS = {"begin", "end"}

# Elements and attributes removed by the sanitizer
_UNSAFE_ELEMENTS = {"script", "foreignObject"}

_PATH_COMMAND_RE = re.compile(r"[MLHVCSQTAZmlhvcsqtaz]")
_URL_REF_RE = re.compile(r"url\(\s*['\"]?#([^'\")\s]+)['\"]?\s*\)")
_CSS_ID_RE = re.compile(r"#([A-Za-z_][\w.-]*)")
_SMIL_REF_RE = re.compile(r"(^|;)(\s*)([A-Za-z_][\w-]*)(?=\.[A-Za-z])")
_LENGTH_RE = re.compile(r"^\s*([0-9]*\.?[0-9]+)\s*(px)?\s*$")

LARGE_SVG_CHARS = 20000


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def local_name(tag: str) -> str:
    """Strip the '{namespace}' part of an ElementTree tag or attribute."""
    if tag.startswith("{"):
        return tag.rsplit("}", 1)[1]
    return tag


def _namespace(tag: str) -> Optional[str]:
    if tag.startswith("{"):
        return tag[1:].split("}", 1)[0]
    return None


def parse_svg(svg_source: SvgSource) -> ET.Element:
    """
    Parse SVG markup and return the root element.

    Comments, processing instructions and the doctype are dropped by the
    parser. Raises SvgOptimizationError when the markup is not an SVG.
    """
    if svg_source is None:
        raise SvgOptimizationError("No SVG content provided", "empty_svg")
    try:
        root = ET.fromstring(svg_source)
    except ET.ParseError as e:
        raise SvgOptimizationError(f"Invalid SVG markup: {e}", "invalid_svg")

    if local_name(root.tag) != "svg":
        raise SvgOptimizationError(
            f"Root element is <{local_name(root.tag)}>, expected <svg>", "invalid_svg"
        )
    return root


def _serialize(root: ET.Element) -> str:
    return ET.tostring(root, encoding="unicode")


def _qualify_tags(root: ET.Element) -> None:
    """Put un-namespaced elements into the SVG namespace."""
    for el in root.iter():
        if isinstance(el.tag, str) and not el.tag.startswith("{"):
            el.tag = f"{{{SVG_NS}}}{el.tag}"


def _parent_map(root: ET.Element) -> dict:
    return {child: parent for parent in root.iter() for child in parent}


def _remove_elements(root: ET.Element, predicate) -> int:
    """Remove every element (below root) matching predicate; return count."""
    removed = 0
    parents = _parent_map(root)
    for el in list(root.iter()):
        if el is root or not predicate(el):
            continue
        parent = parents.get(el)
        if parent is None:
            continue
        # Keep the text that followed the removed element
        if el.tail and el.tail.strip():
            _append_text_before(parent, el, el.tail)
        parent.remove(el)
        removed += 1
    return removed


def _append_text_before(parent: ET.Element, el: ET.Element, text: str) -> None:
    children = list(parent)
    idx = children.index(el)
    if idx == 0:
        parent.text = (parent.text or "") + text
    else:
        prev = children[idx - 1]
        prev.tail = (prev.tail or "") + text


def _sanitize_tree(root: ET.Element) -> None:
    _remove_elements(root, lambda el: local_name(el.tag) in _UNSAFE_ELEMENTS)

    for el in root.iter():
        for attr in list(el.attrib):
            name = local_name(attr).lower()
            value = el.attrib[attr]
            if name.startswith("on"):
                del el.attrib[attr]
            elif name == "href" and value.strip().lower().startswith("javascript:"):
                del el.attrib[attr]


def _strip_foreign_markup(root: ET.Element) -> None:
    """Drop editor metadata: <metadata> and elements/attributes outside the SVG namespaces."""
    _remove_elements(
        root,
        lambda el: local_name(el.tag) in _STRIP_ELEMENTS or _namespace(el.tag) not in (SVG_NS,),
    )
    for el in root.iter():
        for attr in list(el.attrib):
            ns = _namespace(attr)
            if ns is not None and ns not in (XLINK_NS, XML_NS):
                del el.attrib[attr]


def _strip_whitespace(root: ET.Element, inside_text: bool = False) -> None:
    name = local_name(root.tag)
    keep_text = inside_text or name in _TEXT_CONTENT_ELEMENTS
    if not keep_text and root.text is not None and not root.text.strip():
        root.text = None
    for child in root:
        _strip_whitespace(child, keep_text)
        if not keep_text and child.tail is not None and not child.tail.strip():
            child.tail = None


def _collapse_groups(el: ET.Element) -> None:
    """
    Post-order: unwrap attribute-less <g> elements and drop empty
    <g>/<defs> elements.
    """
    for child in list(el):
        _collapse_groups(child)

    new_children = []
    changed = False
    for child in list(el):
        name = local_name(child.tag)
        if name in ("g", "defs") and len(child) == 0 and not (child.text and child.text.strip()):
            changed = True
            if child.tail and child.tail.strip():
                new_children.append(("text", child.tail))
            continue
        if name == "g" and not child.attrib and not (child.text and child.text.strip()):
            changed = True
            new_children.extend(("el", grandchild) for grandchild in child)
            if child.tail and child.tail.strip():
                new_children.append(("text", child.tail))
            continue
        new_children.append(("el", child))

    if not changed:
        return

    for child in list(el):
        el.remove(child)
    last = None
    for kind, item in new_children:
        if kind == "text":
            if last is None:
                el.text = (el.text or "") + item
            else:
                last.tail = (last.tail or "") + item
        else:
            el.append(item)
            last = item


def _referenced_ids(root: ET.Element) -> set[str]:
    refs: set[str] = set()
    for el in root.iter():
        for attr, value in el.attrib.items():
            name = local_name(attr)
            refs.update(_URL_REF_RE.findall(value))
            if name == "href" and value.startswith("#"):
                refs.add(value[1:])
            elif name in _IDREF_LIST_ATTRS:
                refs.update(value.split())
            elif name in _SMIL_TIMING_ATTRS:
                refs.update(m.group(3) for m in _SMIL_REF_RE.finditer(value))
        if local_name(el.tag) == "style" and el.text:
            refs.update(_URL_REF_RE.findall(el.text))
    return refs


def _normalize_ids(root: ET.Element, id_prefix: str) -> None:
    """
    Rename IDs to '<prefix>-<n>' in document order and rewrite references.

    Unreferenced IDs are dropped unless the SVG carries a <style> element
    (CSS may select them).
    """
    has_style = any(local_name(el.tag) == "style" for el in root.iter())
    referenced = _referenced_ids(root)

    mapping: dict[str, str] = {}
    counter = 0
    for el in root.iter():
        old_id = el.attrib.get("id")
        if old_id is None:
            continue
        if old_id not in referenced and not has_style:
            del el.attrib["id"]
            continue
        counter += 1
        new_id = f"{id_prefix}-{counter}"
        mapping[old_id] = new_id
        el.attrib["id"] = new_id

    if not mapping:
        return

    def _replace_url(match: re.Match) -> str:
        ref = match.group(1)
        return f"url(#{mapping.get(ref, ref)})"

    def _replace_selector(match: re.Match) -> str:
        ref = match.group(1)
        if ref in mapping:
            return f"#{mapping[ref]}"
        # "#badge.on" is the id "badge" plus a class selector
        head = ref
        while "." in head:
            head = head.rpartition(".")[0]
            if head in mapping:
                return f"#{mapping[head]}{ref[len(head):]}"
        return match.group(0)

    def _replace_timing(match: re.Match) -> str:
        sep, space, ref = match.groups()
        return f"{sep}{space}{mapping.get(ref, ref)}"

    for el in root.iter():
        for attr, value in list(el.attrib.items()):
            if attr == "id":
                continue
            name = local_name(attr)
            if "url(" in value:
                el.attrib[attr] = _URL_REF_RE.sub(_replace_url, value)
            elif name == "href" and value.startswith("#") and value[1:] in mapping:
                el.attrib[attr] = f"#{mapping[value[1:]]}"
            elif name in _IDREF_LIST_ATTRS:
                el.attrib[attr] = " ".join(mapping.get(ref, ref) for ref in value.split())
            elif name in _SMIL_TIMING_ATTRS:
                el.attrib[attr] = _SMIL_REF_RE.sub(_replace_timing, value)
        if local_name(el.tag) == "style" and el.text:
            # url(#id) references and #id selectors
            el.text = _CSS_ID_RE.sub(_replace_selector, el.text)


def _parse_length(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    m = _LENGTH_RE.match(value)
    if not m:
        return None
    return float(m.group(1))


def _format_number(value: float) -> str:
    return f"{value:g}"


def _remove_dimensions(root: ET.Element) -> None:
    """Drop root width/height, deriving a viewBox from them when missing."""
    if "viewBox" not in root.attrib:
        width = _parse_length(root.attrib.get("width"))
        height = _parse_length(root.attrib.get("height"))
        if width and height:
            root.attrib["viewBox"] = f"0 0 {_format_number(width)} {_format_number(height)}"

    # Without a viewBox the dimensions are the only sizing information left
    if "viewBox" in root.attrib:
        root.attrib.pop("width", None)
        root.attrib.pop("height", None)


def _optimize_pass(svg_source: SvgSource, id_prefix: str) -> str:
    root = parse_svg(svg_source)
    _qualify_tags(root)
    _sanitize_tree(root)
    _strip_foreign_markup(root)
    _strip_whitespace(root)
    _normalize_ids(root, id_prefix)
    _collapse_groups(root)
    _remove_dimensions(root)
    return _serialize(root)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def sanitize_svg(svg_source: SvgSource) -> str:
    """
    Remove scripting from SVG markup: <script> and <foreignObject> elements,
    on* event handler attributes and javascript: links.
    """
    root = parse_svg(svg_source)
    _qualify_tags(root)
    _sanitize_tree(root)
    return _serialize(root)


def optimize_svg(
    svg_source: SvgSource,
    id_prefix: str = "logo",
    max_passes: int = config.SVG_MAX_PASSES,
) -> str:
    """
    Losslessly optimize SVG markup.

    Passes are repeated until the output stops changing or max_passes is
    reached. The viewBox is always kept, so optimizing an already optimized
    SVG with the same prefix is a no-op.

    Raises:
        SvgOptimizationError: markup is not a parseable SVG.
    """
    current = _optimize_pass(svg_source, id_prefix)
    for _ in range(max(max_passes, 1) - 1):
        candidate = _optimize_pass(current, id_prefix)
        if candidate == current:
            break
        current = candidate
    return current


def analyze_svg_complexity(svg_source: SvgSource) -> list[ProcessingWarning]:
    """Report SVG features that are risky in email clients or for VML conversion."""
    warnings: list[ProcessingWarning] = []

    def warn(message: str, severity: Severity) -> None:
        warnings.append(ProcessingWarning(kind=WarningKind.SVG_COMPLEXITY, message=message, severity=severity))

    try:
        root = parse_svg(svg_source)
    except SvgOptimizationError as e:
        warn(f"Failed to analyze SVG complexity: {e.message}", Severity.MEDIUM)
        return warnings

    names: set[str] = set()
    attrs: set[str] = set()
    max_segments = 0
    for el in root.iter():
        name = local_name(el.tag)
        names.add(name)
        attrs.update(local_name(a) for a in el.attrib)
        if name == "path":
            max_segments = max(max_segments, len(_PATH_COMMAND_RE.findall(el.attrib.get("d", ""))))

    if names & ANIMATION_ELEMENTS:
        warn("SVG contains animations which are not supported in VML or most email clients", Severity.HIGH)
    if names & GRADIENT_ELEMENTS:
        warn("SVG contains gradients which may not convert well to VML", Severity.MEDIUM)
    if "filter" in names or "filter" in attrs:
        warn("SVG contains filters which are not supported in VML", Severity.HIGH)
    if "mask" in names or "mask" in attrs:
        warn("SVG contains masks which are not supported in VML", Severity.HIGH)
    if "clipPath" in names or "clip-path" in attrs:
        warn("SVG contains clip paths which are not supported in VML", Severity.HIGH)
    if max_segments > DEFAULT_VML_POLICY.max_path_segments:
        warn("SVG contains complex paths which may not render correctly in VML", Severity.MEDIUM)
    if "image" in names:
        warn("SVG contains embedded images which may not convert well to VML", Severity.MEDIUM)
    if names & TEXT_ELEMENTS:
        warn("SVG contains text elements which may not render correctly in VML", Severity.MEDIUM)

    size = len(svg_source)
    if size > LARGE_SVG_CHARS:
        warn("SVG is very large and may cause performance issues in email clients", Severity.MEDIUM)

    return warnings


def _paint_references_url(el: ET.Element) -> bool:
    for attr in ("fill", "stroke"):
        if "url(" in el.attrib.get(attr, ""):
            return True
    return "url(" in el.attrib.get("style", "")


def vml_blockers(svg_source: SvgSource, policy: VmlPolicy = DEFAULT_VML_POLICY) -> list[str]:
    """
    List the reasons an SVG cannot be vectorized into VML.

    An empty list means the SVG consists only of basic shapes and
    structural elements within the policy limits.
    """
    try:
        root = parse_svg(svg_source)
    except SvgOptimizationError as e:
        return [e.message]

    reasons: list[str] = []
    unsupported: set[str] = set()
    shape_count = 0

    for el in root.iter():
        name = local_name(el.tag)
        if name in policy.shape_elements:
            shape_count += 1
        elif name not in policy.structural_elements:
            unsupported.add(name)
            continue

        for attr in el.attrib:
            if local_name(attr) in policy.blocking_attributes:
                reasons.append(f"<{name}> uses the unsupported '{local_name(attr)}' attribute")
        style = el.attrib.get("style", "")
        for blocked in policy.blocking_attributes:
            if re.search(rf"(^|;)\s*{re.escape(blocked)}\s*:", style):
                reasons.append(f"<{name}> uses the unsupported '{blocked}' style")
        if _paint_references_url(el):
            reasons.append(f"<{name}> is painted with a gradient or pattern")
        if name == "path":
            segments = len(_PATH_COMMAND_RE.findall(el.attrib.get("d", "")))
            if segments > policy.max_path_segments:
                reasons.append(
                    f"path has {segments} segments (limit {policy.max_path_segments})"
                )

    if unsupported:
        reasons.append("unsupported elements: " + ", ".join(sorted(unsupported)))
    if shape_count == 0:
        reasons.append("no drawable shapes found")
    elif shape_count > policy.max_shapes:
        reasons.append(f"{shape_count} shapes (limit {policy.max_shapes})")

    return reasons


def can_convert_to_vml(svg_source: SvgSource, policy: VmlPolicy = DEFAULT_VML_POLICY) -> bool:
    """True when the SVG is simple enough to be converted to VML."""
    return not vml_blockers(svg_source, policy)


def process_svg(
    svg_source: SvgSource,
    id_prefix: str = "logo",
    max_passes: int = config.SVG_MAX_PASSES,
) -> SvgProcessingOutput:
    """
    Sanitize, analyze and optimize an SVG.

    Never raises: when optimization fails the original source is returned
    together with an svg-complexity warning describing the failure.
    """
    original = svg_source.decode("utf-8", errors="replace") if isinstance(svg_source, bytes) else svg_source

    try:
        sanitized = sanitize_svg(svg_source)
        warnings = analyze_svg_complexity(sanitized)
        optimized = optimize_svg(sanitized, id_prefix=id_prefix, max_passes=max_passes)
    except Exception as e:
        message = e.message if isinstance(e, SvgOptimizationError) else str(e)
        logger.warning("SVG optimization failed, keeping original markup: %s", message)
        return SvgProcessingOutput(
            optimized_svg=original,
            warnings=[
                ProcessingWarning(
                    kind=WarningKind.SVG_COMPLEXITY,
                    message=f"SVG processing failed, using original SVG: {message}",
                    severity=Severity.HIGH,
                )
            ],
            optimized=False,
        )

    logger.debug("SVG optimized: %d -> %d chars", len(original), len(optimized))
    return SvgProcessingOutput(optimized_svg=optimized, warnings=warnings)
