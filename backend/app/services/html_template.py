"""
Email HTML composition.

Builds the layered logo snippet (VML for Outlook, inline SVG for clients
that render it, PNG <img> for everyone else) inside an intrinsic-ratio
responsive wrapper, and statically scans HTML for constructs that break in
email clients.

Public API:
  generate_email_html(fallback_data)                  -> str
  create_responsive_wrapper(content, width, height)   -> str
  add_accessibility_attributes(markup, alt_text)      -> str
  validate_html(html)                                 -> HtmlValidation
"""

import logging
import re
from dataclasses import dataclass, field
from html import escape

from app import config
from app.models.logo import FallbackData

logger = logging.getLogger(__name__)

HTML5_ELEMENTS = ["article", "section", "nav", "aside", "header", "footer", "video", "audio", "canvas"]

_SVG_OPEN_RE = re.compile(r"<svg\b([^>]*?)(/?)>")
_VML_ROOT_RE = re.compile(r"<v:(group|rect|roundrect|oval|shape)\b([^>]*?)(/?)>")
_URL_ATTR_RE = re.compile(r"""\b(?:src|href)\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s>]+))""", re.IGNORECASE)
_ROLE_ATTR_RE = re.compile(r"(?:^|\s)role\s*=", re.IGNORECASE)
_ARIA_LABEL_ATTR_RE = re.compile(r"(?:^|\s)aria-label\s*=", re.IGNORECASE)


@dataclass
class HtmlValidation:
    valid: bool
    warnings: list[str] = field(default_factory=list)


def _indent(text: str, levels: int) -> str:
    pad = " " * (config.HTML_INDENT * levels)
    return "\n".join(pad + line if line else line for line in text.splitlines())


def _format_percent(value: float) -> str:
    # 200.0 -> "200", 66.666... -> "66.6667"
    return f"{value:g}"


def create_responsive_wrapper(content: str, width: int, height: int) -> str:
    """
    Wrap content in an intrinsic-ratio box: the outer div caps the width,
    the inner div reserves height/width of it through padding-bottom.
    """
    ratio = _format_percent(height / width * 100)
    ratio_box = f'<div style="height: 0; padding-bottom: {ratio}%; position: relative;">'
    fill_box = '<div style="position: absolute; top: 0; left: 0; width: 100%; height: 100%;">'
    lines = [
        f'<div style="max-width: {width}px; margin: 0 auto;">',
        _indent(ratio_box, 1),
        _indent(fill_box, 2),
        content,
        _indent("</div>", 2),
        _indent("</div>", 1),
        "</div>",
    ]
    return "\n".join(lines)


def _add_aria(attrs: str, label: str) -> str:
    if not _ROLE_ATTR_RE.search(attrs):
        attrs += ' role="img"'
    if not _ARIA_LABEL_ATTR_RE.search(attrs):
        attrs += f' aria-label="{label}"'
    return attrs


def add_accessibility_attributes(markup: str, alt_text: str) -> str:
    """
    Give the first <svg> (or VML root shape) role="img" and an aria-label.

    An SVG also gets a <title> when it does not have one. Existing
    attributes and titles are left alone, so applying this twice is a no-op.
    """
    label = escape(alt_text, quote=True)

    svg_match = _SVG_OPEN_RE.search(markup)
    if svg_match:
        attrs, self_closing = svg_match.group(1), svg_match.group(2)
        opening = f"<svg{_add_aria(attrs, label)}{self_closing}>"
        if not self_closing and "<title" not in markup[svg_match.end():]:
            opening += f"<title>{label}</title>"
        return markup[:svg_match.start()] + opening + markup[svg_match.end():]

    vml_match = _VML_ROOT_RE.search(markup)
    if vml_match:
        tag, attrs, self_closing = vml_match.groups()
        opening = f"<v:{tag}{_add_aria(attrs, label)}{self_closing}>"
        return markup[:vml_match.start()] + opening + markup[vml_match.end():]

    return markup


def _svg_layer(svg_content: str, alt_text: str) -> str:
    svg = add_accessibility_attributes(svg_content.strip(), alt_text)
    return (
        "<!--[if !mso]><!-->\n"
        '<div style="display: block; width: 100%; height: 100%;">\n'
        f"{_indent(svg, 1)}\n"
        "</div>\n"
        "<!--<![endif]-->"
    )


def _png_layer(data_uri: str, width: int, height: int, alt_text: str) -> str:
    alt = escape(alt_text, quote=True)
    return (
        "<!--[if !vml]><!-->\n"
        f'<img src="{data_uri}" width="{width}" height="{height}" alt="{alt}" '
        'style="display: block; width: 100%; height: auto; max-width: 100%; border: 0;" '
        f'role="img" aria-label="{alt}">\n'
        "<!--<![endif]-->"
    )


def generate_email_html(fallback_data: FallbackData) -> str:
    """
    Compose the email snippet. Layer order is fixed: VML, then SVG (only
    when present), then the PNG <img> which is always included.
    """
    width = fallback_data.dimensions.width
    height = fallback_data.dimensions.height

    layers = []
    if fallback_data.vml_code:
        layers.append(add_accessibility_attributes(fallback_data.vml_code.strip(), fallback_data.alt_text))
    if fallback_data.svg_content:
        layers.append(_svg_layer(fallback_data.svg_content, fallback_data.alt_text))
    layers.append(_png_layer(fallback_data.png_data_uri, width, height, fallback_data.alt_text))

    content = _indent("\n".join(layers), 3)
    html = create_responsive_wrapper(content, width, height)

    if config.HTML_INCLUDE_COMMENTS:
        html = (
            "<!-- Email Logo - Begin -->\n"
            "<!-- Layered fallbacks: VML (Outlook), SVG (modern clients), PNG (everyone else) -->\n"
            f"{html}\n"
            "<!-- Email Logo - End -->"
        )
    return html


def validate_html(html: str) -> HtmlValidation:
    """
    Conservative static scan for constructs known to break in email
    clients. Every issue found produces one warning; all checks always run.
    """
    warnings: list[str] = []

    external = []
    for match in _URL_ATTR_RE.finditer(html):
        url = next(g for g in match.groups() if g is not None).strip()
        if url and not url.lower().startswith("data:") and not url.startswith("#"):
            external.append(url)
    if external:
        warnings.append(
            f"HTML references {len(external)} external resource(s) which may be blocked "
            f"in email clients: {', '.join(external[:3])}"
        )

    lowered = html.lower()
    if "<script" in lowered:
        warnings.append("HTML contains script tags which will be stripped by email clients")
    if "@media" in lowered:
        warnings.append("HTML contains CSS media queries which have limited support in email clients")
    if "@import" in lowered:
        warnings.append("HTML contains CSS imports which are not supported in email clients")

    for element in HTML5_ELEMENTS:
        if re.search(rf"<{element}\b", lowered):
            warnings.append(f"HTML contains <{element}> which may not be supported in all email clients")

    if warnings:
        logger.debug("HTML validation found %d issue(s)", len(warnings))
    return HtmlValidation(valid=not warnings, warnings=warnings)
