"""
Descriptive notes about email clients.

Static text only: nothing here influences which fallback a client gets.
That decision is made from EMAIL_CLIENTS by the preview generator.

Public API:
  get_platform_details(client_id)                  -> PlatformDetails
  get_platform_rendering_notes(client_id, fallback) -> str
"""

from app.models.email_client import EmailClient, PlatformDetails, get_client_config
from app.models.logo import FallbackType

_BASE_FEATURES = ["Basic HTML", "Inline CSS", "Images with alt text"]
_BASE_PRACTICES = ["Always include alt text for accessibility", "Test thoroughly before sending"]

_SUPPORTED_FEATURES: dict[str, list[str]] = {
    "apple-mail": ["SVG images", "CSS3 properties", "Media queries", "Web fonts", "CSS animations", "Flexbox layout"],
    "gmail": [
        "Responsive design (with limitations)",
        "Limited CSS properties",
        "Embedded images",
        "Basic interactivity via AMP for Email",
    ],
    "outlook-desktop": ["VML graphics", "Microsoft Office styles", "Conditional comments", "Table-based layouts"],
    "outlook-web": ["Modern CSS (with limitations)", "Table-based layouts", "Conditional comments", "VML graphics"],
    "yahoo": ["Table-based layouts", "Basic CSS properties", "Media queries (limited support)"],
    "thunderbird": ["SVG images", "Modern CSS properties", "Web fonts", "CSS animations", "Flexbox layout"],
    "samsung-mail": ["Modern CSS properties", "Media queries", "Web fonts (with limitations)"],
}

_LIMITATIONS: dict[str, list[str]] = {
    "apple-mail": ["Limited support for CSS filters", "Some CSS animations may not work consistently"],
    "gmail": [
        "No support for SVG images",
        "Strips <style> tags in <head>",
        "Limited CSS positioning",
        "No external stylesheets",
        "Removes some HTML attributes",
    ],
    "outlook-desktop": [
        "No support for SVG images",
        "Limited CSS support (uses Word rendering engine)",
        "No border-radius",
        "No CSS float",
        "No background images (unreliable)",
        "No flexbox or grid layouts",
    ],
    "outlook-web": [
        "No support for SVG images",
        "Limited CSS support",
        "No border-radius",
        "Inconsistent rendering between versions",
    ],
    "yahoo": [
        "No support for SVG images",
        "Removes CSS position property",
        "Limited support for advanced CSS selectors",
        "Inconsistent media query support",
    ],
    "thunderbird": ["Some CSS3 features may render inconsistently"],
    "samsung-mail": [
        "No support for SVG images",
        "Inconsistent CSS support across versions",
        "Limited positioning capabilities",
    ],
}

_BEST_PRACTICES: dict[str, list[str]] = {
    "apple-mail": [
        "Use SVG for vector graphics",
        "Take advantage of modern CSS features",
        "Optimize images for Retina displays",
    ],
    "gmail": [
        "Use inline CSS for styling",
        "Keep table-based layouts simple",
        "Provide PNG fallback images",
        "Avoid complex CSS selectors",
        "Use responsive design techniques compatible with Gmail",
    ],
    "outlook-desktop": [
        "Use VML for vector graphics",
        "Use table-based layouts",
        "Use conditional comments for Outlook-specific code",
        "Avoid CSS properties not supported by Word rendering engine",
        "Test across multiple Outlook versions",
    ],
    "outlook-web": [
        "Use table-based layouts for consistency",
        "Test across different Outlook Web versions",
        "Use conditional comments for Outlook-specific code",
    ],
    "yahoo": [
        "Use table-based layouts",
        "Avoid position CSS property",
        "Use simple CSS selectors",
        "Test thoroughly as rendering can be inconsistent",
    ],
    "thunderbird": [
        "Use SVG for vector graphics",
        "Take advantage of modern CSS features",
        "Consider users may have custom style settings",
    ],
    "samsung-mail": [
        "Use table-based layouts for consistency",
        "Test on multiple Samsung devices",
        "Provide PNG fallback images",
    ],
}

_RENDERING_NOTES: dict[str, str] = {
    "apple-mail": (
        "Apple Mail offers excellent rendering capabilities with support for modern web standards. "
        "It can display SVG images natively, making it ideal for vector logos."
    ),
    "gmail": (
        "Gmail strips out <head> and <style> tags, requiring inline CSS. It does not support SVG images, "
        "so PNG fallbacks will be used. Gmail has good but limited CSS support."
    ),
    "outlook-desktop": (
        "Outlook Desktop uses Microsoft Word as its rendering engine, which has limited support for modern CSS. "
        "It supports VML for vector graphics but not SVG. Expect significant rendering differences "
        "compared to web browsers."
    ),
    "outlook-web": (
        "Outlook Web App has better CSS support than desktop Outlook but still lacks support for many modern "
        "features. It does not support SVG images but can use VML for vector graphics in some versions."
    ),
    "yahoo": (
        "Yahoo Mail removes the position CSS property and has limited support for advanced selectors. "
        "It does not support SVG images, so PNG fallbacks will be used."
    ),
    "thunderbird": (
        "Thunderbird has excellent support for modern web standards, including SVG images. "
        "It renders emails similar to standard web browsers."
    ),
    "samsung-mail": (
        "Samsung Mail has inconsistent rendering across different versions. It does not support SVG images, "
        "so PNG fallbacks will be used. Table-based layouts are recommended for consistency."
    ),
}

_UNKNOWN_RENDERING_NOTES = (
    "This email client has unknown rendering capabilities. For maximum compatibility, "
    "PNG fallbacks and simple table-based layouts are recommended."
)

_SVG_NOTES = {
    "apple-mail": (
        "Apple Mail has excellent SVG support. Your logo will render as a crisp vector graphic at any size. "
        "All SVG features including gradients, masks, and filters are supported."
    ),
    "thunderbird": (
        "Thunderbird has good SVG support. Your logo will render as a vector graphic, maintaining quality "
        "at any size. Most SVG features are supported, though some complex filters may render inconsistently."
    ),
}

_PNG_NOTES = {
    "gmail": (
        "Gmail has good support for PNG images. Your logo will render as a raster image with good quality. "
        "For best results, ensure your PNG is optimized and sized appropriately for its intended use."
    ),
    "yahoo": (
        "Yahoo Mail supports PNG images well. Your logo will render as a raster image with good quality. "
        "Consider using a slightly higher resolution to account for various display sizes."
    ),
    "samsung-mail": (
        "Samsung Mail has good support for PNG images across all versions. "
        "Your logo will render consistently as a raster image."
    ),
}

_VML_NOTES = {
    "outlook-desktop": (
        "Outlook Desktop has good support for VML graphics. Your logo will render as a vector graphic using "
        "Microsoft's Vector Markup Language. While not as versatile as SVG, VML allows for scalable graphics "
        "in Outlook. Complex SVG features may be simplified in the VML conversion."
    ),
    "outlook-web": (
        "Outlook Web has limited support for VML graphics. Your logo will render as a vector graphic using "
        "Microsoft's Vector Markup Language, but rendering may vary between versions. Complex SVG features "
        "will be simplified in the VML conversion."
    ),
}


def _client_key(client_id) -> str:
    return client_id.value if isinstance(client_id, EmailClient) else str(client_id)


def get_platform_details(client_id) -> PlatformDetails:
    """
    Describe an email client. Unknown ids get a conservative generic
    description rather than an error.
    """
    key = _client_key(client_id)
    client = get_client_config(key)

    if client is None:
        return PlatformDetails(
            name=key,
            market_share=0,
            supported_features=[],
            limitations=["Unknown client capabilities"],
            best_practices=["Use PNG fallback for maximum compatibility"],
            rendering_notes="No specific rendering information available for this client.",
        )

    if key in _LIMITATIONS:
        limitations = list(client.css_limitations) + _LIMITATIONS[key]
    else:
        limitations = ["Limited CSS support", "No SVG support", "No advanced layout features"]

    practices = _BEST_PRACTICES.get(
        key, ["Use PNG fallback for maximum compatibility", "Keep layouts simple and table-based"]
    )

    return PlatformDetails(
        name=client.name,
        market_share=client.market_share,
        supported_features=_BASE_FEATURES + _SUPPORTED_FEATURES.get(key, []),
        limitations=limitations,
        best_practices=_BASE_PRACTICES + practices,
        rendering_notes=_RENDERING_NOTES.get(key, _UNKNOWN_RENDERING_NOTES),
    )


def get_platform_rendering_notes(client_id, fallback: FallbackType) -> str:
    """Notes on how a client renders one particular fallback layer."""
    key = _client_key(client_id)
    client = get_client_config(key)
    if client is None:
        return "No specific rendering information available for this client."

    fallback = FallbackType(fallback)
    if fallback == FallbackType.SVG:
        if not client.supports_svg:
            return f"{client.name} does not support SVG images. A PNG fallback will be used instead."
        return _SVG_NOTES.get(
            key, "This client supports SVG. Your logo will render as a vector graphic, maintaining quality at any size."
        )
    if fallback == FallbackType.VML:
        if not client.supports_vml:
            return f"{client.name} does not support VML. A PNG fallback will be used instead."
        return _VML_NOTES.get(
            key,
            "This client supports VML. Your logo will render as a vector graphic using "
            "Microsoft's Vector Markup Language.",
        )
    return _PNG_NOTES.get(
        key, "This client supports PNG images well. Your logo will render as a raster image with good quality."
    )
