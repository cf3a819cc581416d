"""
Email client capability table and platform details model.

The table is static, read-only data used to decide which fallback layer a
client is predicted to render and to produce human-readable summaries.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from app.models.logo import FallbackType


class EmailClient(str, Enum):
    APPLE_MAIL = "apple-mail"
    GMAIL = "gmail"
    OUTLOOK_DESKTOP = "outlook-desktop"
    OUTLOOK_WEB = "outlook-web"
    YAHOO = "yahoo"
    THUNDERBIRD = "thunderbird"
    SAMSUNG_MAIL = "samsung-mail"
    OTHER = "other"


class EmailClientConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: EmailClient
    name: str
    market_share: float  # percent
    supports_svg: bool
    supports_vml: bool
    css_limitations: List[str] = []
    preferred_fallback: FallbackType


class PlatformDetails(BaseModel):
    """Descriptive metadata for one email client (text only, no decisions)."""
    name: str
    market_share: float
    supported_features: List[str]
    limitations: List[str]
    best_practices: List[str]
    rendering_notes: str


EMAIL_CLIENTS: List[EmailClientConfig] = [
    EmailClientConfig(
        id=EmailClient.APPLE_MAIL,
        name="Apple Mail",
        market_share=55,
        supports_svg=True,
        supports_vml=False,
        css_limitations=["animations", "filters"],
        preferred_fallback=FallbackType.SVG,
    ),
    EmailClientConfig(
        id=EmailClient.GMAIL,
        name="Gmail",
        market_share=29,
        supports_svg=False,
        supports_vml=False,
        css_limitations=["position", "head-css"],
        preferred_fallback=FallbackType.PNG,
    ),
    EmailClientConfig(
        id=EmailClient.OUTLOOK_DESKTOP,
        name="Outlook Desktop",
        market_share=6,
        supports_svg=False,
        supports_vml=True,
        css_limitations=["border-radius", "flexbox"],
        preferred_fallback=FallbackType.VML,
    ),
    EmailClientConfig(
        id=EmailClient.OUTLOOK_WEB,
        name="Outlook Web",
        market_share=1,
        supports_svg=False,
        supports_vml=True,
        css_limitations=["border-radius", "flexbox"],
        preferred_fallback=FallbackType.VML,
    ),
    EmailClientConfig(
        id=EmailClient.YAHOO,
        name="Yahoo Mail",
        market_share=3,
        supports_svg=False,
        supports_vml=False,
        css_limitations=["position", "advanced-selectors"],
        preferred_fallback=FallbackType.PNG,
    ),
    EmailClientConfig(
        id=EmailClient.THUNDERBIRD,
        name="Thunderbird",
        market_share=0.5,
        supports_svg=True,
        supports_vml=False,
        css_limitations=[],
        preferred_fallback=FallbackType.SVG,
    ),
    EmailClientConfig(
        id=EmailClient.SAMSUNG_MAIL,
        name="Samsung Mail",
        market_share=0.5,
        supports_svg=False,
        supports_vml=False,
        css_limitations=["position", "advanced-selectors"],
        preferred_fallback=FallbackType.PNG,
    ),
    EmailClientConfig(
        id=EmailClient.OTHER,
        name="Other Clients",
        market_share=5,
        supports_svg=False,
        supports_vml=False,
        css_limitations=["position", "advanced-selectors"],
        preferred_fallback=FallbackType.PNG,
    ),
]

_CLIENTS_BY_ID = {c.id.value: c for c in EMAIL_CLIENTS}


def get_client_config(client_id: str) -> Optional[EmailClientConfig]:
    """Look up a client by id ("gmail", "outlook-desktop", ...)."""
    if isinstance(client_id, EmailClient):
        client_id = client_id.value
    return _CLIENTS_BY_ID.get(client_id)
