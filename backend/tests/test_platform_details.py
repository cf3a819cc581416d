"""
Tests for the email client table and descriptive platform details.
"""

from app.models.email_client import EMAIL_CLIENTS, EmailClient, get_client_config
from app.models.logo import FallbackType
from app.services.platform_details import get_platform_details, get_platform_rendering_notes


class TestClientTable:
    def test_every_enum_member_has_a_config(self):
        assert {c.id for c in EMAIL_CLIENTS} == set(EmailClient)

    def test_capabilities(self):
        assert get_client_config("apple-mail").supports_svg is True
        assert get_client_config("gmail").supports_svg is False
        assert get_client_config("outlook-desktop").supports_vml is True
        assert get_client_config("outlook-web").supports_vml is True

    def test_lookup_by_enum_or_string(self):
        assert get_client_config(EmailClient.GMAIL) is get_client_config("gmail")
        assert get_client_config("lotus-notes") is None


class TestPlatformDetails:
    def test_known_client(self):
        details = get_platform_details("gmail")
        assert details.name == "Gmail"
        assert details.market_share == 29
        assert details.supported_features[:3] == ["Basic HTML", "Inline CSS", "Images with alt text"]
        assert "Embedded images" in details.supported_features
        # table limitations come first
        assert details.limitations[:3] == ["position", "head-css", "No support for SVG images"]
        assert details.best_practices[0] == "Always include alt text for accessibility"
        assert "inline CSS" in details.rendering_notes

    def test_other_clients_get_generic_limitations(self):
        details = get_platform_details(EmailClient.OTHER)
        assert details.name == "Other Clients"
        assert details.limitations == ["Limited CSS support", "No SVG support", "No advanced layout features"]
        assert "Use PNG fallback for maximum compatibility" in details.best_practices

    def test_unknown_client(self):
        details = get_platform_details("lotus-notes")
        assert details.name == "lotus-notes"
        assert details.market_share == 0
        assert details.limitations == ["Unknown client capabilities"]


class TestRenderingNotes:
    def test_unsupported_svg(self):
        assert get_platform_rendering_notes("gmail", FallbackType.SVG) == (
            "Gmail does not support SVG images. A PNG fallback will be used instead."
        )

    def test_supported_svg(self):
        assert get_platform_rendering_notes("apple-mail", "svg").startswith("Apple Mail has excellent SVG support")

    def test_vml(self):
        assert get_platform_rendering_notes("outlook-desktop", FallbackType.VML).startswith(
            "Outlook Desktop has good support for VML graphics"
        )
        assert "does not support VML" in get_platform_rendering_notes("yahoo", FallbackType.VML)

    def test_png_default_text(self):
        assert get_platform_rendering_notes("thunderbird", FallbackType.PNG).startswith(
            "This client supports PNG images well"
        )

    def test_unknown_client(self):
        assert get_platform_rendering_notes("lotus-notes", FallbackType.PNG) == (
            "No specific rendering information available for this client."
        )
