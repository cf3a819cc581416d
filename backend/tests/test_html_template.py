"""
Email HTML composition tests: responsive wrapper, layering, accessibility
and the static email-compatibility scan.
"""

from app.models.logo import Dimensions, FallbackData
from app.services.html_template import (
    add_accessibility_attributes,
    create_responsive_wrapper,
    generate_email_html,
    validate_html,
)
from app.services.vml_generator import generate_placeholder_vml

SVG = '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 10 10"><circle cx="5" cy="5" r="4"/></svg>'
DATA_URI = "data:image/png;base64,iVBORw0KGgo="


def _make_fallback(svg: str = SVG, vml: str = None, alt: str = "Acme logo",
                   width: int = 200, height: int = 100) -> FallbackData:
    return FallbackData(
        svg_content=svg,
        png_data_uri=DATA_URI,
        vml_code=vml if vml is not None else generate_placeholder_vml(width, height),
        dimensions=Dimensions(width=width, height=height),
        alt_text=alt,
    )


class TestResponsiveWrapper:
    def test_padding_is_height_over_width(self):
        assert "padding-bottom: 200%;" in create_responsive_wrapper("x", 100, 200)
        assert "padding-bottom: 50%;" in create_responsive_wrapper("x", 200, 100)
        assert "padding-bottom: 66.6667%;" in create_responsive_wrapper("x", 300, 200)

    def test_caps_width_and_keeps_content(self):
        html = create_responsive_wrapper("<p>inner</p>", 320, 160)
        assert html.startswith('<div style="max-width: 320px; margin: 0 auto;">')
        assert "<p>inner</p>" in html
        assert html.count("<div") == html.count("</div>") == 3


class TestAccessibility:
    def test_svg_gets_role_label_and_title(self):
        out = add_accessibility_attributes(SVG, "Acme logo")
        assert 'role="img"' in out
        assert 'aria-label="Acme logo"' in out
        assert "<title>Acme logo</title>" in out

    def test_existing_title_is_kept(self):
        svg = '<svg viewBox="0 0 1 1"><title>Existing</title><rect width="1" height="1"/></svg>'
        out = add_accessibility_attributes(svg, "Acme")
        assert out.count("<title") == 1
        assert "Existing" in out

    def test_existing_attributes_are_not_duplicated(self):
        svg = '<svg role="presentation" aria-label="Kept" viewBox="0 0 1 1"></svg>'
        out = add_accessibility_attributes(svg, "Acme")
        assert out.count("role=") == 1
        assert out.count("aria-label=") == 1

    def test_similar_attribute_names_do_not_count(self):
        svg = '<svg data-role="x" data-aria-label="y" viewBox="0 0 1 1"></svg>'
        out = add_accessibility_attributes(svg, "Acme")
        assert ' role="img"' in out
        assert ' aria-label="Acme"' in out
        assert 'data-role="x"' in out

    def test_idempotent(self):
        once = add_accessibility_attributes(SVG, "Acme")
        assert add_accessibility_attributes(once, "Acme") == once

    def test_vml_root_gets_role(self):
        out = add_accessibility_attributes(generate_placeholder_vml(), "Acme")
        assert '<v:rect xmlns:v=' in out
        assert 'role="img"' in out
        assert "<title>" not in out

    def test_label_is_escaped(self):
        out = add_accessibility_attributes(SVG, 'A "quoted" <logo>')
        assert 'aria-label="A &quot;quoted&quot; &lt;logo&gt;"' in out


class TestGenerateEmailHtml:
    def test_layer_order_is_vml_svg_img(self):
        html = generate_email_html(_make_fallback())
        vml = html.index("<!--[if vml]>")
        svg = html.index("<!--[if !mso]><!-->")
        img = html.index("<!--[if !vml]><!-->")
        assert vml < svg < img
        assert "<svg" in html
        assert f'src="{DATA_URI}"' in html

    def test_svg_layer_is_omitted_without_svg(self):
        html = generate_email_html(_make_fallback(svg=None))
        assert "<!--[if !mso]>" not in html
        assert "<img" in html

    def test_alt_text_is_escaped(self):
        html = generate_email_html(_make_fallback(alt='Acme <"Logo"> & Co'))
        assert 'alt="Acme &lt;&quot;Logo&quot;&gt; &amp; Co"' in html
        assert '<"Logo">' not in html

    def test_dimensions_drive_img_and_wrapper(self):
        html = generate_email_html(_make_fallback(width=300, height=200))
        assert 'width="300" height="200"' in html
        assert "padding-bottom: 66.6667%;" in html

    def test_begin_and_end_comments(self):
        html = generate_email_html(_make_fallback())
        assert html.startswith("<!-- Email Logo - Begin -->")
        assert html.endswith("<!-- Email Logo - End -->")

    def test_composed_snippet_passes_validation(self):
        assert validate_html(generate_email_html(_make_fallback())).valid is True


class TestValidateHtml:
    def test_clean_html_is_valid(self):
        result = validate_html(f'<div><img src="{DATA_URI}" alt="x"></div>')
        assert result.valid is True
        assert result.warnings == []

    def test_script_is_one_warning(self):
        result = validate_html("<div><script>alert(1)</script></div>")
        assert result.valid is False
        assert len(result.warnings) == 1
        assert "script" in result.warnings[0]

    def test_external_resources_are_reported_once(self):
        result = validate_html('<img src="https://cdn.example.com/a.png"><a href="http://example.com">x</a>')
        assert len(result.warnings) == 1
        assert "2 external resource(s)" in result.warnings[0]

    def test_fragment_links_are_not_external(self):
        assert validate_html('<a href="#top">top</a>').valid is True

    def test_all_checks_run(self):
        html = "<section><style>@import url(x.css); @media (max-width: 600px) {}</style><video></video></section>"
        result = validate_html(html)
        assert len(result.warnings) == 4
