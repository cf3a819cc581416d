"""
SVG processing tests: sanitizing, lossless optimization, complexity
analysis and the VML convertibility gate.
"""

import pytest

from app.models.logo import Severity, WarningKind
from app.services.svg_processor import (
    SvgOptimizationError,
    VmlPolicy,
    analyze_svg_complexity,
    can_convert_to_vml,
    optimize_svg,
    process_svg,
    sanitize_svg,
    vml_blockers,
)

CIRCLE_SVG = '<svg viewBox="0 0 100 100"><circle cx="50" cy="50" r="40" fill="#336699"/></svg>'

EDITOR_SVG = """<?xml version="1.0" encoding="UTF-8"?>
<!-- Generator: Some Editor -->
<svg xmlns="http://www.w3.org/2000/svg"
     xmlns:inkscape="http://www.inkscape.org/namespaces/inkscape"
     width="120" height="60" inkscape:version="1.0">
  <metadata><rdf>editor data</rdf></metadata>
  <defs>
    <linearGradient id="brandGradient"><stop offset="0" stop-color="#fff"/></linearGradient>
  </defs>
  <g>
    <g id="layer1" inkscape:label="Layer 1">
      <rect id="unused" x="0" y="0" width="120" height="60" fill="url(#brandGradient)"/>
    </g>
  </g>
  <g></g>
</svg>
"""

ANIMATED_SVG = (
    '<svg viewBox="0 0 10 10"><circle cx="5" cy="5" r="4">'
    '<animate attributeName="r" from="4" to="2" dur="1s"/></circle></svg>'
)


class TestSanitize:
    def test_removes_script_and_event_handlers(self):
        svg = (
            '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 10 10" onload="alert(1)">'
            '<script>alert(2)</script>'
            '<a href="javascript:alert(3)"><rect width="10" height="10" onclick="x()"/></a>'
            '</svg>'
        )
        out = sanitize_svg(svg)
        assert "<script" not in out
        assert "onload" not in out
        assert "onclick" not in out
        assert "javascript:" not in out
        assert "<rect" in out

    def test_removes_foreign_object(self):
        svg = '<svg viewBox="0 0 10 10"><foreignObject><div>hi</div></foreignObject><rect width="1" height="1"/></svg>'
        assert "foreignObject" not in sanitize_svg(svg)


class TestOptimize:
    def test_keeps_view_box_and_drops_dimensions(self):
        out = optimize_svg('<svg viewBox="0 0 100 50" width="100" height="50"><rect width="10" height="10"/></svg>')
        assert 'viewBox="0 0 100 50"' in out
        assert 'width="100"' not in out

    def test_derives_view_box_from_dimensions(self):
        out = optimize_svg('<svg width="120px" height="60"><rect width="10" height="10"/></svg>')
        assert 'viewBox="0 0 120 60"' in out

    def test_keeps_dimensions_when_no_view_box_can_be_derived(self):
        out = optimize_svg('<svg width="50%" height="60"><rect width="10" height="10"/></svg>')
        assert 'width="50%"' in out

    def test_strips_editor_markup(self):
        out = optimize_svg(EDITOR_SVG, id_prefix="p")
        assert "metadata" not in out
        assert "inkscape" not in out
        assert "Generator" not in out
        assert "<?xml" not in out

    def test_unwraps_groups_and_drops_empty_ones(self):
        out = optimize_svg(EDITOR_SVG, id_prefix="p")
        assert "<g" not in out

    def test_normalizes_referenced_ids_and_drops_the_rest(self):
        out = optimize_svg(EDITOR_SVG, id_prefix="p")
        assert 'id="p-1"' in out
        assert "url(#p-1)" in out
        assert "brandGradient" not in out
        assert 'id="unused"' not in out
        assert 'id="layer1"' not in out

    def test_rewrites_css_id_selectors(self):
        svg = '<svg viewBox="0 0 10 10"><style>#dot { fill: #ff0000; }</style><circle id="dot" cx="5" cy="5" r="4"/></svg>'
        out = optimize_svg(svg, id_prefix="p")
        assert "#p-1 {" in out
        assert 'id="p-1"' in out
        # colors are not ids
        assert "#ff0000" in out

    def test_rewrites_id_in_compound_selector(self):
        svg = (
            '<svg viewBox="0 0 10 10"><style>#badge.on{fill:red}</style>'
            '<rect id="badge" class="on" width="10" height="10"/></svg>'
        )
        out = optimize_svg(svg, id_prefix="p")
        assert "#p-1.on{fill:red}" in out
        assert 'id="p-1"' in out
        assert "#badge" not in out

    def test_keeps_ids_named_by_aria_references(self):
        svg = (
            '<svg viewBox="0 0 10 10" aria-labelledby="t" aria-describedby="d">'
            '<title id="t">Acme</title><desc id="d">Acme Corp mark</desc>'
            '<rect width="10" height="10"/></svg>'
        )
        out = optimize_svg(svg, id_prefix="p")
        assert 'aria-labelledby="p-1"' in out
        assert 'aria-describedby="p-2"' in out
        assert '<title id="p-1">Acme</title>' in out
        assert '<desc id="p-2">' in out

    def test_keeps_ids_named_by_animation_timing(self):
        svg = (
            '<svg viewBox="0 0 10 10">'
            '<rect id="button" width="10" height="10"/>'
            '<circle cx="5" cy="5" r="2">'
            '<animate id="grow" attributeName="r" to="4" dur="1s" begin="button.click"/>'
            '<animate attributeName="r" to="2" dur="1s" begin="grow.end; 5s"/>'
            '</circle></svg>'
        )
        out = optimize_svg(svg, id_prefix="p")
        assert 'begin="p-1.click"' in out
        assert 'begin="p-2.end; 5s"' in out
        assert 'id="p-1"' in out and 'id="p-2"' in out

    @pytest.mark.parametrize("svg", [CIRCLE_SVG, EDITOR_SVG, ANIMATED_SVG])
    def test_idempotent_with_same_prefix(self, svg):
        once = optimize_svg(svg, id_prefix="logo")
        twice = optimize_svg(once, id_prefix="logo")
        assert once == twice

    def test_invalid_markup_raises(self):
        with pytest.raises(SvgOptimizationError) as exc:
            optimize_svg("<svg><g></svg>")
        assert exc.value.error_code == "invalid_svg"

    def test_non_svg_root_raises(self):
        with pytest.raises(SvgOptimizationError):
            optimize_svg("<html></html>")


class TestAnalyzeComplexity:
    def test_simple_svg_has_no_warnings(self):
        assert analyze_svg_complexity(CIRCLE_SVG) == []

    def test_animation_is_high(self):
        warnings = analyze_svg_complexity(ANIMATED_SVG)
        assert len(warnings) == 1
        assert warnings[0].kind == WarningKind.SVG_COMPLEXITY
        assert warnings[0].severity == Severity.HIGH
        assert "animation" in warnings[0].message

    def test_gradient_is_medium(self):
        warnings = analyze_svg_complexity(EDITOR_SVG)
        assert any("gradients" in w.message and w.severity == Severity.MEDIUM for w in warnings)

    def test_filter_attribute_is_high(self):
        svg = '<svg viewBox="0 0 10 10"><rect width="10" height="10" filter="url(#f)"/></svg>'
        assert any("filters" in w.message and w.severity == Severity.HIGH for w in analyze_svg_complexity(svg))

    def test_text_is_medium(self):
        svg = '<svg viewBox="0 0 10 10"><text x="0" y="5">ACME</text></svg>'
        assert any("text" in w.message for w in analyze_svg_complexity(svg))

    def test_unparseable_input_reports_instead_of_raising(self):
        warnings = analyze_svg_complexity("<svg")
        assert len(warnings) == 1
        assert warnings[0].severity == Severity.MEDIUM


class TestVmlGate:
    def test_basic_shapes_convert(self):
        assert can_convert_to_vml(CIRCLE_SVG) is True

    def test_animation_blocks(self):
        assert can_convert_to_vml(ANIMATED_SVG) is False
        assert any("animate" in r for r in vml_blockers(ANIMATED_SVG))

    def test_gradient_paint_blocks(self):
        assert can_convert_to_vml(EDITOR_SVG) is False

    def test_clip_path_attribute_blocks(self):
        svg = '<svg viewBox="0 0 10 10"><rect width="10" height="10" clip-path="url(#c)"/></svg>'
        assert can_convert_to_vml(svg) is False

    def test_mask_in_style_blocks(self):
        svg = '<svg viewBox="0 0 10 10"><rect width="10" height="10" style="mask: url(#m)"/></svg>'
        assert can_convert_to_vml(svg) is False

    def test_text_and_images_block(self):
        assert can_convert_to_vml('<svg viewBox="0 0 10 10"><text>A</text></svg>') is False
        assert can_convert_to_vml('<svg viewBox="0 0 10 10"><image href="a.png"/></svg>') is False

    def test_long_paths_block(self):
        d = "M0 0 " + " ".join(f"L{i} {i}" for i in range(60))
        svg = f'<svg viewBox="0 0 100 100"><path d="{d}"/></svg>'
        assert can_convert_to_vml(svg) is False
        assert can_convert_to_vml(svg, VmlPolicy(max_path_segments=100)) is True

    def test_empty_svg_blocks(self):
        assert can_convert_to_vml('<svg viewBox="0 0 10 10"></svg>') is False


class TestProcessSvg:
    def test_returns_optimized_markup(self):
        output = process_svg(CIRCLE_SVG, id_prefix="logo")
        assert output.optimized is True
        assert 'viewBox="0 0 100 100"' in output.optimized_svg
        assert output.warnings == []

    def test_accepts_bytes(self):
        output = process_svg(CIRCLE_SVG.encode("utf-8"))
        assert "<circle" in output.optimized_svg

    def test_failure_returns_original_with_one_warning(self):
        broken = "<svg><g></svg>"
        output = process_svg(broken)
        assert output.optimized is False
        assert output.optimized_svg == broken
        assert len(output.warnings) == 1
        assert output.warnings[0].kind == WarningKind.SVG_COMPLEXITY

    def test_animation_warning_is_carried(self):
        output = process_svg(ANIMATED_SVG)
        assert any("animation" in w.message for w in output.warnings)
