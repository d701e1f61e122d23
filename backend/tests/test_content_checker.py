"""Tests for the strict content checker."""

import time

import pytest

from conftest import PRODUCT_HTML, PRODUCT_NO_PRICE_HTML
from evaluation.content_checker import (
    MAX_REQUIRED_TEXTS,
    StrictContentChecker,
    class_names,
    css_requirements,
    parse_html,
    structure_map,
    text_nodes,
)
from evaluation.models import ImageRef, RequirementType

CARD_CSS = ".card { border-radius: 8px; box-shadow: 0 1px 2px #000; padding: 16px; }"


@pytest.fixture
def checker() -> StrictContentChecker:
    return StrictContentChecker()


def _by_type(result, req_type):
    return next(r for r in result.details if r.type is req_type)


# =========================================================================
# Extraction helpers
# =========================================================================


class TestExtraction:
    def test_text_nodes_skip_scripts_styles_and_comments(self):
        root = parse_html(
            "<div>Hello<!-- note --><script>var x = 1;</script>"
            "<style>.a{}</style><p>  World  </p></div>"
        )
        assert text_nodes(root) == ["Hello", "World"]

    def test_structure_map_counts_tags(self):
        root = parse_html("<ul><li>a</li><li>b</li></ul><p>c</p>")
        assert structure_map(root) == {"ul": 1, "li": 2, "p": 1}

    def test_full_document_uses_body(self):
        root = parse_html("<html><head><title>T</title></head><body><p>x</p></body></html>")
        assert structure_map(root) == {"p": 1}

    def test_class_names_distinct_in_order(self):
        root = parse_html('<div class="b a"><span class="a c"></span></div>')
        assert class_names(root) == ["b", "a", "c"]

    def test_css_requirements_fixed_property_list(self):
        assert css_requirements(CARD_CSS) == ["border-radius", "box-shadow", "padding"]
        assert css_requirements("") == []

    def test_text_requirement_capped(self, checker):
        html = "".join(f"<p>item number {i}</p>" for i in range(8))
        reqs = checker.extract_requirements(parse_html(html), "")
        text_req = next(r for r in reqs if r.type is RequirementType.TEXT_CONTENT)
        assert len(text_req.required) == MAX_REQUIRED_TEXTS
        assert text_req.required[0] == "item number 0"

    def test_short_texts_are_not_required(self, checker):
        reqs = checker.extract_requirements(parse_html("<p>ok</p>"), "")
        assert RequirementType.TEXT_CONTENT not in {r.type for r in reqs}

    def test_structure_requirement_always_present(self, checker):
        reqs = checker.extract_requirements(parse_html(""), "")
        assert [r.type for r in reqs] == [RequirementType.HTML_STRUCTURE]
        assert reqs[0].required == {}


# =========================================================================
# Scoring
# =========================================================================


class TestScoring:
    def test_identical_markup_scores_100(self, checker):
        result = checker.evaluate(PRODUCT_HTML, "", PRODUCT_HTML, "")
        assert result.score == 100
        assert result.passed is True

        text = _by_type(result, RequirementType.TEXT_CONTENT)
        assert text.score == 100 and text.passed
        assert text.details.endswith("All texts found!")
        assert text.details.startswith("Found 2/2 required texts.")

    def test_missing_price_span(self, checker):
        result = checker.evaluate(PRODUCT_NO_PRICE_HTML, "", PRODUCT_HTML, "")

        structure = _by_type(result, RequirementType.HTML_STRUCTURE)
        assert "✗ span: 0 (required: 1)" in structure.details
        assert "✓ h1: 1 (required: 1)" in structure.details
        assert structure.score == 50

        classes = _by_type(result, RequirementType.CLASS_NAMES)
        assert classes.details == "Matched 1/2 class names"
        assert classes.passed is True  # 0.5 >= 0.3

        text = _by_type(result, RequirementType.TEXT_CONTENT)
        assert "Missing: $99.99" in text.details
        assert text.passed is False

        # text 50*30 + structure 50*20 + classes 50*15, normalised
        assert result.score == 50
        assert result.passed is False

    def test_no_text_match_scores_zero_for_text(self, checker):
        result = checker.evaluate("<h1>Completely different</h1>", "", "<h1>Wireless Headphones</h1>", "")
        text = _by_type(result, RequirementType.TEXT_CONTENT)
        assert text.score == 0
        assert text.passed is False

    def test_fuzzy_text_match(self, checker):
        result = checker.evaluate("<h1>Wireles Headphones</h1>", "", "<h1>Wireless Headphones</h1>", "")
        assert _by_type(result, RequirementType.TEXT_CONTENT).score == 100

    def test_substring_text_match(self, checker):
        result = checker.evaluate(
            "<p>Buy the Wireless Headphones today</p>", "", "<p>Wireless Headphones</p>", ""
        )
        assert _by_type(result, RequirementType.TEXT_CONTENT).score == 100

    def test_huge_text_node_is_checked_quickly(self, checker):
        candidate = "<p>" + "lorem ipsum dolor " * 12000 + "</p>"
        expected = "".join(
            f"<p>{text}</p>"
            for text in ["Wireless Headphones", "Add to cart", "Free shipping", "In stock", "$99.99"]
        )
        started = time.perf_counter()
        result = checker.evaluate(candidate, "", expected, "")
        elapsed = time.perf_counter() - started

        assert len(candidate) > 100_000
        assert _by_type(result, RequirementType.TEXT_CONTENT).score == 0
        assert elapsed < 1.0

    def test_images_match_by_src_or_alt(self, checker):
        expected = '<img src="img/phones.png" alt="Phones"><img src="a.png" alt="Cable">'
        candidate = '<img src="/static/img/phones.png"><img src="other.png" alt="cable">'
        result = checker.evaluate(candidate, "", expected, "")
        images = _by_type(result, RequirementType.IMAGES)
        assert images.score == 100
        assert images.details == "Found 2/2 required images"

    def test_image_requirement_records_src_and_alt(self, checker):
        reqs = checker.extract_requirements(parse_html('<img src="a.png">'), "")
        image_req = next(r for r in reqs if r.type is RequirementType.IMAGES)
        assert image_req.required == [ImageRef(src="a.png", alt=None)]

    def test_css_properties(self, checker):
        result = checker.evaluate("<div></div>", ".x { padding: 4px }", "<div></div>", CARD_CSS)
        css = _by_type(result, RequirementType.CSS_PROPERTIES)
        assert css.score == 33
        assert css.passed is False

    def test_weights_are_normalised(self, checker):
        # Only structure (20) and css (20) apply: structure 100, css 0
        result = checker.evaluate("<div></div>", "", "<div></div>", CARD_CSS)
        assert result.score == 50

    def test_score_bounds(self, checker):
        for candidate in ["", "<p>x</p>", PRODUCT_HTML, PRODUCT_HTML * 3]:
            result = checker.evaluate(candidate, "", PRODUCT_HTML, CARD_CSS)
            assert 0 <= result.score <= 100
            for detail in result.details:
                assert 0 <= detail.score <= 100


# =========================================================================
# Feedback
# =========================================================================


class TestFeedback:
    def test_passed_report(self, checker):
        result = checker.evaluate(PRODUCT_HTML, "", PRODUCT_HTML, "")
        assert result.feedback.startswith("Overall Score: 100%")
        assert "✓ PASSED - Well done!" in result.feedback
        assert "need attention" not in result.feedback

    def test_failed_report_lists_attention_count(self, checker):
        result = checker.evaluate(PRODUCT_NO_PRICE_HTML, "", PRODUCT_HTML, "")
        assert "✗ FAILED - Needs improvement" in result.feedback
        assert "✗ Required HTML elements: 50%" in result.feedback
        assert "⚠️ 2 requirement(s) need attention" in result.feedback
