"""Strict content checking of a candidate against its expected solution.

Requirements (literal texts, tag counts, images, CSS properties, class names)
are mined from the expected HTML/CSS once per evaluation, then each one is
checked against the candidate and the weighted results are combined into a
single 0-100 content score.
"""

import logging

from bs4 import BeautifulSoup, NavigableString, Tag

from .models import (
    ContentResult,
    ImageRef,
    Requirement,
    RequirementResult,
    RequirementType,
)
from .scoring import clamp_score
from .similarity import text_similarity

logger = logging.getLogger(__name__)

# Properties that usually carry the look of a component
IMPORTANT_CSS_PROPERTIES = [
    "border-radius", "box-shadow", "background", "width", "height",
    "padding", "margin", "display", "flex", "grid", "color", "font",
]

MAX_REQUIRED_TEXTS = 5
TEXT_SIMILARITY_THRESHOLD = 0.7
CONTENT_PASS_SCORE = 70

WEIGHTS = {
    RequirementType.TEXT_CONTENT: 30,
    RequirementType.HTML_STRUCTURE: 20,
    RequirementType.IMAGES: 15,
    RequirementType.CSS_PROPERTIES: 20,
    RequirementType.CLASS_NAMES: 15,
}

# Minimum fraction of a requirement that has to match for it to pass
PASS_RATIOS = {
    RequirementType.TEXT_CONTENT: 0.6,
    RequirementType.HTML_STRUCTURE: 0.7,
    RequirementType.IMAGES: 0.5,
    RequirementType.CSS_PROPERTIES: 0.5,
    RequirementType.CLASS_NAMES: 0.3,  # class names are the least reliable signal
}

_NON_CONTENT_TAGS = {"script", "style", "template"}


def parse_html(html: str) -> Tag:
    """Parse an HTML fragment or document and return the element to inspect."""
    soup = BeautifulSoup(html or "", "html.parser")
    return soup.body or soup


def text_nodes(root: Tag) -> list[str]:
    """Stripped, non-empty visible text nodes in document order."""
    texts = []
    for node in root.find_all(string=True):
        # Comments, doctypes and script/style contents are NavigableString subclasses
        if type(node) is not NavigableString:
            continue
        if node.parent is not None and node.parent.name in _NON_CONTENT_TAGS:
            continue
        text = node.strip()
        if text:
            texts.append(text)
    return texts


def structure_map(root: Tag) -> dict[str, int]:
    counts: dict[str, int] = {}
    for element in root.find_all(True):
        counts[element.name] = counts.get(element.name, 0) + 1
    return counts


def class_names(root: Tag) -> list[str]:
    """Distinct class names in first-seen order."""
    seen: dict[str, None] = {}
    for element in root.find_all(class_=True):
        classes = element.get("class") or []
        if isinstance(classes, str):
            classes = classes.split()
        for cls in classes:
            cls = cls.strip()
            if cls:
                seen.setdefault(cls, None)
    return list(seen)


def css_requirements(css: str) -> list[str]:
    lower_css = (css or "").lower()
    return [prop for prop in IMPORTANT_CSS_PROPERTIES if prop in lower_css]


class StrictContentChecker:
    """Validates text, tags, images, styles and classes of a candidate."""

    def evaluate(
        self,
        candidate_html: str,
        candidate_css: str,
        expected_html: str,
        expected_css: str,
    ) -> ContentResult:
        candidate_root = parse_html(candidate_html)
        expected_root = parse_html(expected_html)

        requirements = self.extract_requirements(expected_root, expected_css)
        results = self.check_requirements(candidate_root, candidate_css, requirements)
        score = self.calculate_score(results)

        logger.info(
            "Content check: %d%% over %d requirement(s)", score, len(requirements)
        )
        return ContentResult(
            score=score,
            passed=score >= CONTENT_PASS_SCORE,
            details=results,
            feedback=self.generate_feedback(results, score),
            requirements=requirements,
        )

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    def extract_requirements(self, expected_root: Tag, expected_css: str) -> list[Requirement]:
        requirements = []

        specific_texts = [
            text.lower()
            for text in text_nodes(expected_root)
            if 2 < len(text) < 100
        ]
        if specific_texts:
            requirements.append(Requirement(
                type=RequirementType.TEXT_CONTENT,
                description="Required text content",
                required=specific_texts[:MAX_REQUIRED_TEXTS],
                weight=WEIGHTS[RequirementType.TEXT_CONTENT],
            ))

        # Always present, even for an empty expected body
        requirements.append(Requirement(
            type=RequirementType.HTML_STRUCTURE,
            description="Required HTML elements",
            required=structure_map(expected_root),
            weight=WEIGHTS[RequirementType.HTML_STRUCTURE],
        ))

        images = expected_root.find_all("img")
        if images:
            requirements.append(Requirement(
                type=RequirementType.IMAGES,
                description="Required images",
                required=[ImageRef(src=img.get("src"), alt=img.get("alt")) for img in images],
                weight=WEIGHTS[RequirementType.IMAGES],
            ))

        css_props = css_requirements(expected_css)
        if css_props:
            requirements.append(Requirement(
                type=RequirementType.CSS_PROPERTIES,
                description="Required CSS styles",
                required=css_props,
                weight=WEIGHTS[RequirementType.CSS_PROPERTIES],
            ))

        classes = class_names(expected_root)
        if classes:
            requirements.append(Requirement(
                type=RequirementType.CLASS_NAMES,
                description="CSS class names",
                required=classes,
                weight=WEIGHTS[RequirementType.CLASS_NAMES],
            ))

        return requirements

    # ------------------------------------------------------------------
    # Checking
    # ------------------------------------------------------------------

    def check_requirements(
        self,
        candidate_root: Tag,
        candidate_css: str,
        requirements: list[Requirement],
    ) -> list[RequirementResult]:
        checks = {
            RequirementType.TEXT_CONTENT: lambda req: self.check_text_content(candidate_root, req),
            RequirementType.HTML_STRUCTURE: lambda req: self.check_structure(candidate_root, req),
            RequirementType.IMAGES: lambda req: self.check_images(candidate_root, req),
            RequirementType.CSS_PROPERTIES: lambda req: self.check_css_properties(candidate_css, req),
            RequirementType.CLASS_NAMES: lambda req: self.check_class_names(candidate_root, req),
        }

        results = []
        for req in requirements:
            ratio, details = checks[req.type](req.required)
            results.append(RequirementResult(
                type=req.type,
                description=req.description,
                passed=ratio >= PASS_RATIOS[req.type],
                score=clamp_score(ratio * 100),
                weight=req.weight,
                details=details,
            ))
        return results

    def check_text_content(self, candidate_root: Tag, required_texts: list[str]) -> tuple[float, str]:
        candidate_texts = [
            text.lower() for text in text_nodes(candidate_root) if len(text) > 2
        ]

        found, missing = [], []
        for required in required_texts:
            is_found = any(
                required in text
                or text in required
                or text_similarity(text, required, TEXT_SIMILARITY_THRESHOLD) > TEXT_SIMILARITY_THRESHOLD
                for text in candidate_texts
            )
            (found if is_found else missing).append(required)

        ratio = len(found) / len(required_texts) if required_texts else 1.0
        details = f"Found {len(found)}/{len(required_texts)} required texts. "
        details += f"Missing: {', '.join(missing)}" if missing else "All texts found!"
        return ratio, details

    def check_structure(self, candidate_root: Tag, required: dict[str, int]) -> tuple[float, str]:
        candidate_counts = structure_map(candidate_root)
        matched = 0
        details = []
        for tag, count in required.items():
            candidate_count = candidate_counts.get(tag, 0)
            if candidate_count >= count:
                matched += 1
                details.append(f"✓ {tag}: {candidate_count} (required: {count})")
            else:
                details.append(f"✗ {tag}: {candidate_count} (required: {count})")

        ratio = matched / len(required) if required else 1.0
        return ratio, ", ".join(details)

    def check_images(self, candidate_root: Tag, required: list[ImageRef]) -> tuple[float, str]:
        candidate_images = [
            (img.get("src") or "", (img.get("alt") or "").lower())
            for img in candidate_root.find_all("img")
        ]

        matched = 0
        for ref in required:
            ref_alt = ref.alt.lower() if ref.alt is not None else None
            if any(
                (ref.src and ref.src in src) or (ref_alt is not None and alt == ref_alt)
                for src, alt in candidate_images
            ):
                matched += 1

        ratio = matched / len(required) if required else 1.0
        return ratio, f"Found {matched}/{len(required)} required images"

    def check_css_properties(self, candidate_css: str, required: list[str]) -> tuple[float, str]:
        lower_css = (candidate_css or "").lower()
        matched = sum(1 for prop in required if prop.lower() in lower_css)
        ratio = matched / len(required) if required else 1.0
        return ratio, f"Found {matched}/{len(required)} required CSS properties"

    def check_class_names(self, candidate_root: Tag, required: list[str]) -> tuple[float, str]:
        candidate_classes = set(class_names(candidate_root))
        matched = sum(1 for cls in required if cls in candidate_classes)
        ratio = matched / len(required) if required else 1.0
        return ratio, f"Matched {matched}/{len(required)} class names"

    # ------------------------------------------------------------------
    # Scoring / feedback
    # ------------------------------------------------------------------

    def calculate_score(self, results: list[RequirementResult]) -> int:
        total_weight = sum(r.weight for r in results)
        if total_weight == 0:
            return 0
        weighted = sum(r.score / 100 * r.weight for r in results)
        return clamp_score(weighted / total_weight * 100)

    def generate_feedback(self, results: list[RequirementResult], score: int) -> str:
        lines = [f"Overall Score: {score}%", ""]
        if score >= CONTENT_PASS_SCORE:
            lines.append("✓ PASSED - Well done!")
        else:
            lines.append("✗ FAILED - Needs improvement")
        lines += ["", "Requirements:"]

        for result in results:
            mark = "✓" if result.passed else "✗"
            lines.append(f"{mark} {result.description}: {result.score}%")
            lines.append(f"   {result.details}")

        failed = [r for r in results if not r.passed]
        if failed:
            lines += ["", f"⚠️ {len(failed)} requirement(s) need attention"]
        return "\n".join(lines)
