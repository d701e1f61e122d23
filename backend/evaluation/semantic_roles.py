"""Role-based DOM matching.

Each semantic role (product title, price, button, ...) is described by a tuple
of match strategies. An element earns points for every strategy it satisfies;
the best element per role decides whether the role is found, partially found
or missing. Scoring works on plain ``ElementFeatures`` so it can be exercised
without parsing any HTML.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Union

from bs4 import Tag

from .content_checker import parse_html
from .models import (
    Confidence,
    FeedbackEntry,
    FeedbackType,
    MatchedElement,
    RoleMatch,
    StructureResult,
)
from .scoring import clamp_score
from .similarity import charset_similarity

logger = logging.getLogger(__name__)

FOUND_SCORE = 4
PARTIAL_SCORE = 2
FUZZY_CLASS_THRESHOLD = 0.6


@dataclass(frozen=True)
class ElementFeatures:
    tag: str
    classes: tuple[str, ...] = ()
    text: str = ""
    attributes: frozenset[str] = frozenset()
    attribute_values: dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_tag(cls, element: Tag) -> "ElementFeatures":
        classes = element.get("class") or []
        if isinstance(classes, str):
            classes = classes.split()
        values = {}
        for name, value in element.attrs.items():
            values[name] = " ".join(value) if isinstance(value, list) else str(value)
        return cls(
            tag=element.name.lower(),
            classes=tuple(classes),
            text=element.get_text().strip(),
            attributes=frozenset(element.attrs),
            attribute_values=values,
        )

    @property
    def class_string(self) -> str:
        return " ".join(self.classes)


# ---------------------------------------------------------------------------
# Match strategies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TagMatch:
    tags: tuple[str, ...]
    points: int = 2

    def score(self, features: ElementFeatures) -> tuple[int, dict[str, str]]:
        if features.tag in self.tags:
            return self.points, {"tag": features.tag}
        return 0, {}


@dataclass(frozen=True)
class ClassPattern:
    patterns: tuple[str, ...]
    points: int = 3

    def matches(self, class_string: str) -> bool:
        lowered = class_string.lower()
        words = lowered.split()
        for pattern in self.patterns:
            if pattern.lower() in lowered:
                return True
            if any(charset_similarity(word, pattern) >= FUZZY_CLASS_THRESHOLD for word in words):
                return True
        return False

    def score(self, features: ElementFeatures) -> tuple[int, dict[str, str]]:
        if features.classes and self.matches(features.class_string):
            return self.points, {"class": features.class_string}
        return 0, {}


@dataclass(frozen=True)
class TextPattern:
    patterns: tuple[re.Pattern, ...]
    points: int = 2

    def score(self, features: ElementFeatures) -> tuple[int, dict[str, str]]:
        if any(pattern.search(features.text) for pattern in self.patterns):
            return self.points, {"text": features.text[:50]}
        return 0, {}


@dataclass(frozen=True)
class AttributePresence:
    attributes: tuple[str, ...]
    points: int = 1  # per attribute

    def score(self, features: ElementFeatures) -> tuple[int, dict[str, str]]:
        points, evidence = 0, {}
        for attr in self.attributes:
            if attr in features.attributes:
                points += self.points
                evidence[attr] = features.attribute_values.get(attr, "")
        return points, evidence


MatchStrategy = Union[TagMatch, ClassPattern, TextPattern, AttributePresence]


@dataclass(frozen=True)
class SemanticRole:
    name: str
    strategies: tuple[MatchStrategy, ...]
    required: bool = True

    def strategy(self, kind: type) -> MatchStrategy | None:
        for strategy in self.strategies:
            if isinstance(strategy, kind):
                return strategy
        return None


def score_element(features: ElementFeatures, role: SemanticRole) -> tuple[int, dict[str, str]]:
    """Total evidence score of one element for one role."""
    total, evidence = 0, {}
    for strategy in role.strategies:
        points, found = strategy.score(features)
        total += points
        evidence.update(found)
    return total, evidence


def _patterns(*expressions: str, flags: int = 0) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(expr, flags) for expr in expressions)


SEMANTIC_ROLES: tuple[SemanticRole, ...] = (
    SemanticRole(
        name="productImage",
        strategies=(
            TagMatch(("img", "picture", "figure")),
            ClassPattern(("image", "img", "photo", "picture", "product")),
            AttributePresence(("src", "alt")),
        ),
    ),
    SemanticRole(
        name="productTitle",
        strategies=(
            TagMatch(("h1", "h2", "h3", "div", "span", "p")),
            ClassPattern(("title", "name", "heading", "product")),
            TextPattern(_patterns(r"headphone", r"product", r"wireless", flags=re.IGNORECASE)),
        ),
    ),
    SemanticRole(
        name="productPrice",
        strategies=(
            TagMatch(("span", "div", "p", "strong")),
            ClassPattern(("price", "cost", "amount")),
            TextPattern(_patterns(r"\$\d+", r"\d+\.\d{2}") + _patterns(r"price", flags=re.IGNORECASE)),
        ),
    ),
    SemanticRole(
        name="productButton",
        strategies=(
            TagMatch(("button", "a", "div", "span")),
            ClassPattern(("button", "btn", "cta", "add", "cart")),
            TextPattern(_patterns(r"add.*cart", r"buy", r"purchase", r"add", flags=re.IGNORECASE)),
        ),
    ),
    SemanticRole(
        name="productDescription",
        strategies=(
            TagMatch(("p", "div", "span")),
            ClassPattern(("description", "desc", "bio", "text")),
        ),
        required=False,
    ),
    SemanticRole(
        name="container",
        strategies=(
            TagMatch(("div", "section", "article", "main")),
            ClassPattern(("container", "card", "product", "wrapper")),
        ),
        required=False,
    ),
)


def classify(score: int) -> Confidence:
    if score >= FOUND_SCORE:
        return Confidence.HIGH
    if score >= PARTIAL_SCORE:
        return Confidence.MEDIUM
    return Confidence.MISSING


CREDIT = {Confidence.HIGH: 1.0, Confidence.MEDIUM: 0.5, Confidence.MISSING: 0.0}


def humanize_role_name(name: str) -> str:
    """productTitle -> Product Title"""
    spaced = re.sub(r"([A-Z])", r" \1", name).strip()
    return spaced[:1].upper() + spaced[1:]


class SemanticRoleMatcher:
    """Finds semantic roles in candidate and expected DOMs and scores coverage."""

    def __init__(self, roles: tuple[SemanticRole, ...] = SEMANTIC_ROLES):
        self.roles = roles

    def best_match(
        self, elements: list[ElementFeatures], role: SemanticRole
    ) -> tuple[ElementFeatures | None, int, dict[str, str]]:
        """Top-scoring element for a role; the first one in document order wins ties."""
        best, best_score, best_evidence = None, 0, {}
        for features in elements:
            score, evidence = score_element(features, role)
            if score > best_score:
                best, best_score, best_evidence = features, score, evidence
        return best, best_score, best_evidence

    def evaluate_structure(self, candidate_html: str, expected_html: str) -> StructureResult:
        candidate_elements = self._elements(candidate_html)
        expected_elements = self._elements(expected_html)

        found, partial, missing, optional = [], [], [], []
        total_roles = 0
        credited = 0.0

        for role in self.roles:
            element, score, evidence = self.best_match(candidate_elements, role)
            _, expected_score, _ = self.best_match(expected_elements, role)
            confidence = classify(score)

            match = RoleMatch(
                role=role.name,
                confidence=confidence,
                score=score,
                element=self._describe(element) if confidence is not Confidence.MISSING else None,
                evidence=evidence if confidence is not Confidence.MISSING else {},
                expected_confidence=classify(expected_score),
            )
            if confidence is Confidence.MEDIUM:
                match.suggestion = self.suggestion_for_partial(role, element, evidence)
            elif confidence is Confidence.MISSING:
                match.suggestion = self.suggestion_for_missing(role)

            if not role.required:
                optional.append(match)
                continue

            total_roles += 1
            credited += CREDIT[confidence]
            {
                Confidence.HIGH: found,
                Confidence.MEDIUM: partial,
                Confidence.MISSING: missing,
            }[confidence].append(match)

        score = clamp_score(credited / total_roles * 100) if total_roles else 0
        logger.info(
            "Structure check: %d%% (%d found, %d partial, %d missing)",
            score, len(found), len(partial), len(missing),
        )
        return StructureResult(
            score=score,
            total_roles=total_roles,
            credited=credited,
            roles_found=found,
            roles_partial=partial,
            roles_missing=missing,
            optional_roles=optional,
        )

    def suggestion_for_partial(
        self, role: SemanticRole, element: ElementFeatures, evidence: dict[str, str]
    ) -> str:
        suggestions = []
        class_pattern = role.strategy(ClassPattern)
        if "class" not in evidence and class_pattern:
            suggestions.append(f'Consider adding a class like "{class_pattern.patterns[0]}"')
        tag_match = role.strategy(TagMatch)
        if tag_match and element.tag not in tag_match.tags:
            suggestions.append(f"Try using a more semantic tag like <{tag_match.tags[0]}>")
        return ". ".join(suggestions)

    def suggestion_for_missing(self, role: SemanticRole) -> str:
        tag_match = role.strategy(TagMatch)
        class_pattern = role.strategy(ClassPattern)
        tag = tag_match.tags[0] if tag_match else "div"
        if class_pattern:
            return f'Add a <{tag}> element with class "{class_pattern.patterns[0]}"'
        return f"Add a <{tag}> element"

    def generate_feedback(
        self,
        structure: StructureResult,
        visual_score: int,
    ) -> list[FeedbackEntry]:
        """Human-friendly feedback. Purely cosmetic; nothing here is scored."""
        entries = []
        structure_score = structure.score

        if structure_score >= 90 and visual_score >= 90:
            encouragement = [
                "🎉 Outstanding work! Your solution is nearly perfect!",
                "Your design matches the expected output beautifully.",
            ]
        elif structure_score >= 75 and visual_score >= 75:
            encouragement = [
                "🌟 Great job! You're on the right track!",
                "Your design looks good with just a few small improvements needed.",
            ]
        elif structure_score >= 50 or visual_score >= 50:
            encouragement = [
                "💪 Good effort! You've got the basics down.",
                "With a few adjustments, your solution will be even better!",
            ]
        else:
            encouragement = [
                "🚀 Keep going! Every expert was once a beginner.",
                "Focus on matching the structure and styling more closely.",
            ]
        entries += [FeedbackEntry(type=FeedbackType.ENCOURAGEMENT, message=m) for m in encouragement]

        for match in structure.roles_found:
            details = None
            if match.element:
                details = f"Found as <{match.element.tag}>"
                if match.element.classes:
                    details += f' with class "{match.element.classes}"'
            entries.append(FeedbackEntry(
                type=FeedbackType.MATCHING,
                message=f"{humanize_role_name(match.role)} detected successfully",
                details=details,
            ))
        for match in structure.roles_partial:
            entries.append(FeedbackEntry(
                type=FeedbackType.PARTIAL,
                message=f"{humanize_role_name(match.role)} partially matches",
                details=match.suggestion or None,
            ))
        for match in structure.roles_missing:
            entries.append(FeedbackEntry(
                type=FeedbackType.MISSING,
                message=f"{humanize_role_name(match.role)} not found",
                details=match.suggestion,
            ))

        if structure.roles_missing:
            names = ", ".join(humanize_role_name(m.role) for m in structure.roles_missing)
            entries.append(FeedbackEntry(
                type=FeedbackType.IMPROVEMENT,
                message=f"Add missing elements: {names}",
            ))
        if structure.roles_partial:
            entries.append(FeedbackEntry(
                type=FeedbackType.IMPROVEMENT,
                message="Refine your semantic HTML structure with more descriptive classes",
            ))
        if visual_score < 80:
            entries.append(FeedbackEntry(
                type=FeedbackType.IMPROVEMENT,
                message="Adjust styling to match the design more closely (colors, spacing, fonts)",
            ))
        return entries

    @staticmethod
    def _elements(html: str) -> list[ElementFeatures]:
        root = parse_html(html)
        return [ElementFeatures.from_tag(el) for el in root.find_all(True)]

    @staticmethod
    def _describe(element: ElementFeatures) -> MatchedElement:
        return MatchedElement(tag=element.tag, classes=element.class_string, text=element.text[:100])
