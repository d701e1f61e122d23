"""String similarity primitives used by the content checker and role matcher."""

import re

_SEPARATORS = re.compile(r"[-_]")


def levenshtein(a: str, b: str) -> int:
    """Classic edit distance (insert / delete / substitute, unit costs)."""
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            if ca == cb:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j - 1], previous[j], current[j - 1]))
        previous = current
    return previous[-1]


def text_similarity(a: str, b: str, floor: float = 0.0) -> float:
    """1 - levenshtein / len(longer). Two empty strings are identical.

    When the length ratio alone keeps the result at or below ``floor``, that
    ratio is returned as an upper bound and the edit distance is skipped.
    """
    shorter, longer = sorted((len(a), len(b)))
    if longer == 0:
        return 1.0
    if shorter / longer <= floor:
        return shorter / longer
    return (longer - levenshtein(a, b)) / longer


def charset_similarity(a: str, b: str) -> float:
    """Jaccard similarity of the character sets of two identifiers.

    Case, hyphens and underscores are ignored, so ``product-title`` and
    ``productTitle`` compare equal.
    """
    if not a or not b:
        return 0.0
    a = _SEPARATORS.sub("", a.lower())
    b = _SEPARATORS.sub("", b.lower())
    if a == b:
        return 1.0
    set_a, set_b = set(a), set(b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)
