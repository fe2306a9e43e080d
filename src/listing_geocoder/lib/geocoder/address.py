"""Freeform address normalization and progressive simplification.

Normalization produces a stable cache key and a cleaner provider query.
Simplification yields progressively shorter variants for providers that
fail to match an overly specific address.
"""

import re

_WHITESPACE_RE = re.compile(r"\s+")
# "apt 4", "apartment 12b", "unit 3-a", "# 7", optionally followed by a comma
_UNIT_RE = re.compile(r"(?:\b(?:apartment|unit|apt)\b\.?|#)\s*[\w-]+,?", re.IGNORECASE)
_USA_RE = re.compile(r"\bUSA\b", re.IGNORECASE)
_DANGLING_COMMA_RE = re.compile(r"\s*,\s*(?=,|$)")
_SPACE_BEFORE_COMMA_RE = re.compile(r"\s+,")


def normalize_address(address: str | None) -> str:
    """Normalize a freeform address for caching and querying.

    Lowercases, collapses whitespace, strips apartment/unit designators and
    rewrites ``USA`` as ``us``.

    Args:
        address: Raw address text (may be None).

    Returns:
        Normalized address, or an empty string if nothing usable remains.
    """
    if not address:
        return ""
    text = _WHITESPACE_RE.sub(" ", address.strip()).lower()
    text = _UNIT_RE.sub("", text)
    text = _USA_RE.sub("us", text)
    text = _DANGLING_COMMA_RE.sub("", text)
    text = _SPACE_BEFORE_COMMA_RE.sub(",", text)
    return _WHITESPACE_RE.sub(" ", text).strip(" ,")


def simplify_address(address: str, max_variants: int | None = None) -> list[str]:
    """Build the list of query variants for an address.

    The first entry is the address itself; each following entry drops one more
    trailing whitespace-separated token.

    Args:
        address: Normalized address.
        max_variants: Maximum number of shortened variants after the full
            address (None means all of them).

    Returns:
        Query strings, most specific first.
    """
    tokens = address.split()
    if not tokens:
        return []
    variants = [" ".join(tokens[:i]).rstrip(",") for i in range(len(tokens), 0, -1)]
    variants = [v for v in dict.fromkeys(variants) if v]
    if max_variants is not None:
        variants = variants[: max_variants + 1]
    return variants
