"""
vql/models/validators.py -- Value validators for registry arguments.

These run *before* any mutation so that a rejected command leaves the
registry untouched.  They understand registry rules that the pydantic
records do not express on their own:

    - Principle and asset type short names are exactly one character
    - Ratings are H, M or L (any case in, upper case out)
    - Exemplar flags come in several spellings
    - Review text may state a rating in prose

Usage::

    from vql.models.validators import normalize_rating

    rating = normalize_rating("h")   # -> "H"
"""

from __future__ import annotations

import re

from vql.config import VALID_RATINGS
from vql.errors import InvalidArgumentError

_TRUE_FLAGS = frozenset({"true", "t", "yes", "y"})
_FALSE_FLAGS = frozenset({"false", "f", "no", "n"})

_EXPLICIT_RATING_PHRASES = (
    ("H", ("high compliance", "compliance: high")),
    ("M", ("medium compliance", "compliance: medium")),
    ("L", ("low compliance", "compliance: low")),
)
_BARE_RATING_WORDS = (
    ("H", re.compile(r" high[ .,]")),
    ("M", re.compile(r" medium[ .,]")),
    ("L", re.compile(r" low[ .,]")),
)


def require_single_char(short_name: str, kind: str) -> None:
    """Raise unless *short_name* is exactly one character."""
    if len(short_name) != 1:
        raise InvalidArgumentError(
            f"{kind} short name must be a single character (got '{short_name}')"
        )


def require_non_empty(value: str, what: str) -> None:
    if not value or not value.strip():
        raise InvalidArgumentError(f"{what} must not be empty")


def normalize_rating(rating: str | None) -> str | None:
    """Return the upper-cased rating, or ``None`` when *rating* is ``None``.

    Raises
    ------
    InvalidArgumentError
        If *rating* is not H, M or L in any case.
    """
    if rating is None:
        return None
    value = rating.strip().upper()
    if value not in VALID_RATINGS:
        raise InvalidArgumentError(f"Invalid rating: {rating}. Must be H, M, or L")
    return value


def parse_exemplar_flag(value: str) -> bool:
    """Parse ``t|f|true|false|yes|no|y|n`` (case-insensitive)."""
    flag = value.strip().lower()
    if flag in _TRUE_FLAGS:
        return True
    if flag in _FALSE_FLAGS:
        return False
    raise InvalidArgumentError(
        f"Invalid exemplar status: {value}. Use true/t/yes/y or false/f/no/n"
    )


def extract_rating_from_text(text: str) -> str | None:
    """Infer a rating from review prose.

    Explicit compliance statements ("High compliance", "Compliance: low")
    win over a bare standalone word ("rated as high.").  Returns ``None``
    when the text states no rating.
    """
    lowered = text.lower()
    for rating, phrases in _EXPLICIT_RATING_PHRASES:
        if any(phrase in lowered for phrase in phrases):
            return rating
    for rating, pattern in _BARE_RATING_WORDS:
        if pattern.search(lowered):
            return rating
    return None
