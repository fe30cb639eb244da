from __future__ import annotations

import math
import re
import unicodedata
from typing import Any, Optional, Tuple


LEADING_NUMBER_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
DIMENSION_SEARCH_RE = re.compile(r"^(\d+(?:[.,]\d+)?)\s*[xX×*]\s*(\d+(?:[.,]\d+)?)$")
NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def strip_diacritics(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value or "")
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_key(value: Any) -> str:
    if value is None:
        return ""
    return strip_diacritics(str(value).lower()).strip()


def tokenize_key(normalized: str) -> list[str]:
    return [token for token in NON_ALNUM_RE.split(normalized or "") if token]


def parse_number(value: Any) -> Optional[float]:
    """Lenient numeric read of a spreadsheet cell.

    Accepts ints and floats, numeric strings with a decimal comma, and strings
    that merely start with a number ("45 cm"). Booleans, blanks and
    non-finite values give None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
        return number if math.isfinite(number) else None
    text = str(value).strip()
    if not text:
        return None
    cleaned = text.replace(" ", "")
    if "," in cleaned and "." in cleaned:
        cleaned = cleaned.replace(".", "").replace(",", ".")
    elif "," in cleaned:
        cleaned = cleaned.replace(",", ".")
    match = LEADING_NUMBER_RE.match(cleaned)
    if not match:
        return None
    try:
        number = float(match.group(0))
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def parse_dimension_search(value: str) -> Optional[Tuple[float, float]]:
    match = DIMENSION_SEARCH_RE.match((value or "").strip())
    if not match:
        return None
    width = float(match.group(1).replace(",", "."))
    height = float(match.group(2).replace(",", "."))
    return width, height


def format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


__all__ = [
    "strip_diacritics",
    "normalize_key",
    "tokenize_key",
    "parse_number",
    "parse_dimension_search",
    "format_number",
]
