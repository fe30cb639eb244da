from __future__ import annotations

import csv
import os
import re
from dataclasses import dataclass
from io import StringIO
from typing import Dict, Iterable, List, Optional

from backend.schema import SkuItem
from backend.utils_text import strip_diacritics


SKU_MAX_LENGTH = 10
GENERIC_SUFFIX = "GEN"

STOP_WORDS = frozenset({"DE", "CON", "PARA", "EL", "LA", "LOS", "LAS", "Y", "EN", "DEL", "POR"})

NOT_SKU_CHAR_RE = re.compile(r"[^A-Z0-9 ]")
VOWEL_RE = re.compile(r"[AEIOU]")
DIGITS_RE = re.compile(r"\d+")
FAMILY_RE = re.compile(r"[A-Z0-9]{1,10}")

CSV_HEADER = ["CODIGO", "DESCRIPCION", "FAMILIA"]


@dataclass(frozen=True)
class SkuStrategy:
    version: str
    root_length: int
    numbers_length: Optional[int]
    with_attributes: bool


SKU_STRATEGIES: Dict[str, SkuStrategy] = {
    "3.0": SkuStrategy(version="3.0", root_length=4, numbers_length=None, with_attributes=True),
    "3.1": SkuStrategy(version="3.1", root_length=3, numbers_length=3, with_attributes=False),
}

DEFAULT_SKU_VERSION = os.getenv("SKU_VERSION", "3.1")


def get_strategy(version: Optional[str] = None) -> SkuStrategy:
    key = (version or DEFAULT_SKU_VERSION).strip().lower().lstrip("v")
    if key not in SKU_STRATEGIES:
        raise ValueError(
            f"Unknown SKU version: {version}. Available: {sorted(SKU_STRATEGIES)}"
        )
    return SKU_STRATEGIES[key]


def validate_family(family: str) -> str:
    if not isinstance(family, str) or not FAMILY_RE.fullmatch(family):
        raise ValueError(
            f"Family code must be 1-{SKU_MAX_LENGTH} uppercase letters or digits, got {family!r}"
        )
    return family


def normalize_description(description: str) -> str:
    upper = strip_diacritics((description or "").upper())
    return NOT_SKU_CHAR_RE.sub("", upper)


def significant_words(normalized: str) -> List[str]:
    return [word for word in normalized.split() if word and word not in STOP_WORDS]


def extract_root(words: List[str], limit: int) -> str:
    if not words:
        return ""
    first = words[0]
    consonants = VOWEL_RE.sub("", first)
    return (consonants or first)[:limit]


def extract_numbers(normalized: str, limit: Optional[int]) -> str:
    joined = "".join(DIGITS_RE.findall(normalized))
    return joined if limit is None else joined[:limit]


def extract_attributes(words: List[str]) -> str:
    return "".join(word[0] for word in words[1:] if not word.isdigit())


def _shrink(component: str, excess: int) -> tuple[str, int]:
    if excess <= 0 or not component:
        return component, excess
    cut = min(excess, len(component))
    return component[: len(component) - cut], excess - cut


def generate_sku(description: str, family: str, version: Optional[str] = None) -> str:
    validate_family(family)
    strategy = get_strategy(version)

    normalized = normalize_description(description)
    words = significant_words(normalized)
    if not words:
        return (family + GENERIC_SUFFIX)[:SKU_MAX_LENGTH]

    root = extract_root(words, strategy.root_length)
    numbers = extract_numbers(normalized, strategy.numbers_length)
    attributes = extract_attributes(words) if strategy.with_attributes else ""

    excess = len(family) + len(root) + len(attributes) + len(numbers) - SKU_MAX_LENGTH
    # Least significant component goes first; the family prefix is never cut.
    attributes, excess = _shrink(attributes, excess)
    numbers, excess = _shrink(numbers, excess)
    root, excess = _shrink(root, excess)

    return (family + root + attributes + numbers)[:SKU_MAX_LENGTH]


def generate_sku_items(text: str, family: str, version: Optional[str] = None) -> List[SkuItem]:
    items: List[SkuItem] = []
    for line in (text or "").splitlines():
        description = line.strip()
        if not description:
            continue
        items.append(SkuItem(code=generate_sku(description, family, version), description=description, family=family))
    return items


def sku_items_to_csv(items: Iterable[SkuItem]) -> str:
    output = StringIO()
    writer = csv.writer(output, delimiter=";", lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for item in items:
        writer.writerow([item.code, item.description, item.family])
    return output.getvalue()


def compose_article_name(
    family: str = "",
    width: str = "",
    height: str = "",
    finish: str = "",
    fabric: str = "",
    color: str = "",
) -> str:
    """Descriptive article name: FAMILY WxH FINISH FABRIC COLOR.

    Blank parts are skipped; a measure with only one side given renders the
    other side as "00".
    """
    parts: List[str] = []
    if family.strip():
        parts.append(family.strip().upper())
    w, h = width.strip(), height.strip()
    if w or h:
        parts.append(f"{w or '00'}X{h or '00'}")
    for value in (finish, fabric, color):
        if value.strip():
            parts.append(value.strip().upper())
    return " ".join(parts)


__all__ = [
    "SKU_MAX_LENGTH",
    "SKU_STRATEGIES",
    "DEFAULT_SKU_VERSION",
    "SkuStrategy",
    "get_strategy",
    "validate_family",
    "normalize_description",
    "generate_sku",
    "generate_sku_items",
    "sku_items_to_csv",
    "compose_article_name",
]
