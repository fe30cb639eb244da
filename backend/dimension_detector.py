from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from backend.schema import DetectedDimensions
from backend.utils_text import normalize_key, parse_number, tokenize_key


DIMENSION_KEYWORDS: Dict[str, tuple[str, ...]] = {
    "width": (
        "ancho", "width", "anchura", "breadth", "wide",
        "lado1", "lado 1", "lado_1", "lado-1",
        "lado a", "lado_a", "lado-a", "side1", "side 1", "side a",
        "medida1", "medida 1", "medida a",
        "w", "a", "x", "base", "horizontal", "wd", "wdt",
    ),
    "height": (
        "alto", "height", "altura", "largo", "longitud", "length", "high", "tall",
        "lado2", "lado 2", "lado_2", "lado-2",
        "lado b", "lado_b", "lado-b", "side2", "side 2", "side b",
        "medida2", "medida 2", "medida b",
        "h", "b", "y", "vertical", "ht", "hgt", "len",
    ),
}

SCORE_EXACT = 100
SCORE_TOKEN = 95
SCORE_PREFIX = 90
SCORE_SINGLE_CHAR_TOKEN = 85
SCORE_SUBSTRING = 70
SCORE_NOT_NUMERIC = -1


@dataclass(frozen=True)
class ScoredField:
    key: str
    normalized: str
    score: int
    value: float


def _keyword_score(normalized: str, tokens: Sequence[str], keyword: str) -> int:
    if normalized == keyword:
        return SCORE_EXACT
    score = 0
    if keyword in tokens:
        score = max(score, SCORE_SINGLE_CHAR_TOKEN if len(keyword) == 1 else SCORE_TOKEN)
    if normalized.startswith(keyword) and not ("a" <= normalized[len(keyword)] <= "z"):
        score = max(score, SCORE_PREFIX)
    if len(keyword) > 2 and keyword in normalized:
        score = max(score, SCORE_SUBSTRING)
    return score


def score_field(key: Any, value: Any, keywords: Iterable[str]) -> int:
    if parse_number(value) is None:
        return SCORE_NOT_NUMERIC
    normalized = normalize_key(key)
    tokens = tokenize_key(normalized)
    best = 0
    for keyword in keywords:
        score = _keyword_score(normalized, tokens, normalize_key(keyword))
        if score == SCORE_EXACT:
            return SCORE_EXACT
        best = max(best, score)
    return best


def rank_fields(row: Mapping[Any, Any], axis: str) -> List[ScoredField]:
    keywords = DIMENSION_KEYWORDS[axis]
    ranked: List[ScoredField] = []
    for key, value in row.items():
        score = score_field(key, value, keywords)
        if score <= 0:
            continue
        ranked.append(ScoredField(key=str(key), normalized=normalize_key(key), score=score, value=parse_number(value)))
    # Ties resolve on the field name so the outcome never depends on column order.
    ranked.sort(key=lambda item: (-item.score, item.normalized, item.key))
    return ranked


def _second(candidates: List[ScoredField]) -> Optional[ScoredField]:
    return candidates[1] if len(candidates) > 1 else None


def detect_dimensions(row: Mapping[Any, Any]) -> DetectedDimensions:
    if not row:
        return DetectedDimensions()

    width_candidates = rank_fields(row, "width")
    height_candidates = rank_fields(row, "height")
    if not width_candidates or not height_candidates:
        return DetectedDimensions()

    best_width = width_candidates[0]
    best_height = height_candidates[0]

    if best_width.key == best_height.key:
        next_width = _second(width_candidates)
        next_height = _second(height_candidates)
        keep_width = best_width.score + (next_height.score if next_height else 0)
        keep_height = (next_width.score if next_width else 0) + best_height.score
        if keep_width >= keep_height and next_height:
            best_height = next_height
        elif next_width:
            best_width = next_width
        else:
            return DetectedDimensions()

    if best_width.value <= 0 or best_height.value <= 0:
        return DetectedDimensions()

    return DetectedDimensions(width=best_width.value, height=best_height.value)


__all__ = [
    "DIMENSION_KEYWORDS",
    "ScoredField",
    "score_field",
    "rank_fields",
    "detect_dimensions",
]
