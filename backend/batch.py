from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

from backend.consumption import calculate_all_widths
from backend.dimension_detector import detect_dimensions
from backend.schema import CushionItem
from backend.utils_text import format_number, parse_dimension_search, parse_number


SORT_BY_DIMENSIONS = "dimensions"


@dataclass
class BatchBuild:
    items: List[CushionItem] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return len(self.items) + len(self.skipped)


def make_item(
    item_id: str,
    width: float,
    height: float,
    original_row: Optional[Dict[str, Any]],
    is_patterned: bool,
) -> CushionItem:
    return CushionItem(
        id=item_id,
        original_row=dict(original_row or {}),
        width=width,
        height=height,
        results=calculate_all_widths(width, height, is_patterned),
    )


def build_items(rows: Iterable[Dict[str, Any]], is_patterned: bool) -> BatchBuild:
    build = BatchBuild()
    for idx, row in enumerate(rows or []):
        dims = detect_dimensions(row)
        if not dims.found:
            build.skipped.append(idx)
            continue
        build.items.append(make_item(f"row-{idx}", dims.width, dims.height, row, is_patterned))
    return build


def recompute_items(items: Iterable[CushionItem], is_patterned: bool) -> List[CushionItem]:
    return [make_item(item.id, item.width, item.height, item.original_row, is_patterned) for item in items]


def items_from_records(records: Iterable[Dict[str, Any]], is_patterned: bool) -> List[CushionItem]:
    """Rebuild items from stored records.

    Only width, height and the original row are read; any stored result fields
    are ignored and the results are computed again.
    """
    items: List[CushionItem] = []
    for idx, record in enumerate(records or []):
        width = parse_number(record.get("width"))
        height = parse_number(record.get("height"))
        if width is None or height is None or width <= 0 or height <= 0:
            print(f"[history] skipping record {record.get('id')}: invalid dimensions")
            continue
        original_row = record.get("original_row")
        if not isinstance(original_row, dict):
            original_row = {"ancho": width, "alto": height, "_source": "history"}
        items.append(make_item(f"db-{record.get('id')}-{idx}", width, height, original_row, is_patterned))
    return items


def _matches_search(item: CushionItem, term: str) -> bool:
    dims = parse_dimension_search(term)
    if dims:
        return item.width == dims[0] and item.height == dims[1]
    if term in format_number(item.width) or term in format_number(item.height):
        return True
    if term in item.id.lower():
        return True
    values = " ".join(str(v) for v in item.original_row.values() if v is not None).lower()
    return term in values


def filter_items(
    items: Iterable[CushionItem],
    search: str = "",
    width: Optional[float] = None,
    height: Optional[float] = None,
) -> List[CushionItem]:
    term = (search or "").strip().lower()
    output: List[CushionItem] = []
    for item in items:
        if width is not None and item.width != width:
            continue
        if height is not None and item.height != height:
            continue
        if term and not _matches_search(item, term):
            continue
        output.append(item)
    return output


def _sort_value(item: CushionItem, key: Union[str, int]) -> float:
    if key == SORT_BY_DIMENSIONS:
        return item.width * item.height
    result = item.results.get(int(key))
    if result is None or not result.is_valid:
        return math.inf
    return result.consumption_m


def sort_items(
    items: Iterable[CushionItem],
    key: Optional[Union[str, int]] = None,
    direction: str = "asc",
) -> List[CushionItem]:
    ordered = list(items)
    if key is None or key == "":
        return ordered
    if key != SORT_BY_DIMENSIONS:
        try:
            key = int(key)
        except (TypeError, ValueError):
            raise ValueError(f"Unknown sort key: {key!r}")
    return sorted(ordered, key=lambda item: _sort_value(item, key), reverse=direction == "desc")


__all__ = [
    "BatchBuild",
    "make_item",
    "build_items",
    "recompute_items",
    "items_from_records",
    "filter_items",
    "sort_items",
]
