from __future__ import annotations

from itertools import permutations

from backend.dimension_detector import DIMENSION_KEYWORDS, detect_dimensions, rank_fields, score_field


def test_detects_spanish_headers():
    dims = detect_dimensions({"ancho": 50, "alto": 30})
    assert (dims.width, dims.height) == (50, 30)
    assert dims.found


def test_detects_single_letter_headers_and_ignores_text():
    dims = detect_dimensions({"w": 50, "h": 30, "other": "text"})
    assert (dims.width, dims.height) == (50, 30)


def test_one_axis_only_is_a_miss():
    dims = detect_dimensions({"ancho": 50, "descripcion": "funda loneta"})
    assert dims.width is None and dims.height is None
    assert not dims.found


def test_empty_row_is_a_miss():
    assert not detect_dimensions({}).found


def test_diacritics_and_decimal_comma():
    dims = detect_dimensions({"Anchura (cm)": "45,5", "Altura (cm)": "60", "Ref": "A12"})
    assert (dims.width, dims.height) == (45.5, 60.0)

    accented = detect_dimensions({"Ánchó": 40, "ALTO ": "50 cm"})
    assert (accented.width, accented.height) == (40, 50)


def test_non_positive_values_are_rejected():
    assert not detect_dimensions({"ancho": -5, "alto": 30}).found
    assert not detect_dimensions({"ancho": 0, "alto": 30}).found


def test_non_numeric_values_are_excluded():
    assert not detect_dimensions({"ancho": True, "alto": 30}).found
    assert not detect_dimensions({"ancho": "n/a", "alto": 30}).found


def test_score_tiers():
    width = DIMENSION_KEYWORDS["width"]
    assert score_field("Ancho", 1, width) == 100
    assert score_field("width cm", 1, width) == 95
    assert score_field("ancho1", 1, width) == 90
    assert score_field("w (cm)", 1, width) == 90
    assert score_field("medida w", 1, width) == 85
    assert score_field("anchocojin", 1, width) == 70
    assert score_field("ancho", "abc", width) == -1
    assert score_field("referencia", 1, width) == 0


def test_shared_top_field_takes_second_height():
    dims = detect_dimensions({"lado a-b": 40, "medida y": 60})
    assert (dims.width, dims.height) == (40, 60)


def test_shared_top_field_takes_second_width():
    dims = detect_dimensions({"lado a-b": 40, "medida x": 30})
    assert (dims.width, dims.height) == (30, 40)


def test_shared_top_field_without_alternative_is_a_miss():
    assert not detect_dimensions({"lado a-b": 40}).found


def test_result_does_not_depend_on_column_order():
    fields = [("Medida 1", 45), ("Medida 2", 60), ("x", 10), ("y", 12), ("Ref", "A12")]
    outcomes = {
        (detect_dimensions(dict(order)).width, detect_dimensions(dict(order)).height)
        for order in permutations(fields)
    }
    assert len(outcomes) == 1


def test_rank_fields_orders_by_score_then_name():
    ranked = rank_fields({"x": 1, "ancho": 2, "w": 3}, "width")
    assert [field.key for field in ranked] == ["ancho", "w", "x"]


def test_oversized_integers_are_excluded():
    huge = int("9" * 400)
    assert score_field("ancho", huge, DIMENSION_KEYWORDS["width"]) == -1
    assert not detect_dimensions({"ancho": huge, "alto": 30}).found
