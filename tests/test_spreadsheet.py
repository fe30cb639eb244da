from __future__ import annotations

import pytest

from backend.batch import make_item
from backend.spreadsheet import (
    NOT_FIT_MARKER,
    build_export_rows,
    read_csv_rows,
    read_rows,
    read_xlsx_rows,
    write_csv,
    write_xlsx,
)


def test_read_csv_with_semicolons_skips_blank_rows():
    content = "Ancho;Alto;Ref\n40;50;A1\n;;\n45,5;45;A2\n".encode("utf-8")
    rows = read_csv_rows(content)
    assert rows == [
        {"Ancho": "40", "Alto": "50", "Ref": "A1"},
        {"Ancho": "45,5", "Alto": "45", "Ref": "A2"},
    ]


def test_read_csv_with_commas_and_bom():
    content = "\ufeffwidth,height\n30,40\n".encode("utf-8")
    assert read_csv_rows(content) == [{"width": "30", "height": "40"}]


def test_xlsx_round_trip_keeps_values():
    rows = [{"Ancho": 40, "Alto": 50, "Ref": "A1"}, {"Ancho": 45.5, "Alto": 45, "Ref": "A2"}]
    content = write_xlsx(rows)
    assert read_xlsx_rows(content) == rows
    assert read_rows("pedido.XLSX", content) == rows


def test_duplicate_and_blank_headers_get_unique_names():
    content = "Ancho,Ancho,\n40,41,x\n".encode("utf-8")
    rows = read_csv_rows(content)
    assert rows == [{"Ancho": "40", "Ancho_1": "41", "__EMPTY_2": "x"}]


def test_unsupported_extension_raises():
    with pytest.raises(ValueError):
        read_rows("pedido.pdf", b"%PDF")


def test_export_rows_per_fabric_width():
    fits = make_item("row-0", 40, 40, {"Ref": "A1"}, is_patterned=True)
    too_wide = make_item("row-1", 150, 40, {"Ref": "A2"}, is_patterned=True)

    first, second = build_export_rows([fits, too_wide])

    assert first["Ref"] == "A1"
    assert first["Tela_280cm_Placas"] == 6
    assert first["Tela_280cm_CojinesTeo"] == 3
    assert first["Tela_280cm_Consumo_M"] == 0.15
    assert "Tela_280cm_Estado" not in first

    assert second["Tela_140cm_Estado"] == NOT_FIT_MARKER
    assert "Tela_140cm_Placas" not in second
    assert second["Tela_160cm_Placas"] == 1
    assert second["Tela_160cm_Consumo_M"] == round(45 / 0.5 / 100, 4)


def test_export_rounds_consumption_to_four_decimals():
    item = make_item("row-0", 40, 50, {}, is_patterned=True)
    row = build_export_rows([item])[0]
    assert row["Tela_280cm_Consumo_M"] == 0.1833


def test_write_csv_uses_union_of_columns():
    text = write_csv([{"a": 1}, {"b": 2, "a": None}])
    assert text == "a,b\n1,\n,2\n"
