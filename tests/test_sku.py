from __future__ import annotations

import pytest

from backend.schema import SkuItem
from backend.sku import (
    compose_article_name,
    generate_sku,
    generate_sku_items,
    get_strategy,
    normalize_description,
    sku_items_to_csv,
)


def test_reference_description_keeps_family_prefix():
    code = generate_sku("Cinta adhesiva doble cara 25mm", "CNSM")
    assert code[:4] == "CNSM"
    assert len(code) <= 10
    assert code == "CNSMCNT25"
    assert generate_sku("Cinta adhesiva doble cara 25mm", "CNSM") == code


def test_attribute_version_truncates_attributes_first():
    code = generate_sku("Cinta adhesiva doble cara 25mm", "CNSM", version="3.0")
    # root CNT, attributes ADC2 and numbers 25 overflow by 3: attributes shrink to A
    assert code == "CNSMCNTA25"


def test_version_prefix_is_accepted():
    assert get_strategy("v3.0").root_length == 4
    assert get_strategy("3.1").with_attributes is False


def test_unknown_version_raises():
    with pytest.raises(ValueError):
        generate_sku("Cinta", "CNSM", version="9.9")


def test_normalization_strips_accents_and_symbols():
    assert normalize_description("Cojín cuadrado 45x45, loneta-gris!") == "COJIN CUADRADO 45X45 LONETAGRIS"


def test_numbers_are_capped_in_current_version():
    assert generate_sku("Cojín cuadrado 45x45 loneta gris", "CNSM") == "CNSMCJN454"
    assert generate_sku("Cojín cuadrado 45x45 loneta gris", "COJ") == "COJCJN454"


def test_stop_words_only_gives_generic_code():
    assert generate_sku("de la con", "CNSM") == "CNSMGEN"
    assert generate_sku("", "CNSM") == "CNSMGEN"
    assert generate_sku("de", "ABCDEFGHI") == "ABCDEFGHIG"


def test_root_falls_back_to_word_made_of_vowels():
    assert generate_sku("Oia 3", "CNSM") == "CNSMOIA3"


def test_numbers_are_sacrificed_before_root():
    assert generate_sku("Cinta 123", "ABCDEFG") == "ABCDEFGCNT"


def test_long_family_is_never_cut():
    code = generate_sku("Riel tecnico extensible blanco 2m", "ABCDEFGH", version="3.0")
    assert code == "ABCDEFGHRL"
    assert generate_sku("Riel tecnico", "ABCDEFGHIJ") == "ABCDEFGHIJ"


@pytest.mark.parametrize("family", ["", "cnsm", "CN-SM", "ABCDEFGHIJK", "CNSM\n", "ÑA"])
def test_invalid_family_raises(family):
    with pytest.raises(ValueError):
        generate_sku("Cinta", family)


def test_generate_items_skips_blank_lines():
    text = "Cinta adhesiva doble cara 25mm\n\n   \nRiel técnico extensible blanco 2m\n"
    items = generate_sku_items(text, "CNSM")
    assert [item.description for item in items] == [
        "Cinta adhesiva doble cara 25mm",
        "Riel técnico extensible blanco 2m",
    ]
    assert all(item.family == "CNSM" and len(item.code) <= 10 for item in items)


def test_csv_export_is_semicolon_delimited():
    items = [
        SkuItem(code="CNSMCNT25", description="Cinta adhesiva doble cara 25mm", family="CNSM"),
        SkuItem(code="CNSMRL2", description="Riel 2m", family="CNSM"),
    ]
    assert sku_items_to_csv(items) == (
        "CODIGO;DESCRIPCION;FAMILIA\n"
        "CNSMCNT25;Cinta adhesiva doble cara 25mm;CNSM\n"
        "CNSMRL2;Riel 2m;CNSM\n"
    )


def test_compose_article_name():
    assert compose_article_name("coj", "40", "", "S/VIVO", "loneta", " gris ") == "COJ 40X00 S/VIVO LONETA GRIS"
    assert compose_article_name("COJ", "", "", "", "", "") == "COJ"
