from __future__ import annotations

import pytest

import db
from backend.batch import build_items, items_from_records


@pytest.fixture(autouse=True)
def _schema():
    db.init_db()


def test_saved_batch_recomputes_identical_results():
    original = build_items(
        [
            {"Ancho": 40, "Alto": 50, "Ref": "A1"},
            {"Ancho": 45.5, "Alto": 37.25, "Ref": "Cojín"},
            {"Ancho": 150, "Alto": 40},
        ],
        is_patterned=False,
    ).items

    saved = db.save_batch(
        name="Lote prueba",
        items=[
            {"width": item.width, "height": item.height, "original_row": item.original_row}
            for item in original
        ],
    )
    assert saved["item_count"] == 3

    records = db.fetch_history(saved["id"])
    assert [record["original_row"] for record in records] == [item.original_row for item in original]
    assert all("results" not in record for record in records)

    reloaded = items_from_records(records, is_patterned=False)
    for before, after in zip(original, reloaded):
        assert after.width == before.width
        assert after.height == before.height
        assert {fw: r.model_dump() for fw, r in after.results.items()} == {
            fw: r.model_dump() for fw, r in before.results.items()
        }


def test_list_and_delete_batches():
    saved = db.save_batch(name="Borrar", items=[{"width": 40, "height": 40, "original_row": {}}])
    assert any(batch["id"] == saved["id"] for batch in db.list_batches(limit=200))

    assert db.delete_batch(saved["id"]) is True
    assert db.delete_batch(saved["id"]) is False
    with pytest.raises(ValueError):
        db.fetch_history(saved["id"])


def test_save_batch_requires_items():
    with pytest.raises(ValueError):
        db.save_batch(name="Vacío", items=[])


def test_articles_skip_duplicate_codes():
    family = db.create_family("HSTA", "Historial")
    assert family["code"] == "HSTA"
    assert db.create_family("HSTA", "")["id"] == family["id"]
    assert any(f["code"] == "HSTA" for f in db.list_families())

    items = [
        {"code": "HSTACNT25", "description": "Cinta 25mm", "family": "HSTA"},
        {"code": "HSTARL2", "description": "Riel 2m", "family": "HSTA"},
    ]
    assert db.save_articles(items) == {"inserted": 2, "skipped": 0}
    assert db.save_articles(items[:1]) == {"inserted": 0, "skipped": 1}

    listed = {article["code"]: article for article in db.list_articles()}
    assert listed["HSTARL2"] == {"code": "HSTARL2", "description": "Riel 2m", "family": "HSTA"}


def test_articles_need_known_family():
    with pytest.raises(ValueError):
        db.save_articles([{"code": "ZZZZ1", "description": "x", "family": "ZZZZ"}])


def test_empty_and_missing_source_rows_are_told_apart():
    saved = db.save_batch(
        name="Filas",
        items=[
            {"width": 40, "height": 40, "original_row": {}},
            {"width": 50, "height": 50, "original_row": None},
        ],
    )
    records = db.fetch_history(saved["id"])
    assert [record["original_row"] for record in records] == [{}, None]

    items = items_from_records(records, is_patterned=True)
    assert items[0].original_row == {}
    assert items[1].original_row == {"ancho": 50.0, "alto": 50.0, "_source": "history"}
