from __future__ import annotations
import os
import traceback
from datetime import datetime
from typing import Any, Dict, List, Optional
from fastapi import FastAPI, HTTPException, Header, UploadFile, File, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from dotenv import load_dotenv
load_dotenv()
from backend.schema import (
    AllWidthsRequest,
    ArticleNameRequest,
    BatchIn,
    CalculationRequest,
    CalculationResult,
    FamilyIn,
    ItemsPayload,
    ItemsQuery,
    SkuItemsPayload,
    SkuRequest,
)
from backend.consumption import (
    FABRIC_WIDTHS,
    best_fabric_width,
    calculate_all_widths,
    calculate_consumption,
    enforce_formula_audit,
    run_formula_audit,
)
from backend.dimension_detector import detect_dimensions
from backend.batch import build_items, filter_items, items_from_records, recompute_items, sort_items
from backend.spreadsheet import build_export_rows, read_rows, write_csv, write_xlsx
from backend.sku import (
    DEFAULT_SKU_VERSION,
    SKU_STRATEGIES,
    compose_article_name,
    generate_sku_items,
    sku_items_to_csv,
    validate_family,
)
from db import (
    init_db,
    save_batch,
    list_batches,
    fetch_history,
    delete_batch,
    create_family,
    list_families,
    save_articles,
    list_articles,
)

FRONTEND_ORIGIN = os.getenv("FRONTEND_ORIGIN", "*")
APP_KEY = os.getenv("APP_KEY")  # optional shared secret
DEFAULT_PATTERNED = os.getenv("DEFAULT_PATTERNED", "false").strip().lower() in ("1", "true", "yes", "y")

DEFAULT_HISTORY_LIMIT = 25
MAX_HISTORY_LIMIT = 100

# Refuse to start with drifted formulas.
AUDIT = enforce_formula_audit()
print(f"[audit] passed: {AUDIT.summary()}")

app = FastAPI(title="Cushion Fabric Planner", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in FRONTEND_ORIGIN.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _check_key(x_app_key: Optional[str]) -> None:
    if APP_KEY and x_app_key != APP_KEY:
        raise HTTPException(status_code=401, detail="Unauthorized")


def _patterned(value: Optional[bool]) -> bool:
    return DEFAULT_PATTERNED if value is None else value


def _items_to_dicts(items) -> List[Dict[str, Any]]:
    return [item.model_dump(mode="json") for item in items]


def _summarize_items(items) -> Dict[str, Any]:
    fits = {fw: 0 for fw in FABRIC_WIDTHS}
    best_counts: Dict[int, int] = {}
    for item in items:
        for fw, result in item.results.items():
            if result.is_valid:
                fits[fw] = fits.get(fw, 0) + 1
        best = best_fabric_width(item.results)
        if best is not None:
            best_counts[best] = best_counts.get(best, 0) + 1
    return {"items": len(items), "fits_per_width": fits, "best_width_counts": best_counts}


def _attachment(content: Any, media_type: str, filename: str) -> Response:
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    return Response(content=content, media_type=media_type, headers=headers)


init_db()

@app.get("/healthz")
def healthz():
    return {"ok": True}

@app.get("/audit")
def audit() -> Dict[str, Any]:
    report = run_formula_audit()
    return {
        "passed": report.passed,
        "summary": report.summary(),
        "cases": [
            {
                "cushion_width": case.cushion_width,
                "cushion_height": case.cushion_height,
                "fabric_width": case.fabric_width,
                "passed": case.passed,
                "result": case.result.model_dump(mode="json"),
            }
            for case in report.cases
        ],
    }

@app.get("/fabric-widths")
def fabric_widths() -> Dict[str, Any]:
    return {"widths": list(FABRIC_WIDTHS), "default_patterned": DEFAULT_PATTERNED}

@app.post("/calculate", response_model=CalculationResult)
def calculate(inb: CalculationRequest) -> CalculationResult:
    return calculate_consumption(inb.width, inb.height, inb.fabric_width, _patterned(inb.is_patterned))

@app.post("/calculate/all")
def calculate_all(inb: AllWidthsRequest) -> Dict[str, Any]:
    results = calculate_all_widths(inb.width, inb.height, _patterned(inb.is_patterned))
    return {
        "results": {fw: result.model_dump(mode="json") for fw, result in results.items()},
        "best_width": best_fabric_width(results),
    }

@app.post("/detect")
def detect(row: Dict[str, Any]) -> Dict[str, Any]:
    dims = detect_dimensions(row)
    return {"width": dims.width, "height": dims.height, "found": dims.found}

@app.post("/upload")
async def upload(
    file: UploadFile = File(...),
    is_patterned: Optional[bool] = Query(default=None),
    x_app_key: Optional[str] = Header(default=None),
) -> Dict[str, Any]:
    """Read a spreadsheet, detect the width/height columns and compute every row."""
    _check_key(x_app_key)

    if not file or not file.filename:
        raise HTTPException(status_code=400, detail="Please upload a .xlsx or .csv file")

    try:
        raw_bytes = await file.read()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to read file: {e}")

    try:
        rows = read_rows(file.filename, raw_bytes)
    except ValueError as ve:
        raise HTTPException(status_code=400, detail=str(ve))
    except Exception as e:
        print("[upload] parse error:\n" + "".join(traceback.format_exc()))
        raise HTTPException(status_code=422, detail=f"Could not read spreadsheet: {e}")

    build = build_items(rows, _patterned(is_patterned))
    print(f"[upload] {file.filename}: {len(build.items)} items, {len(build.skipped)} rows skipped")
    if not build.items:
        raise HTTPException(
            status_code=422,
            detail="No valid width/height columns found. Use headers such as 'Ancho' and 'Alto'.",
        )

    return {
        "items": _items_to_dicts(build.items),
        "skipped_rows": build.skipped,
        "total_rows": build.total_rows,
        "summary": _summarize_items(build.items),
    }

@app.post("/items/recalculate")
def recalculate(payload: ItemsPayload) -> Dict[str, Any]:
    items = recompute_items(payload.items, _patterned(payload.is_patterned))
    return {"items": _items_to_dicts(items), "summary": _summarize_items(items)}

@app.post("/items/query")
def query_items(payload: ItemsQuery) -> Dict[str, Any]:
    items = recompute_items(payload.items, _patterned(payload.is_patterned))
    filtered = filter_items(items, payload.search, payload.filter_width, payload.filter_height)
    try:
        ordered = sort_items(filtered, payload.sort_key, payload.direction)
    except ValueError as ve:
        raise HTTPException(status_code=400, detail=str(ve))
    return {"items": _items_to_dicts(ordered), "count": len(ordered)}

@app.post("/items/export.xlsx")
def export_items_xlsx(payload: ItemsPayload):
    # Exported figures always come from a fresh computation.
    items = recompute_items(payload.items, _patterned(payload.is_patterned))
    content = write_xlsx(build_export_rows(items))
    return _attachment(
        content,
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "Calculo_Consumo_Telas.xlsx",
    )

@app.post("/items/export.csv")
def export_items_csv(payload: ItemsPayload):
    items = recompute_items(payload.items, _patterned(payload.is_patterned))
    return _attachment(write_csv(build_export_rows(items)), "text/csv", "Calculo_Consumo_Telas.csv")

@app.post("/batches")
def create_batch(payload: BatchIn, x_app_key: Optional[str] = Header(default=None)) -> Dict[str, Any]:
    _check_key(x_app_key)
    name = payload.name.strip() or f"Batch {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}"
    records = [
        {"width": item.width, "height": item.height, "original_row": item.original_row}
        for item in payload.items
    ]
    try:
        return save_batch(name=name, items=records)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except Exception as exc:
        print("[batches] save failed:\n" + "".join(traceback.format_exc()))
        raise HTTPException(status_code=500, detail=f"Failed to save batch: {exc}")

@app.get("/batches")
def get_batches(
    limit: int = Query(default=DEFAULT_HISTORY_LIMIT, ge=1, le=MAX_HISTORY_LIMIT),
    offset: int = Query(default=0, ge=0),
) -> Dict[str, Any]:
    items = list_batches(limit=limit, offset=offset)
    return {
        "items": items,
        "limit": limit,
        "offset": offset,
        "count": len(items),
        "has_more": len(items) == limit,
    }

@app.get("/batches/history")
def get_history(
    batch_id: Optional[int] = Query(default=None),
    is_patterned: Optional[bool] = Query(default=None),
) -> Dict[str, Any]:
    try:
        records = fetch_history(batch_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    items = items_from_records(records, _patterned(is_patterned))
    return {"items": _items_to_dicts(items), "summary": _summarize_items(items)}

@app.delete("/batches/{batch_id}")
def remove_batch(batch_id: int, x_app_key: Optional[str] = Header(default=None)) -> Dict[str, bool]:
    _check_key(x_app_key)
    deleted = delete_batch(batch_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Batch not found")
    return {"ok": True}

@app.get("/skus/versions")
def sku_versions() -> Dict[str, Any]:
    return {
        "default": DEFAULT_SKU_VERSION,
        "versions": {
            version: {
                "root_length": strategy.root_length,
                "numbers_length": strategy.numbers_length,
                "with_attributes": strategy.with_attributes,
            }
            for version, strategy in SKU_STRATEGIES.items()
        },
    }

@app.post("/skus/generate")
def generate_skus(inb: SkuRequest) -> Dict[str, Any]:
    try:
        items = generate_sku_items(inb.text, inb.family, inb.version)
    except ValueError as ve:
        raise HTTPException(status_code=400, detail=str(ve))
    return {"items": [item.model_dump() for item in items], "count": len(items)}

@app.post("/skus/csv")
def skus_csv(payload: SkuItemsPayload):
    return Response(content=sku_items_to_csv(payload.items), media_type="text/plain")

@app.post("/skus/export.xlsx")
def skus_xlsx(payload: SkuItemsPayload):
    rows = [item.model_dump() for item in payload.items]
    return _attachment(
        write_xlsx(rows, sheet_name="SKUs"),
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "AutoSKU_Export.xlsx",
    )

@app.get("/families")
def get_families() -> Dict[str, Any]:
    return {"items": list_families()}

@app.post("/families")
def add_family(inb: FamilyIn, x_app_key: Optional[str] = Header(default=None)) -> Dict[str, Any]:
    _check_key(x_app_key)
    try:
        code = validate_family(inb.code.strip().upper())
    except ValueError as ve:
        raise HTTPException(status_code=400, detail=str(ve))
    return create_family(code, inb.name.strip())

@app.get("/articles")
def get_articles(limit: int = Query(default=100, ge=1, le=500)) -> Dict[str, Any]:
    items = list_articles(limit=limit)
    return {"items": items, "count": len(items)}

@app.post("/articles")
def add_articles(payload: SkuItemsPayload, x_app_key: Optional[str] = Header(default=None)) -> Dict[str, Any]:
    _check_key(x_app_key)
    if not payload.items:
        raise HTTPException(status_code=400, detail="No articles to save")
    try:
        return save_articles([item.model_dump() for item in payload.items])
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except Exception as exc:
        print("[articles] save failed:\n" + "".join(traceback.format_exc()))
        raise HTTPException(status_code=500, detail=f"Failed to save articles: {exc}")

@app.post("/articles/name")
def article_name(inb: ArticleNameRequest) -> Dict[str, str]:
    name = compose_article_name(
        family=inb.family,
        width=inb.width,
        height=inb.height,
        finish=inb.finish,
        fabric=inb.fabric,
        color=inb.color,
    )
    return {"name": name}
