from __future__ import annotations
from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Literal, Optional

class CalculationResult(BaseModel):
    fabric_width: float = Field(..., description="Roll width in cm")
    plate_width: float = Field(default=0.0, description="Cushion width + margin, cm")
    plate_height: float = Field(default=0.0, description="Cushion height + margin, cm")
    plates_per_row: int = Field(ge=0, default=0)
    cushions_per_strip: float = Field(ge=0.0, default=0.0, description="plates_per_row / 2, never floored")
    strip_height_cm: float = Field(ge=0.0, default=0.0)
    consumption_cm: float = Field(ge=0.0, default=0.0)
    consumption_m: float = Field(ge=0.0, default=0.0)
    is_valid: bool = False
    orientation: Literal["normal", "rotated"] = "normal"
    note: str = ""

class CushionItem(BaseModel):
    id: str
    original_row: Dict[str, Any] = Field(default_factory=dict)
    width: float = Field(gt=0.0, description="Cushion width in cm")
    height: float = Field(gt=0.0, description="Cushion height in cm")
    results: Dict[int, CalculationResult] = Field(default_factory=dict)

class SkuItem(BaseModel):
    code: str = Field(..., max_length=10)
    description: str
    family: str

class DetectedDimensions(BaseModel):
    width: Optional[float] = None
    height: Optional[float] = None

    @property
    def found(self) -> bool:
        return self.width is not None and self.height is not None

class CalculationRequest(BaseModel):
    width: float = Field(gt=0.0)
    height: float = Field(gt=0.0)
    fabric_width: float = Field(gt=0.0)
    is_patterned: Optional[bool] = None

class AllWidthsRequest(BaseModel):
    width: float = Field(gt=0.0)
    height: float = Field(gt=0.0)
    is_patterned: Optional[bool] = None

class ItemsPayload(BaseModel):
    items: List[CushionItem]
    is_patterned: Optional[bool] = None

class ItemsQuery(BaseModel):
    items: List[CushionItem]
    is_patterned: Optional[bool] = None
    search: str = ""
    filter_width: Optional[float] = None
    filter_height: Optional[float] = None
    sort_key: Optional[str] = Field(default=None, description="'dimensions' or a fabric width")
    direction: Literal["asc", "desc"] = "asc"

class BatchIn(BaseModel):
    name: str = Field(default="", description="Batch label; generated when blank")
    items: List[CushionItem]

    @field_validator("items")
    @classmethod
    def ensure_items(cls, v):
        if not v:
            raise ValueError("at least one item is required")
        return v

class SkuRequest(BaseModel):
    text: str = Field(..., description="One description per line")
    family: str
    version: Optional[str] = None

class SkuItemsPayload(BaseModel):
    items: List[SkuItem]

class FamilyIn(BaseModel):
    code: str = Field(..., min_length=1, max_length=10)
    name: str = ""

class ArticleNameRequest(BaseModel):
    family: str = "COJ"
    width: str = ""
    height: str = ""
    finish: str = "S/VIVO"
    fabric: str = ""
    color: str = ""
