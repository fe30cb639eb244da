from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from backend.schema import CalculationResult


FABRIC_WIDTHS: Tuple[int, ...] = (140, 160, 180, 200, 220, 240, 260, 280, 290, 300, 320)

# Seam allowance added to each side of the cushion, in cm. Fixed.
PLATE_MARGIN_CM = 5

ORIENTATION_NOTES = {"normal": "Normal", "rotated": "Rotated"}

AUDIT_TOLERANCE_M = 0.0001

# (cushion width, cushion height, fabric width, plates per row, cushions per strip, consumption m)
AUDIT_REFERENCE_CASES: Tuple[Tuple[float, float, float, int, float, float], ...] = (
    (40, 50, 280, 6, 3.0, 0.183333),
    (40, 40, 280, 6, 3.0, 0.15),
)


class FormulaAuditError(RuntimeError):
    """The consumption formulas no longer reproduce the reference cases."""


def calculate_metrics(horizontal: float, vertical: float, fabric_width: float) -> CalculationResult:
    plate_width = horizontal + PLATE_MARGIN_CM
    plate_height = vertical + PLATE_MARGIN_CM

    # Only truncating step of the whole pipeline.
    plates_per_row = math.floor(fabric_width / plate_width)

    if plates_per_row <= 0:
        return CalculationResult(
            fabric_width=fabric_width,
            plate_width=0.0,
            plate_height=0.0,
            plates_per_row=0,
            cushions_per_strip=0.0,
            strip_height_cm=0.0,
            consumption_cm=0.0,
            consumption_m=0.0,
            is_valid=False,
        )

    # Two panels per cushion: yield per strip is an average, kept fractional.
    cushions_per_strip = plates_per_row / 2
    strip_height_cm = plate_height
    consumption_cm = strip_height_cm / cushions_per_strip
    consumption_m = consumption_cm / 100

    return CalculationResult(
        fabric_width=fabric_width,
        plate_width=plate_width,
        plate_height=plate_height,
        plates_per_row=plates_per_row,
        cushions_per_strip=cushions_per_strip,
        strip_height_cm=strip_height_cm,
        consumption_cm=consumption_cm,
        consumption_m=consumption_m,
        is_valid=True,
    )


def _tagged(result: CalculationResult, orientation: str) -> CalculationResult:
    return result.model_copy(update={"orientation": orientation, "note": ORIENTATION_NOTES[orientation]})


def calculate_consumption(
    cushion_width: float,
    cushion_height: float,
    fabric_width: float,
    is_patterned: bool = True,
) -> CalculationResult:
    normal = _tagged(calculate_metrics(cushion_width, cushion_height, fabric_width), "normal")
    if is_patterned:
        return normal

    rotated = _tagged(calculate_metrics(cushion_height, cushion_width, fabric_width), "rotated")

    if normal.is_valid and not rotated.is_valid:
        return normal
    if rotated.is_valid and not normal.is_valid:
        return rotated
    if not normal.is_valid and not rotated.is_valid:
        return normal
    if rotated.consumption_m < normal.consumption_m:
        return rotated
    return normal


def calculate_all_widths(
    width: float,
    height: float,
    is_patterned: bool = True,
) -> Dict[int, CalculationResult]:
    return {fw: calculate_consumption(width, height, fw, is_patterned) for fw in FABRIC_WIDTHS}


def best_fabric_width(results: Mapping[int, CalculationResult]) -> Optional[int]:
    best: Optional[int] = None
    best_consumption = math.inf
    for fabric_width in sorted(results):
        result = results[fabric_width]
        if not result.is_valid:
            continue
        if result.consumption_m < best_consumption:
            best = fabric_width
            best_consumption = result.consumption_m
    return best


@dataclass
class AuditCase:
    cushion_width: float
    cushion_height: float
    fabric_width: float
    expected_plates: int
    expected_cushions: float
    expected_consumption_m: float
    result: CalculationResult
    passed: bool


@dataclass
class AuditResult:
    cases: List[AuditCase] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return bool(self.cases) and all(case.passed for case in self.cases)

    def summary(self) -> str:
        failed = [case for case in self.cases if not case.passed]
        if not failed:
            return f"{len(self.cases)} reference cases passed"
        parts = [
            (
                f"{case.cushion_width:g}x{case.cushion_height:g}@{case.fabric_width:g}: "
                f"plates={case.result.plates_per_row} (expected {case.expected_plates}), "
                f"cushions={case.result.cushions_per_strip:g} (expected {case.expected_cushions:g}), "
                f"consumption_m={case.result.consumption_m:.6f} (expected {case.expected_consumption_m})"
            )
            for case in failed
        ]
        return "; ".join(parts)


def run_formula_audit() -> AuditResult:
    """Evaluate the reference cases with the default (patterned) policy."""
    audit = AuditResult()
    for width, height, fabric_width, plates, cushions, consumption_m in AUDIT_REFERENCE_CASES:
        result = calculate_consumption(width, height, fabric_width)
        passed = (
            result.plates_per_row == plates
            and result.cushions_per_strip == cushions
            and abs(result.consumption_m - consumption_m) < AUDIT_TOLERANCE_M
        )
        audit.cases.append(
            AuditCase(
                cushion_width=width,
                cushion_height=height,
                fabric_width=fabric_width,
                expected_plates=plates,
                expected_cushions=cushions,
                expected_consumption_m=consumption_m,
                result=result,
                passed=passed,
            )
        )
    return audit


def enforce_formula_audit() -> AuditResult:
    audit = run_formula_audit()
    if not audit.passed:
        raise FormulaAuditError(f"Consumption formulas failed the reference audit: {audit.summary()}")
    return audit


__all__ = [
    "FABRIC_WIDTHS",
    "PLATE_MARGIN_CM",
    "FormulaAuditError",
    "AuditCase",
    "AuditResult",
    "calculate_metrics",
    "calculate_consumption",
    "calculate_all_widths",
    "best_fabric_width",
    "run_formula_audit",
    "enforce_formula_audit",
]
