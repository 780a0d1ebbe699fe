"""
Clinical Index Calculator - OGTT-DM Risk Stratifier

Insulin sensitivity / secretion indices from OGTT glucose and insulin.

FORMULAS (glucose mg/dL, insulin mU/L):
- HOMA-IR          = (G0 × I0) / 405
- Matsuda index    = 10000 / sqrt((G0 × I0) × (mean G × mean I))
- IGI              = (I30 − I0) / (G30 − G0)
- Stumvoll 1st     = 1283 + 1.829×I30 − 138.7×G30 + 3.772×I0   (pmol/L, mmol/L)
- Stumvoll 2nd     = 287 + 0.4164×I30 − 26.07×G30 + 0.9226×I0  (pmol/L, mmol/L)
- Disposition idx  = Matsuda × IGI
- HOMA-β           = (I0 × 360) / (G0 − 63)
- PG AUC weighted  = (G0 + 2×G30 + 3×G60 + 2×G120) / 4

Stumvoll conversion: insulin_pmol = insulin_mU_L × 6; glucose_mmol = glucose_mg_dL / 18.
PG AUC deliberately ignores the 90-minute sample.

Every index is None when a required value is missing or a denominator is
exactly zero. No NaN or infinity is ever returned.
"""

from typing import Dict, Any, List, Optional, Iterable
from dataclasses import dataclass, asdict
import math
import logging

from input_normalizer import OgttSeries, TIMEPOINTS

logger = logging.getLogger(__name__)


# ==================== THRESHOLDS ====================

class IndexThresholds:
    MATSUDA_IR = 4.3            # insulin resistant below
    IGI_LOW = 0.82              # low early insulin response at or below
    STUMVOLL_FIRST_LOW = 1007   # low 1st-phase secretion at or below (pmol/L)

    HOMA_IR_CUTOFF_MASLD = 2.0
    HOMA_IR_CUTOFF_HIGH_BMI = 3.6
    HOMA_IR_CUTOFF_DEFAULT = 4.65
    HOMA_IR_BMI_SPLIT = 27.5

    INSULIN_PMOL_PER_MU = 6
    GLUCOSE_MG_PER_MMOL = 18


@dataclass(frozen=True)
class DerivedIndices:
    """Snapshot of all computed indices; None means not computable"""
    mean_glucose: Optional[float]
    mean_insulin: Optional[float]
    homa_ir: Optional[float]
    homa_ir_cutoff: float
    matsuda: Optional[float]
    igi: Optional[float]
    stumvoll_first_phase: Optional[float]
    stumvoll_second_phase: Optional[float]
    disposition_index: Optional[float]
    homa_beta: Optional[float]
    pg_auc: Optional[float]

    def to_dict(self) -> Dict[str, Optional[float]]:
        return asdict(self)


# ==================== HELPERS ====================

def mean(values: Iterable[Optional[float]]) -> Optional[float]:
    """Arithmetic mean of the finite values present; None if there are none."""
    present = [v for v in values if v is not None and math.isfinite(v)]
    if not present:
        return None
    return sum(present) / len(present)


def safe_div(a: Optional[float], b: Optional[float]) -> Optional[float]:
    if a is None or b is None:
        return None
    if not math.isfinite(a) or not math.isfinite(b) or b == 0:
        return None
    return a / b


def _finite(value: Optional[float]) -> Optional[float]:
    if value is None or not math.isfinite(value):
        return None
    return value


def homa_ir_cutoff(bmi: Optional[float], has_masld: bool) -> float:
    """BMI/MASLD dependent HOMA-IR cutoff, used for display only."""
    if has_masld:
        return IndexThresholds.HOMA_IR_CUTOFF_MASLD
    if bmi is not None and bmi > IndexThresholds.HOMA_IR_BMI_SPLIT:
        return IndexThresholds.HOMA_IR_CUTOFF_HIGH_BMI
    return IndexThresholds.HOMA_IR_CUTOFF_DEFAULT


# ==================== INDEX CALCULATOR ====================

class IndexCalculator:
    """
    Computes the clinical indices from a normalized OGTT series.

    Each formula is a static method taking plain optionals so it can be
    exercised on its own; calculate() wires them together.
    """

    @staticmethod
    def homa_ir(g0: Optional[float], i0: Optional[float]) -> Optional[float]:
        if g0 is None or i0 is None:
            return None
        return safe_div(g0 * i0, 405)

    @staticmethod
    def matsuda(
        g0: Optional[float],
        i0: Optional[float],
        g_mean: Optional[float],
        i_mean: Optional[float],
    ) -> Optional[float]:
        if g0 is None or i0 is None or g_mean is None or i_mean is None:
            return None
        product = (g0 * i0) * (g_mean * i_mean)
        # negative product would be NaN under a square root
        if not math.isfinite(product) or product < 0:
            return None
        denom = math.sqrt(product)
        if not math.isfinite(denom) or denom == 0:
            return None
        return 10000 / denom

    @staticmethod
    def igi(
        g0: Optional[float],
        g30: Optional[float],
        i0: Optional[float],
        i30: Optional[float],
    ) -> Optional[float]:
        if i30 is None or i0 is None or g30 is None or g0 is None:
            return None
        return safe_div(i30 - i0, g30 - g0)

    @staticmethod
    def to_pmol(insulin: Optional[float]) -> Optional[float]:
        return None if insulin is None else insulin * IndexThresholds.INSULIN_PMOL_PER_MU

    @staticmethod
    def to_mmol(glucose: Optional[float]) -> Optional[float]:
        return None if glucose is None else glucose / IndexThresholds.GLUCOSE_MG_PER_MMOL

    @staticmethod
    def stumvoll_first_phase(
        i0: Optional[float], i30: Optional[float], g30: Optional[float]
    ) -> Optional[float]:
        i0_pmol = IndexCalculator.to_pmol(i0)
        i30_pmol = IndexCalculator.to_pmol(i30)
        g30_mmol = IndexCalculator.to_mmol(g30)
        if i30_pmol is None or g30_mmol is None or i0_pmol is None:
            return None
        return _finite(1283 + 1.829 * i30_pmol - 138.7 * g30_mmol + 3.772 * i0_pmol)

    @staticmethod
    def stumvoll_second_phase(
        i0: Optional[float], i30: Optional[float], g30: Optional[float]
    ) -> Optional[float]:
        i0_pmol = IndexCalculator.to_pmol(i0)
        i30_pmol = IndexCalculator.to_pmol(i30)
        g30_mmol = IndexCalculator.to_mmol(g30)
        if i30_pmol is None or g30_mmol is None or i0_pmol is None:
            return None
        return _finite(287 + 0.4164 * i30_pmol - 26.07 * g30_mmol + 0.9226 * i0_pmol)

    @staticmethod
    def disposition_index(matsuda: Optional[float], igi: Optional[float]) -> Optional[float]:
        if matsuda is None or igi is None:
            return None
        return _finite(matsuda * igi)

    @staticmethod
    def homa_beta(g0: Optional[float], i0: Optional[float]) -> Optional[float]:
        if i0 is None or g0 is None:
            return None
        return safe_div(i0 * 360, g0 - 63)

    @staticmethod
    def pg_auc(
        g0: Optional[float],
        g30: Optional[float],
        g60: Optional[float],
        g120: Optional[float],
    ) -> Optional[float]:
        # 90-minute value is not part of the weighted formula
        if g0 is None or g30 is None or g60 is None or g120 is None:
            return None
        return (g0 + 2 * g30 + 3 * g60 + 2 * g120) / 4

    @staticmethod
    def calculate(ogtt: OgttSeries, bmi: Optional[float], has_masld: bool) -> DerivedIndices:
        g0, g30, g60, g120 = ogtt.g(0), ogtt.g(30), ogtt.g(60), ogtt.g(120)
        i0, i30 = ogtt.i(0), ogtt.i(30)

        g_mean = mean(ogtt.g(t) for t in TIMEPOINTS)
        i_mean = mean(ogtt.i(t) for t in TIMEPOINTS)

        matsuda = IndexCalculator.matsuda(g0, i0, g_mean, i_mean)
        igi = IndexCalculator.igi(g0, g30, i0, i30)

        indices = DerivedIndices(
            mean_glucose=g_mean,
            mean_insulin=i_mean,
            homa_ir=IndexCalculator.homa_ir(g0, i0),
            homa_ir_cutoff=homa_ir_cutoff(bmi, has_masld),
            matsuda=matsuda,
            igi=igi,
            stumvoll_first_phase=IndexCalculator.stumvoll_first_phase(i0, i30, g30),
            stumvoll_second_phase=IndexCalculator.stumvoll_second_phase(i0, i30, g30),
            disposition_index=IndexCalculator.disposition_index(matsuda, igi),
            homa_beta=IndexCalculator.homa_beta(g0, i0),
            pg_auc=IndexCalculator.pg_auc(g0, g30, g60, g120),
        )

        missing = [k for k, v in indices.to_dict().items() if v is None]
        if missing:
            logger.debug(f"Indices not computable: {missing}")

        return indices


# ==================== DISPLAY INTERPRETATION ====================

def interpret_indices(indices: DerivedIndices) -> Dict[str, Any]:
    """
    Display classification of the headline indices.

    None for an index that could not be computed. These labels never feed
    back into the stratification steps.
    """
    t = IndexThresholds
    result: Dict[str, Any] = {
        "matsuda_insulin_resistant": None,
        "homa_ir_insulin_resistant": None,
        "igi_low": None,
        "stumvoll_first_phase_low": None,
        "homa_ir_cutoff": indices.homa_ir_cutoff,
    }

    if indices.matsuda is not None:
        result["matsuda_insulin_resistant"] = indices.matsuda < t.MATSUDA_IR
    if indices.homa_ir is not None:
        result["homa_ir_insulin_resistant"] = indices.homa_ir > indices.homa_ir_cutoff
    if indices.igi is not None:
        result["igi_low"] = indices.igi <= t.IGI_LOW
    if indices.stumvoll_first_phase is not None:
        result["stumvoll_first_phase_low"] = indices.stumvoll_first_phase <= t.STUMVOLL_FIRST_LOW

    return result


def describe_thresholds() -> List[Dict[str, str]]:
    """Human-readable threshold table for the criteria endpoint."""
    return [
        {"index": "Matsuda index", "threshold": "IR if <4.3"},
        {"index": "HOMA-IR", "threshold": "IR if > cutoff (2.0 with MASLD, 3.6 if BMI >27.5, else 4.65)"},
        {"index": "IGI", "threshold": "Low if ≤0.82"},
        {"index": "Stumvoll 1st-phase", "threshold": "Low if ≤1007 pmol/L"},
        {"index": "PG AUC (weighted)", "threshold": "(G0 + 2×G30 + 3×G60 + 2×G120) / 4, 90-min excluded"},
    ]
