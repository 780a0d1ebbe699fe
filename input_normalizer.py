"""
Input Normalizer - OGTT-DM Risk Stratifier

Turns the flat set of raw form values (text or numbers) into the typed
PatientProfile / OgttSeries records used by every downstream step.

NORMALIZATION RULES:
- Numeric fields parse to a finite float and are clamped into their range
- Unparseable, non-finite or empty values become None ("not yet entered")
- Boolean history flags default to False when not entered
- Sex / ethnicity parse case-insensitively, unknown values map to UNKNOWN

Absence is the only error channel: nothing in here raises on bad input.
"""

from typing import Dict, Any, Optional, Mapping, Tuple
from dataclasses import dataclass, field
from enum import Enum
import math
import logging

logger = logging.getLogger(__name__)


# ==================== DATA MODELS ====================

class Sex(Enum):
    FEMALE = "female"
    MALE = "male"
    UNKNOWN = "unknown"


class Ethnicity(Enum):
    AFRICAN_AMERICAN = "African American"
    HISPANIC_LATINO = "Hispanic/Latino"
    NATIVE_AMERICAN = "Native American"
    ASIAN_AMERICAN = "Asian American"
    WHITE = "White"
    OTHER = "Other"
    UNKNOWN = "unknown"


HIGH_RISK_ETHNICITIES = frozenset({
    Ethnicity.AFRICAN_AMERICAN,
    Ethnicity.HISPANIC_LATINO,
    Ethnicity.NATIVE_AMERICAN,
    Ethnicity.ASIAN_AMERICAN,
})

TIMEPOINTS: Tuple[int, ...] = (0, 30, 60, 90, 120)


@dataclass(frozen=True)
class PatientProfile:
    """Normalized demographics, anthropometrics, labs and history flags"""
    age: Optional[float] = None
    sex: Sex = Sex.UNKNOWN
    ethnicity: Ethnicity = Ethnicity.UNKNOWN

    weight_kg: Optional[float] = None
    height_cm: Optional[float] = None
    waist_cm: Optional[float] = None

    systolic_bp: Optional[float] = None
    diastolic_bp: Optional[float] = None
    on_bp_treatment: bool = False

    triglycerides: Optional[float] = None  # mg/dL
    hdl: Optional[float] = None            # mg/dL
    hba1c: Optional[float] = None          # %

    history_gdm: bool = False
    history_pancreatitis: bool = False
    has_masld: bool = False
    has_pcos: bool = False
    family_history_t2d: bool = False


@dataclass(frozen=True)
class OgttSeries:
    """Glucose (mg/dL) and insulin (mU/L) keyed by timepoint in minutes"""
    glucose: Mapping[int, Optional[float]] = field(default_factory=dict)
    insulin: Mapping[int, Optional[float]] = field(default_factory=dict)

    def g(self, minute: int) -> Optional[float]:
        return self.glucose.get(minute)

    def i(self, minute: int) -> Optional[float]:
        return self.insulin.get(minute)


@dataclass(frozen=True)
class StratifierInputs:
    profile: PatientProfile
    ogtt: OgttSeries


# ==================== CLAMP RANGES ====================

class InputRanges:
    """
    Closed clamp ranges per field. Light clamping only, to absorb obvious
    typos; this is not a clinical plausibility check.
    """

    PROFILE = {
        "age": (10, 100),
        "weight_kg": (20, 300),
        "height_cm": (100, 230),
        "waist_cm": (40, 200),
        "systolic_bp": (60, 260),
        "diastolic_bp": (30, 160),
        "triglycerides": (20, 2000),
        "hdl": (5, 200),
        "hba1c": (3.5, 15),
    }

    GLUCOSE = {t: (40, 600) for t in TIMEPOINTS}

    INSULIN = {
        0: (0, 1000),
        30: (0, 2000),
        60: (0, 3000),
        90: (0, 3000),
        120: (0, 3000),
    }

    FLAGS = (
        "on_bp_treatment",
        "history_gdm",
        "history_pancreatitis",
        "has_masld",
        "has_pcos",
        "family_history_t2d",
    )


# ==================== SCALAR PARSERS ====================

_TRUE_STRINGS = ("true", "yes", "y", "1")
_FALSE_STRINGS = ("false", "no", "n", "0", "")


def clamp_num(value: Any, min_value: float, max_value: float) -> Optional[float]:
    """
    Parse a raw scalar and clamp it into [min_value, max_value].

    Returns None when the value is missing, empty, boolean, unparseable
    or non-finite.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None

    try:
        n = float(value)
    except (ValueError, TypeError, OverflowError):
        return None

    if not math.isfinite(n):
        return None

    return min(max_value, max(min_value, n))


def parse_bool(value: Any) -> bool:
    """History/treatment flags: only an explicit yes sets the flag."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        low = value.strip().lower()
        if low in _TRUE_STRINGS:
            return True
        if low not in _FALSE_STRINGS:
            logger.debug(f"Unrecognized flag value {value!r} treated as False")
    return False


def parse_sex(value: Any) -> Sex:
    if isinstance(value, Sex):
        return value
    low = str(value or "").strip().lower()
    if low in ("female", "f"):
        return Sex.FEMALE
    if low in ("male", "m"):
        return Sex.MALE
    return Sex.UNKNOWN


def parse_ethnicity(value: Any) -> Ethnicity:
    if isinstance(value, Ethnicity):
        return value
    low = str(value or "").strip().lower()
    for eth in Ethnicity:
        if eth.value.lower() == low:
            return eth
    return Ethnicity.UNKNOWN


# ==================== NORMALIZATION ====================

def _known_fields():
    keys = set(InputRanges.PROFILE) | set(InputRanges.FLAGS) | {"sex", "ethnicity"}
    keys |= {f"glucose_{t}" for t in TIMEPOINTS}
    keys |= {f"insulin_{t}" for t in TIMEPOINTS}
    return keys


KNOWN_FIELDS = frozenset(_known_fields())


def normalize_inputs(raw: Mapping[str, Any]) -> StratifierInputs:
    """
    Normalize a flat mapping of raw form values.

    Each field is handled on its own; an absent or rejected field never
    blocks normalization of the others.
    """
    raw = raw or {}

    unknown = [k for k in raw if k not in KNOWN_FIELDS]
    if unknown:
        logger.debug(f"Ignoring unknown input fields: {sorted(unknown)}")

    numeric: Dict[str, Optional[float]] = {}
    for name, (lo, hi) in InputRanges.PROFILE.items():
        numeric[name] = clamp_num(raw.get(name), lo, hi)
        if numeric[name] is None and raw.get(name) not in (None, ""):
            logger.debug(f"Rejected {name}={raw.get(name)!r} (not numeric)")

    flags = {name: parse_bool(raw.get(name)) for name in InputRanges.FLAGS}

    profile = PatientProfile(
        sex=parse_sex(raw.get("sex")),
        ethnicity=parse_ethnicity(raw.get("ethnicity")),
        **numeric,
        **flags,
    )

    glucose = {
        t: clamp_num(raw.get(f"glucose_{t}"), *InputRanges.GLUCOSE[t])
        for t in TIMEPOINTS
    }
    insulin = {
        t: clamp_num(raw.get(f"insulin_{t}"), *InputRanges.INSULIN[t])
        for t in TIMEPOINTS
    }

    return StratifierInputs(profile=profile, ogtt=OgttSeries(glucose=glucose, insulin=insulin))


def calculate_bmi(weight_kg: Optional[float], height_cm: Optional[float]) -> Optional[float]:
    """BMI in kg/m² from normalized weight and height; None if either is absent."""
    if weight_kg is None or height_cm is None:
        return None
    m = height_cm / 100
    if not m:
        return None
    return weight_kg / (m * m)
