"""
OGTT-DM Stepwise Risk Stratification Engine

Deterministic clinical decision support for OGTT-based type 2 diabetes
risk stratification:

STEP 1: OGTT indication (ADA 2025 screening triggers)
STEP 2: Metabolic syndrome (ATP III, 5 criteria, present if ≥3)
STEP 3: High-risk prognostic markers (IFG / IGT / 1-hour PG / MetS /
        HbA1c / IGI / Stumvoll), with exact risk where the rule gives one
STEP 4: Age-based eligibility and 5–10% weight-loss target

Every step is a pure function of the normalized inputs. Missing inputs
never raise: a classification whose inputs are absent defaults to the
negative state, an index whose inputs are absent is None.
"""

from typing import Dict, Any, List, Optional, Callable, Mapping, Tuple
from dataclasses import dataclass, field
from enum import Enum
import logging

from input_normalizer import (
    Sex,
    Ethnicity,
    HIGH_RISK_ETHNICITIES,
    PatientProfile,
    StratifierInputs,
    normalize_inputs,
    calculate_bmi,
)
from clinical_indices import (
    DerivedIndices,
    IndexCalculator,
    IndexThresholds,
    interpret_indices,
    describe_thresholds,
)

logger = logging.getLogger(__name__)


# ==================== DATA MODELS ====================

class Severity(Enum):
    DANGER = "danger"
    WARN = "warn"


class EligibilityDecision(Enum):
    """Step 4 outcome categories"""
    NOT_HIGH_RISK = "not_high_risk"
    INSUFFICIENT_DATA = "insufficient_data"
    NOT_CANDIDATE = "not_candidate"
    CONDITIONAL = "conditional"
    ELIGIBLE_AFTER_WEIGHT_LOSS = "eligible_after_weight_loss"


@dataclass(frozen=True)
class OGTTIndicationResult:
    indicated: bool
    reasons: Tuple[str, ...]
    bmi_threshold: float
    risk_factors_met: Tuple[str, ...]


@dataclass(frozen=True)
class MetSCriterion:
    name: str
    met: bool
    detail: str


@dataclass(frozen=True)
class MetabolicSyndromeResult:
    present: bool
    met_count: int
    criteria: Tuple[MetSCriterion, ...]


@dataclass(frozen=True)
class RiskFlag:
    label: str
    severity: Severity
    exact_risk: Optional[str] = None

    @property
    def rendered_label(self) -> str:
        """Label with the bracketed exact risk, the key used for baseline diffs"""
        if self.exact_risk:
            return f"{self.label} [{self.exact_risk}]"
        return self.label


@dataclass(frozen=True)
class RiskMarkers:
    """Derived booleans feeding the Step 3 rule table"""
    ifg: bool
    igt: bool
    one_hour_high: bool
    a1c_high: bool
    igi_low: bool
    first_phase_low: bool
    mets: bool


@dataclass(frozen=True)
class RiskStratificationResult:
    markers: RiskMarkers
    flags: Tuple[RiskFlag, ...]
    high_risk: bool
    exact_risk: Optional[str]

    @property
    def rendered_flags(self) -> Tuple[str, ...]:
        return tuple(f.rendered_label for f in self.flags)


@dataclass(frozen=True)
class WeightLossTarget:
    low_kg: float
    high_kg: float


@dataclass(frozen=True)
class EligibilityResult:
    applies: bool
    decision: EligibilityDecision
    message: str
    weight_loss_target: Optional[WeightLossTarget] = None


@dataclass(frozen=True)
class StratificationResult:
    """Everything derived from one set of normalized inputs"""
    inputs: StratifierInputs
    bmi: Optional[float]
    indices: DerivedIndices
    ogtt_indication: OGTTIndicationResult
    metabolic_syndrome: MetabolicSyndromeResult
    risk: RiskStratificationResult
    eligibility: EligibilityResult

    @property
    def profile(self) -> PatientProfile:
        return self.inputs.profile


# ==================== GLYCEMIC CATEGORIES ====================

def is_ifg(g0: Optional[float]) -> bool:
    """Impaired fasting glucose: FPG 100–125 mg/dL"""
    return g0 is not None and 100 <= g0 < 126


def is_igt(g120: Optional[float]) -> bool:
    """Impaired glucose tolerance: 2-hour PG 140–199 mg/dL"""
    return g120 is not None and 140 <= g120 < 200


def is_one_hour_high(g60: Optional[float]) -> bool:
    return g60 is not None and g60 > 155


def is_a1c_high(hba1c: Optional[float]) -> bool:
    return hba1c is not None and 6.0 <= hba1c <= 6.4


# ==================== STEP 1: OGTT INDICATION ====================

class OGTTIndicationEngine:
    """
    Decides whether an OGTT is indicated.

    Direct triggers: FPG 100–125, HbA1c 5.7–6.4, history of GDM or
    pancreatitis. Otherwise BMI ≥ threshold (23 for Asian American, else 25)
    plus at least one risk factor.
    """

    BMI_THRESHOLD_ASIAN = 23
    BMI_THRESHOLD_DEFAULT = 25

    @staticmethod
    def bmi_threshold(ethnicity: Ethnicity) -> float:
        if ethnicity == Ethnicity.ASIAN_AMERICAN:
            return OGTTIndicationEngine.BMI_THRESHOLD_ASIAN
        return OGTTIndicationEngine.BMI_THRESHOLD_DEFAULT

    @staticmethod
    def risk_factors(profile: PatientProfile) -> List[str]:
        """Labels of the risk factors present, in fixed order."""
        sbp, dbp = profile.systolic_bp, profile.diastolic_bp
        hypertension = (
            (sbp is not None and dbp is not None and (sbp >= 130 or dbp >= 80))
            or profile.on_bp_treatment
        )
        dyslipidemia = (
            (profile.hdl is not None and profile.hdl < 35)
            or (profile.triglycerides is not None and profile.triglycerides > 250)
        )

        checks = [
            (profile.has_masld, "MASLD"),
            (hypertension, "Hypertension (≥130/80 or on treatment)"),
            (dyslipidemia, "Dyslipidemia (HDL <35 or TG >250)"),
            (profile.has_pcos, "PCOS"),
            (profile.family_history_t2d, "First-degree relative with T2D"),
            (profile.ethnicity in HIGH_RISK_ETHNICITIES, "High-risk ethnicity"),
        ]
        return [label for ok, label in checks if ok]

    @staticmethod
    def evaluate(profile: PatientProfile, g0: Optional[float], bmi: Optional[float]) -> OGTTIndicationResult:
        reasons = []

        if g0 is not None and 100 <= g0 < 126:
            reasons.append("FPG 100–125 mg/dL")
        if profile.hba1c is not None and 5.7 <= profile.hba1c <= 6.4:
            reasons.append("HbA1c 5.7–6.4%")
        if profile.history_gdm:
            reasons.append("History of gestational diabetes")
        if profile.history_pancreatitis:
            reasons.append("History of pancreatitis")

        threshold = OGTTIndicationEngine.bmi_threshold(profile.ethnicity)
        meets_bmi = bmi is not None and bmi >= threshold
        rf_met = OGTTIndicationEngine.risk_factors(profile)

        if meets_bmi and rf_met:
            reasons.append(f"BMI ≥{threshold} kg/m² plus risk factor(s): {', '.join(rf_met)}")

        indicated = len(reasons) > 0
        logger.info(f"🩸 Step 1 OGTT indicated: {indicated} ({len(reasons)} reason(s))")

        return OGTTIndicationResult(
            indicated=indicated,
            reasons=tuple(reasons),
            bmi_threshold=threshold,
            risk_factors_met=tuple(rf_met),
        )


# ==================== STEP 2: METABOLIC SYNDROME ====================

class MetabolicSyndromeClassifier:
    """
    ATP III metabolic syndrome, present when ≥3 of 5 criteria are met.

    A criterion whose inputs are missing is reported as NOT met, so the
    syndrome is under-called rather than over-called on incomplete data.
    """

    PRESENCE_THRESHOLD = 3

    @staticmethod
    def evaluate(profile: PatientProfile, g0: Optional[float]) -> MetabolicSyndromeResult:
        criteria = []
        sex_known = profile.sex != Sex.UNKNOWN
        male = profile.sex == Sex.MALE

        # Waist
        if sex_known and profile.waist_cm is not None:
            met = profile.waist_cm > 102 if male else profile.waist_cm > 88
            criteria.append(MetSCriterion("Waist circumference", met, ">102 cm" if male else ">88 cm"))
        else:
            criteria.append(MetSCriterion("Waist circumference", False, "Enter sex + waist"))

        # Triglycerides
        if profile.triglycerides is not None:
            criteria.append(MetSCriterion("Triglycerides", profile.triglycerides >= 150, "≥150 mg/dL"))
        else:
            criteria.append(MetSCriterion("Triglycerides", False, "Enter TG"))

        # HDL
        if sex_known and profile.hdl is not None:
            met = profile.hdl < 40 if male else profile.hdl < 50
            criteria.append(MetSCriterion("HDL", met, "<40 mg/dL" if male else "<50 mg/dL"))
        else:
            criteria.append(MetSCriterion("HDL", False, "Enter sex + HDL"))

        # Blood pressure: treatment alone satisfies the criterion
        sbp, dbp = profile.systolic_bp, profile.diastolic_bp
        if profile.on_bp_treatment:
            criteria.append(MetSCriterion("Blood pressure", True, "On treatment"))
        elif sbp is not None and dbp is not None:
            criteria.append(MetSCriterion("Blood pressure", sbp >= 130 or dbp >= 85, "≥130/85"))
        else:
            criteria.append(MetSCriterion("Blood pressure", False, "Enter BP or treatment"))

        # Fasting glucose
        if g0 is not None:
            criteria.append(MetSCriterion("Fasting glucose", g0 >= 100, "≥100 mg/dL"))
        else:
            criteria.append(MetSCriterion("Fasting glucose", False, "Enter fasting glucose"))

        met_count = sum(1 for c in criteria if c.met)
        present = met_count >= MetabolicSyndromeClassifier.PRESENCE_THRESHOLD

        logger.info(f"🧪 Step 2 metabolic syndrome: {'PRESENT' if present else 'absent'} ({met_count}/5)")

        return MetabolicSyndromeResult(present=present, met_count=met_count, criteria=tuple(criteria))


# ==================== STEP 3: HIGH-RISK MARKERS ====================

@dataclass(frozen=True)
class RiskRule:
    label: str
    severity: Severity
    predicate: Callable[[RiskMarkers], bool] = field(repr=False)
    exact_risk: Optional[str] = None


# Order is clinically significant: exact risk comes from the first match.
RISK_RULES: List[RiskRule] = [
    RiskRule(
        "IGT + 1-hour PG >155 mg/dL + metabolic syndrome",
        Severity.DANGER,
        lambda m: m.igt and m.one_hour_high and m.mets,
        "52.8%",
    ),
    RiskRule(
        "Combined IFG and IGT",
        Severity.DANGER,
        lambda m: m.ifg and m.igt,
        ">50%",
    ),
    RiskRule(
        "IFG + 1-hour PG >155 mg/dL + metabolic syndrome",
        Severity.DANGER,
        lambda m: m.ifg and m.one_hour_high and m.mets,
        "37.8%",
    ),
    RiskRule(
        "IGT or IFG + 1-hour PG >155 mg/dL + HbA1c 6.0–6.4%",
        Severity.DANGER,
        lambda m: (m.igt or m.ifg) and m.one_hour_high and m.a1c_high,
    ),
    RiskRule(
        "IGT or IFG + 1-hour PG >155 mg/dL + IGI ≤0.82 and/or "
        "1st-phase insulin secretion ≤1007 pmol/L",
        Severity.DANGER,
        lambda m: (m.igt or m.ifg) and m.one_hour_high and (m.igi_low or m.first_phase_low),
    ),
    # Descriptive markers, no exact risk attached
    RiskRule("IFG present (FPG 100–125 mg/dL)", Severity.WARN, lambda m: m.ifg),
    RiskRule("IGT present (2-hour PG 140–199 mg/dL)", Severity.WARN, lambda m: m.igt),
    RiskRule("1-hour PG >155 mg/dL", Severity.WARN, lambda m: m.one_hour_high),
    RiskRule("Metabolic syndrome present (ATP III)", Severity.WARN, lambda m: m.mets),
]


class RiskStratificationEngine:
    """
    Evaluates every rule in RISK_RULES independently; all matches are
    reported. High risk iff any danger rule matched.
    """

    @staticmethod
    def markers(
        inputs: StratifierInputs,
        indices: DerivedIndices,
        metabolic_syndrome: MetabolicSyndromeResult,
    ) -> RiskMarkers:
        ogtt = inputs.ogtt
        return RiskMarkers(
            ifg=is_ifg(ogtt.g(0)),
            igt=is_igt(ogtt.g(120)),
            one_hour_high=is_one_hour_high(ogtt.g(60)),
            a1c_high=is_a1c_high(inputs.profile.hba1c),
            igi_low=indices.igi is not None and indices.igi <= IndexThresholds.IGI_LOW,
            first_phase_low=(
                indices.stumvoll_first_phase is not None
                and indices.stumvoll_first_phase <= IndexThresholds.STUMVOLL_FIRST_LOW
            ),
            mets=metabolic_syndrome.present,
        )

    @staticmethod
    def evaluate_markers(markers: RiskMarkers, rules: Optional[List[RiskRule]] = None) -> RiskStratificationResult:
        rules = RISK_RULES if rules is None else rules

        flags = [
            RiskFlag(label=rule.label, severity=rule.severity, exact_risk=rule.exact_risk)
            for rule in rules
            if rule.predicate(markers)
        ]

        high_risk = any(f.severity == Severity.DANGER for f in flags)
        exact_risk = next((f.exact_risk for f in flags if f.exact_risk), None)

        if high_risk:
            logger.warning(f"⚠️  Step 3 HIGH RISK (exact risk: {exact_risk or 'n/a'})")
        else:
            logger.info("✅ Step 3 not high-risk")
        for f in flags:
            logger.debug(f"  • [{f.severity.value}] {f.rendered_label}")

        return RiskStratificationResult(
            markers=markers,
            flags=tuple(flags),
            high_risk=high_risk,
            exact_risk=exact_risk,
        )

    @staticmethod
    def evaluate(
        inputs: StratifierInputs,
        indices: DerivedIndices,
        metabolic_syndrome: MetabolicSyndromeResult,
    ) -> RiskStratificationResult:
        markers = RiskStratificationEngine.markers(inputs, indices, metabolic_syndrome)
        return RiskStratificationEngine.evaluate_markers(markers)


# ==================== STEP 4: AGE-BASED ELIGIBILITY ====================

class AgeEligibilityEngine:
    """
    Age-banded recommendation for high-risk patients.

    The weight-loss target is reported for every age band once weight is
    known, the <40 band included.
    """

    MESSAGES = {
        EligibilityDecision.NOT_HIGH_RISK: "Not in high-risk group based on Step 3 criteria.",
        EligibilityDecision.INSUFFICIENT_DATA: "High-risk group: enter age to determine eligibility recommendation.",
        EligibilityDecision.NOT_CANDIDATE: "Age <40 years: Not a candidate (high risk).",
        EligibilityDecision.CONDITIONAL: (
            "Age 40–49 years: Consider only if able to reverse high-risk prognostic "
            "markers with weight loss on repeat OGTT."
        ),
        EligibilityDecision.ELIGIBLE_AFTER_WEIGHT_LOSS: (
            "Age ≥50 years: Can be accepted after risk mitigation with 5–10% weight loss."
        ),
    }

    WEIGHT_LOSS_LOW = 0.05
    WEIGHT_LOSS_HIGH = 0.10

    @staticmethod
    def weight_loss_target(weight_kg: Optional[float]) -> Optional[WeightLossTarget]:
        if weight_kg is None:
            return None
        return WeightLossTarget(
            low_kg=weight_kg * AgeEligibilityEngine.WEIGHT_LOSS_LOW,
            high_kg=weight_kg * AgeEligibilityEngine.WEIGHT_LOSS_HIGH,
        )

    @staticmethod
    def age_band(age: float) -> EligibilityDecision:
        if age < 40:
            return EligibilityDecision.NOT_CANDIDATE
        elif 40 <= age <= 49:
            return EligibilityDecision.CONDITIONAL
        else:
            return EligibilityDecision.ELIGIBLE_AFTER_WEIGHT_LOSS

    @staticmethod
    def evaluate(high_risk: bool, age: Optional[float], weight_kg: Optional[float]) -> EligibilityResult:
        messages = AgeEligibilityEngine.MESSAGES

        if not high_risk:
            decision = EligibilityDecision.NOT_HIGH_RISK
            return EligibilityResult(applies=False, decision=decision, message=messages[decision])

        if age is None:
            decision = EligibilityDecision.INSUFFICIENT_DATA
            logger.info("🎂 Step 4: age missing, no decision")
            return EligibilityResult(applies=True, decision=decision, message=messages[decision])

        decision = AgeEligibilityEngine.age_band(age)
        logger.info(f"🎂 Step 4 decision: {decision.value}")

        return EligibilityResult(
            applies=True,
            decision=decision,
            message=messages[decision],
            weight_loss_target=AgeEligibilityEngine.weight_loss_target(weight_kg),
        )


# ==================== MAIN PIPELINE ====================

class OGTTRiskStratifier:
    """
    Runs all four steps over one set of normalized inputs.

    Stateless: the same inputs always give an identical result.
    """

    @staticmethod
    def evaluate(inputs: StratifierInputs) -> StratificationResult:
        logger.info("=" * 60)
        logger.info("🏥 STARTING OGTT-DM RISK STRATIFICATION")
        logger.info("=" * 60)

        profile = inputs.profile
        g0 = inputs.ogtt.g(0)

        bmi = calculate_bmi(profile.weight_kg, profile.height_cm)
        indices = IndexCalculator.calculate(inputs.ogtt, bmi, profile.has_masld)

        # ─── STEP 1 ───
        indication = OGTTIndicationEngine.evaluate(profile, g0, bmi)

        # ─── STEP 2 ───
        mets = MetabolicSyndromeClassifier.evaluate(profile, g0)

        # ─── STEP 3 ───
        risk = RiskStratificationEngine.evaluate(inputs, indices, mets)

        # ─── STEP 4 ───
        eligibility = AgeEligibilityEngine.evaluate(risk.high_risk, profile.age, profile.weight_kg)

        logger.info("=" * 60)
        logger.info(
            f"🎯 OGTT: {'YES' if indication.indicated else 'NO'} | "
            f"MetS: {mets.met_count}/5 | "
            f"High risk: {risk.high_risk} | "
            f"Step 4: {eligibility.decision.value}"
        )
        logger.info("=" * 60)

        return StratificationResult(
            inputs=inputs,
            bmi=bmi,
            indices=indices,
            ogtt_indication=indication,
            metabolic_syndrome=mets,
            risk=risk,
            eligibility=eligibility,
        )


def compute_all(raw_inputs: Mapping[str, Any]) -> StratificationResult:
    """Normalize raw form values and run the whole pipeline."""
    return OGTTRiskStratifier.evaluate(normalize_inputs(raw_inputs))


# ==================== UTILITY FUNCTIONS ====================

def format_stratification_response(result: StratificationResult) -> Dict[str, Any]:
    """
    Convert a StratificationResult to a JSON-serializable dictionary for API response.
    """
    profile = result.profile
    wl = result.eligibility.weight_loss_target

    return {
        "patient": {
            "age": profile.age,
            "sex": profile.sex.value,
            "ethnicity": profile.ethnicity.value,
            "weight_kg": profile.weight_kg,
            "height_cm": profile.height_cm,
            "bmi": result.bmi,
        },

        "step1_ogtt_indication": {
            "indicated": result.ogtt_indication.indicated,
            "reasons": list(result.ogtt_indication.reasons),
            "bmi_threshold": result.ogtt_indication.bmi_threshold,
            "risk_factors_met": list(result.ogtt_indication.risk_factors_met),
        },

        "step2_metabolic_syndrome": {
            "present": result.metabolic_syndrome.present,
            "met_count": result.metabolic_syndrome.met_count,
            "criteria": [
                {"name": c.name, "met": c.met, "detail": c.detail}
                for c in result.metabolic_syndrome.criteria
            ],
        },

        "step3_risk": {
            "high_risk": result.risk.high_risk,
            "exact_risk": result.risk.exact_risk,
            "markers": {
                "ifg": result.risk.markers.ifg,
                "igt": result.risk.markers.igt,
                "one_hour_high": result.risk.markers.one_hour_high,
                "a1c_high": result.risk.markers.a1c_high,
                "igi_low": result.risk.markers.igi_low,
                "first_phase_low": result.risk.markers.first_phase_low,
                "mets": result.risk.markers.mets,
            },
            "flags": [
                {
                    "label": f.label,
                    "severity": f.severity.value,
                    "exact_risk": f.exact_risk,
                    "rendered": f.rendered_label,
                }
                for f in result.risk.flags
            ],
        },

        "step4_eligibility": {
            "applies": result.eligibility.applies,
            "decision": result.eligibility.decision.value,
            "message": result.eligibility.message,
            "weight_loss_target": (
                {"low_kg": wl.low_kg, "high_kg": wl.high_kg} if wl else None
            ),
        },

        "indices": result.indices.to_dict(),
        "index_interpretation": interpret_indices(result.indices),
    }


def describe_criteria() -> Dict[str, Any]:
    """Rule tables and thresholds, for transparency."""
    return {
        "step1_ogtt_indication": {
            "direct_triggers": [
                "FPG 100–125 mg/dL",
                "HbA1c 5.7–6.4%",
                "History of gestational diabetes",
                "History of pancreatitis",
            ],
            "bmi_threshold": {
                "Asian American": OGTTIndicationEngine.BMI_THRESHOLD_ASIAN,
                "default": OGTTIndicationEngine.BMI_THRESHOLD_DEFAULT,
            },
            "risk_factors": [
                "MASLD",
                "Hypertension (≥130/80 or on treatment)",
                "Dyslipidemia (HDL <35 or TG >250)",
                "PCOS",
                "First-degree relative with T2D",
                "High-risk ethnicity",
            ],
            "high_risk_ethnicities": sorted(e.value for e in HIGH_RISK_ETHNICITIES),
        },
        "step2_metabolic_syndrome": {
            "definition": "ATP III, present if ≥3 of 5 criteria",
            "criteria": [
                "Waist >102 cm (male) / >88 cm (female)",
                "Triglycerides ≥150 mg/dL",
                "HDL <40 mg/dL (male) / <50 mg/dL (female)",
                "BP ≥130/85 or on treatment",
                "Fasting glucose ≥100 mg/dL",
            ],
        },
        "step3_rules": [
            {"label": r.label, "severity": r.severity.value, "exact_risk": r.exact_risk}
            for r in RISK_RULES
        ],
        "step4_age_bands": {
            "<40": AgeEligibilityEngine.MESSAGES[EligibilityDecision.NOT_CANDIDATE],
            "40-49": AgeEligibilityEngine.MESSAGES[EligibilityDecision.CONDITIONAL],
            "≥50": AgeEligibilityEngine.MESSAGES[EligibilityDecision.ELIGIBLE_AFTER_WEIGHT_LOSS],
        },
        "indices": describe_thresholds(),
    }
