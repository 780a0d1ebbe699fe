"""
Test Suite for the OGTT-DM Stepwise Risk Stratification Engine

Covers the four steps, the rule-table ordering and the full pipeline on
realistic patient scenarios.

Run: pytest test_stratification_engine.py
"""

import pytest
from typing import Dict, Any, Optional

from input_normalizer import normalize_inputs, PatientProfile, Sex, Ethnicity
from stratification_engine import (
    compute_all,
    OGTTRiskStratifier,
    OGTTIndicationEngine,
    MetabolicSyndromeClassifier,
    RiskStratificationEngine,
    AgeEligibilityEngine,
    EligibilityDecision,
    RiskMarkers,
    Severity,
    RISK_RULES,
    format_stratification_response,
    describe_criteria,
)


# ==================== TEST CASES ====================

class TestCase:
    """Scenario container"""
    __test__ = False

    def __init__(self, name: str, patient_data: Dict[str, Any],
                 expected_high_risk: bool,
                 expected_exact_risk: Optional[str] = None,
                 expected_decision: EligibilityDecision = EligibilityDecision.NOT_HIGH_RISK,
                 description: str = ""):
        self.name = name
        self.patient_data = patient_data
        self.expected_high_risk = expected_high_risk
        self.expected_exact_risk = expected_exact_risk
        self.expected_decision = expected_decision
        self.description = description


# ──────────────────────────────────────────────────────────────
# CATEGORY 1: HIGH RISK WITH EXACT RISK
# ──────────────────────────────────────────────────────────────

TEST_EXACT_RISK = [
    TestCase(
        name="IGT + 1-hour high + MetS, also IFG",
        patient_data={
            "age": 55,
            "weight_kg": 90,
            "triglycerides": 180,
            "on_bp_treatment": True,
            "glucose_0": 110,   # IFG
            "glucose_60": 180,  # 1-hour high
            "glucose_120": 160, # IGT
        },
        expected_high_risk=True,
        expected_exact_risk="52.8%",
        expected_decision=EligibilityDecision.ELIGIBLE_AFTER_WEIGHT_LOSS,
        description="First table row wins over Combined IFG and IGT (>50%)"
    ),

    TestCase(
        name="Combined IFG and IGT",
        patient_data={
            "age": 45,
            "glucose_0": 104,
            "glucose_120": 150,
        },
        expected_high_risk=True,
        expected_exact_risk=">50%",
        expected_decision=EligibilityDecision.CONDITIONAL,
        description="No 1-hour value, so only the IFG ∧ IGT danger rule fires"
    ),

    TestCase(
        name="IFG + 1-hour high + MetS",
        patient_data={
            "age": 38,
            "sex": "female",
            "waist_cm": 95,
            "hdl": 45,
            "glucose_0": 112,
            "glucose_60": 170,
            "glucose_120": 130,
        },
        expected_high_risk=True,
        expected_exact_risk="37.8%",
        expected_decision=EligibilityDecision.NOT_CANDIDATE,
        description="Waist, HDL and FPG make 3/5 MetS criteria"
    ),
]


# ──────────────────────────────────────────────────────────────
# CATEGORY 2: HIGH RISK WITHOUT EXACT RISK
# ──────────────────────────────────────────────────────────────

TEST_HIGH_RISK_NO_PERCENT = [
    TestCase(
        name="IGT + 1-hour high + HbA1c 6.0–6.4",
        patient_data={
            "age": 62,
            "hba1c": 6.2,
            "glucose_0": 90,
            "glucose_60": 170,
            "glucose_120": 150,
        },
        expected_high_risk=True,
        expected_decision=EligibilityDecision.ELIGIBLE_AFTER_WEIGHT_LOSS,
    ),

    TestCase(
        name="IGT + 1-hour high + low IGI",
        patient_data={
            "glucose_0": 95,
            "glucose_30": 175,
            "glucose_60": 200,
            "glucose_120": 150,
            "insulin_0": 10,
            "insulin_30": 40,   # IGI = 30 / 80 = 0.375
        },
        expected_high_risk=True,
        expected_decision=EligibilityDecision.INSUFFICIENT_DATA,
        description="Age not entered: high risk but no Step 4 decision"
    ),
]


# ──────────────────────────────────────────────────────────────
# CATEGORY 3: NOT HIGH RISK
# ──────────────────────────────────────────────────────────────

TEST_NOT_HIGH_RISK = [
    TestCase(
        name="Isolated IFG",
        patient_data={"age": 50, "glucose_0": 105},
        expected_high_risk=False,
    ),

    TestCase(
        name="Normal OGTT",
        patient_data={
            "age": 44,
            "glucose_0": 88, "glucose_30": 130, "glucose_60": 140,
            "glucose_90": 120, "glucose_120": 110,
            "insulin_0": 6, "insulin_30": 50, "insulin_60": 60,
            "insulin_90": 45, "insulin_120": 30,
        },
        expected_high_risk=False,
    ),

    TestCase(
        name="Nothing entered",
        patient_data={},
        expected_high_risk=False,
        description="Every classification defaults to the negative state"
    ),
]


ALL_CASES = TEST_EXACT_RISK + TEST_HIGH_RISK_NO_PERCENT + TEST_NOT_HIGH_RISK


@pytest.mark.parametrize("case", ALL_CASES, ids=[c.name for c in ALL_CASES])
def test_scenarios(case: TestCase):
    result = compute_all(case.patient_data)

    assert result.risk.high_risk == case.expected_high_risk
    assert result.risk.exact_risk == case.expected_exact_risk
    assert result.eligibility.decision == case.expected_decision


# ==================== STEP 1: OGTT INDICATION ====================

def _bmi_24_with_masld(ethnicity: str) -> Dict[str, Any]:
    # 96 kg / (2.00 m)² = 24.0
    return {"weight_kg": 96, "height_cm": 200, "has_masld": True, "ethnicity": ethnicity}


def test_asian_american_bmi_threshold_is_23():
    result = compute_all(_bmi_24_with_masld("Asian American"))

    assert result.bmi == pytest.approx(24.0)
    assert result.ogtt_indication.indicated is True
    assert result.ogtt_indication.bmi_threshold == 23
    assert result.ogtt_indication.reasons == (
        "BMI ≥23 kg/m² plus risk factor(s): MASLD, High-risk ethnicity",
    )


def test_white_bmi_threshold_is_25():
    result = compute_all(_bmi_24_with_masld("White"))

    assert result.ogtt_indication.indicated is False
    assert result.ogtt_indication.reasons == ()
    assert result.ogtt_indication.risk_factors_met == ("MASLD",)


def test_direct_triggers_listed_in_order():
    profile = PatientProfile(hba1c=5.9, history_gdm=True, history_pancreatitis=True)
    result = OGTTIndicationEngine.evaluate(profile, g0=110, bmi=None)

    assert result.reasons == (
        "FPG 100–125 mg/dL",
        "HbA1c 5.7–6.4%",
        "History of gestational diabetes",
        "History of pancreatitis",
    )


def test_fasting_glucose_126_is_not_a_trigger():
    result = OGTTIndicationEngine.evaluate(PatientProfile(), g0=126, bmi=None)
    assert result.indicated is False


def test_bmi_without_risk_factor_not_indicated():
    profile = PatientProfile(ethnicity=Ethnicity.WHITE)
    result = OGTTIndicationEngine.evaluate(profile, g0=None, bmi=31)
    assert result.indicated is False


def test_hypertension_needs_both_pressures_unless_treated():
    only_sbp = PatientProfile(systolic_bp=150)
    assert "Hypertension (≥130/80 or on treatment)" not in OGTTIndicationEngine.risk_factors(only_sbp)

    both = PatientProfile(systolic_bp=120, diastolic_bp=82)
    assert "Hypertension (≥130/80 or on treatment)" in OGTTIndicationEngine.risk_factors(both)

    treated = PatientProfile(on_bp_treatment=True)
    assert "Hypertension (≥130/80 or on treatment)" in OGTTIndicationEngine.risk_factors(treated)


def test_all_risk_factors_enumerated():
    profile = PatientProfile(
        ethnicity=Ethnicity.NATIVE_AMERICAN,
        has_masld=True,
        on_bp_treatment=True,
        hdl=30,
        has_pcos=True,
        family_history_t2d=True,
    )
    result = OGTTIndicationEngine.evaluate(profile, g0=None, bmi=26)

    assert result.reasons == (
        "BMI ≥25 kg/m² plus risk factor(s): MASLD, Hypertension (≥130/80 or on treatment), "
        "Dyslipidemia (HDL <35 or TG >250), PCOS, First-degree relative with T2D, High-risk ethnicity",
    )


# ==================== STEP 2: METABOLIC SYNDROME ====================

def test_three_criteria_present():
    profile = PatientProfile(sex=Sex.MALE, waist_cm=110, triglycerides=160, hdl=55)
    result = MetabolicSyndromeClassifier.evaluate(profile, g0=101)

    assert result.met_count == 3
    assert result.present is True


def test_two_criteria_absent():
    profile = PatientProfile(sex=Sex.MALE, waist_cm=110, triglycerides=160)
    result = MetabolicSyndromeClassifier.evaluate(profile, g0=95)

    assert result.met_count == 2
    assert result.present is False


def test_missing_inputs_never_count_as_met():
    # High waist and low HDL, but sex unknown
    profile = PatientProfile(waist_cm=130, hdl=30, systolic_bp=150)
    result = MetabolicSyndromeClassifier.evaluate(profile, g0=None)

    assert result.met_count == 0
    assert [c.detail for c in result.criteria] == [
        "Enter sex + waist",
        "Enter TG",
        "Enter sex + HDL",
        "Enter BP or treatment",
        "Enter fasting glucose",
    ]


def test_sex_specific_cutoffs():
    female = PatientProfile(sex=Sex.FEMALE, waist_cm=90, hdl=45)
    male = PatientProfile(sex=Sex.MALE, waist_cm=90, hdl=45)

    assert MetabolicSyndromeClassifier.evaluate(female, None).met_count == 2
    assert MetabolicSyndromeClassifier.evaluate(male, None).met_count == 0


def test_bp_treatment_alone_meets_criterion():
    profile = PatientProfile(on_bp_treatment=True, systolic_bp=110, diastolic_bp=70)
    bp = MetabolicSyndromeClassifier.evaluate(profile, None).criteria[3]

    assert bp.name == "Blood pressure"
    assert bp.met is True
    assert bp.detail == "On treatment"


def test_diastolic_85_meets_bp_criterion():
    profile = PatientProfile(systolic_bp=120, diastolic_bp=85)
    assert MetabolicSyndromeClassifier.evaluate(profile, None).criteria[3].met is True


# ==================== STEP 3: RULE TABLE ====================

def _markers(**overrides) -> RiskMarkers:
    base = dict(ifg=False, igt=False, one_hour_high=False, a1c_high=False,
                igi_low=False, first_phase_low=False, mets=False)
    base.update(overrides)
    return RiskMarkers(**base)


def test_rule_table_order_is_fixed():
    assert [r.exact_risk for r in RISK_RULES[:3]] == ["52.8%", ">50%", "37.8%"]
    assert all(r.severity == Severity.DANGER for r in RISK_RULES[:5])
    assert all(r.severity == Severity.WARN for r in RISK_RULES[5:])


def test_52_8_wins_over_combined_ifg_igt():
    result = RiskStratificationEngine.evaluate_markers(
        _markers(ifg=True, igt=True, one_hour_high=True, mets=True)
    )

    assert result.exact_risk == "52.8%"
    rendered = result.rendered_flags
    assert rendered[:3] == (
        "IGT + 1-hour PG >155 mg/dL + metabolic syndrome [52.8%]",
        "Combined IFG and IGT [>50%]",
        "IFG + 1-hour PG >155 mg/dL + metabolic syndrome [37.8%]",
    )
    # every matching rule is reported, warn markers included
    assert len(rendered) == 7


def test_warn_markers_alone_are_not_high_risk():
    result = RiskStratificationEngine.evaluate_markers(
        _markers(one_hour_high=True, mets=True)
    )

    assert result.high_risk is False
    assert result.exact_risk is None
    assert result.rendered_flags == (
        "1-hour PG >155 mg/dL",
        "Metabolic syndrome present (ATP III)",
    )


def test_first_phase_low_triggers_danger():
    result = RiskStratificationEngine.evaluate_markers(
        _markers(ifg=True, one_hour_high=True, first_phase_low=True)
    )
    assert result.high_risk is True
    assert result.exact_risk is None


def test_no_markers_no_flags():
    result = RiskStratificationEngine.evaluate_markers(_markers())
    assert result.flags == ()
    assert result.high_risk is False


def test_glycemic_band_edges():
    result = compute_all({"glucose_0": 126, "glucose_60": 155, "glucose_120": 200})
    markers = result.risk.markers

    assert markers.ifg is False
    assert markers.igt is False
    assert markers.one_hour_high is False


def test_igi_marker_uses_computed_index():
    result = compute_all({
        "glucose_0": 95, "glucose_30": 175,
        "insulin_0": 10, "insulin_30": 40,
    })
    assert result.indices.igi == pytest.approx(0.375)
    assert result.risk.markers.igi_low is True


# ==================== STEP 4: ELIGIBILITY ====================

def test_not_high_risk_does_not_apply():
    result = AgeEligibilityEngine.evaluate(False, 60, 90)

    assert result.applies is False
    assert result.decision == EligibilityDecision.NOT_HIGH_RISK
    assert result.weight_loss_target is None


def test_age_missing_reports_insufficient_data():
    result = AgeEligibilityEngine.evaluate(True, None, 90)

    assert result.applies is True
    assert result.decision == EligibilityDecision.INSUFFICIENT_DATA
    assert result.weight_loss_target is None


@pytest.mark.parametrize("age,decision", [
    (39, EligibilityDecision.NOT_CANDIDATE),
    (40, EligibilityDecision.CONDITIONAL),
    (49, EligibilityDecision.CONDITIONAL),
    (50, EligibilityDecision.ELIGIBLE_AFTER_WEIGHT_LOSS),
    (75, EligibilityDecision.ELIGIBLE_AFTER_WEIGHT_LOSS),
])
def test_age_bands(age, decision):
    assert AgeEligibilityEngine.evaluate(True, age, 90).decision == decision


def test_weight_loss_target_reported_for_under_40():
    result = AgeEligibilityEngine.evaluate(True, 35, 80)

    assert result.decision == EligibilityDecision.NOT_CANDIDATE
    assert result.weight_loss_target.low_kg == pytest.approx(4.0)
    assert result.weight_loss_target.high_kg == pytest.approx(8.0)


def test_weight_unknown_no_target():
    assert AgeEligibilityEngine.evaluate(True, 55, None).weight_loss_target is None


# ==================== PIPELINE ====================

def test_recompute_is_idempotent():
    data = TEST_EXACT_RISK[0].patient_data
    inputs = normalize_inputs(data)

    first = OGTTRiskStratifier.evaluate(inputs)
    second = OGTTRiskStratifier.evaluate(inputs)

    assert first == second
    assert format_stratification_response(first) == format_stratification_response(second)


def test_response_format_is_json_ready():
    response = format_stratification_response(compute_all(TEST_EXACT_RISK[0].patient_data))

    assert response["step3_risk"]["exact_risk"] == "52.8%"
    assert response["step3_risk"]["flags"][0]["severity"] == "danger"
    assert response["step4_eligibility"]["decision"] == "eligible_after_weight_loss"
    assert response["step4_eligibility"]["weight_loss_target"]["low_kg"] == pytest.approx(4.5)
    assert response["patient"]["sex"] == "unknown"


def test_criteria_lists_rules_in_table_order():
    rules = describe_criteria()["step3_rules"]
    assert [r["label"] for r in rules] == [r.label for r in RISK_RULES]


def test_result_collections_are_immutable():
    result = compute_all({
        "weight_kg": 96, "height_cm": 200, "has_masld": True, "hba1c": 5.9,
        "ethnicity": "Asian American", "glucose_0": 108, "glucose_60": 170, "glucose_120": 160,
    })

    assert isinstance(result.ogtt_indication.reasons, tuple)
    assert isinstance(result.ogtt_indication.risk_factors_met, tuple)
    assert isinstance(result.metabolic_syndrome.criteria, tuple)
    assert isinstance(result.risk.flags, tuple)

    with pytest.raises(AttributeError):
        result.risk.flags.append(None)
    with pytest.raises(AttributeError):
        result.ogtt_indication.reasons.append("extra")
