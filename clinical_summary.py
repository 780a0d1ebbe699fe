"""
Plain-text clinical summary.

This line-oriented text is the only contract with export collaborators
(copy, print, PDF). They treat it as opaque and never recompute values.
"""

from typing import List, Optional
import logging

from stratification_engine import StratificationResult
from input_normalizer import Sex, Ethnicity

logger = logging.getLogger(__name__)

DEFAULT_TOOL_NAME = "OGTT-DM Risk Stratifier"
PLACEHOLDER = "—"
BLANK = " "
DISCLAIMER = (
    "Disclaimer: Clinical decision support/education tool. "
    "No patient data are stored. Use clinical judgment."
)


def fmt(value: Optional[float], digits: int = 2) -> str:
    if value is None or value != value:
        return PLACEHOLDER
    return f"{value:.{digits}f}"


def pct_fmt(value: Optional[float], digits: int = 1) -> str:
    if value is None or value != value:
        return PLACEHOLDER
    return f"{value:.{digits}f}%"


def _plain_number(value: float) -> str:
    # 45.0 -> "45", 45.5 -> "45.5"
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def render_clinical_summary(result: StratificationResult, tool_name: str = DEFAULT_TOOL_NAME) -> str:
    profile = result.profile
    indication = result.ogtt_indication
    mets = result.metabolic_syndrome
    risk = result.risk
    step4 = result.eligibility
    idx = result.indices

    lines: List[str] = [tool_name, PLACEHOLDER]

    if profile.age is not None:
        lines.append(f"Age: {_plain_number(profile.age)}")
    if profile.sex != Sex.UNKNOWN:
        lines.append(f"Sex: {profile.sex.value}")
    if profile.ethnicity != Ethnicity.UNKNOWN:
        lines.append(f"Ethnicity: {profile.ethnicity.value}")
    if result.bmi is not None:
        lines.append(f"BMI: {fmt(result.bmi, 1)} kg/m²")

    lines.append(BLANK)
    lines.append(f"Step 1 (OGTT indication): {'YES' if indication.indicated else 'NO'}")
    if indication.reasons:
        lines.append(f"Reasons: {'; '.join(indication.reasons)}")

    lines.append(BLANK)
    lines.append(
        f"Step 2 (Metabolic syndrome): {'PRESENT' if mets.present else 'ABSENT/UNKNOWN'} "
        f"({mets.met_count}/5 criteria met)"
    )

    lines.append(BLANK)
    lines.append(f"Step 3 (High-risk prognostic markers): {'HIGH RISK' if risk.high_risk else 'Not high-risk'}")
    if risk.exact_risk:
        lines.append(f"Exact risk (per criteria): {risk.exact_risk}")
    if risk.flags:
        lines.append(f"Findings: {'; '.join(risk.rendered_flags)}")

    lines.append(BLANK)
    if step4.applies:
        lines.append(f"Step 4 (Age-based recommendation): {step4.message}")
        wl = step4.weight_loss_target
        if wl:
            lines.append(f"Weight-loss target (5–10%): {fmt(wl.low_kg, 1)}–{fmt(wl.high_kg, 1)} kg")

    lines.append(BLANK)
    lines.append("Calculated indices:")
    lines.append(f"- Matsuda index: {fmt(idx.matsuda, 2)} (IR if <4.3)")
    lines.append(f"- HOMA-IR: {fmt(idx.homa_ir, 2)} (cutoff used: >{fmt(idx.homa_ir_cutoff, 2)})")
    lines.append(f"- IGI: {fmt(idx.igi, 3)} (flag if ≤0.82 in Step 3 rule)")
    lines.append(f"- Stumvoll 1st-phase: {fmt(idx.stumvoll_first_phase, 0)} pmol/L (flag if ≤1007)")
    lines.append(f"- Stumvoll 2nd-phase: {fmt(idx.stumvoll_second_phase, 0)} pmol/L")
    lines.append(f"- Disposition index (Matsuda×IGI): {fmt(idx.disposition_index, 3)}")
    lines.append(f"- HOMA-β: {fmt(idx.homa_beta, 1)}")
    lines.append(f"- PG AUC (weighted): {fmt(idx.pg_auc, 1)} mg·h/dL")

    lines.append(BLANK)
    lines.append(DISCLAIMER)

    logger.debug(f"Rendered clinical summary ({len(lines)} lines)")
    return "\n".join(lines)
