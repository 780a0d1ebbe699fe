"""
Baseline Comparator - OGTT-DM Risk Stratifier

Captures a point-in-time snapshot of a stratification result and compares
later results against it (repeat OGTT after weight loss).

The snapshot is a plain value. Where it is held (one slot per session in
state.py) is the caller's business; nothing in here keeps state.
"""

from typing import Dict, Any, List, Optional, Tuple, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
import logging

from stratification_engine import StratificationResult

logger = logging.getLogger(__name__)

WEIGHT_LOSS_GOAL_PCT = 5.0


@dataclass(frozen=True)
class BaselineSnapshot:
    timestamp: str
    weight_kg: Optional[float]
    bmi: Optional[float]
    mets_present: bool
    high_risk: bool
    exact_risk: Optional[str]
    flags: Tuple[str, ...]

    matsuda: Optional[float]
    homa_ir: Optional[float]
    igi: Optional[float]
    stumvoll_first_phase: Optional[float]
    pg_auc: Optional[float]


@dataclass(frozen=True)
class BaselineComparison:
    weight_change_pct: Optional[float]  # positive = loss
    reversed_high_risk: bool
    new_high_risk: bool
    added_flags: Tuple[str, ...]
    removed_flags: Tuple[str, ...]

    @property
    def reached_weight_loss_goal(self) -> Optional[bool]:
        if self.weight_change_pct is None:
            return None
        return self.weight_change_pct >= WEIGHT_LOSS_GOAL_PCT


def capture_baseline(result: StratificationResult, timestamp: Optional[str] = None) -> BaselineSnapshot:
    """Snapshot the headline values of a result."""
    ts = timestamp or datetime.now(timezone.utc).isoformat()
    indices = result.indices

    snapshot = BaselineSnapshot(
        timestamp=ts,
        weight_kg=result.profile.weight_kg,
        bmi=result.bmi,
        mets_present=result.metabolic_syndrome.present,
        high_risk=result.risk.high_risk,
        exact_risk=result.risk.exact_risk,
        flags=tuple(result.risk.rendered_flags),
        matsuda=indices.matsuda,
        homa_ir=indices.homa_ir,
        igi=indices.igi,
        stumvoll_first_phase=indices.stumvoll_first_phase,
        pg_auc=indices.pg_auc,
    )

    logger.info(f"📌 Baseline captured at {ts} (high risk: {snapshot.high_risk}, {len(snapshot.flags)} flag(s))")
    return snapshot


def _unique(labels: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(labels))


def weight_change_pct(baseline_kg: Optional[float], current_kg: Optional[float]) -> Optional[float]:
    if baseline_kg is None or current_kg is None or baseline_kg <= 0:
        return None
    return (baseline_kg - current_kg) / baseline_kg * 100


def compare_to_baseline(baseline: BaselineSnapshot, result: StratificationResult) -> BaselineComparison:
    """
    Diff the current result against a baseline.

    Flags are compared by rendered label, exact-risk suffix included, so the
    same rule with a different exact risk counts as a different flag.
    """
    base_flags = _unique(baseline.flags)
    now_flags = _unique(result.risk.rendered_flags)

    base_set = set(base_flags)
    now_set = set(now_flags)

    comparison = BaselineComparison(
        weight_change_pct=weight_change_pct(baseline.weight_kg, result.profile.weight_kg),
        reversed_high_risk=baseline.high_risk and not result.risk.high_risk,
        new_high_risk=not baseline.high_risk and result.risk.high_risk,
        added_flags=tuple(f for f in now_flags if f not in base_set),
        removed_flags=tuple(f for f in base_flags if f not in now_set),
    )

    if comparison.reversed_high_risk:
        logger.info("🎉 High-risk markers reversed since baseline")
    elif comparison.new_high_risk:
        logger.warning("⚠️  New high-risk status since baseline")

    return comparison


def format_snapshot_response(snapshot: BaselineSnapshot) -> Dict[str, Any]:
    return {
        "timestamp": snapshot.timestamp,
        "weight_kg": snapshot.weight_kg,
        "bmi": snapshot.bmi,
        "mets_present": snapshot.mets_present,
        "high_risk": snapshot.high_risk,
        "exact_risk": snapshot.exact_risk,
        "flags": list(snapshot.flags),
        "indices": {
            "matsuda": snapshot.matsuda,
            "homa_ir": snapshot.homa_ir,
            "igi": snapshot.igi,
            "stumvoll_first_phase": snapshot.stumvoll_first_phase,
            "pg_auc": snapshot.pg_auc,
        },
    }


def format_comparison_response(comparison: BaselineComparison) -> Dict[str, Any]:
    return {
        "weight_change_pct": comparison.weight_change_pct,
        "reached_weight_loss_goal": comparison.reached_weight_loss_goal,
        "reversed_high_risk": comparison.reversed_high_risk,
        "new_high_risk": comparison.new_high_risk,
        "added_flags": list(comparison.added_flags),
        "removed_flags": list(comparison.removed_flags),
    }
