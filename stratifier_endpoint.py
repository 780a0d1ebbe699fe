"""
FastAPI Endpoint for OGTT-DM Risk Stratification

Exposes the stepwise stratification pipeline, the plain-text clinical
summary and the per-session baseline snapshot over HTTP.

Include the router in the main FastAPI application (see main.py).
"""

from fastapi import APIRouter, HTTPException
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, Any, Optional
from datetime import datetime
import logging

from stratification_engine import (
    compute_all,
    format_stratification_response,
    describe_criteria,
)
from baseline_comparator import (
    capture_baseline,
    compare_to_baseline,
    format_snapshot_response,
    format_comparison_response,
)
from clinical_summary import render_clinical_summary
from state import get_session_state, get_baseline as lookup_baseline, update_state, clear_session
from config import Config

logger = logging.getLogger(__name__)

# Create router (can be included in main app)
stratifier_router = APIRouter(prefix="/stratifier", tags=["stratifier"])


# ==================== REQUEST/RESPONSE MODELS ====================

class StratifierRequest(BaseModel):
    """Raw form values; every field optional, non-numeric values become absent"""
    inputs: Dict[str, Any] = Field(default_factory=dict, description="Flat patient + OGTT values")
    session_id: Optional[str] = Field(None, description="Session identifier for baseline comparison")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "inputs": {
                "age": 52,
                "sex": "male",
                "ethnicity": "Hispanic/Latino",
                "weight_kg": 96,
                "height_cm": 178,
                "waist_cm": 108,
                "systolic_bp": 136,
                "diastolic_bp": 84,
                "triglycerides": 180,
                "hdl": 38,
                "hba1c": 6.1,
                "glucose_0": 108, "glucose_30": 170, "glucose_60": 190,
                "glucose_90": 175, "glucose_120": 160,
                "insulin_0": 14, "insulin_30": 45, "insulin_60": 80,
                "insulin_90": 85, "insulin_120": 90
            },
            "session_id": "20260131123456"
        }
    })


class StratifierResponse(BaseModel):
    success: bool
    timestamp: str
    session_id: Optional[str]

    # Core results
    patient: Dict[str, Any]
    step1_ogtt_indication: Dict[str, Any]
    step2_metabolic_syndrome: Dict[str, Any]
    step3_risk: Dict[str, Any]
    step4_eligibility: Dict[str, Any]
    indices: Dict[str, Any]
    index_interpretation: Dict[str, Any]

    summary: str
    baseline_comparison: Optional[Dict[str, Any]] = None

    # Metadata
    processing_time: float
    engine_version: str = Config.ENGINE_VERSION


# ==================== ENDPOINTS ====================

@stratifier_router.post("/evaluate", response_model=StratifierResponse)
async def evaluate(request: StratifierRequest):
    """
    Run the full stratification pipeline.

    1. Input normalization (range clamping, absent on bad values)
    2. Index calculation (Matsuda, HOMA-IR, IGI, Stumvoll, DI, HOMA-β, PG AUC)
    3. Steps 1–4 (OGTT indication, MetS, high-risk markers, age eligibility)
    4. Comparison with the session baseline, when one was captured
    """
    start_time = datetime.now()

    try:
        logger.info(f"🔍 Stratifying for session: {request.session_id}")

        result = compute_all(request.inputs)
        formatted = format_stratification_response(result)

        comparison = None
        if request.session_id:
            baseline = lookup_baseline(request.session_id)
            if baseline is not None:
                comparison = format_comparison_response(compare_to_baseline(baseline, result))

        processing_time = (datetime.now() - start_time).total_seconds()

        response = StratifierResponse(
            success=True,
            timestamp=datetime.now().isoformat(),
            session_id=request.session_id,
            summary=render_clinical_summary(result, Config.TOOL_NAME),
            baseline_comparison=comparison,
            processing_time=round(processing_time, 3),
            **formatted,
        )

        logger.info(f"✅ Stratification completed: high risk = {result.risk.high_risk}")

        return response

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ Stratification failed: {str(e)}")
        raise HTTPException(
            status_code=500,
            detail=f"Stratification error: {str(e)}"
        )


@stratifier_router.post("/summary", response_class=PlainTextResponse)
async def summary(request: StratifierRequest):
    """Plain-text clinical summary for copy / print / PDF collaborators."""
    try:
        result = compute_all(request.inputs)
        return PlainTextResponse(render_clinical_summary(result, Config.TOOL_NAME))
    except Exception as e:
        logger.error(f"❌ Summary failed: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Stratification error: {str(e)}")


@stratifier_router.post("/baseline")
async def save_baseline(request: StratifierRequest):
    """
    Capture the current result as the session baseline.

    Replaces any earlier baseline for the same session.
    """
    if not request.session_id:
        raise HTTPException(status_code=400, detail="session_id is required to capture a baseline")

    try:
        result = compute_all(request.inputs)
        snapshot = capture_baseline(result)
        update_state(get_session_state(request.session_id), "baseline", snapshot)

        return {
            "session_id": request.session_id,
            "baseline": format_snapshot_response(snapshot),
        }

    except Exception as e:
        logger.error(f"❌ Baseline capture failed: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Stratification error: {str(e)}")


@stratifier_router.get("/baseline/{session_id}")
async def get_baseline(session_id: str):
    baseline = lookup_baseline(session_id)
    if baseline is None:
        raise HTTPException(status_code=404, detail=f"No baseline captured for session {session_id}")
    return {"session_id": session_id, "baseline": format_snapshot_response(baseline)}


@stratifier_router.delete("/baseline/{session_id}")
async def delete_baseline(session_id: str):
    clear_session(session_id)
    logger.info(f"🗑️  Baseline cleared for session: {session_id}")
    return {"session_id": session_id, "cleared": True}


@stratifier_router.get("/criteria")
async def get_criteria():
    """
    Return the stratification rules and index thresholds.

    Useful for transparency and clinician education.
    """
    return describe_criteria()


# ==================== INTEGRATION HELPER ====================

def add_stratifier_routes_to_app(app):
    """
    Usage in main.py:
        from stratifier_endpoint import add_stratifier_routes_to_app
        add_stratifier_routes_to_app(app)
    """
    app.include_router(stratifier_router)
    logger.info("✅ Stratifier routes registered")
