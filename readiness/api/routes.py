from dataclasses import asdict

from fastapi import APIRouter, Depends

from readiness.api.auth import require_api_key
from readiness.api.schemas import EvaluateRequest, EvaluateResponse, ReadinessStateOut
from readiness.core.rules import evaluate
from readiness.observability.logging import log
from readiness.proximity.detector import read_last_suggestions
from readiness.settings import settings

router = APIRouter()


@router.post("/readiness/evaluate", response_model=EvaluateResponse, dependencies=[Depends(require_api_key)])
def evaluate_readiness(req: EvaluateRequest):
    """
    Run the gating reducer over posted inputs and session memory.
    Pure: nothing is read from or written to the flag store.
    """
    enabled = settings.READINESS_ENABLED if req.enabled is None else req.enabled
    state = evaluate(req.to_inputs(), req.to_memory(), now=req.now, enabled=enabled)
    log(event="readiness_preview", phase=state.phase, activeModal=state.activeModal, reason=state.reason)
    return EvaluateResponse(state=ReadinessStateOut(**asdict(state)))


@router.get("/debug/feature-flags")
def debug_feature_flags(_=Depends(require_api_key)):
    """Read-only snapshot of runtime knobs that change gating and proximity behaviour."""
    return {
        "READINESS_ENABLED": bool(settings.READINESS_ENABLED),
        "PIN_MODAL_DEBOUNCE_SEC": float(settings.PIN_MODAL_DEBOUNCE_SEC),
        "PROXIMITY_THRESHOLD_M": float(settings.PROXIMITY_THRESHOLD_M),
        "STATUS_POLL_INTERVAL_SEC": float(settings.STATUS_POLL_INTERVAL_SEC),
        "STATUS_RETRY_ATTEMPTS": int(settings.STATUS_RETRY_ATTEMPTS),
        "STORE_LAST_SUGGESTIONS": bool(settings.STORE_LAST_SUGGESTIONS),
    }


@router.get("/debug/last-suggestions/{namespace}")
def debug_last_suggestions(namespace: str, _=Depends(require_api_key)):
    """
    Returns the last suggestion lookup stored for this namespace (if enabled).
    """
    if not settings.STORE_LAST_SUGGESTIONS:
        return {"enabled": False}
    try:
        payload = read_last_suggestions(namespace)
    except Exception as e:
        log(event="last_suggestions_read_failed", namespace=namespace, errorType=type(e).__name__)
        payload = None
    return {"namespace": namespace, "payload": payload}
