from fastapi import APIRouter, Depends

import readiness.observability.metrics as metrics
from readiness.api.auth import require_admin
from readiness.observability.logging import log
from readiness.store import flag_store as fs
from readiness.store.flag_store import PersistentFlagStore

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/flags/{namespace}")
def get_flags(namespace: str, _=Depends(require_admin)):
    """Raw persisted gating flags for one user namespace (absent flags are null)."""
    store = PersistentFlagStore(namespace)
    return {"namespace": namespace, "flags": store.snapshot()}


@router.delete("/flags/{namespace}")
def clear_flags(namespace: str, _=Depends(require_admin)):
    """
    Support tool: wipe every gating flag so the next login starts clean
    (e.g. after a manual KYC review cleared kyc_requires_support).
    """
    store = PersistentFlagStore(namespace)
    for key in fs.KNOWN_FLAGS:
        store.remove(key)
    log(event="admin_flags_cleared", namespace=namespace)
    return {"namespace": namespace, "cleared": list(fs.KNOWN_FLAGS)}


@router.get("/metrics")
def get_metrics(_=Depends(require_admin)):
    """
    Observability snapshot backed by Redis counters.
    """
    return metrics.get_metrics_snapshot()
