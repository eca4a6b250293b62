"""
Observability counters
----------------------
Lightweight Redis-backed counters/timers for the readiness gate and the
proximity detector, plus one snapshot function consumed by /admin/metrics.
Missing keys (first boot) read as zero.
"""
from __future__ import annotations
import time
from typing import Dict, List
from statistics import median
from readiness.core import phases as ph
from readiness.observability.logging import log
from readiness.store.redis_conn import get_redis

# Keys (best-effort, stable across restarts)
K_MODAL_SHOWN = "metrics:modal:shown:{kind}"          # INCR per modal kind
K_GATE_DISMISSED = "metrics:gate:dismissed"           # INCR
K_MOVES = "metrics:proximity:moves"                   # INCR
K_LOOKUP_FAIL = "metrics:proximity:lookup_failed"     # INCR
K_LOOKUP_LAT = "metrics:proximity:lookup_latencies"   # LPUSH ms
K_COALESCED = "metrics:proximity:coalesced"           # INCR

_MAX_SAMPLES = 500  # cap to bound percentile computation cost

def _percentile(data: List[float], p: float) -> float:
    """Deterministic percentile (nearest-rank on sorted data)."""
    if not data:
        return 0.0
    d = sorted(data)
    k = max(1, int(round(p * len(d))))
    return float(d[k - 1])

def increment_modal_shown(kind: str) -> None:
    r = get_redis()
    r.incr(K_MODAL_SHOWN.format(kind=kind), 1)

def increment_gate_dismissed() -> None:
    r = get_redis()
    r.incr(K_GATE_DISMISSED, 1)

def increment_significant_move() -> None:
    r = get_redis()
    r.incr(K_MOVES, 1)

def increment_sample_coalesced() -> None:
    r = get_redis()
    r.incr(K_COALESCED, 1)

def increment_lookup_failure() -> None:
    r = get_redis()
    r.incr(K_LOOKUP_FAIL, 1)

def record_lookup_latency(ms: int) -> None:
    try:
        ms = int(ms)
    except Exception:
        return
    r = get_redis()
    r.lpush(K_LOOKUP_LAT, ms)
    r.ltrim(K_LOOKUP_LAT, 0, _MAX_SAMPLES - 1)

def _read_latency_list(key: str) -> List[float]:
    r = get_redis()
    raw = r.lrange(key, 0, _MAX_SAMPLES - 1) or []
    out: List[float] = []
    for x in raw:
        try:
            out.append(float(x.decode("utf-8") if isinstance(x, (bytes, bytearray)) else x))
        except Exception:
            continue
    return out

def _int(r, key: str) -> int:
    try:
        return int(r.get(key) or 0)
    except Exception:
        return 0

def get_metrics_snapshot() -> dict:
    """
    Return a dict shaped for /admin/metrics consumers.
    Fields:
      - modals_shown: count per modal kind
      - gate_dismissed
      - significant_moves, samples_coalesced, lookup_failures
      - p50/p95 lookup latency (ms)
    """
    r = get_redis()
    shown: Dict[str, int] = {kind: _int(r, K_MODAL_SHOWN.format(kind=kind)) for kind in ph.MODAL_KINDS}
    lat = _read_latency_list(K_LOOKUP_LAT)
    return {
        "modals_shown": shown,
        "gate_dismissed": _int(r, K_GATE_DISMISSED),
        "significant_moves": _int(r, K_MOVES),
        "samples_coalesced": _int(r, K_COALESCED),
        "lookup_failures": _int(r, K_LOOKUP_FAIL),
        "p50_lookup_latency_ms": float(median(lat)) if lat else 0.0,
        "p95_lookup_latency_ms": _percentile(lat, 0.95),
        "snapshot_at": int(time.time()),
    }

def safe(fn, *args) -> None:
    """Best-effort metric write for hot paths (gate, detector): never raises."""
    try:
        fn(*args)
    except Exception as e:
        log(event="metrics_write_failed", metric=getattr(fn, "__name__", "?"), errorType=type(e).__name__)
