import json
import time
from readiness.settings import settings

# Redaction for logs (if PII redaction enabled)
SENSITIVE_KEYS = {"accountNumber", "accountName", "message", "suggestions"}
# Coordinates are coarsened to ~1 km instead of dropped so moves stay traceable
COORDINATE_KEYS = {"latitude", "longitude", "lat", "lon"}

def _redact_value(v):
    if isinstance(v, str) and len(v) > 0:
        return f"[REDACTED:{len(v)}chars]"
    if isinstance(v, dict):
        return {k: _redact_value(val) for k, val in v.items()}
    if isinstance(v, list):
        return f"[REDACTED:{len(v)}items]"
    return v

def _coarsen(v):
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return round(float(v), 2)
    return v

def _clean(k, v):
    if k in SENSITIVE_KEYS:
        return _redact_value(v)
    if k in COORDINATE_KEYS:
        return _coarsen(v)
    return v

def log(event: str, **fields):
    payload = {"ts": int(time.time()), "event": event}

    if settings.ENABLE_PII_REDACTION:
        clean_fields = {}
        for k, v in fields.items():
            if isinstance(v, dict) and k not in SENSITIVE_KEYS:
                # One level deep, e.g. coordinate={"latitude": ..., "longitude": ...}
                clean_fields[k] = {sk: _clean(sk, sv) for sk, sv in v.items()}
            else:
                clean_fields[k] = _clean(k, v)
        payload.update(clean_fields)
    else:
        payload.update(fields)

    print(json.dumps(payload, ensure_ascii=False, default=str))
