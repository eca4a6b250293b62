from fastapi import FastAPI
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from readiness.api.routes import router
from readiness.api.admin_routes import router as admin_router
from readiness.observability.logging import log
from readiness.settings import settings
from readiness.store.redis_conn import redis_ok

app = FastAPI(title="Readiness Gate API")

# Browser-based QA tools call the preview route directly; restrict via env in prod.
origins = [x.strip() for x in settings.CORS_ORIGINS.split(",") if x.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)
app.include_router(admin_router)


@app.get("/")
def root():
    return {
        "status": "ok",
        "message": "Readiness Gate API is running. Use /health and POST /readiness/evaluate."
    }


@app.get("/health")
def health():
    # Redis down degrades flags and counters, it never fails the gate
    return {"status": "ok", "redis": redis_ok()}


@app.exception_handler(Exception)
async def universal_exception_handler(request: Request, exc: Exception):
    # Never leak a traceback; callers get a stable JSON error shape.
    log(event="api_unhandled_error", path=request.url.path, errorType=type(exc).__name__, error=str(exc)[:300])
    return JSONResponse(
        status_code=500,
        content={"status": "error", "detail": "internal error"},
    )


log(
    event="boot",
    readinessEnabled=bool(settings.READINESS_ENABLED),
    proximityThresholdM=float(settings.PROXIMITY_THRESHOLD_M),
    storeLastSuggestions=bool(settings.STORE_LAST_SUGGESTIONS),
)
