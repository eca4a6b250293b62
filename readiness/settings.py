import os
from dotenv import load_dotenv

load_dotenv()

class Settings:
    API_KEY: str = os.getenv("API_KEY", "")

    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # Readiness gate master switch (feature flag off = checks frozen, camera usable)
    READINESS_ENABLED: bool = os.getenv("READINESS_ENABLED", "true").lower() == "true"
    # Suppress SET_PIN re-show for this long after it was shown (absorbs source flapping)
    PIN_MODAL_DEBOUNCE_SEC: float = float(os.getenv("PIN_MODAL_DEBOUNCE_SEC", "2.0"))

    # Status source cache/retry policy
    STATUS_POLL_INTERVAL_SEC: float = float(os.getenv("STATUS_POLL_INTERVAL_SEC", "30"))
    STATUS_RETRY_ATTEMPTS: int = int(os.getenv("STATUS_RETRY_ATTEMPTS", "3"))
    STATUS_RETRY_BASE_DELAY_MS: int = int(os.getenv("STATUS_RETRY_BASE_DELAY_MS", "1000"))
    STATUS_RETRY_MAX_DELAY_MS: int = int(os.getenv("STATUS_RETRY_MAX_DELAY_MS", "30000"))

    # Persistent flags (device-local in the mobile client, namespaced per device here)
    FLAG_KEY_PREFIX: str = os.getenv("FLAG_KEY_PREFIX", "flags")

    # Proximity detector
    PROXIMITY_THRESHOLD_M: float = float(os.getenv("PROXIMITY_THRESHOLD_M", "50"))
    # Store the last suggestion list per namespace in Redis for debug retrieval
    STORE_LAST_SUGGESTIONS: bool = os.getenv("STORE_LAST_SUGGESTIONS", "true").lower() == "true"

    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    # Security & Privacy
    ENABLE_PII_REDACTION: bool = os.getenv("ENABLE_PII_REDACTION", "true").lower() == "true"
    ADMIN_RBAC_ENABLED: bool = os.getenv("ADMIN_RBAC_ENABLED", "true").lower() == "true"
    ADMIN_API_KEY: str = os.getenv("ADMIN_API_KEY", "")

settings = Settings()
