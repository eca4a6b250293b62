"""
PersistentFlagStore: durable string/boolean flags that survive restarts.

Every Redis failure degrades to "flag absent" on read and to a logged no-op
on write. Callers never see a store exception.
"""
from typing import Dict, Optional

from readiness.observability.logging import log
from readiness.settings import settings
from readiness.store.models import ReadinessFlags
from readiness.store.redis_conn import get_redis

# Keys kept compatible with the mobile client's storage names
FRESH_REGISTRATION = "fresh_registration"
IN_SUB_VERIFICATION_FLOW = "is_in_kyc_flow"
USER_DISMISSED_GATE = "modal_dismissed_by_user"
SUPPORT_REQUIRED = "kyc_requires_support"
PENDING_REVIEW_HINT = "show_pending_modal"

KNOWN_FLAGS = (
    FRESH_REGISTRATION,
    IN_SUB_VERIFICATION_FLOW,
    USER_DISMISSED_GATE,
    SUPPORT_REQUIRED,
    PENDING_REVIEW_HINT,
)

# Cleared on logout
SESSION_FLAGS = (IN_SUB_VERIFICATION_FLOW, FRESH_REGISTRATION, USER_DISMISSED_GATE)

TRUE = "true"


class PersistentFlagStore:
    def __init__(self, namespace: str, redis_client=None):
        self.namespace = namespace
        self._redis = redis_client

    def _r(self):
        if self._redis is None:
            self._redis = get_redis()
        return self._redis

    def _key(self, key: str) -> str:
        return f"{settings.FLAG_KEY_PREFIX}:{self.namespace}:{key}"

    def get(self, key: str) -> Optional[str]:
        try:
            raw = self._r().get(self._key(key))
        except Exception as e:
            log(event="flag_store_read_failed", namespace=self.namespace, key=key, errorType=type(e).__name__)
            return None
        if raw is None:
            return None
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        return str(raw)

    def get_bool(self, key: str) -> bool:
        return (self.get(key) or "").strip().lower() == TRUE

    def set(self, key: str, value: str) -> None:
        try:
            self._r().set(self._key(key), str(value))
        except Exception as e:
            log(event="flag_store_write_failed", namespace=self.namespace, key=key, errorType=type(e).__name__)

    def set_bool(self, key: str, value: bool) -> None:
        if value:
            self.set(key, TRUE)
        else:
            self.remove(key)

    def remove(self, key: str) -> None:
        try:
            self._r().delete(self._key(key))
        except Exception as e:
            log(event="flag_store_write_failed", namespace=self.namespace, key=key, errorType=type(e).__name__)

    def snapshot(self) -> Dict[str, Optional[str]]:
        return {k: self.get(k) for k in KNOWN_FLAGS}

    def clear_session_flags(self) -> None:
        for key in SESSION_FLAGS:
            self.remove(key)

    def load_readiness_flags(self) -> ReadinessFlags:
        """
        Read every gating flag. One-shot flags are consumed: removed from the
        store once read, their value lives on in the returned session flags.
        """
        flags = ReadinessFlags(
            freshRegistration=self.get_bool(FRESH_REGISTRATION),
            inSubVerificationFlow=self.get_bool(IN_SUB_VERIFICATION_FLOW),
            userDismissedGate=self.get_bool(USER_DISMISSED_GATE),
            supportRequired=self.get_bool(SUPPORT_REQUIRED),
            pendingReviewHint=self.get_bool(PENDING_REVIEW_HINT),
        )
        if flags.freshRegistration:
            self.remove(FRESH_REGISTRATION)
        if flags.pendingReviewHint:
            self.remove(PENDING_REVIEW_HINT)
        log(
            event="readiness_flags_loaded",
            namespace=self.namespace,
            freshRegistration=flags.freshRegistration,
            inSubVerificationFlow=flags.inSubVerificationFlow,
            userDismissedGate=flags.userDismissedGate,
            supportRequired=flags.supportRequired,
            pendingReviewHint=flags.pendingReviewHint,
        )
        return flags
