from dataclasses import dataclass, field
from typing import Any, Optional, Set

from readiness.core import phases as ph

@dataclass
class VerificationInput:
    status: Optional[str] = None  # PENDING/IN_PROGRESS/UNDER_REVIEW/VERIFIED/APPROVED/REJECTED
    identityVerified: bool = False
    biometricVerified: bool = False
    overallVerified: bool = False
    loading: bool = False
    # Source failed and holds no usable data
    error: bool = False

@dataclass
class WalletError:
    code: Optional[int] = None
    isNotFound: bool = False
    message: str = ""

@dataclass
class WalletInput:
    details: Optional[Any] = None
    balance: Optional[Any] = None
    loading: bool = False
    error: Optional[WalletError] = None

    @property
    def present(self) -> bool:
        return self.details is not None and self.balance is not None

@dataclass
class PinInput:
    walletExists: bool = False
    hasPinSet: bool = False
    loading: bool = False
    # No pin status received yet (neither data nor error)
    unknown: bool = False
    error: bool = False

@dataclass
class ReadinessFlags:
    freshRegistration: bool = False
    inSubVerificationFlow: bool = False
    userDismissedGate: bool = False
    supportRequired: bool = False
    # Legacy one-shot hint written by the identity flow ("show_pending_modal")
    pendingReviewHint: bool = False

@dataclass
class ReadinessInputs:
    authenticated: bool = False
    hasCredential: bool = False
    verification: VerificationInput = field(default_factory=VerificationInput)
    wallet: WalletInput = field(default_factory=WalletInput)
    pin: PinInput = field(default_factory=PinInput)
    flags: ReadinessFlags = field(default_factory=ReadinessFlags)

@dataclass
class ReadinessState:
    phase: str = ph.VERIFICATION
    functionalityEnabled: bool = False
    loadingIndicatorVisible: bool = False
    activeModal: str = ph.NONE
    modalAlreadyShownThisSession: bool = False
    # Name of the rule that produced this decision (logs/diagnostics only)
    reason: str = "idle"

@dataclass
class SessionMemory:
    """
    Per-session bookkeeping the reducer reads but never writes.
    The orchestrator commits changes after each evaluation / gate event.
    """
    phase: str = ph.VERIFICATION
    # Modal kinds auto-shown this session
    shown: Set[str] = field(default_factory=set)
    # Modal currently on screen (None when the gate is clear)
    visible: Optional[str] = None
    # Monotonic seconds of the last SET_PIN show
    pinPromptedAt: Optional[float] = None


def idle_state() -> ReadinessState:
    return ReadinessState()
