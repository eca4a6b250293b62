# Readiness phases, in the only order they may be reached within a session.

# Gate: identity verification (BVN + selfie) must be complete
VERIFICATION = "VERIFICATION"

# Gate: a provisioned wallet must exist for the verified user
WALLET = "WALLET"

# Gate: a transaction PIN must be set on the wallet
PIN = "PIN"

# Terminal: core capture/payment feature fully usable
COMPLETE = "COMPLETE"

PHASE_ORDER = (VERIFICATION, WALLET, PIN, COMPLETE)


def phase_rank(phase: str) -> int:
    try:
        return PHASE_ORDER.index(phase)
    except ValueError:
        return 0


def later_phase(a: str, b: str) -> str:
    """Phases never regress within a session; pick the further one."""
    return a if phase_rank(a) >= phase_rank(b) else b


# Modal kinds presented by the ModalGate
NONE = "NONE"
NEEDS_VERIFICATION = "NEEDS_VERIFICATION"
PENDING_REVIEW = "PENDING_REVIEW"
WALLET_ACTIVATION = "WALLET_ACTIVATION"
SET_PIN = "SET_PIN"
CONTACT_SUPPORT = "CONTACT_SUPPORT"

MODAL_KINDS = (NEEDS_VERIFICATION, PENDING_REVIEW, WALLET_ACTIVATION, SET_PIN, CONTACT_SUPPORT)

# Degraded-but-usable: these modals coexist with functionality enabled
DEGRADED_MODALS = (WALLET_ACTIVATION, SET_PIN)


# Verification statuses reported by the identity backend
STATUS_PENDING = "PENDING"
STATUS_IN_PROGRESS = "IN_PROGRESS"
STATUS_UNDER_REVIEW = "UNDER_REVIEW"
STATUS_VERIFIED = "VERIFIED"
STATUS_APPROVED = "APPROVED"
STATUS_REJECTED = "REJECTED"

VERIFICATION_STATUSES = (
    STATUS_PENDING,
    STATUS_IN_PROGRESS,
    STATUS_UNDER_REVIEW,
    STATUS_VERIFIED,
    STATUS_APPROVED,
    STATUS_REJECTED,
)

# Statuses that count toward "fully verified" (together with the per-step bits)
VERIFIED_STATUSES = (STATUS_VERIFIED, STATUS_APPROVED)
