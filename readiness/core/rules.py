from typing import Optional

from readiness.core import phases as ph
from readiness.settings import settings
from readiness.store.models import ReadinessInputs, ReadinessState, SessionMemory


def _state(phase: str, enabled: bool, reason: str, modal: str = ph.NONE,
           loading: bool = False, already_shown: bool = False) -> ReadinessState:
    return ReadinessState(
        phase=phase,
        functionalityEnabled=enabled,
        loadingIndicatorVisible=loading,
        activeModal=modal,
        modalAlreadyShownThisSession=already_shown,
        reason=reason,
    )


def _pin_debounce_active(memory: SessionMemory, now: float) -> bool:
    if memory.pinPromptedAt is None:
        return False
    window = float(getattr(settings, "PIN_MODAL_DEBOUNCE_SEC", 2.0) or 0.0)
    return (now - memory.pinPromptedAt) < window


def select_modal(kind: str, memory: SessionMemory, now: float) -> str:
    """
    Decide whether a candidate modal is actually presented.
    - Already on screen: keep it (repeat emissions are idempotent).
    - Auto-shown earlier this session: suppress, never re-pop.
    - SET_PIN inside the debounce window: suppress.
    """
    if memory.visible == kind:
        return kind
    if kind in memory.shown:
        return ph.NONE
    if kind == ph.SET_PIN and _pin_debounce_active(memory, now):
        return ph.NONE
    return kind


def _gated(phase: str, kind: str, enabled: bool, reason: str,
           memory: SessionMemory, now: float) -> ReadinessState:
    modal = select_modal(kind, memory, now)
    return _state(
        phase,
        enabled,
        reason if modal != ph.NONE else f"{reason}_suppressed",
        modal=modal,
        already_shown=kind in memory.shown,
    )


def _unverified_modal(inputs: ReadinessInputs) -> str:
    status = inputs.verification.status
    if status == ph.STATUS_REJECTED or inputs.flags.supportRequired:
        return ph.CONTACT_SUPPORT
    if status == ph.STATUS_UNDER_REVIEW or inputs.flags.pendingReviewHint:
        return ph.PENDING_REVIEW
    return ph.NEEDS_VERIFICATION


def _evaluate_pin(inputs: ReadinessInputs, memory: SessionMemory, now: float,
                  soft: bool = False) -> ReadinessState:
    pin = inputs.pin
    if pin.hasPinSet:
        return _state(ph.COMPLETE, True, "complete")
    if pin.walletExists:
        return _gated(ph.PIN, ph.SET_PIN, True, "pin_missing", memory, now)
    if soft:
        # Soft failure: wallet backend unreachable, a verified user keeps browsing.
        return _state(ph.PIN, True, "wallet_soft_failure")
    if pin.loading:
        return _state(ph.PIN, False, "pin_loading", loading=True)
    if pin.error:
        return _state(ph.PIN, True, "pin_soft_failure")
    if pin.unknown:
        return _state(ph.PIN, False, "pin_waiting", loading=True)
    # Wallet data present but pin service says no wallet: activation is still outstanding.
    return _gated(ph.PIN, ph.WALLET_ACTIVATION, True, "pin_wallet_missing", memory, now)


def _evaluate_wallet(inputs: ReadinessInputs, memory: SessionMemory, now: float) -> ReadinessState:
    wallet = inputs.wallet
    if wallet.present:
        return _evaluate_pin(inputs, memory, now)
    if wallet.error is not None and wallet.error.isNotFound:
        return _gated(ph.WALLET, ph.WALLET_ACTIVATION, True, "wallet_not_found", memory, now)
    if wallet.error is not None:
        # Soft failure: transient backend fault never blocks a verified user.
        return _evaluate_pin(inputs, memory, now, soft=True)
    return _state(ph.WALLET, False, "wallet_loading", loading=True)


def evaluate(inputs: ReadinessInputs, memory: Optional[SessionMemory] = None,
             now: float = 0.0, enabled: bool = True) -> ReadinessState:
    """
    Pure readiness reducer: (inputs, session memory, clock) -> ReadinessState.

    INVARIANT: no I/O, no awaiting, no mutation of `memory`.
    Rules are evaluated top-to-bottom; the first match wins, so the order
    below IS the priority order.
    """
    memory = memory or SessionMemory()
    flags = inputs.flags

    # 0. Unauthenticated: idle, nothing usable, nothing shown.
    if not (inputs.authenticated and inputs.hasCredential):
        return _state(ph.VERIFICATION, False, "unauthenticated")

    # 1. Feature off or user inside the identity flow: checks frozen, not failed.
    if not enabled:
        return _state(memory.phase, True, "disabled")
    if flags.inSubVerificationFlow:
        return _state(memory.phase, True, "sub_flow_frozen")

    # 2. User dismissed the gate: permanent pass for the session.
    if flags.userDismissedGate:
        return _state(memory.phase, True, "user_dismissed")

    # 3. Phase never regresses once complete.
    if memory.phase == ph.COMPLETE:
        return _state(ph.COMPLETE, True, "complete")

    # 4. First verification load still in flight.
    if memory.phase == ph.VERIFICATION and inputs.verification.loading:
        return _state(ph.VERIFICATION, False, "verification_loading", loading=True)

    # 5. Fresh registration: no verification history to evaluate yet.
    if flags.freshRegistration:
        return _gated(ph.VERIFICATION, ph.NEEDS_VERIFICATION, True, "fresh_registration", memory, now)

    # 6. Verification gate (already passed once this session -> skip).
    if ph.phase_rank(memory.phase) < ph.phase_rank(ph.WALLET):
        v = inputs.verification
        if not v.overallVerified:
            if v.error:
                return _state(ph.VERIFICATION, True, "verification_soft_failure")
            return _gated(ph.VERIFICATION, _unverified_modal(inputs), False, "unverified", memory, now)

    # 7./8. Wallet then PIN (PIN phase re-entered directly once wallet resolved).
    if memory.phase == ph.PIN:
        werr = inputs.wallet.error
        soft = werr is not None and not werr.isNotFound and not inputs.wallet.present
        return _evaluate_pin(inputs, memory, now, soft=soft)
    return _evaluate_wallet(inputs, memory, now)
