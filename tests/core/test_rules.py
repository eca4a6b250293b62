import itertools

import pytest

from readiness.core import phases as ph
from readiness.core.rules import evaluate, select_modal
from readiness.store.models import (
    PinInput,
    ReadinessFlags,
    ReadinessInputs,
    SessionMemory,
    VerificationInput,
    WalletError,
    WalletInput,
)

VERIFIED = VerificationInput(
    status=ph.STATUS_VERIFIED, identityVerified=True, biometricVerified=True, overallVerified=True
)
WALLET_OK = WalletInput(details={"accountNumber": "0123456789"}, balance={"available": 0})


def make_inputs(**overrides) -> ReadinessInputs:
    base = dict(
        authenticated=True,
        hasCredential=True,
        verification=VERIFIED,
        wallet=WALLET_OK,
        pin=PinInput(walletExists=True, hasPinSet=True),
        flags=ReadinessFlags(),
    )
    base.update(overrides)
    return ReadinessInputs(**base)


def test_unauthenticated_is_idle_for_every_flag_combination():
    bools = (False, True)
    for fresh, sub, dismissed, support, enabled in itertools.product(bools, repeat=5):
        for authenticated, credential in ((False, False), (False, True), (True, False)):
            inputs = make_inputs(
                authenticated=authenticated,
                hasCredential=credential,
                flags=ReadinessFlags(
                    freshRegistration=fresh,
                    inSubVerificationFlow=sub,
                    userDismissedGate=dismissed,
                    supportRequired=support,
                ),
            )
            state = evaluate(inputs, SessionMemory(phase=ph.PIN), now=10.0, enabled=enabled)
            assert state.functionalityEnabled is False
            assert state.activeModal == ph.NONE


def test_same_inputs_twice_give_identical_state():
    inputs = make_inputs(pin=PinInput(walletExists=True, hasPinSet=False))
    memory = SessionMemory()
    assert evaluate(inputs, memory, now=1.0) == evaluate(inputs, memory, now=1.0)


def test_evaluate_does_not_mutate_memory():
    memory = SessionMemory(phase=ph.WALLET, shown={ph.NEEDS_VERIFICATION})
    evaluate(make_inputs(), memory, now=5.0)
    assert memory.phase == ph.WALLET
    assert memory.shown == {ph.NEEDS_VERIFICATION}


def test_fully_ready_user_is_complete():
    state = evaluate(make_inputs())
    assert state.phase == ph.COMPLETE
    assert state.functionalityEnabled is True
    assert state.activeModal == ph.NONE


def test_disabled_freezes_checks_and_grants_access():
    state = evaluate(make_inputs(verification=VerificationInput()), SessionMemory(phase=ph.WALLET), enabled=False)
    assert state.functionalityEnabled is True
    assert state.activeModal == ph.NONE
    assert state.loadingIndicatorVisible is False
    assert state.phase == ph.WALLET


def test_sub_flow_forces_no_modal_and_keeps_phase():
    inputs = make_inputs(
        verification=VerificationInput(status=ph.STATUS_REJECTED),
        flags=ReadinessFlags(inSubVerificationFlow=True),
    )
    state = evaluate(inputs, SessionMemory(phase=ph.VERIFICATION))
    assert state.activeModal == ph.NONE
    assert state.functionalityEnabled is True
    assert state.reason == "sub_flow_frozen"


def test_user_dismissed_gate_never_shows_a_modal():
    flags = ReadinessFlags(userDismissedGate=True)
    candidates = [
        make_inputs(verification=VerificationInput(status=ph.STATUS_REJECTED), flags=flags),
        make_inputs(verification=VerificationInput(status=ph.STATUS_UNDER_REVIEW), flags=flags),
        make_inputs(wallet=WalletInput(error=WalletError(code=404, isNotFound=True)), flags=flags),
        make_inputs(pin=PinInput(walletExists=True, hasPinSet=False), flags=flags),
        make_inputs(flags=ReadinessFlags(userDismissedGate=True, freshRegistration=True)),
    ]
    for inputs in candidates:
        state = evaluate(inputs, SessionMemory(), now=100.0)
        assert state.activeModal == ph.NONE
        assert state.functionalityEnabled is True


def test_completed_phase_never_regresses():
    inputs = make_inputs(verification=VerificationInput(loading=True), wallet=WalletInput(loading=True))
    state = evaluate(inputs, SessionMemory(phase=ph.COMPLETE))
    assert state.phase == ph.COMPLETE
    assert state.functionalityEnabled is True


def test_verification_loading_shows_indicator():
    state = evaluate(make_inputs(verification=VerificationInput(loading=True)))
    assert state.loadingIndicatorVisible is True
    assert state.functionalityEnabled is False
    assert state.activeModal == ph.NONE


def test_verification_reload_after_wallet_phase_does_not_block():
    inputs = make_inputs(verification=VerificationInput(loading=True))
    state = evaluate(inputs, SessionMemory(phase=ph.WALLET))
    assert state.phase == ph.COMPLETE


def test_fresh_registration_outranks_verified_status():
    state = evaluate(make_inputs(flags=ReadinessFlags(freshRegistration=True)))
    assert state.activeModal == ph.NEEDS_VERIFICATION
    assert state.functionalityEnabled is True
    assert state.phase == ph.VERIFICATION


@pytest.mark.parametrize(
    "status,flags,expected",
    [
        (ph.STATUS_PENDING, ReadinessFlags(), ph.NEEDS_VERIFICATION),
        (ph.STATUS_IN_PROGRESS, ReadinessFlags(), ph.NEEDS_VERIFICATION),
        (None, ReadinessFlags(), ph.NEEDS_VERIFICATION),
        (ph.STATUS_UNDER_REVIEW, ReadinessFlags(), ph.PENDING_REVIEW),
        (ph.STATUS_PENDING, ReadinessFlags(pendingReviewHint=True), ph.PENDING_REVIEW),
        (ph.STATUS_REJECTED, ReadinessFlags(), ph.CONTACT_SUPPORT),
        (ph.STATUS_UNDER_REVIEW, ReadinessFlags(supportRequired=True), ph.CONTACT_SUPPORT),
    ],
)
def test_unverified_modal_selection(status, flags, expected):
    state = evaluate(make_inputs(verification=VerificationInput(status=status), flags=flags))
    assert state.activeModal == expected
    assert state.functionalityEnabled is False
    assert state.phase == ph.VERIFICATION


def test_verification_source_error_is_soft_failure():
    state = evaluate(make_inputs(verification=VerificationInput(error=True)))
    assert state.functionalityEnabled is True
    assert state.activeModal == ph.NONE
    assert state.phase == ph.VERIFICATION
    assert state.reason == "verification_soft_failure"


def test_wallet_not_found_shows_activation_with_access():
    inputs = make_inputs(wallet=WalletInput(error=WalletError(code=404, isNotFound=True)))
    state = evaluate(inputs)
    assert state.activeModal == ph.WALLET_ACTIVATION
    assert state.functionalityEnabled is True
    assert state.phase == ph.WALLET


def test_wallet_backend_error_is_soft_pass_to_pin():
    inputs = make_inputs(
        wallet=WalletInput(error=WalletError(code=500, message="upstream timeout")),
        pin=PinInput(loading=True),
    )
    state = evaluate(inputs)
    assert state.phase == ph.PIN
    assert state.functionalityEnabled is True
    assert state.activeModal == ph.NONE


def test_wallet_loading_blocks_with_indicator():
    state = evaluate(make_inputs(wallet=WalletInput(loading=True)))
    assert state.phase == ph.WALLET
    assert state.loadingIndicatorVisible is True
    assert state.functionalityEnabled is False


def test_pin_missing_shows_set_pin_with_access():
    state = evaluate(make_inputs(pin=PinInput(walletExists=True, hasPinSet=False)))
    assert state.activeModal == ph.SET_PIN
    assert state.functionalityEnabled is True
    assert state.phase == ph.PIN


def test_set_pin_suppressed_inside_debounce_window():
    inputs = make_inputs(pin=PinInput(walletExists=True, hasPinSet=False))
    memory = SessionMemory(phase=ph.PIN, pinPromptedAt=10.0)
    assert evaluate(inputs, memory, now=11.0).activeModal == ph.NONE
    assert evaluate(inputs, memory, now=12.5).activeModal == ph.SET_PIN


def test_pin_states():
    assert evaluate(make_inputs(pin=PinInput(loading=True))).loadingIndicatorVisible is True
    assert evaluate(make_inputs(pin=PinInput(loading=True))).functionalityEnabled is False

    errored = evaluate(make_inputs(pin=PinInput(error=True)))
    assert errored.functionalityEnabled is True
    assert errored.activeModal == ph.NONE

    missing_wallet = evaluate(make_inputs(pin=PinInput(walletExists=False, hasPinSet=False)))
    assert missing_wallet.activeModal == ph.WALLET_ACTIVATION
    assert missing_wallet.functionalityEnabled is True


def test_modal_with_blocked_access_only_for_verification_kinds():
    cases = [
        make_inputs(verification=VerificationInput(status=ph.STATUS_REJECTED)),
        make_inputs(verification=VerificationInput(status=ph.STATUS_UNDER_REVIEW)),
        make_inputs(wallet=WalletInput(error=WalletError(isNotFound=True))),
        make_inputs(pin=PinInput(walletExists=True)),
        make_inputs(flags=ReadinessFlags(freshRegistration=True)),
    ]
    for inputs in cases:
        state = evaluate(inputs)
        if state.activeModal in ph.DEGRADED_MODALS or state.reason == "fresh_registration":
            assert state.functionalityEnabled is True
        elif state.activeModal != ph.NONE:
            assert state.functionalityEnabled is False


def test_already_shown_modal_is_not_reselected():
    inputs = make_inputs(verification=VerificationInput(status=ph.STATUS_REJECTED))
    state = evaluate(inputs, SessionMemory(shown={ph.CONTACT_SUPPORT}))
    assert state.activeModal == ph.NONE
    assert state.modalAlreadyShownThisSession is True
    assert state.functionalityEnabled is False


def test_select_modal_keeps_visible_kind():
    memory = SessionMemory(shown={ph.SET_PIN}, visible=ph.SET_PIN, pinPromptedAt=0.0)
    assert select_modal(ph.SET_PIN, memory, now=0.5) == ph.SET_PIN
    assert select_modal(ph.WALLET_ACTIVATION, memory, now=0.5) == ph.WALLET_ACTIVATION
