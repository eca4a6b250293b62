import time
from dataclasses import asdict, replace
from typing import Callable, List, Optional

import readiness.observability.metrics as metrics
from readiness.core import phases as ph
from readiness.core.modal_gate import ModalGate
from readiness.core.rules import evaluate
from readiness.observability.logging import log
from readiness.settings import settings
from readiness.sources.inputs import StatusSources, build_inputs
from readiness.store import flag_store as fs
from readiness.store.flag_store import PersistentFlagStore
from readiness.store.models import ReadinessFlags, ReadinessInputs, ReadinessState, SessionMemory, idle_state

StateListener = Callable[[ReadinessState], None]


class ReadinessOrchestrator:
    """
    Adapter between the asynchronous world (status sources, flag store, modal
    gate) and the pure reducer in `readiness.core.rules`.

    Every source publish re-runs the reducer against the latest snapshot of
    every input; nothing is queued, so stale emissions are simply superseded.
    All I/O (flag writes) happens here on explicit user transitions, never
    inside evaluation.
    """

    def __init__(
        self,
        sources: StatusSources,
        flag_store: PersistentFlagStore,
        gate: Optional[ModalGate] = None,
        clock: Callable[[], float] = time.monotonic,
        enabled: Optional[bool] = None,
    ):
        self.sources = sources
        self.flag_store = flag_store
        self.gate = gate or ModalGate()
        self.gate.on_shown = self._on_modal_shown
        self.gate.on_closed = self.on_modal_closed
        self._clock = clock
        self.enabled = settings.READINESS_ENABLED if enabled is None else bool(enabled)

        self._authenticated = False
        self._has_credential = False
        self._flags = ReadinessFlags()
        self._memory = SessionMemory()
        self._state = idle_state()
        self._unsubscribers: List[Callable[[], None]] = []
        self._listeners: List[StateListener] = []
        self._memory_dirty = False
        self._evaluating = False

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------
    @property
    def state(self) -> ReadinessState:
        return self._state

    @property
    def memory(self) -> SessionMemory:
        return self._memory

    @property
    def flags(self) -> ReadinessFlags:
        return self._flags

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def current_inputs(self) -> ReadinessInputs:
        return build_inputs(self.sources, self._flags, self._authenticated, self._has_credential)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    def on_login(self, has_credential: bool = True) -> ReadinessState:
        """Start a session: load persisted flags, subscribe to every source, evaluate."""
        self._teardown_subscriptions()
        self._authenticated = True
        self._has_credential = bool(has_credential)
        self._memory = SessionMemory()
        self._flags = self.flag_store.load_readiness_flags()
        for source in self.sources:
            self._unsubscribers.append(source.subscribe(self._on_source_change))
        log(event="readiness_session_started", namespace=self.flag_store.namespace, enabled=self.enabled)
        return self.recompute()

    def on_logout(self) -> ReadinessState:
        """Synchronous teardown: no evaluation may run after this returns."""
        self._teardown_subscriptions()
        self._reset_sources()
        self._authenticated = False
        self._has_credential = False
        self.flag_store.clear_session_flags()
        self.gate.hide()
        self._flags = ReadinessFlags()
        self._memory = SessionMemory()
        self._memory_dirty = False
        log(event="readiness_session_ended", namespace=self.flag_store.namespace)
        self._emit(idle_state())
        return self._state

    def _teardown_subscriptions(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def _reset_sources(self) -> None:
        for source in self.sources:
            stop = getattr(source, "stop", None)
            if callable(stop):
                stop()
            source.reset()

    # ------------------------------------------------------------------
    # External transitions
    # ------------------------------------------------------------------
    def on_user_dismissed_gate(self) -> ReadinessState:
        self._flags.userDismissedGate = True
        self.flag_store.set_bool(fs.USER_DISMISSED_GATE, True)
        metrics.safe(metrics.increment_gate_dismissed)
        if self.gate.visible is not None:
            self.gate.hide(by_user=True)
        return self.recompute()

    def on_sub_flow_entered(self) -> ReadinessState:
        self._flags.inSubVerificationFlow = True
        self.flag_store.set_bool(fs.IN_SUB_VERIFICATION_FLOW, True)
        return self.recompute()

    def on_sub_flow_exited(self) -> ReadinessState:
        self._flags.inSubVerificationFlow = False
        self.flag_store.set_bool(fs.IN_SUB_VERIFICATION_FLOW, False)
        # The identity flow may have raised the support flag while we were frozen.
        self._flags.supportRequired = self.flag_store.get_bool(fs.SUPPORT_REQUIRED)
        return self.recompute()

    def on_modal_closed(self, kind: str, by_user: bool = False) -> None:
        """
        Gate callback. Programmatic closes only update bookkeeping; a user
        close also resets the kind's "already shown" bit so a later state
        change may show it again. The closed modal is not re-evaluated on the
        spot, otherwise it would pop straight back up.
        """
        if self._memory.visible == kind:
            self._memory.visible = None
        self._memory_dirty = True
        if by_user:
            self._memory.shown.discard(kind)
            log(event="modal_dismissed_by_user", kind=kind)
            if not self._evaluating and self._state.activeModal == kind:
                self._emit(replace(self._state, activeModal=ph.NONE, modalAlreadyShownThisSession=False))

    def retrigger(self, kind: str) -> ReadinessState:
        """
        Explicit user re-trigger (e.g. tapping a locked action). Shows the
        modal now if the reducer still wants it; the SET_PIN debounce only
        applies to re-fired inputs, so it is cleared here.
        """
        self._memory.shown.discard(kind)
        if kind == ph.SET_PIN:
            self._memory.pinPromptedAt = None
        log(event="modal_retriggered", kind=kind)
        return self.recompute()

    def _on_modal_shown(self, kind: str) -> None:
        self._memory.shown.add(kind)
        self._memory.visible = kind
        if kind == ph.SET_PIN:
            self._memory.pinPromptedAt = self._clock()
        self._memory_dirty = True

    def _on_source_change(self, _snapshot) -> None:
        if not self._authenticated:
            return
        self.recompute()

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------
    def _evaluate(self) -> ReadinessState:
        return evaluate(self.current_inputs(), self._memory, now=self._clock(), enabled=self.enabled)

    def recompute(self) -> ReadinessState:
        if not self._authenticated:
            self._emit(idle_state())
            return self._state

        self._evaluating = True
        try:
            self._memory_dirty = False
            state = self._evaluate()
            self.gate.sync(state)
            if self._memory_dirty:
                # Gate showed/closed something: settle once so the emitted
                # state reflects the modal actually on screen.
                self._memory_dirty = False
                state = self._evaluate()
            self._memory.phase = ph.later_phase(self._memory.phase, state.phase)
        finally:
            self._evaluating = False

        self._emit(state)
        return state

    def _emit(self, state: ReadinessState) -> None:
        changed = state != self._state
        self._state = state
        if changed:
            log(
                event="readiness_evaluated",
                namespace=self.flag_store.namespace,
                phase=state.phase,
                functionalityEnabled=state.functionalityEnabled,
                loadingIndicatorVisible=state.loadingIndicatorVisible,
                activeModal=state.activeModal,
                reason=state.reason,
            )
        for listener in list(self._listeners):
            listener(state)

    def describe(self) -> dict:
        """Compact snapshot for diagnostics."""
        return {
            "namespace": self.flag_store.namespace,
            "authenticated": self._authenticated,
            "enabled": self.enabled,
            "state": asdict(self._state),
            "memory": {
                "phase": self._memory.phase,
                "shown": sorted(self._memory.shown),
                "visible": self._memory.visible,
            },
            "flags": asdict(self._flags),
        }
