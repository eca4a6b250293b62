from typing import Callable, Optional, Protocol

import readiness.observability.metrics as metrics
from readiness.core import phases as ph
from readiness.observability.logging import log
from readiness.store.models import ReadinessState


class ModalRenderer(Protocol):
    def present(self, kind: str) -> None: ...

    def dismiss(self, kind: str) -> None: ...


class LoggingRenderer:
    """Default renderer: no UI, just a trace of what would be on screen."""

    def present(self, kind: str) -> None:
        log(event="modal_present", kind=kind)

    def dismiss(self, kind: str) -> None:
        log(event="modal_dismiss", kind=kind)


class ModalGate:
    """
    Single visible dialog driven by ReadinessState.active_modal.

    show(kind) is a no-op while `kind` is already visible, so repeated
    emissions of the same decision never re-present it. hide() always clears
    and reports (kind, by_user) back to the orchestrator.
    """

    def __init__(
        self,
        renderer: Optional[ModalRenderer] = None,
        on_shown: Optional[Callable[[str], None]] = None,
        on_closed: Optional[Callable[[str, bool], None]] = None,
    ):
        self.renderer = renderer or LoggingRenderer()
        self.on_shown = on_shown
        self.on_closed = on_closed
        self.visible: Optional[str] = None
        self.show_count = 0

    def show(self, kind: str) -> bool:
        if kind == ph.NONE:
            self.hide()
            return False
        if self.visible == kind:
            return False
        if self.visible is not None:
            self.hide()
        try:
            self.renderer.present(kind)
        except Exception as e:
            log(event="modal_render_failed", kind=kind, errorType=type(e).__name__, error=str(e)[:300])
            return False
        self.visible = kind
        self.show_count += 1
        metrics.safe(metrics.increment_modal_shown, kind)
        log(event="modal_shown", kind=kind)
        if self.on_shown is not None:
            self.on_shown(kind)
        return True

    def hide(self, by_user: bool = False) -> Optional[str]:
        kind = self.visible
        self.visible = None
        if kind is None:
            return None
        try:
            self.renderer.dismiss(kind)
        except Exception as e:
            log(event="modal_render_failed", kind=kind, errorType=type(e).__name__, error=str(e)[:300])
        log(event="modal_closed", kind=kind, byUser=bool(by_user))
        if self.on_closed is not None:
            self.on_closed(kind, by_user)
        return kind

    def dismiss_by_user(self) -> Optional[str]:
        return self.hide(by_user=True)

    def sync(self, state: ReadinessState) -> None:
        if state.activeModal == ph.NONE:
            if self.visible is not None:
                self.hide()
            return
        self.show(state.activeModal)
