from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterator, Optional

from readiness.core import phases as ph
from readiness.settings import settings
from readiness.sources.status_source import PolledSource, SourceSnapshot, StatusSource
from readiness.store.models import (
    PinInput,
    ReadinessFlags,
    ReadinessInputs,
    VerificationInput,
    WalletError,
    WalletInput,
)

NOT_FOUND_MARKERS = ("not found", "wallet not found")


@dataclass
class StatusSources:
    verification: StatusSource
    walletDetails: StatusSource
    walletBalance: StatusSource
    pin: StatusSource

    def __iter__(self) -> Iterator[StatusSource]:
        return iter((self.verification, self.walletDetails, self.walletBalance, self.pin))


def build_polled_sources(
    fetch_verification: Callable[[], Awaitable[Any]],
    fetch_wallet_details: Callable[[], Awaitable[Any]],
    fetch_wallet_balance: Callable[[], Awaitable[Any]],
    fetch_pin_status: Callable[[], Awaitable[Any]],
) -> StatusSources:
    """
    Verification status is polled (it changes while a review is pending);
    wallet and pin are fetched once and refreshed on demand.
    """
    return StatusSources(
        verification=PolledSource("verification", fetch_verification, interval=settings.STATUS_POLL_INTERVAL_SEC),
        walletDetails=PolledSource("wallet_details", fetch_wallet_details),
        walletBalance=PolledSource("wallet_balance", fetch_wallet_balance),
        pin=PolledSource("pin_status", fetch_pin_status),
    )


def _field(data: Any, name: str, default: Any = None) -> Any:
    """Backend payloads arrive as dicts or attribute objects."""
    if data is None:
        return default
    if isinstance(data, dict):
        return data.get(name, default)
    return getattr(data, name, default)


def is_fully_verified(data: Any) -> bool:
    return (
        _status(data) in ph.VERIFIED_STATUSES
        and bool(_field(data, "isVerified"))
        and bool(_field(data, "bvnVerified"))
        and bool(_field(data, "selfieVerified"))
    )


def _status(data: Any) -> Optional[str]:
    # Unknown backend statuses read as "no status yet"
    status = str(_field(data, "kycStatus") or "").strip().upper()
    return status if status in ph.VERIFICATION_STATUSES else None


def verification_from_snapshot(snap: SourceSnapshot) -> VerificationInput:
    data = snap.data
    if data is None:
        return VerificationInput(loading=bool(snap.isLoading), error=bool(snap.isError) and not snap.isLoading)
    return VerificationInput(
        status=_status(data),
        identityVerified=bool(_field(data, "bvnVerified")),
        biometricVerified=bool(_field(data, "selfieVerified")),
        overallVerified=is_fully_verified(data),
        loading=False,
        error=False,
    )


def _is_not_found(snap: SourceSnapshot) -> bool:
    err = snap.error
    if err is None:
        return False
    if err.statusCode == 404:
        return True
    msg = (err.message or "").lower()
    return any(m in msg for m in NOT_FOUND_MARKERS)


def _wallet_error(snap: SourceSnapshot) -> Optional[WalletError]:
    if not snap.isError or snap.data is not None:
        return None
    return WalletError(
        code=snap.error.statusCode if snap.error else None,
        isNotFound=_is_not_found(snap),
        message=(snap.error.message if snap.error else "") or "",
    )


def wallet_from_snapshots(details: SourceSnapshot, balance: SourceSnapshot) -> WalletInput:
    # A "not found" on either call outranks a transient failure on the other.
    errors = [e for e in (_wallet_error(details), _wallet_error(balance)) if e is not None]
    errors.sort(key=lambda e: not e.isNotFound)
    return WalletInput(
        details=details.data,
        balance=balance.data,
        loading=bool(details.isLoading or balance.isLoading),
        error=errors[0] if errors else None,
    )


def pin_from_snapshot(snap: SourceSnapshot) -> PinInput:
    data = snap.data
    if data is None:
        return PinInput(
            loading=bool(snap.isLoading),
            error=bool(snap.isError) and not snap.isLoading,
            unknown=not snap.isLoading and not snap.isError,
        )
    return PinInput(
        walletExists=bool(_field(data, "walletExists")),
        hasPinSet=bool(_field(data, "hasPinSet")),
    )


def build_inputs(
    sources: StatusSources,
    flags: ReadinessFlags,
    authenticated: bool,
    has_credential: bool,
) -> ReadinessInputs:
    """Assemble reducer inputs from the most recent snapshot of every source."""
    return ReadinessInputs(
        authenticated=bool(authenticated),
        hasCredential=bool(has_credential),
        verification=verification_from_snapshot(sources.verification.snapshot),
        wallet=wallet_from_snapshots(sources.walletDetails.snapshot, sources.walletBalance.snapshot),
        pin=pin_from_snapshot(sources.pin.snapshot),
        flags=flags,
    )
