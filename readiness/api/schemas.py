from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from readiness.store import models

PhaseName = Literal["VERIFICATION", "WALLET", "PIN", "COMPLETE"]
ModalName = Literal["NONE", "NEEDS_VERIFICATION", "PENDING_REVIEW", "WALLET_ACTIVATION", "SET_PIN", "CONTACT_SUPPORT"]
StatusName = Literal["PENDING", "IN_PROGRESS", "UNDER_REVIEW", "VERIFIED", "APPROVED", "REJECTED"]


class VerificationIn(BaseModel):
    status: Optional[StatusName] = None
    identityVerified: bool = False
    biometricVerified: bool = False
    overallVerified: bool = False
    loading: bool = False
    error: bool = False


class WalletErrorIn(BaseModel):
    code: Optional[int] = None
    isNotFound: bool = False
    message: str = ""


class WalletIn(BaseModel):
    # Opaque backend payloads; only presence matters to the gate
    details: Optional[dict] = None
    balance: Optional[dict] = None
    loading: bool = False
    error: Optional[WalletErrorIn] = None


class PinIn(BaseModel):
    walletExists: bool = False
    hasPinSet: bool = False
    loading: bool = False
    unknown: bool = False
    error: bool = False


class FlagsIn(BaseModel):
    freshRegistration: bool = False
    inSubVerificationFlow: bool = False
    userDismissedGate: bool = False
    supportRequired: bool = False
    pendingReviewHint: bool = False


class MemoryIn(BaseModel):
    phase: PhaseName = "VERIFICATION"
    shown: List[ModalName] = Field(default_factory=list)
    visible: Optional[ModalName] = None
    pinPromptedAt: Optional[float] = None


class EvaluateRequest(BaseModel):
    authenticated: bool = True
    hasCredential: bool = True
    verification: VerificationIn = Field(default_factory=VerificationIn)
    wallet: WalletIn = Field(default_factory=WalletIn)
    pin: PinIn = Field(default_factory=PinIn)
    flags: FlagsIn = Field(default_factory=FlagsIn)
    memory: MemoryIn = Field(default_factory=MemoryIn)
    # Seconds on the same clock as memory.pinPromptedAt
    now: float = 0.0
    enabled: Optional[bool] = None

    def to_inputs(self) -> models.ReadinessInputs:
        wallet_error = None
        if self.wallet.error is not None:
            wallet_error = models.WalletError(**self.wallet.error.model_dump())
        return models.ReadinessInputs(
            authenticated=self.authenticated,
            hasCredential=self.hasCredential,
            verification=models.VerificationInput(**self.verification.model_dump()),
            wallet=models.WalletInput(
                details=self.wallet.details,
                balance=self.wallet.balance,
                loading=self.wallet.loading,
                error=wallet_error,
            ),
            pin=models.PinInput(**self.pin.model_dump()),
            flags=models.ReadinessFlags(**self.flags.model_dump()),
        )

    def to_memory(self) -> models.SessionMemory:
        return models.SessionMemory(
            phase=self.memory.phase,
            shown=set(self.memory.shown),
            visible=self.memory.visible,
            pinPromptedAt=self.memory.pinPromptedAt,
        )


class ReadinessStateOut(BaseModel):
    phase: PhaseName
    functionalityEnabled: bool
    loadingIndicatorVisible: bool
    activeModal: ModalName
    modalAlreadyShownThisSession: bool
    reason: str


class EvaluateResponse(BaseModel):
    status: Literal["success", "error"] = "success"
    state: ReadinessStateOut
