from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

# Recorded in place of a passkey address when the user explicitly opts out.
SKIPPED_SETUP = "skipped_setup"

# The client never sees the real PIN hash; it only records that one exists.
PIN_SET_MARKER = "pin_set"

PIN_LENGTH = 6


class PasskeyState(Enum):
    UNSET = "unset"
    BOUND = "bound"
    SKIPPED = "skipped"


class OnboardingStep(Enum):
    CREATE_PIN = "create-pin"
    CONFIRM_PIN = "confirm-pin"
    PASSKEY = "passkey"


@dataclass(frozen=True)
class Identity:
    """
    A resolved wallet user.

    Instances are immutable: the binder and the onboarding flow return
    updated copies via `dataclasses.replace` so that a failed step never
    leaves a half-updated identity behind.
    """

    id: int
    email: Optional[str] = None
    phone: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    hashed_pin: Optional[str] = None
    passkey_address: Optional[str] = None
    wallet_address: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.email and not self.phone:
            raise ValueError("Identity requires an email or a phone number.")

    @property
    def has_pin(self) -> bool:
        return self.hashed_pin is not None

    @property
    def passkey_state(self) -> PasskeyState:
        if self.passkey_address is None:
            return PasskeyState.UNSET
        if self.passkey_address == SKIPPED_SETUP:
            return PasskeyState.SKIPPED
        return PasskeyState.BOUND

    @property
    def identifier(self) -> str:
        """The contact value used to look this user up (email first)."""

        return self.email or self.phone or ""

    @property
    def display_name(self) -> Optional[str]:
        if not self.first_name:
            return None
        if self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.first_name


@dataclass(frozen=True)
class Session:
    """The single persisted record representing "currently logged in"."""

    identity: Identity
    issued_at: str


@dataclass
class OnboardingState:
    """
    Transient state of the PIN / passkey onboarding flow.

    Never persisted: a reload rebuilds it from the identity, which is
    why the step can be resumed but the digit buffers cannot.
    """

    step: OnboardingStep = OnboardingStep.CREATE_PIN
    pin_buffer: str = ""
    confirm_buffer: str = ""
    error: Optional[Exception] = None
    busy: bool = False
    completed: bool = False

    @property
    def active_buffer(self) -> str:
        if self.step is OnboardingStep.CONFIRM_PIN:
            return self.confirm_buffer
        return self.pin_buffer
