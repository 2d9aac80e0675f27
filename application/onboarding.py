from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional

from application.auth_gateway import POST_ONBOARDING_ROUTE
from application.credential_binder import CredentialBinder
from domain.errors import (
    CeremonyFailedError,
    CredentialMismatchError,
    PinMismatchError,
    PinRejectedError,
    WalletAuthError,
)
from domain.gateways import PasskeyCeremony, PinService
from domain.models import (
    PIN_LENGTH,
    PIN_SET_MARKER,
    SKIPPED_SETUP,
    Identity,
    OnboardingState,
    OnboardingStep,
    PasskeyState,
)

logger = logging.getLogger(__name__)

DEFAULT_PIN_ERROR = "Failed to save PIN. Please try again."


class Feedback(Enum):
    """Haptic cue the presentation layer should play for an input event."""

    NONE = "none"
    MEDIUM = "medium"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


@dataclass
class OnboardingResult:
    accepted: bool
    feedback: Feedback = Feedback.NONE
    error_message: Optional[str] = None
    redirect_to: Optional[str] = None


_IGNORED = OnboardingResult(accepted=False)


class OnboardingStateMachine:
    """
    Drives create-pin -> confirm-pin -> passkey for one identity.

    Every await is a suspension point guarded by `state.busy`; input that
    arrives meanwhile is ignored. Results that come back after `close()` or
    `cancel()` are dropped. Failures stay in `state.error` and are reported
    through `OnboardingResult`, never raised.
    """

    def __init__(
        self,
        identity: Identity,
        pin_service: PinService,
        binder: CredentialBinder,
        ceremony: PasskeyCeremony,
        persist: Callable[[Identity], None],
    ) -> None:
        self.identity = identity
        self._pin_service = pin_service
        self._binder = binder
        self._ceremony = ceremony
        self._persist = persist
        self._generation = 0
        self._closed = False

        initial = OnboardingStep.PASSKEY if identity.has_pin else OnboardingStep.CREATE_PIN
        self.state = OnboardingState(step=initial)

    @property
    def step(self) -> OnboardingStep:
        return self.state.step

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Abandon the flow (logout); pending results will be discarded."""

        self._closed = True
        self._generation += 1
        self.state.busy = False

    def _accepts_input(self) -> bool:
        return not (self._closed or self.state.busy or self.state.completed)

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    def _fail(self, error: Exception, feedback: Feedback = Feedback.ERROR) -> OnboardingResult:
        self.state.error = error
        return OnboardingResult(accepted=True, feedback=feedback, error_message=str(error))

    # PIN entry

    async def press_digit(self, digit: str) -> OnboardingResult:
        if not self._accepts_input() or self.state.step is OnboardingStep.PASSKEY:
            return _IGNORED
        if len(digit) != 1 or not digit.isdigit():
            return OnboardingResult(accepted=False, feedback=Feedback.WARNING)

        state = self.state
        if len(state.active_buffer) >= PIN_LENGTH:
            return OnboardingResult(accepted=False, feedback=Feedback.WARNING)

        if state.step is OnboardingStep.CREATE_PIN:
            state.pin_buffer += digit
            if len(state.pin_buffer) == PIN_LENGTH:
                state.step = OnboardingStep.CONFIRM_PIN
                state.confirm_buffer = ""
                state.error = None
            return OnboardingResult(accepted=True, feedback=Feedback.MEDIUM)

        state.confirm_buffer += digit
        state.error = None
        if len(state.confirm_buffer) < PIN_LENGTH:
            return OnboardingResult(accepted=True, feedback=Feedback.MEDIUM)
        return await self._submit_pin()

    def delete_digit(self) -> OnboardingResult:
        if not self._accepts_input() or self.state.step is OnboardingStep.PASSKEY:
            return _IGNORED

        state = self.state
        if not state.active_buffer:
            return OnboardingResult(accepted=False, feedback=Feedback.WARNING)
        if state.step is OnboardingStep.CREATE_PIN:
            state.pin_buffer = state.pin_buffer[:-1]
        else:
            state.confirm_buffer = state.confirm_buffer[:-1]
        return OnboardingResult(accepted=True, feedback=Feedback.MEDIUM)

    def cancel(self) -> OnboardingResult:
        """Leave the confirm step and start the PIN over."""

        if self._closed or self.state.completed or self.state.step is not OnboardingStep.CONFIRM_PIN:
            return _IGNORED

        self._generation += 1
        self.state = OnboardingState(step=OnboardingStep.CREATE_PIN)
        return OnboardingResult(accepted=True, feedback=Feedback.MEDIUM)

    async def _submit_pin(self) -> OnboardingResult:
        state = self.state
        if state.confirm_buffer != state.pin_buffer:
            state.confirm_buffer = ""
            return self._fail(PinMismatchError())

        generation = self._generation
        state.busy = True
        state.error = None
        failure: Optional[Exception] = None
        try:
            response = await self._pin_service.set_pin(self.identity.id, state.pin_buffer)
            if not response.success:
                failure = PinRejectedError(response.message or DEFAULT_PIN_ERROR)
        except WalletAuthError as exc:
            logger.warning("Setting PIN for user %s failed: %s", self.identity.id, exc)
            failure = exc
        finally:
            if self._is_current(generation):
                state.busy = False

        if not self._is_current(generation):
            logger.info("Dropping set-PIN result for user %s: flow was reset", self.identity.id)
            return _IGNORED

        if failure is not None:
            state.confirm_buffer = ""
            return self._fail(failure)

        self.identity = replace(self.identity, hashed_pin=PIN_SET_MARKER)
        self._persist(self.identity)
        self.state = OnboardingState(step=OnboardingStep.PASSKEY)
        logger.info("PIN set for user %s", self.identity.id)
        return OnboardingResult(accepted=True, feedback=Feedback.SUCCESS)

    # Passkey step

    def _passkey_ready(self) -> bool:
        return self._accepts_input() and self.state.step is OnboardingStep.PASSKEY

    async def create_passkey(self) -> OnboardingResult:
        if not self._passkey_ready():
            return _IGNORED

        generation = self._generation
        self.state.busy = True
        self.state.error = None
        try:
            address = (await self._ceremony.create(self.identity.identifier) or "").strip()
            if not address or address == SKIPPED_SETUP:
                raise CeremonyFailedError("Passkey ceremony returned no address.")
            bound = await self._binder.bind(self.identity, address)
        except (CeremonyFailedError, CredentialMismatchError) as exc:
            if not self._is_current(generation):
                return _IGNORED
            logger.warning("Passkey setup for user %s failed: %s", self.identity.id, exc)
            return self._fail(exc)
        finally:
            if self._is_current(generation):
                self.state.busy = False

        if not self._is_current(generation):
            logger.info("Dropping passkey result for user %s: flow was closed", self.identity.id)
            return _IGNORED

        return self._complete(bound)

    def skip_passkey(self) -> OnboardingResult:
        if not self._passkey_ready():
            return _IGNORED

        if self.identity.passkey_state is PasskeyState.BOUND:
            return self._complete(self.identity)
        return self._complete(replace(self.identity, passkey_address=SKIPPED_SETUP))

    def _complete(self, identity: Identity) -> OnboardingResult:
        self.identity = identity
        self._persist(identity)
        self.state.completed = True
        self.state.error = None
        logger.info(
            "Onboarding complete for user %s (passkey %s)",
            identity.id,
            identity.passkey_state.value,
        )
        return OnboardingResult(
            accepted=True,
            feedback=Feedback.SUCCESS,
            redirect_to=POST_ONBOARDING_ROUTE,
        )
