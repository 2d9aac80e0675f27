from __future__ import annotations

from typing import Callable, Dict

from application.auth_gateway import RequiredStep
from application.onboarding import Feedback, OnboardingResult, OnboardingStateMachine
from application.services import AuthContext
from domain.models import PIN_LENGTH, OnboardingStep


class ContextRegistry:
    """
    Lazily builds one `AuthContext` per chat / user.

    Front-ends never share authentication state between clients; this is
    the bot-side equivalent of one browser profile per user.
    """

    def __init__(self, factory: Callable[[str], AuthContext]) -> None:
        self._factory = factory
        self._contexts: Dict[str, AuthContext] = {}

    def get(self, owner) -> AuthContext:
        key = str(owner)
        if key not in self._contexts:
            self._contexts[key] = self._factory(key)
        return self._contexts[key]


STEP_PROMPTS = {
    RequiredStep.SIGN_IN: "You are not signed in.",
    RequiredStep.CREATE_PIN: "Your account needs a PIN.",
    RequiredStep.PASSKEY: "Your PIN is set. Link a passkey or skip for now.",
    RequiredStep.GRANTED: "You are signed in.",
}


def pin_dots(buffer: str) -> str:
    return "●" * len(buffer) + "○" * (PIN_LENGTH - len(buffer))


async def enter_pin(machine: OnboardingStateMachine, digits: str) -> OnboardingResult:
    """Feed typed digits to the machine, stopping at the first refusal or failure."""

    result = OnboardingResult(accepted=False)
    for digit in digits:
        result = await machine.press_digit(digit)
        if not result.accepted or result.feedback is Feedback.ERROR:
            break
    return result


def onboarding_text(machine: OnboardingStateMachine) -> str:
    """Plain-text rendering of the onboarding screen."""

    state = machine.state
    if state.completed:
        return "PIN setup complete."

    if state.step is OnboardingStep.CREATE_PIN:
        lines = ["Create your 6-digit PIN", pin_dots(state.pin_buffer)]
    elif state.step is OnboardingStep.CONFIRM_PIN:
        lines = ["Confirm your PIN", pin_dots(state.confirm_buffer)]
    else:
        lines = [
            "PIN set successfully",
            "Complete your passkey setup, or skip for now and set it up later.",
        ]

    if state.busy:
        lines.append("Please wait...")
    if state.error is not None:
        lines.append(f"⚠ {state.error}")
    return "\n".join(lines)


def welcome_text(context: AuthContext) -> str:
    identity = context.identity
    if identity is None:
        return STEP_PROMPTS[RequiredStep.SIGN_IN]
    name = identity.display_name or "User"
    return f"Welcome, {name}. {STEP_PROMPTS[context.required_step()]}"
