from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional

from domain.models import Identity, PasskeyState

logger = logging.getLogger(__name__)

SIGN_IN_ROUTE = "/auth/signin"
DASHBOARD_ROUTE = "/dashboard"
POST_ONBOARDING_ROUTE = "/dashboard?pinVerified=true"


class RequiredStep(Enum):
    SIGN_IN = "sign-in"
    CREATE_PIN = "create-pin"
    PASSKEY = "passkey"
    GRANTED = "granted"


def required_step(identity: Optional[Identity]) -> RequiredStep:
    if identity is None:
        return RequiredStep.SIGN_IN
    if not identity.has_pin:
        return RequiredStep.CREATE_PIN
    if identity.passkey_state is PasskeyState.UNSET:
        return RequiredStep.PASSKEY
    return RequiredStep.GRANTED


def onboarding_route(user_id: int) -> str:
    return f"/wallet/onboarding/{user_id}"


def passkey_route(user_id: int) -> str:
    return f"/wallet/onboarding/{user_id}/passkey"


def route_for(step: RequiredStep, identity: Optional[Identity]) -> str:
    if step is RequiredStep.SIGN_IN or identity is None:
        return SIGN_IN_ROUTE
    if step is RequiredStep.CREATE_PIN:
        return onboarding_route(identity.id)
    if step is RequiredStep.PASSKEY:
        return passkey_route(identity.id)
    return DASHBOARD_ROUTE


def _path(route: str) -> str:
    return route.split("?", 1)[0]


def is_public_route(route: str) -> bool:
    path = _path(route)
    return path == "/" or path.startswith("/auth/")


def is_onboarding_route(route: str) -> bool:
    return _path(route).startswith("/wallet/onboarding/")


class AuthGateway:
    """
    Route guard: maps the identity state to a required step and issues at
    most one redirect per evaluation cycle.

    The presentation layer calls `begin_cycle()` once the identity has
    settled (e.g. after a render or a completed refresh) to re-arm it.
    """

    def __init__(self, navigate: Callable[[str], None]) -> None:
        self._navigate = navigate
        self._redirected = False

    @property
    def has_redirected(self) -> bool:
        return self._redirected

    def begin_cycle(self) -> None:
        self._redirected = False

    def target_for(self, identity: Optional[Identity], current_route: str) -> Optional[str]:
        """Pure part of `evaluate`: where to go from `current_route`, if anywhere."""

        step = required_step(identity)

        if step is RequiredStep.SIGN_IN:
            return None if is_public_route(current_route) else SIGN_IN_ROUTE

        if step is RequiredStep.GRANTED:
            if is_public_route(current_route) or is_onboarding_route(current_route):
                return DASHBOARD_ROUTE
            return None

        target = route_for(step, identity)
        return None if _path(current_route) == target else target

    def evaluate(
        self,
        identity: Optional[Identity],
        current_route: str,
        loading: bool = False,
    ) -> Optional[str]:
        if loading or self._redirected:
            return None

        target = self.target_for(identity, current_route)
        if target is None:
            return None

        self._redirected = True
        logger.debug("Redirecting %s -> %s", current_route, target)
        self._navigate(target)
        return target
