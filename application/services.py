from __future__ import annotations

import logging
import secrets
import string
from dataclasses import replace
from typing import Optional

from application.auth_gateway import RequiredStep, required_step
from application.credential_binder import CredentialBinder
from application.identity_resolver import IdentityResolver
from application.onboarding import OnboardingStateMachine
from application.session_store import SessionStore
from domain.errors import (
    CeremonyFailedError,
    CredentialMismatchError,
    LoginError,
    MalformedResponseError,
    NotFoundError,
    RemoteUnavailableError,
)
from domain.gateways import PasskeyCeremony, PinService
from domain.models import Identity

logger = logging.getLogger(__name__)

WALLET_ADDRESS_PREFIX = "stellar:"
_WALLET_ALPHABET = string.digits + string.ascii_lowercase


def generate_wallet_address() -> str:
    suffix = "".join(secrets.choice(_WALLET_ALPHABET) for _ in range(13))
    return WALLET_ADDRESS_PREFIX + suffix


class AuthContext:
    """
    Per-client authentication state.

    Owned by the presentation layer (one per browser profile, chat or
    user): `initialize()` loads the persisted session at start-up and
    `logout()` tears it down. All identity changes go through `_commit`
    so the in-memory identity and the session record never diverge.
    """

    def __init__(
        self,
        resolver: IdentityResolver,
        binder: CredentialBinder,
        session_store: SessionStore,
        pin_service: PinService,
        ceremony: PasskeyCeremony,
    ) -> None:
        self._resolver = resolver
        self._binder = binder
        self._session_store = session_store
        self._pin_service = pin_service
        self._ceremony = ceremony

        self.identity: Optional[Identity] = None
        self.is_loading = True
        self._epoch = 0
        self._onboarding: Optional[OnboardingStateMachine] = None

    @property
    def is_logged_in(self) -> bool:
        return self.identity is not None

    def initialize(self) -> Optional[Identity]:
        self.identity = self._session_store.load()
        self.is_loading = False
        return self.identity

    def refresh(self) -> Optional[Identity]:
        """Re-read the session record (e.g. after a hop to another page)."""

        self.identity = self._session_store.load()
        return self.identity

    def required_step(self) -> RequiredStep:
        return required_step(self.identity)

    def _commit(self, identity: Identity) -> None:
        self._session_store.save(identity)
        self.identity = identity

    async def login(self, identifier: str, passkey_address: str) -> Optional[Identity]:
        """
        Resolve `identifier`, bind `passkey_address` and persist the session.

        Raises `LoginError` with a user-facing message. Returns None when a
        logout happened while the login was in flight; the result is then
        discarded.
        """

        if not passkey_address:
            raise LoginError("Passkey address is required")

        epoch = self._epoch
        self.is_loading = True
        try:
            if self._binder.pending_registrations:
                await self._binder.retry_pending_registrations()
            identity = await self._resolver.resolve(identifier)
            if epoch != self._epoch:
                logger.info("Discarding lookup for %s: session changed meanwhile", identifier)
                return None
            identity = await self._binder.bind(identity, passkey_address)
        except ValueError as exc:
            raise LoginError(str(exc)) from exc
        except NotFoundError as exc:
            raise LoginError(str(exc)) from exc
        except RemoteUnavailableError as exc:
            logger.warning("Login for %s failed, lookup unavailable: %s", identifier, exc)
            raise LoginError("The service is unavailable. Please try again.") from exc
        except MalformedResponseError as exc:
            logger.exception("Login for %s failed on a malformed lookup response", identifier)
            raise LoginError("Unexpected response from the server.") from exc
        except CredentialMismatchError as exc:
            raise LoginError(str(exc)) from exc
        finally:
            if epoch == self._epoch:
                self.is_loading = False

        if epoch != self._epoch:
            logger.info("Discarding login result for %s: session changed meanwhile", identifier)
            return None

        self._commit(identity)
        logger.info("Login successful for user %s", identity.id)
        return identity

    async def sign_in(self, identifier: str) -> Optional[Identity]:
        """Run the passkey `connect` ceremony, then `login`."""

        identifier = (identifier or "").strip()
        if not identifier:
            raise LoginError("Email or phone is required")

        epoch = self._epoch
        try:
            address = await self._ceremony.connect(identifier)
        except CeremonyFailedError as exc:
            raise LoginError("Failed to connect with passkey. Please try again.") from exc
        if epoch != self._epoch:
            return None
        return await self.login(identifier, address)

    async def register(
        self,
        first_name: str,
        last_name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Identity:
        try:
            identity = await self._resolver.register(first_name, last_name, email, phone)
        except ValueError as exc:
            raise LoginError(str(exc)) from exc
        except (RemoteUnavailableError, MalformedResponseError) as exc:
            logger.warning("Registration failed: %s", exc)
            raise LoginError("Failed to create account") from exc

        self._epoch += 1
        self._close_onboarding()
        self._commit(identity)
        logger.info("Registered user %s", identity.id)
        return identity

    def logout(self) -> None:
        self._epoch += 1
        self._close_onboarding()
        self._session_store.clear()
        self.identity = None
        self.is_loading = False
        logger.info("Logged out")

    def _close_onboarding(self) -> None:
        if self._onboarding is not None:
            self._onboarding.close()
            self._onboarding = None

    def start_onboarding(self, route_user_id: int) -> OnboardingStateMachine:
        """
        Open the onboarding flow for the user named in the page route.

        The route id must belong to the current session.
        """

        if self.identity is None:
            raise LoginError("Please sign in first.")
        if self.identity.id != route_user_id:
            logger.warning(
                "Onboarding route user %s does not match session user %s",
                route_user_id,
                self.identity.id,
            )
            raise LoginError("User ID mismatch")

        if self._onboarding is not None and not self._onboarding.closed:
            if self._onboarding.identity.id == route_user_id and not self._onboarding.state.completed:
                return self._onboarding
            self._onboarding.close()

        self._onboarding = OnboardingStateMachine(
            identity=self.identity,
            pin_service=self._pin_service,
            binder=self._binder,
            ceremony=self._ceremony,
            persist=self._commit,
        )
        return self._onboarding

    def ensure_wallet_address(self) -> Optional[str]:
        """Provision a wallet address once the user has been granted access."""

        if self.identity is None or self.required_step() is not RequiredStep.GRANTED:
            return None
        if self.identity.wallet_address:
            return self.identity.wallet_address

        self._commit(replace(self.identity, wallet_address=generate_wallet_address()))
        logger.info("Provisioned wallet address for user %s", self.identity.id)
        return self.identity.wallet_address
