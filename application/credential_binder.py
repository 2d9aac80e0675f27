from __future__ import annotations

import logging
from dataclasses import replace
from typing import List

from domain.errors import (
    CredentialMismatchError,
    RegistrationFailedError,
    WalletAuthError,
)
from domain.gateways import SignerRegistry
from domain.models import SKIPPED_SETUP, Identity, PasskeyState

logger = logging.getLogger(__name__)

MAX_PENDING_REGISTRATIONS = 100


def build_signer_payload(identity: Identity, passkey_address: str) -> dict:
    payload = {
        "contractId": passkey_address,
        "signerId": str(identity.id),
    }
    if identity.email:
        payload["email"] = identity.email
    if identity.phone:
        payload["phone"] = identity.phone
    return payload


def _registration_key(payload: dict) -> tuple:
    return payload["contractId"], payload["signerId"]


class CredentialBinder:
    """
    Associates a passkey address with an identity, at most once.

    Signer registration is best-effort: failures are logged and kept in
    `pending_registrations`, one entry per (contract, signer) and at most
    `MAX_PENDING_REGISTRATIONS`, until `retry_pending_registrations` succeeds.
    """

    def __init__(self, signer_registry: SignerRegistry) -> None:
        self._signer_registry = signer_registry
        self.pending_registrations: List[RegistrationFailedError] = []

    async def bind(self, identity: Identity, passkey_address: str) -> Identity:
        passkey_address = (passkey_address or "").strip()
        if not passkey_address:
            raise ValueError("Passkey address is required")
        if passkey_address == SKIPPED_SETUP:
            raise ValueError(f"'{SKIPPED_SETUP}' is not a passkey address")

        state = identity.passkey_state
        if state is PasskeyState.BOUND:
            if identity.passkey_address != passkey_address:
                logger.warning("Passkey mismatch for user %s", identity.id)
                raise CredentialMismatchError(identity.id)
            return identity

        # UNSET, or SKIPPED and the user has now chosen to create a passkey.
        bound = replace(identity, passkey_address=passkey_address)
        await self._register_signer(build_signer_payload(bound, passkey_address))
        return bound

    async def _register_signer(self, payload: dict) -> bool:
        try:
            await self._signer_registry.save_signer(payload)
        except WalletAuthError as exc:
            self._queue(RegistrationFailedError(payload, exc))
            logger.warning(
                "Signer registration for user %s failed, queued for retry: %s",
                payload["signerId"],
                exc,
            )
            return False
        logger.info("Registered signer for user %s", payload["signerId"])
        return True

    def _queue(self, failure: RegistrationFailedError) -> None:
        key = _registration_key(failure.payload)
        self.pending_registrations = [
            queued for queued in self.pending_registrations
            if _registration_key(queued.payload) != key
        ]
        self.pending_registrations.append(failure)
        if len(self.pending_registrations) > MAX_PENDING_REGISTRATIONS:
            dropped = self.pending_registrations.pop(0)
            logger.error(
                "Registration queue full, dropping signer %s for %s",
                dropped.payload["signerId"],
                dropped.payload["contractId"],
            )

    async def retry_pending_registrations(self) -> int:
        """Re-attempt queued registrations; return how many went through."""

        pending, self.pending_registrations = self.pending_registrations, []
        succeeded = 0
        for failure in pending:
            if await self._register_signer(failure.payload):
                succeeded += 1
        return succeeded
