from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol


@dataclass
class SetPinResult:
    success: bool
    message: str = ""


class UserDirectory(Protocol):
    """
    Remote user-lookup and registration service.

    Lookups return the raw, untrusted payload found for the identifier
    (decoding is the resolver's job), or None when the service reports
    that no such user exists. Transport failures and non-success statuses
    raise `RemoteUnavailableError`.
    """

    async def get_user_by_email(self, email: str) -> Optional[Any]:
        ...

    async def get_user_by_phone(self, phone: str) -> Optional[Any]:
        ...

    async def register_user(
        self,
        first_name: str,
        last_name: str,
        email: Optional[str],
        phone: Optional[str],
    ) -> Any:
        ...


class PinService(Protocol):
    async def set_pin(self, user_id: int, pin: str) -> SetPinResult:
        ...


class SignerRegistry(Protocol):
    async def save_signer(self, payload: dict) -> None:
        """
        Register a passkey contract as a signer for a user.

        Payload: {contractId, signerId, email?, phone?}.
        """

        ...


class PasskeyCeremony(Protocol):
    """
    Platform-authenticator ceremony, opaque beyond the address it yields.

    Both operations raise `CeremonyFailedError` on failure.
    """

    async def create(self, identifier: str) -> str:
        ...

    async def connect(self, identifier: str) -> str:
        ...
