from __future__ import annotations

from typing import Optional


class WalletAuthError(Exception):
    """Base class for every failure raised by the identity/onboarding core."""


class NotFoundError(WalletAuthError):
    def __init__(self, identifier: str) -> None:
        super().__init__(f"No account found for {identifier}.")
        self.identifier = identifier


class RemoteUnavailableError(WalletAuthError):
    """A remote call did not complete with a success status."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(WalletAuthError):
    """The remote payload is outside the set of accepted shapes."""


class CredentialMismatchError(WalletAuthError):
    def __init__(self, user_id: int) -> None:
        super().__init__("Invalid passkey")
        self.user_id = user_id


class RegistrationFailedError(WalletAuthError):
    """
    Best-effort signer registration failed.

    Never fatal: the local binding is kept and the failure is queued for
    reconciliation.
    """

    def __init__(self, payload: dict, reason: Exception) -> None:
        super().__init__(f"Signer registration failed: {reason}")
        self.payload = payload
        self.reason = reason


class PinMismatchError(WalletAuthError):
    def __init__(self) -> None:
        super().__init__("PINs don't match. Please try again.")


class PinRejectedError(WalletAuthError):
    """The set-PIN service answered with `success: false`."""


class PersistenceCorruptError(WalletAuthError):
    """The stored session record cannot be decoded."""


class CeremonyFailedError(WalletAuthError):
    """The platform passkey ceremony did not yield an address."""


class LoginError(WalletAuthError):
    """
    Single user-facing failure for a login attempt.

    The underlying error kind is kept as `__cause__`.
    """
