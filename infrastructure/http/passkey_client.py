from __future__ import annotations

import logging
from typing import Optional

import httpx

from domain.errors import CeremonyFailedError

logger = logging.getLogger(__name__)


class PasskeyRelayClient:
    """
    `PasskeyCeremony` backed by the secure-context passkey page.

    The relay runs the WebAuthn ceremony in a real browser and answers
    with the smart-wallet contract address (`contractId`). Anything else
    is a failed ceremony.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 120.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _ceremony(self, action: str, identifier: str) -> str:
        try:
            response = await self._client.post(
                f"{self.base_url}/passkey/{action}",
                json={"identifier": identifier},
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Passkey %s for %s failed: %s", action, identifier, exc)
            raise CeremonyFailedError(f"Passkey {action} failed: {exc}") from exc

        contract_id = body.get("contractId") if isinstance(body, dict) else None
        if not isinstance(contract_id, str) or not contract_id.strip():
            raise CeremonyFailedError(f"Passkey {action} returned no address")
        return contract_id.strip()

    async def create(self, identifier: str) -> str:
        return await self._ceremony("create", identifier)

    async def connect(self, identifier: str) -> str:
        return await self._ceremony("connect", identifier)

    def setup_url(self, user_id: int) -> str:
        """Link to the secure page where the user completes the ceremony."""

        return f"{self.base_url}/wallet/onboarding/{user_id}/passkey"
