"""
HTTP client for the wallet web app's tRPC API.

Implements the `UserDirectory`, `PinService` and `SignerRegistry` gateways
over the batch-link wire format:

- queries:   GET  /api/trpc/<proc>?batch=1&input={"0": {"json": <input>}}
- mutations: POST /api/trpc/<proc>?batch=1   body {"0": {"json": <input>}}
- replies:   [{"result": {"data": <payload>}}] or [{"error": {...}}]
"""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx

from domain.errors import MalformedResponseError, RemoteUnavailableError
from domain.gateways import SetPinResult

logger = logging.getLogger(__name__)

TRPC_SOURCE_HEADER = "x-trpc-source"
TRPC_SOURCE = "python-client"
NOT_FOUND_CODE = "NOT_FOUND"


def _error_code(error: Any) -> Optional[str]:
    """Pull the tRPC error code out of a batch error entry, if present."""

    if not isinstance(error, dict):
        return None
    body = error.get("json", error)
    if not isinstance(body, dict):
        return None
    data = body.get("data")
    if isinstance(data, dict) and isinstance(data.get("code"), str):
        return data["code"]
    return None


def _unwrap_superjson(value: Any) -> Any:
    if isinstance(value, dict) and set(value) <= {"json", "meta"} and "json" in value:
        return value["json"]
    return value


class TrpcApiClient:
    """
    Async client for the user and signer procedures.

    A not-found answer is returned as None; every other non-success
    status, transport error or undecodable body raises
    `RemoteUnavailableError` (or `MalformedResponseError` for a 2xx reply
    that is not a tRPC batch).
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = {TRPC_SOURCE_HEADER: TRPC_SOURCE}

    async def aclose(self) -> None:
        await self._client.aclose()

    def _url(self, procedure: str) -> str:
        return f"{self.base_url}/api/trpc/{procedure}"

    async def _query(self, procedure: str, payload: dict) -> Optional[Any]:
        params = {"batch": "1", "input": json.dumps({"0": {"json": payload}})}
        try:
            response = await self._client.get(
                self._url(procedure), params=params, headers=self._headers
            )
        except httpx.HTTPError as exc:
            raise RemoteUnavailableError(f"{procedure} request failed: {exc}") from exc
        return self._read_batch(procedure, response)

    async def _mutate(self, procedure: str, payload: dict) -> Optional[Any]:
        try:
            response = await self._client.post(
                self._url(procedure),
                params={"batch": "1"},
                json={"0": {"json": payload}},
                headers=self._headers,
            )
        except httpx.HTTPError as exc:
            raise RemoteUnavailableError(f"{procedure} request failed: {exc}") from exc
        return self._read_batch(procedure, response)

    def _read_batch(self, procedure: str, response: httpx.Response) -> Optional[Any]:
        try:
            body = response.json()
        except ValueError:
            body = None

        entry = body[0] if isinstance(body, list) and body and isinstance(body[0], dict) else None

        if entry is not None and "error" in entry:
            code = _error_code(entry["error"])
            if code == NOT_FOUND_CODE:
                return None
            logger.error("%s failed with status %s (%s)", procedure, response.status_code, code)
            raise RemoteUnavailableError(
                f"{procedure} failed: {code or 'unknown error'}",
                status_code=response.status_code,
            )

        if not response.is_success:
            logger.error("%s returned HTTP %s", procedure, response.status_code)
            raise RemoteUnavailableError(
                f"HTTP error! status: {response.status_code}",
                status_code=response.status_code,
            )

        if entry is None or not isinstance(entry.get("result"), dict):
            raise MalformedResponseError(f"Invalid response format from {procedure}")
        return entry["result"].get("data")

    # UserDirectory

    async def get_user_by_email(self, email: str) -> Optional[Any]:
        return await self._query("users.getUserByEmail", {"email": email})

    async def get_user_by_phone(self, phone: str) -> Optional[Any]:
        return await self._query("users.getUserByPhone", {"phone": phone})

    async def register_user(
        self,
        first_name: str,
        last_name: str,
        email: Optional[str],
        phone: Optional[str],
    ) -> Any:
        payload = {"firstName": first_name, "lastName": last_name}
        if email:
            payload["email"] = email
        if phone:
            payload["phone"] = phone
        return await self._mutate("users.registerUser", payload)

    # PinService

    async def set_pin(self, user_id: int, pin: str) -> SetPinResult:
        data = _unwrap_superjson(await self._mutate("users.setPin", {"userId": user_id, "pin": pin}))
        if not isinstance(data, dict) or not isinstance(data.get("success"), bool):
            raise MalformedResponseError("Invalid response format from users.setPin")
        return SetPinResult(success=data["success"], message=str(data.get("message") or ""))

    # SignerRegistry

    async def save_signer(self, payload: dict) -> None:
        await self._mutate("stellar.saveSigner", payload)
