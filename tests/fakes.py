from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

from domain.errors import CeremonyFailedError, RemoteUnavailableError
from domain.gateways import PasskeyCeremony, PinService, SetPinResult, SignerRegistry, UserDirectory
from domain.repositories import KeyValueStorage


class InMemoryStorage(KeyValueStorage):
    def __init__(self):
        self.values: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value

    def delete(self, key: str) -> None:
        self.values.pop(key, None)


class FakeDirectory(UserDirectory):
    def __init__(self, by_email: Optional[Dict[str, Any]] = None, by_phone: Optional[Dict[str, Any]] = None):
        self.by_email = by_email or {}
        self.by_phone = by_phone or {}
        self.calls: List[tuple] = []
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.registered: Any = None

    async def _answer(self, kind: str, value: str, table: Dict[str, Any]):
        self.calls.append((kind, value))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return table.get(value)

    async def get_user_by_email(self, email: str):
        return await self._answer("email", email, self.by_email)

    async def get_user_by_phone(self, phone: str):
        return await self._answer("phone", phone, self.by_phone)

    async def register_user(self, first_name, last_name, email, phone):
        self.calls.append(("register", email or phone))
        if self.error is not None:
            raise self.error
        return self.registered


class FakeSignerRegistry(SignerRegistry):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.payloads: List[dict] = []

    async def save_signer(self, payload: dict) -> None:
        self.payloads.append(payload)
        if self.fail:
            raise RemoteUnavailableError("signer service down", status_code=503)


class FakePinService(PinService):
    def __init__(self, responses: Optional[List[Any]] = None):
        # Each entry is a SetPinResult or an exception to raise.
        self.responses = list(responses or [SetPinResult(success=True, message="PIN set successfully!")])
        self.calls: List[tuple] = []
        self.gate: Optional[asyncio.Event] = None

    async def set_pin(self, user_id: int, pin: str) -> SetPinResult:
        self.calls.append((user_id, pin))
        if self.gate is not None:
            await self.gate.wait()
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


class FakeCeremony(PasskeyCeremony):
    def __init__(self, address: str = "CPASSKEYADDRESS1", fail: bool = False):
        self.address = address
        self.fail = fail
        self.created: List[str] = []
        self.connected: List[str] = []

    async def create(self, identifier: str) -> str:
        self.created.append(identifier)
        if self.fail:
            raise CeremonyFailedError("user cancelled")
        return self.address

    async def connect(self, identifier: str) -> str:
        self.connected.append(identifier)
        if self.fail:
            raise CeremonyFailedError("user cancelled")
        return self.address
