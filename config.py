from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from application.credential_binder import CredentialBinder
from application.identity_resolver import IdentityResolver
from application.services import AuthContext
from application.session_store import SessionStore
from domain.repositories import KeyValueStorage
from infrastructure.db.session_storage_postgres import PostgresKeyValueStorage
from infrastructure.db.session_storage_sqlite import SqliteKeyValueStorage
from infrastructure.http.passkey_client import PasskeyRelayClient
from infrastructure.http.trpc_client import TrpcApiClient


@dataclass
class Settings:
    api_base_url: str
    passkey_url: str
    db_path: str = "wallet.db"
    postgres_dsn: Optional[str] = None
    request_timeout: float = 15.0
    log_level: str = "INFO"
    telegram_token: Optional[str] = None
    discord_token: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            api_base_url=os.environ.get("WALLET_API_URL", "http://localhost:3000"),
            passkey_url=os.environ.get("PASSKEY_URL", "http://localhost:3000"),
            db_path=os.environ.get("DB_PATH", "wallet.db"),
            postgres_dsn=os.environ.get("POSTGRES_DSN") or None,
            request_timeout=float(os.environ.get("REQUEST_TIMEOUT", "15")),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            telegram_token=os.environ.get("TELEGRAM_TOKEN"),
            discord_token=os.environ.get("DISCORD_TOKEN"),
        )


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


class ContextFactory:
    """
    Builds an initialized `AuthContext` for one client (`owner`).

    HTTP clients and the credential binder are shared between clients;
    session storage is scoped per owner.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self.api = TrpcApiClient(settings.api_base_url, timeout=settings.request_timeout)
        self.passkeys = PasskeyRelayClient(settings.passkey_url)
        self.resolver = IdentityResolver(self.api)
        self.binder = CredentialBinder(self.api)

    def _storage_for(self, owner: str) -> KeyValueStorage:
        if self._settings.postgres_dsn:
            return PostgresKeyValueStorage({"dsn": self._settings.postgres_dsn}, owner)
        return SqliteKeyValueStorage(self._settings.db_path, owner)

    def __call__(self, owner: str) -> AuthContext:
        context = AuthContext(
            resolver=self.resolver,
            binder=self.binder,
            session_store=SessionStore(self._storage_for(owner)),
            pin_service=self.api,
            ceremony=self.passkeys,
        )
        context.initialize()
        return context

    def passkey_setup_url(self, user_id: int) -> str:
        return self.passkeys.setup_url(user_id)

    async def aclose(self) -> None:
        await self.api.aclose()
        await self.passkeys.aclose()
