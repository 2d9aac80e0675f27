from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from domain.errors import PersistenceCorruptError
from domain.models import Identity, Session
from domain.repositories import KeyValueStorage

logger = logging.getLogger(__name__)

SESSION_STORAGE_KEY = "auth_user"

_RECORD_FIELDS = {
    "email": "email",
    "phone": "phone",
    "firstName": "first_name",
    "lastName": "last_name",
    "hashedPin": "hashed_pin",
    "passkeyCAddress": "passkey_address",
    "walletAddress": "wallet_address",
}


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def identity_to_record(identity: Identity) -> dict:
    record = {"id": identity.id}
    for key, attr in _RECORD_FIELDS.items():
        record[key] = getattr(identity, attr)
    return record


def identity_from_record(record: Any) -> Identity:
    if not isinstance(record, dict):
        raise PersistenceCorruptError("Stored identity is not an object.")

    user_id = record.get("id")
    if isinstance(user_id, bool) or not isinstance(user_id, int):
        raise PersistenceCorruptError("Stored identity has no integer id.")

    values = {}
    for key, attr in _RECORD_FIELDS.items():
        value = record.get(key)
        if value is not None and not isinstance(value, str):
            raise PersistenceCorruptError(f"Stored field '{key}' is not a string.")
        values[attr] = value or None

    try:
        return Identity(id=user_id, **values)
    except ValueError as exc:
        raise PersistenceCorruptError(str(exc)) from exc


def encode_session(session: Session) -> str:
    return json.dumps(
        {"identity": identity_to_record(session.identity), "issuedAt": session.issued_at}
    )


def decode_session(raw: str) -> Session:
    try:
        blob = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise PersistenceCorruptError(f"Session record is not valid JSON: {exc}") from exc

    if not isinstance(blob, dict) or not isinstance(blob.get("issuedAt"), str):
        raise PersistenceCorruptError("Session record has an unexpected structure.")

    return Session(identity=identity_from_record(blob.get("identity")), issued_at=blob["issuedAt"])


class SessionStore:
    """
    Durable persistence of the current identity.

    Exactly one record lives under `key`. Every `save` replaces it
    wholesale; callers merge changes into the identity before saving.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        key: str = SESSION_STORAGE_KEY,
        clock: Callable[[], str] = _utc_now,
    ) -> None:
        self._storage = storage
        self._key = key
        self._clock = clock

    def save(self, identity: Identity) -> Session:
        session = Session(identity=identity, issued_at=self._clock())
        self._storage.set(self._key, encode_session(session))
        return session

    def load_session(self) -> Optional[Session]:
        raw = self._storage.get(self._key)
        if raw is None:
            return None
        try:
            return decode_session(raw)
        except PersistenceCorruptError as exc:
            logger.warning("Discarding corrupt session record: %s", exc)
            self.clear()
            return None

    def load(self) -> Optional[Identity]:
        session = self.load_session()
        return session.identity if session is not None else None

    def clear(self) -> None:
        self._storage.delete(self._key)
