from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Optional

from domain.errors import MalformedResponseError, NotFoundError
from domain.gateways import UserDirectory
from domain.models import Identity

logger = logging.getLogger(__name__)

# Payloads may be wrapped exactly once under this key (superjson encoding).
WRAPPER_KEY = "json"
WRAPPER_SIBLINGS = frozenset({"meta"})

PRIMARY_ID_FIELD = "id"
ALTERNATE_ID_FIELDS = ("ID", "Id", "_id", "userId", "user_id")

FALLBACK_ID_MODULUS = 10_000_000

_STRING_FIELDS = {
    "email": "email",
    "phone": "phone",
    "firstName": "first_name",
    "lastName": "last_name",
    "hashedPin": "hashed_pin",
    "passkeyCAddress": "passkey_address",
    "walletAddress": "wallet_address",
}


def is_email(identifier: str) -> bool:
    return "@" in identifier


def derive_fallback_id(identifier: str) -> int:
    """
    Position-weighted character-code sum of `identifier`, reduced modulo
    `FALLBACK_ID_MODULUS`.

    Deterministic but NOT collision-free: two identifiers can map to the
    same id. It only keeps a session usable when the lookup service omits
    the id and must never be used for authorization decisions.
    """

    total = sum(ord(char) * (index + 1) for index, char in enumerate(identifier))
    return abs(total) % FALLBACK_ID_MODULUS


def unwrap_user_record(payload: Any) -> Optional[Mapping[str, Any]]:
    """
    Decode a lookup payload into a flat record.

    Accepted shapes:
    - a flat mapping record;
    - `{"json": <record>}`, optionally with a `"meta"` sibling.

    Returns None when the wrapper carries an explicit null (not found).
    Anything else raises `MalformedResponseError`.
    """

    if not isinstance(payload, Mapping):
        raise MalformedResponseError(
            f"Expected a user record, got {type(payload).__name__}."
        )

    if WRAPPER_KEY not in payload:
        return payload

    extra_keys = set(payload) - {WRAPPER_KEY} - WRAPPER_SIBLINGS
    if extra_keys:
        raise MalformedResponseError(
            f"Unexpected keys next to '{WRAPPER_KEY}' wrapper: {sorted(extra_keys)}"
        )

    inner = payload[WRAPPER_KEY]
    if inner is None:
        return None
    if not isinstance(inner, Mapping):
        raise MalformedResponseError(
            f"Wrapped user record must be an object, got {type(inner).__name__}."
        )
    return inner


def _coerce_id(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, float) and value.is_integer():
        return int(value) if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        parsed = int(value.strip())
        return parsed if parsed > 0 else None
    return None


def extract_user_id(record: Mapping[str, Any]) -> Optional[int]:
    """Return the first usable id among the primary and alternate fields."""

    for field in (PRIMARY_ID_FIELD,) + ALTERNATE_ID_FIELDS:
        if field not in record or record[field] in (None, ""):
            continue
        user_id = _coerce_id(record[field])
        if user_id is None:
            logger.warning("Ignoring non-integral id %r in field '%s'", record[field], field)
            continue
        if field != PRIMARY_ID_FIELD:
            logger.info("Using alternate id field '%s'", field)
        return user_id
    return None


def build_identity(record: Mapping[str, Any], identifier: str) -> Identity:
    """
    Map a decoded record to an `Identity`, deriving a fallback id and
    filling the contact field from `identifier` when the record lacks one.
    """

    values = {}
    for source, target in _STRING_FIELDS.items():
        value = record.get(source)
        if value is not None and not isinstance(value, str):
            raise MalformedResponseError(
                f"Field '{source}' must be a string, got {type(value).__name__}."
            )
        values[target] = value or None

    # Older records stored the binding under a shorter name.
    if values["passkey_address"] is None:
        legacy = record.get("passkeyAddress")
        if isinstance(legacy, str) and legacy:
            values["passkey_address"] = legacy

    if not values["email"] and not values["phone"]:
        values["email" if is_email(identifier) else "phone"] = identifier

    user_id = extract_user_id(record)
    if user_id is None:
        user_id = derive_fallback_id(identifier)
        logger.warning(
            "Lookup for %s returned no id; using derived fallback id %s", identifier, user_id
        )

    return Identity(id=user_id, **values)


class IdentityResolver:
    """
    Turns an email or phone number into an `Identity`.

    The lookup service is untrusted: its payload goes through
    `unwrap_user_record` and `build_identity` before anything else sees it.
    """

    def __init__(self, directory: UserDirectory) -> None:
        self._directory = directory

    async def resolve(self, identifier: str) -> Identity:
        identifier = (identifier or "").strip()
        if not identifier:
            raise ValueError("Email or phone is required")

        if is_email(identifier):
            logger.debug("Looking up user by email: %s", identifier)
            payload = await self._directory.get_user_by_email(identifier)
        else:
            logger.debug("Looking up user by phone: %s", identifier)
            payload = await self._directory.get_user_by_phone(identifier)

        if payload is None:
            raise NotFoundError(identifier)

        record = unwrap_user_record(payload)
        if record is None:
            raise NotFoundError(identifier)

        return build_identity(record, identifier)

    async def register(
        self,
        first_name: str,
        last_name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Identity:
        """Create a remote account and return its identity."""

        email = (email or "").strip() or None
        phone = (phone or "").strip() or None
        if not email and not phone:
            raise ValueError("Either email or phone is required")
        if not first_name or not last_name:
            raise ValueError("First and last name are required")

        payload = await self._directory.register_user(first_name, last_name, email, phone)
        record = unwrap_user_record(payload)
        if record is None:
            raise MalformedResponseError("Registration returned no user record.")

        identifier = email or phone
        merged = {"firstName": first_name, "lastName": last_name, "email": email, "phone": phone}
        merged.update({k: v for k, v in record.items() if v is not None})
        return build_identity(merged, identifier)
