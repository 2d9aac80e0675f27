from __future__ import annotations

PIN_PREFIX = "pin"
PASSKEY_PREFIX = "pk"

PIN_DELETE = "del"
PIN_CANCEL = "cancel"
PIN_KEYS = tuple("0123456789") + (PIN_DELETE, PIN_CANCEL)

PASSKEY_CREATE = "create"
PASSKEY_SKIP = "skip"
PASSKEY_ACTIONS = (PASSKEY_CREATE, PASSKEY_SKIP)


def encode_pin_key(user_id: int, key: str) -> str:
    """
    Encode a PIN pad button press.

    Format: pin:{user_id}:{key} where key is a digit, "del" or "cancel".
    """

    if key not in PIN_KEYS:
        raise ValueError(f"Invalid PIN key: {key}")
    return f"{PIN_PREFIX}:{user_id}:{key}"


def parse_pin_key(data: str) -> tuple[int, str]:
    parts = data.split(":")
    if len(parts) != 3 or parts[0] != PIN_PREFIX or parts[2] not in PIN_KEYS:
        raise ValueError(f"Invalid PIN callback data: {data}")

    user_id = int(parts[1])
    return user_id, parts[2]


def encode_passkey_action(user_id: int, action: str) -> str:
    """
    Encode a passkey step choice.

    Format: pk:{user_id}:create | pk:{user_id}:skip
    """

    if action not in PASSKEY_ACTIONS:
        raise ValueError(f"Invalid passkey action: {action}")
    return f"{PASSKEY_PREFIX}:{user_id}:{action}"


def parse_passkey_action(data: str) -> tuple[int, str]:
    parts = data.split(":")
    if len(parts) != 3 or parts[0] != PASSKEY_PREFIX or parts[2] not in PASSKEY_ACTIONS:
        raise ValueError(f"Invalid passkey callback data: {data}")

    user_id = int(parts[1])
    return user_id, parts[2]
