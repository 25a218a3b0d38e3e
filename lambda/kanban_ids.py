from __future__ import annotations

import secrets
import struct
import time

BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
ENTITY_ID_LENGTH = 22


def _base58_fixed(raw: bytes) -> str:
    n = int.from_bytes(raw, "big")
    chars: list[str] = []
    while n > 0:
        n, rem = divmod(n, 58)
        chars.append(BASE58_ALPHABET[rem])
    encoded = "".join(reversed(chars))
    return encoded.rjust(ENTITY_ID_LENGTH, BASE58_ALPHABET[0])


def new_entity_id() -> str:
    """uuid7 layout (48-bit ms timestamp first), so ids sort by creation time."""
    ts_bytes = struct.pack(">Q", int(time.time() * 1000))[2:]
    raw = bytearray(ts_bytes + secrets.token_bytes(10))
    raw[6] = (raw[6] & 0x0F) | 0x70
    raw[8] = (raw[8] & 0x3F) | 0x80
    return _base58_fixed(bytes(raw))


def is_entity_id(value: object) -> bool:
    if not isinstance(value, str) or len(value) != ENTITY_ID_LENGTH:
        return False
    return all(ch in BASE58_ALPHABET for ch in value)
