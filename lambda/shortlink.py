from __future__ import annotations

import secrets
import string
from typing import Callable

from kanban_errors import GenerationExhausted

SHORT_LINK_ALPHABET = string.digits + string.ascii_lowercase
SHORT_LINK_LEN = 8
DEFAULT_MAX_ATTEMPTS = 1000


def _draw(length: int) -> str:
    return "".join(secrets.choice(SHORT_LINK_ALPHABET) for _ in range(length))


def is_short_link(value: object) -> bool:
    if not isinstance(value, str) or len(value) != SHORT_LINK_LEN:
        return False
    return all(ch in SHORT_LINK_ALPHABET for ch in value)


def generate_short_link(
    exists: Callable[[str], bool],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    length: int = SHORT_LINK_LEN,
    draw: Callable[[int], str] = _draw,
) -> str:
    """Return a base36 token for which ``exists`` is false.

    36**8 candidates keep collisions negligible; the attempt bound only
    matters when the predicate is broken or the token space is saturated.
    """
    for _ in range(max(max_attempts, 1)):
        candidate = draw(length)
        if not exists(candidate):
            return candidate
    raise GenerationExhausted(f"could not allocate a short link after {max_attempts} attempts")
