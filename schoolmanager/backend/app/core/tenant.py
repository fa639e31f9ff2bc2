"""Tenant code helpers used by the registry."""
import re
import secrets
from typing import Iterator

from app.core.constants import (
    TENANT_CODE_FALLBACK_BASE,
    TENANT_CODE_LENGTH,
    TENANT_CODE_RANDOM_ATTEMPTS,
    TENANT_CODE_SEQUENTIAL_ATTEMPTS,
)

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


def derive_base_code(name: str) -> str:
    """
    Derive the human-readable base code for a tenant name.

    "Greenwood Prep" -> "GREENW". Names without ASCII letters or digits fall
    back to a fixed base so every tenant still gets a code.
    """
    base = _NON_ALNUM.sub("", name).upper()[:TENANT_CODE_LENGTH]
    return base or TENANT_CODE_FALLBACK_BASE


def code_candidates(
    base: str,
    sequential_attempts: int = TENANT_CODE_SEQUENTIAL_ATTEMPTS,
    random_attempts: int = TENANT_CODE_RANDOM_ATTEMPTS,
) -> Iterator[str]:
    """
    Yield candidate codes in the order they should be tried.

    base, base1 .. base{sequential_attempts}, then random 4-digit suffixes.
    The sequence is finite, so callers looping over it always terminate.
    """
    yield base
    for counter in range(1, sequential_attempts + 1):
        yield f"{base}{counter}"
    for _ in range(random_attempts):
        yield f"{base}{secrets.randbelow(9000) + 1000}"
