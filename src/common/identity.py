"""
Cache Owner Identity
====================

Artifacts cached for one user must never be served to another. The cache
keys entries by an opaque owner id, which is derived from the bearer
credential the client already holds.

Resolution is best effort. Whenever the credential is missing or cannot be
decoded the resolver returns ``None`` and the cache falls back to a single
shared namespace for that caller. Decoding never raises.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Callable, Protocol, Union

import structlog

log = structlog.get_logger(__name__)

TokenSource = Union[str, None, Callable[[], "str | None"]]


class IdentityResolver(Protocol):
    """Anything able to name the owner whose cache entries should be used."""

    def current_owner_id(self) -> str | None:
        ...


class StaticIdentityResolver:
    """Resolver returning a fixed owner id (or none)."""

    def __init__(self, owner_id: str | None):
        self._owner_id = owner_id or None

    def current_owner_id(self) -> str | None:
        return self._owner_id


class BearerTokenIdentityResolver:
    """
    Derive the owner id from a JWT-style bearer token.

    Only the payload segment is decoded and the signature is NOT verified:
    the result is used to partition a local cache, not to authenticate.
    """

    def __init__(self, token: TokenSource, claim: str = "sub"):
        self._token = token
        self._claim = claim

    def current_owner_id(self) -> str | None:
        token = self._token() if callable(self._token) else self._token
        if not token:
            return None
        return decode_token_claim(token, self._claim)


def decode_token_claim(token: str, claim: str = "sub") -> str | None:
    """Return ``claim`` from the token's payload segment, or None on any failure."""
    parts = token.split(".")
    if len(parts) != 3:
        log.debug("Bearer token is not a three-part JWT", segments=len(parts))
        return None

    segment = parts[1]
    try:
        raw = base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))
        payload = json.loads(raw)
    except (binascii.Error, ValueError) as e:
        log.debug("Failed to decode bearer token payload", error=str(e))
        return None

    if not isinstance(payload, dict):
        log.debug("Bearer token payload is not an object")
        return None

    value = payload.get(claim)
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    value = str(value).strip()
    return value or None
