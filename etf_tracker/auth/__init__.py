from __future__ import annotations

from etf_tracker.auth.identity import SIGNED_OUT, Identity, IdentityKind
from etf_tracker.auth.jwt import create_identity_token, decode_token
from etf_tracker.auth.provider import DisabledIdentityProvider, IdentityProvider, TokenIdentityProvider

__all__ = [
    "SIGNED_OUT",
    "Identity",
    "IdentityKind",
    "IdentityProvider",
    "TokenIdentityProvider",
    "DisabledIdentityProvider",
    "create_identity_token",
    "decode_token",
]
