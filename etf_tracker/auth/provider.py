from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod

from etf_tracker.auth.identity import SIGNED_OUT, Identity, IdentityKind
from etf_tracker.auth.jwt import decode_token
from etf_tracker.errors import AuthFailure

logger = logging.getLogger(__name__)


class IdentityProvider(ABC):
    @abstractmethod
    async def sign_in(self, token: str) -> Identity: ...

    @abstractmethod
    async def sign_in_anonymously(self) -> Identity: ...

    @abstractmethod
    async def sign_out(self, identity: Identity) -> Identity: ...


class TokenIdentityProvider(IdentityProvider):
    """Signs users in from custom JWTs; anonymous sessions get a fresh uid."""

    async def sign_in(self, token: str) -> Identity:
        if not token or not token.strip():
            raise AuthFailure("Sign-in failed: missing token")
        try:
            payload = decode_token(token.strip())
        except ValueError as exc:
            raise AuthFailure(f"Sign-in failed: {exc}") from exc
        if str(payload.get("type") or "") != "identity":
            raise AuthFailure("Sign-in failed: invalid token type")
        subject = str(payload.get("sub") or "").strip()
        if not subject:
            raise AuthFailure("Sign-in failed: invalid token subject")
        name = payload.get("name") or payload.get("email") or "Anonymous"
        return Identity(IdentityKind.AUTHENTICATED_REMOTE, user_key=subject, display_name=str(name))

    async def sign_in_anonymously(self) -> Identity:
        return Identity(IdentityKind.ANONYMOUS_REMOTE, user_key=uuid.uuid4().hex, display_name="Anonymous")

    async def sign_out(self, identity: Identity) -> Identity:
        return SIGNED_OUT


class DisabledIdentityProvider(IdentityProvider):
    """Local-only mode: no remote tier, so every sign-in is refused."""

    async def sign_in(self, token: str) -> Identity:
        raise AuthFailure("Authentication not initialized.")

    async def sign_in_anonymously(self) -> Identity:
        raise AuthFailure("Authentication not initialized.")

    async def sign_out(self, identity: Identity) -> Identity:
        raise AuthFailure("Authentication not initialized.")
