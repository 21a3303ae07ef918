from __future__ import annotations

import asyncio
import logging
from typing import Callable

from etf_tracker.auth.identity import SIGNED_OUT, Identity, IdentityKind
from etf_tracker.auth.provider import IdentityProvider
from etf_tracker.errors import AuthFailure

logger = logging.getLogger(__name__)

__all__ = ["SessionController", "Identity", "IdentityKind", "SIGNED_OUT"]


class SessionController:
    """Single source of the current identity.

    Every actual transition is published once on ``transitions``; repeating
    the current identity publishes nothing. A failed sign-in or sign-out
    leaves the identity unchanged.
    """

    def __init__(self, provider: IdentityProvider, on_transition: Callable[[Identity], object] | None = None):
        self._provider = provider
        self._identity: Identity | None = None
        self._on_transition = on_transition
        self.transitions: asyncio.Queue[Identity] = asyncio.Queue()

    @property
    def identity(self) -> Identity:
        return self._identity or SIGNED_OUT

    def publish(self, identity: Identity) -> bool:
        if identity.same_as(self._identity):
            return False
        previous = self.identity.kind.value if self._identity else "none"
        self._identity = identity
        logger.info("event=session_transition from=%s to=%s user=%s", previous, identity.kind.value, identity.user_key)
        if self._on_transition is not None:
            self._on_transition(identity)
        self.transitions.put_nowait(identity)
        return True

    async def start(self, initial_token: str | None = None, anonymous: bool = True) -> Identity:
        """Startup sign-in: custom token first, then anonymous, else signed out."""
        if initial_token:
            try:
                identity = await self._provider.sign_in(initial_token)
                self.publish(identity)
                return identity
            except AuthFailure as exc:
                logger.warning("event=initial_token_rejected error=%s fallback=anonymous", exc)
        if anonymous:
            try:
                identity = await self._provider.sign_in_anonymously()
                self.publish(identity)
                return identity
            except AuthFailure as exc:
                logger.warning("event=anonymous_sign_in_unavailable error=%s", exc)
        self.publish(SIGNED_OUT)
        return SIGNED_OUT

    async def sign_in(self, token: str) -> Identity:
        identity = await self._provider.sign_in(token)
        self.publish(identity)
        return identity

    async def sign_in_anonymously(self) -> Identity:
        identity = await self._provider.sign_in_anonymously()
        self.publish(identity)
        return identity

    async def sign_out(self) -> Identity:
        identity = await self._provider.sign_out(self.identity)
        self.publish(identity)
        return identity

    async def wait_settled(self) -> None:
        """Block until every published transition has been consumed."""
        await self.transitions.join()
