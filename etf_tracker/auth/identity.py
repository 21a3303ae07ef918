from __future__ import annotations

import enum
from dataclasses import dataclass


class IdentityKind(str, enum.Enum):
    SIGNED_OUT_LOCAL = "signed-out-local"
    ANONYMOUS_REMOTE = "anonymous-remote"
    AUTHENTICATED_REMOTE = "authenticated-remote"


@dataclass(frozen=True)
class Identity:
    kind: IdentityKind
    user_key: str | None = None
    display_name: str | None = None

    @property
    def uses_remote_tier(self) -> bool:
        # Anonymous sessions keep the local tier until they authenticate.
        return self.kind is IdentityKind.AUTHENTICATED_REMOTE and bool(self.user_key)

    def same_as(self, other: "Identity | None") -> bool:
        return other is not None and self.kind is other.kind and self.user_key == other.user_key


SIGNED_OUT = Identity(IdentityKind.SIGNED_OUT_LOCAL)
