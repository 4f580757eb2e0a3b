"""
Acting identity threaded explicitly through every data-access call.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID

from src.exceptions import AuthenticationError, InvalidInputError


class IdentityRole(str, Enum):
    """Database roles a request can act as."""

    ANON = "anon"
    AUTHENTICATED = "authenticated"
    SERVICE_ROLE = "service_role"


@dataclass(frozen=True)
class Identity:
    """
    The principal a statement runs as.

    uid is the identity provider's opaque user id and is only set for authenticated
    identities. The service role carries no uid and is not subject to row policies.
    """

    role: IdentityRole
    uid: UUID | None = None

    def __post_init__(self):
        if self.role == IdentityRole.AUTHENTICATED and self.uid is None:
            raise InvalidInputError("uid", None, "authenticated identities need a uid")
        if self.role != IdentityRole.AUTHENTICATED and self.uid is not None:
            raise InvalidInputError("uid", self.uid, f"{self.role.value} identities carry no uid")

    @classmethod
    def anonymous(cls) -> "Identity":
        return cls(IdentityRole.ANON)

    @classmethod
    def authenticated(cls, uid: UUID | str) -> "Identity":
        return cls(IdentityRole.AUTHENTICATED, uid if isinstance(uid, UUID) else UUID(str(uid)))

    @classmethod
    def service(cls) -> "Identity":
        return cls(IdentityRole.SERVICE_ROLE)

    @classmethod
    def from_claims(cls, claims: dict[str, Any] | None) -> "Identity":
        """
        Build an identity from decoded identity-provider token claims.

        Missing claims mean an anonymous request. The role claim selects the database
        role; authenticated tokens must carry a UUID subject.
        """
        if not claims:
            return cls.anonymous()

        role = claims.get("role", IdentityRole.AUTHENTICATED.value)
        if role == IdentityRole.SERVICE_ROLE.value:
            return cls.service()
        if role == IdentityRole.ANON.value:
            return cls.anonymous()
        if role != IdentityRole.AUTHENTICATED.value:
            raise InvalidInputError("role", role, "unknown token role")

        subject = claims.get("sub")
        try:
            return cls.authenticated(subject)
        except ValueError as e:
            raise InvalidInputError("sub", subject, "subject is not a UUID") from e

    @property
    def is_anonymous(self) -> bool:
        return self.role == IdentityRole.ANON

    @property
    def is_authenticated(self) -> bool:
        return self.role == IdentityRole.AUTHENTICATED

    @property
    def is_service(self) -> bool:
        return self.role == IdentityRole.SERVICE_ROLE

    def require_authenticated(self) -> UUID:
        """Return the uid or raise if this identity is not signed in."""
        if not self.is_authenticated:
            raise AuthenticationError(f"Operation requires an authenticated identity, got {self.role.value}")
        return self.uid

    def __str__(self) -> str:
        if self.uid:
            return f"{self.role.value}:{self.uid}"
        return self.role.value
