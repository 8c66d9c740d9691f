"""Principal and role primitives."""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping

import msgspec

from .exceptions import PrincipalError


class Role(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    PARENT_ADMIN = "PARENT_ADMIN"
    ADMIN = "ADMIN"
    VET = "VET"
    NURSE = "NURSE"
    RECEPTION = "RECEPTION"
    PET_OWNER = "PET_OWNER"

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value

    @property
    def is_client(self) -> bool:
        return self is Role.PET_OWNER

    @property
    def crosses_branches(self) -> bool:
        return self in CROSS_BRANCH_ROLES


CROSS_BRANCH_ROLES = frozenset({Role.SUPER_ADMIN, Role.PARENT_ADMIN})


class Principal(msgspec.Struct, frozen=True, rename="camel"):
    """Resolved identity a request acts as.

    Built by the authentication layer and trusted as-is. A client principal is
    expected to carry ``client_id``; one that does not can still be built, and
    :attr:`violates_contract` reports it so scope resolution can fail closed.
    """

    tenant_id: str
    role: Role
    client_id: str | None = None
    branch_id: str | None = None
    user_id: str | None = msgspec.field(default=None, name="id")

    def __post_init__(self) -> None:
        if not isinstance(self.tenant_id, str) or not self.tenant_id.strip():
            raise PrincipalError("principal requires a non-empty tenant_id")

    @property
    def is_client(self) -> bool:
        return self.role.is_client

    @property
    def violates_contract(self) -> bool:
        return self.role.is_client and not self.client_id

    @property
    def crosses_branches(self) -> bool:
        return self.role.crosses_branches

    def key(self) -> str:
        suffix = f"/{self.client_id}" if self.client_id else ""
        return f"{self.role.value}@{self.tenant_id}{suffix}"

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> "Principal":
        """Build a principal from a verified token payload.

        Claim names follow the portal's session token (``tenantId``, ``role``,
        ``clientId``, ``branchId``, ``id``); anything else is ignored.
        """

        try:
            return msgspec.convert(dict(claims), type=cls)
        except msgspec.ValidationError as exc:
            raise PrincipalError(f"invalid principal claims: {exc}") from exc


__all__ = ["CROSS_BRANCH_ROLES", "Principal", "Role"]
