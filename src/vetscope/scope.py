"""Translate a principal into per-entity row filters."""

from __future__ import annotations

from typing import Mapping, Union

import msgspec

from .entities import (
    BRANCH_PARTITIONED_KINDS,
    EntityKind,
    OwnerScoped,
    SelfAndOthers,
    StaffOnly,
    TenantIdentity,
    TenantWide,
    Visibility,
    visibility_for,
)
from .filters import Eq, Filter, MatchNone, NotEq, Related, all_of, any_of
from .tenancy import Principal, Role


class Denied(msgspec.Struct, frozen=True, tag="denied"):
    """The principal may not read this entity kind at all."""


DENIED = Denied()

Resolution = Union[Filter, Denied]


class ScopeResolver:
    """Pure mapping from ``(principal, kind)`` to a filter or :data:`DENIED`.

    Holds no mutable state, so one instance can serve any number of
    concurrent requests. ``branch_scoped`` narrows non cross-branch staff to
    their own branch on the kinds listed in
    :data:`~vetscope.entities.BRANCH_PARTITIONED_KINDS`.
    """

    def __init__(
        self,
        visibility: Mapping[EntityKind, Visibility] | None = None,
        *,
        branch_scoped: bool = False,
    ) -> None:
        self._visibility = visibility
        self.branch_scoped = branch_scoped

    def visibility(self, kind: EntityKind) -> Visibility:
        return visibility_for(kind, self._visibility)

    def resolve(self, principal: Principal, kind: EntityKind) -> Resolution:
        visibility = self.visibility(kind)
        tenant = Eq("tenant_id", principal.tenant_id)

        if isinstance(visibility, TenantIdentity):
            return Eq(visibility.field, principal.tenant_id)
        if isinstance(visibility, TenantWide):
            return tenant
        if isinstance(visibility, StaffOnly):
            if principal.is_client:
                return DENIED
            return self._staff(principal, kind, tenant)
        if isinstance(visibility, OwnerScoped):
            if not principal.is_client:
                return self._staff(principal, kind, tenant)
            if not principal.client_id:
                return MatchNone()
            owned: Filter = Eq(visibility.field, principal.client_id)
            if visibility.via is not None:
                owned = Related(visibility.via, owned)
            return all_of(tenant, owned)
        if isinstance(visibility, SelfAndOthers):
            if not principal.is_client:
                return self._staff(principal, kind, tenant)
            if not principal.client_id:
                return MatchNone()
            return all_of(
                tenant,
                any_of(
                    NotEq(visibility.role_field, Role.PET_OWNER.value),
                    Eq(visibility.client_field, principal.client_id),
                ),
            )
        # A visibility variant this resolver does not know is treated as denied.
        return DENIED

    def _staff(self, principal: Principal, kind: EntityKind, tenant: Filter) -> Filter:
        if (
            self.branch_scoped
            and kind in BRANCH_PARTITIONED_KINDS
            and principal.branch_id
            and not principal.crosses_branches
        ):
            return all_of(tenant, Eq("branch_id", principal.branch_id))
        return tenant


_default_resolver = ScopeResolver()


def resolve(principal: Principal, kind: EntityKind) -> Resolution:
    """Resolve with the default visibility table and no branch partitioning."""

    return _default_resolver.resolve(principal, kind)


__all__ = ["DENIED", "Denied", "Resolution", "ScopeResolver", "resolve"]
