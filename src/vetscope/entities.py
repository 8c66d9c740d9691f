"""Entity kinds, their visibility classes and relation metadata."""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Mapping, Union

import msgspec


class EntityKind(str, Enum):
    """Entity kinds in bootstrap order. Values are the snapshot payload keys."""

    USER = "users"
    TENANT = "tenants"
    BRANCH = "branches"
    CLIENT = "clients"
    PATIENT = "patients"
    INVOICE = "invoices"
    INVENTORY_ITEM = "inventory"
    SALE = "sales"
    SERVICE = "services"
    APPOINTMENT = "appointments"
    EXPENSE = "expenses"
    AUDIT_LOG = "logs"
    CHAT_MESSAGE = "chats"
    CONSULTATION = "consultations"
    LAB_REQUEST = "labRequests"
    BUDGET = "budgets"

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.value


BOOTSTRAP_ORDER: tuple[EntityKind, ...] = tuple(EntityKind)


class TenantWide(msgspec.Struct, frozen=True, tag="tenant_wide"):
    """Visible to every principal of the tenant."""


class StaffOnly(msgspec.Struct, frozen=True, tag="staff_only"):
    """Hidden from client principals altogether."""


class OwnerScoped(msgspec.Struct, frozen=True, tag="owner_scoped"):
    """Client principals only see rows they own.

    ``field`` holds the owning client id, either on the row itself or, when
    ``via`` names a relation, on the related parent row.
    """

    field: str
    via: str | None = None


class SelfAndOthers(msgspec.Struct, frozen=True, tag="self_and_others"):
    """Client principals see staff rows plus their own row only."""

    role_field: str = "role"
    client_field: str = "client_id"


class TenantIdentity(msgspec.Struct, frozen=True, tag="tenant_identity"):
    """The tenant record itself, matched by identity."""

    field: str = "id"


Visibility = Union[TenantWide, StaffOnly, OwnerScoped, SelfAndOthers, TenantIdentity]

UNCLASSIFIED: Visibility = StaffOnly()

VISIBILITY: Mapping[EntityKind, Visibility] = MappingProxyType(
    {
        EntityKind.USER: SelfAndOthers(),
        EntityKind.TENANT: TenantIdentity(),
        EntityKind.BRANCH: TenantWide(),
        EntityKind.CLIENT: OwnerScoped("id"),
        EntityKind.PATIENT: OwnerScoped("owner_id"),
        EntityKind.INVOICE: OwnerScoped("client_id"),
        EntityKind.INVENTORY_ITEM: StaffOnly(),
        EntityKind.SALE: StaffOnly(),
        EntityKind.SERVICE: TenantWide(),
        EntityKind.APPOINTMENT: OwnerScoped("client_id"),
        EntityKind.EXPENSE: StaffOnly(),
        EntityKind.AUDIT_LOG: StaffOnly(),
        EntityKind.CHAT_MESSAGE: OwnerScoped("client_id"),
        EntityKind.CONSULTATION: StaffOnly(),
        EntityKind.LAB_REQUEST: OwnerScoped("owner_id", via="patient"),
        EntityKind.BUDGET: StaffOnly(),
    }
)


def visibility_for(kind: EntityKind, table: Mapping[EntityKind, Visibility] | None = None) -> Visibility:
    """Return the visibility class of ``kind``; unknown kinds are staff only."""

    return (VISIBILITY if table is None else table).get(kind, UNCLASSIFIED)


def unclassified_kinds(table: Mapping[EntityKind, Visibility] | None = None) -> tuple[EntityKind, ...]:
    lookup = VISIBILITY if table is None else table
    return tuple(kind for kind in EntityKind if kind not in lookup)


# Kinds that carry a ``branch_id`` column and are narrowed to the principal's
# branch when branch partitioning is enabled.
BRANCH_PARTITIONED_KINDS: frozenset[EntityKind] = frozenset(
    {
        EntityKind.USER,
        EntityKind.CLIENT,
        EntityKind.PATIENT,
        EntityKind.INVOICE,
        EntityKind.INVENTORY_ITEM,
        EntityKind.SALE,
        EntityKind.APPOINTMENT,
        EntityKind.EXPENSE,
        EntityKind.AUDIT_LOG,
        EntityKind.CONSULTATION,
        EntityKind.LAB_REQUEST,
        EntityKind.BUDGET,
    }
)


class Relation(msgspec.Struct, frozen=True):
    """Join metadata between an entity row and rows of another table."""

    name: str
    table: str
    local_field: str
    remote_field: str
    many: bool = True


TABLES: Mapping[EntityKind, str] = MappingProxyType(
    {
        EntityKind.USER: "users",
        EntityKind.TENANT: "tenants",
        EntityKind.BRANCH: "branches",
        EntityKind.CLIENT: "clients",
        EntityKind.PATIENT: "patients",
        EntityKind.INVOICE: "invoices",
        EntityKind.INVENTORY_ITEM: "inventory_items",
        EntityKind.SALE: "sales",
        EntityKind.SERVICE: "services",
        EntityKind.APPOINTMENT: "appointments",
        EntityKind.EXPENSE: "expenses",
        EntityKind.AUDIT_LOG: "audit_logs",
        EntityKind.CHAT_MESSAGE: "chat_messages",
        EntityKind.CONSULTATION: "consultations",
        EntityKind.LAB_REQUEST: "lab_requests",
        EntityKind.BUDGET: "budgets",
    }
)

RELATIONS: Mapping[EntityKind, Mapping[str, Relation]] = MappingProxyType(
    {
        EntityKind.PATIENT: MappingProxyType(
            {
                "notes": Relation("notes", "medical_notes", "id", "patient_id"),
                "attachments": Relation("attachments", "attachments", "id", "patient_id"),
                "reminders": Relation("reminders", "reminders", "id", "patient_id"),
            }
        ),
        EntityKind.INVENTORY_ITEM: MappingProxyType(
            {"batches": Relation("batches", "inventory_batches", "id", "item_id")}
        ),
        EntityKind.LAB_REQUEST: MappingProxyType(
            {"patient": Relation("patient", "patients", "patient_id", "id", many=False)}
        ),
    }
)

EAGER_RELATIONS: Mapping[EntityKind, tuple[str, ...]] = MappingProxyType(
    {
        EntityKind.PATIENT: ("notes", "attachments", "reminders"),
        EntityKind.INVENTORY_ITEM: ("batches",),
    }
)


def table_for(kind: EntityKind) -> str:
    try:
        return TABLES[kind]
    except KeyError as exc:
        raise LookupError(f"No table registered for entity kind {kind!r}") from exc


def relation_for(kind: EntityKind, name: str) -> Relation:
    try:
        return RELATIONS.get(kind, {})[name]
    except KeyError as exc:
        raise LookupError(f"Unknown relation '{name}' for entity kind {kind.name}") from exc


__all__ = [
    "BOOTSTRAP_ORDER",
    "BRANCH_PARTITIONED_KINDS",
    "EAGER_RELATIONS",
    "RELATIONS",
    "TABLES",
    "UNCLASSIFIED",
    "VISIBILITY",
    "EntityKind",
    "OwnerScoped",
    "Relation",
    "SelfAndOthers",
    "StaffOnly",
    "TenantIdentity",
    "TenantWide",
    "Visibility",
    "relation_for",
    "table_for",
    "unclassified_kinds",
    "visibility_for",
]
