"""Library exception types."""

from __future__ import annotations


class VetScopeError(Exception):
    """Base error type."""


class PrincipalError(VetScopeError, ValueError):
    """Raised when a principal cannot be built from the supplied identity."""


class ConfigError(VetScopeError, ValueError):
    """Raised when configuration values cannot be interpreted."""


class StoreError(VetScopeError):
    """Raised by store adapters when a fetch cannot be completed."""


class IsolationBreach(VetScopeError):
    """A store returned a row that belongs to another tenant."""

    def __init__(self, kind: str, row_id: object) -> None:
        super().__init__(f"{kind} row {row_id!r} is outside the principal's tenant")
        self.kind = kind
        self.row_id = row_id


__all__ = [
    "ConfigError",
    "IsolationBreach",
    "PrincipalError",
    "StoreError",
    "VetScopeError",
]
