from __future__ import annotations


class GrantKitError(Exception):
    pass


class InvalidStatement(GrantKitError):
    """A policy statement violates the statement grammar (no actions, no resources, ...)."""


class InvalidGrant(GrantKitError):
    """A grant request cannot be expressed (empty action list, no resource ARNs)."""


class MissingCapability(GrantKitError):
    """The resource does not currently have the capability the grant needs."""


class UnsupportedOperation(GrantKitError):
    pass


class ResolutionError(GrantKitError):
    """Misuse of the two-phase build (resolving twice, mutating after resolution)."""
