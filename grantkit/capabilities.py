from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .attachment import AddToResourcePolicyResult
    from .kms import Key
    from .statement import PolicyStatement


class ResourcePolicyCapable:
    """Declared by resource families that can carry a resource policy."""

    def add_to_resource_policy(self, statement: "PolicyStatement") -> "AddToResourcePolicyResult":
        """Interface method; each resource family provides its own."""
        raise NotImplementedError


class Encryptable:
    """Declared by resource families that may be encrypted with a customer key."""

    @property
    def encryption_key(self) -> "Key | None":
        """Interface property; each resource family provides its own."""
        raise NotImplementedError


def supports_resource_policy(resource: object) -> bool:
    return isinstance(resource, ResourcePolicyCapable)


def encryption_key_of(resource: object) -> "Key | None":
    if isinstance(resource, Encryptable):
        return resource.encryption_key
    return None
