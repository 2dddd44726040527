"""Grant and resource-policy synthesis for CDK builds."""

from .attachment import (
    AddToPrincipalPolicyResult,
    AddToResourcePolicyResult,
    PrincipalPolicyAttachment,
    ResourcePolicyAttachment,
)
from .capabilities import Encryptable, ResourcePolicyCapable
from .document import PolicyDocument, PolicyKind
from .errors import (
    GrantKitError,
    InvalidGrant,
    InvalidStatement,
    MissingCapability,
    ResolutionError,
    UnsupportedOperation,
)
from .grant import Grant, GrantMode, GrantRecord, GrantResolver
from .key_grants import KeyGrantPropagator
from .principals import AccountPrincipal, AnyPrincipal, ArnPrincipal, Principal, ServicePrincipal
from .resolution import DependencyToken, ResolutionPhase
from .stack import PolicyStack
from .statement import Condition, Effect, PolicyStatement

__all__ = [
    "AccountPrincipal",
    "AddToPrincipalPolicyResult",
    "AddToResourcePolicyResult",
    "AnyPrincipal",
    "ArnPrincipal",
    "Condition",
    "DependencyToken",
    "Effect",
    "Encryptable",
    "Grant",
    "GrantKitError",
    "GrantMode",
    "GrantRecord",
    "GrantResolver",
    "InvalidGrant",
    "InvalidStatement",
    "KeyGrantPropagator",
    "MissingCapability",
    "PolicyDocument",
    "PolicyKind",
    "PolicyStack",
    "PolicyStatement",
    "Principal",
    "PrincipalPolicyAttachment",
    "ResolutionError",
    "ResolutionPhase",
    "ResourcePolicyAttachment",
    "ResourcePolicyCapable",
    "ServicePrincipal",
    "UnsupportedOperation",
]
