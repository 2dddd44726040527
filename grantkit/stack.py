from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, List

import jsii
from aws_cdk import Stack
from constructs import Construct, IConstruct, IValidation

from .errors import UnsupportedOperation
from .resolution import ResolutionPhase

if TYPE_CHECKING:
    from .grant import GrantRecord

logger = logging.getLogger("grantkit.stack")


@jsii.implements(IValidation)
class _UnresolvedPoliciesCheck:
    def __init__(self, resolution: ResolutionPhase) -> None:
        self._resolution = resolution

    def validate(self) -> List[str]:
        if self._resolution.pending:
            return [
                f"{self._resolution.pending} policy producer(s) were registered but "
                "resolve_policies() was never called on this stack"
            ]
        return []


class PolicyStack(Stack):
    """A stack that owns one build's policy resolution phase.

    Declare resources and grants first, then call ``resolve_policies()`` once
    before synthesizing. Synthesis fails if policies were registered but never
    resolved.
    """

    def __init__(self, scope: Construct, construct_id: str, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)
        self.resolution = ResolutionPhase()
        self.grant_log: list[GrantRecord] = []
        self.node.add_validation(_UnresolvedPoliciesCheck(self.resolution))

    @staticmethod
    def of(construct: IConstruct) -> "PolicyStack":
        for scope in reversed(construct.node.scopes):
            if isinstance(scope, PolicyStack):
                return scope
        raise UnsupportedOperation(
            f"{construct.node.path} must be defined inside a PolicyStack"
        )

    def resolve_policies(self) -> dict[str, Any]:
        logger.debug("resolving policies for %s", self.node.path)
        return self.resolution.run()

    def policy_documents(self) -> dict[str, Any]:
        """Resolved documents keyed by policy-object path, with tokens rendered as intrinsics."""
        return {
            path: self.resolve(document)
            for path, document in self.resolution.documents().items()
        }
