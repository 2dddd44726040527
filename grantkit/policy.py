from __future__ import annotations

import logging
from typing import Any, Iterable

from aws_cdk import CfnResource, Names
from constructs import Construct, IConstruct

from .document import PolicyDocument, PolicyKind
from .stack import PolicyStack
from .statement import PolicyStatement

logger = logging.getLogger("grantkit.policy")


class Policy(Construct):
    """Identity policy rendered as ``AWS::IAM::Policy`` and attached to roles by name.

    Nothing is emitted when the document is still empty at resolution time.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        policy_name: str | None = None,
        statements: Iterable[PolicyStatement] = (),
        role_names: Iterable[str] = (),
    ) -> None:
        super().__init__(scope, construct_id)
        self.document = PolicyDocument(kind=PolicyKind.IDENTITY, statements=statements)
        self._policy_name = policy_name
        self._role_names: list[str] = []
        for name in role_names:
            self.attach_to_role_name(name)
        self.resource: CfnResource | None = None
        PolicyStack.of(self).resolution.register_document(
            self.node.path, self.document, self._render
        )

    @property
    def policy_name(self) -> str:
        return self._policy_name or Names.unique_id(self)

    @property
    def role_names(self) -> tuple[str, ...]:
        return tuple(self._role_names)

    def add_statements(self, *statements: PolicyStatement) -> None:
        self.document.add_statements(*statements)

    def attach_to_role_name(self, role_name: str) -> None:
        if role_name not in self._role_names:
            self._role_names.append(role_name)

    def _render(self, rendered: dict[str, Any]) -> None:
        if self.document.is_empty or not self._role_names:
            logger.debug("skipping empty or unattached policy %s", self.node.path)
            return
        self.resource = CfnResource(
            self,
            "Resource",
            type="AWS::IAM::Policy",
            properties={
                "PolicyName": self.policy_name,
                "PolicyDocument": rendered,
                "Roles": list(self._role_names),
            },
        )


class ResourcePolicy(Construct):
    """Base for policy objects that live on the resource side.

    Subclasses emit the resolved document in ``_render``; the policy object
    itself is what grants hand out as their dependency target.
    """

    def __init__(self, scope: Construct, construct_id: str, *, assign_sids: bool = False) -> None:
        super().__init__(scope, construct_id)
        self.document = PolicyDocument(kind=PolicyKind.RESOURCE, assign_sids=assign_sids)
        PolicyStack.of(self).resolution.register_document(
            self.node.path, self.document, self._render
        )

    @property
    def dependable(self) -> IConstruct:
        return self

    def _render(self, rendered: dict[str, Any]) -> None:
        """Interface method; each concrete policy emits its own resource."""
        raise NotImplementedError


class PropertyPolicy(ResourcePolicy):
    """A resource policy stored as a property of the owning resource (key policy, table policy)."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        target: CfnResource,
        property_path: str,
    ) -> None:
        super().__init__(scope, construct_id)
        self._owner = scope
        self._target = target
        self._property_path = property_path

    @property
    def dependable(self) -> IConstruct:
        return self._owner

    def _render(self, rendered: dict[str, Any]) -> None:
        self._target.add_property_override(self._property_path, rendered)
