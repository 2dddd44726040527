from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from constructs import Construct

from .document import PolicyDocument, PolicyKind, check_statement
from .errors import ResolutionError
from .resolution import DependencyToken
from .statement import PolicyStatement

if TYPE_CHECKING:
    from .policy import Policy, ResourcePolicy

logger = logging.getLogger("grantkit.attachment")


@dataclass(frozen=True)
class AddToResourcePolicyResult:
    statement_added: bool
    policy_dependable: DependencyToken | None = None


@dataclass(frozen=True)
class AddToPrincipalPolicyResult:
    statement_added: bool
    policy_dependable: DependencyToken | None = None


def ensure_open(owner: Construct, what: str = "policies") -> None:
    from .stack import PolicyStack

    if PolicyStack.of(owner).resolution.resolved:
        raise ResolutionError(
            f"cannot change {what} of {owner.node.path} after policies were resolved"
        )


class ResourcePolicyAttachment:
    """Lazy lifecycle of one resource instance's own policy object.

    Nothing exists until the first statement arrives; the policy object is then
    created exactly once through ``factory`` and reused. Imported resources use
    ``auto_create_policy=False`` and never get one.
    """

    def __init__(
        self,
        owner: Construct,
        factory: Callable[[], "ResourcePolicy"],
        *,
        auto_create_policy: bool,
    ) -> None:
        self._owner = owner
        self._factory = factory
        self._auto_create_policy = auto_create_policy
        self._policy: ResourcePolicy | None = None

    @property
    def auto_create_policy(self) -> bool:
        return self._auto_create_policy

    @property
    def attached(self) -> bool:
        return self._policy is not None

    @property
    def policy(self) -> "ResourcePolicy | None":
        return self._policy

    def ensure(self) -> PolicyDocument | None:
        if self._policy is None and self._auto_create_policy:
            ensure_open(self._owner)
            self._policy = self._factory()
            logger.debug("created resource policy %s", self._policy.node.path)
        return self._policy.document if self._policy is not None else None

    def add_statement(self, statement: PolicyStatement) -> AddToResourcePolicyResult:
        check_statement(statement, PolicyKind.RESOURCE)
        document = self.ensure()
        if document is None:
            logger.debug("%s cannot accept resource policy statements", self._owner.node.path)
            return AddToResourcePolicyResult(statement_added=False)
        document.add_statements(statement)
        return AddToResourcePolicyResult(
            statement_added=True,
            policy_dependable=DependencyToken(self._policy.dependable),
        )


class PrincipalPolicyAttachment:
    """Records statements on the identity policy of a principal this build controls.

    The backing ``Policy`` is created on first use and attached to the role by
    name. An immutable principal accepts nothing.
    """

    def __init__(
        self,
        owner: Construct,
        role_name: str,
        *,
        policy_id: str = "DefaultPolicy",
        policy_name: str | None = None,
        mutable: bool = True,
    ) -> None:
        self._owner = owner
        self._role_name = role_name
        self._policy_id = policy_id
        self._policy_name = policy_name
        self._mutable = mutable
        self._policy: Policy | None = None

    @property
    def mutable(self) -> bool:
        return self._mutable

    @property
    def policy(self) -> "Policy | None":
        return self._policy

    def add_statement(self, statement: PolicyStatement) -> AddToPrincipalPolicyResult:
        check_statement(statement, PolicyKind.IDENTITY)
        if not self._mutable:
            return AddToPrincipalPolicyResult(statement_added=False)
        if self._policy is None:
            from .policy import Policy

            ensure_open(self._owner)
            self._policy = Policy(
                self._owner,
                self._policy_id,
                policy_name=self._policy_name,
                role_names=[self._role_name],
            )
        self._policy.add_statements(statement)
        return AddToPrincipalPolicyResult(
            statement_added=True,
            policy_dependable=DependencyToken(self._policy),
        )
