from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Sequence

from constructs import IConstruct

from .capabilities import ResourcePolicyCapable
from .errors import InvalidGrant, UnsupportedOperation
from .principals import Principal, same_account
from .resolution import DependencyToken
from .statement import PolicyStatement

if TYPE_CHECKING:
    from .resource import GrantableResource

logger = logging.getLogger("grantkit.grant")


class GrantMode(str, enum.Enum):
    PRINCIPAL = "principal"
    PRINCIPAL_OR_RESOURCE = "principal-or-resource"
    PRINCIPAL_AND_RESOURCE = "principal-and-resource"


@dataclass
class GrantRecord:
    """One entry of a stack's grant log."""

    grantee: str
    actions: tuple[str, ...]
    resources: tuple[str, ...]
    mode: str
    landed_on: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "grantee": self.grantee,
            "actions": list(self.actions),
            "resources": list(self.resources),
            "mode": self.mode,
            "landed_on": list(self.landed_on),
        }


class Grant:
    """Outcome of one grant call.

    ``statement_added`` is False only when neither an identity policy nor a
    resource policy accepted the rule. ``dependency_token`` names the policy
    objects that carry it.
    """

    def __init__(
        self,
        *,
        statement_added: bool,
        grantee: Principal | None = None,
        dependency_token: DependencyToken | None = None,
        principal_statement: PolicyStatement | None = None,
        resource_statement: PolicyStatement | None = None,
        dropped: bool = False,
    ) -> None:
        self.statement_added = statement_added
        self.dropped = dropped
        self.grantee = grantee
        self.dependency_token = dependency_token
        self.principal_statement = principal_statement
        self.resource_statement = resource_statement

    @classmethod
    def drop(cls, grantee: Principal, intent: str) -> "Grant":
        """A grant that records nothing because the permission is implied elsewhere."""
        logger.debug("dropping grant to %s: %s", grantee, intent)
        return cls(statement_added=False, grantee=grantee, dropped=True)

    @property
    def success(self) -> bool:
        return self.statement_added or self.dropped

    def assert_success(self) -> None:
        if not self.success:
            described = self.principal_statement or self.resource_statement
            raise UnsupportedOperation(
                f"{described!r} could not be added to {self.grantee} or to a resource policy"
            )

    def apply_before(self, *constructs: IConstruct) -> None:
        """Order ``constructs`` after the policy objects that carry this grant."""
        if self.dependency_token is not None:
            self.dependency_token.apply_to(*constructs)

    def combine(self, other: "Grant") -> "Grant":
        token = DependencyToken(self.dependency_token, other.dependency_token)
        return Grant(
            statement_added=self.statement_added or other.statement_added,
            grantee=self.grantee or other.grantee,
            dependency_token=token if token else None,
            principal_statement=self.principal_statement or other.principal_statement,
            resource_statement=self.resource_statement or other.resource_statement,
            dropped=self.dropped or other.dropped,
        )

    def __repr__(self) -> str:
        return f"Grant(statement_added={self.statement_added}, token={self.dependency_token!r})"


def _record(
    resource: "GrantableResource | None",
    grantee: Principal,
    actions: Sequence[str],
    resources: Sequence[str],
    mode: GrantMode,
    grant: Grant,
) -> None:
    if resource is None:
        return
    entry = GrantRecord(
        grantee=grantee.dedupe_string(),
        actions=tuple(actions),
        resources=tuple(resources),
        mode=mode.value,
        landed_on=grant.dependency_token.paths if grant.dependency_token else (),
    )
    resource.stack.grant_log.append(entry)


def _check(actions: Sequence[str], resource_arns: Sequence[str]) -> None:
    if not actions:
        raise InvalidGrant("a grant needs at least one action")
    if not resource_arns:
        raise InvalidGrant("a grant needs at least one resource ARN")


class GrantResolver:
    """Decides where a grant lands: identity policy, resource policy, or both."""

    @staticmethod
    def resolve(
        grantee: Principal,
        actions: Iterable[str],
        resource_arns: Iterable[str],
        resource: "GrantableResource | None" = None,
        *,
        mode: GrantMode = GrantMode.PRINCIPAL_OR_RESOURCE,
        resource_self_arns: Iterable[str] | None = None,
    ) -> Grant:
        mode = GrantMode(mode)
        if mode is GrantMode.PRINCIPAL:
            return GrantResolver.add_to_principal(grantee, actions, resource_arns, resource)
        if resource is None:
            raise InvalidGrant(f"{mode.value} grants need the resource they apply to")
        if mode is GrantMode.PRINCIPAL_AND_RESOURCE:
            return GrantResolver.add_to_principal_and_resource(
                grantee, actions, resource_arns, resource, resource_self_arns=resource_self_arns
            )
        return GrantResolver.add_to_principal_or_resource(
            grantee, actions, resource_arns, resource, resource_self_arns=resource_self_arns
        )

    @staticmethod
    def add_to_principal(
        grantee: Principal,
        actions: Iterable[str],
        resource_arns: Iterable[str],
        resource: "GrantableResource | None" = None,
    ) -> Grant:
        actions = list(actions)
        resource_arns = list(resource_arns)
        _check(actions, resource_arns)
        statement = PolicyStatement(actions=actions, resources=resource_arns)
        result = grantee.add_to_principal_policy(statement)
        logger.debug(
            "principal grant %s -> %s: added=%s", grantee, actions, result.statement_added
        )
        grant = Grant(
            statement_added=result.statement_added,
            grantee=grantee,
            dependency_token=result.policy_dependable,
            principal_statement=statement,
        )
        _record(resource, grantee, actions, resource_arns, GrantMode.PRINCIPAL, grant)
        return grant

    @staticmethod
    def add_to_principal_or_resource(
        grantee: Principal,
        actions: Iterable[str],
        resource_arns: Iterable[str],
        resource: "GrantableResource",
        *,
        resource_self_arns: Iterable[str] | None = None,
        resource_actions: Iterable[str] | None = None,
    ) -> Grant:
        actions = list(actions)
        resource_arns = list(resource_arns)
        _check(actions, resource_arns)
        statement = PolicyStatement(actions=actions, resources=resource_arns)
        principal_result = grantee.add_to_principal_policy(statement)
        principal_grant = Grant(
            statement_added=principal_result.statement_added,
            grantee=grantee,
            dependency_token=principal_result.policy_dependable,
            principal_statement=statement,
        )

        if principal_result.statement_added and same_account(
            grantee.principal_account, resource.account
        ):
            logger.debug("same-account grant to %s stays on the principal", grantee)
            _record(
                resource, grantee, actions, resource_arns,
                GrantMode.PRINCIPAL_OR_RESOURCE, principal_grant,
            )
            return principal_grant

        grant = principal_grant.combine(
            GrantResolver._to_resource(
                grantee, actions, resource_arns, resource,
                resource_self_arns=resource_self_arns, resource_actions=resource_actions,
            )
        )
        _record(resource, grantee, actions, resource_arns, GrantMode.PRINCIPAL_OR_RESOURCE, grant)
        return grant

    @staticmethod
    def add_to_principal_and_resource(
        grantee: Principal,
        actions: Iterable[str],
        resource_arns: Iterable[str],
        resource: "GrantableResource",
        *,
        resource_self_arns: Iterable[str] | None = None,
    ) -> Grant:
        actions = list(actions)
        resource_arns = list(resource_arns)
        _check(actions, resource_arns)
        statement = PolicyStatement(actions=actions, resources=resource_arns)
        principal_result = grantee.add_to_principal_policy(statement)
        principal_grant = Grant(
            statement_added=principal_result.statement_added,
            grantee=grantee,
            dependency_token=principal_result.policy_dependable,
            principal_statement=statement,
        )
        grant = principal_grant.combine(
            GrantResolver._to_resource(
                grantee, actions, resource_arns, resource, resource_self_arns=resource_self_arns
            )
        )
        _record(resource, grantee, actions, resource_arns, GrantMode.PRINCIPAL_AND_RESOURCE, grant)
        return grant

    @staticmethod
    def _to_resource(
        grantee: Principal,
        actions: list[str],
        resource_arns: list[str],
        resource: "GrantableResource",
        *,
        resource_self_arns: Iterable[str] | None = None,
        resource_actions: Iterable[str] | None = None,
    ) -> Grant:
        if not isinstance(resource, ResourcePolicyCapable):
            return Grant(statement_added=False, grantee=grantee)
        effective_actions = list(resource_actions) if resource_actions is not None else actions
        if not effective_actions:
            return Grant(statement_added=False, grantee=grantee)
        statement = PolicyStatement(
            actions=effective_actions,
            resources=list(resource_self_arns) if resource_self_arns else resource_arns,
            principals=[grantee.grant_principal],
        )
        result = resource.add_to_resource_policy(statement)
        logger.debug(
            "resource grant on %s for %s: added=%s",
            resource.node.path, grantee, result.statement_added,
        )
        return Grant(
            statement_added=result.statement_added,
            grantee=grantee,
            dependency_token=result.policy_dependable,
            resource_statement=statement,
        )
