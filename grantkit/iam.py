from __future__ import annotations

from typing import Any

from aws_cdk import CfnResource
from constructs import Construct

from .attachment import AddToPrincipalPolicyResult, PrincipalPolicyAttachment
from .document import POLICY_VERSION
from .errors import InvalidGrant
from .grant import Grant, GrantResolver
from .principals import Principal, account_from_arn
from .resource import GrantableResource, region_from_arn
from .statement import PolicyStatement


def _role_name_from_arn(role_arn: str) -> str:
    # arn:aws:iam::123456789012:role/path/to/Name -> Name
    resource = role_arn.split(":", 5)[-1]
    return resource.rsplit("/", 1)[-1]


class _RoleBase(GrantableResource, Principal):
    """A role is both a resource other principals may be granted on and a grantee."""

    role_arn: str
    role_name: str

    def __init__(self, scope: Construct, construct_id: str, **kwargs: Any) -> None:
        super().__init__(scope, construct_id, auto_create_policy=False, **kwargs)
        self._default_policy: PrincipalPolicyAttachment | None = None

    def _principal_policy(self) -> PrincipalPolicyAttachment:
        """Interface method; created and imported roles provide their own."""
        raise NotImplementedError

    @property
    def policy_fragment(self) -> dict[str, list[str]]:
        return {"AWS": [self.role_arn]}

    @property
    def principal_account(self) -> str | None:
        return self.account

    @property
    def default_policy(self):
        return self._principal_policy().policy

    def add_to_principal_policy(self, statement: PolicyStatement) -> AddToPrincipalPolicyResult:
        return self._principal_policy().add_statement(statement)

    def dedupe_string(self) -> str:
        return f"Role:{self.node.path}"

    def grant(self, grantee: Principal, *actions: str) -> Grant:
        if not actions:
            raise InvalidGrant("a grant needs at least one action")
        return GrantResolver.add_to_principal(grantee, actions, [self.role_arn], self)

    def grant_pass_role(self, grantee: Principal) -> Grant:
        return self.grant(grantee, "iam:PassRole")

    def grant_assume_role(self, grantee: Principal) -> Grant:
        return self.grant(grantee, "sts:AssumeRole")


class Role(_RoleBase):
    """An IAM role owned by this build, emitted as ``AWS::IAM::Role``.

    The trust policy is rendered straight from ``assumed_by``. Identity
    statements land on a lazily created ``DefaultPolicy`` attached by name.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        assumed_by: Principal,
        role_name: str | None = None,
        description: str | None = None,
    ) -> None:
        super().__init__(scope, construct_id)
        self.assumed_by = assumed_by
        properties: dict[str, Any] = {
            "AssumeRolePolicyDocument": {
                "Version": POLICY_VERSION,
                "Statement": [
                    {
                        "Effect": "Allow",
                        "Principal": assumed_by.policy_fragment,
                        "Action": "sts:AssumeRole",
                    }
                ],
            },
        }
        if role_name:
            properties["RoleName"] = role_name
        if description:
            properties["Description"] = description
        self.resource = CfnResource(self, "Resource", type="AWS::IAM::Role", properties=properties)
        self.role_arn = self.resource.get_att("Arn").to_string()
        self.role_name = self.resource.ref

    def _principal_policy(self) -> PrincipalPolicyAttachment:
        if self._default_policy is None:
            self._default_policy = PrincipalPolicyAttachment(self, self.role_name)
        return self._default_policy

    @staticmethod
    def from_role_arn(
        scope: Construct, construct_id: str, role_arn: str, *, mutable: bool = True
    ) -> "_RoleBase":
        """Reference a role defined elsewhere.

        A mutable import still receives a ``DefaultPolicy`` attached by role
        name; an immutable one accepts no identity statements at all.
        """
        return _ImportedRole(scope, construct_id, role_arn=role_arn, mutable=mutable)


class _ImportedRole(_RoleBase):
    def __init__(
        self, scope: Construct, construct_id: str, *, role_arn: str, mutable: bool
    ) -> None:
        super().__init__(
            scope,
            construct_id,
            account=account_from_arn(role_arn),
            region=region_from_arn(role_arn),
        )
        self.role_arn = role_arn
        self.role_name = _role_name_from_arn(role_arn)
        self.mutable = mutable

    def _principal_policy(self) -> PrincipalPolicyAttachment:
        if self._default_policy is None:
            self._default_policy = PrincipalPolicyAttachment(
                self, self.role_name, mutable=self.mutable
            )
        return self._default_policy
