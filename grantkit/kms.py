from __future__ import annotations

from typing import Any, Iterable

from aws_cdk import CfnResource
from constructs import Construct

from .capabilities import ResourcePolicyCapable
from .errors import InvalidGrant
from .grant import Grant, GrantResolver
from .key_grants import unique_actions
from .policy import PropertyPolicy, ResourcePolicy
from .principals import AccountPrincipal, Principal, account_from_arn
from .resource import GrantableResource, region_from_arn
from .statement import PolicyStatement

ADMIN_ACTIONS = (
    "kms:Create*",
    "kms:Describe*",
    "kms:Enable*",
    "kms:List*",
    "kms:Put*",
    "kms:Update*",
    "kms:Revoke*",
    "kms:Disable*",
    "kms:Get*",
    "kms:Delete*",
    "kms:TagResource",
    "kms:UntagResource",
    "kms:ScheduleKeyDeletion",
    "kms:CancelKeyDeletion",
)

ENCRYPT_ACTIONS = ("kms:Encrypt", "kms:ReEncrypt*", "kms:GenerateDataKey*")

DECRYPT_ACTIONS = ("kms:Decrypt",)


class KeyPolicy(PropertyPolicy):
    """The key policy, stored in the ``KeyPolicy`` property of the key itself."""

    def __init__(self, scope: "Key", construct_id: str) -> None:
        super().__init__(scope, construct_id, target=scope.resource, property_path="KeyPolicy")


class _KeyBase(GrantableResource, ResourcePolicyCapable):
    key_arn: str

    def grant(self, grantee: Principal, *actions: str) -> Grant:
        """Grant ``actions`` on this key.

        Key policies cannot name their own key ARN, so resource-side
        statements use ``*``.
        """
        if not actions:
            raise InvalidGrant("a key grant needs at least one action")
        return GrantResolver.add_to_principal_or_resource(
            grantee, actions, [self.key_arn], self, resource_self_arns=["*"]
        )

    def grant_decrypt(self, grantee: Principal) -> Grant:
        return self.grant(grantee, *DECRYPT_ACTIONS)

    def grant_encrypt(self, grantee: Principal) -> Grant:
        return self.grant(grantee, *ENCRYPT_ACTIONS)

    def grant_encrypt_decrypt(self, grantee: Principal) -> Grant:
        return self.grant(grantee, *unique_actions(DECRYPT_ACTIONS, ENCRYPT_ACTIONS))

    def grant_admin(self, grantee: Principal) -> Grant:
        return self.grant(grantee, *ADMIN_ACTIONS)


class Key(_KeyBase):
    """A customer managed key emitted as ``AWS::KMS::Key``.

    The key policy always exists and starts with a statement that lets the
    owning account manage the key through IAM.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        description: str | None = None,
        enable_key_rotation: bool = False,
        admins: Iterable[Principal] = (),
    ) -> None:
        super().__init__(scope, construct_id)
        properties: dict[str, Any] = {"EnableKeyRotation": bool(enable_key_rotation)}
        if description:
            properties["Description"] = description
        self.resource = CfnResource(self, "Resource", type="AWS::KMS::Key", properties=properties)
        self.key_arn = self.resource.get_att("Arn").to_string()
        self.key_id = self.resource.ref

        self.add_to_resource_policy(
            PolicyStatement(
                actions=["kms:*"],
                resources=["*"],
                principals=[AccountPrincipal(self.account)],
            )
        )
        for admin in admins:
            self.grant_admin(admin)

    @property
    def policy(self) -> ResourcePolicy | None:
        return self.policy_attachment.policy

    def _create_resource_policy(self) -> ResourcePolicy:
        return KeyPolicy(self, "Policy")

    @staticmethod
    def from_key_arn(scope: Construct, construct_id: str, key_arn: str) -> _KeyBase:
        return _ImportedKey(scope, construct_id, key_arn=key_arn)


class _ImportedKey(_KeyBase):
    def __init__(self, scope: Construct, construct_id: str, *, key_arn: str) -> None:
        super().__init__(
            scope,
            construct_id,
            auto_create_policy=False,
            account=account_from_arn(key_arn),
            region=region_from_arn(key_arn),
        )
        self.key_arn = key_arn
        self.key_id = key_arn.rsplit("/", 1)[-1]
