from __future__ import annotations

from typing import Any, Iterable, Sequence

from aws_cdk import Aws, CfnResource
from constructs import Construct

from .capabilities import Encryptable, ResourcePolicyCapable
from .grant import Grant, GrantResolver
from .key_grants import KeyGrantPropagator, unique_actions
from .kms import _KeyBase
from .policy import ResourcePolicy
from .principals import AnyPrincipal, Principal
from .resource import GrantableResource
from .statement import Condition, Effect, PolicyStatement

BUCKET_READ_ACTIONS = ("s3:GetObject*", "s3:GetBucket*", "s3:List*")
BUCKET_PUT_ACTIONS = (
    "s3:PutObject",
    "s3:PutObjectLegalHold",
    "s3:PutObjectRetention",
    "s3:PutObjectTagging",
    "s3:PutObjectVersionTagging",
    "s3:Abort*",
)
BUCKET_DELETE_ACTIONS = ("s3:DeleteObject*",)
BUCKET_PUT_ACL_ACTIONS = ("s3:PutObjectAcl", "s3:PutObjectVersionAcl")

KEY_READ_ACTIONS = ("kms:Decrypt", "kms:DescribeKey")
KEY_WRITE_ACTIONS = ("kms:Encrypt", "kms:ReEncrypt*", "kms:GenerateDataKey*", "kms:Decrypt")

WRITE_ACTIONS = BUCKET_DELETE_ACTIONS + BUCKET_PUT_ACTIONS


class BucketPolicy(ResourcePolicy):
    """``AWS::S3::BucketPolicy`` for one bucket."""

    def __init__(self, scope: Construct, construct_id: str, *, bucket: "_BucketBase") -> None:
        super().__init__(scope, construct_id)
        self.bucket = bucket
        self.resource: CfnResource | None = None

    def _render(self, rendered: dict[str, Any]) -> None:
        self.resource = CfnResource(
            self,
            "Resource",
            type="AWS::S3::BucketPolicy",
            properties={"Bucket": self.bucket.bucket_name, "PolicyDocument": rendered},
        )


class _BucketBase(GrantableResource, ResourcePolicyCapable, Encryptable):
    bucket_arn: str
    bucket_name: str

    def __init__(self, scope: Construct, construct_id: str, **kwargs: Any) -> None:
        super().__init__(scope, construct_id, **kwargs)
        self._encryption_key: _KeyBase | None = None

    @property
    def encryption_key(self) -> _KeyBase | None:
        return self._encryption_key

    @property
    def policy(self) -> ResourcePolicy | None:
        return self.policy_attachment.policy

    def _create_resource_policy(self) -> ResourcePolicy:
        return BucketPolicy(self, "Policy", bucket=self)

    def arn_for_objects(self, key_pattern: str) -> str:
        return f"{self.bucket_arn}/{key_pattern}"

    def _grant(
        self,
        grantee: Principal,
        bucket_actions: Sequence[str],
        key_actions: Sequence[str],
        *resource_arns: str,
    ) -> Grant:
        grant = GrantResolver.add_to_principal_or_resource(
            grantee, bucket_actions, resource_arns, self
        )
        if key_actions:
            KeyGrantPropagator.propagate(grant, self, key_actions)
        return grant

    def grant_read(self, grantee: Principal, objects_key_pattern: str = "*") -> Grant:
        return self._grant(
            grantee,
            BUCKET_READ_ACTIONS,
            KEY_READ_ACTIONS,
            self.bucket_arn,
            self.arn_for_objects(objects_key_pattern),
        )

    def grant_write(
        self,
        grantee: Principal,
        objects_key_pattern: str = "*",
        allowed_action_patterns: Iterable[str] = (),
    ) -> Grant:
        actions = tuple(allowed_action_patterns) or WRITE_ACTIONS
        return self._grant(
            grantee,
            actions,
            KEY_WRITE_ACTIONS,
            self.bucket_arn,
            self.arn_for_objects(objects_key_pattern),
        )

    def grant_put(self, grantee: Principal, objects_key_pattern: str = "*") -> Grant:
        return self._grant(
            grantee, BUCKET_PUT_ACTIONS, KEY_WRITE_ACTIONS, self.arn_for_objects(objects_key_pattern)
        )

    def grant_put_acl(self, grantee: Principal, objects_key_pattern: str = "*") -> Grant:
        return self._grant(
            grantee, BUCKET_PUT_ACL_ACTIONS, (), self.arn_for_objects(objects_key_pattern)
        )

    def grant_delete(self, grantee: Principal, objects_key_pattern: str = "*") -> Grant:
        return self._grant(
            grantee, BUCKET_DELETE_ACTIONS, (), self.arn_for_objects(objects_key_pattern)
        )

    def grant_read_write(self, grantee: Principal, objects_key_pattern: str = "*") -> Grant:
        return self._grant(
            grantee,
            BUCKET_READ_ACTIONS + WRITE_ACTIONS,
            unique_actions(KEY_READ_ACTIONS, KEY_WRITE_ACTIONS),
            self.bucket_arn,
            self.arn_for_objects(objects_key_pattern),
        )


class Bucket(_BucketBase):
    """An S3 bucket emitted as ``AWS::S3::Bucket``.

    ``minimum_tls_version`` only applies together with ``enforce_ssl``.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        encryption_key: _KeyBase | None = None,
        enforce_ssl: bool = False,
        minimum_tls_version: float | None = None,
        bucket_name: str | None = None,
    ) -> None:
        super().__init__(scope, construct_id)
        if minimum_tls_version and not enforce_ssl:
            raise ValueError("'enforce_ssl' must be enabled for 'minimum_tls_version' to be applied")
        properties: dict[str, Any] = {}
        if encryption_key is not None:
            properties["BucketEncryption"] = {
                "ServerSideEncryptionConfiguration": [
                    {
                        "ServerSideEncryptionByDefault": {
                            "SSEAlgorithm": "aws:kms",
                            "KMSMasterKeyID": encryption_key.key_arn,
                        }
                    }
                ]
            }
        if bucket_name:
            properties["BucketName"] = bucket_name
        self._encryption_key = encryption_key
        self.resource = CfnResource(self, "Resource", type="AWS::S3::Bucket", properties=properties)
        self.bucket_arn = self.resource.get_att("Arn").to_string()
        self.bucket_name = self.resource.ref

        if enforce_ssl:
            self._deny_all("Bool", "aws:SecureTransport", "false")
            if minimum_tls_version:
                self._deny_all("NumericLessThan", "s3:TlsVersion", str(minimum_tls_version))

    def _deny_all(self, test: str, variable: str, value: str) -> None:
        self.add_to_resource_policy(
            PolicyStatement(
                effect=Effect.DENY,
                actions=["s3:*"],
                resources=[self.bucket_arn, self.arn_for_objects("*")],
                principals=[AnyPrincipal()],
                conditions=[Condition(test, variable, (value,))],
            )
        )

    @staticmethod
    def from_bucket_arn(
        scope: Construct,
        construct_id: str,
        bucket_arn: str,
        *,
        encryption_key: _KeyBase | None = None,
    ) -> _BucketBase:
        bucket_name = bucket_arn.split(":", 5)[-1].split("/", 1)[0]
        return _ImportedBucket(
            scope,
            construct_id,
            bucket_arn=bucket_arn,
            bucket_name=bucket_name,
            encryption_key=encryption_key,
        )

    @staticmethod
    def from_bucket_name(
        scope: Construct,
        construct_id: str,
        bucket_name: str,
        *,
        encryption_key: _KeyBase | None = None,
    ) -> _BucketBase:
        return _ImportedBucket(
            scope,
            construct_id,
            bucket_arn=f"arn:{Aws.PARTITION}:s3:::{bucket_name}",
            bucket_name=bucket_name,
            encryption_key=encryption_key,
        )


class _ImportedBucket(_BucketBase):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        bucket_arn: str,
        bucket_name: str,
        encryption_key: _KeyBase | None,
    ) -> None:
        # S3 ARNs carry no account; the importing stack's account is assumed.
        super().__init__(scope, construct_id, auto_create_policy=False)
        self.bucket_arn = bucket_arn
        self.bucket_name = bucket_name
        self._encryption_key = encryption_key
