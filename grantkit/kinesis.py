from __future__ import annotations

from typing import Any

from aws_cdk import CfnResource
from constructs import Construct

from .capabilities import Encryptable, ResourcePolicyCapable
from .errors import InvalidGrant
from .grant import Grant, GrantResolver
from .key_grants import KeyGrantPropagator, unique_actions
from .kms import _KeyBase
from .policy import ResourcePolicy
from .principals import Principal, account_from_arn
from .resource import GrantableResource, region_from_arn

READ_OPERATIONS = (
    "kinesis:DescribeStreamSummary",
    "kinesis:GetRecords",
    "kinesis:GetShardIterator",
    "kinesis:ListShards",
    "kinesis:SubscribeToShard",
    "kinesis:DescribeStream",
    "kinesis:ListStreams",
    "kinesis:DescribeStreamConsumer",
)
WRITE_OPERATIONS = ("kinesis:ListShards", "kinesis:PutRecord", "kinesis:PutRecords")

KEY_READ_ACTIONS = ("kms:Decrypt",)
KEY_WRITE_ACTIONS = ("kms:Encrypt", "kms:ReEncrypt*", "kms:GenerateDataKey*")


class StreamResourcePolicy(ResourcePolicy):
    """``AWS::Kinesis::ResourcePolicy``; only created by direct ``add_to_resource_policy`` calls."""

    def __init__(self, scope: Construct, construct_id: str, *, stream: "_StreamBase") -> None:
        super().__init__(scope, construct_id)
        self.stream = stream
        self.resource: CfnResource | None = None

    def _render(self, rendered: dict[str, Any]) -> None:
        self.resource = CfnResource(
            self,
            "Resource",
            type="AWS::Kinesis::ResourcePolicy",
            properties={"ResourceArn": self.stream.stream_arn, "ResourcePolicy": rendered},
        )


class _StreamBase(GrantableResource, ResourcePolicyCapable, Encryptable):
    stream_arn: str
    stream_name: str

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
        return StreamResourcePolicy(self, "Policy", stream=self)

    def grant(self, grantee: Principal, *actions: str) -> Grant:
        # Stream grants never synthesize a resource policy.
        if not actions:
            raise InvalidGrant("a stream grant needs at least one action")
        return GrantResolver.add_to_principal(grantee, actions, [self.stream_arn], self)

    def grant_read(self, grantee: Principal) -> Grant:
        grant = self.grant(grantee, *READ_OPERATIONS)
        KeyGrantPropagator.propagate(grant, self, KEY_READ_ACTIONS)
        return grant

    def grant_write(self, grantee: Principal) -> Grant:
        grant = self.grant(grantee, *WRITE_OPERATIONS)
        KeyGrantPropagator.propagate(grant, self, KEY_WRITE_ACTIONS)
        return grant

    def grant_read_write(self, grantee: Principal) -> Grant:
        grant = self.grant(grantee, *unique_actions(READ_OPERATIONS, WRITE_OPERATIONS))
        KeyGrantPropagator.propagate(
            grant, self, unique_actions(KEY_READ_ACTIONS, KEY_WRITE_ACTIONS)
        )
        return grant


class Stream(_StreamBase):
    """An on-demand Kinesis data stream emitted as ``AWS::Kinesis::Stream``."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        encryption_key: _KeyBase | None = None,
        stream_name: str | None = None,
    ) -> None:
        super().__init__(scope, construct_id)
        properties: dict[str, Any] = {"StreamModeDetails": {"StreamMode": "ON_DEMAND"}}
        if encryption_key is not None:
            properties["StreamEncryption"] = {
                "EncryptionType": "KMS",
                "KeyId": encryption_key.key_arn,
            }
        if stream_name:
            properties["Name"] = stream_name
        self._encryption_key = encryption_key
        self.resource = CfnResource(
            self, "Resource", type="AWS::Kinesis::Stream", properties=properties
        )
        self.stream_arn = self.resource.get_att("Arn").to_string()
        self.stream_name = self.resource.ref

    @staticmethod
    def from_stream_arn(
        scope: Construct,
        construct_id: str,
        stream_arn: str,
        *,
        encryption_key: _KeyBase | None = None,
    ) -> _StreamBase:
        return _ImportedStream(
            scope, construct_id, stream_arn=stream_arn, encryption_key=encryption_key
        )


class _ImportedStream(_StreamBase):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        stream_arn: str,
        encryption_key: _KeyBase | None,
    ) -> None:
        super().__init__(
            scope,
            construct_id,
            auto_create_policy=False,
            account=account_from_arn(stream_arn),
            region=region_from_arn(stream_arn),
        )
        self.stream_arn = stream_arn
        self.stream_name = stream_arn.rsplit("/", 1)[-1]
        self._encryption_key = encryption_key
