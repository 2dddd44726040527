from __future__ import annotations

import enum
import logging
from typing import Any

from aws_cdk import Aws, CfnResource
from constructs import Construct

from .capabilities import Encryptable, ResourcePolicyCapable
from .errors import InvalidGrant
from .grant import Grant, GrantResolver
from .key_grants import KeyGrantPropagator
from .kms import Key, _KeyBase
from .policy import ResourcePolicy
from .principals import AnyPrincipal, Principal, account_from_arn
from .resource import GrantableResource, region_from_arn
from .statement import Condition, Effect, PolicyStatement

logger = logging.getLogger("grantkit.sqs")

CONSUME_ACTIONS = (
    "sqs:ReceiveMessage",
    "sqs:ChangeMessageVisibility",
    "sqs:GetQueueUrl",
    "sqs:DeleteMessage",
    "sqs:GetQueueAttributes",
)
SEND_ACTIONS = ("sqs:SendMessage", "sqs:GetQueueAttributes", "sqs:GetQueueUrl")
PURGE_ACTIONS = ("sqs:PurgeQueue", "sqs:GetQueueAttributes", "sqs:GetQueueUrl")

CONSUME_KEY_ACTIONS = ("kms:Decrypt",)
SEND_KEY_ACTIONS = ("kms:Decrypt", "kms:Encrypt", "kms:ReEncrypt*", "kms:GenerateDataKey*")


class QueueEncryption(str, enum.Enum):
    UNENCRYPTED = "NONE"
    KMS_MANAGED = "KMS_MANAGED"
    KMS = "KMS"
    SQS_MANAGED = "SQS_MANAGED"


class QueuePolicy(ResourcePolicy):
    """``AWS::SQS::QueuePolicy`` for one queue."""

    def __init__(self, scope: Construct, construct_id: str, *, queue: "_QueueBase") -> None:
        super().__init__(scope, construct_id)
        self.queue = queue
        self.resource: CfnResource | None = None

    def _render(self, rendered: dict[str, Any]) -> None:
        self.resource = CfnResource(
            self,
            "Resource",
            type="AWS::SQS::QueuePolicy",
            properties={"PolicyDocument": rendered, "Queues": [self.queue.queue_url]},
        )


class _QueueBase(GrantableResource, ResourcePolicyCapable, Encryptable):
    queue_arn: str
    queue_url: str
    queue_name: str
    fifo: bool
    encryption_type: QueueEncryption | None

    def __init__(self, scope: Construct, construct_id: str, **kwargs: Any) -> None:
        super().__init__(scope, construct_id, **kwargs)
        self._encryption_key: _KeyBase | None = None

    @property
    def encryption_key(self) -> _KeyBase | None:
        return self._encryption_key

    # Alias matching the queue property name used by subscriptions.
    @property
    def encryption_master_key(self) -> _KeyBase | None:
        return self._encryption_key

    @property
    def policy(self) -> ResourcePolicy | None:
        return self.policy_attachment.policy

    def _create_resource_policy(self) -> ResourcePolicy:
        return QueuePolicy(self, "Policy", queue=self)

    def grant(self, grantee: Principal, *actions: str) -> Grant:
        if not actions:
            raise InvalidGrant("a queue grant needs at least one action")
        return GrantResolver.add_to_principal_or_resource(
            grantee, actions, [self.queue_arn], self
        )

    def grant_consume_messages(self, grantee: Principal) -> Grant:
        grant = self.grant(grantee, *CONSUME_ACTIONS)
        KeyGrantPropagator.propagate(grant, self, CONSUME_KEY_ACTIONS)
        return grant

    def grant_send_messages(self, grantee: Principal) -> Grant:
        grant = self.grant(grantee, *SEND_ACTIONS)
        KeyGrantPropagator.propagate(grant, self, SEND_KEY_ACTIONS)
        return grant

    def grant_purge(self, grantee: Principal) -> Grant:
        return self.grant(grantee, *PURGE_ACTIONS)

    def _enforce_ssl(self) -> None:
        self.add_to_resource_policy(
            PolicyStatement(
                effect=Effect.DENY,
                actions=["sqs:*"],
                resources=[self.queue_arn],
                principals=[AnyPrincipal()],
                conditions=[Condition("Bool", "aws:SecureTransport", ("false",))],
            )
        )


class Queue(_QueueBase):
    """An SQS queue emitted as ``AWS::SQS::Queue``.

    Passing ``encryption_master_key`` implies ``QueueEncryption.KMS``; KMS
    encryption without a key creates one under this queue.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        encryption: QueueEncryption | None = None,
        encryption_master_key: _KeyBase | None = None,
        fifo: bool = False,
        queue_name: str | None = None,
        enforce_ssl: bool = False,
    ) -> None:
        super().__init__(scope, construct_id)
        if encryption is QueueEncryption.SQS_MANAGED and encryption_master_key is not None:
            raise ValueError(
                "'encryption_master_key' is not supported if encryption type 'SQS_MANAGED' is used"
            )
        if encryption_master_key is not None:
            encryption = QueueEncryption.KMS
        if fifo and queue_name and not queue_name.endswith(".fifo"):
            raise ValueError("FIFO queue names must end in '.fifo'")

        properties: dict[str, Any] = {}
        if encryption is QueueEncryption.UNENCRYPTED:
            properties["SqsManagedSseEnabled"] = False
        elif encryption is QueueEncryption.KMS_MANAGED:
            properties["KmsMasterKeyId"] = "alias/aws/sqs"
        elif encryption is QueueEncryption.KMS:
            key = encryption_master_key or Key(
                self, "Key", description=f"Created by {self.node.path}"
            )
            self._encryption_key = key
            properties["KmsMasterKeyId"] = key.key_arn
        elif encryption is QueueEncryption.SQS_MANAGED:
            properties["SqsManagedSseEnabled"] = True
        if fifo:
            properties["FifoQueue"] = True
        if queue_name:
            properties["QueueName"] = queue_name

        self.encryption_type = encryption
        self.fifo = fifo
        self.resource = CfnResource(self, "Resource", type="AWS::SQS::Queue", properties=properties)
        self.queue_arn = self.resource.get_att("Arn").to_string()
        self.queue_url = self.resource.ref
        self.queue_name = self.resource.get_att("QueueName").to_string()
        if enforce_ssl:
            self._enforce_ssl()

    @staticmethod
    def from_queue_arn(
        scope: Construct,
        construct_id: str,
        queue_arn: str,
        *,
        encryption_master_key: _KeyBase | None = None,
    ) -> _QueueBase:
        return _ImportedQueue(
            scope, construct_id, queue_arn=queue_arn, encryption_master_key=encryption_master_key
        )


class _ImportedQueue(_QueueBase):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        queue_arn: str,
        encryption_master_key: _KeyBase | None,
    ) -> None:
        account = account_from_arn(queue_arn)
        region = region_from_arn(queue_arn)
        super().__init__(
            scope, construct_id, auto_create_policy=False, account=account, region=region
        )
        self.queue_arn = queue_arn
        self.queue_name = queue_arn.rsplit(":", 1)[-1]
        self.queue_url = (
            f"https://sqs.{self.region}.{Aws.URL_SUFFIX}/{self.account}/{self.queue_name}"
        )
        self.fifo = self.queue_name.endswith(".fifo")
        self._encryption_key = encryption_master_key
        self.encryption_type = QueueEncryption.KMS if encryption_master_key else None
