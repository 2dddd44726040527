from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any

from aws_cdk import CfnResource, Names, Token
from constructs import Construct

from .capabilities import Encryptable, ResourcePolicyCapable
from .errors import InvalidGrant, UnsupportedOperation
from .grant import Grant, GrantResolver
from .key_grants import KeyGrantPropagator
from .kms import _KeyBase
from .notifications import NotificationRuleTarget, NotificationRuleTargetConfig
from .policy import ResourcePolicy
from .principals import AnyPrincipal, Principal, ServicePrincipal, account_from_arn
from .resolution import DependencyToken
from .resource import GrantableResource, region_from_arn
from .sqs import QueueEncryption, _QueueBase
from .statement import Condition, Effect, PolicyStatement

logger = logging.getLogger("grantkit.sns")

PUBLISH_ACTIONS = ("sns:Publish",)
SUBSCRIBE_ACTIONS = ("sns:Subscribe",)
PUBLISH_KEY_ACTIONS = ("kms:Decrypt", "kms:GenerateDataKey*")


class SubscriptionProtocol(str, enum.Enum):
    HTTP = "http"
    HTTPS = "https"
    EMAIL = "email"
    EMAIL_JSON = "email-json"
    SMS = "sms"
    SQS = "sqs"
    APPLICATION = "application"
    LAMBDA = "lambda"
    FIREHOSE = "firehose"


_RAW_DELIVERY_PROTOCOLS = (
    SubscriptionProtocol.HTTP,
    SubscriptionProtocol.HTTPS,
    SubscriptionProtocol.SQS,
    SubscriptionProtocol.FIREHOSE,
)


@dataclass(frozen=True)
class TopicSubscriptionConfig:
    protocol: SubscriptionProtocol
    endpoint: str
    raw_message_delivery: bool | None = None
    dead_letter_queue: _QueueBase | None = None
    subscription_dependency: DependencyToken | None = None


class TopicSubscription:
    """Something that can be subscribed to a topic.

    Interface: subclasses provide ``bind``. ``protocol`` and ``endpoint``
    identify the subscription for deduplication. ``subscriber_target`` names
    where the subscription construct goes and must not have side effects;
    ``bind`` does the side effects (policy statements) and is called once,
    after the target has been checked.
    """

    protocol: SubscriptionProtocol
    endpoint: str

    def subscriber_target(self, topic: "_TopicBase") -> tuple[Construct | None, str | None]:
        """Parent scope and id; ``None`` means the topic and a token id respectively."""
        return None, None

    def bind(self, topic: "_TopicBase") -> TopicSubscriptionConfig:
        """Interface method; every subscription kind provides its own."""
        raise NotImplementedError


def _sns_source_condition(topic: "_TopicBase") -> Condition:
    return Condition("ArnEquals", "aws:SourceArn", (topic.topic_arn,))


def _reject_managed_key(queue: _QueueBase, what: str) -> None:
    if queue.encryption_type is QueueEncryption.KMS_MANAGED:
        raise UnsupportedOperation(
            f"SQS queue encrypted by AWS managed KMS key cannot be used as {what}"
        )


class SqsSubscription(TopicSubscription):
    """Delivers topic messages to a queue.

    Binding lets ``sns.amazonaws.com`` send to the queue (and use its key,
    when there is one) on behalf of this topic only, and orders the
    subscription after the queue policy.
    """

    def __init__(
        self,
        queue: _QueueBase,
        *,
        raw_message_delivery: bool | None = None,
        dead_letter_queue: _QueueBase | None = None,
    ) -> None:
        self.queue = queue
        self.raw_message_delivery = raw_message_delivery
        self.dead_letter_queue = dead_letter_queue
        self.protocol = SubscriptionProtocol.SQS
        self.endpoint = queue.queue_arn

    def subscriber_target(self, topic: "_TopicBase") -> tuple[Construct | None, str | None]:
        return self.queue, Names.unique_id(topic)

    def bind(self, topic: "_TopicBase") -> TopicSubscriptionConfig:
        sns_principal = ServicePrincipal("sns.amazonaws.com")
        _reject_managed_key(self.queue, "SNS subscription")
        if self.dead_letter_queue is not None:
            _reject_managed_key(self.dead_letter_queue, "dead-letter queue")

        queue_result = self.queue.add_to_resource_policy(
            PolicyStatement(
                actions=["sqs:SendMessage"],
                resources=[self.queue.queue_arn],
                principals=[sns_principal],
                conditions=[_sns_source_condition(topic)],
            )
        )
        key = self.queue.encryption_master_key
        if key is not None:
            key.add_to_resource_policy(
                PolicyStatement(
                    actions=["kms:Decrypt", "kms:GenerateDataKey"],
                    resources=["*"],
                    principals=[sns_principal],
                    conditions=[_sns_source_condition(topic)],
                )
            )
        return TopicSubscriptionConfig(
            protocol=self.protocol,
            endpoint=self.endpoint,
            raw_message_delivery=self.raw_message_delivery,
            dead_letter_queue=self.dead_letter_queue,
            subscription_dependency=queue_result.policy_dependable,
        )


class UrlSubscription(TopicSubscription):
    def __init__(
        self,
        url: str,
        *,
        protocol: SubscriptionProtocol | None = None,
        raw_message_delivery: bool | None = None,
    ) -> None:
        unresolved = Token.is_unresolved(url)
        if not unresolved and not url.startswith(("http://", "https://")):
            raise ValueError("URL must start with either http:// or https://")
        if unresolved and protocol is None:
            raise ValueError("Must provide protocol if url is unresolved")
        if protocol is None:
            protocol = (
                SubscriptionProtocol.HTTPS if url.startswith("https:") else SubscriptionProtocol.HTTP
            )
        self.url = url
        self.protocol = protocol
        self.endpoint = url
        self.raw_message_delivery = raw_message_delivery

    def subscriber_target(self, topic: "_TopicBase") -> tuple[Construct | None, str | None]:
        return None, (None if Token.is_unresolved(self.url) else self.url)

    def bind(self, topic: "_TopicBase") -> TopicSubscriptionConfig:
        return TopicSubscriptionConfig(
            protocol=self.protocol,
            endpoint=self.url,
            raw_message_delivery=self.raw_message_delivery,
        )


class Subscription(Construct):
    """``AWS::SNS::Subscription`` for one (protocol, endpoint) pair."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        topic: "_TopicBase",
        protocol: SubscriptionProtocol,
        endpoint: str,
        raw_message_delivery: bool | None = None,
        dead_letter_queue: _QueueBase | None = None,
    ) -> None:
        super().__init__(scope, construct_id)
        if raw_message_delivery and protocol not in _RAW_DELIVERY_PROTOCOLS:
            raise ValueError(
                "Raw message delivery can only be enabled for HTTP, HTTPS, SQS, and Firehose subscriptions."
            )
        self.topic = topic
        self.protocol = protocol
        self.endpoint = endpoint
        self.dead_letter_queue = dead_letter_queue

        properties: dict[str, Any] = {
            "TopicArn": topic.topic_arn,
            "Protocol": protocol.value,
            "Endpoint": endpoint,
        }
        if raw_message_delivery is not None:
            properties["RawMessageDelivery"] = raw_message_delivery
        if dead_letter_queue is not None:
            dead_letter_queue.add_to_resource_policy(
                PolicyStatement(
                    actions=["sqs:SendMessage"],
                    resources=[dead_letter_queue.queue_arn],
                    principals=[ServicePrincipal("sns.amazonaws.com")],
                    conditions=[_sns_source_condition(topic)],
                )
            )
            properties["RedrivePolicy"] = {"deadLetterTargetArn": dead_letter_queue.queue_arn}
        self.resource = CfnResource(
            self, "Resource", type="AWS::SNS::Subscription", properties=properties
        )


class TopicPolicy(ResourcePolicy):
    """``AWS::SNS::TopicPolicy``; statements without a sid are numbered by position."""

    def __init__(self, scope: Construct, construct_id: str, *, topic: "_TopicBase") -> None:
        super().__init__(scope, construct_id, assign_sids=True)
        self.topic = topic
        self.resource: CfnResource | None = None

    def _render(self, rendered: dict[str, Any]) -> None:
        self.resource = CfnResource(
            self,
            "Resource",
            type="AWS::SNS::TopicPolicy",
            properties={"PolicyDocument": rendered, "Topics": [self.topic.topic_arn]},
        )


class _TopicBase(
    GrantableResource, ResourcePolicyCapable, Encryptable, NotificationRuleTarget
):
    topic_arn: str
    topic_name: str
    fifo: bool

    def __init__(self, scope: Construct, construct_id: str, **kwargs: Any) -> None:
        super().__init__(scope, construct_id, **kwargs)
        self._master_key: _KeyBase | None = None
        self._subscriptions: dict[tuple[str, str], Subscription] = {}

    @property
    def encryption_key(self) -> _KeyBase | None:
        return self._master_key

    @property
    def master_key(self) -> _KeyBase | None:
        return self._master_key

    @property
    def policy(self) -> ResourcePolicy | None:
        return self.policy_attachment.policy

    @property
    def subscriptions(self) -> tuple[Subscription, ...]:
        return tuple(self._subscriptions.values())

    def _create_resource_policy(self) -> ResourcePolicy:
        return TopicPolicy(self, "Policy", topic=self)

    @staticmethod
    def _next_token_id(scope: Construct) -> str:
        # Numbered per parent scope, shared by every topic subscribing under it.
        n = 1
        while scope.node.try_find_child(f"TokenSubscription:{n}") is not None:
            n += 1
        return f"TokenSubscription:{n}"

    def add_subscription(self, topic_subscription: TopicSubscription) -> Subscription:
        """Subscribe an endpoint; an equal (protocol, endpoint) pair returns the existing subscription."""
        key = (SubscriptionProtocol(topic_subscription.protocol).value, topic_subscription.endpoint)
        existing = self._subscriptions.get(key)
        if existing is not None:
            logger.debug("%s already subscribed on %s", key[1], self.node.path)
            return existing

        target_scope, sub_id = topic_subscription.subscriber_target(self)
        scope = target_scope if target_scope is not None else self
        if sub_id is None or Token.is_unresolved(sub_id):
            sub_id = self._next_token_id(scope)
        if scope.node.try_find_child(sub_id) is not None:
            raise UnsupportedOperation(
                f'A subscription with id "{sub_id}" already exists under the scope {scope.node.path}'
            )
        config = topic_subscription.bind(self)
        subscription = Subscription(
            scope,
            sub_id,
            topic=self,
            protocol=config.protocol,
            endpoint=config.endpoint,
            raw_message_delivery=config.raw_message_delivery,
            dead_letter_queue=config.dead_letter_queue,
        )
        if config.subscription_dependency is not None:
            config.subscription_dependency.apply_to(subscription)
        self._subscriptions[key] = subscription
        return subscription

    def grant(self, grantee: Principal, *actions: str) -> Grant:
        if not actions:
            raise InvalidGrant("a topic grant needs at least one action")
        return GrantResolver.add_to_principal_or_resource(
            grantee, actions, [self.topic_arn], self
        )

    def grant_publish(self, grantee: Principal) -> Grant:
        grant = self.grant(grantee, *PUBLISH_ACTIONS)
        KeyGrantPropagator.propagate(grant, self, PUBLISH_KEY_ACTIONS)
        return grant

    def grant_subscribe(self, grantee: Principal) -> Grant:
        return self.grant(grantee, *SUBSCRIBE_ACTIONS)

    def bind_as_notification_rule_target(self, scope: Construct) -> NotificationRuleTargetConfig:
        del scope
        self.grant_publish(ServicePrincipal("codestar-notifications.amazonaws.com"))
        return NotificationRuleTargetConfig(target_type="SNS", target_address=self.topic_arn)

    def _enforce_ssl(self) -> None:
        self.add_to_resource_policy(
            PolicyStatement(
                sid="AllowPublishThroughSSLOnly",
                effect=Effect.DENY,
                actions=["sns:Publish"],
                resources=[self.topic_arn],
                principals=[AnyPrincipal()],
                conditions=[Condition("Bool", "aws:SecureTransport", ("false",))],
            )
        )


class Topic(_TopicBase):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        master_key: _KeyBase | None = None,
        enforce_ssl: bool = False,
        fifo: bool = False,
        topic_name: str | None = None,
    ) -> None:
        super().__init__(scope, construct_id)
        if fifo and topic_name and not topic_name.endswith(".fifo"):
            topic_name = f"{topic_name}.fifo"
        properties: dict[str, Any] = {}
        if master_key is not None:
            properties["KmsMasterKeyId"] = master_key.key_arn
        if fifo:
            properties["FifoTopic"] = True
        if topic_name:
            properties["TopicName"] = topic_name
        self._master_key = master_key
        self.fifo = fifo
        self.resource = CfnResource(self, "Resource", type="AWS::SNS::Topic", properties=properties)
        self.topic_arn = self.resource.ref
        self.topic_name = self.resource.get_att("TopicName").to_string()
        if enforce_ssl:
            self._enforce_ssl()

    @staticmethod
    def from_topic_arn(
        scope: Construct,
        construct_id: str,
        topic_arn: str,
        *,
        master_key: _KeyBase | None = None,
    ) -> _TopicBase:
        return _ImportedTopic(scope, construct_id, topic_arn=topic_arn, master_key=master_key)


class _ImportedTopic(_TopicBase):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        topic_arn: str,
        master_key: _KeyBase | None,
    ) -> None:
        super().__init__(
            scope,
            construct_id,
            auto_create_policy=False,
            account=account_from_arn(topic_arn),
            region=region_from_arn(topic_arn),
        )
        self.topic_arn = topic_arn
        self.topic_name = topic_arn.rsplit(":", 1)[-1]
        self.fifo = self.topic_name.endswith(".fifo")
        self._master_key = master_key
