from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from aws_cdk import CfnResource
from constructs import Construct

from .attachment import ensure_open
from .stack import PolicyStack

logger = logging.getLogger("grantkit.notifications")


@dataclass(frozen=True)
class NotificationRuleTargetConfig:
    target_type: str
    target_address: str


class NotificationRuleTarget:
    """Anything a notification rule can deliver to (an SNS topic, for instance)."""

    def bind_as_notification_rule_target(self, scope: Construct) -> NotificationRuleTargetConfig:
        """Interface method; targets grant the notification service access and describe themselves."""
        raise NotImplementedError


class NotificationRule(Construct):
    """``AWS::CodeStarNotifications::NotificationRule`` with deduplicated targets.

    Targets are bound as they are added (binding is what grants the
    notification service access to them) and rendered once policies are
    resolved. Adding a target after that raises ``ResolutionError``.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        source_arn: str,
        events: Iterable[str],
        targets: Iterable[NotificationRuleTarget] = (),
        rule_name: str | None = None,
        detail_type: str = "FULL",
    ) -> None:
        super().__init__(scope, construct_id)
        self.source_arn = source_arn
        self.events = list(dict.fromkeys(events))
        if not self.events:
            raise ValueError("a notification rule needs at least one event type")
        self.rule_name = rule_name
        self.detail_type = detail_type
        self._targets: list[NotificationRuleTargetConfig] = []
        self.resource: CfnResource | None = None
        for target in targets:
            self.add_target(target)
        PolicyStack.of(self).resolution.register(
            self.node.path, self._render_targets, self._render
        )

    @property
    def targets(self) -> tuple[NotificationRuleTargetConfig, ...]:
        return tuple(self._targets)

    def add_target(self, target: NotificationRuleTarget) -> bool:
        """Add ``target``; returns False when an equal target is already present."""
        ensure_open(self, "targets")
        config = target.bind_as_notification_rule_target(self)
        for existing in self._targets:
            if (existing.target_type, existing.target_address) == (
                config.target_type,
                config.target_address,
            ):
                logger.debug("%s already targets %s", self.node.path, config.target_address)
                return False
        self._targets.append(config)
        return True

    def _render_targets(self) -> list[dict[str, str]]:
        return [
            {"TargetType": t.target_type, "TargetAddress": t.target_address}
            for t in self._targets
        ]

    def _render(self, targets: list[dict[str, Any]]) -> None:
        properties: dict[str, Any] = {
            "Name": self.rule_name or self.node.id,
            "DetailType": self.detail_type,
            "EventTypeIds": list(self.events),
            "Resource": self.source_arn,
            "Targets": targets,
        }
        self.resource = CfnResource(
            self,
            "Resource",
            type="AWS::CodeStarNotifications::NotificationRule",
            properties=properties,
        )
