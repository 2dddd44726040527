from __future__ import annotations

from typing import TYPE_CHECKING

from constructs import Construct

from .attachment import AddToResourcePolicyResult, ResourcePolicyAttachment
from .errors import UnsupportedOperation
from .principals import account_from_arn
from .stack import PolicyStack
from .statement import PolicyStatement

if TYPE_CHECKING:
    from .policy import ResourcePolicy


def region_from_arn(arn: str) -> str | None:
    if account_from_arn(arn) is None:
        return None
    return arn.split(":")[3] or None


class GrantableResource(Construct):
    """Shared base for every resource family.

    Owned resources take account and region from their stack. Imported
    resources pass them explicitly (usually parsed from the ARN) and set
    ``auto_create_policy=False``, so they never grow a policy object.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        auto_create_policy: bool = True,
        account: str | None = None,
        region: str | None = None,
    ) -> None:
        super().__init__(scope, construct_id)
        self._stack = PolicyStack.of(self)
        self._account = account or self._stack.account
        self._region = region or self._stack.region
        self._policy_attachment = ResourcePolicyAttachment(
            self, self._create_resource_policy, auto_create_policy=auto_create_policy
        )

    @property
    def stack(self) -> PolicyStack:
        return self._stack

    @property
    def account(self) -> str:
        return self._account

    @property
    def region(self) -> str:
        return self._region

    @property
    def auto_create_policy(self) -> bool:
        return self._policy_attachment.auto_create_policy

    @property
    def policy_attachment(self) -> ResourcePolicyAttachment:
        return self._policy_attachment

    def _create_resource_policy(self) -> "ResourcePolicy":
        raise UnsupportedOperation(f"{self.node.path} has no resource policy")

    def add_to_resource_policy(self, statement: PolicyStatement) -> AddToResourcePolicyResult:
        """Append ``statement`` to this resource's own policy, creating it on first use.

        Imported resources return ``statement_added=False`` and change nothing.
        """
        return self._policy_attachment.add_statement(statement)
