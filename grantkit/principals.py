from __future__ import annotations

from aws_cdk import Aws, Token

from .attachment import AddToPrincipalPolicyResult
from .statement import PolicyStatement


def account_from_arn(arn: str) -> str | None:
    """Return the account field of a literal ARN, or None when it is a token or absent."""
    if Token.is_unresolved(arn):
        return None
    parts = arn.split(":")
    if len(parts) < 6 or parts[0] != "arn":
        return None
    return parts[4] or None


def same_account(a: str | None, b: str | None) -> bool:
    # Two unresolved account tokens are assumed to name the same account.
    if not a or not b:
        return False
    a_unresolved = Token.is_unresolved(a)
    b_unresolved = Token.is_unresolved(b)
    if a_unresolved and b_unresolved:
        return True
    if a_unresolved or b_unresolved:
        return False
    return a == b


class Principal:
    """Base for everything that can be named in a policy and receive a grant.

    Principals that own an identity policy override ``add_to_principal_policy``;
    the default reports that nothing was recorded, which sends
    principal-or-resource grants to the resource policy instead.
    """

    @property
    def grant_principal(self) -> "Principal":
        return self

    @property
    def policy_fragment(self) -> dict[str, list[str]]:
        """Interface property; every concrete principal provides its own."""
        raise NotImplementedError

    @property
    def principal_account(self) -> str | None:
        return None

    def add_to_principal_policy(self, statement: PolicyStatement) -> AddToPrincipalPolicyResult:
        del statement
        return AddToPrincipalPolicyResult(statement_added=False)

    def add_to_policy(self, statement: PolicyStatement) -> bool:
        return self.add_to_principal_policy(statement).statement_added

    def dedupe_string(self) -> str:
        return f"{type(self).__name__}:{self.policy_fragment!r}"

    def __str__(self) -> str:
        return self.dedupe_string()


class ServicePrincipal(Principal):
    def __init__(self, service: str) -> None:
        if not service:
            raise ValueError("service principal name is required")
        self.service = service

    @property
    def policy_fragment(self) -> dict[str, list[str]]:
        return {"Service": [self.service]}


class ArnPrincipal(Principal):
    def __init__(self, arn: str) -> None:
        if not arn:
            raise ValueError("principal ARN is required")
        self.arn = arn

    @property
    def policy_fragment(self) -> dict[str, list[str]]:
        return {"AWS": [self.arn]}

    @property
    def principal_account(self) -> str | None:
        return account_from_arn(self.arn)


class AccountPrincipal(ArnPrincipal):
    def __init__(self, account_id: str, *, partition: str = Aws.PARTITION) -> None:
        if not account_id:
            raise ValueError("account id is required")
        super().__init__(f"arn:{partition}:iam::{account_id}:root")
        self.account_id = account_id

    @property
    def principal_account(self) -> str | None:
        return self.account_id


class AnyPrincipal(ArnPrincipal):
    def __init__(self) -> None:
        super().__init__("*")

    @property
    def principal_account(self) -> str | None:
        return None
