from __future__ import annotations

import enum
import json
from typing import Any, Iterable

from .errors import InvalidStatement, ResolutionError
from .statement import PolicyStatement

POLICY_VERSION = "2012-10-17"


class PolicyKind(str, enum.Enum):
    IDENTITY = "identity"
    RESOURCE = "resource"


def check_statement(statement: PolicyStatement, kind: PolicyKind | None) -> None:
    if not isinstance(statement, PolicyStatement):
        raise InvalidStatement(f"expected a PolicyStatement, got {type(statement).__name__}")
    if kind is PolicyKind.IDENTITY and statement.has_principal:
        raise InvalidStatement(
            "A PolicyStatement used in an identity-based policy cannot specify any IAM principals."
        )
    if kind is PolicyKind.RESOURCE and not statement.has_principal:
        raise InvalidStatement(
            "A PolicyStatement used in a resource-based policy must specify at least one IAM principal."
        )


class PolicyDocument:
    """Ordered, append-only list of statements owned by one policy object.

    Statements are never merged or deduplicated by content. When
    ``assign_sids`` is set, statements without an explicit sid are numbered by
    their insertion index each time the document is serialized.
    """

    def __init__(
        self,
        *,
        statements: Iterable[PolicyStatement] = (),
        assign_sids: bool = False,
        kind: PolicyKind | None = None,
    ) -> None:
        self._statements: list[PolicyStatement] = []
        self._assign_sids = bool(assign_sids)
        self._kind = kind
        self._frozen = False
        initial = list(statements)
        if initial:
            self.add_statements(*initial)

    @property
    def statements(self) -> tuple[PolicyStatement, ...]:
        return tuple(self._statements)

    @property
    def is_empty(self) -> bool:
        return not self._statements

    @property
    def assign_sids(self) -> bool:
        return self._assign_sids

    @property
    def kind(self) -> PolicyKind | None:
        return self._kind

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __len__(self) -> int:
        return len(self._statements)

    def add_statements(self, *statements: PolicyStatement) -> None:
        if self._frozen:
            raise ResolutionError(
                "cannot add statements to a policy document after policies were resolved"
            )
        # Check everything before appending anything.
        for statement in statements:
            check_statement(statement, self._kind)
        self._statements.extend(statements)

    def freeze(self) -> None:
        self._frozen = True

    def copy(self) -> "PolicyDocument":
        return PolicyDocument(
            statements=self._statements,
            assign_sids=self._assign_sids,
            kind=self._kind,
        )

    def to_serializable(self) -> dict[str, Any]:
        rendered = [
            s.to_statement_json(default_sid=str(i) if self._assign_sids else None)
            for i, s in enumerate(self._statements)
        ]
        return {"Version": POLICY_VERSION, "Statement": rendered}

    def to_json(self, *, pretty: bool = False) -> str:
        if pretty:
            return json.dumps(self.to_serializable(), indent=2, sort_keys=True)
        return json.dumps(self.to_serializable(), separators=(",", ":"), sort_keys=True)
