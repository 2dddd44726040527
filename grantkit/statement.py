from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable

from .errors import InvalidStatement

if TYPE_CHECKING:
    from .principals import Principal


class Effect(str, enum.Enum):
    ALLOW = "Allow"
    DENY = "Deny"


@dataclass(frozen=True)
class Condition:
    """One ``{test: {variable: values}}`` entry; conditions in a statement are ANDed."""

    test: str
    variable: str
    values: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.test or not self.variable:
            raise InvalidStatement("condition test and variable are required")
        values = (self.values,) if isinstance(self.values, str) else tuple(self.values)
        if not values:
            raise InvalidStatement(
                f"condition {self.test} on {self.variable} must have at least one value"
            )
        object.__setattr__(self, "values", values)


def _unique(raw: Iterable[str] | str, label: str) -> tuple[str, ...]:
    if isinstance(raw, str):
        raw = [raw]
    out: list[str] = []
    for v in raw:
        if not isinstance(v, str) or not v:
            raise InvalidStatement(f"{label} entries must be non-empty strings, got {v!r}")
        if v not in out:
            out.append(v)
    return tuple(out)


def _validate_action(action: str) -> None:
    if action == "*" or ":" in action:
        return
    raise InvalidStatement(
        f"Action '{action}' is invalid. An action string consists of a service "
        "namespace, a colon, and the name of an action."
    )


def _scalar_or_list(values: Iterable[Any]) -> Any:
    values = list(values)
    return values[0] if len(values) == 1 else values


def _render_principals(principals: Iterable[Principal]) -> dict[str, Any]:
    merged: dict[str, list[str]] = {}
    for principal in principals:
        for key, values in principal.policy_fragment.items():
            bucket = merged.setdefault(key, [])
            for v in values:
                if v not in bucket:
                    bucket.append(v)
    return {k: _scalar_or_list(v) for k, v in merged.items()}


def _render_conditions(conditions: Iterable[Condition]) -> dict[str, Any]:
    out: dict[str, dict[str, Any]] = {}
    for c in conditions:
        out.setdefault(c.test, {})[c.variable] = _scalar_or_list(c.values)
    return out


class PolicyStatement:
    """One allow/deny rule.

    Statements are validated when built and cannot be changed afterwards; use
    ``copy()`` to derive a variant. A statement without actions or without
    resources is rejected here, so it can never reach a document.
    """

    def __init__(
        self,
        *,
        actions: Iterable[str] | str,
        resources: Iterable[str] | str,
        effect: Effect | str = Effect.ALLOW,
        principals: Iterable[Principal] = (),
        conditions: Iterable[Condition] = (),
        sid: str | None = None,
    ) -> None:
        try:
            self._effect = Effect(effect)
        except ValueError as e:
            raise InvalidStatement(f"unknown effect {effect!r}") from e
        self._actions = _unique(actions, "action")
        if not self._actions:
            raise InvalidStatement("A PolicyStatement must specify at least one action")
        for action in self._actions:
            _validate_action(action)
        self._resources = _unique(resources, "resource")
        if not self._resources:
            raise InvalidStatement("A PolicyStatement must specify at least one resource")
        self._principals = tuple(principals)
        for p in self._principals:
            if not hasattr(p, "policy_fragment"):
                raise InvalidStatement(f"not a principal: {p!r}")
        self._conditions = tuple(conditions)
        seen: set[tuple[str, str]] = set()
        for c in self._conditions:
            if not isinstance(c, Condition):
                raise InvalidStatement(f"not a Condition: {c!r}")
            key = (c.test, c.variable)
            if key in seen:
                raise InvalidStatement(f"duplicate condition {c.test} on {c.variable}")
            seen.add(key)
        if sid is not None and not sid:
            raise InvalidStatement("sid must be a non-empty string when given")
        self._sid = sid

    @property
    def effect(self) -> Effect:
        return self._effect

    @property
    def actions(self) -> tuple[str, ...]:
        return self._actions

    @property
    def resources(self) -> tuple[str, ...]:
        return self._resources

    @property
    def principals(self) -> tuple[Principal, ...]:
        return self._principals

    @property
    def conditions(self) -> tuple[Condition, ...]:
        return self._conditions

    @property
    def sid(self) -> str | None:
        return self._sid

    @property
    def has_principal(self) -> bool:
        return len(self._principals) > 0

    def copy(self, **changes: Any) -> "PolicyStatement":
        kwargs: dict[str, Any] = {
            "actions": self._actions,
            "resources": self._resources,
            "effect": self._effect,
            "principals": self._principals,
            "conditions": self._conditions,
            "sid": self._sid,
        }
        unknown = set(changes) - set(kwargs)
        if unknown:
            raise TypeError(f"unknown statement fields: {sorted(unknown)}")
        kwargs.update(changes)
        return PolicyStatement(**kwargs)

    def to_statement_json(self, *, default_sid: str | None = None) -> dict[str, Any]:
        out: dict[str, Any] = {}
        sid = self._sid if self._sid is not None else default_sid
        if sid is not None:
            out["Sid"] = sid
        out["Effect"] = self._effect.value
        if self._principals:
            out["Principal"] = _render_principals(self._principals)
        out["Action"] = _scalar_or_list(self._actions)
        out["Resource"] = _scalar_or_list(self._resources)
        if self._conditions:
            out["Condition"] = _render_conditions(self._conditions)
        return out

    def __repr__(self) -> str:
        return (
            f"PolicyStatement(effect={self._effect.value!r}, actions={list(self._actions)!r}, "
            f"resources={list(self._resources)!r}, sid={self._sid!r})"
        )
