from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from constructs import IConstruct

from .document import PolicyDocument
from .errors import ResolutionError

logger = logging.getLogger("grantkit.resolution")


class DependencyToken:
    """Opaque handle on the policy object(s) that now carry a statement.

    Constructs that must not exist before the permission does are ordered
    after the token with ``apply_to``; CDK renders that as ``DependsOn``.
    """

    def __init__(self, *targets: "IConstruct | DependencyToken | None") -> None:
        flat: list[IConstruct] = []
        for target in targets:
            if target is None:
                continue
            candidates = target.targets if isinstance(target, DependencyToken) else (target,)
            for c in candidates:
                if not any(c is seen for seen in flat):
                    flat.append(c)
        self._targets = tuple(flat)

    @property
    def targets(self) -> tuple[IConstruct, ...]:
        return self._targets

    @property
    def paths(self) -> tuple[str, ...]:
        return tuple(t.node.path for t in self._targets)

    def apply_to(self, *constructs: IConstruct) -> None:
        if not self._targets:
            return
        for construct in constructs:
            construct.node.add_dependency(*self._targets)

    def __add__(self, other: "DependencyToken | None") -> "DependencyToken":
        return DependencyToken(self, other)

    def __bool__(self) -> bool:
        return bool(self._targets)

    def __repr__(self) -> str:
        return f"DependencyToken({', '.join(self.paths)})"


@dataclass
class _Registration:
    owner_path: str
    producer: Callable[[], Any]
    consumer: Callable[[Any], None]
    document: PolicyDocument | None


class ResolutionPhase:
    """Second build pass: runs every registered producer exactly once.

    Policy objects register their document while the build is being declared;
    ``run`` freezes all documents, invokes each producer in registration order
    and hands the value to the owner's consumer for emission.
    """

    def __init__(self) -> None:
        self._registrations: list[_Registration] = []
        self._resolved = False
        self._documents: dict[str, Any] = {}

    @property
    def resolved(self) -> bool:
        return self._resolved

    @property
    def pending(self) -> int:
        return 0 if self._resolved else len(self._registrations)

    def register_document(
        self,
        owner_path: str,
        document: PolicyDocument,
        consumer: Callable[[dict[str, Any]], None],
    ) -> None:
        self.register(owner_path, document.to_serializable, consumer, document=document)

    def register(
        self,
        owner_path: str,
        producer: Callable[[], Any],
        consumer: Callable[[Any], None],
        *,
        document: PolicyDocument | None = None,
    ) -> None:
        if self._resolved:
            raise ResolutionError(f"cannot register {owner_path} after policies were resolved")
        self._registrations.append(_Registration(owner_path, producer, consumer, document))

    def run(self) -> dict[str, Any]:
        if self._resolved:
            raise ResolutionError("policies were already resolved for this build")
        self._resolved = True
        for reg in self._registrations:
            if reg.document is not None:
                reg.document.freeze()
        for reg in self._registrations:
            value = reg.producer()
            reg.consumer(value)
            if reg.document is not None:
                self._documents[reg.owner_path] = value
            logger.debug("resolved %s", reg.owner_path)
        logger.info(
            "resolution phase complete: %d producer(s), %d policy document(s)",
            len(self._registrations),
            len(self._documents),
        )
        return dict(self._documents)

    def documents(self) -> dict[str, Any]:
        if not self._resolved:
            raise ResolutionError("policies have not been resolved yet")
        return dict(self._documents)
