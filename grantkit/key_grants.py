from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from .capabilities import encryption_key_of

if TYPE_CHECKING:
    from .grant import Grant

logger = logging.getLogger("grantkit.key_grants")


def unique_actions(*groups: Iterable[str]) -> tuple[str, ...]:
    """Ordered union of action lists with duplicates removed."""
    out: list[str] = []
    for group in groups:
        for action in group:
            if action not in out:
                out.append(action)
    return tuple(out)


class KeyGrantPropagator:
    """Issues the secondary key grant that goes with a grant on an encrypted resource.

    The key grant is independent of the primary one: it is issued even when
    the primary grant recorded nothing, and its outcome is returned separately.
    """

    @staticmethod
    def propagate(
        primary_grant: "Grant",
        resource: object,
        key_actions: Iterable[str],
    ) -> "Grant | None":
        key = encryption_key_of(resource)
        if key is None:
            return None
        actions = unique_actions(key_actions)
        if not actions:
            return None
        grantee = primary_grant.grantee
        if grantee is None:
            return None
        logger.debug("propagating %s on %s to %s", list(actions), key.node.path, grantee)
        return key.grant(grantee, *actions)
