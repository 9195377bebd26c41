"""Context resolution: default missing contexts, reject unknown ones."""

from __future__ import annotations

from typing import TYPE_CHECKING

from svcfwd.exceptions import NoDefaultContextError, UnknownContextError
from svcfwd.kube.client import RemoteClusterClient
from svcfwd.models.target import Target
from svcfwd.utils.logger import get_logger

if TYPE_CHECKING:
    from loguru import Logger

logger = get_logger(__name__)


async def fill_contexts(
    targets: list[Target],
    client: RemoteClusterClient,
    log: Logger | None = None,
) -> list[str]:
    """
    Assign the current context to targets without one and validate all.

    Returns:
        The referenced contexts, deduplicated, in first-seen order.

    Raises:
        NoDefaultContextError: A target has no context and none is current.
        UnknownContextError: A target references an unknown context.
    """
    log = log or logger
    available, current = await client.contexts()
    log.debug(f"Available contexts: {sorted(available)}, current: {current!r}")

    contexts: list[str] = []
    for target in targets:
        if not target.context:
            if not current:
                raise NoDefaultContextError(target.global_id)
            target.context = current
        if target.context not in available:
            raise UnknownContextError(target.context)
        if target.context not in contexts:
            contexts.append(target.context)

    return contexts
