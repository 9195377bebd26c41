"""Concurrent port discovery, one kubectl query per context."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from svcfwd.exceptions import NoServicesError
from svcfwd.kube.client import RemoteClusterClient
from svcfwd.models.target import PortRecord, Target
from svcfwd.utils.logger import get_logger

if TYPE_CHECKING:
    from loguru import Logger

logger = get_logger(__name__)


def _merge(context: str, records: list[PortRecord], targets: list[Target]) -> None:
    by_local = {t.local_id: t for t in targets if t.context == context}
    for record in records:
        if not record.is_tcp:
            continue
        target = by_local.get(record.local_id)
        if target is not None:
            target.add_port(record)


async def fill_ports(
    targets: list[Target],
    client: RemoteClusterClient,
    log: Logger | None = None,
) -> tuple[list[Target], list[str]]:
    """
    Fill every target's TCP ports from its context.

    A failed query for any context fails the whole call; the remaining
    queries are cancelled.

    Returns:
        (active, missing): targets that have ports, and the global ids of
        those that did not match any Service port.

    Raises:
        DiscoveryError: A context query failed.
        NoServicesError: No target has any port.
    """
    log = log or logger
    contexts = list(dict.fromkeys(t.context for t in targets))

    tasks = {ctx: asyncio.create_task(client.ports(ctx)) for ctx in contexts}
    try:
        await asyncio.gather(*tasks.values())
    except BaseException:
        for task in tasks.values():
            task.cancel()
        await asyncio.gather(*tasks.values(), return_exceptions=True)
        raise

    for ctx, task in tasks.items():
        records = task.result()
        log.debug(f"{ctx}: {len(records)} service ports")
        _merge(ctx, records, targets)

    active = [t for t in targets if t.ports]
    missing = [t.global_id for t in targets if not t.ports]
    if missing:
        log.warning(f"Could not find service ports: {', '.join(missing)}")
    if targets and not active:
        raise NoServicesError("no configured service has a TCP port to forward")

    return active, missing
