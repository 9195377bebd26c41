"""
Naming conflict detection.

Services with the same ``service.namespace`` in different contexts are
expected: both lose their short hostname and keep the fully qualified
one. The same pair within one context, or a repeated alias, is a
configuration error.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from svcfwd.exceptions import DuplicateTargetError
from svcfwd.models.target import Target
from svcfwd.utils.logger import get_logger

if TYPE_CHECKING:
    from loguru import Logger

logger = get_logger(__name__)


def check_conflicts(targets: list[Target], log: Logger | None = None) -> None:
    """
    Mark conflicting targets and reject duplicates.

    Raises:
        DuplicateTargetError: Listing every duplicated global id and alias.
    """
    log = log or logger
    duplicates: list[str] = []

    def record(token: str) -> None:
        if token not in duplicates:
            duplicates.append(token)

    by_local: dict[str, Target] = {}
    for target in targets:
        other = by_local.get(target.local_id)
        if other is None:
            by_local[target.local_id] = target
            continue
        target.conflict = True
        other.conflict = True
        if target.context == other.context:
            record(target.global_id)

    by_alias: dict[str, Target] = {}
    for target in targets:
        for alias in target.aliases:
            if alias in by_alias:
                record(alias)
            else:
                by_alias[alias] = target

    if duplicates:
        raise DuplicateTargetError(duplicates)

    conflicted = [t.global_id for t in targets if t.conflict]
    if conflicted:
        log.info(f"Short hostnames disabled for: {', '.join(conflicted)}")
