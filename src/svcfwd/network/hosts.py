"""
Hosts file handling.

``HostsFile`` is a small reader/writer for ``/etc/hosts`` style files that
keeps comments and unrelated entries untouched. ``HostsSynchronizer``
registers and removes the hostnames of a run's targets on top of any
``HostsStore``.
"""

from __future__ import annotations

import asyncio
import errno
import os
import shutil
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from svcfwd.exceptions import HostsError
from svcfwd.models.target import Target
from svcfwd.utils.logger import get_logger

if TYPE_CHECKING:
    from loguru import Logger

logger = get_logger(__name__)


class HostsStore(ABC):
    """Hostname to address records, persisted by ``save``."""

    @abstractmethod
    def remove_address(self, address: str) -> None:
        """Drop every record bound to ``address``."""

    @abstractmethod
    def add_host(self, address: str, hostname: str) -> None:
        """Bind ``hostname`` to ``address``."""

    @abstractmethod
    def save(self) -> None:
        """Persist all pending changes."""


# =============================================================================
# Hosts File
# =============================================================================


@dataclass
class _Line:
    """One line of the hosts file. ``address`` is empty for non-entries."""

    raw: str
    address: str = ""
    hostnames: list[str] = field(default_factory=list)
    comment: str = ""

    def render(self) -> str:
        if not self.address:
            return self.raw
        text = " ".join([self.address, *self.hostnames])
        if self.comment:
            text = f"{text} {self.comment}"
        return text


def _parse_line(raw: str) -> _Line:
    body, sep, comment = raw.partition("#")
    fields = body.split()
    if len(fields) < 2:
        return _Line(raw=raw)
    return _Line(
        raw=raw,
        address=fields[0],
        hostnames=fields[1:],
        comment=f"{sep}{comment}" if sep else "",
    )


class HostsFile(HostsStore):
    """
    ``/etc/hosts`` reader/writer.

    The file is read on construction. Changes are kept in memory until
    ``save`` replaces the file.
    """

    def __init__(self, path: str = "/etc/hosts"):
        self.path = Path(path)
        self._lines: list[_Line] = []
        self.reload()

    def reload(self) -> None:
        try:
            content = self.path.read_text() if self.path.exists() else ""
        except OSError as e:
            raise HostsError(f"failed to read {self.path}: {e}") from e
        self._lines = [_parse_line(raw) for raw in content.splitlines()]

    def remove_address(self, address: str) -> None:
        self._lines = [line for line in self._lines if line.address != address]

    def add_host(self, address: str, hostname: str) -> None:
        # Move the hostname if it is bound elsewhere
        for line in self._lines:
            if line.address and line.address != address and hostname in line.hostnames:
                line.hostnames.remove(hostname)
        self._lines = [
            line for line in self._lines if not line.address or line.hostnames
        ]

        for line in self._lines:
            if line.address == address:
                if hostname not in line.hostnames:
                    line.hostnames.append(hostname)
                return
        self._lines.append(_Line(raw="", address=address, hostnames=[hostname]))

    def hosts_for(self, address: str) -> list[str]:
        """Hostnames currently bound to ``address``."""
        names: list[str] = []
        for line in self._lines:
            if line.address == address:
                names.extend(line.hostnames)
        return names

    def address_of(self, hostname: str) -> str | None:
        for line in self._lines:
            if hostname in line.hostnames:
                return line.address
        return None

    def render(self) -> str:
        return "".join(f"{line.render()}\n" for line in self._lines)

    def save(self) -> None:
        """
        Replace the file with the rendered content.

        The content goes to a temporary file next to the target, which is
        then renamed over it. A file that is a mount point (/etc/hosts in
        containers) cannot be renamed over and is rewritten in place.
        """
        content = self.render()
        try:
            self._replace(content)
        except OSError as e:
            if e.errno not in (errno.EBUSY, errno.EXDEV):
                raise HostsError(f"failed to write {self.path}: {e}") from e
            logger.debug(f"Cannot replace {self.path} ({e}), writing in place")
            try:
                self.path.write_text(content)
            except OSError as write_error:
                raise HostsError(
                    f"failed to write {self.path}: {write_error}"
                ) from write_error

    def _replace(self, content: str) -> None:
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            if self.path.exists():
                shutil.copymode(self.path, tmp_path)
            else:
                tmp_path.chmod(0o644)
            os.replace(tmp_path, self.path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise


# =============================================================================
# Synchronizer
# =============================================================================


class HostsSynchronizer:
    """Registers and removes target hostnames, one save per batch."""

    def __init__(self, store: HostsStore, log: Logger | None = None):
        self.store = store
        self.log = log or logger

    def _write_sync(self, targets: list[Target]) -> None:
        for target in targets:
            # Clear leftovers from a previous run that did not clean up
            self.store.remove_address(target.address)
            for hostname in target.hostnames():
                self.store.add_host(target.address, hostname)
        self.store.save()

    def _remove_sync(self, targets: list[Target]) -> None:
        for target in targets:
            self.store.remove_address(target.address)
        self.store.save()

    async def write(self, targets: list[Target]) -> None:
        """Register every target's hostnames and save."""
        await asyncio.to_thread(self._write_sync, targets)
        self.log.info(f"Hosts updated for {len(targets)} services")

    async def remove(self, targets: list[Target]) -> None:
        """Remove the records of every target address and save."""
        await asyncio.to_thread(self._remove_sync, targets)
        self.log.info("Hosts entries removed")
