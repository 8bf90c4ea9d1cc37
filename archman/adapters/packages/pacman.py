"""
Package backends — pacman for the system repositories, an AUR helper
(paru or yay) for foreign packages.

Both speak the same pacman command-line dialect; only the binary,
the query filter and the need for sudo differ.
"""

from __future__ import annotations

import logging
import os

from archman.adapters.base import InstallReasons, PackageBackend
from archman.adapters.shell.command import QUERY_TIMEOUT, run_command, tool_available
from archman.core.errors import BackendError, ObservationError

logger = logging.getLogger(__name__)

AUR_HELPERS = ("paru", "yay")


def _parse_names(output: str) -> set[str]:
    """Parse ``-Qq`` output: one package name per line."""
    names = set()
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        if len(line.split()) != 1:
            raise ObservationError(f"Failed to parse package list line: {line!r}")
        names.add(line)
    return names


class PacmanBackend(PackageBackend):
    """Packages from the configured repositories, managed by pacman.

    Mutating commands run through sudo unless we already are root.
    """

    binary = "pacman"
    query_flags = "-Qq"

    def __init__(self, use_sudo: bool | None = None):
        if use_sudo is None:
            use_sudo = os.geteuid() != 0
        self._use_sudo = use_sudo

    @property
    def name(self) -> str:
        return self.binary

    def is_available(self) -> bool:
        return tool_available(self.binary)

    def _privileged(self, *args: str) -> list[str]:
        cmd = [self.binary, *args]
        return ["sudo", *cmd] if self._use_sudo else cmd

    def _query(self, *args: str) -> set[str]:
        # -Q exits 1 with no output when the filter matches nothing
        try:
            result = run_command([self.binary, *args], timeout=QUERY_TIMEOUT, check=False)
        except BackendError as e:
            raise ObservationError(f"{self.binary} query failed: {e}") from e
        if not result.ok and (result.stderr or result.stdout):
            raise ObservationError(f"{self.binary} query failed: {result.stderr or result.stdout}")
        return _parse_names(result.stdout)

    def list_installed(self) -> set[str]:
        names = self._query(self.query_flags)
        logger.debug("%s reports %d installed packages", self.binary, len(names))
        return names

    def group_members(self, group: str) -> list[str]:
        try:
            result = run_command([self.binary, "-Sgq", group], timeout=QUERY_TIMEOUT)
        except BackendError as e:
            raise ObservationError(f"Cannot resolve package group {group}: {e}") from e
        members = list(dict.fromkeys(
            line.strip() for line in result.stdout.splitlines() if line.strip()
        ))
        if not members:
            raise ObservationError(f"Package group {group} has no members")
        return members

    def install_reasons(self) -> InstallReasons:
        return InstallReasons(
            explicit=self._query("-Qeq"),
            dependencies=self._query("-Qdq"),
            unneeded=self._query("-Qdtq"),
        )

    def install(self, name: str) -> None:
        run_command(self._privileged("-S", "--needed", "--noconfirm", name))
        logger.info("Installed %s via %s", name, self.binary)

    def remove(self, name: str) -> None:
        # -ns also drops unneeded dependencies and saved config files
        run_command(self._privileged("-Rns", "--noconfirm", name))
        logger.info("Removed %s via %s", name, self.binary)


class AurHelperBackend(PacmanBackend):
    """Foreign (AUR) packages, managed by an AUR helper.

    Helpers escalate privileges themselves and refuse to run as root,
    so commands are never wrapped in sudo.
    """

    query_flags = "-Qqm"

    def __init__(self, helper: str = "paru"):
        super().__init__(use_sudo=False)
        self.binary = helper

    @classmethod
    def detect(cls) -> AurHelperBackend | None:
        """Return a backend for the first installed AUR helper, if any."""
        for helper in AUR_HELPERS:
            if tool_available(helper):
                return cls(helper)
        return None
