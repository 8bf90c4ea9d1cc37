"""
Systemd backend — enable/disable/start/stop units through systemctl.
"""

from __future__ import annotations

import logging
import os

from archman.adapters.base import ServiceBackend, UnitStatus
from archman.adapters.shell.command import QUERY_TIMEOUT, run_command, tool_available
from archman.core.errors import BackendError

logger = logging.getLogger(__name__)

# `systemctl is-enabled` states
_ENABLED_STATES = frozenset({"enabled", "enabled-runtime"})
_DISABLED_STATES = frozenset({
    "disabled", "masked", "masked-runtime", "linked", "linked-runtime", "not-found",
})
# enable/disable cannot change these, so enablement is left alone
_STATIC_STATES = frozenset({"static", "indirect", "alias", "generated", "transient"})


class SystemctlBackend(ServiceBackend):
    """Units managed by systemd, system or user scope."""

    def __init__(self, user: bool = False, use_sudo: bool | None = None):
        self._user = user
        if use_sudo is None:
            use_sudo = not user and os.geteuid() != 0
        self._use_sudo = use_sudo

    @property
    def name(self) -> str:
        return "systemctl"

    def is_available(self) -> bool:
        return tool_available("systemctl")

    def _cmd(self, *args: str, privileged: bool = False) -> list[str]:
        cmd = ["systemctl"]
        if self._user:
            cmd.append("--user")
        cmd.extend(args)
        if privileged and self._use_sudo:
            cmd.insert(0, "sudo")
        return cmd

    def _query_enabled(self, unit: str) -> tuple[bool | None, bool]:
        """(enabled, static) for a unit."""
        # is-enabled exits non-zero for disabled units, so don't check
        result = run_command(self._cmd("is-enabled", unit), timeout=QUERY_TIMEOUT, check=False)
        state = result.stdout.splitlines()[0].strip() if result.stdout else ""
        if state in _STATIC_STATES:
            return None, True
        if state in _ENABLED_STATES:
            return True, False
        if state in _DISABLED_STATES or "No such file" in result.stderr:
            return False, False
        logger.warning("Unrecognized is-enabled state for %s: %r", unit, state or result.stderr)
        return None, False

    def _query_running(self, unit: str) -> bool | None:
        result = run_command(self._cmd("is-active", unit), timeout=QUERY_TIMEOUT, check=False)
        state = result.stdout.strip()
        if state in ("active", "activating", "reloading"):
            return True
        if state in ("inactive", "failed", "deactivating", "unknown"):
            return False
        logger.warning("Unrecognized is-active state for %s: %r", unit, state or result.stderr)
        return None

    def query(self, unit: str) -> UnitStatus:
        try:
            enabled, static = self._query_enabled(unit)
        except BackendError as e:
            logger.warning("is-enabled %s failed: %s", unit, e)
            enabled, static = None, False
        try:
            running = self._query_running(unit)
        except BackendError as e:
            logger.warning("is-active %s failed: %s", unit, e)
            running = None
        return UnitStatus(enabled, running, static)

    def enable(self, unit: str) -> None:
        run_command(self._cmd("enable", unit, privileged=True))
        logger.info("Enabled %s", unit)

    def disable(self, unit: str) -> None:
        run_command(self._cmd("disable", unit, privileged=True))
        logger.info("Disabled %s", unit)

    def start(self, unit: str) -> None:
        run_command(self._cmd("start", unit, privileged=True))
        logger.info("Started %s", unit)

    def stop(self, unit: str) -> None:
        run_command(self._cmd("stop", unit, privileged=True))
        logger.info("Stopped %s", unit)
