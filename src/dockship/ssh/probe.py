"""Connectivity check and remote host facts."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..errors import ConnectivityError
from .session import SSHConnectionError, SSHSession

logger = logging.getLogger(__name__)


@dataclass
class RemoteHostFacts:
    hostname: str
    kernel: str
    architecture: str
    os_release: str

    def to_payload(self) -> dict:
        return {
            "hostname": self.hostname,
            "kernel": self.kernel,
            "architecture": self.architecture,
            "os_release": self.os_release,
        }


class ConnectivityProbe:
    """Authenticates against the target and runs a no-op command.

    Must pass before any mutating stage runs in the same invocation.
    """

    def __init__(self, timeout: int = 10) -> None:
        self.timeout = timeout

    def check(self, session: SSHSession) -> RemoteHostFacts:
        address = f"{session.credentials.username}@{session.credentials.host}"
        logger.info("Checking SSH connectivity to %s ...", address)
        try:
            session.connect()
            result = session.run(["echo", "ok"], timeout=self.timeout)
        except SSHConnectionError as exc:
            raise ConnectivityError(f"SSH connection to {address} failed: {exc}") from exc
        if not result.ok or result.stdout.strip() != "ok":
            raise ConnectivityError(
                f"SSH command execution on {address} failed "
                f"(exit {result.exit_status}): {result.stderr}"
            )
        logger.info("SSH connectivity OK.")
        facts = self.collect(session)
        logger.info(
            "Remote host: %s (%s / %s %s)",
            facts.hostname,
            facts.os_release,
            facts.kernel,
            facts.architecture,
        )
        return facts

    def collect(self, session: SSHSession) -> RemoteHostFacts:
        os_release = self._safe_run(session, ["cat", "/etc/os-release"])
        return RemoteHostFacts(
            hostname=self._safe_run(session, ["hostname"]) or "unknown",
            kernel=self._safe_run(session, ["uname", "-sr"]) or "unknown",
            architecture=self._safe_run(session, ["uname", "-m"]) or "unknown",
            os_release=_pretty_name(os_release) or "unknown",
        )

    def _safe_run(self, session: SSHSession, command) -> str:
        result = session.run(command, timeout=self.timeout)
        return result.stdout if result.ok else ""


def _pretty_name(os_release: str) -> Optional[str]:
    for line in os_release.splitlines():
        if line.startswith("PRETTY_NAME="):
            return line.split("=", 1)[1].strip().strip('"')
    return None
