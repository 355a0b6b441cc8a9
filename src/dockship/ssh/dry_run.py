"""Session used by the simulation flag: logs commands, executes nothing."""

from __future__ import annotations

import logging
from typing import List, Optional

from ..cancellation import CancellationToken
from .session import Command, SSHCommandResult, render_command

logger = logging.getLogger(__name__)

PLACEHOLDER_OUTPUT = {"mktemp": "/tmp/dockship.dry-run"}


class DryRunSession:
    """
    Provides the same interface as SSHSession without opening a connection.

    Every command is reported as successful with empty output, so detection
    steps take their first branch (for example the debian-like package
    family). Commands whose output names a path later commands use get a
    placeholder instead.
    """

    def __init__(self, address: str, cancellation: Optional[CancellationToken] = None) -> None:
        self.address = address
        self.cancellation = cancellation or CancellationToken()
        self.commands: List[str] = []

    def __enter__(self) -> "DryRunSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def connected(self) -> bool:
        return False

    def connect(self) -> None:
        """No-op (for API compatibility with SSHSession)."""

    def close(self) -> None:
        """No-op (for API compatibility with SSHSession)."""

    def run(
        self,
        command: Command,
        *,
        sudo: bool = False,
        cwd: Optional[str] = None,
        timeout: Optional[int] = None,
    ) -> SSHCommandResult:
        self.cancellation.raise_if_cancelled()
        text = render_command(command, sudo=sudo, cwd=cwd)
        self.commands.append(text)
        logger.info("[DRY-RUN] ssh %s: %s", self.address, text)
        stdout = "" if isinstance(command, str) else PLACEHOLDER_OUTPUT.get(command[0], "")
        return SSHCommandResult(command=text, stdout=stdout, stderr="", exit_status=0)

    def upload_text(self, remote_path: str, content: str, mode: int = 0o644) -> None:
        self.cancellation.raise_if_cancelled()
        self.commands.append(f"upload {remote_path}")
        logger.info("[DRY-RUN] upload to %s:%s:\n%s", self.address, remote_path, content)
