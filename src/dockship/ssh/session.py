"""SSH session management built on Paramiko."""

from __future__ import annotations

import io
import logging
import shlex
import socket
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Union

import paramiko

from ..cancellation import CancellationToken
from .credentials import SSHCredentials

logger = logging.getLogger(__name__)

Command = Union[str, Sequence[str]]


class SSHConnectionError(RuntimeError):
    """Raised when an SSH connection cannot be established."""

    pass


@dataclass
class SSHCommandResult:
    command: str
    stdout: str
    stderr: str
    exit_status: int

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


def render_command(
    command: Command,
    *,
    sudo: bool = False,
    cwd: Optional[str] = None,
) -> str:
    """Turn an argument vector into remote shell text.

    Every argument is quoted, so user-supplied values (paths, ports, URLs)
    can never be read as shell syntax. Plain strings are only used for fixed
    commands.
    """
    if isinstance(command, str):
        text = command
        if sudo:
            text = f"sudo -n {text}"
    else:
        argv = list(command)
        if sudo:
            argv = ["sudo", "-n", *argv]
        text = shlex.join(argv)
    if cwd:
        text = f"cd {shlex.quote(cwd)} && {text}"
    return text


class SSHSession:
    """High-level wrapper around paramiko.SSHClient."""

    def __init__(
        self,
        credentials: SSHCredentials,
        *,
        client_factory: Callable[[], paramiko.SSHClient] | None = None,
        command_timeout: int = 1800,
        cancellation: Optional[CancellationToken] = None,
    ) -> None:
        self.credentials = credentials
        self.command_timeout = command_timeout
        self.cancellation = cancellation or CancellationToken()
        self._client_factory = client_factory or paramiko.SSHClient
        self._client: Optional[paramiko.SSHClient] = None

    def __enter__(self) -> "SSHSession":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()

    @property
    def connected(self) -> bool:
        return self._client is not None

    def connect(self) -> None:
        if self._client:
            return
        client = self._client_factory()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        connect_kwargs = {
            "hostname": self.credentials.host,
            "port": self.credentials.port,
            "username": self.credentials.username,
            "key_filename": self.credentials.key_file,
            "timeout": self.credentials.timeout,
            "banner_timeout": self.credentials.timeout,
            "auth_timeout": self.credentials.timeout,
            "look_for_keys": False,
            "allow_agent": False,
        }
        if self.credentials.passphrase:
            connect_kwargs["passphrase"] = self.credentials.passphrase
        try:
            client.connect(**connect_kwargs)
        except (paramiko.SSHException, socket.error, OSError) as exc:  # pragma: no cover - network errors hard to simulate
            client.close()
            raise SSHConnectionError(str(exc)) from exc
        self._client = client

    def close(self) -> None:
        if self._client:
            self._client.close()
            self._client = None

    def run(
        self,
        command: Command,
        *,
        sudo: bool = False,
        cwd: Optional[str] = None,
        timeout: Optional[int] = None,
    ) -> SSHCommandResult:
        """Execute a command on the remote host on its own channel.

        Refuses to start once the cancellation token is set; a command that
        is already running always completes first.
        """
        self.cancellation.raise_if_cancelled()
        if not self._client:
            self.connect()
        assert self._client is not None

        text = render_command(command, sudo=sudo, cwd=cwd)
        timeout = timeout or self.command_timeout
        logger.debug("[REMOTE] %s", text)

        try:
            _, stdout, stderr = self._client.exec_command(text, timeout=timeout)
        except (paramiko.SSHException, OSError) as exc:
            # transport dropped; the next run() opens a fresh connection
            self.close()
            raise SSHConnectionError(f"Running `{text}` failed: {exc}") from exc
        try:
            stdout_text = stdout.read().decode("utf-8", errors="replace")
            stderr_text = stderr.read().decode("utf-8", errors="replace")
            exit_status = stdout.channel.recv_exit_status()
        except socket.timeout:
            stdout.channel.close()
            return SSHCommandResult(
                command=text,
                stdout="",
                stderr=f"TIMEOUT: Command did not complete within {timeout} seconds.",
                exit_status=-1,
            )
        except (paramiko.SSHException, OSError) as exc:
            self.close()
            raise SSHConnectionError(f"Running `{text}` failed: {exc}") from exc

        result = SSHCommandResult(
            command=text,
            stdout=stdout_text.strip(),
            stderr=stderr_text.strip(),
            exit_status=exit_status,
        )
        if not result.ok:
            logger.debug("[REMOTE] exit %s: %s", exit_status, result.stderr)
        return result

    def upload_text(self, remote_path: str, content: str, mode: int = 0o644) -> None:
        """Write `content` to `remote_path` over SFTP."""
        self.cancellation.raise_if_cancelled()
        if not self._client:
            self.connect()
        assert self._client is not None
        logger.debug("[REMOTE] upload %d bytes to %s", len(content), remote_path)
        try:
            sftp = self._client.open_sftp()
            try:
                sftp.putfo(io.BytesIO(content.encode("utf-8")), remote_path)
                sftp.chmod(remote_path, mode)
            finally:
                sftp.close()
        except (paramiko.SSHException, OSError) as exc:
            raise SSHConnectionError(f"Upload to {remote_path} failed: {exc}") from exc
