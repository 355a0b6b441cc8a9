"""SSH utilities for Dockship."""

from .credentials import SSHCredentials
from .dry_run import DryRunSession
from .probe import ConnectivityProbe, RemoteHostFacts
from .session import SSHCommandResult, SSHConnectionError, SSHSession, render_command

__all__ = [
    "ConnectivityProbe",
    "DryRunSession",
    "RemoteHostFacts",
    "SSHCredentials",
    "SSHCommandResult",
    "SSHConnectionError",
    "SSHSession",
    "render_command",
]
