"""Error taxonomy for Dockship.

Every fatal condition raises a subclass of :class:`DeployerError`. The class
carries the process exit code the CLI reports, so the stage that failed can be
identified from the exit status alone.
"""

from __future__ import annotations

from typing import Sequence


class DeployerError(RuntimeError):
    """Base class for all fatal deployment errors."""

    exit_code: int = 1
    stage: str = "deployment"


class InputError(DeployerError):
    """Raised when a required parameter is missing or malformed."""

    exit_code = 2
    stage = "input"


class KeyMaterialError(InputError):
    """Raised when the SSH private key cannot be found locally."""

    exit_code = 3


class ManifestError(DeployerError):
    """Raised when the source tree has neither a Dockerfile nor a compose manifest."""

    exit_code = 4
    stage = "manifest"


class CredentialsError(InputError):
    """Raised when the source-control token is missing."""

    exit_code = 5


class SecretIOError(DeployerError):
    """Raised when the ephemeral credential store cannot be created or erased."""

    exit_code = 6
    stage = "secrets"


class ConnectivityError(DeployerError):
    exit_code = 10
    stage = "connectivity"


class SourceSyncError(DeployerError):
    exit_code = 11
    stage = "source"


class GitCommandError(SourceSyncError):
    """Raised when a git command fails."""

    def __init__(self, command: Sequence[str], returncode: int, stderr: str) -> None:
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"Git command {' '.join(self.command)} failed with code {returncode}: {stderr}"
        )


class ValidationError(DeployerError):
    exit_code = 20
    stage = "validation"


class ProvisioningError(DeployerError):
    exit_code = 30
    stage = "provisioning"


class TransferError(DeployerError):
    exit_code = 31
    stage = "transfer"


class DeploymentExecutionError(DeployerError):
    exit_code = 32
    stage = "execution"


class ProxyConfigError(DeployerError):
    exit_code = 33
    stage = "proxy"


class Interrupted(DeployerError):
    """Raised once an external interrupt was received and the current command returned."""

    exit_code = 130
    stage = "interrupt"
