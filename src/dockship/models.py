"""Data model shared by the deployment stages."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from .errors import InputError

# Tool-owned names. Teardown relies on them to find exactly what a deploy created.
CONTAINER_NAME = "dockship_app"
IMAGE_PREFIX = "dockship_image_"
MANAGED_LABEL = "dockship.managed=true"
PROXY_SITE_NAME = "dockship_app"

COMPOSE_MANIFESTS = (
    "docker-compose.yml",
    "docker-compose.yaml",
    "compose.yaml",
    "compose.yml",
)
DOCKERFILE = "Dockerfile"


def repo_basename(repo_url: str) -> str:
    """Return the repository name from its URL (`.../org/app.git` -> `app`)."""
    name = repo_url.rstrip("/").split("/")[-1]
    if name.endswith(".git"):
        name = name[:-4]
    return name or "repository"


def default_remote_dir(username: str, repo_name: str) -> str:
    home = "/root" if username == "root" else f"/home/{username}"
    return f"{home}/deployments/{repo_name}"


def _check_port(value: int, label: str) -> None:
    if not 1 <= int(value) <= 65535:
        raise InputError(f"{label} must be between 1 and 65535, got {value}")


class RunMode(str, Enum):
    DEPLOY = "deploy"
    CLEANUP = "cleanup"


class DeploymentMode(str, Enum):
    COMPOSE = "compose"
    SINGLE_CONTAINER = "single-container"


class PackageFamily(str, Enum):
    DEBIAN = "debian-like"
    REDHAT = "redhat-like"
    UNKNOWN = "unknown"


@dataclass
class SourceReference:
    """Repository URL plus branch; the local path is derived from the URL only."""

    repo_url: str
    branch: str = "main"

    @property
    def repo_name(self) -> str:
        return repo_basename(self.repo_url)

    def local_path(self, workspace_root: Path) -> Path:
        return Path(workspace_root) / self.repo_name

    def validate(self) -> None:
        scheme = urlparse(self.repo_url).scheme.lower()
        if scheme not in ("http", "https"):
            raise InputError(f"Repository URL must start with http(s)://, got {self.repo_url!r}")
        if not self.branch or self.branch.startswith("-"):
            raise InputError(f"Invalid branch name {self.branch!r}")


@dataclass
class DeploymentTarget:
    """Remote host, SSH identity and deployment directory."""

    host: str
    username: str
    key_path: str
    remote_dir: str
    port: int = 22

    @classmethod
    def for_repository(
        cls,
        host: str,
        username: str,
        key_path: str,
        repo_name: str,
        *,
        remote_dir: Optional[str] = None,
        port: int = 22,
    ) -> "DeploymentTarget":
        return cls(
            host=host,
            username=username,
            key_path=key_path,
            remote_dir=remote_dir or default_remote_dir(username, repo_name),
            port=port,
        )

    @property
    def address(self) -> str:
        return f"{self.username}@{self.host}"

    def validate(self) -> None:
        if not self.host or self.host.startswith("-"):
            raise InputError(f"Invalid remote host {self.host!r}")
        if not self.username or self.username.startswith("-"):
            raise InputError(f"Invalid SSH user {self.username!r}")
        _check_port(self.port, "SSH port")
        if not self.remote_dir.startswith("/"):
            raise InputError(f"Remote directory must be an absolute path: {self.remote_dir}")
        if ".." in self.remote_dir.split("/"):
            raise InputError(f"Remote directory must not contain '..': {self.remote_dir}")
        normalized = posixpath.normpath(self.remote_dir)
        if normalized.count("/") < 2:
            # `/` or `/home` would be wiped by teardown
            raise InputError(f"Remote directory is too shallow: {self.remote_dir}")


@dataclass
class ApplicationSpec:
    app_port: int
    host_port: Optional[int] = None

    def validate(self) -> None:
        _check_port(self.app_port, "Application port")
        if self.host_port is not None:
            _check_port(self.host_port, "Host port")

    def published_port(self, mode: DeploymentMode) -> int:
        """Loopback port the application answers on for the given mode."""
        if mode is DeploymentMode.SINGLE_CONTAINER and self.host_port:
            return self.host_port
        return self.app_port


def find_compose_manifest(source_dir: Path) -> Optional[str]:
    for name in COMPOSE_MANIFESTS:
        if (Path(source_dir) / name).is_file():
            return name
    return None


def select_deployment_mode(source_dir: Path) -> DeploymentMode:
    """Recomputed on every run from the synced tree; never cached."""
    if find_compose_manifest(source_dir):
        return DeploymentMode.COMPOSE
    return DeploymentMode.SINGLE_CONTAINER


def has_deployable_manifest(source_dir: Path) -> bool:
    return (Path(source_dir) / DOCKERFILE).is_file() or find_compose_manifest(source_dir) is not None


@dataclass(frozen=True)
class RuntimeProfile:
    """What the provisioner found (and ensured) on the remote host."""

    family: PackageFamily = PackageFamily.UNKNOWN
    package_manager: Optional[str] = None
    has_docker: bool = False
    compose_command: Optional[tuple] = None
    has_proxy: bool = False
    # docker group membership changed; docker is unusable until a new login
    relogin_required: bool = False

    @property
    def has_compose(self) -> bool:
        return self.compose_command is not None


@dataclass
class RunContext:
    """Explicit run state handed to the pipeline instead of module globals."""

    source: SourceReference
    target: DeploymentTarget
    token: str = field(repr=False)
    app: Optional[ApplicationSpec] = None  # required in deploy mode only
    mode: RunMode = RunMode.DEPLOY
    dry_run: bool = False
