"""Deployment stages that act on the remote host."""

from .executor import DeploymentExecutor
from .proxy import ProxyConfigurator, render_site
from .teardown import TeardownManager
from .transfer import ArtifactTransporter, build_rsync_cmd
from .validator import DeploymentValidator

__all__ = [
    "ArtifactTransporter",
    "DeploymentExecutor",
    "DeploymentValidator",
    "ProxyConfigurator",
    "TeardownManager",
    "build_rsync_cmd",
    "render_site",
]
