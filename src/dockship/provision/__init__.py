"""Remote environment provisioning."""

from .packages import AptHandler, PackageHandler, RedHatHandler, UnknownHandler, handler_for
from .provisioner import EnvironmentProvisioner, detect_compose_command, detect_package_manager

__all__ = [
    "AptHandler",
    "EnvironmentProvisioner",
    "PackageHandler",
    "RedHatHandler",
    "UnknownHandler",
    "detect_compose_command",
    "detect_package_manager",
    "handler_for",
]
