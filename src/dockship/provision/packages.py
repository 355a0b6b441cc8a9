"""Package-manager handlers, one per supported family."""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

from ..models import PackageFamily

# Probe order: debian family first, then the two redhat variants.
PROBE_ORDER: Tuple[Tuple[str, PackageFamily], ...] = (
    ("apt-get", PackageFamily.DEBIAN),
    ("yum", PackageFamily.REDHAT),
    ("dnf", PackageFamily.REDHAT),
)


class PackageHandler:
    """Builds install commands for one package-manager family."""

    family = PackageFamily.UNKNOWN
    compose_package: Optional[str] = None

    def __init__(self, binary: Optional[str] = None) -> None:
        self.binary = binary

    @property
    def can_install(self) -> bool:
        return self.binary is not None

    def refresh_command(self) -> Optional[list]:
        return None

    def install_command(self, packages: Sequence[str]) -> list:
        raise NotImplementedError(f"No package manager available to install {', '.join(packages)}")


class AptHandler(PackageHandler):
    family = PackageFamily.DEBIAN
    compose_package = "docker-compose-plugin"

    def __init__(self, binary: str = "apt-get") -> None:
        super().__init__(binary)

    def refresh_command(self) -> list:
        return ["apt-get", "update", "-y"]

    def install_command(self, packages: Sequence[str]) -> list:
        return ["env", "DEBIAN_FRONTEND=noninteractive", "apt-get", "install", "-y", *packages]


class RedHatHandler(PackageHandler):
    family = PackageFamily.REDHAT
    compose_package = "docker-compose-plugin"

    def refresh_command(self) -> list:
        return [self.binary, "makecache", "-y"]

    def install_command(self, packages: Sequence[str]) -> list:
        return [self.binary, "install", "-y", *packages]


class UnknownHandler(PackageHandler):
    """No supported package manager; installs are skipped, not attempted."""


def handler_for(binary: Optional[str]) -> PackageHandler:
    if binary == "apt-get":
        return AptHandler()
    if binary in ("yum", "dnf"):
        return RedHatHandler(binary)
    return UnknownHandler()
