"""Brings the remote host to the baseline the deployment needs."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional, Tuple

from ..errors import ProvisioningError
from ..models import RuntimeProfile
from ..stages import StageResult, best_effort
from .packages import PROBE_ORDER, PackageHandler, handler_for

logger = logging.getLogger(__name__)

DOCKER_INSTALL_SCRIPT_URL = "https://get.docker.com"
COMPOSE_RELEASE_URL = "https://github.com/docker/compose/releases/download/{version}/docker-compose-{system}-{machine}"
BASE_TOOLS = ("curl", "rsync")


def detect_package_manager(session) -> Optional[str]:
    for binary, _family in PROBE_ORDER:
        if session.run(["command", "-v", binary]).ok:
            return binary
    return None


def detect_compose_command(session) -> Optional[Tuple[str, ...]]:
    """Prefer the runtime's built-in `docker compose`, then `docker-compose`."""
    if session.run(["docker", "compose", "version"]).ok:
        return ("docker", "compose")
    if session.run(["docker-compose", "--version"]).ok:
        return ("docker-compose",)
    return None


def _has_binary(session, name: str) -> bool:
    return session.run(["command", "-v", name]).ok


class EnvironmentProvisioner:
    """Install-if-absent provisioning of docker, compose and nginx.

    Installation failures are fatal (`ProvisioningError`); enabling services
    and group membership are best-effort and only produce warnings.
    """

    name = "provision"

    def __init__(self, compose_version: str = "v2.20.2") -> None:
        self.compose_version = compose_version

    def provision(self, session, username: str) -> Tuple[RuntimeProfile, StageResult]:
        logger.info("Preparing remote environment (docker, compose, nginx) ...")
        result = StageResult(name=self.name)

        binary = detect_package_manager(session)
        handler = handler_for(binary)
        profile = RuntimeProfile(family=handler.family, package_manager=binary)
        logger.info("Package manager: %s (%s)", binary or "none", handler.family.value)

        self._install_base_tools(session, handler, result)
        profile = replace(profile, has_docker=self._ensure_docker(session, handler, result))
        relogin = self._ensure_docker_group(session, username, result)
        best_effort(session, ["systemctl", "enable", "--now", "docker"], result, "Enabling docker", sudo=True)
        profile = replace(profile, compose_command=self._ensure_compose(session, handler, result))
        profile = replace(
            profile,
            has_proxy=self._ensure_nginx(session, handler, result),
            relogin_required=relogin,
        )
        best_effort(session, ["systemctl", "enable", "--now", "nginx"], result, "Enabling nginx", sudo=True)

        result.details.update(
            {
                "family": profile.family.value,
                "package_manager": profile.package_manager,
                "compose_command": " ".join(profile.compose_command or ()),
                "relogin_required": profile.relogin_required,
                "versions": self._versions(session, profile),
            }
        )
        logger.info("Remote environment prepared.")
        return profile, result

    def _install_base_tools(self, session, handler: PackageHandler, result: StageResult) -> None:
        missing = [tool for tool in BASE_TOOLS if not _has_binary(session, tool)]
        if not handler.can_install:
            result.warn("Unsupported package manager; skipping package installation")
            return
        refresh = handler.refresh_command()
        if refresh:
            best_effort(session, refresh, result, "Refreshing package index", sudo=True)
        if missing:
            self._install(session, handler, missing)

    def _install(self, session, handler: PackageHandler, packages) -> None:
        logger.info("Installing %s ...", ", ".join(packages))
        outcome = session.run(handler.install_command(packages), sudo=True)
        if not outcome.ok:
            raise ProvisioningError(
                f"Installing {', '.join(packages)} failed: {outcome.stderr or outcome.stdout}"
            )

    def _ensure_docker(self, session, handler: PackageHandler, result: StageResult) -> bool:
        if _has_binary(session, "docker"):
            return True
        if not _has_binary(session, "curl"):
            raise ProvisioningError(
                "Docker is not installed and cannot be installed without curl"
                + ("" if handler.can_install else " on a host with no supported package manager")
            )
        logger.info("Installing docker via %s ...", DOCKER_INSTALL_SCRIPT_URL)
        script = "/tmp/get-docker.sh"
        steps = (
            (["curl", "-fsSL", DOCKER_INSTALL_SCRIPT_URL, "-o", script], False),
            (["sh", script], True),
        )
        try:
            for command, sudo in steps:
                outcome = session.run(command, sudo=sudo)
                if not outcome.ok:
                    raise ProvisioningError(f"Docker installation failed: {outcome.stderr or outcome.stdout}")
        finally:
            best_effort(session, ["rm", "-f", script], result, "Removing docker install script")
        if not _has_binary(session, "docker"):
            raise ProvisioningError("Docker installation finished but `docker` is still unavailable")
        return True

    def _ensure_docker_group(self, session, username: str, result: StageResult) -> bool:
        """Returns True when the login must be renewed to pick up the docker group.

        Supplementary groups are fixed when an SSH session logs in, so a
        membership added now is invisible to the current connection.
        """
        if username == "root":
            return False
        current = session.run(["id", "-nG"])
        if current.ok and "docker" in current.stdout.split():
            return False
        recorded = session.run(["id", "-nG", username])
        if recorded.ok and "docker" in recorded.stdout.split():
            return True
        best_effort(session, ["groupadd", "-f", "docker"], result, "Creating docker group", sudo=True)
        added = best_effort(
            session,
            ["usermod", "-aG", "docker", username],
            result,
            f"Adding {username} to the docker group",
            sudo=True,
        )
        return added.ok

    def _ensure_compose(self, session, handler: PackageHandler, result: StageResult) -> Tuple[str, ...]:
        command = detect_compose_command(session)
        if command:
            return command
        if handler.can_install and handler.compose_package:
            best_effort(
                session,
                handler.install_command([handler.compose_package]),
                result,
                f"Installing {handler.compose_package}",
                sudo=True,
            )
            command = detect_compose_command(session)
            if command:
                return command
        return self._install_standalone_compose(session)

    def _install_standalone_compose(self, session) -> Tuple[str, ...]:
        logger.info("Installing standalone docker compose %s ...", self.compose_version)
        home = session.run(["printenv", "HOME"])
        system = session.run(["uname", "-s"])
        machine = session.run(["uname", "-m"])
        if not (home.ok and system.ok and machine.ok) or not home.stdout:
            raise ProvisioningError("Could not determine remote home directory or platform for compose install")
        plugin_dir = f"{home.stdout}/.docker/cli-plugins"
        plugin_path = f"{plugin_dir}/docker-compose"
        url = COMPOSE_RELEASE_URL.format(
            version=self.compose_version, system=system.stdout, machine=machine.stdout
        )
        for command in (
            ["mkdir", "-p", plugin_dir],
            ["curl", "-fsSL", url, "-o", plugin_path],
            ["chmod", "+x", plugin_path],
        ):
            outcome = session.run(command)
            if not outcome.ok:
                raise ProvisioningError(f"Compose installation failed: {outcome.stderr or outcome.stdout}")
        command = detect_compose_command(session)
        if not command:
            raise ProvisioningError("Compose installation finished but no compose command is usable")
        return command

    def _ensure_nginx(self, session, handler: PackageHandler, result: StageResult) -> bool:
        if _has_binary(session, "nginx") or session.run(["test", "-x", "/usr/sbin/nginx"]).ok:
            return True
        if not handler.can_install:
            raise ProvisioningError("nginx is not installed and no supported package manager is available")
        self._install(session, handler, ["nginx"])
        return True

    def _versions(self, session, profile: RuntimeProfile) -> dict:
        versions = {}
        probes = {
            "docker": ["docker", "--version"],
            "compose": [*(profile.compose_command or ("docker", "compose")), "version"],
        }
        for key, command in probes.items():
            outcome = session.run(command)
            versions[key] = outcome.stdout if outcome.ok else None
        nginx = session.run(["nginx", "-v"], sudo=True)
        # nginx prints its version on stderr
        versions["nginx"] = (nginx.stderr or nginx.stdout) if nginx.ok else None
        for key, value in versions.items():
            logger.info("   %s: %s", key, value or "unknown")
        return versions
