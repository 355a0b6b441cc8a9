"""Removes everything a deploy run created on the remote host."""

from __future__ import annotations

import logging

from ..errors import ProxyConfigError
from ..models import CONTAINER_NAME, DeploymentTarget
from ..provision import detect_compose_command
from ..stages import StageResult, best_effort
from .executor import container_exists, list_tool_images, remote_compose_manifest
from .proxy import ALL_SITE_PATHS, proxy_config_valid, reload_proxy

logger = logging.getLogger(__name__)


class TeardownManager:
    """Every step is best-effort except leaving nginx with a configuration that validates."""

    name = "cleanup"

    def teardown(self, session, target: DeploymentTarget) -> StageResult:
        logger.info(
            "Running cleanup on remote: stopping containers, removing images, "
            "cleaning deploy dir and nginx config."
        )
        result = StageResult(name=self.name)
        remote_dir = target.remote_dir

        manifest = remote_compose_manifest(session, remote_dir)
        if manifest:
            compose = detect_compose_command(session)
            if compose:
                best_effort(
                    session,
                    [*compose, "-f", manifest, "down", "--remove-orphans", "--rmi", "local"],
                    result,
                    "Stopping compose stack",
                    cwd=remote_dir,
                )
            else:
                result.warn("Compose manifest present but no compose command available")

        if container_exists(session):
            best_effort(session, ["docker", "rm", "-f", CONTAINER_NAME], result, "Removing container")

        images = list_tool_images(session)
        for image in images:
            best_effort(session, ["docker", "rmi", "-f", image], result, f"Removing image {image}")
        result.details["removed_images"] = images

        best_effort(session, ["rm", "-rf", remote_dir], result, "Removing deployment directory")
        best_effort(session, ["rm", "-f", *ALL_SITE_PATHS], result, "Removing nginx site", sudo=True)

        check = proxy_config_valid(session)
        if not check.ok:
            raise ProxyConfigError(
                f"nginx configuration invalid after removing the site; not reloading: {check.stderr or check.stdout}"
            )
        reload_proxy(session)
        logger.info("Remote cleanup completed.")
        return result
