"""Starts (or restarts) the application on the remote host."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, Optional, Sequence

from ..errors import DeploymentExecutionError
from ..models import (
    CONTAINER_NAME,
    COMPOSE_MANIFESTS,
    IMAGE_PREFIX,
    MANAGED_LABEL,
    ApplicationSpec,
    DeploymentMode,
    RuntimeProfile,
    find_compose_manifest,
    select_deployment_mode,
)
from ..stages import StageResult, best_effort, require

logger = logging.getLogger(__name__)


def container_exists(session, name: str = CONTAINER_NAME) -> bool:
    listing = session.run(["docker", "ps", "-a", "--filter", f"name=^/{name}$", "--format", "{{.Names}}"])
    return listing.ok and name in listing.stdout.split()


def list_tool_images(session) -> list:
    listing = session.run(["docker", "images", "--format", "{{.Repository}}"])
    if not listing.ok:
        return []
    return sorted({line.strip() for line in listing.stdout.splitlines() if line.strip().startswith(IMAGE_PREFIX)})


def remote_compose_manifest(session, remote_dir: str) -> Optional[str]:
    for name in COMPOSE_MANIFESTS:
        if session.run(["test", "-f", f"{remote_dir}/{name}"]).ok:
            return name
    return None


class DeploymentExecutor:
    """Compose path when the source has a compose manifest, single container otherwise."""

    name = "execute"

    def __init__(
        self,
        *,
        settle_delay: float = 3.0,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settle_delay = settle_delay
        self._clock = clock
        self._sleep = sleep

    def execute(
        self,
        session,
        source_dir: Path,
        remote_dir: str,
        app: ApplicationSpec,
        profile: RuntimeProfile,
    ) -> StageResult:
        mode = select_deployment_mode(source_dir)
        result = StageResult(name=self.name, details={"mode": mode.value})
        logger.info("Deploying app on remote in %s (%s mode)", remote_dir, mode.value)

        if mode is DeploymentMode.COMPOSE:
            self._run_compose(session, find_compose_manifest(source_dir), remote_dir, profile, result)
        else:
            self._run_single_container(session, remote_dir, app, profile, result)

        port = app.published_port(mode)
        result.details["published_port"] = port
        self._health_probe(session, port, result)
        return result

    def _compose(self, profile: RuntimeProfile, manifest: str, *args: str) -> list:
        if not profile.compose_command:
            raise DeploymentExecutionError("No compose command available on the remote host")
        return [*profile.compose_command, "-f", manifest, *args]

    def _run_compose(
        self,
        session,
        manifest: str,
        remote_dir: str,
        profile: RuntimeProfile,
        result: StageResult,
    ) -> None:
        if container_exists(session):
            best_effort(session, ["docker", "rm", "-f", CONTAINER_NAME], result, "Removing stale single container")
        best_effort(session, self._compose(profile, manifest, "pull"), result, "Pulling images", cwd=remote_dir)
        best_effort(
            session,
            self._compose(profile, manifest, "down", "--remove-orphans"),
            result,
            "Stopping previous stack",
            cwd=remote_dir,
        )
        require(
            session,
            self._compose(profile, manifest, "up", "-d", "--build"),
            DeploymentExecutionError,
            "Starting compose stack",
            cwd=remote_dir,
        )
        result.details["manifest"] = manifest

    def _run_single_container(
        self,
        session,
        remote_dir: str,
        app: ApplicationSpec,
        profile: RuntimeProfile,
        result: StageResult,
    ) -> None:
        # A compose file left remotely by an earlier run may still own a stack here.
        stale_manifest = remote_compose_manifest(session, remote_dir)
        if stale_manifest and profile.compose_command:
            best_effort(
                session,
                self._compose(profile, stale_manifest, "down", "--remove-orphans"),
                result,
                "Stopping stale compose stack",
                cwd=remote_dir,
            )

        image = f"{IMAGE_PREFIX}{int(self._clock())}"
        require(
            session,
            ["docker", "build", "--label", MANAGED_LABEL, "-t", image, "."],
            DeploymentExecutionError,
            "Building image",
            cwd=remote_dir,
        )
        if container_exists(session):
            best_effort(session, ["docker", "rm", "-f", CONTAINER_NAME], result, "Removing previous container")

        host_port = app.published_port(DeploymentMode.SINGLE_CONTAINER)
        require(
            session,
            [
                "docker", "run", "-d",
                "--name", CONTAINER_NAME,
                "--restart", "unless-stopped",
                "--label", MANAGED_LABEL,
                "-p", f"127.0.0.1:{host_port}:{app.app_port}",
                image,
            ],
            DeploymentExecutionError,
            "Starting container",
        )
        self._prune_old_images(session, keep=image, result=result)
        result.details.update({"image": image, "container": CONTAINER_NAME})

    def _prune_old_images(self, session, keep: str, result: StageResult) -> None:
        for image in list_tool_images(session):
            if image != keep:
                best_effort(session, ["docker", "rmi", image], result, f"Removing old image {image}")

    def _health_probe(self, session, port: int, result: StageResult) -> None:
        if self.settle_delay:
            self._sleep(self.settle_delay)
        url = f"http://127.0.0.1:{port}/"
        probe = session.run(["curl", "-sS", "--fail", "-o", "/dev/null", url])
        result.details["health_probe"] = probe.ok
        if probe.ok:
            logger.info("Application responded on %s", url)
        else:
            result.warn(f"Application not responding on {url} yet; it may still be warming up")
