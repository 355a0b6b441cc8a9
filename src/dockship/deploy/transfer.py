"""Mirrors the local working tree into the remote deployment directory."""

from __future__ import annotations

import logging
import shlex
import subprocess
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from ..errors import TransferError
from ..models import DeploymentTarget
from ..stages import StageResult, best_effort, require

logger = logging.getLogger(__name__)

RSYNC_EXCLUDES = (".git", "*.log", "node_modules", "__pycache__")


def build_ssh_transport(target: DeploymentTarget) -> str:
    return shlex.join(
        [
            "ssh",
            "-i", str(Path(target.key_path).expanduser()),
            "-p", str(target.port),
            "-o", "BatchMode=yes",
            "-o", "StrictHostKeyChecking=accept-new",
        ]
    )


def build_rsync_cmd(
    local_dir: Path,
    target: DeploymentTarget,
    excludes: Sequence[str] = RSYNC_EXCLUDES,
) -> List[str]:
    # Archive mode, no --delete: files that only exist remotely are kept.
    cmd = ["rsync", "-az"]
    for pattern in excludes:
        cmd.extend(["--exclude", pattern])
    cmd.extend(["-e", build_ssh_transport(target)])
    # Trailing slashes copy the tree's contents into the directory.
    cmd.extend([f"{local_dir}/", f"{target.address}:{target.remote_dir}/"])
    return cmd


class ArtifactTransporter:
    name = "transfer"

    def __init__(
        self,
        *,
        runner: Optional[Callable[..., subprocess.CompletedProcess]] = None,
        dry_run: bool = False,
    ) -> None:
        self._runner = runner or subprocess.run
        self.dry_run = dry_run

    def transfer(self, session, local_dir: Path, target: DeploymentTarget) -> StageResult:
        result = StageResult(name=self.name)
        logger.info('Syncing local "%s/" to "%s:%s/"', local_dir, target.address, target.remote_dir)

        require(session, ["mkdir", "-p", target.remote_dir], TransferError, "Creating remote directory")
        best_effort(
            session,
            ["chown", "-R", f"{target.username}:{target.username}", target.remote_dir],
            result,
            "Setting remote directory ownership",
            sudo=True,
        )

        cmd = build_rsync_cmd(local_dir, target)
        result.details["command"] = shlex.join(cmd)
        if self.dry_run:
            logger.info("[DRY-RUN] %s", shlex.join(cmd))
            return result

        session.cancellation.raise_if_cancelled()
        logger.debug("[LOCAL] %s", shlex.join(cmd))
        try:
            process = self._runner(cmd, capture_output=True, text=True, check=False, start_new_session=True)
        except FileNotFoundError as exc:
            raise TransferError("rsync is not installed locally") from exc
        if process.returncode != 0:
            raise TransferError(f"rsync failed with code {process.returncode}: {process.stderr.strip()}")
        logger.info("Transfer complete.")
        return result
