"""Git-based source synchronization."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..errors import GitCommandError
from ..models import SourceReference
from ..paths import ensure_dir
from .secrets import SecretHandler

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]


@dataclass
class SyncResult:
    """Details about a completed clone/update."""

    local_path: Path
    action: str
    commit_sha: Optional[str] = None


class SourceSynchronizer:
    """Wraps `git` CLI commands for cloning and fast-forwarding the working tree.

    The working tree lives at `<workspace>/<repo-name>`, so every run for the
    same URL reuses it. Network operations run unattended with the token
    supplied through a short-lived credential store.
    """

    def __init__(
        self,
        workspace_root: Path,
        *,
        secret_handler: Optional[SecretHandler] = None,
        git_binary: str = "git",
        runner: Optional[Runner] = None,
        dry_run: bool = False,
    ) -> None:
        self.workspace_root = Path(workspace_root)
        self.secret_handler = secret_handler or SecretHandler()
        self.git_binary = git_binary
        self._runner = runner or subprocess.run
        self.dry_run = dry_run

    def sync(self, source: SourceReference, token: str) -> SyncResult:
        target_dir = source.local_path(self.workspace_root).resolve()
        exists = (target_dir / ".git").exists()

        if self.dry_run:
            action = "update" if exists else "clone"
            logger.info("[DRY-RUN] git %s %s (branch %s) -> %s", action, source.repo_url, source.branch, target_dir)
            return SyncResult(local_path=target_dir, action=action)

        if exists:
            logger.info("Local repo exists at %s. Fetching latest...", target_dir)
            with self.secret_handler.credential_store(source.repo_url, token) as store:
                self._run(["fetch", "--all", "--prune"], cwd=target_dir, store=store)
            self._run(["checkout", source.branch], cwd=target_dir)
            self._run(["merge", "--ff-only", f"origin/{source.branch}"], cwd=target_dir)
            action = "update"
        else:
            if target_dir.exists():
                shutil.rmtree(target_dir, ignore_errors=True)
            ensure_dir(target_dir.parent)
            logger.info("Cloning repo %s (branch %s) ...", source.repo_url, source.branch)
            with self.secret_handler.credential_store(source.repo_url, token) as store:
                self._run(
                    ["clone", "--branch", source.branch, "--", source.repo_url, str(target_dir)],
                    store=store,
                )
            action = "clone"

        commit_sha = self._run(["rev-parse", "HEAD"], cwd=target_dir).strip()
        logger.info("Source at %s (%s)", commit_sha[:12], source.branch)
        return SyncResult(local_path=target_dir, action=action, commit_sha=commit_sha)

    def _run(self, args: List[str], cwd: Optional[Path] = None, store: Optional[Path] = None) -> str:
        command = [self.git_binary]
        if store is not None:
            command += [
                "-c", "credential.helper=",
                "-c", f"credential.helper=store --file={store}",
                "-c", "core.askPass=",
            ]
        command += args
        logger.debug("[LOCAL] %s", " ".join(command[:1] + args))
        process = self._runner(
            command,
            cwd=str(cwd) if cwd else None,
            env=self._environment(),
            capture_output=True,
            text=True,
            check=False,
            # own process group, so Ctrl-C reaches only us and the child finishes
            start_new_session=True,
        )
        if process.returncode != 0:
            raise GitCommandError([self.git_binary, *args], process.returncode, process.stderr.strip())
        return process.stdout

    @staticmethod
    def _environment() -> Dict[str, str]:
        env = dict(os.environ)
        # fail instead of prompting when credentials are missing or wrong
        env["GIT_TERMINAL_PROMPT"] = "0"
        env.pop("GIT_ASKPASS", None)
        env.pop("SSH_ASKPASS", None)
        return env
