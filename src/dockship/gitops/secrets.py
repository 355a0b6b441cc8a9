"""Ephemeral credential store for authenticated git operations."""

from __future__ import annotations

import contextlib
import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import Iterator, Optional
from urllib.parse import quote, urlparse

from ..errors import SecretIOError

logger = logging.getLogger(__name__)

TOKEN_USERNAME = "x-access-token"


class SecretHandler:
    """Creates an owner-only credential file and shreds it after use.

    The file uses git's `credential-store` format so it can be handed to
    `git -c credential.helper='store --file=...'`. The token itself is never
    logged.
    """

    def __init__(self, tmp_dir: Optional[str] = None) -> None:
        self.tmp_dir = tmp_dir

    @contextlib.contextmanager
    def credential_store(self, repo_url: str, token: str) -> Iterator[Path]:
        path = self._create(repo_url, token)
        try:
            yield path
        finally:
            self.destroy(path)

    def _create(self, repo_url: str, token: str) -> Path:
        parsed = urlparse(repo_url)
        scheme = parsed.scheme or "https"
        host = parsed.hostname or ""
        if parsed.port:
            host = f"{host}:{parsed.port}"
        line = f"{scheme}://{quote(TOKEN_USERNAME, safe='')}:{quote(token, safe='')}@{host}\n"
        try:
            fd, name = tempfile.mkstemp(prefix="dockship-cred-", dir=self.tmp_dir)
        except OSError as exc:
            raise SecretIOError(f"Could not create credential store: {exc}") from exc
        path = Path(name)
        try:
            os.fchmod(fd, stat.S_IRUSR | stat.S_IWUSR)
            mode = stat.S_IMODE(os.fstat(fd).st_mode)
            if mode != 0o600:
                raise SecretIOError(f"Credential store has mode {oct(mode)}, expected 0o600")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                fd = -1
                handle.write(line)
        except (OSError, SecretIOError) as exc:
            if fd >= 0:
                os.close(fd)
            path.unlink(missing_ok=True)
            if isinstance(exc, SecretIOError):
                raise
            raise SecretIOError(f"Could not write credential store: {exc}") from exc
        logger.info("Temporary credential store created.")
        return path

    def destroy(self, path: Path) -> None:
        """Overwrite the file with random bytes, sync it, then unlink it."""
        if not path.exists():
            return
        try:
            size = path.stat().st_size
            with open(path, "r+b") as handle:
                handle.write(os.urandom(max(size, 1)))
                handle.flush()
                os.fsync(handle.fileno())
            path.unlink()
        except OSError as exc:
            raise SecretIOError(f"Could not erase credential store {path}: {exc}") from exc
        logger.info("Temporary credential store removed.")
