"""Post-deploy checks: two fatal, two advisory."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import requests

from ..errors import ValidationError
from ..stages import StageResult
from .proxy import proxy_config_valid

logger = logging.getLogger(__name__)


@dataclass
class CheckOutcome:
    name: str
    passed: bool
    fatal: bool
    detail: str = ""

    def to_dict(self) -> dict:
        return {"name": self.name, "passed": self.passed, "fatal": self.fatal, "detail": self.detail}


class DeploymentValidator:
    name = "validate"

    def __init__(
        self,
        *,
        http_session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        dry_run: bool = False,
    ) -> None:
        self.http = http_session or requests.Session()
        self.timeout = timeout
        self.dry_run = dry_run

    def validate(self, session, public_host: str) -> StageResult:
        logger.info("Validating deployment...")
        result = StageResult(name=self.name)
        checks = []
        result.details["checks"] = checks

        docker = session.run(["systemctl", "is-active", "--quiet", "docker"])
        checks.append(CheckOutcome("docker-active", docker.ok, True, docker.stderr).to_dict())
        if not docker.ok:
            raise ValidationError("Docker service not active on remote")
        logger.info("Docker service active.")

        containers = session.run(["docker", "ps", "--format", "{{.Names}} {{.Status}}"])
        if containers.ok:
            logger.info("Remote containers: %s", containers.stdout or "(none)")
            result.details["containers"] = containers.stdout

        nginx = proxy_config_valid(session)
        checks.append(CheckOutcome("proxy-config", nginx.ok, True, nginx.stderr).to_dict())
        if not nginx.ok:
            raise ValidationError(f"Nginx config test failed: {nginx.stderr or nginx.stdout}")
        logger.info("Nginx config OK.")

        if self.dry_run:
            logger.info("[DRY-RUN] skip HTTP reachability checks")
            return result

        local = session.run(["curl", "-sS", "--fail", "-o", "/dev/null", "http://127.0.0.1/"])
        checks.append(CheckOutcome("loopback-http", local.ok, False, local.stderr).to_dict())
        if local.ok:
            logger.info("Remote HTTP OK (127.0.0.1:80 responded).")
        else:
            result.warn("Remote HTTP check failed on 127.0.0.1:80. App might not be responding yet.")

        url = f"http://{public_host}/"
        external_ok, detail = self._external_check(url)
        checks.append(CheckOutcome("external-http", external_ok, False, detail).to_dict())
        if external_ok:
            logger.info("External HTTP OK: %s is reachable.", url)
        else:
            result.warn(
                f"External HTTP check failed for {url} ({detail}). "
                "This may be due to firewall or port blocking."
            )
        return result

    def _external_check(self, url: str):
        try:
            response = self.http.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            return False, str(exc)
        if response.ok:
            return True, f"HTTP {response.status_code}"
        return False, f"HTTP {response.status_code}"
