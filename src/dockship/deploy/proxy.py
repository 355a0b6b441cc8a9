"""Reverse-proxy site management (nginx)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..errors import ProxyConfigError
from ..models import PROXY_SITE_NAME
from ..ssh import SSHConnectionError
from ..stages import StageResult, best_effort, require

logger = logging.getLogger(__name__)

NGINX_SITE_TEMPLATE = """server {{
    listen 80;
    server_name _;

    location / {{
        proxy_pass http://127.0.0.1:{port};
        proxy_http_version 1.1;
        proxy_set_header Upgrade $http_upgrade;
        proxy_set_header Connection 'upgrade';
        proxy_set_header Host $host;
        proxy_cache_bypass $http_upgrade;
    }}
}}
"""


def render_site(port: int) -> str:
    return NGINX_SITE_TEMPLATE.format(port=int(port))


@dataclass(frozen=True)
class SiteLayout:
    """Where the site lives: an available/enabled pair, or a single conf.d file."""

    available: str
    enabled: Optional[str] = None

    @property
    def paths(self) -> tuple:
        return tuple(p for p in (self.available, self.enabled) if p)


SITES_LAYOUT = SiteLayout(
    available=f"/etc/nginx/sites-available/{PROXY_SITE_NAME}.conf",
    enabled=f"/etc/nginx/sites-enabled/{PROXY_SITE_NAME}.conf",
)
CONF_D_LAYOUT = SiteLayout(available=f"/etc/nginx/conf.d/{PROXY_SITE_NAME}.conf")
ALL_SITE_PATHS = SITES_LAYOUT.paths + CONF_D_LAYOUT.paths


def detect_layout(session) -> SiteLayout:
    if session.run(["test", "-d", "/etc/nginx/sites-enabled"]).ok:
        return SITES_LAYOUT
    return CONF_D_LAYOUT


def proxy_config_valid(session):
    return session.run(["nginx", "-t"], sudo=True)


def reload_proxy(session) -> None:
    outcome = session.run(["systemctl", "reload", "nginx"], sudo=True)
    if not outcome.ok:
        raise ProxyConfigError(f"Reloading nginx failed: {outcome.stderr or outcome.stdout}")


class ProxyConfigurator:
    """Writes the tool-owned site, validates, and reloads only a valid config."""

    name = "proxy"

    def configure(self, session, upstream_port: int) -> StageResult:
        result = StageResult(name=self.name)
        logger.info("Configuring Nginx reverse proxy to forward 80 -> 127.0.0.1:%s", upstream_port)
        layout = detect_layout(session)
        content = render_site(upstream_port)

        previous = session.run(["cat", layout.available], sudo=True)
        previous_content = previous.stdout + "\n" if previous.ok and previous.stdout else None

        self._write_site(session, layout, content, result)

        check = proxy_config_valid(session)
        if not check.ok:
            self._restore(session, layout, previous_content, result)
            raise ProxyConfigError(f"nginx configuration test failed; not reloading: {check.stderr or check.stdout}")

        reload_proxy(session)
        result.details.update({"site": layout.available, "upstream": f"127.0.0.1:{upstream_port}"})
        logger.info("Nginx reverse proxy configured and reloaded.")
        return result

    def _write_site(self, session, layout: SiteLayout, content: str, result: StageResult) -> None:
        # private, per-run staging file owned by the SSH user (mode 0600)
        created = require(
            session, ["mktemp", "-t", f"{PROXY_SITE_NAME}.XXXXXXXX"], ProxyConfigError, "Creating staging file"
        )
        staging = created.stdout.strip()
        if not staging:
            raise ProxyConfigError("Creating staging file failed: mktemp printed no path")
        try:
            try:
                session.upload_text(staging, content, mode=0o600)
            except (SSHConnectionError, OSError) as exc:
                raise ProxyConfigError(f"Uploading nginx site failed: {exc}") from exc
            commands = [["install", "-m", "0644", staging, layout.available]]
            if layout.enabled:
                commands.append(["ln", "-sf", layout.available, layout.enabled])
            for command in commands:
                require(session, command, ProxyConfigError, "Writing nginx site", sudo=True)
        finally:
            best_effort(session, ["rm", "-f", staging], result, "Removing staged site file")

    def _restore(self, session, layout: SiteLayout, previous_content: Optional[str], result: StageResult) -> None:
        """Put back what was active before so a later reload cannot pick up the broken site."""
        if previous_content is not None:
            logger.warning("Restoring previous nginx site %s", layout.available)
            self._write_site(session, layout, previous_content, result)
        else:
            logger.warning("Removing rejected nginx site %s", layout.available)
            best_effort(session, ["rm", "-f", *layout.paths], result, "Removing rejected site", sudo=True)
