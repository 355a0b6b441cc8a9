"""Configuration loading utilities for Dockship."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .paths import LOGS_DIR, WORKSPACE_DIR

# Load .env file if it exists
load_dotenv()

_DEFAULT_CONFIG_PATH = Path("config/dockship.json")


@dataclass
class DeploymentConfig:
    """Settings related to deployment execution."""

    workspace_root: str = str(WORKSPACE_DIR)
    log_dir: str = str(LOGS_DIR)
    default_branch: str = "main"
    default_host: Optional[str] = None
    default_username: Optional[str] = None
    default_port: int = 22
    default_key_path: str = "~/.ssh/id_rsa"
    default_app_port: Optional[int] = None
    token: Optional[str] = field(default=None, repr=False)
    probe_timeout: int = 10            # connect timeout for the initial handshake
    command_timeout: int = 1800        # upper bound for a single remote command
    settle_delay: float = 3.0          # wait before the post-start health probe
    compose_version: str = "v2.20.2"   # standalone compose fallback


@dataclass
class AppConfig:
    """Top-level configuration."""

    deployment: DeploymentConfig = field(default_factory=DeploymentConfig)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppConfig":
        deployment_payload = payload.get("deployment", {}) or {}
        # keys starting with "_" are comments
        deployment_payload = {k: v for k, v in deployment_payload.items() if not k.startswith("_")}
        return cls(
            deployment=DeploymentConfig(
                **{**DeploymentConfig().__dict__, **deployment_payload}
            ),
        )


def _apply_environment(config: AppConfig) -> AppConfig:
    deployment = config.deployment

    env_token = os.getenv("DOCKSHIP_PAT")
    if env_token:
        deployment.token = env_token

    env_host = os.getenv("DOCKSHIP_SSH_HOST")
    if env_host:
        deployment.default_host = env_host

    env_username = os.getenv("DOCKSHIP_SSH_USER")
    if env_username:
        deployment.default_username = env_username

    env_port = os.getenv("DOCKSHIP_SSH_PORT")
    if env_port:
        deployment.default_port = int(env_port)

    env_key_path = os.getenv("DOCKSHIP_SSH_KEY_PATH")
    if env_key_path:
        deployment.default_key_path = env_key_path

    env_app_port = os.getenv("DOCKSHIP_APP_PORT")
    if env_app_port:
        deployment.default_app_port = int(env_app_port)

    env_branch = os.getenv("DOCKSHIP_BRANCH")
    if env_branch:
        deployment.default_branch = env_branch

    return config


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load configuration from `path` or the default location.

    A missing default file yields the built-in defaults; an explicitly named
    file must exist.

    Environment variables (higher priority than config file):
    - DOCKSHIP_PAT: source-control token
    - DOCKSHIP_SSH_HOST / DOCKSHIP_SSH_USER / DOCKSHIP_SSH_PORT: target host
    - DOCKSHIP_SSH_KEY_PATH: path to SSH private key
    - DOCKSHIP_APP_PORT: internal application port
    - DOCKSHIP_BRANCH: branch to deploy
    """
    if path:
        candidate = Path(path)
        if not candidate.is_file():
            raise FileNotFoundError(f"Could not find configuration file: {candidate}")
    else:
        candidate = _DEFAULT_CONFIG_PATH

    if candidate.is_file():
        with candidate.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        config = AppConfig.from_dict(data)
    else:
        config = AppConfig()

    return _apply_environment(config)
