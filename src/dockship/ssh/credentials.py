"""SSH credential helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from ..errors import KeyMaterialError


@dataclass
class SSHCredentials:
    """Key-based identity for the target host."""

    host: str
    username: str
    key_path: str
    port: int = 22
    passphrase: Optional[str] = None
    timeout: int = 10

    @property
    def key_file(self) -> str:
        return os.path.expanduser(self.key_path)

    def validate(self) -> None:
        if not os.path.isfile(self.key_file):
            raise KeyMaterialError(f"SSH key not found at {self.key_file}")
