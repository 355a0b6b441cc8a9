"""Unified path constants for Dockship.

Local data is stored under the .dockship directory:
- .dockship/workspace/   # Working trees, one per repository name
- .dockship/logs/        # Run logs and JSON run records
"""

from pathlib import Path

BASE_DIR = Path(".dockship")

WORKSPACE_DIR = BASE_DIR / "workspace"
LOGS_DIR = BASE_DIR / "logs"


def ensure_dir(path: Path) -> Path:
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path
