"""Stage results and the best-effort/fatal command helpers shared by all stages."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Type, Union

from .errors import DeployerError

logger = logging.getLogger(__name__)


class StageStatus(Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class StageResult:
    """Outcome of one stage.

    Fatal problems are raised as exceptions; what ends up here are advisory
    warnings collected from best-effort sub-steps, plus stage-specific details
    for the run record.
    """

    name: str
    status: StageStatus = StageStatus.SUCCESS
    warnings: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @classmethod
    def skipped(cls, name: str, reason: str) -> "StageResult":
        return cls(name=name, status=StageStatus.SKIPPED, details={"reason": reason})

    @classmethod
    def failed(cls, name: str, error: str) -> "StageResult":
        return cls(name=name, status=StageStatus.FAILED, error=error)

    @property
    def ok(self) -> bool:
        return self.status is not StageStatus.FAILED

    def warn(self, message: str) -> None:
        logger.warning("[%s] %s", self.name, message)
        self.warnings.append(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "warnings": list(self.warnings),
            "details": dict(self.details),
            "error": self.error,
        }


Command = Union[str, Sequence[str]]


def best_effort(session, command: Command, result: StageResult, description: str, **kwargs):
    """Run a command whose failure is only advisory; returns the command result."""
    outcome = session.run(command, **kwargs)
    if not outcome.ok:
        detail = outcome.stderr or outcome.stdout or f"exit status {outcome.exit_status}"
        result.warn(f"{description} failed (ignored): {detail}")
    return outcome


def require(
    session,
    command: Command,
    error_cls: Type[DeployerError],
    description: str,
    **kwargs,
):
    """Run a command that defines the stage; raise `error_cls` when it fails."""
    outcome = session.run(command, **kwargs)
    if not outcome.ok:
        detail = outcome.stderr or outcome.stdout or f"exit status {outcome.exit_status}"
        raise error_cls(f"{description} failed: {detail}")
    return outcome
