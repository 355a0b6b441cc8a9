"""High-level workflow orchestration."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .cancellation import CancellationToken
from .config import AppConfig
from .deploy import (
    ArtifactTransporter,
    DeploymentExecutor,
    DeploymentValidator,
    ProxyConfigurator,
    TeardownManager,
)
from .errors import (
    ConnectivityError,
    DeployerError,
    DeploymentExecutionError,
    InputError,
    Interrupted,
    ManifestError,
    ProvisioningError,
    ProxyConfigError,
    TransferError,
    ValidationError,
)
from .gitops import SourceSynchronizer, SyncResult
from .models import RunContext, RunMode, has_deployable_manifest
from .paths import ensure_dir
from .provision import EnvironmentProvisioner
from .ssh import ConnectivityProbe, DryRunSession, SSHConnectionError, SSHCredentials, SSHSession
from .stages import StageResult
from .utils.logging import get_logger

logger = get_logger(__name__)

# Error raised when the SSH connection drops in the middle of a stage.
STAGE_ERRORS = {
    "provision": ProvisioningError,
    "transfer": TransferError,
    "execute": DeploymentExecutionError,
    "proxy": ProxyConfigError,
    "validate": ValidationError,
}


@dataclass
class RunReport:
    """Everything the run record on disk contains."""

    mode: str
    repo_url: str
    target: str
    remote_dir: str
    dry_run: bool
    start_time: str = field(default_factory=lambda: datetime.now().isoformat())
    end_time: Optional[str] = None
    status: str = "running"
    error: Optional[str] = None
    stages: List[StageResult] = field(default_factory=list)
    log_file: Optional[str] = None

    @property
    def warnings(self) -> List[str]:
        return [f"{stage.name}: {w}" for stage in self.stages for w in stage.warnings]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "repo_url": self.repo_url,
            "target": self.target,
            "remote_dir": self.remote_dir,
            "dry_run": self.dry_run,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "status": self.status,
            "error": self.error,
            "log_file": self.log_file,
            "stages": [stage.to_dict() for stage in self.stages],
        }


class DeploymentWorkflow:
    """Runs the stages strictly in sequence; the first fatal error ends the run."""

    def __init__(
        self,
        config: AppConfig,
        *,
        cancellation: Optional[CancellationToken] = None,
        session_factory: Optional[Callable[[RunContext], Any]] = None,
        synchronizer: Optional[SourceSynchronizer] = None,
        probe: Optional[ConnectivityProbe] = None,
        provisioner: Optional[EnvironmentProvisioner] = None,
        transporter: Optional[ArtifactTransporter] = None,
        executor: Optional[DeploymentExecutor] = None,
        proxy: Optional[ProxyConfigurator] = None,
        validator: Optional[DeploymentValidator] = None,
        teardown: Optional[TeardownManager] = None,
        log_file: Optional[Path] = None,
    ) -> None:
        deployment = config.deployment
        self.config = config
        self.cancellation = cancellation or CancellationToken()
        self.session_factory = session_factory or self._create_session
        self.synchronizer = synchronizer
        self.probe = probe or ConnectivityProbe(timeout=deployment.probe_timeout)
        self.provisioner = provisioner or EnvironmentProvisioner(compose_version=deployment.compose_version)
        self.transporter = transporter
        self.executor = executor or DeploymentExecutor(settle_delay=deployment.settle_delay)
        self.proxy = proxy or ProxyConfigurator()
        self.validator = validator
        self.teardown = teardown or TeardownManager()
        self.log_dir = Path(deployment.log_dir)
        self.log_file = log_file
        self.record_file: Optional[Path] = None

    def run(self, ctx: RunContext) -> RunReport:
        report = RunReport(
            mode=ctx.mode.value,
            repo_url=ctx.source.repo_url,
            target=ctx.target.address,
            remote_dir=ctx.target.remote_dir,
            dry_run=ctx.dry_run,
            log_file=str(self.log_file) if self.log_file else None,
        )
        self._init_record(ctx)
        logger.info(
            "Starting %s%s for %s (branch %s) -> %s:%s",
            ctx.mode.value,
            " [DRY-RUN]" if ctx.dry_run else "",
            ctx.source.repo_url,
            ctx.source.branch,
            ctx.target.address,
            ctx.target.remote_dir,
        )
        try:
            session = self.session_factory(ctx)
            try:
                self._stage(report, "connectivity", lambda: self._check_connectivity(session, ctx))
                sync_holder: Dict[str, SyncResult] = {}
                self._stage(report, "source", lambda: self._sync_source(ctx, sync_holder))
                local_path = sync_holder["sync"].local_path
                if ctx.mode is RunMode.CLEANUP:
                    self._stage(report, "cleanup", lambda: self.teardown.teardown(session, ctx.target))
                else:
                    self._deploy(session, ctx, local_path, report)
            finally:
                session.close()
        except DeployerError as exc:
            report.status = "interrupted" if isinstance(exc, Interrupted) else "failed"
            report.error = str(exc)
            logger.error("%s failed: %s", exc.stage.capitalize(), exc)
            raise
        finally:
            report.end_time = datetime.now().isoformat()
            self._save_record(report)

        report.status = "success"
        self._save_record(report)
        for warning in report.warnings:
            logger.warning("Advisory: %s", warning)
        logger.info("%s finished successfully.", ctx.mode.value.capitalize())
        return report

    def _deploy(self, session, ctx: RunContext, local_path: Path, report: RunReport) -> None:
        if ctx.app is None:
            raise InputError("An application port is required in deploy mode")
        self._stage(report, "manifest", lambda: self._check_manifest(local_path, ctx))

        profile_holder = {}

        def provision() -> StageResult:
            profile, result = self.provisioner.provision(session, ctx.target.username)
            profile_holder["profile"] = profile
            if profile.relogin_required:
                self._relogin(session)
            return result

        self._stage(report, "provision", provision)
        transporter = self.transporter or ArtifactTransporter(dry_run=ctx.dry_run)
        self._stage(report, "transfer", lambda: transporter.transfer(session, local_path, ctx.target))
        execution = self._stage(
            report,
            "execute",
            lambda: self.executor.execute(
                session, local_path, ctx.target.remote_dir, ctx.app, profile_holder["profile"]
            ),
        )
        upstream = execution.details.get("published_port", ctx.app.app_port)
        self._stage(report, "proxy", lambda: self.proxy.configure(session, upstream))
        validator = self.validator or DeploymentValidator(dry_run=ctx.dry_run)
        self._stage(report, "validate", lambda: validator.validate(session, ctx.target.host))

    def _stage(self, report: RunReport, name: str, action: Callable[[], StageResult]) -> StageResult:
        self.cancellation.raise_if_cancelled()
        logger.info("==> %s", name)
        try:
            result = action()
        except SSHConnectionError as exc:
            error = STAGE_ERRORS.get(name, ConnectivityError)(f"SSH connection lost during {name}: {exc}")
            report.stages.append(StageResult.failed(name, str(error)))
            raise error from exc
        except DeployerError as exc:
            report.stages.append(StageResult.failed(name, str(exc)))
            raise
        report.stages.append(result)
        self._save_record(report)
        return result

    @staticmethod
    def _relogin(session) -> None:
        logger.info("Reconnecting so the docker group membership takes effect ...")
        session.close()
        try:
            session.connect()
        except SSHConnectionError as exc:
            raise ConnectivityError(f"Reconnecting after the docker group change failed: {exc}") from exc

    def _check_connectivity(self, session, ctx: RunContext) -> StageResult:
        if ctx.dry_run:
            logger.info("[DRY-RUN] skip SSH connectivity actual test")
            return StageResult.skipped("connectivity", "dry run")
        facts = self.probe.check(session)
        return StageResult(name="connectivity", details=facts.to_payload())

    def _sync_source(self, ctx: RunContext, holder: Dict[str, SyncResult]) -> StageResult:
        synchronizer = self.synchronizer or SourceSynchronizer(
            Path(self.config.deployment.workspace_root), dry_run=ctx.dry_run
        )
        sync = synchronizer.sync(ctx.source, ctx.token)
        holder["sync"] = sync
        return StageResult(
            name="source",
            details={"local_path": str(sync.local_path), "action": sync.action, "commit": sync.commit_sha},
        )

    def _check_manifest(self, local_path: Path, ctx: RunContext) -> StageResult:
        result = StageResult(name="manifest")
        if has_deployable_manifest(local_path):
            return result
        message = f"No Dockerfile or compose manifest found in {local_path}"
        if ctx.dry_run:
            result.warn(message)
            return result
        raise ManifestError(message + ". A Dockerized project is required.")

    def _create_session(self, ctx: RunContext):
        if ctx.dry_run:
            return DryRunSession(ctx.target.address, cancellation=self.cancellation)
        credentials = SSHCredentials(
            host=ctx.target.host,
            username=ctx.target.username,
            key_path=ctx.target.key_path,
            port=ctx.target.port,
            timeout=self.config.deployment.probe_timeout,
        )
        return SSHSession(
            credentials,
            command_timeout=self.config.deployment.command_timeout,
            cancellation=self.cancellation,
        )

    def _init_record(self, ctx: RunContext) -> None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        ensure_dir(self.log_dir)
        self.record_file = self.log_dir / f"run_{ctx.source.repo_name}_{timestamp}.json"
        logger.info("📝 Run record: %s", self.record_file)

    def _save_record(self, report: RunReport) -> None:
        if self.record_file is None:
            return
        self.record_file.write_text(json.dumps(report.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
