import tempfile
import unittest
from pathlib import Path

from dockship.deploy import DeploymentExecutor
from dockship.errors import DeploymentExecutionError
from dockship.models import ApplicationSpec, PackageFamily, RuntimeProfile

from fakes import ScriptedSession

REMOTE_DIR = "/home/deploy/deployments/app"
PROFILE = RuntimeProfile(
    family=PackageFamily.DEBIAN,
    package_manager="apt-get",
    has_docker=True,
    compose_command=("docker", "compose"),
    has_proxy=True,
)


class DeploymentExecutorTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.source = Path(self._tmp.name)
        (self.source / "Dockerfile").write_text("FROM node:20\nEXPOSE 3000\n", encoding="utf-8")
        self.sleeps = []
        self.executor = DeploymentExecutor(
            settle_delay=3.0, clock=lambda: 1700000000, sleep=self.sleeps.append
        )

    def _session(self) -> ScriptedSession:
        # no compose manifest left remotely by an earlier run
        return ScriptedSession().fail("test -f ")

    def test_single_container_published_on_loopback(self) -> None:
        session = self._session()
        result = self.executor.execute(session, self.source, REMOTE_DIR, ApplicationSpec(app_port=3000), PROFILE)

        self.assertIn(
            f"cd {REMOTE_DIR} && docker build --label dockship.managed=true -t dockship_image_1700000000 .",
            session.commands,
        )
        self.assertIn(
            "docker run -d --name dockship_app --restart unless-stopped --label dockship.managed=true "
            "-p 127.0.0.1:3000:3000 dockship_image_1700000000",
            session.commands,
        )
        self.assertIn("curl -sS --fail -o /dev/null http://127.0.0.1:3000/", session.commands)
        self.assertEqual(result.details["mode"], "single-container")
        self.assertEqual(result.details["published_port"], 3000)
        self.assertTrue(result.details["health_probe"])
        self.assertEqual(self.sleeps, [3.0])
        self.assertFalse(session.ran("docker compose"))

    def test_host_port_override(self) -> None:
        session = self._session()
        result = self.executor.execute(
            session, self.source, REMOTE_DIR, ApplicationSpec(app_port=3000, host_port=8080), PROFILE
        )
        self.assertTrue(session.ran("-p 127.0.0.1:8080:3000 "))
        self.assertEqual(result.details["published_port"], 8080)

    def test_redeploy_replaces_container_and_prunes_old_images(self) -> None:
        session = (
            self._session()
            .respond("docker ps -a", "dockship_app")
            .respond("docker images --format", "dockship_image_1600000000\nnginx\ndockship_image_1700000000")
        )
        self.executor.execute(session, self.source, REMOTE_DIR, ApplicationSpec(app_port=3000), PROFILE)

        self.assertLess(session.index_of("docker build"), session.index_of("docker rm -f dockship_app"))
        self.assertLess(session.index_of("docker rm -f dockship_app"), session.index_of("docker run -d"))
        self.assertIn("docker rmi dockship_image_1600000000", session.commands)
        self.assertNotIn("docker rmi dockship_image_1700000000", session.commands)
        self.assertFalse(session.ran("docker rmi nginx"))

    def test_stale_compose_stack_is_stopped_in_single_container_mode(self) -> None:
        session = ScriptedSession().fail("test -f ").respond(f"test -f {REMOTE_DIR}/compose.yaml")
        self.executor.execute(session, self.source, REMOTE_DIR, ApplicationSpec(app_port=3000), PROFILE)
        self.assertIn(f"cd {REMOTE_DIR} && docker compose -f compose.yaml down --remove-orphans", session.commands)

    def test_compose_mode_when_manifest_present(self) -> None:
        (self.source / "docker-compose.yml").write_text("services: {}\n", encoding="utf-8")
        session = self._session().respond("docker ps -a", "dockship_app")
        result = self.executor.execute(session, self.source, REMOTE_DIR, ApplicationSpec(app_port=8000), PROFILE)

        self.assertIn("docker rm -f dockship_app", session.commands)
        self.assertIn(f"cd {REMOTE_DIR} && docker compose -f docker-compose.yml up -d --build", session.commands)
        self.assertFalse(session.ran("docker build"))
        self.assertEqual(result.details["mode"], "compose")
        self.assertEqual(result.details["manifest"], "docker-compose.yml")

    def test_failed_health_probe_is_only_a_warning(self) -> None:
        session = self._session().fail("curl -sS --fail", stderr="Connection refused")
        result = self.executor.execute(session, self.source, REMOTE_DIR, ApplicationSpec(app_port=3000), PROFILE)
        self.assertTrue(result.ok)
        self.assertFalse(result.details["health_probe"])
        self.assertEqual(len(result.warnings), 1)

    def test_build_failure_is_fatal(self) -> None:
        session = self._session().fail("docker build", stderr="COPY failed")
        with self.assertRaises(DeploymentExecutionError) as ctx:
            self.executor.execute(session, self.source, REMOTE_DIR, ApplicationSpec(app_port=3000), PROFILE)
        self.assertEqual(ctx.exception.exit_code, 32)
        self.assertFalse(session.ran("docker run"))

    def test_compose_up_failure_is_fatal(self) -> None:
        (self.source / "compose.yaml").write_text("services: {}\n", encoding="utf-8")
        session = self._session().fail("up -d --build")
        with self.assertRaises(DeploymentExecutionError):
            self.executor.execute(session, self.source, REMOTE_DIR, ApplicationSpec(app_port=3000), PROFILE)


if __name__ == "__main__":
    unittest.main()
