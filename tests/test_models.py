import tempfile
import unittest
from pathlib import Path

from dockship.errors import InputError
from dockship.models import (
    ApplicationSpec,
    DeploymentMode,
    DeploymentTarget,
    SourceReference,
    default_remote_dir,
    has_deployable_manifest,
    select_deployment_mode,
)


def _target(remote_dir: str) -> DeploymentTarget:
    return DeploymentTarget(host="203.0.113.10", username="deploy", key_path="~/.ssh/id_rsa", remote_dir=remote_dir)


class SourceReferenceTests(unittest.TestCase):
    def test_repo_name_and_local_path(self) -> None:
        source = SourceReference(repo_url="https://github.com/acme/shop-api.git")
        self.assertEqual(source.repo_name, "shop-api")
        self.assertEqual(source.local_path(Path("/ws")), Path("/ws/shop-api"))
        self.assertEqual(source.branch, "main")

    def test_only_http_urls_are_accepted(self) -> None:
        for url in ("git@github.com:acme/app.git", "ssh://github.com/acme/app", "file:///tmp/app"):
            with self.subTest(url=url):
                with self.assertRaises(InputError):
                    SourceReference(repo_url=url).validate()

    def test_branch_cannot_look_like_an_option(self) -> None:
        with self.assertRaises(InputError):
            SourceReference(repo_url="https://github.com/acme/app", branch="--upload-pack=x").validate()


class DeploymentTargetTests(unittest.TestCase):
    def test_default_remote_dir(self) -> None:
        self.assertEqual(default_remote_dir("deploy", "app"), "/home/deploy/deployments/app")
        self.assertEqual(default_remote_dir("root", "app"), "/root/deployments/app")

    def test_for_repository_honours_override(self) -> None:
        target = DeploymentTarget.for_repository(
            "example.com", "deploy", "~/.ssh/id_rsa", "app", remote_dir="/srv/app", port=2222
        )
        self.assertEqual(target.remote_dir, "/srv/app")
        self.assertEqual(target.address, "deploy@example.com")
        self.assertEqual(target.port, 2222)

    def test_remote_dir_must_be_absolute_and_deep(self) -> None:
        for remote_dir in ("relative/app", "/", "/home", "/srv/../etc/app"):
            with self.subTest(remote_dir=remote_dir):
                with self.assertRaises(InputError):
                    _target(remote_dir).validate()
        _target("/srv/app").validate()

    def test_port_range(self) -> None:
        target = _target("/srv/app")
        target.port = 70000
        with self.assertRaises(InputError):
            target.validate()


class ApplicationSpecTests(unittest.TestCase):
    def test_published_port_uses_host_port_only_for_single_container(self) -> None:
        app = ApplicationSpec(app_port=3000, host_port=8080)
        self.assertEqual(app.published_port(DeploymentMode.SINGLE_CONTAINER), 8080)
        self.assertEqual(app.published_port(DeploymentMode.COMPOSE), 3000)
        self.assertEqual(ApplicationSpec(app_port=3000).published_port(DeploymentMode.SINGLE_CONTAINER), 3000)

    def test_rejects_out_of_range_ports(self) -> None:
        with self.assertRaises(InputError):
            ApplicationSpec(app_port=0).validate()
        with self.assertRaises(InputError):
            ApplicationSpec(app_port=3000, host_port=65536).validate()


class ModeSelectionTests(unittest.TestCase):
    def test_compose_manifest_wins_over_dockerfile(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            (root / "Dockerfile").write_text("FROM node:20\n", encoding="utf-8")
            self.assertEqual(select_deployment_mode(root), DeploymentMode.SINGLE_CONTAINER)
            (root / "compose.yml").write_text("services: {}\n", encoding="utf-8")
            self.assertEqual(select_deployment_mode(root), DeploymentMode.COMPOSE)

    def test_deployable_manifest(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            self.assertFalse(has_deployable_manifest(root))
            (root / "docker-compose.yaml").write_text("services: {}\n", encoding="utf-8")
            self.assertTrue(has_deployable_manifest(root))


if __name__ == "__main__":
    unittest.main()
