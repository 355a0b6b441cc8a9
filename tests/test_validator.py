import unittest

import requests

from dockship.deploy import DeploymentValidator
from dockship.errors import ValidationError

from fakes import FakeHTTP, ScriptedSession


class DeploymentValidatorTests(unittest.TestCase):
    def test_all_checks_pass(self) -> None:
        http = FakeHTTP()
        session = ScriptedSession().respond("docker ps --format", "dockship_app Up 5 seconds")
        result = DeploymentValidator(http_session=http).validate(session, "203.0.113.10")

        self.assertEqual(result.warnings, [])
        self.assertEqual(http.urls, ["http://203.0.113.10/"])
        self.assertEqual(
            [check["name"] for check in result.details["checks"]],
            ["docker-active", "proxy-config", "loopback-http", "external-http"],
        )
        self.assertEqual(result.details["containers"], "dockship_app Up 5 seconds")

    def test_inactive_docker_is_fatal(self) -> None:
        session = ScriptedSession().fail("systemctl is-active --quiet docker")
        with self.assertRaises(ValidationError) as ctx:
            DeploymentValidator(http_session=FakeHTTP()).validate(session, "example.com")
        self.assertEqual(ctx.exception.exit_code, 20)

    def test_invalid_proxy_config_is_fatal(self) -> None:
        session = ScriptedSession().fail("nginx -t")
        with self.assertRaises(ValidationError):
            DeploymentValidator(http_session=FakeHTTP()).validate(session, "example.com")

    def test_http_failures_are_advisory(self) -> None:
        session = ScriptedSession().fail("http://127.0.0.1/")
        http = FakeHTTP(error=requests.ConnectionError("timed out"))
        result = DeploymentValidator(http_session=http).validate(session, "example.com")

        self.assertTrue(result.ok)
        self.assertEqual(len(result.warnings), 2)
        self.assertIn("firewall", result.warnings[1])

    def test_error_status_from_public_address_is_advisory(self) -> None:
        result = DeploymentValidator(http_session=FakeHTTP(status_code=502)).validate(ScriptedSession(), "example.com")
        self.assertEqual(len(result.warnings), 1)
        self.assertIn("HTTP 502", result.warnings[0])

    def test_dry_run_skips_reachability(self) -> None:
        http = FakeHTTP()
        session = ScriptedSession()
        DeploymentValidator(http_session=http, dry_run=True).validate(session, "example.com")
        self.assertEqual(http.urls, [])
        self.assertFalse(session.ran("curl"))


if __name__ == "__main__":
    unittest.main()
