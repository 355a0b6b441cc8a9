import io
import logging
import tempfile
import unittest
from pathlib import Path

from dockship.utils.logging import LOG_FORMAT, SecretRedactingFilter, configure_logging


class SecretRedactingFilterTests(unittest.TestCase):
    def _logger(self, secrets):
        stream = io.StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.addFilter(SecretRedactingFilter(secrets))
        logger = logging.getLogger(f"dockship.tests.redaction.{id(stream)}")
        logger.propagate = False
        logger.setLevel(logging.DEBUG)
        logger.addHandler(handler)
        self.addCleanup(logger.removeHandler, handler)
        return logger, stream

    def test_secret_in_arguments_is_masked(self) -> None:
        logger, stream = self._logger(["ghp_secret"])
        logger.info("cloning https://x-access-token:%s@github.com/acme/app", "ghp_secret")
        output = stream.getvalue()
        self.assertNotIn("ghp_secret", output)
        self.assertIn("x-access-token:***@github.com", output)

    def test_records_without_secrets_are_untouched(self) -> None:
        logger, stream = self._logger(["ghp_secret", ""])
        logger.info("port %d", 3000)
        self.assertIn("port 3000", stream.getvalue())


class ConfigureLoggingTests(unittest.TestCase):
    def setUp(self) -> None:
        root = logging.getLogger()
        saved_handlers = list(root.handlers)
        saved_level = root.level

        def restore() -> None:
            for handler in list(root.handlers):
                root.removeHandler(handler)
                handler.close()
            for handler in saved_handlers:
                root.addHandler(handler)
            root.setLevel(saved_level)

        self.addCleanup(restore)
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)

    def test_log_file_is_written_and_redacted(self) -> None:
        log_file = Path(self._tmp.name) / "logs" / "dockship_test.log"
        configure_logging(log_file=log_file, secrets=["hunter2"])
        logging.getLogger("dockship.tests").info("token is hunter2")
        for handler in logging.getLogger().handlers:
            handler.flush()

        content = log_file.read_text(encoding="utf-8")
        self.assertIn("token is ***", content)
        self.assertNotIn("hunter2", content)
        self.assertEqual(logging.getLogger("paramiko").level, logging.WARNING)


if __name__ == "__main__":
    unittest.main()
