"""Interrupt handling: finish the running remote command, then stop."""

from __future__ import annotations

import logging
import signal
import threading

from .errors import Interrupted

logger = logging.getLogger(__name__)


class CancellationToken:
    """Set from a signal handler, checked before each command is started."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.signal_name = None

    def cancel(self, signal_name: str = "interrupt") -> None:
        self.signal_name = signal_name
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Interrupted(f"Run stopped after {self.signal_name}; remote state left as-is")


def install_signal_handlers(token: CancellationToken) -> None:
    """Route SIGINT/SIGTERM to `token` instead of raising mid-command."""

    def _handler(signum, frame) -> None:  # pragma: no cover - exercised manually
        name = signal.Signals(signum).name
        if token.cancelled:
            raise KeyboardInterrupt
        logger.warning("%s received; stopping after the current command returns", name)
        token.cancel(name)

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)
