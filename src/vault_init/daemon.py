"""
vault-init daemon: the control loop.

Ticks the controller every ``check_interval`` seconds until SIGINT or
SIGTERM, then releases the keystore and returns. One thread, one tick
at a time; a slow Vault or cloud call only delays the next tick.
"""

from __future__ import annotations

import logging
import signal
import sys
import threading
from typing import Optional

from .controller import Controller, TickOutcome
from .keystore import Keystore

logger = logging.getLogger("vault_init.daemon")

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"

# SIGKILL cannot be caught.
SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def setup_logging(level: str = "INFO") -> None:
    """Configure console logging for the process.

    Safe to call more than once; the handler is only added the first time.
    """
    pkg_logger = logging.getLogger("vault_init")
    pkg_logger.setLevel(level.upper())
    if not pkg_logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        pkg_logger.addHandler(handler)


class Daemon:
    """Runs the controller on a fixed interval until told to stop.

    Args:
        controller: The init/unseal controller.
        keystore: Closed on shutdown.
        interval: Seconds between ticks.
        stop_event: Shared stop flag. Created if not given.
    """

    def __init__(
        self,
        controller: Controller,
        keystore: Keystore,
        interval: float,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self.controller = controller
        self.keystore = keystore
        self.interval = interval
        self.stop_event = stop_event or threading.Event()
        self.last_outcome: Optional[TickOutcome] = None
        self.ticks = 0

    def run_forever(self) -> None:
        """Tick until stop() is called or a shutdown signal arrives.

        The first tick happens one interval after start. The keystore
        is closed on the way out.
        """
        logger.info("Starting the vault-init service (interval=%ss)...", self.interval)
        try:
            while not self.stop_event.wait(timeout=self.interval):
                self.run_once()
        except KeyboardInterrupt:
            pass
        finally:
            self.shutdown()

    def run_once(self) -> TickOutcome:
        """Run a single tick.

        Anything the controller did not handle is logged and recorded as
        TICK_FAILED so the loop keeps going.
        """
        try:
            self.last_outcome = self.controller.tick()
        except Exception as exc:
            logger.error("Tick error: %s", exc, exc_info=True)
            self.last_outcome = TickOutcome.TICK_FAILED
        self.ticks += 1
        return self.last_outcome

    def stop(self) -> None:
        self.stop_event.set()

    def shutdown(self) -> None:
        logger.info("Shutting down")
        try:
            self.keystore.close()
        except Exception as exc:
            logger.warning("Error closing keystore: %s", exc)


def install_signal_handlers(stop_event: threading.Event) -> None:
    """Set ``stop_event`` on SIGINT or SIGTERM.

    Must be called from the main thread.
    """
    def handle_signal(signum, frame):
        logger.info("Received signal %s, stopping", signal.Signals(signum).name)
        stop_event.set()

    for sig in SHUTDOWN_SIGNALS:
        signal.signal(sig, handle_signal)
