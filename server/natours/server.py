"""
Process entry point.

Runs the API under uvicorn and installs the process-level failure policy:
an uncaught exception in the main thread, or an exception raised by an
asyncio task that nobody awaited, is logged at CRITICAL, the server is
asked to stop, and the process exits with status 1.
"""

import asyncio
import sys
from typing import Optional

import uvicorn

from .core.config import settings
from .core.observability import get_logger, setup_structured_logging

logger = get_logger(__name__)


class CrashGuard:
    """Turns unexpected failures into a graceful shutdown and a failing exit status."""

    def __init__(self):
        self.server: Optional[uvicorn.Server] = None
        self.crashed = False

    def attach(self, server: uvicorn.Server) -> None:
        self.server = server

    def _fail(self, event: str, exc: Optional[BaseException], message: Optional[str] = None) -> None:
        self.crashed = True
        try:
            logger.critical(
                f"{event}! Shutting down...",
                error=type(exc).__name__ if exc is not None else None,
                detail=str(exc) if exc is not None else message,
                exc_info=exc,
            )
        finally:
            if self.server is not None:
                self.server.should_exit = True

    def handle_exception(self, exc_type, exc, tb) -> None:
        """``sys.excepthook`` replacement."""
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc, tb)
            return
        self._fail("UNCAUGHT EXCEPTION", exc)

    def handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict) -> None:
        """asyncio exception handler for errors no task awaited."""
        self._fail("UNHANDLED TASK EXCEPTION", context.get("exception"), context.get("message"))

    def install(self) -> None:
        sys.excepthook = self.handle_exception

    def install_loop_handler(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        (loop or asyncio.get_running_loop()).set_exception_handler(self.handle_loop_exception)

    @property
    def exit_code(self) -> int:
        return 1 if self.crashed else 0


crash_guard = CrashGuard()


def main() -> None:
    """Serve the API until shutdown; exit with status 1 after a crash."""
    setup_structured_logging()

    config = uvicorn.Config(
        "natours.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        access_log=True,
    )
    server = uvicorn.Server(config)

    crash_guard.attach(server)
    crash_guard.install()

    logger.info("Starting server", host=settings.host, port=settings.port, environment=settings.environment)
    server.run()

    if crash_guard.crashed:
        sys.exit(crash_guard.exit_code)


if __name__ == "__main__":
    main()
