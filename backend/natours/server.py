"""
Process entry point: python -m natours.server

Any uncaught exception, in the main thread or in an asyncio task nobody
awaited, is fatal: it is logged, the server stops accepting connections,
in-flight requests get SHUTDOWN_GRACE_SECONDS to finish, and the process
exits with status 1.
"""

import asyncio
import sys

import uvicorn

from natours.core.config import get_settings
from natours.core.logging import get_logger, setup_logging

logger = get_logger(__name__)


class FatalErrorServer(uvicorn.Server):
    """uvicorn server that shuts down gracefully on the first unhandled error."""

    def __init__(self, config: uvicorn.Config):
        super().__init__(config)
        self.fatal_error = False

    def trip(self, event: str, error: BaseException) -> None:
        logger.critical(event, error=repr(error), exc_info=error)
        self.fatal_error = True
        self.should_exit = True

    def handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict) -> None:
        error = context.get("exception") or RuntimeError(context.get("message", "unknown error"))
        self.trip("unhandled_task_exception", error)

    def handle_uncaught(self, exc_type, exc, tb) -> None:
        self.trip("uncaught_exception", exc)

    async def serve(self, sockets=None) -> None:
        asyncio.get_running_loop().set_exception_handler(self.handle_loop_exception)
        sys.excepthook = self.handle_uncaught
        await super().serve(sockets)


def main() -> None:
    settings = get_settings()
    setup_logging(settings)

    config = uvicorn.Config(
        "natours.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_config=None,
        timeout_graceful_shutdown=settings.SHUTDOWN_GRACE_SECONDS,
    )
    server = FatalErrorServer(config)
    server.run()

    if server.fatal_error:
        logger.info("shutting_down_after_fatal_error")
        sys.exit(1)


if __name__ == "__main__":
    main()
