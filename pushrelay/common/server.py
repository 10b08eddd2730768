"""Process entrypoint helpers: run a service app under uvicorn."""

import uvicorn
from fastapi import FastAPI

from pushrelay.common.config import settings
from pushrelay.common.logging import logger


class PromptExitServer(uvicorn.Server):
    """Exit on the first termination signal without draining in-flight requests."""

    def handle_exit(self, sig, frame) -> None:
        logger.info("signal_received signal=%s exiting", sig)
        self.force_exit = True
        super().handle_exit(sig, frame)


def serve(app: FastAPI, default_port: int) -> None:
    """Listen on all interfaces at `PORT` (or the service default)."""

    port = settings.port or default_port
    config = uvicorn.Config(app, host="0.0.0.0", port=port, log_config=None)
    logger.info("listening port=%s", port)
    PromptExitServer(config).run()
