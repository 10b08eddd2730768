"""Queue processor service: one trigger request, one claim-and-deliver cycle."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from time import perf_counter

from fastapi import FastAPI, Request

from pushrelay.common.config import settings
from pushrelay.common.db import SessionLocal
from pushrelay.common.errors import MethodNotAllowed, RelayError
from pushrelay.common.http import elapsed_ms, error_response, install_request_middleware
from pushrelay.common.logging import configure_logging, logger
from pushrelay.common.metrics import metrics_response
from pushrelay.common.push import PushGatewayClient
from pushrelay.common.server import serve
from pushrelay.common.startup import log_startup_config
from pushrelay.common.tracing import instrument_app, setup_tracing
from pushrelay.services.queue_processor.service import (
    BATCH_SIZE,
    CHUNK_DELAY_SECONDS,
    CHUNK_SIZE,
    QueueProcessorService,
)

SERVICE_NAME = "process-queue"
DEFAULT_PORT = 3001

configure_logging()
setup_tracing(SERVICE_NAME)
log_startup_config(
    SERVICE_NAME,
    settings,
    constants={"batch_size": BATCH_SIZE, "chunk_size": CHUNK_SIZE, "chunk_delay_seconds": CHUNK_DELAY_SECONDS},
)
gateway = PushGatewayClient(settings.push_gateway_url, timeout=settings.push_gateway_timeout_seconds)
service = QueueProcessorService(SessionLocal, gateway, service_name=SERVICE_NAME)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Close the shared gateway client with the app lifecycle."""

    yield
    await gateway.close()


app = FastAPI(title="Process Queue Service", lifespan=lifespan)
install_request_middleware(app)
instrument_app(app)


@app.get("/")
def health():
    """Health probe echoing the batching constants."""

    return {
        "service": SERVICE_NAME,
        "status": "healthy",
        "config": {
            "batch_size": service.batch_size,
            "chunk_size": service.chunk_size,
            "chunk_delay_ms": int(service.chunk_delay_seconds * 1000),
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.post("/process-queue")
async def process_queue():
    """Claim pending notifications and deliver them; body is ignored."""

    start = perf_counter()
    logger.info("queue_processing_started")
    try:
        result = await service.process_pending()
    except RelayError as exc:
        logger.error("queue_processing_failed status=%s error=%s details=%s", exc.status_code, exc, exc.details)
        return error_response(exc, start)
    except Exception as exc:
        logger.exception("queue_fatal_error error=%s", exc)
        return error_response(exc, start)

    result["duration_ms"] = elapsed_ms(start)
    logger.info("queue_processing_completed duration_ms=%s", result["duration_ms"])
    return result


@app.api_route("/process-queue", methods=["GET", "HEAD", "PUT", "PATCH", "DELETE", "OPTIONS"])
def process_queue_wrong_method(request: Request):
    start = perf_counter()
    return error_response(MethodNotAllowed(f"Method {request.method} not allowed"), start)


@app.get("/metrics")
def metrics():
    """Prometheus scrape endpoint."""

    return metrics_response()


def run() -> None:
    serve(app, DEFAULT_PORT)


if __name__ == "__main__":
    run()
