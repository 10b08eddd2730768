"""Chat webhook service: Chatwoot events in, push notifications or consultation messages out."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from time import perf_counter

from fastapi import FastAPI, Request

from pushrelay.common.config import settings
from pushrelay.common.db import SessionLocal
from pushrelay.common.errors import InvalidPayload, MethodNotAllowed, RelayError
from pushrelay.common.http import elapsed_ms, error_response, install_request_middleware
from pushrelay.common.logging import configure_logging, logger
from pushrelay.common.metrics import metrics_response
from pushrelay.common.push import PushGatewayClient
from pushrelay.common.server import serve
from pushrelay.common.startup import log_startup_config
from pushrelay.common.tracing import instrument_app, setup_tracing
from pushrelay.services.chat_webhook.service import ChatWebhookService

SERVICE_NAME = "chatwoot-webhook"
DEFAULT_PORT = 3000

configure_logging()
setup_tracing(SERVICE_NAME)
log_startup_config(SERVICE_NAME, settings)
gateway = PushGatewayClient(settings.push_gateway_url, timeout=settings.push_gateway_timeout_seconds)
service = ChatWebhookService(
    SessionLocal,
    gateway,
    payload_format=settings.webhook_payload_format,
    end_user_sender_types=settings.end_user_sender_types(),
    service_name=SERVICE_NAME,
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Close the shared gateway client with the app lifecycle."""

    yield
    await gateway.close()


app = FastAPI(title="Chatwoot Webhook Service", lifespan=lifespan)
install_request_middleware(app)
instrument_app(app)


@app.get("/")
def health():
    """Health probe echoing the webhook configuration."""

    return {
        "service": SERVICE_NAME,
        "status": "healthy",
        "config": {
            "payload_format": service.payload_format,
            "end_user_sender_types": sorted(service.end_user_sender_types),
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.post("/chatwoot-webhook")
async def chatwoot_webhook(request: Request):
    """Handle one Chatwoot event; every response carries `duration_ms`."""

    start = perf_counter()
    try:
        try:
            payload = await request.json()
        except ValueError as exc:
            raise InvalidPayload("Webhook body is not valid JSON") from exc
        logger.info("webhook_received payload=%s", payload)
        result = await service.handle_event(payload)
    except RelayError as exc:
        logger.error("webhook_failed status=%s error=%s", exc.status_code, exc)
        return error_response(exc, start)
    except Exception as exc:
        logger.exception("webhook_fatal_error error=%s", exc)
        return error_response(exc, start)

    result["duration_ms"] = elapsed_ms(start)
    logger.info("webhook_completed duration_ms=%s", result["duration_ms"])
    return result


@app.api_route("/chatwoot-webhook", methods=["GET", "HEAD", "PUT", "PATCH", "DELETE", "OPTIONS"])
def chatwoot_webhook_wrong_method(request: Request):
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
