import logging
from typing import Optional
import requests
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

# Use absolute package imports so uvicorn can resolve the module reliably.
from drive_relay.config import RelayConfig, load_config
from drive_relay.errors import RelayError
from drive_relay.models import ErrorBody
from drive_relay.relay import StreamRelay
from drive_relay.upstream import DriveClient
from drive_relay.utils import redact_key
from drive_relay.routes.core import router as core_router

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    logging.getLogger("drive_relay").setLevel(level.upper())
    # urllib3 logs request URLs, and ours carry the API key as a query param
    logging.getLogger("urllib3").setLevel(logging.WARNING)


async def _relay_error_handler(request: Request, exc: RelayError):
    # Errors raised before any upstream call stay plain text, like the player expects.
    if not exc.as_json:
        return PlainTextResponse(exc.message, status_code=exc.status_code)
    return JSONResponse(ErrorBody(error=exc.message).model_dump(), status_code=exc.status_code)


async def _unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Handler error on %s", request.url.path)
    return JSONResponse(ErrorBody(error="Internal server error").model_dump(), status_code=500)


def create_app(config: Optional[RelayConfig] = None, session: Optional[requests.Session] = None) -> FastAPI:
    if config is None:
        config = load_config()
    configure_logging(config.log_level)

    app = FastAPI(title="Drive Relay")
    app.state.relay = StreamRelay(config, DriveClient(config, session))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "HEAD"],
        allow_headers=["Range"],
        expose_headers=["Content-Range", "Content-Length", "Accept-Ranges"],
    )
    app.add_exception_handler(RelayError, _relay_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
    app.include_router(core_router)

    logger.info("API key configured: %s (%s)", "yes" if config.api_key else "no", redact_key(config.api_key))
    logger.info("Upstream: %s, metadata lookup %s", config.api_base, "on" if config.metadata_lookup else "off")
    return app


app = create_app()
