import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response, StreamingResponse
from starlette.background import BackgroundTask
from starlette.types import Send

from ..models import Health
from ..relay import RelayResponse, StreamRelay

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["core"])


class RelayStreamingResponse(StreamingResponse):
    """
    StreamingResponse that leaves a truncated body unterminated.
    If upstream dies mid-body we never send the closing message, so the server
    drops the connection and the player sees a short read instead of a body
    that contradicts the Content-Length we already sent.
    """

    def __init__(self, relayed: RelayResponse):
        # close() also runs when the client disconnects before the body is drained
        super().__init__(
            relayed.body,
            status_code=relayed.status_code,
            headers=relayed.headers,
            media_type=relayed.media_type,
            background=BackgroundTask(relayed.close),
        )
        self.relayed = relayed

    async def stream_response(self, send: Send) -> None:
        await send({"type": "http.response.start", "status": self.status_code, "headers": self.raw_headers})
        async for chunk in self.body_iterator:
            if not isinstance(chunk, (bytes, memoryview)):
                chunk = chunk.encode(self.charset)
            await send({"type": "http.response.body", "body": chunk, "more_body": True})
        if self.relayed.interrupted:
            logger.warning("relayed body cut short; leaving response open so the connection is dropped")
            return
        await send({"type": "http.response.body", "body": b"", "more_body": False})


def get_relay(request: Request) -> StreamRelay:
    return request.app.state.relay


@router.get("/health", response_model=Health)
def health(relay: StreamRelay = Depends(get_relay)):
    return Health(credential_configured=bool(relay.config.api_key))


@router.api_route("/stream", methods=["GET", "HEAD"])
def stream(request: Request, file_id: Optional[str] = Query(None, alias="id"), relay: StreamRelay = Depends(get_relay)):
    # Range stays opaque: whatever the player sent goes upstream untouched.
    out = relay.handle(file_id, request.headers.get("range"), request.method)

    if request.method == "HEAD":
        return Response(status_code=out.status_code, headers=out.headers, media_type=out.media_type)

    return RelayStreamingResponse(out)
