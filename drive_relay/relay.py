import logging
from typing import Dict, Iterator, Optional
from urllib.parse import quote
import requests
from pydantic import ValidationError

from .config import RelayConfig
from .errors import (
    MissingIdentifier,
    MisconfiguredCredential,
    StreamInterrupted,
    UpstreamFetchFailed,
    UpstreamNotFound,
    UpstreamUnavailable,
)
from .models import UpstreamMetadata
from .upstream import DriveClient
from .utils import extract_file_id

logger = logging.getLogger(__name__)

FALLBACK_CONTENT_TYPE = "video/mp4"


class RelayResponse:
    def __init__(self, status_code: int, headers: Dict[str, str], body: Iterator[bytes], upstream=None):
        self.status_code = status_code
        self.headers = headers
        self.body = body
        # kept so the transport layer can release it if the client goes away
        self.upstream = upstream
        # set when upstream died after headers went out; the body is short
        self.interrupted = False

    @property
    def media_type(self) -> str:
        return self.headers.get("Content-Type", FALLBACK_CONTENT_TYPE)

    def close(self) -> None:
        if self.upstream is not None:
            self.upstream.close()


def _is_success(resp: requests.Response) -> bool:
    return 200 <= resp.status_code < 300


def _close_quietly(resp: requests.Response) -> None:
    try:
        resp.close()
    except Exception:
        logger.debug("upstream close failed", exc_info=True)


def _describe(exc: Exception, api_key: Optional[str]) -> str:
    """Exception text safe for logs: requests embeds the full URL, key included."""
    text = f"{type(exc).__name__}: {exc}"
    if api_key:
        text = text.replace(api_key, "***").replace(quote(api_key, safe=""), "***")
    return text


def _relay_body(out: RelayResponse, upstream: requests.Response, chunks: Iterator[bytes], first: bytes, file_id: str) -> Iterator[bytes]:
    """
    Yield the prefetched chunk, then the rest as it arrives.
    Headers are already out by the time this runs, so a read failure just ends the stream.
    """
    sent = 0
    try:
        if first:
            sent += len(first)
            yield first
        for chunk in chunks:
            if chunk:
                sent += len(chunk)
                yield chunk
    except (requests.RequestException, OSError) as e:
        out.interrupted = True
        logger.warning("[%s] upstream dropped mid-stream after %d bytes (%s)", file_id, sent, type(e).__name__)
    finally:
        _close_quietly(upstream)
        logger.debug("[%s] relay finished, %d bytes", file_id, sent)


class StreamRelay:
    """Per-request Drive relay. Holds only read-only config and the HTTP client."""

    def __init__(self, config: RelayConfig, client: Optional[DriveClient] = None):
        self.config = config
        self.client = client or DriveClient(config)

    def handle(self, raw_id: Optional[str], range_spec: Optional[str] = None, method: str = "GET") -> RelayResponse:
        file_id = extract_file_id(raw_id)
        if not file_id:
            raise MissingIdentifier("Missing id")

        api_key = self.config.api_key
        if not api_key:
            logger.error("GOOGLE_API_KEY not configured; refusing request for %s", file_id)
            raise MisconfiguredCredential("GOOGLE_API_KEY not configured")

        range_spec = range_spec or None
        logger.info("[%s] %s range=%s", file_id, method, range_spec or "none")

        metadata = self.resolve_metadata(file_id, api_key) if self.config.metadata_lookup else None
        upstream = self.fetch_media(file_id, api_key, range_spec)

        headers = self.translate_headers(upstream, metadata, range_spec)
        partial = bool(range_spec) and upstream.status_code == 206
        status = 206 if partial else upstream.status_code

        if method.upper() == "HEAD":
            _close_quietly(upstream)
            return RelayResponse(status, headers, iter(()))

        chunks = upstream.iter_content(chunk_size=self.config.chunk_size)
        # Pull the first chunk before committing status/headers so an early failure can still be a 500.
        try:
            first = next(chunks, b"")
        except (requests.RequestException, OSError) as e:
            _close_quietly(upstream)
            logger.error("[%s] upstream body failed before headers were sent: %s", file_id, _describe(e, api_key))
            raise StreamInterrupted(f"Stream error: {type(e).__name__}")

        out = RelayResponse(status, headers, iter(()), upstream=upstream)
        out.body = _relay_body(out, upstream, chunks, first, file_id)
        return out

    def resolve_metadata(self, file_id: str, api_key: str) -> Optional[UpstreamMetadata]:
        try:
            resp = self.client.get_metadata(file_id, api_key)
        except requests.RequestException as e:
            logger.error("[%s] metadata lookup to %s failed: %s", file_id, self.client.file_url(file_id), _describe(e, api_key))
            raise UpstreamUnavailable(f"Metadata lookup failed: {type(e).__name__}")

        if not _is_success(resp):
            text = resp.text
            logger.warning("[%s] metadata lookup returned %d: %s", file_id, resp.status_code, text)
            raise UpstreamNotFound(f"File not found: {text}", status_code=resp.status_code)

        try:
            body = resp.json()
        except ValueError:
            # metadata only picks the Content-Type; the media fetch decides the rest
            logger.warning("[%s] unreadable metadata body, ignoring", file_id)
            return None
        try:
            metadata = UpstreamMetadata.model_validate(body)
        except ValidationError as e:
            mime = body.get("mimeType") if isinstance(body, dict) else None
            logger.warning("[%s] metadata failed validation (%d errors), keeping mimeType=%s", file_id, e.error_count(), mime)
            return UpstreamMetadata(mimeType=mime) if isinstance(mime, str) else None
        logger.info("[%s] metadata name=%r mimeType=%s size=%s", file_id, metadata.name, metadata.mimeType, metadata.size)
        return metadata

    def fetch_media(self, file_id: str, api_key: str, range_spec: Optional[str]) -> requests.Response:
        try:
            resp = self.client.open_media(file_id, api_key, range_spec)
        except requests.RequestException as e:
            logger.error("[%s] media fetch from %s failed: %s", file_id, self.client.file_url(file_id), _describe(e, api_key))
            raise UpstreamUnavailable(f"Upstream fetch failed: {type(e).__name__}")

        if not _is_success(resp):
            try:
                text = resp.text
            finally:
                _close_quietly(resp)
            logger.warning("[%s] media fetch returned %d: %s", file_id, resp.status_code, text)
            raise UpstreamFetchFailed(f"Download failed: {text}", status_code=resp.status_code)
        return resp

    def translate_headers(self, upstream: requests.Response, metadata: Optional[UpstreamMetadata], range_spec: Optional[str]) -> Dict[str, str]:
        content_type = (
            (metadata.mimeType if metadata else None)
            or upstream.headers.get("Content-Type")
            or FALLBACK_CONTENT_TYPE
        )
        headers = {
            "Content-Type": content_type,
            "Accept-Ranges": "bytes",
        }
        length = upstream.headers.get("Content-Length")
        if length:
            headers["Content-Length"] = length
        if range_spec and upstream.status_code == 206:
            content_range = upstream.headers.get("Content-Range")
            if content_range:
                headers["Content-Range"] = content_range
        return headers
