import logging
from typing import Optional
from urllib.parse import quote
import requests

from . import __version__
from .config import RelayConfig

logger = logging.getLogger(__name__)

METADATA_FIELDS = "id,name,mimeType,size"
USER_AGENT = f"drive-relay/{__version__}"


class DriveClient:
    """
    Thin wrapper over the Drive v3 files endpoint.
    Both calls return the raw requests.Response; status handling is the caller's job.
    """

    def __init__(self, config: RelayConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

    def file_url(self, file_id: str) -> str:
        return f"{self.config.api_base.rstrip('/')}/files/{quote(file_id, safe='')}"

    def get_metadata(self, file_id: str, api_key: str) -> requests.Response:
        url = self.file_url(file_id)
        logger.debug("metadata lookup %s", url)
        return self.session.get(
            url,
            params={"fields": METADATA_FIELDS, "key": api_key},
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
            timeout=self.config.timeout,
        )

    def open_media(self, file_id: str, api_key: str, range_spec: Optional[str] = None) -> requests.Response:
        url = self.file_url(file_id)
        # Forward only what the client asked. Do not fabricate ranges.
        # identity keeps upstream Content-Length equal to the bytes relayed
        headers = {"User-Agent": USER_AGENT, "Accept": "*/*", "Accept-Encoding": "identity"}
        if range_spec:
            headers["Range"] = range_spec
        logger.debug("media fetch %s range=%s", url, range_spec or "none")
        return self.session.get(
            url,
            params={"alt": "media", "key": api_key},
            headers=headers,
            timeout=self.config.timeout,
            stream=True,
        )
