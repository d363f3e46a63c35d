from typing import Optional
from pydantic import BaseModel, ConfigDict


class UpstreamMetadata(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    name: Optional[str] = None
    mimeType: Optional[str] = None
    size: Optional[int] = None   # Drive sends this as a decimal string


class ErrorBody(BaseModel):
    error: str


class Health(BaseModel):
    ok: bool = True
    credential_configured: bool
