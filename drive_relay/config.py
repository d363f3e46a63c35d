import os
from typing import Optional
from pydantic import BaseModel
from dotenv import load_dotenv

DEFAULT_API_BASE = "https://www.googleapis.com/drive/v3"


class RelayConfig(BaseModel):
    api_key: Optional[str] = None
    api_base: str = DEFAULT_API_BASE
    metadata_lookup: bool = True
    chunk_size: int = 64 * 1024
    connect_timeout: float = 5.0
    read_timeout: float = 300.0
    log_level: str = "INFO"

    @property
    def timeout(self) -> tuple[float, float]:
        return (self.connect_timeout, self.read_timeout)


def _env_flag(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return default
    return v.strip().lower() in ("1", "true", "yes", "on")


def load_config() -> RelayConfig:
    """Build the relay config from the environment (.env.local, then .env)."""
    load_dotenv(".env.local")
    load_dotenv()

    return RelayConfig(
        api_key=os.getenv("GOOGLE_API_KEY") or None,
        api_base=(os.getenv("DRIVE_API_BASE") or DEFAULT_API_BASE).rstrip("/"),
        metadata_lookup=_env_flag("RELAY_METADATA_LOOKUP", True),
        chunk_size=int(os.getenv("RELAY_CHUNK_SIZE", 64 * 1024)),
        connect_timeout=float(os.getenv("RELAY_CONNECT_TIMEOUT", 5)),
        read_timeout=float(os.getenv("RELAY_READ_TIMEOUT", 300)),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
