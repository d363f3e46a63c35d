import re
from typing import Optional

# First match wins: /file/d/{id}, then ?id= / &id=, then /open?id=
_ID_PATTERNS = (
    re.compile(r"/file/d/([A-Za-z0-9_-]+)"),
    re.compile(r"[?&]id=([A-Za-z0-9_-]+)"),
    re.compile(r"/open\?id=([A-Za-z0-9_-]+)"),
)


def extract_file_id(raw: Optional[str]) -> str:
    """Pull a Drive file id out of a share URL, or return the trimmed input as-is."""
    if not raw:
        return ""
    raw = raw.strip()
    for pat in _ID_PATTERNS:
        m = pat.search(raw)
        if m:
            return m.group(1)
    return raw


def redact_key(key: Optional[str], keep: int = 8) -> str:
    """Short prefix of a credential for startup logs."""
    if not key:
        return "-"
    return f"{key[:keep]}..."
