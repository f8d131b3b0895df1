from __future__ import annotations

import re

_URL_USERINFO_RE = re.compile(r"(?i)\b(https?://)([^/\s:@]+):([^/\s@]+)@")
_CREDENTIAL_QUERY_RE = re.compile(r"(?i)([?&](?:api[_-]?key|token|access[_-]?token|password|secret)=)([^&\s'\"]+)")
_CREDENTIAL_HEADER_RE = re.compile(r"(?i)\b(authorization\s*[:=]\s*(?:bearer|basic)\s+)([^\s,;'\"]+)")


def redact_secrets(message: str) -> str:
    """Mask credentials that httpx error messages may echo back (URLs, headers)."""
    redacted = _URL_USERINFO_RE.sub(r"\1\2:[REDACTED]@", message)
    redacted = _CREDENTIAL_QUERY_RE.sub(r"\1[REDACTED]", redacted)
    return _CREDENTIAL_HEADER_RE.sub(r"\1[REDACTED]", redacted)
