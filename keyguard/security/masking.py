"""Masking helpers for secrets that end up in logs and responses."""

from collections.abc import Iterable, Mapping

MASK = "****"
VISIBLE_CHARS = 4  # shown at each end of a long key
MIN_PARTIAL_LENGTH = 16  # shorter keys are masked completely
REDACTED = "***masked***"

# Header names whose values are always credentials
SENSITIVE_HEADERS = frozenset({
    "authorization",
    "proxy-authorization",
    "x-api-key",
    "x-management-key",
    "cookie",
    "set-cookie",
})


def mask_key(api_key: str | None) -> str:
    """Mask an API key, revealing at most 4 leading and 4 trailing chars.

    Keys shorter than MIN_PARTIAL_LENGTH are masked completely, so at least
    half of any key stays hidden.
    """
    if not api_key:
        return ""
    if len(api_key) < MIN_PARTIAL_LENGTH:
        return MASK
    return f"{api_key[:VISIBLE_CHARS]}{MASK}{api_key[-VISIBLE_CHARS:]}"


def redact_headers(
    headers: Mapping[str, str] | Iterable[tuple[str, str]],
    secrets: Iterable[str] = (),
) -> dict[str, str]:
    """Return a copy of request headers that is safe to log.

    Known credential headers are replaced by a mask, and so is any header
    whose value (or bearer token) equals one of ``secrets``.
    """
    items = headers.items() if isinstance(headers, Mapping) else headers
    secret_set = {s for s in secrets if s}

    redacted: dict[str, str] = {}
    for name, value in items:
        if name.lower() in SENSITIVE_HEADERS:
            redacted[name] = REDACTED
        else:
            redacted[name] = redact_secret(value, secret_set)
    return redacted


def redact_secret(value: str, secrets: Iterable[str]) -> str:
    """Return value, or a mask when it (or its bearer token) is one of secrets.

    For client-supplied values such as a declared device ID, which may carry
    the caller's credential.
    """
    secret_set = {s for s in secrets if s}
    token = value.strip()
    if token.lower().startswith("bearer "):
        token = token[7:].strip()
    if value in secret_set or token in secret_set:
        return REDACTED
    return value
