"""
Security utilities for the Presigned URL Refresher service.

A presigned URL is a bearer credential: anybody holding the full URL can read
the object until it expires. These helpers keep the signature out of logs and
reject object references that cannot be signed.
"""

import urllib.parse
from typing import Any

from .exceptions import InvalidObjectKeyError

REDACTED = "REDACTED"

# Query parameters that carry the signature or the signing identity.
_SENSITIVE_QUERY_PARAMS: frozenset[str] = frozenset(
    {
        "x-amz-signature",
        "x-amz-credential",
        "x-amz-security-token",
        "signature",
        "awsaccesskeyid",
    }
)


def redact_presigned_url(url: str) -> str:
    """
    Returns *url* with every signing-related query parameter value replaced,
    so the result can be logged without granting access to the object.

    The path and the non-sensitive parameters (expiry, algorithm, date) are
    kept because they are useful when debugging expired links.
    """
    if not url:
        return url

    parts = urllib.parse.urlsplit(url)
    if not parts.query:
        return url

    query = [
        (name, REDACTED if name.lower() in _SENSITIVE_QUERY_PARAMS else value)
        for name, value in urllib.parse.parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urllib.parse.urlunsplit(
        parts._replace(query=urllib.parse.urlencode(query))
    )


def validate_object_key(key: Any) -> str:
    """
    Returns *key* unchanged when it can be used as an S3 object key.

    Raises:
        InvalidObjectKeyError: If the key is missing, not a string, or empty.
    """
    if not isinstance(key, str) or not key:
        raise InvalidObjectKeyError(key=key)
    return key
