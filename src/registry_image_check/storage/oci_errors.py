"""
OCI registry error classes.

Provides a clear taxonomy of errors that can occur while talking to a
registry. HTTP status codes and the registry's own error codes are mapped
onto this hierarchy so callers can tell a deleted manifest apart from a
failing registry without inspecting responses themselves.
"""
from __future__ import annotations

import json
from typing import List, Optional

import httpx

# Registry error code for "this exact reference does not exist"
MANIFEST_UNKNOWN = "MANIFEST_UNKNOWN"


class OciError(Exception):
    """
    Base class for all OCI registry errors.

    Every failure of a manifest fetch surfaces as one of these, after the
    retrying transport has given up on transient conditions.
    """

    def __init__(self, message: str, codes: Optional[List[str]] = None):
        super().__init__(message)
        self.codes = list(codes or [])


class OciAuthError(OciError):
    """
    Authentication or authorization error.

    Raised when:
    - HTTP 401 Unauthorized (invalid or missing credentials)
    - HTTP 403 Forbidden (insufficient permissions)
    - The token endpoint of a Bearer challenge rejects the credentials
    """
    pass


class OciNotFound(OciError):
    """
    Resource not found in registry.

    Raised for HTTP 404 responses that do not carry MANIFEST_UNKNOWN,
    e.g. NAME_UNKNOWN when the repository itself is missing.
    """
    pass


class OciManifestUnknown(OciNotFound):
    """
    The registry reported MANIFEST_UNKNOWN for the requested reference.

    For a digest reference this means the manifest was deleted or
    garbage-collected.
    """
    pass


class OciDigestMismatch(OciError):
    """
    Content digest validation failed.

    Raised when a manifest fetched by digest reports or hashes to a
    different digest than the one requested.
    """

    def __init__(self, message: str, expected: Optional[str] = None, actual: Optional[str] = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class OciRateLimited(OciError):
    """
    Rate limit exceeded.

    Raised when:
    - HTTP 429 Too Many Requests persists after all retry attempts
    """
    pass


class OciTransportError(OciError):
    """
    Network failure or server error.

    Raised when:
    - Connection, TLS or timeout errors persist after all retry attempts
    - HTTP 5xx persists after all retry attempts
    """
    pass


def registry_error_codes(response: httpx.Response) -> List[str]:
    """
    Extract error codes from a registry error body.

    Distribution registries answer failures with
    ``{"errors": [{"code": "...", "message": "..."}]}``. Bodies that are
    missing or not in that shape yield an empty list.
    """
    try:
        body = json.loads(response.content or b"null")
    except (json.JSONDecodeError, UnicodeDecodeError):
        return []

    if not isinstance(body, dict):
        return []

    codes = []
    for entry in body.get("errors") or []:
        if isinstance(entry, dict) and isinstance(entry.get("code"), str):
            codes.append(entry["code"])
    return codes


def error_for_response(response: httpx.Response, target: str) -> OciError:
    """
    Map a failed registry response onto the OCI error hierarchy.

    Args:
        response: Final (post-retry) registry response with a 4xx/5xx status
        target: Human-readable reference used in the error message

    Returns:
        The matching OciError subclass instance
    """
    status = response.status_code
    codes = registry_error_codes(response)
    detail = f" ({', '.join(codes)})" if codes else ""

    if status in (401, 403):
        return OciAuthError(f"Authentication failed for {target}: HTTP {status}{detail}", codes)
    if status == 404:
        if MANIFEST_UNKNOWN in codes:
            return OciManifestUnknown(f"Manifest unknown: {target}", codes)
        return OciNotFound(f"Not found: {target}: HTTP 404{detail}", codes)
    if status == 429:
        return OciRateLimited(f"Rate limited fetching {target}{detail}", codes)
    if status >= 500:
        return OciTransportError(f"Registry error {status} for {target}{detail}", codes)
    return OciError(f"Registry error {status} for {target}{detail}", codes)


__all__ = [
    "MANIFEST_UNKNOWN",
    "OciError",
    "OciAuthError",
    "OciNotFound",
    "OciManifestUnknown",
    "OciDigestMismatch",
    "OciRateLimited",
    "OciTransportError",
    "registry_error_codes",
    "error_for_response",
]
