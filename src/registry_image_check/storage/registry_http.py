"""
Registry HTTP Client for OCI Distribution API.

Provides the manifest operations the check needs, with the Docker Registry v2
auth flow (Bearer token and Basic challenges) on top of the retrying
transport.
"""
from __future__ import annotations

import base64
import hashlib
import json
import logging
import re
import time
from typing import Dict, Optional, Tuple
from urllib.parse import urljoin

import httpx

from ..credentials import Credentials
from ..settings import Settings
from .oci_errors import (
    OciAuthError,
    OciDigestMismatch,
    OciError,
    OciTransportError,
    error_for_response,
)
from .transport import RetryTransport

__all__ = ["ACCEPTED_MANIFEST_TYPES", "DEFAULT_PLATFORM", "INDEX_MEDIA_TYPES", "RegistryHTTP"]

logger = logging.getLogger(__name__)

# Manifest media types we accept (in order of preference)
ACCEPTED_MANIFEST_TYPES = [
    "application/vnd.oci.image.manifest.v1+json",
    "application/vnd.oci.image.index.v1+json",
    "application/vnd.docker.distribution.manifest.v2+json",
    "application/vnd.docker.distribution.manifest.list.v2+json",
    "application/vnd.docker.distribution.manifest.v1+prettyjws",
]

# Multi-platform manifests, resolved to one platform's image manifest
INDEX_MEDIA_TYPES = {
    "application/vnd.oci.image.index.v1+json",
    "application/vnd.docker.distribution.manifest.list.v2+json",
}

# Platform picked from an index, as (os, architecture)
DEFAULT_PLATFORM = ("linux", "amd64")

USER_AGENT = "registry-image-check/0.1.0"


class RegistryHTTP:
    """
    HTTP client for OCI Distribution API manifest operations.

    One client talks to one registry with one set of credentials. Every
    request, token requests included, goes through the retrying transport.
    """

    def __init__(self, registry: str, credentials: Optional[Credentials] = None, *,
                 settings: Optional[Settings] = None,
                 transport: Optional[httpx.BaseTransport] = None,
                 sleep=None):
        """
        Initialize registry HTTP client.

        Args:
            registry: Registry hostname (e.g., "localhost:5000", "ghcr.io")
            credentials: Credentials for auth challenges (anonymous if empty)
            settings: Timeout, retry and insecure-registry configuration
            transport: Underlying transport (defaults to httpx.HTTPTransport)
            sleep: Sleep function for retry backoff (injectable for tests)
        """
        self.registry = registry
        self.credentials = credentials or Credentials()
        self.settings = settings or Settings()
        insecure = self.settings.is_insecure(registry)

        # Determine base URL
        if registry.startswith("http"):
            self.base_url = registry
        elif insecure:
            self.base_url = f"http://{registry}"
        else:
            self.base_url = f"https://{registry}"

        inner = transport or httpx.HTTPTransport(verify=not insecure)
        timeout = self.settings.http_timeout_s

        self.client = httpx.Client(
            transport=RetryTransport.from_settings(inner, self.settings, sleep=sleep),
            timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )

        # Token cache: {scope: (token, expiry_timestamp)}
        self._token_cache: Dict[str, Tuple[str, float]] = {}
        # Set once the registry asked for Basic auth
        self._basic = False

    def head_manifest(self, repository: str, ref: str) -> str:
        """
        Get the digest of the image manifest a reference resolves to.

        Falls back to a GET when HEAD cannot answer: registries that omit
        Docker-Content-Digest on HEAD, and 404s, whose error code only a
        GET body can carry. An index or manifest list is resolved to its
        linux/amd64 entry, so the digest returned is always an image
        manifest's.

        Args:
            repository: Repository path within the registry
            ref: Tag or digest reference

        Returns:
            Image manifest digest (algorithm:hex)

        Raises:
            OciManifestUnknown: If the registry reports MANIFEST_UNKNOWN
            OciError: For any other failure, including an index without
                a linux/amd64 entry
        """
        target = self._target(repository, ref)
        response = self._request("HEAD", self._manifest_path(repository, ref))
        content = None

        if response.status_code == 404 or (
            response.is_success and not response.headers.get("Docker-Content-Digest")
        ):
            logger.debug(f"HEAD {target} inconclusive (HTTP {response.status_code}), falling back to GET")
            digest, content, media_type = self._fetch_manifest(repository, ref)
        elif not response.is_success:
            raise error_for_response(response, target)
        else:
            digest = response.headers["Docker-Content-Digest"]
            self._verify_digest(ref, digest, target)
            media_type = _media_type(response)

        if media_type not in INDEX_MEDIA_TYPES:
            return digest

        if content is None:
            _, content, _ = self._fetch_manifest(repository, digest)
        child = self._platform_digest(content, target)
        logger.debug(f"{target} is a multi-platform index, resolved to {child}")
        return child

    def get_manifest(self, repository: str, ref: str) -> Tuple[str, bytes]:
        """
        Fetch a manifest and its digest.

        The digest comes from Docker-Content-Digest when present, otherwise
        it is the sha256 of the manifest bytes. Indexes are returned as-is.

        Returns:
            (digest, manifest_bytes)
        """
        digest, content, _ = self._fetch_manifest(repository, ref)
        return digest, content

    def _fetch_manifest(self, repository: str, ref: str) -> Tuple[str, bytes, str]:
        target = self._target(repository, ref)
        response = self._request("GET", self._manifest_path(repository, ref))

        if not response.is_success:
            raise error_for_response(response, target)

        content = response.content
        digest = response.headers.get("Docker-Content-Digest")
        if not digest:
            digest = f"sha256:{hashlib.sha256(content).hexdigest()}"

        self._verify_digest(ref, digest, target)

        media_type = _media_type(response)
        if not media_type:
            # Older registries only carry the type in the body
            try:
                media_type = json.loads(content).get("mediaType") or ""
            except (ValueError, AttributeError):
                media_type = ""
        return digest, content, media_type

    @staticmethod
    def _platform_digest(content: bytes, target: str) -> str:
        """Pick the default platform's manifest digest out of an index."""
        try:
            index = json.loads(content)
        except ValueError as e:
            raise OciError(f"Invalid manifest index for {target}: {e}") from e
        if not isinstance(index, dict):
            raise OciError(f"Invalid manifest index for {target}: not a JSON object")

        for entry in index.get("manifests") or []:
            platform = entry.get("platform") or {}
            if (platform.get("os"), platform.get("architecture")) == DEFAULT_PLATFORM and entry.get("digest"):
                return entry["digest"]

        raise OciError(f"No {'/'.join(DEFAULT_PLATFORM)} manifest in index for {target}")

    def _request(self, method: str, path: str) -> httpx.Response:
        """
        Make HTTP request with the registry auth challenge flow.

        Handles 401 responses by:
        1. Parsing WWW-Authenticate for a Bearer or Basic challenge
        2. Bearer: exchanging credentials (or nothing, anonymously) for a
           token at the realm, cached per service/scope
        3. Basic: sending the credentials directly
        4. Repeating the original request once with the Authorization header

        Returns the final response without raising for its status.
        """
        url = urljoin(self.base_url, path)
        headers = {"Accept": ", ".join(ACCEPTED_MANIFEST_TYPES)}
        scope = self._scope_for(path)

        cached = self._cached_authorization(scope)
        if cached:
            headers["Authorization"] = cached

        response = self._send(method, url, headers)

        if response.status_code == 401:
            challenge = response.headers.get("WWW-Authenticate", "")
            authorization = self._answer_challenge(challenge, scope)
            if authorization:
                headers["Authorization"] = authorization
                response = self._send(method, url, headers)

        return response

    def _send(self, method: str, url: str, headers: dict) -> httpx.Response:
        try:
            return self.client.request(method, url, headers=headers)
        except httpx.RequestError as e:
            raise OciTransportError(f"Network error during {method} {url}: {e}") from e

    def _answer_challenge(self, challenge: str, scope: str) -> Optional[str]:
        """Build an Authorization header value for a WWW-Authenticate challenge."""
        scheme = challenge.split(" ", 1)[0].lower()

        if scheme == "bearer":
            token = self._handle_bearer_auth(challenge, scope)
            return f"Bearer {token}" if token else None

        if scheme == "basic" and not self.credentials.anonymous:
            self._basic = True
            return self._basic_header()

        return None

    def _handle_bearer_auth(self, www_authenticate: str, default_scope: str) -> Optional[str]:
        """
        Handle Bearer token authentication flow.

        Parses WWW-Authenticate header, then asks the realm for a token,
        presenting basic credentials when there are any.

        Raises:
            OciAuthError: If the token endpoint rejects the credentials
            OciError: If the token endpoint fails otherwise
        """
        # Format: Bearer realm="...",service="...",scope="..."
        bearer_params = dict(re.findall(r'(\w+)="([^"]*)"', www_authenticate))

        realm = bearer_params.get("realm")
        service = bearer_params.get("service")
        scope = bearer_params.get("scope") or default_scope

        if not realm:
            return None

        params = {"scope": scope}
        if service:
            params["service"] = service

        auth = None
        if not self.credentials.anonymous:
            auth = (self.credentials.username, self.credentials.password)

        logger.debug(f"Requesting token from {realm} for {scope}")
        try:
            token_response = self.client.get(realm, params=params, auth=auth)
        except httpx.RequestError as e:
            raise OciTransportError(f"Network error requesting token from {realm}: {e}") from e

        if token_response.status_code in (401, 403):
            raise OciAuthError(f"Token request to {realm} rejected: HTTP {token_response.status_code}")
        if not token_response.is_success:
            raise OciError(f"Token request to {realm} failed: HTTP {token_response.status_code}")

        try:
            token_data = token_response.json()
        except ValueError as e:
            raise OciError(f"Invalid token response from {realm}: {e}") from e

        token = token_data.get("token") or token_data.get("access_token")
        if not token:
            raise OciError(f"Token response from {realm} carried no token")

        # Cache with expiry (60s when the registry omits expires_in)
        expires_in = token_data.get("expires_in") or 60
        self._token_cache[default_scope] = (token, time.time() + expires_in)
        return token

    def _cached_authorization(self, scope: str) -> Optional[str]:
        if self._basic:
            return self._basic_header()
        if scope in self._token_cache:
            token, expiry = self._token_cache[scope]
            if time.time() < expiry - 10:  # 10s buffer before expiry
                return f"Bearer {token}"
        return None

    def _basic_header(self) -> str:
        pair = f"{self.credentials.username}:{self.credentials.password}".encode()
        return f"Basic {base64.b64encode(pair).decode()}"

    @staticmethod
    def _verify_digest(ref: str, digest: str, target: str) -> None:
        """Ensure a manifest fetched by digest is the one requested."""
        if ":" in ref and ref != digest:
            raise OciDigestMismatch(
                f"Registry returned digest {digest} for {target}",
                expected=ref,
                actual=digest,
            )

    @staticmethod
    def _manifest_path(repository: str, ref: str) -> str:
        return f"/v2/{repository}/manifests/{ref}"

    @staticmethod
    def _scope_for(path: str) -> str:
        repository = path[len("/v2/"):].split("/manifests/", 1)[0]
        return f"repository:{repository}:pull"

    def _target(self, repository: str, ref: str) -> str:
        separator = "@" if ":" in ref else ":"
        return f"{self.registry}/{repository}{separator}{ref}"

    def close(self):
        """Close HTTP client."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def _media_type(response: httpx.Response) -> str:
    """Content-Type of a manifest response without parameters."""
    return response.headers.get("Content-Type", "").split(";", 1)[0].strip()
