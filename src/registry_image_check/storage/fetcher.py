"""
Digest fetching over the registry HTTP client.

Defines the DigestFetcher protocol consumed by the check and its registry
implementation, which keeps one RegistryHTTP client per registry and
credentials for the life of an invocation.
"""
from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol, Tuple, runtime_checkable

import httpx

from ..credentials import Credentials
from ..settings import Settings
from .reference import Reference
from .registry_http import RegistryHTTP

__all__ = ["DigestFetcher", "RegistryDigestFetcher"]

logger = logging.getLogger(__name__)


@runtime_checkable
class DigestFetcher(Protocol):
    """Protocol for resolving a reference to its current manifest digest."""

    def fetch(self, reference: Reference, credentials: Credentials) -> str:
        """
        Get the digest of the manifest a reference resolves to.

        Args:
            reference: Tag or digest reference
            credentials: Registry credentials (anonymous if empty)

        Returns:
            Manifest digest (algorithm:hex)

        Raises:
            OciManifestUnknown: If the registry reports MANIFEST_UNKNOWN
            OciError: For any other registry or network failure
        """
        ...


class RegistryDigestFetcher:
    """DigestFetcher backed by the OCI Distribution API."""

    def __init__(self, settings: Optional[Settings] = None, *,
                 transport: Optional[httpx.BaseTransport] = None, sleep=None):
        """
        Args:
            settings: HTTP configuration shared by all registry clients
            transport: Underlying transport for every client (tests pass an
                httpx.MockTransport)
            sleep: Sleep function for retry backoff
        """
        self._settings = settings or Settings()
        self._transport = transport
        self._sleep = sleep
        self._clients: Dict[Tuple[str, Credentials], RegistryHTTP] = {}

    def fetch(self, reference: Reference, credentials: Credentials) -> str:
        client = self._client_for(reference.registry, credentials)
        logger.debug(f"Fetching digest of {reference}")
        digest = client.head_manifest(reference.repository, reference.identifier)
        logger.debug(f"{reference} resolved to {digest}")
        return digest

    def _client_for(self, registry: str, credentials: Credentials) -> RegistryHTTP:
        key = (registry, credentials)
        if key not in self._clients:
            self._clients[key] = RegistryHTTP(
                registry,
                credentials,
                settings=self._settings,
                transport=self._transport,
                sleep=self._sleep,
            )
        return self._clients[key]

    def close(self) -> None:
        for client in self._clients.values():
            client.close()
        self._clients.clear()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
