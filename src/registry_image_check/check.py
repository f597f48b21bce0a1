"""
Version discovery for the registry image check.

Implements check(): resolve the source's reference and credentials, fetch the
current digest of the tracked tag, and reconcile it with the last known
version. The functions here raise on failure and never log above DEBUG or
exit; the CLI driver owns reporting.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from .credentials import Credentials, TokenExchange, resolve_credentials
from .models import CheckRequest, Version
from .storage.fetcher import DigestFetcher
from .storage.oci_errors import OciManifestUnknown
from .storage.reference import InvalidReferenceError, Reference, parse_reference

__all__ = ["check", "reconcile"]

logger = logging.getLogger(__name__)


def check(request: CheckRequest, fetcher: DigestFetcher,
          exchange: Optional[TokenExchange] = None) -> List[Version]:
    """
    Run one check and return the versions to report, oldest first.

    Args:
        request: Validated check request
        fetcher: Digest fetcher for registry calls
        exchange: Token exchange for sources with ``ecr`` set

    Returns:
        Non-empty list of versions, oldest first

    Raises:
        InvalidReferenceError: If the repository/tag or prior digest is malformed
        CredentialExchangeError: If the token exchange fails
        OciError: If a registry call fails (other than a deleted prior version)
    """
    source = request.source

    # Reject a malformed coordinate before any network call
    try:
        parse_reference(source.name())
    except InvalidReferenceError as e:
        raise InvalidReferenceError(f"could not resolve repository/tag reference: {e}") from e

    resolved = resolve_credentials(source, exchange)
    reference = parse_reference(resolved.source.name())

    current_digest = fetcher.fetch(reference, resolved.credentials)
    return reconcile(request, current_digest, fetcher, resolved.credentials, reference=reference)


def reconcile(request: CheckRequest, current_digest: str, fetcher: DigestFetcher,
              credentials: Credentials, *, reference: Reference) -> List[Version]:
    """
    Decide which versions to report given the current digest.

    The prior version is kept, ahead of the current one, when it differs
    from the current digest and still resolves on the registry. A prior
    version the registry reports as MANIFEST_UNKNOWN has been deleted and
    is dropped.

    Args:
        request: Check request carrying the prior version, if any
        current_digest: Digest the tracked tag resolves to now
        fetcher: Digest fetcher used to probe the prior digest
        credentials: Registry credentials
        reference: Reference of the tracked tag; the prior digest is pinned
            onto its repository

    Returns:
        Versions oldest first, always ending with the current digest
    """
    current = Version(digest=current_digest)
    prior = request.version

    if prior is None or prior.digest == current_digest:
        return [current]

    try:
        pinned = reference.with_digest(prior.digest)
    except InvalidReferenceError as e:
        raise InvalidReferenceError(f"could not resolve repository/digest reference: {e}") from e

    try:
        fetcher.fetch(pinned, credentials)
    except OciManifestUnknown:
        logger.debug(f"Prior version {prior.digest} no longer exists, dropping it")
        return [current]

    return [prior, current]
