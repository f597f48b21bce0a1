"""
Registry reference parsing.

Turns textual image coordinates ("busybox", "library/busybox:1.36",
"ghcr.io/org/app@sha256:...") into structured references addressing a
manifest by tag or by digest. Validation is weak: a registry host may be
omitted, in which case Docker Hub is assumed.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Optional

__all__ = [
    "DEFAULT_REGISTRY",
    "DEFAULT_TAG",
    "InvalidReferenceError",
    "Reference",
    "parse_reference",
    "validate_digest",
]

DEFAULT_REGISTRY = "index.docker.io"
DEFAULT_TAG = "latest"

_DOCKER_HUB_ALIASES = {"docker.io", "index.docker.io", "registry-1.docker.io"}

_COMPONENT_RE = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$")
_TAG_RE = re.compile(r"^[\w][\w.-]{0,127}$", re.ASCII)
_DIGEST_RE = re.compile(r"^[a-z0-9]+(?:[+._-][a-z0-9]+)*:[a-zA-Z0-9=_-]{32,}$")
_REGISTRY_RE = re.compile(r"^[a-zA-Z0-9.-]+(?::[0-9]+)?$")


class InvalidReferenceError(ValueError):
    """Raised when an image coordinate or digest cannot be parsed."""
    pass


@dataclass(frozen=True)
class Reference:
    """
    A registry coordinate resolving to one manifest.

    Attributes:
        registry: Registry host, with optional port
        repository: Repository path within the registry
        tag: Mutable tag, set for tag references
        digest: Content digest, set for digest-pinned references
    """
    registry: str
    repository: str
    tag: Optional[str] = None
    digest: Optional[str] = None

    @property
    def identifier(self) -> str:
        """Manifest reference as used in /v2/<repo>/manifests/<identifier>."""
        return self.digest or self.tag or DEFAULT_TAG

    @property
    def context(self) -> str:
        """Fully qualified repository, without tag or digest."""
        return f"{self.registry}/{self.repository}"

    def with_digest(self, digest: str) -> Reference:
        """
        Build a digest-pinned reference to the same repository.

        Raises:
            InvalidReferenceError: If digest is not in algorithm:hex form
        """
        validate_digest(digest)
        return replace(self, tag=None, digest=digest)

    def __str__(self) -> str:
        if self.digest:
            return f"{self.context}@{self.digest}"
        return f"{self.context}:{self.identifier}"


def validate_digest(digest: str) -> str:
    """Check that digest looks like ``algorithm:encoded`` and return it."""
    if not digest or not _DIGEST_RE.match(digest):
        raise InvalidReferenceError(f"Invalid digest: {digest!r}")
    return digest


def parse_reference(coordinate: str) -> Reference:
    """
    Parse an image coordinate into a Reference.

    Accepts:
    - "repo" and "repo:tag"
    - "host[:port]/repo[:tag]"
    - "[host/]repo@algorithm:hex"

    A first path component containing "." or ":" (or equal to "localhost")
    is taken as the registry host. Docker Hub aliases collapse onto
    index.docker.io, and single-component Docker Hub repositories get the
    "library/" prefix.

    Args:
        coordinate: Image coordinate to parse

    Returns:
        Reference addressing the manifest by tag or digest

    Raises:
        InvalidReferenceError: If any part of the coordinate is malformed

    Examples:
        >>> parse_reference("busybox")
        Reference(registry='index.docker.io', repository='library/busybox', tag='latest', digest=None)

        >>> parse_reference("localhost:5000/team/app:v1")
        Reference(registry='localhost:5000', repository='team/app', tag='v1', digest=None)
    """
    if not coordinate or coordinate != coordinate.strip():
        raise InvalidReferenceError(f"Invalid reference: {coordinate!r}")

    name = coordinate
    tag: Optional[str] = None
    digest: Optional[str] = None

    if "@" in name:
        name, digest = name.split("@", 1)
        validate_digest(digest)
    else:
        # A colon after the last slash separates the tag; earlier ones are ports
        last_slash = name.rfind("/")
        last_colon = name.rfind(":")
        if last_colon > last_slash:
            name, tag = name[:last_colon], name[last_colon + 1:]
            if not _TAG_RE.match(tag):
                raise InvalidReferenceError(f"Invalid tag {tag!r} in reference {coordinate!r}")

    registry, repository = _split_registry(name, coordinate)

    for component in repository.split("/"):
        if not _COMPONENT_RE.match(component):
            raise InvalidReferenceError(
                f"Invalid repository {repository!r} in reference {coordinate!r}"
            )

    if digest is None and tag is None:
        tag = DEFAULT_TAG

    return Reference(registry=registry, repository=repository, tag=tag, digest=digest)


def _split_registry(name: str, coordinate: str) -> tuple[str, str]:
    """Split "host/repo" into (host, repo), defaulting to Docker Hub."""
    if not name:
        raise InvalidReferenceError(f"Missing repository in reference {coordinate!r}")

    first, sep, rest = name.partition("/")
    if sep and ("." in first or ":" in first or first == "localhost"):
        if not _REGISTRY_RE.match(first) or not rest:
            raise InvalidReferenceError(f"Invalid registry {first!r} in reference {coordinate!r}")
        registry, repository = first, rest
    else:
        registry, repository = DEFAULT_REGISTRY, name

    if registry in _DOCKER_HUB_ALIASES:
        registry = DEFAULT_REGISTRY
        if "/" not in repository:
            repository = f"library/{repository}"

    return registry, repository
