"""
Data models for the check request and response.

These Pydantic models validate the JSON document read from stdin and
serialize the version list written to stdout. Decoding is strict: unknown
fields anywhere in the request are rejected.
"""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator, model_validator

from .storage.reference import DEFAULT_TAG

__all__ = [
    "InputError",
    "Source",
    "Version",
    "CheckRequest",
    "parse_check_request",
    "dump_check_response",
]


class InputError(ValueError):
    """Raised when the check request is missing, malformed or has unknown fields."""
    pass


class Version(BaseModel):
    """A single image version, identified by its manifest digest."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    digest: str = Field(..., description="Manifest digest (algorithm:hex)")


class Source(BaseModel):
    """
    Where and how to check for image versions.

    Static credentials and the ECR token exchange are alternatives; when
    ``ecr`` is set the exchanged credentials replace ``username``/``password``.
    """
    model_config = ConfigDict(extra="forbid", frozen=True)

    repository: str = Field(..., min_length=1, description="Image repository, optionally host-qualified")
    tag: str = Field(default=DEFAULT_TAG, description="Tag to track")
    username: Optional[str] = Field(default=None, description="Registry username")
    password: Optional[str] = Field(default=None, repr=False, description="Registry password")

    # AWS ECR token exchange
    ecr: bool = Field(default=False, description="Obtain registry credentials from ECR")
    region: Optional[str] = Field(default=None, description="AWS region of the ECR registry")
    aws_access_key_id: Optional[str] = Field(default=None, description="AWS access key for the exchange")
    aws_secret_access_key: Optional[str] = Field(default=None, repr=False, description="AWS secret key")
    aws_session_token: Optional[str] = Field(default=None, repr=False, description="AWS session token")

    debug: bool = Field(default=False, description="Enable debug diagnostics")

    @field_validator("tag", mode="before")
    @classmethod
    def default_tag(cls, v):
        """Treat a null or empty tag as the default tag."""
        return v or DEFAULT_TAG

    @model_validator(mode="after")
    def validate_ecr(self) -> Source:
        """Require a region for the ECR exchange and complete AWS key pairs."""
        if self.ecr and not self.region:
            raise ValueError("region is required when ecr is enabled")
        if bool(self.aws_access_key_id) != bool(self.aws_secret_access_key):
            raise ValueError("aws_access_key_id and aws_secret_access_key must be given together")
        return self

    def name(self) -> str:
        """Image coordinate of the tracked tag."""
        return f"{self.repository}:{self.tag}"


class CheckRequest(BaseModel):
    """Request read from stdin: the source plus the last known version, if any."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    source: Source
    version: Optional[Version] = None


_VERSIONS = TypeAdapter(List[Version])


def parse_check_request(payload: str | bytes) -> CheckRequest:
    """
    Decode and validate a check request.

    Raises:
        InputError: If the payload is empty, not JSON, or fails validation
    """
    if not payload or not payload.strip():
        raise InputError("invalid payload: empty request")
    try:
        return CheckRequest.model_validate_json(payload)
    except ValidationError as e:
        raise InputError(f"invalid payload: {e}") from e


def dump_check_response(versions: List[Version]) -> str:
    """Serialize the ordered version list as a JSON array."""
    if not versions:
        raise ValueError("check response must contain at least one version")
    return _VERSIONS.dump_json(versions).decode()
