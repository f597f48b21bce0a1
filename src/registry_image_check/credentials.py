"""
Registry credential resolution.

Produces the username/password pair presented to the registry. Sources either
carry static credentials or ask for a provider token exchange; the exchange is
pluggable through the TokenExchange protocol, with AWS ECR as the one
provider implemented.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .models import Source

__all__ = [
    "Credentials",
    "CredentialExchangeError",
    "EcrServerError",
    "EcrInvalidParameterError",
    "TokenExchange",
    "TokenExchangeResult",
    "NoTokenExchange",
    "EcrTokenExchange",
    "ResolvedSource",
    "apply_credential_exchange",
    "make_token_exchange",
    "resolve_credentials",
]

logger = logging.getLogger(__name__)

# ECR tokens are presented with this fixed username
ECR_USERNAME = "AWS"


@dataclass(frozen=True)
class Credentials:
    """Registry credentials. Empty username or password means anonymous."""
    username: str = ""
    password: str = ""

    @property
    def anonymous(self) -> bool:
        return not (self.username and self.password)

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password={'***' if self.password else ''!r})"


class CredentialExchangeError(Exception):
    """
    Provider token exchange failed.

    Base of a closed family: each recognized provider error code has its own
    subclass, everything else is this class. ``code`` and ``provider_message``
    keep the provider's classification verbatim.
    """
    # Provider error code handled by this class, None for the fallback
    code_name: Optional[str] = None

    def __init__(self, message: str, code: Optional[str] = None, provider_message: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.provider_message = provider_message

    @classmethod
    def from_client_error(cls, error: ClientError) -> CredentialExchangeError:
        """Build the variant matching a botocore ClientError's code."""
        details = error.response.get("Error", {})
        code = details.get("Code")
        message = details.get("Message") or str(error)

        for variant in (EcrServerError, EcrInvalidParameterError):
            if variant.code_name == code:
                return variant(f"{code}: {message}", code=code, provider_message=message)
        return cls(f"{code}: {message}" if code else message, code=code, provider_message=message)


class EcrServerError(CredentialExchangeError):
    """ECR reported a server-side failure (ServerException)."""
    code_name = "ServerException"


class EcrInvalidParameterError(CredentialExchangeError):
    """ECR rejected the request parameters (InvalidParameterException)."""
    code_name = "InvalidParameterException"


@dataclass(frozen=True)
class TokenExchangeResult:
    """
    Outcome of a token exchange.

    Attributes:
        credentials: Registry login credentials
        registry_host: Registry host the credentials are valid for
    """
    credentials: Credentials
    registry_host: str


@runtime_checkable
class TokenExchange(Protocol):
    """Protocol for provider-specific registry token exchanges."""

    def exchange(self, region: str) -> TokenExchangeResult:
        """
        Exchange cloud credentials for registry login credentials.

        Raises:
            CredentialExchangeError: If the provider rejects the exchange
        """
        ...


class NoTokenExchange:
    """Default exchange for sources that use static or anonymous credentials."""

    def exchange(self, region: str) -> TokenExchangeResult:
        raise CredentialExchangeError("No token exchange is configured for this source")


class EcrTokenExchange:
    """
    AWS ECR token exchange via ``ecr:GetAuthorizationToken``.

    The returned token is already a base64 "AWS:<password>" payload; it is
    used as the password as-is.
    """

    def __init__(self, client: Any = None, *,
                 aws_access_key_id: Optional[str] = None,
                 aws_secret_access_key: Optional[str] = None,
                 aws_session_token: Optional[str] = None):
        """
        Args:
            client: Pre-built boto3 ECR client (the region argument to
                exchange() is then ignored)
            aws_access_key_id: Explicit AWS access key (default credential
                chain when omitted)
            aws_secret_access_key: Secret for aws_access_key_id
            aws_session_token: Optional session token
        """
        self._client = client
        self._aws_access_key_id = aws_access_key_id
        self._aws_secret_access_key = aws_secret_access_key
        self._aws_session_token = aws_session_token

    @classmethod
    def from_source(cls, source: Source) -> EcrTokenExchange:
        return cls(
            aws_access_key_id=source.aws_access_key_id,
            aws_secret_access_key=source.aws_secret_access_key,
            aws_session_token=source.aws_session_token,
        )

    def _make_client(self, region: str):
        if self._client is not None:
            return self._client
        try:
            return boto3.client(
                "ecr",
                region_name=region,
                aws_access_key_id=self._aws_access_key_id,
                aws_secret_access_key=self._aws_secret_access_key,
                aws_session_token=self._aws_session_token,
                config=Config(retries={"mode": "standard"}),
            )
        except BotoCoreError as e:
            raise CredentialExchangeError(f"Could not create ECR client for {region}: {e}") from e

    def exchange(self, region: str) -> TokenExchangeResult:
        client = self._make_client(region)
        logger.debug(f"Requesting ECR authorization token in {region}")

        try:
            result = client.get_authorization_token()
        except ClientError as e:
            raise CredentialExchangeError.from_client_error(e) from e
        except BotoCoreError as e:
            raise CredentialExchangeError(str(e)) from e

        authorization_data = result.get("authorizationData") or []
        if not authorization_data:
            raise CredentialExchangeError("ECR returned no authorization data")

        data = authorization_data[0]
        token = data.get("authorizationToken")
        endpoint = data.get("proxyEndpoint")
        if not token or not endpoint:
            raise CredentialExchangeError("ECR authorization data is missing the token or proxy endpoint")

        host = endpoint.replace("https://", "").rstrip("/")
        return TokenExchangeResult(
            credentials=Credentials(username=ECR_USERNAME, password=token),
            registry_host=host,
        )


@dataclass(frozen=True)
class ResolvedSource:
    """A source with its repository fully qualified, plus the credentials to use."""
    source: Source
    credentials: Credentials


def apply_credential_exchange(source: Source, result: TokenExchangeResult) -> Source:
    """
    Return a copy of source rewritten for an exchange result.

    The registry host is prefixed onto the repository and the exchanged
    credentials replace username/password. The input is left untouched.
    """
    return source.model_copy(update={
        "username": result.credentials.username,
        "password": result.credentials.password,
        "repository": f"{result.registry_host}/{source.repository}",
    })


def make_token_exchange(source: Source) -> TokenExchange:
    """Pick the token exchange a source asks for."""
    if source.ecr:
        return EcrTokenExchange.from_source(source)
    return NoTokenExchange()


def resolve_credentials(source: Source, exchange: Optional[TokenExchange] = None) -> ResolvedSource:
    """
    Produce the credentials for a source.

    Args:
        source: Check source
        exchange: Token exchange to use when source.ecr is set (defaults to
            make_token_exchange(source))

    Returns:
        ResolvedSource with the possibly rewritten source and its credentials

    Raises:
        CredentialExchangeError: If the token exchange fails
    """
    if source.ecr:
        exchange = exchange or make_token_exchange(source)
        result = exchange.exchange(source.region)
        logger.debug(f"Token exchange succeeded for registry {result.registry_host}")
        return ResolvedSource(
            source=apply_credential_exchange(source, result),
            credentials=result.credentials,
        )

    return ResolvedSource(
        source=source,
        credentials=Credentials(username=source.username or "", password=source.password or ""),
    )
