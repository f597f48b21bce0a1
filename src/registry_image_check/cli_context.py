"""
CLI Context for managing application dependencies.

Provides a clean way to hand the CLI its settings, HTTP transport and token
exchange factory, avoiding global state and letting tests inject fakes.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional

import httpx

from .credentials import TokenExchange, make_token_exchange
from .models import Source
from .settings import Settings, create_settings_from_env
from .storage.fetcher import RegistryDigestFetcher


@dataclass
class CLIContext:
    """
    Shared context for a CLI invocation.

    Attributes:
        settings: HTTP and logging configuration
        transport: Underlying registry transport (None for real network)
        exchange_factory: Builds the token exchange for a source
        sleep: Sleep function for retry backoff (None for time.sleep)
    """
    settings: Settings
    transport: Optional[httpx.BaseTransport] = None
    exchange_factory: Callable[[Source], TokenExchange] = field(default=make_token_exchange)
    sleep: Optional[Callable[[float], None]] = None

    @classmethod
    def from_env(cls) -> CLIContext:
        """
        Create CLI context from environment variables.

        Returns:
            CLIContext with settings loaded from environment
        """
        return cls(settings=create_settings_from_env())

    def fetcher(self) -> RegistryDigestFetcher:
        """Create a digest fetcher; close it (or use it as a context manager) when done."""
        return RegistryDigestFetcher(self.settings, transport=self.transport, sleep=self.sleep)
