"""
Error mapping and CLI utilities.

Provides centralized exception-to-exit-code mapping and the wrapper that is
the only place where failures are logged and turned into a process exit.
"""
from __future__ import annotations

import logging
from typing import Callable, TypeVar

import typer

T = TypeVar('T')

logger = logging.getLogger(__name__)

# Keyed by class name; subclasses inherit their base's code
EXIT_CODES = {
    "InputError": 2,
    "ValidationError": 2,
    "ValueError": 2,
    "InvalidReferenceError": 3,
    "CredentialExchangeError": 4,
    "OciError": 5,
}

FALLBACK_EXIT_CODE = 1


def exit_code_for(exc: BaseException) -> int:
    """
    Map exception to standardized exit code.

    Walks the exception's class hierarchy so that, for example,
    OciManifestUnknown maps like OciError:
    - 2: Invalid request payload or configuration (InputError, ValueError)
    - 3: Unparsable repository/tag or digest (InvalidReferenceError)
    - 4: Token exchange failure (CredentialExchangeError)
    - 5: Registry or network failure (OciError)
    - 1: Anything else

    Args:
        exc: Exception to map

    Returns:
        Nonzero exit code
    """
    for cls in type(exc).__mro__:
        code = EXIT_CODES.get(cls.__name__)
        if code is not None:
            return code
    return FALLBACK_EXIT_CODE


def run_and_exit(func: Callable[[], T]) -> T:
    """
    Unified error wrapper for CLI commands.

    Executes the given function; any exception is logged once with its
    message and converted to typer.Exit with the mapped exit code.

    Args:
        func: Function to execute

    Returns:
        Function result if successful

    Raises:
        typer.Exit: With appropriate exit code if function raises exception
    """
    try:
        return func()
    except Exception as e:
        logger.error(str(e) or type(e).__name__)
        logger.debug("Failure details", exc_info=True)
        raise typer.Exit(code=exit_code_for(e)) from e


__all__ = ["EXIT_CODES", "exit_code_for", "run_and_exit"]
