"""
Registry Image Check CLI

The "check" step of a CI image resource: reads a check request (source and
last known version) as JSON from stdin and writes the versions to report as
a JSON array to stdout. Diagnostics go to stderr only.
"""
from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from .check import check as run_check
from .cli_context import CLIContext
from .mappers import run_and_exit
from .models import dump_check_response, parse_check_request

PACKAGE_LOGGER = "registry_image_check"

app = typer.Typer(name="registry-image-check", help="Registry image version check", add_completion=False)


def configure_logging(level: int) -> None:
    """Send package diagnostics to stderr through a single Rich handler."""
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(package_logger.handlers):
        if isinstance(handler, RichHandler):
            package_logger.removeHandler(handler)

    handler = RichHandler(console=Console(stderr=True), show_time=False, show_path=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    package_logger.addHandler(handler)
    package_logger.setLevel(level)


@app.command()
def check(
    debug: bool = typer.Option(False, "--debug", envvar="REGISTRY_CHECK_DEBUG", help="Show debug diagnostics"),
) -> None:
    """Check the registry for new versions of the source's image."""
    configure_logging(logging.DEBUG if debug else logging.INFO)

    def _check() -> str:
        context = CLIContext.from_env()
        if not debug:
            configure_logging(context.settings.level)

        request = parse_check_request(typer.get_text_stream("stdin").read())
        if request.source.debug:
            logging.getLogger(PACKAGE_LOGGER).setLevel(logging.DEBUG)

        with context.fetcher() as fetcher:
            versions = run_check(request, fetcher, exchange=context.exchange_factory(request.source))
        return dump_check_response(versions)

    typer.echo(run_and_exit(_check))


def main() -> None:
    app()
