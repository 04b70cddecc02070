"""Logging setup for the CLI (core modules only emit, never configure)."""

import logging

from rich.logging import RichHandler

from zoneguard.cli.common.output import console


def configure_logging(verbose: bool) -> None:
    """Route `zoneguard.*` loggers through Rich on the shared console."""
    handler = RichHandler(console=console, show_path=False, markup=False)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    logger = logging.getLogger("zoneguard")
    logger.handlers[:] = [handler]
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False
