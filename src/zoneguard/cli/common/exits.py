"""Exit handling utilities for the CLI.

Exit codes:
    0  every check passed
    1  the catalog violates the policy
    2  invalid input (unknown rule, missing roles, bad policy file)
    3  the catalog could not be inspected
"""

from typing import NoReturn

import typer

from zoneguard.cli.common.output import out

EXIT_OK = 0
EXIT_POLICY_FAILURE = 1
EXIT_USAGE = 2
EXIT_CATALOG_ERROR = 3


def die(msg: str, code: int = EXIT_POLICY_FAILURE) -> "None":
    """Exit with an error message and optional exit code."""
    out.error(msg)
    raise typer.Exit(code)


def warn_exit(msg: str, code: int = EXIT_OK) -> "None":
    """Exit with a warning message and optional exit code."""
    out.warn(msg)
    raise typer.Exit(code)


def exit_from_exc(exc: Exception, *, message: str, code: int = 1) -> NoReturn:
    """
    Helper function to print an error message and exit with a given code.

    Exists to satisfy pylint W0707 and to standardize error exits.
    """
    out.error(message)
    raise typer.Exit(code) from exc
