"""Common CLI options for the CLI."""

import typer

from zoneguard.core.connection import DATABASE_URL_ENV
from zoneguard.core.rules import APPLICATION_ZONE, PUBLIC_ZONE

DatabaseUrlOpt = typer.Option(
    None,
    "--database-url",
    "-d",
    envvar=DATABASE_URL_ENV,
    help="SQLAlchemy URL (falls back to DB_USER/DB_PASSWORD/DB_HOST/DB_NAME/DB_PORT)",
    show_default=False,
)

VerboseOpt = typer.Option(
    False,
    "--verbose",
    "-v",
    help="Log catalog queries and check outcomes",
)

RoleOpt = typer.Option(
    [],
    "--role",
    "-r",
    help="Expected / allowed role. This is reusable.",
    show_default=False,
)

NoRolesOpt = typer.Option(
    False,
    "--no-roles",
    help="Expect an empty role set (no role may hold the privilege)",
)

RequireZoneOpt = typer.Option(
    APPLICATION_ZONE,
    "--require-zone",
    help="Zone a role's search_path must include",
)

ForbidZoneOpt = typer.Option(
    PUBLIC_ZONE,
    "--forbid-zone",
    help="Zone a role's search_path must not include",
)

ParallelOpt = typer.Option(
    4,
    "--parallel",
    "-n",
    help="Number of checks to run in parallel",
)

OnlyOpt = typer.Option(
    [],
    "--only",
    help="Only run this rule (e.g. rls-enabled). This is reusable.",
    show_default=False,
)

SelectOpt = typer.Option(
    False,
    "--select",
    help="Pick the checks to run interactively",
)
