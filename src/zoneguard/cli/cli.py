"""CLI application for zone-based least-privilege policy verification."""

import typer

from zoneguard.cli.commands import gate
from zoneguard.cli.common.context import GateAppContext, build_gate_context
from zoneguard.cli.common.exits import EXIT_CATALOG_ERROR, exit_from_exc
from zoneguard.cli.common.logs import configure_logging
from zoneguard.cli.common.options import DatabaseUrlOpt, VerboseOpt
from zoneguard.core.errors import CatalogError

app = typer.Typer(
    help="zoneguard - verify database access control against a zone policy",
    no_args_is_help=True,
)


@app.callback()
def _init(
    ctx: typer.Context,
    database_url: str | None = DatabaseUrlOpt,
    verbose: bool = VerboseOpt,
):
    """Initialize the gate context shared by all commands."""
    configure_logging(verbose)
    try:
        ctx.obj = build_gate_context(database_url)
    except CatalogError as exc:
        exit_from_exc(exc, message=str(exc), code=EXIT_CATALOG_ERROR)

    appctx: GateAppContext = ctx.obj
    ctx.call_on_close(appctx.close)


app.command("rules")(gate.rules)
app.command("check")(gate.check)
app.command("run")(gate.run)


if __name__ == "__main__":
    app()
