"""Commands for verifying zone access policy against a database."""

from __future__ import annotations

from pathlib import Path

import typer

from zoneguard.cli.common.context import GateAppContext
from zoneguard.cli.common.exits import (
    EXIT_CATALOG_ERROR,
    EXIT_POLICY_FAILURE,
    EXIT_USAGE,
    die,
    exit_from_exc,
    warn_exit,
)
from zoneguard.cli.common.options import (
    ForbidZoneOpt,
    NoRolesOpt,
    OnlyOpt,
    ParallelOpt,
    RequireZoneOpt,
    RoleOpt,
    SelectOpt,
)
from zoneguard.cli.common.output import out
from zoneguard.cli.tui import select_checks
from zoneguard.core.connection import open_inspector
from zoneguard.core.engine import AssertionEngine
from zoneguard.core.errors import CatalogError, PolicyFailure, PolicyFileError
from zoneguard.core.policy import load_policy
from zoneguard.core.rules import DEFAULT_REGISTRY, RuleParams, parse_rule_kind
from zoneguard.core.suite import run_checks_parallel


def rules():
    """List the registered policy rules."""
    out.rules_table(DEFAULT_REGISTRY, title="Policy rules")


def check(
    ctx: typer.Context,
    rule: str = typer.Argument(..., help="Rule name (see `zoneguard rules`)"),
    subject: str = typer.Argument(..., help="Zone (schema) or role name"),
    role: list[str] = RoleOpt,
    no_roles: bool = NoRolesOpt,
    require_zone: str = RequireZoneOpt,
    forbid_zone: str = ForbidZoneOpt,
):
    """
    Run a single policy check.
    """
    appctx: GateAppContext = ctx.obj

    try:
        kind = parse_rule_kind(rule)
    except ValueError as exc:
        exit_from_exc(exc, message=str(exc), code=EXIT_USAGE)

    if no_roles and role:
        die("--no-roles cannot be combined with --role", code=EXIT_USAGE)

    params = RuleParams(
        roles=() if no_roles else (tuple(role) if role else None),
        required_zone=require_zone,
        forbidden_zone=forbid_zone,
    )

    try:
        with out.status(f"Checking {kind.value} on {subject}..."):
            with open_inspector(appctx.engine) as inspector:
                AssertionEngine(inspector).check(kind, subject, params=params)
    except PolicyFailure as exc:
        out.violations_table(exc.violations, title=f"{kind.value}: {subject}")
        die(
            f"{kind.value} failed for '{subject}': {len(exc.violations)} violation(s)",
            code=EXIT_POLICY_FAILURE,
        )
    except ValueError as exc:
        exit_from_exc(exc, message=str(exc), code=EXIT_USAGE)
    except CatalogError as exc:
        exit_from_exc(exc, message=str(exc), code=EXIT_CATALOG_ERROR)

    out.success(f"{kind.value} passed for '{subject}'")


def run(
    ctx: typer.Context,
    policy: Path = typer.Argument(..., help="YAML policy file"),
    parallel: int = ParallelOpt,
    only: list[str] = OnlyOpt,
    select: bool = SelectOpt,
):
    """
    Run every check declared in a policy file.
    """
    appctx: GateAppContext = ctx.obj

    try:
        invocations = load_policy(policy)
        wanted = {parse_rule_kind(o) for o in only}
    except (PolicyFileError, ValueError) as exc:
        exit_from_exc(exc, message=str(exc), code=EXIT_USAGE)

    if wanted:
        invocations = [i for i in invocations if i.kind in wanted]

    if not invocations:
        warn_exit("No checks to run")

    if select:
        invocations = select_checks(invocations)
        if not invocations:
            warn_exit("No checks selected")

    out.header("Policy checks")
    out.kv({"Policy": policy, "Checks": len(invocations), "Parallel": parallel})

    try:
        engine = appctx.engine
        with out.status("Running checks..."):
            outcomes = run_checks_parallel(
                lambda: open_inspector(engine), invocations, parallel
            )
    except ValueError as exc:
        exit_from_exc(exc, message=str(exc), code=EXIT_USAGE)
    except CatalogError as exc:
        exit_from_exc(exc, message=str(exc), code=EXIT_CATALOG_ERROR)

    out.outcomes_table(outcomes, title="Results")
    for outcome in outcomes:
        if outcome.violations:
            out.violations_table(outcome.violations, title=outcome.invocation.label)

    errored = [o for o in outcomes if o.error]
    failed = [o for o in outcomes if o.violations]
    if errored:
        die(f"{len(errored)} check(s) could not run", code=EXIT_CATALOG_ERROR)
    if failed:
        die(
            f"{len(failed)} of {len(outcomes)} check(s) failed",
            code=EXIT_POLICY_FAILURE,
        )

    out.success(f"All {len(outcomes)} check(s) passed")
