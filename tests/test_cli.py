from contextlib import contextmanager

import pytest
from typer.testing import CliRunner

import zoneguard.cli.commands.gate as gate
import zoneguard.cli.common.context as context
from zoneguard.cli.cli import app
from zoneguard.cli.common.exits import (
    EXIT_CATALOG_ERROR,
    EXIT_POLICY_FAILURE,
    EXIT_USAGE,
)
from zoneguard.cli.common.output import console, out
from zoneguard.core.models import DefaultPrivilegeRecord, RelationSecurity, RoleSettings

runner = CliRunner()


class _EngineStub:
    def dispose(self):
        pass


class _InspectorStub:
    def zone_exists(self, zone):
        return zone in {"api", "private"}

    def role_exists(self, role):
        return role == "anon"

    def list_relations(self, zone):
        if zone == "private":
            return [RelationSecurity("private", "jobs", "table", rls_enabled=False)]
        return [RelationSecurity("api", "orders", "table", rls_enabled=True)]

    def list_zone_usage(self, zone):
        return ["anon", "postgres"]

    def get_role_settings(self, role):
        return RoleSettings(role, ("search_path=api",))

    def list_default_privileges(self, zone, object_types):
        return [DefaultPrivilegeRecord(zone, "table", "SELECT", "anon")]

    def list_routine_grants(self, zone):
        return []


@pytest.fixture(autouse=True)
def _fake_database(monkeypatch):
    @contextmanager
    def _open(engine):
        yield _InspectorStub()

    monkeypatch.setattr(context, "create_catalog_engine", lambda url: _EngineStub())
    monkeypatch.setattr(gate, "open_inspector", _open)


def test_rules_lists_every_rule():
    result = runner.invoke(app, ["rules"])

    assert result.exit_code == 0
    assert "zone-access" in result.output
    assert "search-path" in result.output


def test_check_passes():
    result = runner.invoke(app, ["check", "rls-enabled", "api"])

    assert result.exit_code == 0, result.output
    assert "passed" in result.output


def test_check_reports_violations_and_fails():
    result = runner.invoke(app, ["check", "rls-enabled", "private"])

    assert result.exit_code == EXIT_POLICY_FAILURE
    assert "private.jobs" in result.output


def test_check_roles_are_compared_exactly():
    ok = runner.invoke(app, ["check", "zone-access", "api", "-r", "postgres", "-r", "anon"])
    missing = runner.invoke(app, ["check", "zone-access", "api", "-r", "anon"])

    assert ok.exit_code == 0, ok.output
    assert missing.exit_code == EXIT_POLICY_FAILURE


@pytest.mark.parametrize(
    "args",
    [
        ["check", "no-such-rule", "api"],
        ["check", "zone-access", "api"],
    ],
)
def test_check_usage_errors(args):
    result = runner.invoke(app, args)

    assert result.exit_code == EXIT_USAGE


def test_check_unknown_zone_is_catalog_error():
    result = runner.invoke(app, ["check", "rls-enabled", "nope"])

    assert result.exit_code == EXIT_CATALOG_ERROR
    assert "does not exist" in result.output


def test_check_search_path_for_role():
    result = runner.invoke(app, ["check", "search-path", "anon"])

    assert result.exit_code == 0, result.output


def test_run_policy_file(tmp_path):
    policy = tmp_path / "policy.yml"
    policy.write_text(
        "zones:\n"
        "  api:\n"
        "    rls-enabled: true\n"
        "    zone-access: [anon, postgres]\n"
        "  private:\n"
        "    rls-enabled: true\n"
        "roles:\n"
        "  anon:\n"
        "    search-path: true\n"
    )

    failed = runner.invoke(app, ["run", str(policy), "--parallel", "2"])
    passed = runner.invoke(app, ["run", str(policy), "--only", "zone-access", "--only", "search-path"])

    assert failed.exit_code == EXIT_POLICY_FAILURE
    assert "private.jobs" in failed.output
    assert passed.exit_code == 0, passed.output
    assert "All 2 check(s) passed" in passed.output


def test_run_reports_catalog_errors(tmp_path):
    policy = tmp_path / "policy.yml"
    policy.write_text("zones:\n  missing:\n    rls-enabled: true\n")

    result = runner.invoke(app, ["run", str(policy)])

    assert result.exit_code == EXIT_CATALOG_ERROR


def test_run_rejects_invalid_policy(tmp_path):
    policy = tmp_path / "policy.yml"
    policy.write_text("zones:\n  api:\n    zone-access: true\n")

    result = runner.invoke(app, ["run", str(policy)])

    assert result.exit_code == EXIT_USAGE


def test_check_no_roles_expects_an_empty_set():
    passed = runner.invoke(app, ["check", "no-excess-routine-grants", "private", "--no-roles"])
    failed = runner.invoke(app, ["check", "default-table-privileges", "api", "--no-roles"])

    assert passed.exit_code == 0, passed.output
    assert failed.exit_code == EXIT_POLICY_FAILURE
    assert "anon" in failed.output


def test_check_no_roles_conflicts_with_role():
    result = runner.invoke(
        app, ["check", "zone-access", "api", "--no-roles", "-r", "anon"]
    )

    assert result.exit_code == EXIT_USAGE


def test_success_and_warn_print_subjects_literally():
    with console.capture() as capture:
        out.success("rls-enabled passed for 'api[red]x[/red]'")
        out.warn("zone [bold]api[/bold] skipped")

    printed = capture.get()
    assert "api[red]x[/red]" in printed
    assert "[bold]api[/bold]" in printed
