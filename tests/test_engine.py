import pytest

from zoneguard.core.engine import AssertionEngine
from zoneguard.core.errors import CatalogError, PolicyFailure
from zoneguard.core.models import (
    DefaultPrivilegeRecord,
    PrivilegeGrant,
    RelationSecurity,
    RoleSettings,
    RoutineSecurity,
    ViolationKind,
)
from zoneguard.core.rules import RuleKind, RuleParams


class _Inspector:
    """In-memory catalog; each attribute is what the matching query returns."""

    def __init__(self, **state):
        self.zones = state.get("zones", {"api", "private"})
        self.roles = state.get("roles", {"anon", "service_role", "reader"})
        self.relations = state.get("relations", [])
        self.routines = state.get("routines", [])
        self.usage = state.get("usage", [])
        self.defaults = state.get("defaults", [])
        self.relation_grants = state.get("relation_grants", [])
        self.routine_grants = state.get("routine_grants", [])
        self.settings = state.get("settings", {})
        self.calls: list[str] = []

    def zone_exists(self, zone):
        self.calls.append(f"zone_exists:{zone}")
        return zone in self.zones

    def role_exists(self, role):
        self.calls.append(f"role_exists:{role}")
        return role in self.roles

    def list_relations(self, zone):
        self.calls.append(f"list_relations:{zone}")
        return list(self.relations)

    def list_routines(self, zone):
        return list(self.routines)

    def list_zone_usage(self, zone):
        return list(self.usage)

    def list_default_privileges(self, zone, object_types):
        return list(self.defaults)

    def list_relation_grants(self, zone):
        return list(self.relation_grants)

    def list_routine_grants(self, zone):
        return list(self.routine_grants)

    def get_role_settings(self, role):
        return RoleSettings(role, tuple(self.settings.get(role, ())))


def test_check_passes_silently_on_compliant_catalog():
    inspector = _Inspector(relations=[RelationSecurity("api", "t", "table", True)])

    AssertionEngine(inspector).check(RuleKind.RLS_ENABLED, "api")

    assert inspector.calls == ["zone_exists:api", "list_relations:api"]


def test_check_raises_policy_failure_with_every_violation():
    inspector = _Inspector(
        relations=[
            RelationSecurity("api", "zeta", "table", False),
            RelationSecurity("api", "alpha", "materialized view", False),
        ]
    )

    with pytest.raises(PolicyFailure) as info:
        AssertionEngine(inspector).check("rls-enabled", "api")

    failure = info.value
    assert failure.rule == "rls-enabled"
    assert failure.subject == "api"
    assert [v.subject for v in failure.violations] == ["api.alpha", "api.zeta"]
    assert "api.alpha" in str(failure)
    assert "2 violation(s)" in str(failure)


def test_check_accepts_roles_shorthand():
    inspector = _Inspector(usage=["anon", "service_role"])
    engine = AssertionEngine(inspector)

    engine.check("zone-access", "api", ["service_role", "anon"])

    with pytest.raises(PolicyFailure):
        engine.check("zone-access", "api", ["anon"])


def test_evaluate_rejects_unknown_zone_as_catalog_error():
    inspector = _Inspector()

    with pytest.raises(CatalogError, match="Zone 'nope' does not exist"):
        AssertionEngine(inspector).evaluate(RuleKind.RLS_ENABLED, "nope")

    assert "list_relations:nope" not in inspector.calls


def test_evaluate_rejects_unknown_role_as_catalog_error():
    with pytest.raises(CatalogError, match="Role 'ghost' does not exist"):
        AssertionEngine(_Inspector()).evaluate(RuleKind.SEARCH_PATH, "ghost")


def test_evaluate_requires_roles_for_set_rules():
    with pytest.raises(ValueError, match="requires an expected role list"):
        AssertionEngine(_Inspector()).evaluate(RuleKind.ZONE_ACCESS, "api")


def test_catalog_errors_propagate_unchanged():
    class _Broken(_Inspector):
        def list_routines(self, zone):
            raise CatalogError("permission denied for schema api")

    with pytest.raises(CatalogError, match="permission denied"):
        AssertionEngine(_Broken()).check(RuleKind.NO_SECURITY_DEFINER, "api")


def test_search_path_check_transitions():
    inspector = _Inspector(roles={"tester"})
    engine = AssertionEngine(inspector)

    with pytest.raises(PolicyFailure) as info:
        engine.check(RuleKind.SEARCH_PATH, "tester")
    assert info.value.violations[0].kind is ViolationKind.SEARCH_PATH_NOT_SET

    inspector.settings["tester"] = ["search_path=public, extensions"]
    with pytest.raises(PolicyFailure):
        engine.check(RuleKind.SEARCH_PATH, "tester")

    inspector.settings["tester"] = ["search_path=api, extensions"]
    engine.check(RuleKind.SEARCH_PATH, "tester")


def test_excess_grant_and_default_privilege_checks_can_disagree():
    inspector = _Inspector(
        defaults=[DefaultPrivilegeRecord("api", "table", "SELECT", "anon")],
        relation_grants=[
            PrivilegeGrant("api", "t", "table", "anon", "SELECT"),
            PrivilegeGrant("api", "t", "table", "reader", "SELECT"),
        ],
    )
    engine = AssertionEngine(inspector)

    engine.check(RuleKind.DEFAULT_TABLE_PRIVILEGES, "api", ["anon"])
    with pytest.raises(PolicyFailure) as info:
        engine.check(RuleKind.NO_EXCESS_TABLE_GRANTS, "api", ["anon"])

    assert [v.kind for v in info.value.violations] == [ViolationKind.EXCESS_GRANT]


def test_definer_routine_detected_then_cleared():
    inspector = _Inspector(
        routines=[RoutineSecurity("api", "test_function", "", "function", True)]
    )
    engine = AssertionEngine(inspector)

    with pytest.raises(PolicyFailure) as info:
        engine.check(RuleKind.NO_SECURITY_DEFINER, "api")
    assert info.value.violations[0].subject == "api.test_function()"

    inspector.routines = [RoutineSecurity("api", "test_function", "", "function", False)]
    engine.check(RuleKind.NO_SECURITY_DEFINER, "api")


def test_params_default_search_path_zones():
    params = RuleParams()

    assert params.required_zone == "api"
    assert params.forbidden_zone == "public"
