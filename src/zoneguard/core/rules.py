"""Policy rule abstractions, implementations and the rule registry.

Each rule encapsulates one invariant of the zone-based least-privilege
model. A rule knows which catalog snapshot it needs (`collect`) and how to
turn that snapshot plus the caller's expectations into violations
(`evaluate`). `evaluate` is pure and side-effect free, so rules can be
exercised against hand-built snapshots in tests and run in any order or in
parallel against a live database.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Iterator, Protocol, Sequence

from zoneguard.core.errors import SearchPathMalformed, SearchPathNotSet
from zoneguard.core.models import (
    DEFAULT_ACL_RELATION,
    DEFAULT_ACL_ROUTINE,
    DefaultPrivilegeRecord,
    PrivilegeGrant,
    RelationSecurity,
    RoleSettings,
    RoutineSecurity,
    Violation,
    ViolationKind,
)
from zoneguard.core.search_path import decode_search_path

APPLICATION_ZONE = "api"
PUBLIC_ZONE = "public"


class CatalogInspector(Protocol):
    """Interface for the catalog lookups the rules depend on."""

    def zone_exists(self, zone: str) -> bool:
        ...

    def role_exists(self, role: str) -> bool:
        ...

    def list_relations(self, zone: str) -> list[RelationSecurity]:
        ...

    def list_routines(self, zone: str) -> list[RoutineSecurity]:
        ...

    def list_zone_usage(self, zone: str) -> list[str]:
        ...

    def list_default_privileges(
        self, zone: str, object_types: Sequence[str]
    ) -> list[DefaultPrivilegeRecord]:
        ...

    def list_relation_grants(self, zone: str) -> list[PrivilegeGrant]:
        ...

    def list_routine_grants(self, zone: str) -> list[PrivilegeGrant]:
        ...

    def get_role_settings(self, role: str) -> RoleSettings:
        ...


class RuleKind(str, Enum):
    """Stable names of the registered invariants."""

    RLS_ENABLED = "rls-enabled"
    NO_SECURITY_DEFINER = "no-security-definer"
    ZONE_ACCESS = "zone-access"
    DEFAULT_TABLE_PRIVILEGES = "default-table-privileges"
    DEFAULT_ROUTINE_PRIVILEGES = "default-routine-privileges"
    NO_EXCESS_TABLE_GRANTS = "no-excess-table-grants"
    NO_EXCESS_ROUTINE_GRANTS = "no-excess-routine-grants"
    SEARCH_PATH = "search-path"


class SubjectType(str, Enum):
    """What a rule is invoked on."""

    ZONE = "zone"
    ROLE = "role"


@dataclass(frozen=True)
class RuleParams:
    """
    Caller-supplied expectations for a rule invocation.

    Attributes:
        roles: Expected (or allowed) principal names. None means "not
               supplied"; an empty tuple means "nobody".
        required_zone: Zone a search path must contain.
        forbidden_zone: Zone a search path must never contain.
    """

    roles: tuple[str, ...] | None = None
    required_zone: str = APPLICATION_ZONE
    forbidden_zone: str = PUBLIC_ZONE


def normalize_roles(roles: Iterable[str]) -> list[str]:
    """Lowercase, deduplicate and sort principal names."""
    return sorted({role.strip().lower() for role in roles})


def compare_role_sets(
    subject: str,
    observed: Iterable[str],
    expected: Iterable[str],
    *,
    holding: str,
) -> list[Violation]:
    """
    Compare observed and expected principals for exact equality.

    Both a missing expected principal and an unexpected extra principal are
    violations; one violation is produced per differing principal.
    """
    observed_roles = normalize_roles(observed)
    expected_roles = normalize_roles(expected)
    if observed_roles == expected_roles:
        return []

    missing = sorted(set(expected_roles) - set(observed_roles))
    extra = sorted(set(observed_roles) - set(expected_roles))
    violations = [
        Violation(
            ViolationKind.ROLE_SET_MISMATCH,
            subject,
            f"expected role '{role}' does not hold {holding}",
        )
        for role in missing
    ]
    violations.extend(
        Violation(
            ViolationKind.ROLE_SET_MISMATCH,
            subject,
            f"unexpected role '{role}' holds {holding}",
        )
        for role in extra
    )
    return violations


class PolicyRule(ABC):
    """
    Abstract base class for all policy rules.

    Subclasses set `kind`, `subject_type` and `description`, and declare
    whether they need an expected role list via `requires_roles`.
    """

    kind: RuleKind
    subject_type: SubjectType = SubjectType.ZONE
    requires_roles: bool = False
    description: str = ""

    def validate_params(self, params: RuleParams) -> None:
        """Raise ValueError if `params` cannot drive this rule."""
        if self.requires_roles and params.roles is None:
            raise ValueError(
                f"Rule '{self.kind.value}' requires an expected role list."
            )

    @abstractmethod
    def collect(self, inspector: CatalogInspector, subject: str) -> Any:
        """Read the catalog snapshot this rule evaluates."""
        ...

    @abstractmethod
    def evaluate(
        self, subject: str, snapshot: Any, params: RuleParams
    ) -> list[Violation]:
        """
        Compare a catalog snapshot against the caller's expectations.

        Args:
            subject: Zone or role name the rule was invoked on.
            snapshot: Value previously returned by `collect`.
            params: Caller-supplied expectations.

        Returns:
            Zero or more violations.
        """
        ...


class RLSEnabledRule(PolicyRule):
    """Every table and materialized view in a zone has row-level security on."""

    kind = RuleKind.RLS_ENABLED
    description = "Tables and materialized views have row-level security enabled"

    def collect(self, inspector: CatalogInspector, subject: str) -> list[RelationSecurity]:
        return inspector.list_relations(subject)

    def evaluate(
        self, subject: str, snapshot: list[RelationSecurity], params: RuleParams
    ) -> list[Violation]:
        return [
            Violation(
                ViolationKind.RLS_DISABLED,
                relation.identifier,
                f"{relation.name} ({relation.object_type}) does not have "
                "row-level security enabled",
            )
            for relation in snapshot
            if not relation.rls_enabled
        ]


class NoSecurityDefinerRule(PolicyRule):
    """No routine in a zone executes with its owner's privileges."""

    kind = RuleKind.NO_SECURITY_DEFINER
    description = "Functions and procedures run as SECURITY INVOKER"

    def collect(self, inspector: CatalogInspector, subject: str) -> list[RoutineSecurity]:
        return inspector.list_routines(subject)

    def evaluate(
        self, subject: str, snapshot: list[RoutineSecurity], params: RuleParams
    ) -> list[Violation]:
        return [
            Violation(
                ViolationKind.SECURITY_DEFINER,
                routine.identifier,
                f"{routine.routine_type} runs as SECURITY DEFINER",
            )
            for routine in snapshot
            if routine.security_definer
        ]


class ZoneAccessRule(PolicyRule):
    """The principals holding USAGE on a zone are exactly the expected set."""

    kind = RuleKind.ZONE_ACCESS
    requires_roles = True
    description = "Roles with USAGE on the zone match the expected set exactly"

    def collect(self, inspector: CatalogInspector, subject: str) -> list[str]:
        return inspector.list_zone_usage(subject)

    def evaluate(
        self, subject: str, snapshot: list[str], params: RuleParams
    ) -> list[Violation]:
        return compare_role_sets(
            subject, snapshot, params.roles or (), holding="USAGE on the zone"
        )


class DefaultPrivilegesRule(PolicyRule):
    """Base for rules comparing default-ACL grantees of one privilege."""

    requires_roles = True
    object_type_code: str
    privilege: str
    object_label: str

    def collect(
        self, inspector: CatalogInspector, subject: str
    ) -> list[DefaultPrivilegeRecord]:
        return inspector.list_default_privileges(subject, [self.object_type_code])

    def evaluate(
        self,
        subject: str,
        snapshot: list[DefaultPrivilegeRecord],
        params: RuleParams,
    ) -> list[Violation]:
        grantees = [r.grantee for r in snapshot if r.privilege == self.privilege]
        return compare_role_sets(
            subject,
            grantees,
            params.roles or (),
            holding=f"default {self.privilege} on new {self.object_label}",
        )


class DefaultTablePrivilegesRule(DefaultPrivilegesRule):
    """Default SELECT on future relations goes to exactly the expected roles."""

    kind = RuleKind.DEFAULT_TABLE_PRIVILEGES
    object_type_code = DEFAULT_ACL_RELATION
    privilege = "SELECT"
    object_label = "tables"
    description = "Default SELECT on new tables matches the expected set exactly"


class DefaultRoutinePrivilegesRule(DefaultPrivilegesRule):
    """Default EXECUTE on future routines goes to exactly the expected roles."""

    kind = RuleKind.DEFAULT_ROUTINE_PRIVILEGES
    object_type_code = DEFAULT_ACL_ROUTINE
    privilege = "EXECUTE"
    object_label = "routines"
    description = "Default EXECUTE on new routines matches the expected set exactly"


class ExcessGrantsRule(PolicyRule):
    """Base for rules rejecting object-level grants outside an allowed set."""

    requires_roles = True
    object_label: str

    def evaluate(
        self, subject: str, snapshot: list[PrivilegeGrant], params: RuleParams
    ) -> list[Violation]:
        allowed = set(normalize_roles(params.roles or ()))
        return [
            Violation(
                ViolationKind.EXCESS_GRANT,
                grant.identifier,
                f'{self.object_label} "{grant.object_name}" ({grant.object_type}) '
                f'has "{grant.privilege}" granted to "{grant.grantee}"',
            )
            for grant in snapshot
            if grant.grantee.lower() not in allowed
        ]


class NoExcessTableGrantsRule(ExcessGrantsRule):
    """No relation in a zone grants anything to a role outside the allowed set."""

    kind = RuleKind.NO_EXCESS_TABLE_GRANTS
    object_label = "Table"
    description = "Relations grant privileges only to allowed roles"

    def collect(self, inspector: CatalogInspector, subject: str) -> list[PrivilegeGrant]:
        return inspector.list_relation_grants(subject)


class NoExcessRoutineGrantsRule(ExcessGrantsRule):
    """No routine in a zone grants anything to a role outside the allowed set."""

    kind = RuleKind.NO_EXCESS_ROUTINE_GRANTS
    object_label = "Routine"
    description = "Routines grant privileges only to allowed roles"

    def collect(self, inspector: CatalogInspector, subject: str) -> list[PrivilegeGrant]:
        return inspector.list_routine_grants(subject)


class SearchPathRule(PolicyRule):
    """A role has an explicit search path with the app zone and without public."""

    kind = RuleKind.SEARCH_PATH
    subject_type = SubjectType.ROLE
    description = "Role search_path is set, includes the app zone, excludes public"

    def collect(self, inspector: CatalogInspector, subject: str) -> RoleSettings:
        return inspector.get_role_settings(subject)

    def evaluate(
        self, subject: str, snapshot: RoleSettings, params: RuleParams
    ) -> list[Violation]:
        try:
            path = decode_search_path(snapshot.entries)
        except SearchPathNotSet as exc:
            return [Violation(ViolationKind.SEARCH_PATH_NOT_SET, subject, str(exc))]
        except SearchPathMalformed as exc:
            return [Violation(ViolationKind.SEARCH_PATH_MALFORMED, subject, str(exc))]

        violations: list[Violation] = []
        if params.required_zone not in path:
            violations.append(
                Violation(
                    ViolationKind.SEARCH_PATH_MISSING_ZONE,
                    subject,
                    f"search_path ({path}) does not include '{params.required_zone}'",
                )
            )
        if params.forbidden_zone in path:
            violations.append(
                Violation(
                    ViolationKind.SEARCH_PATH_FORBIDDEN_ZONE,
                    subject,
                    f"search_path ({path}) includes '{params.forbidden_zone}'",
                )
            )
        return violations


def parse_rule_kind(value: RuleKind | str) -> RuleKind:
    """Convert a rule name into a RuleKind, with a helpful error."""
    if isinstance(value, RuleKind):
        return value
    try:
        return RuleKind(value.strip().lower())
    except ValueError as exc:
        known = ", ".join(k.value for k in RuleKind)
        raise ValueError(f"Unknown rule '{value}'. Known rules: {known}") from exc


class RuleRegistry:
    """Fixed catalog of rules, each reachable under one stable name."""

    def __init__(self, rules: Iterable[PolicyRule]):
        self._rules: dict[RuleKind, PolicyRule] = {}
        for rule in rules:
            if rule.kind in self._rules:
                raise ValueError(f"Duplicate rule registration: {rule.kind.value}")
            self._rules[rule.kind] = rule

    def get(self, kind: RuleKind | str) -> PolicyRule:
        """Return the rule registered under `kind`."""
        resolved = parse_rule_kind(kind)
        try:
            return self._rules[resolved]
        except KeyError as exc:
            raise ValueError(f"Rule '{resolved.value}' is not registered") from exc

    def __iter__(self) -> Iterator[PolicyRule]:
        return iter(self._rules.values())

    def __len__(self) -> int:
        return len(self._rules)


DEFAULT_REGISTRY = RuleRegistry(
    [
        RLSEnabledRule(),
        NoSecurityDefinerRule(),
        ZoneAccessRule(),
        DefaultTablePrivilegesRule(),
        DefaultRoutinePrivilegesRule(),
        NoExcessTableGrantsRule(),
        NoExcessRoutineGrantsRule(),
        SearchPathRule(),
    ]
)
