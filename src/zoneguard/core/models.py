"""Core domain models for catalog introspection and policy violations.

These models represent PostgreSQL catalog state in a simple, immutable form.
They are intentionally free of SQLAlchemy types and UI/CLI concerns, and are
recomputed on every check: nothing here is cached or persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

# pg_default_acl.defaclobjtype codes
DEFAULT_ACL_RELATION = "r"
DEFAULT_ACL_SEQUENCE = "S"
DEFAULT_ACL_ROUTINE = "f"
DEFAULT_ACL_TYPE = "T"
DEFAULT_ACL_SCHEMA = "n"


class ViolationKind(str, Enum):
    """Enumeration of the ways catalog state can break the zone policy."""

    RLS_DISABLED = "rls-disabled"
    SECURITY_DEFINER = "security-definer"
    ROLE_SET_MISMATCH = "role-set-mismatch"
    EXCESS_GRANT = "excess-grant"
    SEARCH_PATH_NOT_SET = "search-path-not-set"
    SEARCH_PATH_MALFORMED = "search-path-malformed"
    SEARCH_PATH_MISSING_ZONE = "search-path-missing-zone"
    SEARCH_PATH_FORBIDDEN_ZONE = "search-path-forbidden-zone"


@dataclass(frozen=True)
class Violation:
    """
    A single detected mismatch between catalog state and declared policy.

    Attributes:
        kind: What kind of invariant was broken.
        subject: Identifier of the offending object or principal
                 (e.g. `api.orders`, `api.refresh()`, `anon`).
        detail: Human-readable context for the report line.
    """

    kind: ViolationKind
    subject: str
    detail: str


@dataclass(frozen=True)
class RelationSecurity:
    """A table or materialized view with its row-level-security flag."""

    zone: str
    name: str
    object_type: str
    rls_enabled: bool

    @property
    def identifier(self) -> str:
        return f"{self.zone}.{self.name}"


@dataclass(frozen=True)
class RoutineSecurity:
    """A function or procedure with its execution-context mode."""

    zone: str
    name: str
    arguments: str
    routine_type: str
    security_definer: bool

    @property
    def identifier(self) -> str:
        return f"{self.zone}.{self.name}({self.arguments})"


@dataclass(frozen=True)
class PrivilegeGrant:
    """
    A privilege observed on an existing relation or routine.

    Attributes:
        zone: Schema the object lives in.
        object_name: Relation name or routine signature.
        object_type: `table`, `view`, `materialized view`, `function`, ...
        grantee: Role name, or `PUBLIC`.
        privilege: Privilege keyword such as `SELECT` or `EXECUTE`.
    """

    zone: str
    object_name: str
    object_type: str
    grantee: str
    privilege: str

    @property
    def identifier(self) -> str:
        return f"{self.zone}.{self.object_name}"


@dataclass(frozen=True)
class DefaultPrivilegeRecord:
    """A default ACL entry that applies to future objects created in a zone."""

    zone: str
    object_type: str
    privilege: str
    grantee: str


@dataclass(frozen=True)
class RoleSettings:
    """Persisted `ALTER ROLE ... SET` configuration for one principal."""

    role: str
    entries: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class SearchPath:
    """Decoded, normalized name-resolution path of a principal."""

    zones: tuple[str, ...]

    def __contains__(self, zone: object) -> bool:
        return isinstance(zone, str) and zone.lower() in self.zones

    def __str__(self) -> str:
        return ", ".join(self.zones)
