from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from sqlalchemy import bindparam, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.elements import TextClause

from zoneguard.core.errors import CatalogError
from zoneguard.core.models import (
    DEFAULT_ACL_RELATION,
    DEFAULT_ACL_ROUTINE,
    DEFAULT_ACL_SCHEMA,
    DEFAULT_ACL_SEQUENCE,
    DEFAULT_ACL_TYPE,
    DefaultPrivilegeRecord,
    PrivilegeGrant,
    RelationSecurity,
    RoleSettings,
    RoutineSecurity,
)

log = logging.getLogger(__name__)

_DEFAULT_ACL_OBJECT_TYPES = {
    DEFAULT_ACL_RELATION: "table",
    DEFAULT_ACL_SEQUENCE: "sequence",
    DEFAULT_ACL_ROUTINE: "routine",
    DEFAULT_ACL_TYPE: "type",
    DEFAULT_ACL_SCHEMA: "schema",
}

# Bare role names, as pg_roles and information_schema report them; a
# regrole cast would quote names such as "App-Reader".
_GRANTEE = (
    "CASE WHEN acl.grantee = 0 THEN 'PUBLIC' "
    "ELSE (SELECT gr.rolname FROM pg_catalog.pg_roles gr WHERE gr.oid = acl.grantee) END"
)

_ZONE_EXISTS = text(
    "SELECT EXISTS (SELECT 1 FROM pg_catalog.pg_namespace WHERE nspname = :zone)"
)

_ROLE_EXISTS = text(
    "SELECT EXISTS (SELECT 1 FROM pg_catalog.pg_roles WHERE rolname = :role)"
)

# Plain views are excluded: they cannot carry row-level security.
_RELATIONS = text(
    """
    SELECT
      n.nspname AS zone,
      c.relname AS name,
      CASE c.relkind
        WHEN 'r' THEN 'table'
        WHEN 'm' THEN 'materialized view'
      END AS object_type,
      c.relrowsecurity AS rls_enabled
    FROM pg_catalog.pg_class c
    JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
    WHERE n.nspname = :zone
      AND c.relkind IN ('r', 'm')
    ORDER BY c.relname
    """
)

_ROUTINES = text(
    """
    SELECT
      n.nspname AS zone,
      p.proname AS name,
      pg_catalog.pg_get_function_identity_arguments(p.oid) AS arguments,
      CASE p.prokind WHEN 'p' THEN 'procedure' ELSE 'function' END AS routine_type,
      p.prosecdef AS security_definer
    FROM pg_catalog.pg_proc p
    JOIN pg_catalog.pg_namespace n ON n.oid = p.pronamespace
    WHERE n.nspname = :zone
      AND p.prokind IN ('f', 'p')
    ORDER BY p.proname, arguments
    """
)

_ZONE_USAGE = text(
    """
    SELECT r.rolname AS grantee
    FROM pg_catalog.pg_roles r
    WHERE pg_catalog.has_schema_privilege(r.oid, :zone, 'USAGE')
    ORDER BY r.rolname ASC
    """
)

_DEFAULT_PRIVILEGES = text(
    f"""
    SELECT
      n.nspname AS zone,
      d.defaclobjtype::text AS object_type,
      acl.privilege_type AS privilege,
      {_GRANTEE} AS grantee
    FROM pg_catalog.pg_default_acl d
    JOIN pg_catalog.pg_namespace n ON n.oid = d.defaclnamespace
    CROSS JOIN LATERAL pg_catalog.aclexplode(d.defaclacl) AS acl
    WHERE n.nspname = :zone
      AND d.defaclobjtype::text IN :object_types
    ORDER BY grantee, privilege
    """
).bindparams(bindparam("object_types", expanding=True))

# A NULL relacl means the built-in defaults (owner holds everything); expand
# it so the owner shows up as a grantee, as information_schema does.
_RELATION_GRANTS = text(
    f"""
    SELECT
      n.nspname AS zone,
      c.relname AS object_name,
      CASE c.relkind
        WHEN 'r' THEN 'table'
        WHEN 'p' THEN 'partitioned table'
        WHEN 'v' THEN 'view'
        WHEN 'm' THEN 'materialized view'
        WHEN 'f' THEN 'foreign table'
      END AS object_type,
      {_GRANTEE} AS grantee,
      acl.privilege_type AS privilege
    FROM pg_catalog.pg_class c
    JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
    CROSS JOIN LATERAL pg_catalog.aclexplode(
      COALESCE(c.relacl, pg_catalog.acldefault('r', c.relowner))
    ) AS acl
    WHERE n.nspname = :zone
      AND c.relkind IN ('r', 'p', 'v', 'm', 'f')
    ORDER BY c.relname, grantee, privilege
    """
)

_ROUTINE_GRANTS = text(
    f"""
    SELECT
      n.nspname AS zone,
      p.proname || '(' || pg_catalog.pg_get_function_identity_arguments(p.oid) || ')'
        AS object_name,
      CASE p.prokind WHEN 'p' THEN 'procedure' ELSE 'function' END AS object_type,
      {_GRANTEE} AS grantee,
      acl.privilege_type AS privilege
    FROM pg_catalog.pg_proc p
    JOIN pg_catalog.pg_namespace n ON n.oid = p.pronamespace
    LEFT JOIN LATERAL pg_catalog.aclexplode(p.proacl) AS acl ON TRUE
    WHERE n.nspname = :zone
      AND p.prokind IN ('f', 'p')
    ORDER BY object_name, grantee, privilege
    """
)

# Database-specific rows sort first so their entries take precedence.
_ROLE_SETTINGS = text(
    """
    SELECT s.setconfig AS entries
    FROM pg_catalog.pg_db_role_setting s
    JOIN pg_catalog.pg_roles r ON r.oid = s.setrole
    WHERE r.rolname = :role
      AND s.setdatabase IN (
        0,
        (SELECT d.oid FROM pg_catalog.pg_database d
         WHERE d.datname = pg_catalog.current_database())
      )
    ORDER BY s.setdatabase DESC
    """
)


class PostgresCatalogAdapter:
    """Read-only adapter around the PostgreSQL system catalogs.

    The connection is owned by the caller; this adapter never opens, commits
    or closes it.
    """

    def __init__(self, conn: Connection) -> None:
        self.conn = conn

    def _fetch(
        self, stmt: TextClause, label: str, **params: Any
    ) -> list[Mapping[str, Any]]:
        """Run a catalog query and return its rows as mappings."""
        log.debug("Catalog query %s %s", label, params)
        try:
            rows = self.conn.execute(stmt, params).mappings().all()
        except SQLAlchemyError as exc:
            # Leave the connection usable for the caller's next check.
            if self.conn.in_transaction():
                self.conn.rollback()
            raise CatalogError(f"Catalog query '{label}' failed: {exc}") from exc
        log.debug("Catalog query %s returned %d row(s)", label, len(rows))
        return list(rows)

    def _exists(self, stmt: TextClause, label: str, **params: Any) -> bool:
        rows = self._fetch(stmt, label, **params)
        return bool(rows and next(iter(rows[0].values())))

    def zone_exists(self, zone: str) -> bool:
        """Return True if a schema with this exact name exists."""
        return self._exists(_ZONE_EXISTS, "zone_exists", zone=zone)

    def role_exists(self, role: str) -> bool:
        """Return True if a role with this exact name exists."""
        return self._exists(_ROLE_EXISTS, "role_exists", role=role)

    def list_relations(self, zone: str) -> list[RelationSecurity]:
        """List tables and materialized views in a zone with their RLS flag."""
        return [
            RelationSecurity(
                zone=row["zone"],
                name=row["name"],
                object_type=row["object_type"],
                rls_enabled=bool(row["rls_enabled"]),
            )
            for row in self._fetch(_RELATIONS, "relations", zone=zone)
        ]

    def list_routines(self, zone: str) -> list[RoutineSecurity]:
        """List functions and procedures in a zone with their security mode."""
        return [
            RoutineSecurity(
                zone=row["zone"],
                name=row["name"],
                arguments=row["arguments"] or "",
                routine_type=row["routine_type"],
                security_definer=bool(row["security_definer"]),
            )
            for row in self._fetch(_ROUTINES, "routines", zone=zone)
        ]

    def list_zone_usage(self, zone: str) -> list[str]:
        """List roles holding USAGE on a zone, ascending by name."""
        rows = self._fetch(_ZONE_USAGE, "zone_usage", zone=zone)
        return [row["grantee"] for row in rows]

    def list_default_privileges(
        self, zone: str, object_types: Sequence[str]
    ) -> list[DefaultPrivilegeRecord]:
        """
        List default ACL entries for a zone.

        Args:
            zone: Schema name.
            object_types: `pg_default_acl.defaclobjtype` codes to include
                          (see the DEFAULT_ACL_* constants).
        """
        rows = self._fetch(
            _DEFAULT_PRIVILEGES,
            "default_privileges",
            zone=zone,
            object_types=list(object_types),
        )
        return [
            DefaultPrivilegeRecord(
                zone=row["zone"],
                object_type=_DEFAULT_ACL_OBJECT_TYPES.get(
                    row["object_type"], row["object_type"]
                ),
                privilege=row["privilege"],
                grantee=row["grantee"],
            )
            for row in rows
        ]

    def list_relation_grants(self, zone: str) -> list[PrivilegeGrant]:
        """List per-relation, per-grantee privileges in a zone."""
        return [
            _grant_from_row(row)
            for row in self._fetch(_RELATION_GRANTS, "relation_grants", zone=zone)
        ]

    def list_routine_grants(self, zone: str) -> list[PrivilegeGrant]:
        """
        List per-routine, per-grantee privileges in a zone.

        Routines without an explicit ACL contribute no grants.
        """
        rows = self._fetch(_ROUTINE_GRANTS, "routine_grants", zone=zone)
        return [_grant_from_row(row) for row in rows if row["grantee"] is not None]

    def get_role_settings(self, role: str) -> RoleSettings:
        """Return persisted configuration entries that apply to a role here."""
        rows = self._fetch(_ROLE_SETTINGS, "role_settings", role=role)
        entries: list[str] = []
        for row in rows:
            entries.extend(row["entries"] or [])
        return RoleSettings(role=role, entries=tuple(entries))


def _grant_from_row(row: Mapping[str, Any]) -> PrivilegeGrant:
    return PrivilegeGrant(
        zone=row["zone"],
        object_name=row["object_name"],
        object_type=row["object_type"],
        grantee=row["grantee"],
        privilege=row["privilege"],
    )
