"""Declarative policy suites.

A policy document lists, per zone and per role, which invariants to check
and with which expected principals:

    zones:
      api:
        rls-enabled: true
        zone-access: [anon, authenticated, service_role, postgres]
    roles:
      anon:
        search-path: true

The loader turns the document into CheckInvocations in document order.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

import yaml

from zoneguard.core.errors import PolicyFileError
from zoneguard.core.rules import (
    DEFAULT_REGISTRY,
    RuleParams,
    RuleRegistry,
    SubjectType,
)
from zoneguard.core.suite import CheckInvocation

_SECTIONS = {"zones": SubjectType.ZONE, "roles": SubjectType.ROLE}


def _role_list(value: Any, where: str) -> tuple[str, ...]:
    """Return role names, splicing in nested lists (`[anon, *shared_roles]`)."""
    if not isinstance(value, list):
        raise PolicyFileError(f"{where}: expected a list of role names")
    roles: list[str] = []
    for item in value:
        roles.extend(item if isinstance(item, list) else [item])
    if not all(isinstance(role, str) for role in roles):
        raise PolicyFileError(f"{where}: expected a list of role names")
    return tuple(roles)


def _search_path_params(value: Any, where: str) -> RuleParams:
    if value is True:
        return RuleParams()
    if not isinstance(value, Mapping):
        raise PolicyFileError(f"{where}: expected true or a mapping of require/forbid")
    unknown = set(value) - {"require", "forbid"}
    if unknown:
        raise PolicyFileError(f"{where}: unknown keys {sorted(unknown)}")
    defaults = RuleParams()
    params = RuleParams(
        required_zone=value.get("require", defaults.required_zone),
        forbidden_zone=value.get("forbid", defaults.forbidden_zone),
    )
    if not isinstance(params.required_zone, str) or not isinstance(
        params.forbidden_zone, str
    ):
        raise PolicyFileError(f"{where}: require/forbid must be zone names")
    return params


def parse_policy(
    document: Any, registry: RuleRegistry | None = None
) -> list[CheckInvocation]:
    """
    Build check invocations from a parsed policy document.

    Raises:
        PolicyFileError: If the document structure is invalid.
    """
    registry = registry or DEFAULT_REGISTRY
    if document is None:
        return []
    if not isinstance(document, Mapping):
        raise PolicyFileError("Policy document must be a mapping")

    # `x-` keys hold YAML anchors shared by several rules.
    unknown_sections = {
        key for key in document if not str(key).startswith("x-")
    } - set(_SECTIONS)
    if unknown_sections:
        raise PolicyFileError(f"Unknown policy sections: {sorted(unknown_sections)}")

    invocations: list[CheckInvocation] = []
    for section, subject_type in _SECTIONS.items():
        subjects = document.get(section) or {}
        if not isinstance(subjects, Mapping):
            raise PolicyFileError(f"'{section}' must map names to rule settings")

        for subject, rules in subjects.items():
            if not isinstance(rules, Mapping):
                raise PolicyFileError(f"{section}.{subject}: expected a mapping of rules")

            for rule_name, value in rules.items():
                where = f"{section}.{subject}.{rule_name}"
                try:
                    rule = registry.get(str(rule_name))
                except ValueError as exc:
                    raise PolicyFileError(f"{where}: {exc}") from exc
                if rule.subject_type is not subject_type:
                    raise PolicyFileError(
                        f"{where}: rule applies to a {rule.subject_type.value}, "
                        f"not a {subject_type.value}"
                    )
                if value is False or value is None:
                    continue

                if rule.requires_roles:
                    params = RuleParams(roles=_role_list(value, where))
                elif rule.subject_type is SubjectType.ROLE:
                    params = _search_path_params(value, where)
                elif value is True:
                    params = RuleParams()
                else:
                    raise PolicyFileError(f"{where}: expected true or false")

                invocations.append(
                    CheckInvocation(kind=rule.kind, subject=str(subject), params=params)
                )
    return invocations


def load_policy(
    path: str | Path, registry: RuleRegistry | None = None
) -> list[CheckInvocation]:
    """Read a YAML policy file and return its check invocations."""
    path = Path(path)
    try:
        document = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise PolicyFileError(f"Cannot read policy file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise PolicyFileError(f"Invalid YAML in {path}: {exc}") from exc
    return parse_policy(document, registry)
