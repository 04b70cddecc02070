"""Decoding of a role's persisted `search_path` setting.

PostgreSQL stores per-role configuration as a text array of `key=value`
entries (`pg_db_role_setting.setconfig`). This module turns that weakly
typed representation into a `SearchPath`, distinguishing a missing setting
from one that is present but cannot be decoded.
"""

from __future__ import annotations

import logging
from typing import Iterable

from zoneguard.core.errors import SearchPathMalformed, SearchPathNotSet
from zoneguard.core.models import SearchPath

log = logging.getLogger(__name__)

SEARCH_PATH_KEY = "search_path"


def find_setting(entries: Iterable[str], key: str) -> str | None:
    """
    Return the raw value of `key` from a list of `key=value` entries.

    Keys are compared case-insensitively. Returns None if the key is absent.
    """
    want = key.lower()
    for entry in entries:
        name, sep, value = entry.partition("=")
        if sep and name.strip().lower() == want:
            return value
    return None


def parse_search_path(value: str) -> SearchPath:
    """
    Parse a raw search_path value such as `api, "private"` into zone names.

    Quotes are removed, elements split on commas, whitespace trimmed and
    names lowercased.

    Raises:
        SearchPathMalformed: If the value is blank or has an empty element.
    """
    cleaned = value.replace('"', "").replace("'", "")
    if not cleaned.strip():
        raise SearchPathMalformed(f"search_path value is empty: {value!r}")

    zones = tuple(part.strip().lower() for part in cleaned.split(","))
    if any(not zone for zone in zones):
        raise SearchPathMalformed(f"search_path has an empty element: {value!r}")
    return SearchPath(zones=zones)


def decode_search_path(entries: Iterable[str] | None) -> SearchPath:
    """
    Decode the search_path from a role's persisted configuration entries.

    Args:
        entries: The role's `setconfig` entries (may be None or empty).

    Returns:
        The decoded SearchPath.

    Raises:
        SearchPathNotSet: If no explicit search_path is configured.
        SearchPathMalformed: If the setting exists but cannot be decoded.
    """
    entries = list(entries or [])
    if not entries:
        raise SearchPathNotSet("no role configuration is persisted")

    value = find_setting(entries, SEARCH_PATH_KEY)
    if value is None:
        raise SearchPathNotSet(
            f"role configuration has no {SEARCH_PATH_KEY} entry "
            f"({len(entries)} other setting(s))"
        )

    path = parse_search_path(value)
    log.debug("Decoded search_path %r -> %s", value, path.zones)
    return path
