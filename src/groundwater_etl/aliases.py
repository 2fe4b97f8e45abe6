"""groundwater_etl.aliases

Column header -> canonical parameter resolution.

The alias map is built once per run from param_alias/param_catalog.  Rows
scoped to the importing campaign are read before generic rows and the first
row per alias wins, so a campaign override always shadows the generic
spelling.

Header lookup chain, first hit wins:
  1. raw header exactly as read from the workbook
  2. trimmed header
  3. header with a trailing "(unit)" removed
  4. the campaign's hard-coded fallback table (trimmed header, then alias)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import psycopg

from groundwater_etl.normalize import parse_header


@dataclass(frozen=True)
class ParameterMapping:
    param_code: str
    standard_unit: str | None
    param_name: str | None


@dataclass(frozen=True)
class ColumnMapping:
    header: str
    param_code: str
    unit_hint: str | None
    matched_via: str
    standard_unit: str | None = None
    param_name: str | None = None


def alias_map_from_rows(
    rows: Iterable[tuple[str, str, str | None, str | None]],
) -> dict[str, ParameterMapping]:
    """Fold (alias, param_code, standard_unit, param_name) rows, first write wins."""
    alias_map: dict[str, ParameterMapping] = {}
    for alias, param_code, standard_unit, param_name in rows:
        if alias in alias_map:
            continue
        alias_map[alias] = ParameterMapping(param_code, standard_unit, param_name)
    return alias_map


def build_alias_map(
    conn: psycopg.Connection,
    campaign: str,
) -> dict[str, ParameterMapping]:
    rows = conn.execute(
        """
        SELECT pa.alias, pa.param_code, pc.standard_unit, pc.param_name
        FROM param_alias pa
        JOIN param_catalog pc ON pc.param_code = pa.param_code
        WHERE pa.campaign IS NULL OR pa.campaign = %s
        ORDER BY (pa.campaign IS NOT NULL) DESC, pa.alias ASC
        """,
        (campaign,),
    ).fetchall()
    return alias_map_from_rows(rows)


def resolve_column(
    header: Any,
    alias_map: Mapping[str, ParameterMapping],
    fallbacks: Mapping[str, str] | None = None,
) -> ColumnMapping | None:
    """Resolve one workbook header to a parameter, or None when unmapped."""
    raw = "" if header is None else str(header)
    trimmed = raw.strip()
    parts = parse_header(raw)
    if parts.alias is None:
        return None

    for via, key in (("raw", raw), ("trimmed", trimmed), ("alias", parts.alias)):
        found = alias_map.get(key)
        if found is not None:
            return ColumnMapping(
                header=trimmed,
                param_code=found.param_code,
                unit_hint=parts.unit_hint,
                matched_via=via,
                standard_unit=found.standard_unit,
                param_name=found.param_name,
            )

    if fallbacks:
        param_code = fallbacks.get(trimmed) or fallbacks.get(parts.alias)
        if param_code:
            return ColumnMapping(
                header=trimmed,
                param_code=param_code,
                unit_hint=parts.unit_hint,
                matched_via="fallback",
            )
    return None
