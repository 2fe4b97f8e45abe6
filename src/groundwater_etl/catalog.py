"""groundwater_etl.catalog

Parameter catalog seeding: loads config/parameters.yml and writes it into
param_catalog and param_alias, the reference data imports read their alias
map from.

YAML shape:
    version: 1
    parameters:
      - param_code: chloride
        param_name: Cloruros
        standard_unit: mg/L
        aliases: [Cl, Cloruros]
        campaign_aliases:
          GA_calidad_FP_2018: [Cl_mg_L]

Seeding is idempotent: parameters are upserted, aliases inserted when
absent and re-pointed when their param_code changed.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import psycopg
import yaml


class CatalogValidationError(ValueError):
    """Raised when the parameter catalog YAML fails schema validation."""


@dataclass
class AliasEntry:
    alias: str
    campaign: str | None


@dataclass
class ParameterEntry:
    param_code: str
    param_name: str
    standard_unit: str | None
    aliases: list[AliasEntry] = field(default_factory=list)


@dataclass
class ParameterCatalog:
    version: str
    yaml_hash: str
    parameters: list[ParameterEntry]


@dataclass
class CatalogCounters:
    parameters_upserted: int = 0
    aliases_inserted: int = 0
    aliases_repointed: int = 0
    aliases_unchanged: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "parameters_upserted": self.parameters_upserted,
            "aliases_inserted": self.aliases_inserted,
            "aliases_repointed": self.aliases_repointed,
            "aliases_unchanged": self.aliases_unchanged,
        }


# ---------------------------------------------------------------------------
# Loader + validator
# ---------------------------------------------------------------------------

def load_parameter_catalog(yaml_path: Path) -> ParameterCatalog:
    raw = yaml_path.read_text(encoding="utf-8")
    data: dict[str, Any] = yaml.safe_load(raw)
    validate_parameter_catalog(data)

    parameters: list[ParameterEntry] = []
    for item in data["parameters"]:
        aliases = [AliasEntry(str(a), None) for a in item.get("aliases") or []]
        for campaign, names in (item.get("campaign_aliases") or {}).items():
            aliases.extend(AliasEntry(str(a), str(campaign)) for a in names or [])
        parameters.append(
            ParameterEntry(
                param_code=str(item["param_code"]),
                param_name=str(item["param_name"]),
                standard_unit=item.get("standard_unit"),
                aliases=aliases,
            )
        )
    return ParameterCatalog(
        version=str(data.get("version", "1")),
        yaml_hash=hashlib.sha256(raw.encode("utf-8")).hexdigest(),
        parameters=parameters,
    )


def validate_parameter_catalog(data: dict[str, Any]) -> None:
    """Raise CatalogValidationError on a malformed catalog.

    Checks the parameters list, required keys per parameter, unique
    param_codes, and that no alias is claimed twice in the same scope.
    """
    if not isinstance(data, dict):
        raise CatalogValidationError("YAML root must be a mapping.")
    params = data.get("parameters")
    if not isinstance(params, list) or not params:
        raise CatalogValidationError("'parameters' must be a non-empty list.")

    codes: set[str] = set()
    claimed: dict[tuple[str, str | None], str] = {}
    for idx, item in enumerate(params):
        if not isinstance(item, dict):
            raise CatalogValidationError(f"parameters[{idx}] must be a mapping.")
        for key in ("param_code", "param_name"):
            if not item.get(key):
                raise CatalogValidationError(f"parameters[{idx}] missing '{key}'.")
        code = str(item["param_code"])
        if code in codes:
            raise CatalogValidationError(f"Duplicate param_code '{code}'.")
        codes.add(code)

        scoped: list[tuple[str, str | None]] = [
            (str(a), None) for a in item.get("aliases") or []
        ]
        campaign_aliases = item.get("campaign_aliases") or {}
        if not isinstance(campaign_aliases, dict):
            raise CatalogValidationError(
                f"parameters[{idx}].campaign_aliases must be a mapping of campaign -> list."
            )
        for campaign, names in campaign_aliases.items():
            scoped.extend((str(a), str(campaign)) for a in names or [])

        for key in scoped:
            if key in claimed and claimed[key] != code:
                scope = key[1] or "generic"
                raise CatalogValidationError(
                    f"Alias '{key[0]}' ({scope}) claimed by both "
                    f"'{claimed[key]}' and '{code}'."
                )
            claimed[key] = code


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------

def _upsert_parameter(conn: psycopg.Connection, entry: ParameterEntry) -> None:
    conn.execute(
        """
        INSERT INTO param_catalog (param_code, param_name, standard_unit)
        VALUES (%s, %s, %s)
        ON CONFLICT (param_code) DO UPDATE SET
          param_name = EXCLUDED.param_name,
          standard_unit = EXCLUDED.standard_unit
        """,
        (entry.param_code, entry.param_name, entry.standard_unit),
    )


def _upsert_alias(
    conn: psycopg.Connection,
    alias: AliasEntry,
    param_code: str,
    counters: CatalogCounters,
) -> None:
    existing = conn.execute(
        """
        SELECT id, param_code FROM param_alias
        WHERE alias = %s AND campaign IS NOT DISTINCT FROM %s
        """,
        (alias.alias, alias.campaign),
    ).fetchone()
    if existing is None:
        conn.execute(
            "INSERT INTO param_alias (alias, campaign, param_code) VALUES (%s, %s, %s)",
            (alias.alias, alias.campaign, param_code),
        )
        counters.aliases_inserted += 1
        return
    if existing[1] == param_code:
        counters.aliases_unchanged += 1
        return
    conn.execute(
        "UPDATE param_alias SET param_code = %s WHERE id = %s",
        (param_code, existing[0]),
    )
    counters.aliases_repointed += 1


def seed_parameter_catalog(
    conn: psycopg.Connection,
    catalog: ParameterCatalog,
    counters: CatalogCounters | None = None,
) -> CatalogCounters:
    """Write the catalog in one transaction."""
    counters = counters or CatalogCounters()
    with conn.transaction():
        for entry in catalog.parameters:
            _upsert_parameter(conn, entry)
            counters.parameters_upserted += 1
            for alias in entry.aliases:
                _upsert_alias(conn, alias, entry.param_code, counters)
    return counters
