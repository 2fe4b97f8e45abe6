"""groundwater_etl.merge

Field-level merge policies applied when an incoming record matches a stored
entity.

Two strategies:
  protected_wins: the stored value is kept once it is non-null; the
                  incoming value only fills a gap.  Used for identifiers.
  incoming_wins : the incoming value replaces the stored one whenever it is
                  non-null.  Used for descriptive attributes and
                  measurement values.

Each entity declares a field -> strategy table; merge_record applies it.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping

MergeStrategy = Callable[[Any, Any], Any]


def protected_wins(existing: Any, incoming: Any) -> Any:
    return existing if existing is not None else incoming


def incoming_wins(existing: Any, incoming: Any) -> Any:
    return incoming if incoming is not None else existing


WELL_FIELD_POLICIES: dict[str, MergeStrategy] = {
    "well_code": protected_wins,
    "source_code": protected_wins,
    "district": incoming_wins,
    "locality": incoming_wins,
    "x": incoming_wins,
    "y": incoming_wins,
    "elevation_m": incoming_wins,
    "depth_m": incoming_wins,
}

MEASUREMENT_FIELD_POLICIES: dict[str, MergeStrategy] = {
    "value": incoming_wins,
    "value_text": incoming_wins,
    "original_unit": incoming_wins,
}


def merge_record(
    existing: Mapping[str, Any],
    incoming: Mapping[str, Any],
    policies: Mapping[str, MergeStrategy],
) -> dict[str, Any]:
    """Return merged values for every field named in policies."""
    return {
        name: strategy(existing.get(name), incoming.get(name))
        for name, strategy in policies.items()
    }
