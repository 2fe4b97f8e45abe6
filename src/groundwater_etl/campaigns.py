"""groundwater_etl.campaigns

YAML campaign profiles: one file per historical survey campaign.

A profile is the adapter between a campaign's spreadsheet layout and the
shared row pipeline.  It names the meta columns that describe the well and
the sampling visit, the text date formats the campaign used, the year and
date defaults applied when a row carries no usable date, and hard-coded
alias fallbacks for headers the alias table does not know.

Usage:
    from pathlib import Path
    from groundwater_etl.campaigns import load_campaign_profile

    profile = load_campaign_profile(Path("config/campaigns/ga_calidad_fp_2018.yml"))
    well_input = profile.build_well_input(row)
    sample_date, year, defaulted = profile.sample_date_and_year(row)
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from groundwater_etl.normalize import (
    DEFAULT_DATE_FORMATS,
    normalize_code,
    normalize_date,
    normalize_number,
    normalize_space,
    normalize_text,
)
from groundwater_etl.store import DEFAULT_SPATIAL_TOLERANCE, WellInput

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

REQUIRED_YAML_KEYS = frozenset({"campaign", "default_year", "well_columns"})

WELL_TEXT_FIELDS = frozenset({"district", "locality"})
WELL_NUMERIC_FIELDS = frozenset({"x", "y", "elevation_m", "depth_m"})
WELL_FIELDS = WELL_TEXT_FIELDS | WELL_NUMERIC_FIELDS | {"well_code"}

SAMPLE_FIELDS = frozenset({"date", "year"})

VALID_DATE_FALLBACKS = ("none", "year_start")

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class CampaignProfileError(ValueError):
    """Raised when a YAML campaign profile fails schema validation."""


# ---------------------------------------------------------------------------
# CampaignProfile dataclass
# ---------------------------------------------------------------------------

@dataclass
class CampaignProfile:
    """Parsed, validated campaign profile loaded from a YAML file."""

    campaign: str
    source_code: str
    default_year: int
    well_columns: dict[str, str]
    sample_columns: dict[str, str] = field(default_factory=dict)
    ignore_columns: list[str] = field(default_factory=list)
    date_formats: list[str] = field(default_factory=lambda: list(DEFAULT_DATE_FORMATS))
    date_fallback: str = "none"
    alias_fallbacks: dict[str, str] = field(default_factory=dict)
    source_files: list[str] = field(default_factory=list)
    spatial_tolerance: float = DEFAULT_SPATIAL_TOLERANCE
    sheet: str | None = None

    @property
    def meta_columns(self) -> frozenset[str]:
        """Headers consumed by the well/sample adapter, never measurements."""
        return frozenset(
            list(self.well_columns.values())
            + list(self.sample_columns.values())
            + list(self.ignore_columns)
        )

    def _cell(self, row: dict[str, Any], columns: dict[str, str], key: str) -> Any:
        col = columns.get(key)
        if col is None:
            return None
        return row.get(col)

    def build_well_input(self, row: dict[str, Any]) -> WellInput:
        """Map this campaign's meta columns onto the shared well shape."""
        cols = self.well_columns
        return WellInput(
            well_code=normalize_code(self._cell(row, cols, "well_code")),
            source_code=self.source_code,
            district=normalize_space(normalize_text(self._cell(row, cols, "district"))),
            locality=normalize_space(normalize_text(self._cell(row, cols, "locality"))),
            x=normalize_number(self._cell(row, cols, "x")),
            y=normalize_number(self._cell(row, cols, "y")),
            elevation_m=normalize_number(self._cell(row, cols, "elevation_m")),
            depth_m=normalize_number(self._cell(row, cols, "depth_m")),
        )

    def sample_date_and_year(self, row: dict[str, Any]) -> tuple[str | None, int, bool]:
        """Return (sample_date, year, defaulted) for a row.

        A parseable date fixes both values.  Without one the year comes from
        the year column, then from default_year; the date becomes January 1st
        of that year only when date_fallback is 'year_start'.  defaulted is
        True whenever any default was applied.
        """
        sample_date = normalize_date(
            self._cell(row, self.sample_columns, "date"), self.date_formats
        )
        if sample_date is not None:
            return sample_date, int(sample_date[:4]), False

        year_num = normalize_number(self._cell(row, self.sample_columns, "year"))
        if year_num is not None and math.isfinite(year_num):
            year = math.trunc(year_num)
        else:
            year = self.default_year

        if self.date_fallback == "year_start":
            return f"{year:04d}-01-01", year, True
        return None, year, True


# ---------------------------------------------------------------------------
# Loader + validator
# ---------------------------------------------------------------------------

def load_campaign_profile(yaml_path: Path) -> CampaignProfile:
    """Load, validate, and return a CampaignProfile from a YAML file.

    Raises:
        CampaignProfileError: If any required field is missing or invalid.
        FileNotFoundError: If the YAML file does not exist.
    """
    raw = yaml_path.read_text(encoding="utf-8")
    data: dict[str, Any] = yaml.safe_load(raw)
    validate_campaign_profile(data)
    campaign = str(data["campaign"])
    return CampaignProfile(
        campaign=campaign,
        source_code=str(data.get("source_code") or campaign),
        default_year=int(data["default_year"]),
        well_columns={k: str(v) for k, v in data["well_columns"].items() if v is not None},
        sample_columns={
            k: str(v) for k, v in (data.get("sample_columns") or {}).items() if v is not None
        },
        ignore_columns=[str(c) for c in (data.get("ignore_columns") or [])],
        date_formats=[str(f) for f in (data.get("date_formats") or DEFAULT_DATE_FORMATS)],
        date_fallback=str(data.get("date_fallback") or "none"),
        alias_fallbacks={
            str(k): str(v) for k, v in (data.get("alias_fallbacks") or {}).items()
        },
        source_files=[str(f) for f in (data.get("source_files") or [])],
        spatial_tolerance=float(data.get("spatial_tolerance", DEFAULT_SPATIAL_TOLERANCE)),
        sheet=data.get("sheet"),
    )


def validate_campaign_profile(data: dict[str, Any]) -> None:
    """Raise CampaignProfileError if data does not match the profile schema."""
    if not isinstance(data, dict):
        raise CampaignProfileError("YAML root must be a mapping.")

    missing_keys = REQUIRED_YAML_KEYS - set(data.keys())
    if missing_keys:
        raise CampaignProfileError(f"Missing required YAML keys: {sorted(missing_keys)}")

    if not str(data["campaign"]).strip():
        raise CampaignProfileError("'campaign' must not be blank.")

    try:
        int(data["default_year"])
    except (TypeError, ValueError):
        raise CampaignProfileError(
            f"'default_year' value '{data['default_year']}' is not an integer."
        )

    well_columns = data.get("well_columns")
    if not isinstance(well_columns, dict) or not well_columns:
        raise CampaignProfileError("'well_columns' must be a non-empty mapping.")
    unknown = set(well_columns) - WELL_FIELDS
    if unknown:
        raise CampaignProfileError(
            f"Unknown well_columns fields {sorted(unknown)}. Must be among {sorted(WELL_FIELDS)}."
        )

    sample_columns = data.get("sample_columns") or {}
    if not isinstance(sample_columns, dict):
        raise CampaignProfileError("'sample_columns' must be a mapping.")
    unknown = set(sample_columns) - SAMPLE_FIELDS
    if unknown:
        raise CampaignProfileError(
            f"Unknown sample_columns fields {sorted(unknown)}. Must be among {sorted(SAMPLE_FIELDS)}."
        )

    date_fallback = data.get("date_fallback") or "none"
    if date_fallback not in VALID_DATE_FALLBACKS:
        raise CampaignProfileError(
            f"Invalid date_fallback '{date_fallback}'. Must be one of {list(VALID_DATE_FALLBACKS)}."
        )

    if "spatial_tolerance" in data:
        try:
            tol = float(data["spatial_tolerance"])
        except (TypeError, ValueError):
            raise CampaignProfileError(
                f"'spatial_tolerance' value '{data['spatial_tolerance']}' is not numeric."
            )
        if tol < 0:
            raise CampaignProfileError(f"'spatial_tolerance' value {tol} must be >= 0.")

    fallbacks = data.get("alias_fallbacks") or {}
    if not isinstance(fallbacks, dict):
        raise CampaignProfileError("'alias_fallbacks' must be a mapping of alias -> param_code.")
