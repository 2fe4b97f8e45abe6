"""groundwater_etl.store

Entity resolution and upserts for wells, sampling events and measurements.

Every function takes the psycopg connection explicitly and issues only
parameterized statements.  None of them manage transactions; the row
pipeline wraps each row's calls in a single transaction.

Resolution rules:
  well        : (source_code, well_code) exact match, then nearest stored
                well within the spatial tolerance, then INSERT.  A match is
                field-merged (identifiers protected, descriptive fields
                refreshed).
  sampling    : null-safe match on (well_id, campaign, sample_date, year);
                immutable once created.
  measurement : match on (sampling_id, param_code); values merged with
                incoming-wins-if-non-null per field.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date
from typing import NamedTuple

import psycopg

from groundwater_etl.merge import (
    MEASUREMENT_FIELD_POLICIES,
    WELL_FIELD_POLICIES,
    merge_record,
)
from groundwater_etl.shared import InvalidInputError

log = logging.getLogger(__name__)

DEFAULT_SPATIAL_TOLERANCE = 1.0

MATCHED_BY_CODE = "code"
MATCHED_BY_COORDS = "coords"
INSERTED = "inserted"

_WELL_COLUMNS = (
    "well_id, well_code, source_code, district, locality, "
    "x, y, elevation_m, depth_m"
)
_SAMPLE_COLUMNS = "sampling_id, well_id, campaign, sample_date, year"
_MEASUREMENT_COLUMNS = "sampling_id, param_code, value, value_text, original_unit"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass
class WellInput:
    well_code: str | None = None
    source_code: str | None = None
    district: str | None = None
    locality: str | None = None
    x: float | None = None
    y: float | None = None
    elevation_m: float | None = None
    depth_m: float | None = None


@dataclass
class Well:
    well_id: str
    well_code: str | None
    source_code: str | None
    district: str | None
    locality: str | None
    x: float | None
    y: float | None
    elevation_m: float | None
    depth_m: float | None

    @classmethod
    def from_row(cls, row: tuple) -> Well:
        return cls(str(row[0]), *row[1:9])


class WellResult(NamedTuple):
    well: Well
    matched_by: str


@dataclass
class SampleInput:
    well_id: str | None
    campaign: str | None
    sample_date: str | date | None = None
    year: int | None = None


@dataclass
class SamplingEvent:
    sampling_id: str
    well_id: str
    campaign: str
    sample_date: date | None
    year: int | None

    @classmethod
    def from_row(cls, row: tuple) -> SamplingEvent:
        return cls(str(row[0]), str(row[1]), row[2], row[3], row[4])


@dataclass
class MeasurementInput:
    sampling_id: str | None
    param_code: str | None
    value: float | None = None
    value_text: str | None = None
    original_unit: str | None = None


@dataclass
class Measurement:
    sampling_id: str
    param_code: str
    value: float | None
    value_text: str | None
    original_unit: str | None

    @classmethod
    def from_row(cls, row: tuple) -> Measurement:
        return cls(str(row[0]), *row[1:5])


# ---------------------------------------------------------------------------
# Wells
# ---------------------------------------------------------------------------

def find_well_by_code(
    conn: psycopg.Connection,
    source_code: str,
    well_code: str,
) -> Well | None:
    row = conn.execute(
        f"""
        SELECT {_WELL_COLUMNS}
        FROM well
        WHERE source_code = %s AND well_code = %s
        LIMIT 1
        """,
        (source_code, well_code),
    ).fetchone()
    return Well.from_row(row) if row else None


def find_well_by_coords(
    conn: psycopg.Connection,
    x: float,
    y: float,
    tolerance: float = DEFAULT_SPATIAL_TOLERANCE,
) -> Well | None:
    """Return the nearest well with coordinates if it lies within tolerance.

    The bounding box only prefilters; acceptance is on the planar
    Euclidean distance, inclusive of the tolerance itself.
    """
    row = conn.execute(
        f"""
        SELECT {_WELL_COLUMNS},
               sqrt(power(x - %(x)s, 2) + power(y - %(y)s, 2)) AS distance
        FROM well
        WHERE x IS NOT NULL AND y IS NOT NULL
          AND x BETWEEN %(x)s - %(tol)s AND %(x)s + %(tol)s
          AND y BETWEEN %(y)s - %(tol)s AND %(y)s + %(tol)s
        ORDER BY distance ASC, created_at ASC
        LIMIT 1
        """,
        {"x": float(x), "y": float(y), "tol": float(tolerance)},
    ).fetchone()
    if row is None:
        return None
    if row[9] <= tolerance:
        return Well.from_row(row)
    return None


def insert_well(conn: psycopg.Connection, well_input: WellInput) -> Well:
    row = conn.execute(
        f"""
        INSERT INTO well
          (well_code, source_code, district, locality, x, y, elevation_m, depth_m)
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING {_WELL_COLUMNS}
        """,
        (
            well_input.well_code,
            well_input.source_code,
            well_input.district,
            well_input.locality,
            well_input.x,
            well_input.y,
            well_input.elevation_m,
            well_input.depth_m,
        ),
    ).fetchone()
    return Well.from_row(row)


def merge_well(conn: psycopg.Connection, existing: Well, well_input: WellInput) -> Well:
    """Apply the well field policies and write the merged values back."""
    merged = merge_record(asdict(existing), asdict(well_input), WELL_FIELD_POLICIES)
    row = conn.execute(
        f"""
        UPDATE well
        SET well_code   = %s,
            source_code = %s,
            district    = %s,
            locality    = %s,
            x           = %s,
            y           = %s,
            elevation_m = %s,
            depth_m     = %s
        WHERE well_id = %s
        RETURNING {_WELL_COLUMNS}
        """,
        (
            merged["well_code"],
            merged["source_code"],
            merged["district"],
            merged["locality"],
            merged["x"],
            merged["y"],
            merged["elevation_m"],
            merged["depth_m"],
            existing.well_id,
        ),
    ).fetchone()
    return Well.from_row(row)


def upsert_well(
    conn: psycopg.Connection,
    well_input: WellInput,
    tolerance: float = DEFAULT_SPATIAL_TOLERANCE,
) -> WellResult:
    """Resolve well_input to a stored well, merging or inserting.

    Returns WellResult(well, matched_by) where matched_by is 'code', 'coords' or
    'inserted'.
    """
    if well_input.source_code and well_input.well_code:
        existing = find_well_by_code(conn, well_input.source_code, well_input.well_code)
        if existing is not None:
            return WellResult(merge_well(conn, existing, well_input), MATCHED_BY_CODE)

    if well_input.x is not None and well_input.y is not None:
        existing = find_well_by_coords(conn, well_input.x, well_input.y, tolerance)
        if existing is not None:
            log.debug(
                "well %s matched by coordinates (%s, %s)",
                existing.well_id, well_input.x, well_input.y,
            )
            return WellResult(merge_well(conn, existing, well_input), MATCHED_BY_COORDS)

    return WellResult(insert_well(conn, well_input), INSERTED)


# ---------------------------------------------------------------------------
# Sampling events
# ---------------------------------------------------------------------------

def upsert_sample(
    conn: psycopg.Connection,
    sample: SampleInput,
) -> tuple[SamplingEvent, bool]:
    """Return (event, inserted).  Existing events are returned unchanged."""
    if not sample.well_id:
        raise InvalidInputError("upsert_sample: well_id is required")
    if not sample.campaign:
        raise InvalidInputError("upsert_sample: campaign is required")

    found = conn.execute(
        f"""
        SELECT {_SAMPLE_COLUMNS}
        FROM sampling_event
        WHERE well_id = %s
          AND campaign = %s
          AND sample_date IS NOT DISTINCT FROM %s::date
          AND year IS NOT DISTINCT FROM %s::integer
        ORDER BY created_at ASC
        LIMIT 1
        """,
        (sample.well_id, sample.campaign, sample.sample_date, sample.year),
    ).fetchone()
    if found:
        return SamplingEvent.from_row(found), False

    row = conn.execute(
        f"""
        INSERT INTO sampling_event (well_id, campaign, sample_date, year)
        VALUES (%s, %s, %s::date, %s::integer)
        RETURNING {_SAMPLE_COLUMNS}
        """,
        (sample.well_id, sample.campaign, sample.sample_date, sample.year),
    ).fetchone()
    return SamplingEvent.from_row(row), True


# ---------------------------------------------------------------------------
# Measurements
# ---------------------------------------------------------------------------

def upsert_measurement(
    conn: psycopg.Connection,
    measurement: MeasurementInput,
) -> tuple[Measurement, bool]:
    """Return (measurement, inserted).  Matches are merged per field."""
    if not measurement.sampling_id or not measurement.param_code:
        raise InvalidInputError(
            "upsert_measurement: sampling_id and param_code are required"
        )

    found = conn.execute(
        f"""
        SELECT {_MEASUREMENT_COLUMNS}
        FROM measurement
        WHERE sampling_id = %s AND param_code = %s
        LIMIT 1
        """,
        (measurement.sampling_id, measurement.param_code),
    ).fetchone()

    if found:
        existing = Measurement.from_row(found)
        merged = merge_record(
            asdict(existing), asdict(measurement), MEASUREMENT_FIELD_POLICIES
        )
        row = conn.execute(
            f"""
            UPDATE measurement
            SET value = %s,
                value_text = %s,
                original_unit = %s,
                updated_at = now()
            WHERE sampling_id = %s AND param_code = %s
            RETURNING {_MEASUREMENT_COLUMNS}
            """,
            (
                merged["value"],
                merged["value_text"],
                merged["original_unit"],
                measurement.sampling_id,
                measurement.param_code,
            ),
        ).fetchone()
        return Measurement.from_row(row), False

    row = conn.execute(
        f"""
        INSERT INTO measurement (sampling_id, param_code, value, value_text, original_unit)
        VALUES (%s, %s, %s, %s, %s)
        RETURNING {_MEASUREMENT_COLUMNS}
        """,
        (
            measurement.sampling_id,
            measurement.param_code,
            measurement.value,
            measurement.value_text,
            measurement.original_unit,
        ),
    ).fetchone()
    return Measurement.from_row(row), True
