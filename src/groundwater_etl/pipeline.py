"""groundwater_etl.pipeline

Campaign-agnostic row pipeline.  One implementation serves every campaign;
the CampaignProfile supplies the layout differences.

Processing order per row (one transaction per row):
  1. Build the well input from the profile's meta columns, upsert the well.
  2. Derive sample date/year (with the profile's defaults), upsert the
     sampling event.
  3. For every non-meta column: resolve header -> parameter, normalize the
     cell, upsert a measurement when the cell carries a value or text.

A failing row is rolled back on its own, logged, counted and written to the
rejects file; the run continues with the next row.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Sequence

import click
import psycopg
from psycopg import pq

from groundwater_etl.aliases import ParameterMapping, build_alias_map, resolve_column
from groundwater_etl.campaigns import CampaignProfile
from groundwater_etl.normalize import normalize_cell, parse_header
from groundwater_etl.shared import RejectWriter, RunCounters, UnresolvedFileError
from groundwater_etl.store import (
    INSERTED,
    MATCHED_BY_CODE,
    MATCHED_BY_COORDS,
    MeasurementInput,
    SampleInput,
    upsert_measurement,
    upsert_sample,
    upsert_well,
)
from groundwater_etl.workbook import read_workbook_rows, resolve_source_file

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Per-row processing
# ---------------------------------------------------------------------------

def process_row(
    conn: psycopg.Connection,
    row: Mapping[str, Any],
    profile: CampaignProfile,
    alias_map: Mapping[str, ParameterMapping],
    counters: RunCounters,
    tolerance: float,
) -> None:
    """Process one row.  Caller manages the transaction."""
    well, matched_by = upsert_well(conn, profile.build_well_input(row), tolerance)
    if matched_by == MATCHED_BY_CODE:
        counters.wells_matched_by_code += 1
    elif matched_by == MATCHED_BY_COORDS:
        counters.wells_matched_by_coords += 1
    elif matched_by == INSERTED:
        counters.wells_inserted += 1

    sample_date, year, defaulted = profile.sample_date_and_year(row)
    if defaulted:
        counters.dates_defaulted += 1
    event, inserted = upsert_sample(
        conn,
        SampleInput(
            well_id=well.well_id,
            campaign=profile.campaign,
            sample_date=sample_date,
            year=year,
        ),
    )
    if inserted:
        counters.samples_inserted += 1
    else:
        counters.samples_matched_existing += 1

    meta_columns = profile.meta_columns
    for col, raw_value in row.items():
        if col in meta_columns:
            continue
        if parse_header(col).alias is None:
            continue

        mapping = resolve_column(col, alias_map, profile.alias_fallbacks)
        if mapping is None:
            counters.unmapped_columns.add(str(col).strip())
            continue

        cell = normalize_cell(raw_value)
        if cell.is_empty:
            counters.cells_empty += 1
            continue

        _, inserted = upsert_measurement(
            conn,
            MeasurementInput(
                sampling_id=event.sampling_id,
                param_code=mapping.param_code,
                value=cell.value,
                value_text=cell.text,
                original_unit=mapping.unit_hint,
            ),
        )
        if inserted:
            counters.measurements_inserted += 1
        else:
            counters.measurements_merged += 1


def _record_failure(
    row: Mapping[str, Any],
    idx: int,
    exc: Exception,
    run_id: str,
    counters: RunCounters,
    rejects: RejectWriter | None,
) -> None:
    # +2: one for the header row, one for 1-based spreadsheet numbering
    sheet_row = idx + 2
    reason = f"{type(exc).__name__}: {exc}"
    log.warning("[%s] row %d failed: %s", run_id, sheet_row, reason)
    counters.failed += 1
    counters.warnings.append(f"[{run_id}] row {sheet_row} {reason}")
    if rejects is not None:
        rejects.write({**row, "_sheet_row": sheet_row}, reason)


def _process_rows(
    conn: psycopg.Connection,
    rows: Sequence[Mapping[str, Any]],
    profile: CampaignProfile,
    alias_map: Mapping[str, ParameterMapping],
    run_id: str,
    counters: RunCounters,
    rejects: RejectWriter | None,
    tolerance: float,
) -> None:
    for idx, row in enumerate(rows):
        counters.rows_read += 1
        # per-row tally, folded into the run only once the row commits
        tally = RunCounters()
        try:
            with conn.transaction():
                process_row(conn, row, profile, alias_map, tally, tolerance)
        except Exception as exc:
            counters.unmapped_columns |= tally.unmapped_columns
            _record_failure(row, idx, exc, run_id, counters, rejects)
            continue
        counters.add(tally)
        counters.processed += 1


# ---------------------------------------------------------------------------
# Run over all rows
# ---------------------------------------------------------------------------

def run_rows(
    conn: psycopg.Connection,
    rows: Sequence[Mapping[str, Any]],
    profile: CampaignProfile,
    alias_map: Mapping[str, ParameterMapping],
    run_id: str,
    counters: RunCounters,
    rejects: RejectWriter | None = None,
    tolerance: float | None = None,
    dry_run: bool = False,
) -> RunCounters:
    """Process rows strictly in order, one transaction per row.

    Real run: each row commits on its own, so a failure in row N leaves
    rows 1..N-1 committed.  Dry run: rows become savepoints inside one
    outer transaction that is rolled back at the end.
    """
    tol = profile.spatial_tolerance if tolerance is None else tolerance

    if dry_run:
        with conn.transaction(force_rollback=True):
            _process_rows(conn, rows, profile, alias_map, run_id, counters, rejects, tol)
        click.echo(f"[{run_id}] [dry-run] All changes rolled back.")
        return counters

    # close any open read transaction so each row commits on its own
    if conn.info.transaction_status != pq.TransactionStatus.IDLE:
        conn.commit()
    _process_rows(conn, rows, profile, alias_map, run_id, counters, rejects, tol)
    return counters


def import_rows(
    conn: psycopg.Connection,
    rows: Sequence[Mapping[str, Any]],
    profile: CampaignProfile,
    run_id: str,
    counters: RunCounters,
    rejects: RejectWriter | None = None,
    tolerance: float | None = None,
    dry_run: bool = False,
) -> RunCounters:
    """Build the campaign's alias map, then run every row through the pipeline."""
    alias_map = build_alias_map(conn, profile.campaign)
    conn.commit()
    click.echo(
        f"[{run_id}] {profile.campaign}: {len(alias_map)} aliases loaded, "
        f"{len(rows)} rows to process"
    )

    run_rows(
        conn, rows, profile, alias_map, run_id, counters,
        rejects=rejects, tolerance=tolerance, dry_run=dry_run,
    )

    click.echo(
        f"[{run_id}] {profile.campaign} done: {counters.processed} rows processed, "
        f"{counters.failed} failed, "
        f"{counters.wells_inserted} wells inserted, "
        f"{counters.wells_matched_by_code + counters.wells_matched_by_coords} wells matched, "
        f"{counters.measurements_inserted} measurements inserted, "
        f"{counters.measurements_merged} merged"
    )
    if counters.unmapped_columns:
        click.echo(
            f"[{run_id}] Columns without alias: {sorted(counters.unmapped_columns)}"
        )
    return counters


def run_import(
    conn: psycopg.Connection,
    profile: CampaignProfile,
    run_id: str,
    counters: RunCounters,
    data_dir: Path | None = None,
    xlsx_path: Path | None = None,
    sheet: str | None = None,
    rejects: RejectWriter | None = None,
    tolerance: float | None = None,
    dry_run: bool = False,
) -> Path:
    """Resolve the campaign workbook, read it and import every row.

    xlsx_path wins over the profile's source_files candidates under
    data_dir.  Raises UnresolvedFileError when no workbook can be found.
    Returns the workbook path that was read.
    """
    if xlsx_path is not None:
        workbook_path = Path(xlsx_path)
        if not workbook_path.is_file():
            raise UnresolvedFileError(f"workbook not found: {workbook_path}")
    else:
        workbook_path = resolve_source_file(profile.source_files, Path(data_dir or "."))

    click.echo(f"[{run_id}] Reading: {workbook_path}")
    rows = read_workbook_rows(workbook_path, sheet or profile.sheet)
    import_rows(
        conn, rows, profile, run_id, counters,
        rejects=rejects, tolerance=tolerance, dry_run=dry_run,
    )
    return workbook_path
