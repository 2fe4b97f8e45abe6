"""groundwater_etl.import_survey

Unified CLI entrypoint for groundwater survey ingestion.

Modes (--mode):
  import       : import one campaign workbook (default)
  seed_catalog : load config/parameters.yml into param_catalog/param_alias

Usage (import):
    python -m groundwater_etl.import_survey \\
        --mode import \\
        --db-dsn "$DB_DSN" \\
        --campaign-file config/campaigns/ga_calidad_2001.yml \\
        --data-dir data

Usage (seed_catalog):
    python -m groundwater_etl.import_survey \\
        --mode seed_catalog \\
        --db-dsn "$DB_DSN" \\
        --catalog-file config/parameters.yml
"""

from __future__ import annotations

import logging
import sys
import uuid
from datetime import datetime
from pathlib import Path

import click
import psycopg

from groundwater_etl.campaigns import (
    CampaignProfile,
    CampaignProfileError,
    load_campaign_profile,
)
from groundwater_etl.catalog import (
    CatalogCounters,
    CatalogValidationError,
    load_parameter_catalog,
    seed_parameter_catalog,
)
from groundwater_etl.pipeline import run_import
from groundwater_etl.shared import (
    RejectWriter,
    RunCounters,
    UnresolvedFileError,
    write_run_report,
)


# ---------------------------------------------------------------------------
# Flag validation
# ---------------------------------------------------------------------------

def _validate_import_flags(campaign_file: str | None, run_id: str) -> None:
    if not campaign_file:
        click.echo(
            f"[{run_id}] ERROR: --campaign-file is required for --mode import",
            err=True,
        )
        sys.exit(1)


def _load_profile_or_exit(campaign_file: str, run_id: str) -> CampaignProfile:
    try:
        return load_campaign_profile(Path(campaign_file))
    except (CampaignProfileError, FileNotFoundError) as exc:
        click.echo(f"[{run_id}] FATAL: campaign profile {campaign_file}: {exc}", err=True)
        sys.exit(1)


# ---------------------------------------------------------------------------
# Campaign import
# ---------------------------------------------------------------------------

def _run_campaign_import(
    run_id: str,
    db_dsn: str,
    counters: RunCounters,
    rejects: RejectWriter,
    profile: CampaignProfile,
    data_dir: str,
    xlsx_path: str | None,
    sheet: str | None,
    spatial_tolerance: float | None,
    dry_run: bool,
) -> Path:
    """Open the connection and run the campaign import.

    Returns the workbook path that was imported.
    """
    conn = psycopg.connect(db_dsn, autocommit=False)
    try:
        return run_import(
            conn, profile, run_id, counters,
            data_dir=Path(data_dir),
            xlsx_path=Path(xlsx_path) if xlsx_path else None,
            sheet=sheet,
            rejects=rejects,
            tolerance=spatial_tolerance,
            dry_run=dry_run,
        )
    except UnresolvedFileError as exc:
        click.echo(f"[{run_id}] FATAL: {profile.campaign}: {exc}", err=True)
        sys.exit(1)
    finally:
        conn.close()
        rejects.close()


# ---------------------------------------------------------------------------
# Catalog seeding
# ---------------------------------------------------------------------------

def _run_seed_catalog(
    run_id: str,
    db_dsn: str,
    catalog_file: str,
    dry_run: bool,
) -> CatalogCounters:
    try:
        catalog = load_parameter_catalog(Path(catalog_file))
    except (CatalogValidationError, FileNotFoundError) as exc:
        click.echo(f"[{run_id}] FATAL: parameter catalog {catalog_file}: {exc}", err=True)
        sys.exit(1)

    click.echo(
        f"[{run_id}] Catalog version={catalog.version} "
        f"hash={catalog.yaml_hash[:12]} parameters={len(catalog.parameters)}"
    )
    counters = CatalogCounters()
    conn = psycopg.connect(db_dsn, autocommit=False)
    try:
        if dry_run:
            with conn.transaction(force_rollback=True):
                seed_parameter_catalog(conn, catalog, counters)
            click.echo(f"[{run_id}] [dry-run] All changes rolled back.")
        else:
            seed_parameter_catalog(conn, catalog, counters)
            click.echo(f"[{run_id}] Committed.")
    finally:
        conn.close()

    click.echo(
        f"[{run_id}] Done: {counters.parameters_upserted} parameters, "
        f"{counters.aliases_inserted} aliases inserted, "
        f"{counters.aliases_repointed} re-pointed, "
        f"{counters.aliases_unchanged} unchanged"
    )
    return counters


# ---------------------------------------------------------------------------
# Unified CLI
# ---------------------------------------------------------------------------

@click.command()
@click.option(
    "--mode",
    default="import",
    type=click.Choice(["import", "seed_catalog"]),
    show_default=True,
    help="Run mode",
)
@click.option("--db-dsn", required=True, envvar="DB_DSN", help="PostgreSQL DSN")
# import flags
@click.option("--campaign-file", default=None, type=click.Path(), help="[import] Campaign profile YAML")
@click.option("--data-dir", default="./data", show_default=True, type=click.Path(), help="[import] Directory searched for the campaign's source files")
@click.option("--xlsx-path", default=None, type=click.Path(), help="[import] Explicit workbook path; skips source file resolution")
@click.option("--sheet", default=None, help="[import] Sheet name (default: profile sheet, else first sheet)")
@click.option(
    "--spatial-tolerance",
    default=None,
    type=float,
    help="[import] Coordinate match tolerance in coordinate units (default: profile value)",
)
# seed_catalog flags
@click.option(
    "--catalog-file",
    default="./config/parameters.yml",
    show_default=True,
    type=click.Path(),
    help="[seed_catalog] Parameter catalog YAML",
)
# shared flags
@click.option("--dry-run", is_flag=True, default=False)
@click.option(
    "--rejects-path",
    default="./artifacts/rejects/groundwater_rejects.csv",
    show_default=True,
)
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    show_default=True,
)
def main(
    mode: str,
    db_dsn: str,
    # import
    campaign_file: str | None,
    data_dir: str,
    xlsx_path: str | None,
    sheet: str | None,
    spatial_tolerance: float | None,
    # seed_catalog
    catalog_file: str,
    # shared
    dry_run: bool,
    rejects_path: str,
    run_id: str | None,
    log_level: str,
) -> None:
    """Unified groundwater survey ingestion CLI."""
    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.utcnow().isoformat()

    click.echo(f"[{run_id}] Starting {mode} run (dry_run={dry_run})")

    if mode == "seed_catalog":
        catalog_counters = _run_seed_catalog(run_id, db_dsn, catalog_file, dry_run)
        report_path = write_run_report(
            run_id, started_at, mode, dry_run,
            {"catalog_file": catalog_file},
            catalog_counters,
        )
        click.echo(f"[{run_id}] Run report: {report_path}")
        return

    _validate_import_flags(campaign_file, run_id)
    profile = _load_profile_or_exit(campaign_file, run_id)  # type: ignore[arg-type]
    counters = RunCounters()
    rejects = RejectWriter(Path(rejects_path))

    workbook_path = _run_campaign_import(
        run_id, db_dsn, counters, rejects, profile,
        data_dir=data_dir,
        xlsx_path=xlsx_path,
        sheet=sheet,
        spatial_tolerance=spatial_tolerance,
        dry_run=dry_run,
    )

    report_path = write_run_report(
        run_id, started_at, mode, dry_run,
        {
            "campaign": profile.campaign,
            "campaign_file": campaign_file,
            "workbook_path": str(workbook_path),
        },
        counters,
    )
    click.echo(f"[{run_id}] Run report: {report_path}")
    if rejects.count:
        click.echo(f"[{run_id}] Rejected rows written to {rejects_path}")


if __name__ == "__main__":
    main()
