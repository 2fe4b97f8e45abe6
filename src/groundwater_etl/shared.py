"""groundwater_etl.shared

Shared utilities used by every campaign import and by the catalog seeder.
Includes the exception taxonomy, RejectWriter, RunCounters and
report-writing support.
"""

from __future__ import annotations

import csv
import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class InvalidInputError(ValueError):
    """Raised when an upsert is called without a required reference field."""


class UnresolvedFileError(FileNotFoundError):
    """Raised when none of a campaign's candidate source files exist."""


# ---------------------------------------------------------------------------
# RejectWriter
# ---------------------------------------------------------------------------

class RejectWriter:
    """Lazy-open CSV writer for rows that failed to import."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh = None
        self._writer = None
        self.count = 0

    def write(self, row: dict[str, Any], reason: str) -> None:
        if self._fh is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self._path, "w", newline="", encoding="utf-8")
            fieldnames = list(row.keys()) + ["_reject_reason"]
            self._writer = csv.DictWriter(
                self._fh, fieldnames=fieldnames, extrasaction="ignore"
            )
            self._writer.writeheader()
        out = {k: ("" if v is None else v) for k, v in row.items()}
        out["_reject_reason"] = reason
        self._writer.writerow(out)
        self._fh.flush()
        self.count += 1

    def close(self) -> None:
        if self._fh:
            self._fh.close()


# ---------------------------------------------------------------------------
# RunCounters
# ---------------------------------------------------------------------------

_ENTITY_COUNTERS = (
    "wells_inserted",
    "wells_matched_by_code",
    "wells_matched_by_coords",
    "samples_inserted",
    "samples_matched_existing",
    "measurements_inserted",
    "measurements_merged",
    "cells_empty",
    "dates_defaulted",
)


@dataclass
class RunCounters:
    rows_read: int = 0
    processed: int = 0
    failed: int = 0
    unmapped_columns: set[str] = field(default_factory=set)
    wells_inserted: int = 0
    wells_matched_by_code: int = 0
    wells_matched_by_coords: int = 0
    samples_inserted: int = 0
    samples_matched_existing: int = 0
    measurements_inserted: int = 0
    measurements_merged: int = 0
    cells_empty: int = 0
    dates_defaulted: int = 0
    warnings: list[str] = field(default_factory=list)

    def add(self, other: RunCounters) -> None:
        """Fold a committed row's tally into this run's counters."""
        for name in _ENTITY_COUNTERS:
            setattr(self, name, getattr(self, name) + getattr(other, name))
        self.unmapped_columns |= other.unmapped_columns
        self.warnings.extend(other.warnings)

    def summary(self) -> dict[str, Any]:
        """Completion signal for operators: processed, failed, unmapped columns."""
        return {
            "processed": self.processed,
            "failed": self.failed,
            "unmapped_columns": set(self.unmapped_columns),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows_read": self.rows_read,
            "processed": self.processed,
            "failed": self.failed,
            "unmapped_columns": sorted(self.unmapped_columns),
            "wells_inserted": self.wells_inserted,
            "wells_matched_by_code": self.wells_matched_by_code,
            "wells_matched_by_coords": self.wells_matched_by_coords,
            "samples_inserted": self.samples_inserted,
            "samples_matched_existing": self.samples_matched_existing,
            "measurements_inserted": self.measurements_inserted,
            "measurements_merged": self.measurements_merged,
            "cells_empty": self.cells_empty,
            "dates_defaulted": self.dates_defaulted,
            "warnings": self.warnings,
        }


# ---------------------------------------------------------------------------
# Report writer
# ---------------------------------------------------------------------------

def write_run_report(
    run_id: str,
    started_at: str,
    mode: str,
    dry_run: bool,
    source_paths: dict[str, Any],
    counters: Any,
    report_dir: Path = Path("./artifacts/reports"),
) -> Path:
    report = {
        "run_id": run_id,
        "mode": mode,
        "started_at": started_at,
        "finished_at": datetime.utcnow().isoformat(),
        "dry_run": dry_run,
        **source_paths,
        "counters": counters.to_dict(),
    }
    report_path = report_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
