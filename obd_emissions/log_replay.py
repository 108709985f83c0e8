"""Replay python-OBD TSV logs through the emissions estimator.

Handles the tab-separated log format produced by python-OBD data loggers:

- header lines (title, start time, interval, separator)
- column header row starting with ``Timestamp``
- separator row
- data rows (tab-separated values)
- footer (blank, separator, end time)

Only four columns matter for emissions:

==========================  ==================  =======
Log column                  Estimator input     Unit
==========================  ==================  =======
SPEED                       speed_mps (÷ 3.6)   km/h
MAF                         maf_gps             g/s
FUEL_RATE                   fuel_rate_Lh        L/h
COMMANDED_EQUIV_RATIO       lambda_equiv        ratio
==========================  ==================  =======

``dt_s`` is the gap between consecutive timestamps.  The first row has no
predecessor, so it is a rejected tick, exactly as it would be live.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
import structlog

from obd_emissions.emissions import EmissionsEstimator, EmissionsInputs, EmissionsSummary

logger = structlog.get_logger(__name__)

_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

_COLUMN_INPUTS: Dict[str, str] = {
    "SPEED": "speed_kmh",
    "MAF": "maf_gps",
    "FUEL_RATE": "fuel_rate_Lh",
    "COMMANDED_EQUIV_RATIO": "lambda_equiv",
}


@dataclass(frozen=True)
class ReplayResult:
    """Per-tick estimator output plus the final totals.

    Attributes
    ----------
    ticks : pd.DataFrame
        DatetimeIndex (UTC); inputs, ``co2_gps``, ``co2_g_per_km_instant``,
        running totals and the three flag columns.
    summary : EmissionsSummary
        Totals after the last row.
    stale_ticks : int
        Rows rejected by the estimator.
    """

    ticks: pd.DataFrame
    summary: EmissionsSummary
    stale_ticks: int


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_log_file(path: str | Path) -> List[Dict[str, str]]:
    """Parse an OBD TSV log file into a list of row dicts.

    Each dict maps column name -> raw string value for one data row.
    Header/footer lines are skipped automatically.

    Raises
    ------
    ValueError
        If no ``Timestamp`` column header is found.
    """
    path = Path(path)
    with open(path, encoding="utf-8") as fh:
        lines = fh.readlines()

    header_idx: Optional[int] = None
    for i, line in enumerate(lines):
        if line.startswith("Timestamp\t"):
            header_idx = i
            break
    if header_idx is None:
        raise ValueError(f"Could not find column header in {path}")

    columns = [c.strip() for c in lines[header_idx].split("\t") if c.strip()]

    rows: List[Dict[str, str]] = []
    # Data rows start after the separator line following the header.
    for line in lines[header_idx + 2:]:
        line = line.rstrip("\n\r")
        if not line or line.startswith("---") or line.startswith("Log "):
            continue
        parts = line.split("\t")
        if len(parts) < len(columns):
            continue
        rows.append({columns[i]: parts[i].strip() for i in range(len(columns))})

    return rows


def rows_to_dataframe(rows: List[Dict[str, str]]) -> pd.DataFrame:
    """Build a time-indexed numeric frame with a ``dt_s`` column.

    * Rows with unparseable timestamps are dropped.
    * Non-numeric cells (``N/A``) become ``NaN``.
    * Duplicate timestamps are averaged; the index is sorted.
    """
    timestamps = []
    records: List[Dict[str, object]] = []
    for row in rows:
        try:
            ts = datetime.strptime(row.get("Timestamp", ""), _TIMESTAMP_FORMAT)
        except ValueError:
            continue
        timestamps.append(ts.replace(tzinfo=timezone.utc))
        records.append({name: row.get(col) for col, name in _COLUMN_INPUTS.items()})

    if not records:
        return pd.DataFrame(columns=[*_COLUMN_INPUTS.values(), "dt_s"], dtype=float)

    df = pd.DataFrame(
        records,
        index=pd.DatetimeIndex(timestamps, name="timestamp"),
        columns=list(_COLUMN_INPUTS.values()),
    )
    df = df.apply(pd.to_numeric, errors="coerce")

    if df.index.duplicated().any():
        df = df.groupby(df.index).mean()
    df = df.sort_index()

    df["dt_s"] = df.index.to_series().diff().dt.total_seconds().fillna(0.0)
    return df


# ---------------------------------------------------------------------------
# Replay
# ---------------------------------------------------------------------------


def _optional(value: float) -> Optional[float]:
    return None if np.isnan(value) else float(value)


def replay_rows(rows: List[Dict[str, str]]) -> ReplayResult:
    """Feed every row through a fresh estimator.

    Raises
    ------
    ValueError
        If *rows* contains no row with a valid timestamp.
    """
    df = rows_to_dataframe(rows)
    if df.empty:
        raise ValueError("Cannot replay a log with no timestamped rows.")

    estimator = EmissionsEstimator()
    out_rows: List[Dict[str, object]] = []
    stale = 0

    for speed_kmh, maf, fuel_rate, lam, dt_s in df[
        ["speed_kmh", "maf_gps", "fuel_rate_Lh", "lambda_equiv", "dt_s"]
    ].itertuples(index=False, name=None):
        speed = _optional(speed_kmh)
        outputs = estimator.ingest_tick(
            EmissionsInputs(
                dt_s=float(dt_s),
                # A missing speed cell is an invalid tick, not a standstill.
                speed_mps=speed / 3.6 if speed is not None else float("nan"),
                maf_gps=_optional(maf),
                fuel_rate_Lh=_optional(fuel_rate),
                lambda_equiv=_optional(lam),
            )
        )
        if outputs.flags.stale:
            stale += 1
        record = asdict(outputs)
        record.update(record.pop("flags"))
        out_rows.append(record)

    ticks = pd.concat([df, pd.DataFrame(out_rows, index=df.index)], axis=1)
    summary = estimator.get_summary()
    logger.info(
        "log_replayed",
        rows=len(df),
        stale_ticks=stale,
        distance_km=round(summary.distance_km, 3),
        total_co2_g=round(summary.total_co2_g, 1),
    )
    return ReplayResult(ticks=ticks, summary=summary, stale_ticks=stale)


def replay_log_file(path: str | Path) -> ReplayResult:
    """Parse *path* and replay it.

    Convenience wrapper: calls :func:`parse_log_file` then
    :func:`replay_rows`.
    """
    return replay_rows(parse_log_file(path))
