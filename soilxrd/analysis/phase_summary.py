"""
Aggregate fitted references by phase and tabulate several samples.
"""

from __future__ import annotations

from typing import Mapping

import pandas as pd

from soilxrd.analysis.results import FitResult


def group_phases(phases: pd.DataFrame, value: str = "phase_percent") -> pd.DataFrame:
    """
    Sum ``value`` over references sharing a phase_name (e.g. several quartz
    patterns), largest first.
    """
    if phases.empty:
        return pd.DataFrame(columns=["phase_name", value])
    grouped = phases.groupby("phase_name", as_index=False, sort=False)[value].sum()
    return grouped.sort_values(value, ascending=False, key=abs).reset_index(drop=True)


def summarise_results(
    results: Mapping[str, FitResult],
    grouped: bool = True,
    value: str = "phase_percent",
) -> pd.DataFrame:
    """
    Samples x phases table of ``value`` (0 where a phase was not fitted),
    with the fit quality in trailing columns.
    """
    rows = []
    for name, res in results.items():
        table = res.phases_grouped if grouped else res.phases
        key = "phase_name" if grouped else "phase_id"
        row = {"sample": name}
        row.update(dict(zip(table[key], table[value])))
        row["Rwp"] = res.quality.rwp
        row["R"] = res.quality.r
        rows.append(row)

    df = pd.DataFrame(rows)
    if df.empty:
        return df
    phase_cols = [c for c in df.columns if c not in ("sample", "Rwp", "R")]
    df[phase_cols] = df[phase_cols].fillna(0.0)
    return df[["sample"] + phase_cols + ["Rwp", "R"]].set_index("sample")
