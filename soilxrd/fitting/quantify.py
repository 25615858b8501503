"""
From fitted coefficients to weight percentages.

A reference scaled by c_i contributes intensity proportional to
w_i · RIR_i, so w_i ∝ c_i / RIR_i. Without an internal standard the
proportions are closed to 100 %. With an internal standard of known
concentration the scale is fixed by the standard instead:

    w_i = std_conc · (c_i / RIR_i) / (c_std / RIR_std)
"""

from __future__ import annotations

from dataclasses import replace

import numpy as np
import pandas as pd

from soilxrd.analysis.phase_summary import group_phases
from soilxrd.analysis.results import FitResult


def estimate_concentrations(
    coefficients: pd.Series,
    rir: pd.Series,
    std: str | None = None,
    std_conc: float | None = None,
) -> pd.Series:
    """
    Weight percentages (by reference id) from coefficients and RIRs.
    """
    coefficients = coefficients.astype(float)
    rir = rir.reindex(coefficients.index).astype(float)
    if rir.isna().any():
        raise KeyError(f"estimate_concentrations: no RIR for {rir[rir.isna()].index.tolist()}")

    scaled = coefficients / rir

    if std_conc is None:
        total = scaled.sum()
        if total == 0:
            return scaled * 0.0
        return scaled / total * 100.0

    if std is None or std not in scaled.index:
        raise ValueError(f"estimate_concentrations: internal standard {std!r} not among fitted references")
    if scaled[std] <= 0:
        raise ValueError(f"estimate_concentrations: internal standard {std!r} was not detected in the fit")
    return scaled / scaled[std] * std_conc


def to_standard_free_basis(pct: pd.Series, std: str, std_conc: float) -> pd.Series:
    """
    Drop the internal standard and express the rest on a standard-free
    basis (the sample as it was before the standard was added).
    """
    rest = pct.drop(index=std)
    return rest * 100.0 / (100.0 - std_conc)


def estimate_lod(rir, std_rir: float, lod: float) -> np.ndarray:
    """
    Detection limit of each phase (wt %) from the standard's detection limit:
    a phase diffracting more strongly than the standard is detectable at
    proportionally lower concentration.
    """
    rir = np.asarray(rir, dtype=float)
    return lod * std_rir / rir


def close_percentages(pct: pd.Series) -> pd.Series:
    total = float(pct.sum())
    if total == 0:
        raise ValueError("close_percentages: cannot close a composition that sums to zero")
    return pct / total * 100.0


def close_quant(result: FitResult) -> FitResult:
    """
    Copy of ``result`` with phase_percent closed to 100, ratios preserved.
    """
    phases = result.phases.copy()
    phases["phase_percent"] = close_percentages(phases["phase_percent"]).values
    return replace(
        result,
        phases=phases,
        phases_grouped=group_phases(phases),
        closed=True,
    )
