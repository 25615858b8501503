"""
2θ alignment: whole-sample shift against the internal standard and
per-reference peak-shift optimisation.
"""

from __future__ import annotations

import logging
from typing import Iterable

import numpy as np
import pandas as pd
from scipy.optimize import minimize_scalar

from soilxrd.config import CONFIG
from soilxrd.utils.spectrum_math import mean_step, pearson_r

logger = logging.getLogger(__name__)


def _shift_grid(max_shift: float, step: float) -> np.ndarray:
    n = int(np.ceil(max_shift / step))
    grid = np.linspace(-n * step, n * step, 2 * n + 1)
    return np.clip(grid, -max_shift, max_shift)


def _shifted_correlation(shift: float, smpl_x, smpl_y, std_x, std_y) -> float:
    # Sample axis moved by ``shift`` and read at the standard's angles
    mask = (std_x >= smpl_x[0] + shift) & (std_x <= smpl_x[-1] + shift)
    if mask.sum() < 3:
        return -1.0
    y_s = np.interp(std_x[mask], smpl_x + shift, smpl_y)
    return pearson_r(y_s, std_y[mask])


def align_to_standard(
    smpl: pd.DataFrame,
    std_pattern: pd.DataFrame,
    max_shift: float | None = None,
    step: float | None = None,
) -> float:
    """
    Shift (deg 2θ) to add to the sample axis so that it best matches the
    standard's pattern.

    A grid over [-max_shift, max_shift] picks the best correlation, then a
    bounded scalar search refines it within one grid step.
    """
    max_shift = CONFIG.align if max_shift is None else abs(max_shift)
    if max_shift == 0:
        return 0.0

    smpl_x = smpl["two_theta"].values
    smpl_y = smpl["intensity"].values
    std_x = std_pattern["two_theta"].values
    std_y = std_pattern["intensity"].values

    if step is None:
        step = CONFIG.align_step
    if step is None:
        resolution = min(mean_step(smpl_x), mean_step(std_x))
        step = min(resolution / 2.0, max_shift / 10.0) if resolution > 0 else max_shift / 10.0

    grid = _shift_grid(max_shift, step)
    scores = np.array([_shifted_correlation(s, smpl_x, smpl_y, std_x, std_y) for s in grid])
    best = float(grid[int(np.argmax(scores))])

    lo = max(best - step, -max_shift)
    hi = min(best + step, max_shift)
    refined = minimize_scalar(
        lambda s: -_shifted_correlation(s, smpl_x, smpl_y, std_x, std_y),
        bounds=(lo, hi),
        method="bounded",
        options={"xatol": step / 100.0},
    )
    shift = float(refined.x) if -refined.fun >= scores.max() else best

    logger.info("Alignment shift against standard: %+.4f deg 2θ", shift)
    return shift


def apply_shift(smpl: pd.DataFrame, shift: float) -> pd.DataFrame:
    """Sample with ``shift`` added to its 2θ axis."""
    out = smpl.copy()
    out["two_theta"] = out["two_theta"] + shift
    return out


def align_xy(
    samples: Iterable[pd.DataFrame],
    std_pattern: pd.DataFrame,
    max_shift: float | None = None,
) -> list[pd.DataFrame]:
    """
    Align several samples to one standard pattern and interpolate them back
    onto their own original axes (ends outside the shifted data are dropped).
    """
    aligned = []
    for smpl in samples:
        shift = align_to_standard(smpl, std_pattern, max_shift=max_shift)
        moved = apply_shift(smpl, shift)
        x = smpl["two_theta"].values
        keep = (x >= moved["two_theta"].iloc[0]) & (x <= moved["two_theta"].iloc[-1])
        y = np.interp(x[keep], moved["two_theta"].values, moved["intensity"].values)
        aligned.append(pd.DataFrame({"two_theta": x[keep], "intensity": y}))
    return aligned


def shift_pattern(tth: np.ndarray, intensity: np.ndarray, shift: float) -> np.ndarray:
    """Pattern moved by ``shift`` and read back on ``tth`` (ends held flat)."""
    return np.interp(tth, tth + shift, intensity)


def shift_references(
    tth,
    measured,
    matrix,
    coefficients,
    max_shift: float | None = None,
    step: float | None = None,
    exempt: Iterable[int] = (),
) -> tuple[np.ndarray, np.ndarray]:
    """
    Per-reference peak-shift optimisation.

    References are visited from the largest contribution down. For each one
    the other references' contribution is removed from the measurement and
    the shift within ±max_shift that best explains what is left (with the
    scale re-estimated at every trial shift) is kept.

    Returns (shifts, shifted_matrix). Columns listed in ``exempt`` and
    columns with a zero coefficient are left in place.
    """
    max_shift = CONFIG.shift if max_shift is None else abs(max_shift)
    step = CONFIG.shift_step if step is None else step

    tth = np.asarray(tth, dtype=float)
    y = np.asarray(measured, dtype=float)
    mat = np.array(matrix, dtype=float, copy=True)
    coefs = np.asarray(coefficients, dtype=float).copy()
    shifts = np.zeros(mat.shape[1])

    if max_shift == 0 or step <= 0:
        return shifts, mat

    exempt = set(exempt)
    grid = _shift_grid(max_shift, step)
    order = np.argsort(-np.abs(coefs) * mat.max(axis=0))

    for j in order:
        if j in exempt or coefs[j] == 0:
            continue
        partial = y - mat @ coefs + coefs[j] * mat[:, j]
        original = mat[:, j].copy()

        best_sse, best_shift, best_col, best_c = np.inf, 0.0, original, coefs[j]
        for s in grid:
            col = shift_pattern(tth, original, s)
            denom = float(col @ col)
            if denom == 0:
                continue
            c = max(float(partial @ col) / denom, 0.0)
            sse = float(np.sum((partial - c * col) ** 2))
            if sse < best_sse:
                best_sse, best_shift, best_col, best_c = sse, float(s), col, c

        mat[:, j] = best_col
        coefs[j] = best_c
        shifts[j] = best_shift

    logger.debug("Reference shifts: %s", np.round(shifts, 4).tolist())
    return shifts, mat
