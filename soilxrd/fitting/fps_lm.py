"""
Signed full pattern summation for interpreting principal-component loadings.

A loading is not a diffractogram: it can be negative, so the coefficients
are unconstrained and come from ordinary least squares. References that do
not contribute significantly (p-value above ``p``) are dropped one at a time.
"""

from __future__ import annotations

import logging
from typing import Iterable

import numpy as np
import pandas as pd
from scipy import stats

from soilxrd.analysis.library import ReferenceLibrary
from soilxrd.analysis.phase_summary import group_phases
from soilxrd.analysis.results import FitResult
from soilxrd.config import CONFIG
from soilxrd.fitting.fit_model import PatternModel
from soilxrd.fitting.fps import check_arguments, prepare_data
from soilxrd.fitting.metrics import fit_quality

logger = logging.getLogger(__name__)


def ols_with_pvalues(matrix, measured) -> tuple[np.ndarray, np.ndarray]:
    """
    Least-squares coefficients (no intercept) and their two-sided p-values.
    """
    a = np.asarray(matrix, dtype=float)
    y = np.asarray(measured, dtype=float)
    n, k = a.shape
    dof = n - k
    if dof <= 0:
        raise ValueError(f"ols_with_pvalues: {n} points cannot support {k} coefficients")

    beta, *_ = np.linalg.lstsq(a, y, rcond=None)
    resid = y - a @ beta
    sigma2 = float(resid @ resid) / dof
    cov = sigma2 * np.linalg.pinv(a.T @ a)
    se = np.sqrt(np.clip(np.diag(cov), 0.0, None))

    with np.errstate(divide="ignore", invalid="ignore"):
        t_vals = np.where(se > 0, beta / se, np.inf)
    p_vals = 2.0 * stats.t.sf(np.abs(t_vals), dof)
    return beta, p_vals


def fps_lm(
    lib: ReferenceLibrary,
    smpl,
    refs: Iterable[str] | None = None,
    std: str | None = None,
    align: float = 0.0,
    manual_align: float | None = None,
    tth_align: tuple[float, float] | None = None,
    tth_fps: tuple[float, float] | None = None,
    p: float | None = None,
    harmonise: bool = True,
) -> FitResult:
    """
    Explain a (loading) pattern with signed reference contributions.

    Phase table columns: phase_id, phase_name, rir, coefficient, p_value,
    shift (always 0) and phase_percent, the RIR-scaled coefficient as a
    signed share of the absolute total.
    """
    p = CONFIG.lm_p_threshold if p is None else p
    refs, _, _ = check_arguments(lib, refs, std, None, None, None, caller="fps_lm")
    smpl_df, lib_sub, alignment = prepare_data(
        lib,
        smpl,
        refs,
        std=std,
        align=align,
        manual_align=manual_align,
        tth_align=tth_align,
        tth_fps=tth_fps,
        harmonise=harmonise,
    )

    tth = smpl_df["two_theta"].values
    y = smpl_df["intensity"].values
    patterns = pd.DataFrame(lib_sub.matrix(refs), columns=refs)
    removed: dict[str, str] = {}

    while True:
        _, p_vals = ols_with_pvalues(patterns.values, y)
        worst = int(np.argmax(p_vals))
        if p_vals[worst] <= p or patterns.shape[1] == 1:
            break
        pid = patterns.columns[worst]
        removed[pid] = f"p-value {p_vals[worst]:.3g} > {p}"
        logger.info("fps_lm: dropping %s (p=%.3g)", pid, p_vals[worst])
        patterns = patterns.drop(columns=[pid])

    ids = list(patterns.columns)
    model = PatternModel(tth, y, patterns.values, ids, solver="nnls", objective="R", signed=True)
    coefs = model.fit()

    rir = lib_sub.rir(ids)
    scaled = coefs.values / rir
    total = float(np.sum(np.abs(scaled)))
    share = scaled / total * 100.0 if total > 0 else np.zeros_like(scaled)

    phases = pd.DataFrame(
        {
            "phase_id": ids,
            "phase_name": lib_sub.phase_names(ids),
            "rir": rir,
            "coefficient": coefs.values,
            "p_value": p_vals,
            "shift": 0.0,
            "phase_percent": share,
        }
    )

    fitted = model.fitted()
    weighted = model.weighted_patterns()
    weighted.insert(0, "two_theta", tth)

    return FitResult(
        tth=tth,
        measured=y,
        fitted=fitted,
        phases=phases,
        phases_grouped=group_phases(phases),
        weighted_pure_patterns=weighted,
        quality=fit_quality(y, fitted),
        alignment=alignment,
        std=std,
        removed=removed,
    )
