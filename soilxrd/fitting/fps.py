"""
Full pattern summation (FPS): quantify a sample as a weighted sum of
reference patterns.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

import numpy as np
import pandas as pd

from soilxrd.analysis.library import ReferenceLibrary
from soilxrd.analysis.phase_summary import group_phases
from soilxrd.analysis.results import FitResult
from soilxrd.config import CONFIG
from soilxrd.fitting.alignment import align_to_standard, apply_shift, shift_references
from soilxrd.fitting.fit_model import PatternModel
from soilxrd.fitting.metrics import fit_quality
from soilxrd.fitting.quantify import (
    close_percentages,
    estimate_concentrations,
    to_standard_free_basis,
)
from soilxrd.utils.harmonise import axes_match, harmonise_xy, interpolate_xy
from soilxrd.utils.preprocessing import as_diffractogram

logger = logging.getLogger(__name__)

# Coefficients at or below this fraction of the largest one count as zero
_ZERO_FRACTION = 1e-9


def fps(
    lib: ReferenceLibrary,
    smpl,
    refs: Iterable[str] | None = None,
    std: str | None = None,
    std_conc: float | None = None,
    align: float | None = None,
    manual_align: float | None = None,
    tth_align: tuple[float, float] | None = None,
    tth_fps: tuple[float, float] | None = None,
    shift: float | None = None,
    shift_step: float | None = None,
    solver: str | None = None,
    objective: str | None = None,
    harmonise: bool = True,
    closed: bool = False,
    force: Iterable[str] | None = None,
    amorphous: Iterable[str] | None = None,
) -> FitResult:
    """
    Fit ``smpl`` with the references ``refs`` of ``lib`` and report phase
    concentrations.

    Parameters
    ----------
    lib : ReferenceLibrary
    smpl : diffractogram (DataFrame two_theta/intensity or (n, 2) array)
    refs : reference ids to fit; all library ids when None.
    std : internal standard id. Required for alignment and for ``std_conc``.
    std_conc : known wt % of the internal standard. When given, results are
        anchored to the standard and reported on a standard-free basis, so
        they need not sum to 100.
    align : max whole-sample shift (deg 2θ) searched against the standard.
    manual_align : fixed whole-sample shift, overrides ``align``.
    tth_align : 2θ range used to compute the alignment.
    tth_fps : 2θ range used for fitting.
    shift : max per-reference shift (deg 2θ); 0 disables.
    shift_step : grid step of the per-reference shift search.
    solver, objective : see PatternModel.
    harmonise : interpolate sample and library to a common axis when they differ.
    closed : close the reported concentrations to 100.
    force : ids never removed for a non-positive coefficient.
    amorphous : ids excluded from the per-reference shift.
    """
    refs, force, amorphous = check_arguments(lib, refs, std, std_conc, force, amorphous, caller="fps")
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

    removed: dict[str, str] = {}
    protected = set(force) | ({std} if std is not None else set())
    state = fit_references(
        smpl_df["two_theta"].values,
        smpl_df["intensity"].values,
        pd.DataFrame(lib_sub.matrix(refs), columns=refs),
        solver=solver,
        objective=objective,
        protected=protected,
        removed=removed,
    )
    state = refine_shifts(
        state,
        shift=shift,
        shift_step=shift_step,
        amorphous=amorphous,
        solver=solver,
        objective=objective,
        protected=protected,
        removed=removed,
    )
    return build_result(state, lib_sub, std=std, std_conc=std_conc, closed=closed, alignment=alignment, removed=removed)


# ------------- SHARED STEPS -----------------


@dataclass
class FitState:
    """Axis, measurement and current reference columns of an ongoing fit."""

    tth: np.ndarray
    measured: np.ndarray
    patterns: pd.DataFrame
    model: PatternModel
    shifts: pd.Series

    @property
    def ids(self) -> list[str]:
        return list(self.patterns.columns)

    @property
    def coefficients(self) -> pd.Series:
        return self.model.coefficients


def check_arguments(lib, refs, std, std_conc, force, amorphous, caller: str):
    refs = lib.ids if refs is None else lib.check_ids(refs)
    refs = list(dict.fromkeys(refs))
    if not refs:
        raise ValueError(f"{caller}: no reference ids selected")

    if std is not None:
        std = str(std)
        if std not in refs:
            raise ValueError(f"{caller}: internal standard {std!r} is not among the selected references")
    if std_conc is not None:
        if std is None:
            raise ValueError(f"{caller}: std_conc given without an internal standard id")
        if not 0 < std_conc < 100:
            raise ValueError(f"{caller}: std_conc must lie between 0 and 100, got {std_conc}")

    force = lib.check_ids(force or [])
    amorphous = lib.check_ids(amorphous or [])
    outside = sorted((set(force) | set(amorphous)) - set(refs))
    if outside:
        raise ValueError(f"{caller}: forced/amorphous ids not among the selected references: {outside}")
    return refs, force, amorphous


def prepare_data(
    lib: ReferenceLibrary,
    smpl,
    refs: list[str],
    std: str | None = None,
    align: float | None = None,
    manual_align: float | None = None,
    tth_align: tuple[float, float] | None = None,
    tth_fps: tuple[float, float] | None = None,
    harmonise: bool = True,
) -> tuple[pd.DataFrame, ReferenceLibrary, float]:
    """
    Subset the library, bring sample and library onto one axis, align the
    sample to the internal standard and cut the fitting range.

    Returns (sample, library subset, applied alignment shift).
    """
    smpl_df = as_diffractogram(smpl)
    lib_sub = lib.subset(refs)

    if not axes_match(smpl_df["two_theta"].values, lib_sub.tth):
        if not harmonise:
            raise ValueError(
                "prepare_data: sample and library 2θ axes differ; harmonise them or pass harmonise=True"
            )
        smpl_df, lib_sub = harmonise_xy(smpl_df, lib_sub)

    align = CONFIG.align if align is None else align
    alignment = 0.0
    if manual_align is not None:
        alignment = float(manual_align)
    elif std is not None and align:
        smpl_a = smpl_df
        std_a = lib_sub.pattern(std)
        if tth_align is not None:
            smpl_a = smpl_a[smpl_a["two_theta"].between(*tth_align)]
            std_a = std_a[std_a["two_theta"].between(*tth_align)]
        alignment = align_to_standard(smpl_a, std_a, max_shift=align)

    if alignment != 0:
        moved = apply_shift(smpl_df, alignment)
        lo = max(moved["two_theta"].iloc[0], lib_sub.tth[0])
        hi = min(moved["two_theta"].iloc[-1], lib_sub.tth[-1])
        lib_sub = lib_sub.trim(lo, hi)
        smpl_df = interpolate_xy(moved, lib_sub.tth)

    if tth_fps is not None:
        lib_sub = lib_sub.trim(*tth_fps)
        smpl_df = interpolate_xy(smpl_df, lib_sub.tth)

    return smpl_df, lib_sub, alignment


def fit_references(
    tth,
    measured,
    patterns: pd.DataFrame,
    solver: str | None = None,
    objective: str | None = None,
    protected: set | None = None,
    removed: dict | None = None,
    shifts: pd.Series | None = None,
) -> FitState:
    """
    Fit, then repeatedly drop references with a non-positive coefficient
    (except ``protected`` ones) and fit again.
    """
    protected = protected or set()
    removed = {} if removed is None else removed
    patterns = patterns.copy()

    for _ in range(CONFIG.max_refits):
        model = PatternModel(tth, measured, patterns.values, patterns.columns, solver=solver, objective=objective)
        coefs = model.fit()
        cutoff = _ZERO_FRACTION * max(float(coefs.abs().max()), 0.0)
        drop = [pid for pid, c in coefs.items() if c <= cutoff and pid not in protected]
        if not drop:
            break
        for pid in drop:
            removed[pid] = "non-positive coefficient"
        logger.info("Removing references with non-positive coefficients: %s", drop)
        patterns = patterns.drop(columns=drop)
        if patterns.shape[1] == 0:
            raise ValueError("fit_references: every reference was removed, nothing left to fit")
    else:
        logger.warning("fit_references: stopped after %d refits", CONFIG.max_refits)
        model = PatternModel(tth, measured, patterns.values, patterns.columns, solver=solver, objective=objective)
        model.fit()

    if shifts is None:
        shifts = pd.Series(0.0, index=patterns.columns)
    return FitState(
        np.asarray(tth, dtype=float),
        np.asarray(measured, dtype=float),
        patterns,
        model,
        shifts.reindex(patterns.columns).fillna(0.0),
    )


def refine_shifts(
    state: FitState,
    shift: float | None = None,
    shift_step: float | None = None,
    amorphous: Iterable[str] = (),
    solver: str | None = None,
    objective: str | None = None,
    protected: set | None = None,
    removed: dict | None = None,
) -> FitState:
    """
    Optimise per-reference peak shifts, trim ``shift`` from both ends of the
    axis and fit again. No-op when ``shift`` is zero.
    """
    shift = CONFIG.shift if shift is None else abs(shift)
    if not shift:
        return state

    amorphous = set(amorphous)
    exempt = [i for i, pid in enumerate(state.ids) if pid in amorphous]
    shifts, mat = shift_references(
        state.tth,
        state.measured,
        state.patterns.values,
        state.coefficients.values,
        max_shift=shift,
        step=shift_step,
        exempt=exempt,
    )

    keep = (state.tth >= state.tth[0] + shift) & (state.tth <= state.tth[-1] - shift)
    if keep.sum() < 2:
        raise ValueError(f"refine_shifts: shift {shift} leaves no usable 2θ range")

    patterns = pd.DataFrame(mat[keep], columns=state.ids)
    return fit_references(
        state.tth[keep],
        state.measured[keep],
        patterns,
        solver=solver,
        objective=objective,
        protected=protected,
        removed=removed,
        shifts=pd.Series(shifts, index=state.ids),
    )


def build_result(
    state: FitState,
    lib_sub: ReferenceLibrary,
    std: str | None = None,
    std_conc: float | None = None,
    closed: bool = False,
    alignment: float = 0.0,
    removed: dict | None = None,
) -> FitResult:
    ids = state.ids
    coefs = state.coefficients
    rir = pd.Series(lib_sub.rir(ids), index=ids)

    pct = estimate_concentrations(coefs, rir, std=std, std_conc=std_conc)
    reported = ids
    if std_conc is not None:
        pct = to_standard_free_basis(pct, std, std_conc)
        reported = [pid for pid in ids if pid != std]
    if closed:
        pct = close_percentages(pct)

    phases = pd.DataFrame(
        {
            "phase_id": reported,
            "phase_name": lib_sub.phase_names(reported),
            "rir": rir[reported].values,
            "coefficient": coefs[reported].values,
            "shift": state.shifts[reported].values,
            "phase_percent": pct[reported].values,
        }
    )

    fitted = state.model.fitted()
    weighted = state.model.weighted_patterns()
    weighted.insert(0, "two_theta", state.tth)

    return FitResult(
        tth=state.tth,
        measured=state.measured,
        fitted=fitted,
        phases=phases,
        phases_grouped=group_phases(phases),
        weighted_pure_patterns=weighted,
        quality=fit_quality(state.measured, fitted),
        alignment=alignment,
        std=std,
        std_conc=std_conc,
        closed=closed,
        removed=dict(removed or {}),
    )
