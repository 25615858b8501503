"""
Automated full pattern summation: start from a broad set of references and
let the fit decide which phases are present.
"""

from __future__ import annotations

import logging
from typing import Iterable

import numpy as np
import pandas as pd

from soilxrd.analysis.library import ReferenceLibrary
from soilxrd.analysis.results import FitResult
from soilxrd.config import CONFIG
from soilxrd.fitting.fps import (
    build_result,
    check_arguments,
    fit_references,
    prepare_data,
    refine_shifts,
)
from soilxrd.fitting.quantify import estimate_concentrations, estimate_lod

logger = logging.getLogger(__name__)


def afps(
    lib: ReferenceLibrary,
    smpl,
    std: str,
    refs: Iterable[str] | None = None,
    force: Iterable[str] | None = None,
    std_conc: float | None = None,
    lod: float | None = None,
    amorphous: Iterable[str] | None = None,
    amorphous_lod: float | None = None,
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
) -> FitResult:
    """
    Automated phase selection and quantification.

    1. Fit every reference in ``refs`` (default: the whole library) and drop
       those with non-positive coefficients.
    2. Optionally refine per-reference shifts.
    3. Estimate each phase's detection limit from the standard's ``lod``
       (wt %) and RIRs, drop phases below it, refit, repeat until stable.

    ``force`` ids are never dropped. ``amorphous`` ids are not judged against
    the RIR-derived limits (nor shifted); they are dropped only below
    ``amorphous_lod``. Remaining arguments as in :func:`soilxrd.fitting.fps.fps`.
    """
    if std is None:
        raise ValueError("afps: an internal standard id is required to estimate detection limits")
    lod = CONFIG.lod if lod is None else lod
    amorphous_lod = CONFIG.amorphous_lod if amorphous_lod is None else amorphous_lod
    if lod < 0 or amorphous_lod < 0:
        raise ValueError(f"afps: detection limits must be non-negative, got lod={lod}, amorphous_lod={amorphous_lod}")

    refs, force, amorphous = check_arguments(lib, refs, std, std_conc, force, amorphous, caller="afps")
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
    protected = set(force) | {std}
    fit_kwargs = dict(solver=solver, objective=objective, protected=protected, removed=removed)

    state = fit_references(
        smpl_df["two_theta"].values,
        smpl_df["intensity"].values,
        pd.DataFrame(lib_sub.matrix(refs), columns=refs),
        **fit_kwargs,
    )
    state = refine_shifts(state, shift=shift, shift_step=shift_step, amorphous=amorphous, **fit_kwargs)

    std_rir = float(lib_sub.rir([std])[0])
    amorphous = set(amorphous)

    for _ in range(CONFIG.max_refits):
        below = _below_detection(state, lib_sub, std, std_conc, std_rir, lod, amorphous, amorphous_lod, protected)
        if not below:
            break
        logger.info("Removing phases below detection limit: %s", sorted(below))
        removed.update(below)
        patterns = state.patterns.drop(columns=list(below))
        state = fit_references(state.tth, state.measured, patterns, shifts=state.shifts, **fit_kwargs)
    else:
        logger.warning("afps: detection-limit loop stopped after %d refits", CONFIG.max_refits)

    return build_result(state, lib_sub, std=std, std_conc=std_conc, closed=closed, alignment=alignment, removed=removed)


def _below_detection(
    state,
    lib_sub: ReferenceLibrary,
    std: str,
    std_conc: float | None,
    std_rir: float,
    lod: float,
    amorphous: set,
    amorphous_lod: float,
    protected: set,
) -> dict[str, str]:
    ids = state.ids
    rir = pd.Series(lib_sub.rir(ids), index=ids)
    pct = estimate_concentrations(state.coefficients, rir, std=std, std_conc=std_conc)
    limits = pd.Series(estimate_lod(rir.values, std_rir, lod), index=ids)

    below: dict[str, str] = {}
    for pid in ids:
        if pid in protected:
            continue
        if pid in amorphous:
            if pct[pid] < amorphous_lod:
                below[pid] = f"below amorphous limit ({pct[pid]:.3f} < {amorphous_lod:.3f} wt %)"
        elif pct[pid] < limits[pid] or not np.isfinite(pct[pid]):
            below[pid] = f"below detection limit ({pct[pid]:.3f} < {limits[pid]:.3f} wt %)"
    return below
