"""
One fit per sample, optionally spread over worker processes.
"""

from __future__ import annotations

import logging
from typing import Callable, Mapping

import pandas as pd
from joblib import Parallel, delayed

from soilxrd.analysis.library import ReferenceLibrary
from soilxrd.analysis.results import FitResult
from soilxrd.config import CONFIG
from soilxrd.fitting.afps import afps
from soilxrd.fitting.fps import fps

logger = logging.getLogger(__name__)


def samples_from_table(table: pd.DataFrame) -> dict[str, pd.DataFrame]:
    """
    Split a multi-sample table (first column: shared 2θ axis, further
    columns: one sample each) into separate diffractograms.
    """
    if table.shape[1] < 2:
        raise ValueError("samples_from_table: need an angle column and at least one sample column")
    tth = table.iloc[:, 0].to_numpy(dtype=float)
    return {
        str(col): pd.DataFrame({"two_theta": tth, "intensity": table[col].to_numpy(dtype=float)})
        for col in table.columns[1:]
    }


def _fit_sample(fitter, lib, smpl, skip_errors, fit_kwargs):
    try:
        return fitter(lib, smpl, **fit_kwargs)
    except (KeyError, ValueError, NotImplementedError) as exc:
        if not skip_errors:
            raise
        return exc


def fps_batch(
    lib: ReferenceLibrary,
    samples: Mapping[str, pd.DataFrame] | pd.DataFrame,
    automated: bool = False,
    n_jobs: int | None = None,
    on_error: Callable[[str, Exception], None] | None = None,
    **fit_kwargs,
) -> dict[str, FitResult]:
    """
    Quantify every sample with :func:`fps` (or :func:`afps` when
    ``automated``). Samples are independent; with ``n_jobs`` other than 1
    they are fitted in parallel worker processes. The returned dict keeps
    the input order.

    Without ``on_error`` the first failing sample raises. With it, samples
    whose fit raises KeyError, ValueError or NotImplementedError are passed
    to ``on_error(name, exc)`` and left out of the result.
    """
    if isinstance(samples, pd.DataFrame):
        samples = samples_from_table(samples)
    n_jobs = CONFIG.n_jobs if n_jobs is None else n_jobs
    fitter = afps if automated else fps
    skip_errors = on_error is not None

    names = list(samples)
    logger.info("Fitting %d samples with %s (n_jobs=%s)", len(names), fitter.__name__, n_jobs)

    if n_jobs == 1:
        fitted = [_fit_sample(fitter, lib, samples[name], skip_errors, fit_kwargs) for name in names]
    else:
        fitted = Parallel(n_jobs=n_jobs)(
            delayed(_fit_sample)(fitter, lib, samples[name], skip_errors, fit_kwargs) for name in names
        )

    results = {}
    for name, res in zip(names, fitted):
        if isinstance(res, Exception):
            logger.warning("Sample %s failed: %s", name, res)
            on_error(name, res)
        else:
            results[name] = res
    return results
