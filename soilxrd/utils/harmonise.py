"""
Put diffractograms and reference libraries on a shared 2θ axis.
"""

from __future__ import annotations

import logging
from typing import Iterable

import numpy as np
import pandas as pd

from soilxrd.config import CONFIG
from soilxrd.utils.spectrum_math import mean_step

logger = logging.getLogger(__name__)


def axes_match(a, b, tol: float | None = None) -> bool:
    """True when two angle axes have the same length and agree within ``tol``."""
    tol = CONFIG.axis_tolerance if tol is None else tol
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    if a.shape != b.shape:
        return False
    return bool(np.allclose(a, b, rtol=0.0, atol=tol))


def common_axis(a, b) -> np.ndarray:
    """
    Axis spanning the overlap of ``a`` and ``b`` at the coarser of their
    mean step sizes.
    """
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    lo = max(a.min(), b.min())
    hi = min(a.max(), b.max())
    if lo >= hi:
        raise ValueError(
            f"common_axis: axes do not overlap ({a.min():.3f}-{a.max():.3f} vs {b.min():.3f}-{b.max():.3f})"
        )

    step = max(mean_step(a), mean_step(b))
    if step <= 0:
        raise ValueError("common_axis: cannot derive a step from a single-point axis")

    n = int(np.floor((hi - lo) / step + 1e-9)) + 1
    return lo + step * np.arange(n)


def interpolate_xy(df: pd.DataFrame, two_theta) -> pd.DataFrame:
    """
    Linear interpolation of a diffractogram onto ``two_theta``.
    """
    x_new = np.asarray(two_theta, dtype=float)
    y_new = np.interp(x_new, df["two_theta"].values, df["intensity"].values)
    return pd.DataFrame({"two_theta": x_new, "intensity": y_new})


def harmonise_xy(smpl: pd.DataFrame, lib):
    """
    Interpolate a sample and a reference library onto their common axis.

    Returns ``(smpl, lib)``. When the axes already match both inputs come
    back untouched, so harmonising twice changes nothing.
    """
    if axes_match(smpl["two_theta"].values, lib.tth):
        return smpl, lib

    axis = common_axis(smpl["two_theta"].values, lib.tth)
    logger.info(
        "Harmonising sample and library onto %d points (%.3f-%.3f, step %.4f)",
        axis.size,
        axis[0],
        axis[-1],
        mean_step(axis),
    )
    return interpolate_xy(smpl, axis), lib.interpolate(axis)


def harmonise_samples(samples: Iterable[pd.DataFrame]) -> list[pd.DataFrame]:
    """
    Harmonise several diffractograms onto one axis (overlap, coarsest step).
    """
    samples = list(samples)
    if not samples:
        return []

    first = samples[0]["two_theta"].values
    if all(axes_match(first, s["two_theta"].values) for s in samples[1:]):
        return samples

    axis = first
    for s in samples[1:]:
        axis = common_axis(axis, s["two_theta"].values)
    return [interpolate_xy(s, axis) for s in samples]
