"""
Fit-quality measures for full pattern summation.

    R     = sqrt( Σ (y - ŷ)² / Σ y² )
    Rwp   = sqrt( Σ w (y - ŷ)² / Σ w y² ),  w = 1 / y
    Delta = Σ |y - ŷ|
    r2    = squared Pearson correlation of y and ŷ
"""

from __future__ import annotations

import numpy as np

from soilxrd.analysis.results import FitQuality
from soilxrd.config import CONFIG
from soilxrd.utils.spectrum_math import pearson_r


def rwp_weights(measured: np.ndarray, floor_fraction: float | None = None) -> np.ndarray:
    """
    Counting-statistics weights 1/y. Intensities below ``floor_fraction`` of
    the maximum are held at the floor so empty regions cannot dominate.
    """
    floor_fraction = CONFIG.rwp_floor_fraction if floor_fraction is None else floor_fraction
    y = np.asarray(measured, dtype=float)
    y_max = float(np.max(np.abs(y))) if y.size else 0.0
    floor = max(floor_fraction * y_max, np.finfo(float).tiny)
    return 1.0 / np.maximum(y, floor)


def compute_r(measured, fitted) -> float:
    y = np.asarray(measured, dtype=float)
    yc = np.asarray(fitted, dtype=float)
    denom = np.sum(y**2)
    if denom == 0:
        return np.nan
    return float(np.sqrt(np.sum((y - yc) ** 2) / denom))


def compute_rwp(measured, fitted, weights=None) -> float:
    y = np.asarray(measured, dtype=float)
    yc = np.asarray(fitted, dtype=float)
    w = rwp_weights(y) if weights is None else np.asarray(weights, dtype=float)
    denom = np.sum(w * y**2)
    if denom <= 0:
        return np.nan
    return float(np.sqrt(np.sum(w * (y - yc) ** 2) / denom))


def compute_delta(measured, fitted) -> float:
    y = np.asarray(measured, dtype=float)
    yc = np.asarray(fitted, dtype=float)
    return float(np.sum(np.abs(y - yc)))


def compute_r2(measured, fitted) -> float:
    return pearson_r(measured, fitted) ** 2


def fit_quality(measured, fitted) -> FitQuality:
    return FitQuality(
        rwp=compute_rwp(measured, fitted),
        r=compute_r(measured, fitted),
        delta=compute_delta(measured, fitted),
        r2=compute_r2(measured, fitted),
    )
