# soilxrd/utils/spectrum_math.py
import numpy as np


# ======= Basic helpers =======

def normalize_data(intens):
    """
    Scale an intensity array to [0, 1].

    A flat array maps to zeros.
    """
    intens = np.asarray(intens, dtype=float)
    if intens.max() == intens.min():
        return np.zeros_like(intens)
    return (intens - intens.min()) / (intens.max() - intens.min())


def mean_step(two_theta) -> float:
    """Mean sampling step of an angle axis (deg 2θ)."""
    x = np.asarray(two_theta, dtype=float)
    if x.size < 2:
        return 0.0
    return float((x[-1] - x[0]) / (x.size - 1))


def is_strictly_increasing(two_theta) -> bool:
    x = np.asarray(two_theta, dtype=float)
    return bool(x.size < 2 or np.all(np.diff(x) > 0))


def pearson_r(a, b) -> float:
    """Pearson correlation of two equally sized arrays; 0 for a flat input."""
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    a = a - a.mean()
    b = b - b.mean()
    denom = np.sqrt(np.sum(a**2) * np.sum(b**2))
    if denom == 0:
        return 0.0
    return float(np.sum(a * b) / denom)
