"""
Geometry helpers for XRD: Bragg's law and radiation changes.
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from soilxrd.config import CONFIG


def two_theta_to_d(two_theta, wavelength_ang: float | None = None):
    """
    Interplanar spacing d (Å) from peak position (2θ, degrees).
    """
    wavelength_ang = CONFIG.wavelength if wavelength_ang is None else wavelength_ang
    theta = np.deg2rad(np.asarray(two_theta, dtype=float) / 2.0)
    with np.errstate(divide="ignore"):
        d = wavelength_ang / (2 * np.sin(theta))
    return np.where(theta == 0, np.nan, d)


def d_to_two_theta(d_hkl, wavelength_ang: float | None = None):
    """
    Position (2θ, degrees) of a reflection with spacing d (Å). NaN where
    the reflection is out of reach for the wavelength.
    """
    wavelength_ang = CONFIG.wavelength if wavelength_ang is None else wavelength_ang
    ratio = wavelength_ang / (2 * np.asarray(d_hkl, dtype=float))
    with np.errstate(invalid="ignore"):
        return np.where(np.abs(ratio) <= 1, 2 * np.rad2deg(np.arcsin(ratio)), np.nan)


def convert_wavelength(
    df: pd.DataFrame,
    wavelength_from: float,
    wavelength_to: float,
) -> pd.DataFrame:
    """
    Re-express a diffractogram's 2θ axis for another radiation.

    Used to put e.g. Co Kα measurements on the scale of a Cu Kα library.
    Angles that cannot be reached with the target wavelength are dropped.
    """
    d = two_theta_to_d(df["two_theta"].values, wavelength_ang=wavelength_from)
    tth_new = d_to_two_theta(d, wavelength_ang=wavelength_to)

    out = pd.DataFrame({"two_theta": tth_new, "intensity": df["intensity"].values})
    out = out.dropna(subset=["two_theta"])
    return out.sort_values("two_theta").reset_index(drop=True)
