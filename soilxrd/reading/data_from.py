import os
from typing import Optional

import numpy as np
import pandas as pd
from pymatgen.analysis.diffraction.xrd import XRDCalculator
from pymatgen.core import Structure

from soilxrd.analysis.library import ReferenceLibrary
from soilxrd.utils.peak_profiles import broaden_sticks
from soilxrd.utils.preprocessing import as_diffractogram, trim_2theta

# Whitespace, comma or semicolon separated ASCII
_ANY_SEP = r"[\s,;]+"


def diffractogram_from_file(
    file_path: str,
    sep: str | None = None,
    has_header: bool = False,
    theta_col: int | str = 0,
    int_col: int | str = 1,
    interval_2theta: Optional[tuple[float, float]] = None,
) -> pd.DataFrame:
    """
    Load a two-column ASCII diffractogram (angle, intensity) into a
    standardized DataFrame.

    Default format (no header):
        col0: two_theta (degrees)
        col1: intensity (counts)

    ``sep=None`` accepts whitespace, comma or semicolon delimiters (.xy,
    .csv and most instrument ASCII exports).
    """
    if not os.path.isfile(file_path):
        raise FileNotFoundError(f"diffractogram_from_file: file not found: {file_path}")

    header = 0 if has_header else None
    if sep is None:
        df = pd.read_csv(file_path, sep=_ANY_SEP, header=header, engine="python")
    else:
        df = pd.read_csv(file_path, sep=sep, header=header)

    # Select and rename columns
    try:
        df = df[[theta_col, int_col]].copy()
    except KeyError as exc:
        raise KeyError(
            f"diffractogram_from_file: cannot find columns '{theta_col}'/'{int_col}' in {file_path}"
        ) from exc

    df.columns = ["two_theta", "intensity"]
    df = as_diffractogram(df.dropna())

    if interval_2theta is not None:
        df = trim_2theta(df, interval_2theta)

    return df


def multi_xy_from_file(file_path: str, sep: str = ",") -> pd.DataFrame:
    """
    Load a multi-sample table: header row, first column the shared 2θ axis,
    every further column one sample's intensities.
    """
    if not os.path.isfile(file_path):
        raise FileNotFoundError(f"multi_xy_from_file: file not found: {file_path}")

    df = pd.read_csv(file_path, sep=sep)
    if df.shape[1] < 2:
        raise ValueError(f"multi_xy_from_file: {file_path} needs an angle column and at least one sample")
    df = df.rename(columns={df.columns[0]: "two_theta"}).astype(float)
    as_diffractogram(df.iloc[:, :2])  # validates the shared axis
    return df


def library_from_files(
    xrd_path: str,
    phases_path: str,
    sep: str = ",",
    wavelength: float | None = None,
) -> ReferenceLibrary:
    """
    Build a reference library from two tables.

    xrd_path    : header row; first column 2θ, then one column per reference id
    phases_path : columns phase_id, phase_name, rir (one row per reference)
    """
    for path in (xrd_path, phases_path):
        if not os.path.isfile(path):
            raise FileNotFoundError(f"library_from_files: file not found: {path}")

    xrd = pd.read_csv(xrd_path, sep=sep)
    phases = pd.read_csv(phases_path, sep=sep, dtype={"phase_id": str})
    if xrd.shape[1] < 2:
        raise ValueError(f"library_from_files: {xrd_path} holds no reference patterns")

    tth = xrd.iloc[:, 0].to_numpy(dtype=float)
    patterns = xrd.iloc[:, 1:]
    return ReferenceLibrary(tth=tth, xrd=patterns, phases=phases, wavelength=wavelength)


def reference_from_cif(
    cif_file_path: str,
    two_theta,
    wavelength: float | str = "CuKa1",
    fwhm: float = 0.1,
    scale: float = 100.0,
    eta: float = 0.0,
) -> pd.DataFrame:
    """
    Simulate a continuous reference pattern from a CIF.

    Stick pattern from pymatgen's XRDCalculator, each reflection broadened
    with a pseudo-Voigt of the given FWHM (``eta`` = Lorentzian weight, 0 for
    pure Gaussian) and summed on ``two_theta``; the strongest point is scaled
    to ``scale``.
    """
    if not os.path.isfile(cif_file_path):
        raise FileNotFoundError(f"reference_from_cif: file not found: {cif_file_path}")

    structure = Structure.from_file(cif_file_path)
    return reference_from_structure(structure, two_theta, wavelength=wavelength, fwhm=fwhm, scale=scale, eta=eta)


def reference_from_structure(
    structure: Structure,
    two_theta,
    wavelength: float | str = "CuKa1",
    fwhm: float = 0.1,
    scale: float = 100.0,
    eta: float = 0.0,
) -> pd.DataFrame:
    x = np.asarray(two_theta, dtype=float)
    calc = XRDCalculator(wavelength=wavelength)
    pattern = calc.get_pattern(structure, two_theta_range=(float(x.min()), float(x.max())))

    y = broaden_sticks(x, pattern.x, pattern.y, fwhm, eta=eta)
    if y.max() > 0:
        y = y / y.max() * scale
    return pd.DataFrame({"two_theta": x, "intensity": y})


def write_xy(df: pd.DataFrame, file_path: str, sep: str = " ") -> None:
    """Write a diffractogram as two-column ASCII without header."""
    df[["two_theta", "intensity"]].to_csv(file_path, sep=sep, header=False, index=False)
