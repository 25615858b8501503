# soilxrd/utils/preprocessing.py
import numpy as np
import pandas as pd
import peakutils
from scipy.signal import savgol_filter

from soilxrd.utils.spectrum_math import is_strictly_increasing, normalize_data


def as_diffractogram(obj) -> pd.DataFrame:
    """
    Coerce a DataFrame or an (n, 2) array into a standard diffractogram frame
    with float columns ``two_theta`` and ``intensity``.
    """
    if isinstance(obj, pd.DataFrame):
        if {"two_theta", "intensity"}.issubset(obj.columns):
            df = obj[["two_theta", "intensity"]].copy()
        elif obj.shape[1] >= 2:
            df = obj.iloc[:, :2].copy()
            df.columns = ["two_theta", "intensity"]
        else:
            raise ValueError("as_diffractogram: need at least two columns (angle, intensity)")
    else:
        arr = np.asarray(obj, dtype=float)
        if arr.ndim != 2 or arr.shape[1] < 2:
            raise ValueError(f"as_diffractogram: expected an (n, 2) array, got shape {arr.shape}")
        df = pd.DataFrame({"two_theta": arr[:, 0], "intensity": arr[:, 1]})

    df = df.astype(float).reset_index(drop=True)
    if not is_strictly_increasing(df["two_theta"].values):
        raise ValueError("as_diffractogram: two_theta must be strictly increasing")
    return df


def trim_2theta(df: pd.DataFrame, interval: tuple[float, float]) -> pd.DataFrame:
    """
    Trim spectrum to the given 2θ interval.
    """
    tmin, tmax = interval
    return df.query("@tmin <= two_theta <= @tmax").reset_index(drop=True)


def apply_savgol(intensity: pd.Series | np.ndarray, window_length: int = 17, polyorder: int = 3) -> np.ndarray:
    """
    Savitzky–Golay smoothing for intensity arrays.
    """
    y = np.asarray(intensity, dtype=float)
    if y.size == 0:
        return y
    # window_length must be odd and <= len(y)
    if window_length % 2 == 0:
        window_length += 1
    window_length = min(window_length, y.size if y.size % 2 == 1 else y.size - 1)
    if window_length < polyorder + 2:
        return y
    return savgol_filter(y, window_length=window_length, polyorder=polyorder)


def subtract_baseline(
    intensity: pd.Series | np.ndarray,
    deg: int = 5,
    max_it: int = 200,
    tol: float = 1e-4,
) -> np.ndarray:
    """
    Baseline subtraction using peakutils.baseline.
    """
    y = np.asarray(intensity, dtype=float)
    if y.size == 0:
        return y
    baseline = peakutils.baseline(y, deg=deg, max_it=max_it, tol=tol)
    return y - baseline


def normalize_intensity(intensity: pd.Series | np.ndarray, scale: float = 1.0) -> np.ndarray:
    """
    Normalize intensities to [0, scale].
    """
    y = normalize_data(np.asarray(intensity, dtype=float))
    return y * scale


def pretreat_xy(
    df: pd.DataFrame,
    interval_2theta: tuple[float, float] | None = None,
    use_savgol: bool = False,
    savgol_window: int = 17,
    savgol_polyorder: int = 3,
    use_baseline: bool = False,
    baseline_deg: int = 5,
    normalize: bool = False,
    scale: float = 100.0,
) -> pd.DataFrame:
    """
    Optional pre-treatment chain: trim -> smooth -> baseline -> normalize.

    Every step is off by default so a sample goes into the fit untouched
    unless asked otherwise.
    """
    df_proc = as_diffractogram(df)
    if interval_2theta is not None:
        df_proc = trim_2theta(df_proc, interval_2theta)

    if use_savgol:
        df_proc["intensity"] = apply_savgol(
            df_proc["intensity"].values, window_length=savgol_window, polyorder=savgol_polyorder
        )

    if use_baseline:
        df_proc["intensity"] = subtract_baseline(df_proc["intensity"].values, deg=baseline_deg)

    if normalize:
        df_proc["intensity"] = normalize_intensity(df_proc["intensity"].values, scale=scale)

    return df_proc
