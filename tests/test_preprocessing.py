import numpy as np
import pandas as pd
import pytest

from soilxrd.utils.preprocessing import (
    apply_savgol,
    as_diffractogram,
    normalize_intensity,
    pretreat_xy,
    subtract_baseline,
    trim_2theta,
)


def test_trim_2theta():
    df = pd.DataFrame({"two_theta": np.linspace(10, 70, 13), "intensity": np.arange(13)})
    trimmed = trim_2theta(df, interval=(20, 60))
    assert trimmed["two_theta"].between(20, 60).all()
    assert len(trimmed) < len(df)


def test_apply_savgol_reduces_noise():
    rng = np.random.default_rng(0)
    x = np.linspace(0, 2 * np.pi, 200)
    clean = np.sin(x)
    noisy = clean + rng.normal(0, 0.2, size=clean.size)

    filtered = apply_savgol(noisy, window_length=31, polyorder=3)

    assert len(filtered) == len(noisy)
    assert np.var(filtered - clean) < np.var(noisy - clean)


def test_subtract_baseline_on_linear_trend():
    rng = np.random.default_rng(1)
    x = np.linspace(0, 10, 100)
    signal = 0.5 * x + 5 + rng.normal(0, 0.1, size=x.size)

    corrected = subtract_baseline(signal, deg=1)

    assert abs(np.mean(corrected)) < abs(np.mean(signal))


def test_normalize_intensity():
    norm = normalize_intensity(np.array([1, 2, 3], dtype=float), scale=2.0)
    assert np.allclose(norm, [0.0, 1.0, 2.0])


def test_as_diffractogram_from_array_and_frame():
    arr = np.column_stack([np.linspace(5, 6, 5), np.arange(5)])
    df = as_diffractogram(arr)
    assert list(df.columns) == ["two_theta", "intensity"]
    assert df["intensity"].dtype == float

    renamed = as_diffractogram(pd.DataFrame({"angle": arr[:, 0], "counts": arr[:, 1]}))
    assert np.allclose(renamed["two_theta"], arr[:, 0])


def test_as_diffractogram_rejects_unsorted_axis():
    with pytest.raises(ValueError):
        as_diffractogram(np.array([[10.0, 1.0], [9.0, 2.0], [11.0, 3.0]]))


def test_pretreat_xy_defaults_leave_data_untouched():
    df = pd.DataFrame({"two_theta": np.linspace(10, 20, 50), "intensity": np.linspace(1, 5, 50)})
    out = pretreat_xy(df)
    assert np.allclose(out["intensity"], df["intensity"])

    scaled = pretreat_xy(df, interval_2theta=(12, 18), normalize=True, scale=100.0)
    assert scaled["two_theta"].between(12, 18).all()
    assert np.isclose(scaled["intensity"].max(), 100.0)
