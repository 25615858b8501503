import numpy as np
import pandas as pd
import pytest

from soilxrd.utils.harmonise import (
    axes_match,
    common_axis,
    harmonise_samples,
    harmonise_xy,
    interpolate_xy,
)


def test_common_axis_uses_overlap_and_coarsest_step():
    a = np.arange(10.0, 60.0001, 0.02)
    b = np.arange(15.0, 55.0001, 0.05)

    axis = common_axis(a, b)

    assert np.isclose(axis[0], 15.0)
    assert axis[-1] <= 55.0 + 1e-9
    assert np.allclose(np.diff(axis), 0.05)


def test_common_axis_without_overlap():
    with pytest.raises(ValueError):
        common_axis(np.linspace(5, 10, 20), np.linspace(20, 30, 20))


def test_interpolate_xy_linear():
    df = pd.DataFrame({"two_theta": [0.0, 1.0, 2.0], "intensity": [0.0, 10.0, 20.0]})
    out = interpolate_xy(df, [0.5, 1.5])
    assert np.allclose(out["intensity"], [5.0, 15.0])


def test_harmonise_xy_is_identity_on_matching_axes(lib, make_mixture):
    smpl = make_mixture({"qtz": 50, "cal": 50})
    smpl_h, lib_h = harmonise_xy(smpl, lib)
    assert smpl_h is smpl
    assert lib_h is lib


def test_harmonise_xy_is_idempotent(lib, make_mixture):
    x = np.round(np.arange(12.0, 58.0001, 0.05), 4)
    smpl = make_mixture({"qtz": 50, "cal": 50}, x=x)

    smpl_h, lib_h = harmonise_xy(smpl, lib)
    assert axes_match(smpl_h["two_theta"], lib_h.tth)
    assert lib_h.ids == lib.ids

    smpl_h2, lib_h2 = harmonise_xy(smpl_h, lib_h)
    assert smpl_h2 is smpl_h
    assert lib_h2 is lib_h


def test_harmonise_samples():
    s1 = pd.DataFrame({"two_theta": np.linspace(10, 50, 401), "intensity": np.ones(401)})
    s2 = pd.DataFrame({"two_theta": np.linspace(12, 60, 241), "intensity": np.ones(241)})

    out = harmonise_samples([s1, s2])

    assert len(out) == 2
    assert axes_match(out[0]["two_theta"], out[1]["two_theta"])
    assert out[0]["two_theta"].iloc[0] >= 12.0
    assert out[0]["two_theta"].iloc[-1] <= 50.0

    same = harmonise_samples([s1, s1.copy()])
    assert same[0] is s1
