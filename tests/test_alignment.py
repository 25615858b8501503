import numpy as np
import pandas as pd
import pytest

from soilxrd.fitting.alignment import (
    align_to_standard,
    align_xy,
    apply_shift,
    shift_pattern,
    shift_references,
)


def test_align_to_standard_recovers_offset(lib, make_mixture):
    # Sample measured with every peak 0.05° too high
    offsets = {pid: 0.05 for pid in ("qtz", "cor", "cal")}
    smpl = make_mixture({"qtz": 50, "cor": 20, "cal": 30}, offsets=offsets)

    shift = align_to_standard(smpl, lib.pattern("cor"), max_shift=0.2)

    assert shift == pytest.approx(-0.05, abs=0.005)


def test_align_to_standard_disabled(lib, make_mixture):
    smpl = make_mixture({"qtz": 50, "cor": 50})
    assert align_to_standard(smpl, lib.pattern("cor"), max_shift=0) == 0.0


def test_align_xy_keeps_own_axis(lib, make_mixture):
    smpl = make_mixture({"cor": 100}, offsets={"cor": -0.04})
    (aligned,) = align_xy([smpl], lib.pattern("cor"), max_shift=0.1)

    ref = lib.pattern("cor").set_index("two_theta")["intensity"]
    common = ref.loc[aligned["two_theta"].values].values
    assert aligned["intensity"].values.max() == pytest.approx(common.max(), rel=0.05)
    assert np.corrcoef(aligned["intensity"].values, common)[0, 1] > 0.999


def test_apply_and_shift_pattern(tth, make_pattern):
    df = pd.DataFrame({"two_theta": tth, "intensity": make_pattern("cal")})
    moved = apply_shift(df, 0.1)
    assert np.allclose(moved["two_theta"] - df["two_theta"], 0.1)

    shifted = shift_pattern(tth, make_pattern("cal"), 0.1)
    assert np.allclose(shifted, make_pattern("cal", offset=0.1), atol=1.0)


def test_shift_references_recovers_displaced_phase(lib, make_mixture):
    ids = ["qtz", "cal", "kln"]
    smpl = make_mixture({"qtz": 50, "cal": 30, "kln": 20}, offsets={"qtz": 0.04})
    coefs = np.array([0.5 * 4.3, 0.3 * 3.2, 0.2 * 1.5])

    shifts, mat = shift_references(
        lib.tth, smpl["intensity"].values, lib.matrix(ids), coefs, max_shift=0.1, step=0.01
    )

    assert shifts[0] == pytest.approx(0.04, abs=1e-6)
    assert np.allclose(shifts[1:], 0.0)
    assert np.abs(smpl["intensity"].values - mat @ coefs).max() < 1.0


def test_shift_references_respects_exempt(lib, make_mixture):
    ids = ["qtz", "amor"]
    smpl = make_mixture({"qtz": 80, "amor": 20}, offsets={"qtz": 0.03, "amor": 0.5})
    coefs = np.array([0.8 * 4.3, 0.2 * 1.0])

    shifts, mat = shift_references(
        lib.tth, smpl["intensity"].values, lib.matrix(ids), coefs, max_shift=0.1, step=0.01, exempt=[1]
    )

    assert shifts[1] == 0.0
    assert np.array_equal(mat[:, 1], lib.matrix(["amor"])[:, 0])
    assert shifts[0] == pytest.approx(0.03, abs=0.011)
