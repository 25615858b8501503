import numpy as np
import pandas as pd
import pytest

from soilxrd.fitting.fps import fps
from soilxrd.fitting.quantify import (
    close_quant,
    estimate_concentrations,
    estimate_lod,
    to_standard_free_basis,
)


def test_estimate_concentrations_without_standard():
    coefs = pd.Series({"a": 2.0, "b": 1.0})
    rir = pd.Series({"a": 2.0, "b": 1.0})
    pct = estimate_concentrations(coefs, rir)
    assert pct.to_dict() == pytest.approx({"a": 50.0, "b": 50.0})


def test_estimate_concentrations_with_standard():
    coefs = pd.Series({"std": 1.0, "a": 4.0, "b": 0.5})
    rir = pd.Series({"std": 1.0, "a": 2.0, "b": 0.5})
    pct = estimate_concentrations(coefs, rir, std="std", std_conc=20.0)
    assert pct.to_dict() == pytest.approx({"std": 20.0, "a": 40.0, "b": 20.0})

    free = to_standard_free_basis(pct, "std", 20.0)
    assert "std" not in free.index
    assert free.to_dict() == pytest.approx({"a": 50.0, "b": 25.0})


def test_estimate_concentrations_undetected_standard():
    coefs = pd.Series({"std": 0.0, "a": 1.0})
    rir = pd.Series({"std": 1.0, "a": 1.0})
    with pytest.raises(ValueError):
        estimate_concentrations(coefs, rir, std="std", std_conc=10.0)
    with pytest.raises(ValueError):
        estimate_concentrations(coefs, rir, std="other", std_conc=10.0)


def test_estimate_lod_scales_with_rir():
    lods = estimate_lod([1.0, 2.0, 0.5], std_rir=1.0, lod=0.2)
    assert np.allclose(lods, [0.2, 0.1, 0.4])


def test_close_quant_preserves_ratios(lib, make_mixture):
    smpl = make_mixture({"qtz": 40, "cal": 20, "kln": 30, "cor": 10})
    # declared standard concentration twice the true one, so nothing sums to 100
    res = fps(lib, smpl, refs=["qtz", "cal", "kln", "cor"], std="cor", std_conc=20.0, align=0)
    assert not np.isclose(res.total_percent, 100.0)

    closed = close_quant(res)

    assert closed.closed and not res.closed
    assert closed.total_percent == pytest.approx(100.0)
    ratio_before = res.phase_percent["qtz"] / res.phase_percent["kln"]
    ratio_after = closed.phase_percent["qtz"] / closed.phase_percent["kln"]
    assert ratio_after == pytest.approx(ratio_before)
    assert closed.phases_grouped["phase_percent"].sum() == pytest.approx(100.0)
