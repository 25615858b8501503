import numpy as np
import pandas as pd
import pytest

from soilxrd.analysis.library import ReferenceLibrary
from soilxrd.utils.peak_profiles import gaussian

TTH = np.round(np.arange(10.0, 60.0 + 1e-9, 0.02), 4)

# id: (name, rir, [(center, height), ...], fwhm)
PHASES = {
    "qtz": ("Quartz", 4.3, [(20.86, 35.0), (26.64, 100.0), (36.54, 8.0), (50.14, 15.0)], 0.19),
    "qtz2": ("Quartz", 4.3, [(20.86, 30.0), (26.64, 100.0), (50.14, 12.0)], 0.35),
    "cor": ("Corundum", 1.0, [(25.58, 60.0), (35.15, 90.0), (43.35, 100.0), (57.50, 80.0)], 0.19),
    "cal": ("Calcite", 3.2, [(29.41, 100.0), (39.42, 18.0), (47.52, 17.0), (48.52, 17.0)], 0.19),
    "kln": ("Kaolinite", 1.5, [(12.36, 100.0), (24.88, 80.0), (38.46, 30.0)], 0.24),
    "amor": ("Amorphous", 1.0, [(22.0, 10.0)], 9.4),
}


def phase_pattern(pid, x=TTH, offset=0.0):
    _, _, peaks, fwhm = PHASES[pid]
    y = np.zeros_like(np.asarray(x, dtype=float))
    for center, height in peaks:
        y += gaussian(x, height, center + offset, fwhm)
    return y


def library(ids=None, x=TTH):
    ids = list(PHASES) if ids is None else ids
    xrd = pd.DataFrame({pid: phase_pattern(pid, x) for pid in ids})
    phases = pd.DataFrame(
        [{"phase_id": pid, "phase_name": PHASES[pid][0], "rir": PHASES[pid][1]} for pid in ids]
    )
    return ReferenceLibrary(tth=x, xrd=xrd, phases=phases)


def mixture(weights, x=TTH, offsets=None, scale=1.0):
    """
    Diffractogram of a mixture given in wt %: each phase contributes
    w * RIR * pattern, so c / RIR recovers w (up to ``scale``).
    """
    offsets = offsets or {}
    y = np.zeros_like(np.asarray(x, dtype=float))
    for pid, w in weights.items():
        y += scale * w / 100.0 * PHASES[pid][1] * phase_pattern(pid, x, offsets.get(pid, 0.0))
    return pd.DataFrame({"two_theta": x, "intensity": y})


@pytest.fixture
def lib():
    return library()


@pytest.fixture
def make_library():
    return library


@pytest.fixture
def make_mixture():
    return mixture


@pytest.fixture
def make_pattern():
    return phase_pattern


@pytest.fixture
def tth():
    return TTH.copy()
