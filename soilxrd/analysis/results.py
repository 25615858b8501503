"""
Containers returned by the pattern fitters.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
import pandas as pd


@dataclass(frozen=True)
class FitQuality:
    rwp: float
    r: float
    delta: float
    r2: float

    def as_dict(self) -> dict:
        return {"Rwp": self.rwp, "R": self.r, "Delta": self.delta, "r2": self.r2}


@dataclass
class FitResult:
    """
    Outcome of one full-pattern-summation fit.

    phases holds one row per fitted reference (phase_id, phase_name, rir,
    coefficient, shift, phase_percent, plus p_value for loading fits);
    phases_grouped sums phase_percent by phase_name.
    """

    tth: np.ndarray
    measured: np.ndarray
    fitted: np.ndarray
    phases: pd.DataFrame
    phases_grouped: pd.DataFrame
    weighted_pure_patterns: pd.DataFrame
    quality: FitQuality
    alignment: float = 0.0
    std: str | None = None
    std_conc: float | None = None
    closed: bool = False
    removed: dict[str, str] = field(default_factory=dict)

    @property
    def residuals(self) -> np.ndarray:
        return np.asarray(self.measured) - np.asarray(self.fitted)

    @property
    def phase_percent(self) -> pd.Series:
        return self.phases.set_index("phase_id")["phase_percent"]

    @property
    def total_percent(self) -> float:
        return float(self.phases["phase_percent"].sum())

    def to_frame(self) -> pd.DataFrame:
        """Measured, fitted and residual curves on the fitted axis."""
        return pd.DataFrame(
            {
                "two_theta": self.tth,
                "measured": self.measured,
                "fitted": self.fitted,
                "residual": self.residuals,
            }
        )
