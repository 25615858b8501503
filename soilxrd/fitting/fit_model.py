# soilxrd/fitting/fit_model.py

import logging

import numpy as np
import pandas as pd
from lmfit import Parameters, minimize
from scipy.optimize import nnls

from soilxrd.config import CONFIG
from soilxrd.fitting.metrics import rwp_weights

logger = logging.getLogger(__name__)

SOLVERS = ("nnls", "lbfgsb", "nelder", "powell", "leastsq", "least_squares", "bfgs")
OBJECTIVES = ("Rwp", "R", "Delta")


class PatternModel:
    """
    Weighted sum of reference patterns fitted to a measured diffractogram.

        y(2θ) ≈ Σ_i c_i · ref_i(2θ)

    The coefficients c_i are bounded at zero unless ``signed`` is set.
    ``solver="nnls"`` returns the (weighted) non-negative least squares
    solution directly; any other solver name is an lmfit method, started
    from that solution and run on the chosen objective:

        'Rwp'   : weighted residual, weights 1/y
        'R'     : plain residual
        'Delta' : sum of absolute deviations
    """

    def __init__(
        self,
        tth,
        measured,
        matrix,
        ids,
        solver: str | None = None,
        objective: str | None = None,
        signed: bool = False,
    ):
        self.tth = np.asarray(tth, dtype=float)
        self.measured = np.asarray(measured, dtype=float)
        self.matrix = np.asarray(matrix, dtype=float)
        self.ids = [str(i) for i in ids]
        self.solver = CONFIG.solver if solver is None else solver
        self.objective = CONFIG.objective if objective is None else objective
        self.signed = signed

        if self.solver not in SOLVERS:
            raise NotImplementedError(f"PatternModel: unsupported solver {self.solver!r}, use one of {SOLVERS}")
        if self.objective not in OBJECTIVES:
            raise ValueError(f"PatternModel: unknown objective {self.objective!r}, use one of {OBJECTIVES}")
        if self.matrix.ndim != 2 or self.matrix.shape != (self.measured.size, len(self.ids)):
            raise ValueError(
                f"PatternModel: matrix shape {self.matrix.shape} does not match "
                f"{self.measured.size} points x {len(self.ids)} references"
            )
        if not self.ids:
            raise ValueError("PatternModel: no reference patterns to fit")

        self._weights = rwp_weights(self.measured)
        self._coefficients = None
        self._output = None

    # ------------- PUBLIC API -----------------

    def fit(self) -> pd.Series:
        """
        Fit the coefficients.

        Returns
        -------
        coefficients : pandas.Series indexed by reference id
        """
        start = self._initial_guess()

        if self.solver == "nnls":
            coefs = start
        else:
            params = self.generate_params(start)
            output = minimize(self.residual, params, method=self.solver)
            logger.debug(
                "lmfit %s on %s: success=%s nfev=%s", self.solver, self.objective, output.success, output.nfev
            )
            self._output = output
            coefs = np.array([output.params[self._name(i)].value for i in range(len(self.ids))])

        self._coefficients = pd.Series(coefs, index=self.ids, dtype=float)
        return self._coefficients.copy()

    @property
    def coefficients(self) -> pd.Series:
        if self._coefficients is None:
            raise RuntimeError("PatternModel.coefficients accessed before fit()")
        return self._coefficients.copy()

    def fitted(self) -> np.ndarray:
        return self.matrix @ self.coefficients.values

    def weighted_patterns(self) -> pd.DataFrame:
        """Each reference scaled by its coefficient, one column per id."""
        return pd.DataFrame(self.matrix * self.coefficients.values, columns=self.ids)

    def best_values(self) -> pd.DataFrame:
        """
        Fitted coefficients with lmfit standard errors where available.

        Returns
        -------
        df : pandas.DataFrame with columns phase_id, coefficient, stderr
        """
        coefs = self.coefficients
        rows = []
        for i, pid in enumerate(self.ids):
            stderr = np.nan
            if self._output is not None:
                par = self._output.params.get(self._name(i))
                if par is not None and par.stderr is not None:
                    stderr = float(par.stderr)
            rows.append(dict(phase_id=pid, coefficient=float(coefs[pid]), stderr=stderr))
        return pd.DataFrame(rows)

    # ------------- OBJECTIVE -----------------

    def generate_params(self, start) -> Parameters:
        params = Parameters()
        lower = -np.inf if self.signed else 0.0
        for i, value in enumerate(start):
            value = float(value)
            if not self.signed:
                value = max(value, 0.0)
            params.add(self._name(i), value=value, min=lower)
        return params

    def residual(self, params) -> np.ndarray:
        """
        Residual vector whose sum of squares equals the objective (squared
        for Rwp/R, as is for Delta).
        """
        coefs = np.array([params[self._name(i)].value for i in range(len(self.ids))])
        diff = self.measured - self.matrix @ coefs
        if self.objective == "Rwp":
            return np.sqrt(self._weights) * diff
        if self.objective == "R":
            return diff
        return np.sqrt(np.abs(diff))

    # ------------- INTERNAL -----------------

    @staticmethod
    def _name(i: int) -> str:
        return f"c{i}"

    def _initial_guess(self) -> np.ndarray:
        if self.objective == "Rwp":
            sw = np.sqrt(self._weights)
            a = self.matrix * sw[:, None]
            b = self.measured * sw
        else:
            a, b = self.matrix, self.measured

        if self.signed:
            coefs, *_ = np.linalg.lstsq(a, b, rcond=None)
        else:
            coefs, _ = nnls(a, b)
        return np.asarray(coefs, dtype=float)
