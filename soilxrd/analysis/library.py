"""
Reference library: pure-phase patterns on a shared axis plus their metadata.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

import numpy as np
import pandas as pd

from soilxrd.utils.harmonise import axes_match, common_axis
from soilxrd.utils.spectrum_math import is_strictly_increasing

logger = logging.getLogger(__name__)

PHASE_COLUMNS = ["phase_id", "phase_name", "rir"]


@dataclass
class ReferenceLibrary:
    """
    Collection of reference diffractograms.

    tth    : shared 2θ axis
    xrd    : one column of intensities per reference id, rows follow ``tth``
    phases : metadata with columns phase_id, phase_name, rir
    """

    tth: np.ndarray
    xrd: pd.DataFrame
    phases: pd.DataFrame
    wavelength: float | None = None

    def __post_init__(self):
        self.tth = np.asarray(self.tth, dtype=float)
        self.xrd = pd.DataFrame(self.xrd).reset_index(drop=True)
        self.xrd.columns = [str(c) for c in self.xrd.columns]

        missing_cols = [c for c in PHASE_COLUMNS if c not in self.phases.columns]
        if missing_cols:
            raise KeyError(f"ReferenceLibrary: phases table lacks columns {missing_cols}")
        phases = self.phases[PHASE_COLUMNS].copy()
        phases["phase_id"] = phases["phase_id"].astype(str)
        phases["phase_name"] = phases["phase_name"].astype(str)
        phases["rir"] = phases["rir"].astype(float)
        self.phases = phases.reset_index(drop=True)

        if self.tth.ndim != 1 or self.tth.size != len(self.xrd):
            raise ValueError(
                f"ReferenceLibrary: axis has {self.tth.size} points but patterns have {len(self.xrd)} rows"
            )
        if not is_strictly_increasing(self.tth):
            raise ValueError("ReferenceLibrary: tth must be strictly increasing")

        ids = self.phases["phase_id"]
        dup = ids[ids.duplicated()].tolist()
        if dup:
            raise ValueError(f"ReferenceLibrary: duplicated phase ids {dup}")
        dup_cols = [c for c in set(self.xrd.columns) if list(self.xrd.columns).count(c) > 1]
        if dup_cols:
            raise ValueError(f"ReferenceLibrary: duplicated pattern columns {sorted(dup_cols)}")

        no_pattern = sorted(set(ids) - set(self.xrd.columns))
        no_meta = sorted(set(self.xrd.columns) - set(ids))
        if no_pattern or no_meta:
            raise KeyError(
                f"ReferenceLibrary: ids without pattern {no_pattern}, patterns without metadata {no_meta}"
            )

        rir = self.phases["rir"].values
        if not np.all(np.isfinite(rir)) or np.any(rir <= 0):
            bad = self.phases.loc[~(np.isfinite(rir) & (rir > 0)), "phase_id"].tolist()
            raise ValueError(f"ReferenceLibrary: RIR must be finite and positive, check {bad}")

        self.xrd = self.xrd[ids.tolist()].astype(float)

    # ------------- LOOKUPS -----------------

    @property
    def ids(self) -> list[str]:
        return self.phases["phase_id"].tolist()

    def __len__(self) -> int:
        return len(self.phases)

    def __contains__(self, phase_id) -> bool:
        return str(phase_id) in set(self.ids)

    def check_ids(self, ids: Iterable[str]) -> list[str]:
        """Return ``ids`` as strings; KeyError naming every id not in the library."""
        ids = [str(i) for i in ids]
        missing = [i for i in ids if i not in self]
        if missing:
            raise KeyError(f"ReferenceLibrary: ids not found in library: {missing}")
        return ids

    def _meta(self, ids: Iterable[str]) -> pd.DataFrame:
        ids = self.check_ids(ids)
        return self.phases.set_index("phase_id").loc[ids]

    def rir(self, ids: Iterable[str] | None = None) -> np.ndarray:
        ids = self.ids if ids is None else ids
        return self._meta(ids)["rir"].to_numpy(dtype=float)

    def phase_names(self, ids: Iterable[str] | None = None) -> list[str]:
        ids = self.ids if ids is None else ids
        return self._meta(ids)["phase_name"].tolist()

    def matrix(self, ids: Iterable[str] | None = None) -> np.ndarray:
        """Pattern matrix (points x references) in the order of ``ids``."""
        ids = self.ids if ids is None else self.check_ids(ids)
        return self.xrd[list(ids)].to_numpy(dtype=float)

    def pattern(self, phase_id: str) -> pd.DataFrame:
        (pid,) = self.check_ids([phase_id])
        return pd.DataFrame({"two_theta": self.tth, "intensity": self.xrd[pid].values})

    # ------------- DERIVED LIBRARIES -----------------

    def subset(self, ids: Iterable[str], mode: str = "keep") -> "ReferenceLibrary":
        """
        Library restricted to ``ids`` (mode="keep") or without them (mode="remove").
        """
        ids = self.check_ids(ids)
        if mode == "keep":
            keep = list(dict.fromkeys(ids))
        elif mode == "remove":
            drop = set(ids)
            keep = [i for i in self.ids if i not in drop]
        else:
            raise ValueError(f"ReferenceLibrary.subset: mode must be 'keep' or 'remove', got {mode!r}")

        phases = self.phases.set_index("phase_id").loc[keep].reset_index()
        return ReferenceLibrary(
            tth=self.tth.copy(), xrd=self.xrd[keep].copy(), phases=phases, wavelength=self.wavelength
        )

    def interpolate(self, two_theta) -> "ReferenceLibrary":
        """Linear interpolation of every pattern onto ``two_theta``."""
        x_new = np.asarray(two_theta, dtype=float)
        xrd = pd.DataFrame(
            {pid: np.interp(x_new, self.tth, self.xrd[pid].values) for pid in self.ids},
            columns=self.ids,
        )
        return ReferenceLibrary(tth=x_new, xrd=xrd, phases=self.phases.copy(), wavelength=self.wavelength)

    def trim(self, tmin: float, tmax: float) -> "ReferenceLibrary":
        mask = (self.tth >= tmin) & (self.tth <= tmax)
        if not mask.any():
            raise ValueError(f"ReferenceLibrary.trim: no points within {tmin}-{tmax}")
        return ReferenceLibrary(
            tth=self.tth[mask],
            xrd=self.xrd.loc[mask].reset_index(drop=True),
            phases=self.phases.copy(),
            wavelength=self.wavelength,
        )

    def add_reference(
        self,
        phase_id: str,
        phase_name: str,
        rir: float,
        intensity,
    ) -> "ReferenceLibrary":
        """New library with one more pattern (``intensity`` must follow ``tth``)."""
        phase_id = str(phase_id)
        if phase_id in self:
            raise ValueError(f"ReferenceLibrary.add_reference: id {phase_id!r} already present")
        y = np.asarray(intensity, dtype=float)
        if y.shape != self.tth.shape:
            raise ValueError(
                f"ReferenceLibrary.add_reference: pattern has {y.size} points, library axis has {self.tth.size}"
            )

        xrd = self.xrd.copy()
        xrd[phase_id] = y
        phases = pd.concat(
            [self.phases, pd.DataFrame([{"phase_id": phase_id, "phase_name": phase_name, "rir": rir}])],
            ignore_index=True,
        )
        return ReferenceLibrary(tth=self.tth.copy(), xrd=xrd, phases=phases, wavelength=self.wavelength)

    def merge(self, other: "ReferenceLibrary", harmonise: bool = True) -> "ReferenceLibrary":
        """
        Combine two libraries. Different axes are interpolated onto their
        common axis when ``harmonise`` is set, otherwise ValueError.
        """
        overlap = sorted(set(self.ids) & set(other.ids))
        if overlap:
            raise ValueError(f"ReferenceLibrary.merge: ids present in both libraries: {overlap}")

        left, right = self, other
        if not axes_match(self.tth, other.tth):
            if not harmonise:
                raise ValueError("ReferenceLibrary.merge: libraries have different 2θ axes and harmonise=False")
            axis = common_axis(self.tth, other.tth)
            logger.info("Merging libraries on a common axis of %d points", axis.size)
            left, right = self.interpolate(axis), other.interpolate(axis)

        xrd = pd.concat([left.xrd, right.xrd], axis=1)
        phases = pd.concat([left.phases, right.phases], ignore_index=True)
        return ReferenceLibrary(tth=left.tth.copy(), xrd=xrd, phases=phases, wavelength=self.wavelength)
