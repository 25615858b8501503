from dataclasses import dataclass


@dataclass
class FPSConfig:
    align: float = 0.1  # max whole-sample shift against the internal standard (deg 2θ)
    align_step: float | None = None  # grid step for alignment; None -> derived from axis resolution
    shift: float = 0.0  # max per-reference peak shift (deg 2θ); 0 disables
    shift_step: float = 0.01
    solver: str = "lbfgsb"
    objective: str = "Rwp"
    rwp_floor_fraction: float = 1e-3  # intensities below this fraction of max get a capped Rwp weight
    axis_tolerance: float = 1e-6  # two axes closer than this are treated as identical
    lod: float = 0.1  # limit of detection of the internal standard (wt %)
    amorphous_lod: float = 0.0  # wt % below which amorphous phases are removed
    lm_p_threshold: float = 0.01  # p-value above which a reference is dropped in loading fits
    max_refits: int = 50
    wavelength: float = 1.54056  # Cu Kα1 (Å)
    n_jobs: int = 1


CONFIG = FPSConfig()
