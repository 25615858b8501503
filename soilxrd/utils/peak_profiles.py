# soilxrd/utils/peak_profiles.py
import numpy as np

FWHM_TO_SIGMA = 1.0 / (2.0 * np.sqrt(2.0 * np.log(2.0)))


def gaussian(x, amplitude, center, fwhm):
    """
    Gaussian peak.

    amplitude : peak height
    center    : position of the maximum (deg 2θ)
    fwhm      : full width at half maximum (deg 2θ)
    """
    sigma = fwhm * FWHM_TO_SIGMA
    return amplitude * np.exp(-((x - center) ** 2) / (2 * sigma**2))


def lorentzian(x, amplitude, center, fwhm):
    hwhm = fwhm / 2.0
    return amplitude * (hwhm**2) / ((x - center) ** 2 + hwhm**2)


def pseudo_voigt(x, amplitude, center, fwhm, eta=0.0):
    """
    Pseudo-Voigt with a shared FWHM; eta in [0, 1] is the Lorentzian weight.
    """
    g = gaussian(x, 1.0, center, fwhm)
    l = lorentzian(x, 1.0, center, fwhm)
    return amplitude * (eta * l + (1 - eta) * g)


def broaden_sticks(two_theta, centers, heights, fwhm, eta=0.0) -> np.ndarray:
    """
    Continuous pattern from a stick pattern: one pseudo-Voigt per reflection,
    summed on ``two_theta``.
    """
    x = np.asarray(two_theta, dtype=float)
    y = np.zeros_like(x)
    for center, height in zip(centers, heights):
        y += pseudo_voigt(x, height, center, fwhm, eta)
    return y
