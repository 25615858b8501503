"""
Reusable plotting utilities for diffractograms and FPS fits.
"""

from __future__ import annotations

from typing import Iterable, Sequence

import matplotlib.pyplot as plt
import numpy as np

X_LABEL = "2θ, deg"
Y_LABEL = "Intensity, counts"


def plot_diffractogram(
    two_theta: Iterable[float],
    intensity: Iterable[float],
    title: str = "",
    label: str | None = None,
    overlay: Sequence[tuple[Iterable[float], Iterable[float], str]] | None = None,
    show: bool = True,
):
    """
    Plot a single diffractogram with optional overlay curves.
    """
    fig, ax = plt.subplots(figsize=(6, 4))
    ax.plot(two_theta, intensity, linewidth=1.0, label=label or "Sample")
    if overlay:
        for x, y, lbl in overlay:
            ax.plot(x, y, linewidth=0.8, alpha=0.6, label=lbl)
    ax.set_xlabel(X_LABEL, fontsize=12)
    ax.set_ylabel(Y_LABEL, fontsize=12)
    ax.tick_params(axis="both", which="major", labelsize=10)
    if title:
        ax.set_title(title, fontsize=12)
    if label or overlay:
        ax.legend(fontsize=10)
    fig.tight_layout()
    if show:
        plt.show()
    return fig, ax


def plot_fit(result, title: str = "Full pattern fit", show: bool = True):
    """
    Measured vs fitted pattern with the residual in a lower panel.

    Returns (fig, (ax_fit, ax_res)).
    """
    fig, (ax, ax_res) = plt.subplots(
        2, 1, figsize=(8, 5), sharex=True, gridspec_kw={"height_ratios": [3, 1]}
    )
    ax.plot(result.tth, result.measured, label="Measured", linewidth=1.0)
    ax.plot(result.tth, result.fitted, label="Fitted", linewidth=1.0, color="C3")
    ax.set_ylabel(Y_LABEL, fontsize=12)
    ax.legend(fontsize=10)
    if title:
        ax.set_title(f"{title} (Rwp={result.quality.rwp:.4f})", fontsize=12)

    ax_res.plot(result.tth, result.residuals, linewidth=0.8, color="C7")
    ax_res.axhline(0.0, color="black", linewidth=0.5)
    ax_res.set_xlabel(X_LABEL, fontsize=12)
    ax_res.set_ylabel("Residual", fontsize=10)
    for a in (ax, ax_res):
        a.tick_params(axis="both", which="major", labelsize=10)
    fig.tight_layout()
    if show:
        plt.show()
    return fig, (ax, ax_res)


def plot_fit_with_components(
    result,
    title: str = "Fit with weighted reference patterns",
    max_components: int | None = None,
    show: bool = True,
):
    """
    Measured pattern, total fit, and each weighted reference pattern,
    labelled by phase name (largest contribution first).
    """
    fig, ax = plt.subplots(figsize=(8, 5))
    ax.plot(result.tth, result.measured, label="Measured", linewidth=1.0, color="black")
    ax.plot(result.tth, result.fitted, label="Fitted", linewidth=1.2, color="C3")

    names = {}
    if "phase_name" in result.phases.columns:
        names = dict(zip(result.phases["phase_id"], result.phases["phase_name"]))

    comps = result.weighted_pure_patterns.drop(columns="two_theta")
    order = comps.abs().max().sort_values(ascending=False).index
    for idx, pid in enumerate(order):
        if max_components is not None and idx >= max_components:
            break
        label = f"{names[pid]} ({pid})" if pid in names else pid
        ax.plot(result.tth, comps[pid].values, linestyle="--", linewidth=0.8, alpha=0.7, label=label)

    ax.set_xlabel(X_LABEL, fontsize=12)
    ax.set_ylabel(Y_LABEL, fontsize=12)
    if title:
        ax.set_title(title, fontsize=12)
    ax.legend(fontsize=8, ncol=2)
    ax.tick_params(axis="both", which="major", labelsize=10)
    ax.grid(alpha=0.3)
    fig.tight_layout()
    if show:
        plt.show()
    return fig, ax


def plot_library(
    lib,
    ids: Iterable[str] | None = None,
    normalize: bool = True,
    title: str | None = None,
    show: bool = True,
):
    """
    Preview reference patterns of a library, optionally scaled to max = 1
    and offset for readability.
    """
    ids = lib.ids if ids is None else lib.check_ids(ids)
    names = dict(zip(lib.ids, lib.phase_names()))

    fig, ax = plt.subplots(figsize=(8, 5))
    for k, pid in enumerate(ids):
        y = lib.xrd[pid].values
        if normalize and np.max(np.abs(y)) > 0:
            y = y / np.max(np.abs(y)) + k
        ax.plot(lib.tth, y, linewidth=0.8, label=f"{names[pid]} ({pid})")

    ax.set_xlabel(X_LABEL)
    ax.set_ylabel("Scaled intensity" if normalize else Y_LABEL)
    if title:
        ax.set_title(title)
    ax.legend(fontsize=8)
    fig.tight_layout()
    if show:
        plt.show()
    return fig, ax
