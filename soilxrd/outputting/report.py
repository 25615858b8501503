"""
Shared helpers for reporting/saving fit results and plots.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping

import matplotlib.pyplot as plt

from soilxrd.analysis.phase_summary import summarise_results
from soilxrd.analysis.results import FitResult
from soilxrd.plotting.plots import plot_fit, plot_fit_with_components


def save_fig(fig, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=300)
    plt.close(fig)


def save_fit_outputs(
    result_dir: Path,
    result: FitResult,
    settings: dict | None = None,
    plots: bool = True,
) -> None:
    """
    Save the phase tables, fitted curves, plots and a text summary of one fit.
    """
    result_dir = Path(result_dir)
    result_dir.mkdir(parents=True, exist_ok=True)

    result.phases.to_csv(result_dir / "phases.csv", index=False)
    result.phases_grouped.to_csv(result_dir / "phases_grouped.csv", index=False)
    result.to_frame().to_csv(result_dir / "fit_curve.csv", index=False)
    result.weighted_pure_patterns.to_csv(result_dir / "weighted_patterns.csv", index=False)

    if plots:
        fig_fit, _ = plot_fit(result, show=False)
        save_fig(fig_fit, result_dir / "fit.png")

        fig_comp, _ = plot_fit_with_components(result, show=False)
        save_fig(fig_comp, result_dir / "fit_components.png")

    meta_path = result_dir / "summary.txt"
    with meta_path.open("w", encoding="utf-8") as fh:
        for line in build_phase_summary_text(result):
            fh.write(line + "\n")
        if settings:
            fh.write("Settings:\n")
            for k, v in settings.items():
                fh.write(f"  {k}: {v}\n")


def build_phase_summary_text(result: FitResult) -> list[str]:
    """
    Human-readable lines for a fit: quality, alignment, phases, removals.
    """
    q = result.quality
    lines = [
        f"Rwp: {q.rwp:.4f}  R: {q.r:.4f}  Delta: {q.delta:.2f}  r2: {q.r2:.4f}",
        f"Alignment: {result.alignment:+.4f} deg 2θ",
    ]
    if result.std_conc is not None:
        lines.append(f"Internal standard: {result.std} at {result.std_conc:.2f} wt % (standard-free basis)")
    lines.append(f"Total: {result.total_percent:.2f} %" + (" (closed)" if result.closed else ""))

    for _, row in result.phases_grouped.iterrows():
        lines.append(f"{row['phase_name']}: {row['phase_percent']:.2f} %")

    for pid, reason in result.removed.items():
        lines.append(f"removed {pid}: {reason}")
    return lines


def save_batch_outputs(result_dir: Path, results: Mapping[str, FitResult], plots: bool = False) -> None:
    """
    One sub-directory per sample plus samples x phases summary tables.
    """
    result_dir = Path(result_dir)
    result_dir.mkdir(parents=True, exist_ok=True)
    for name, res in results.items():
        save_fit_outputs(result_dir / name, res, plots=plots)

    summarise_results(results, grouped=True).to_csv(result_dir / "summary_grouped.csv")
    summarise_results(results, grouped=False).to_csv(result_dir / "summary_phases.csv")
