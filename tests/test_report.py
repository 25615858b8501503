import matplotlib

matplotlib.use("Agg")

import pandas as pd

from soilxrd.fitting.fps import fps
from soilxrd.outputting.report import (
    build_phase_summary_text,
    save_batch_outputs,
    save_fit_outputs,
)
from soilxrd.plotting.plots import plot_diffractogram, plot_library

REFS = ["qtz", "cal", "kln", "cor"]


def test_save_fit_outputs(tmp_path, lib, make_mixture):
    res = fps(lib, make_mixture({"qtz": 40, "cal": 20, "kln": 30, "cor": 10}), refs=REFS)

    save_fit_outputs(tmp_path / "s1", res, settings={"solver": "lbfgsb"})

    for name in (
        "phases.csv",
        "phases_grouped.csv",
        "fit_curve.csv",
        "weighted_patterns.csv",
        "fit.png",
        "fit_components.png",
        "summary.txt",
    ):
        assert (tmp_path / "s1" / name).exists()

    phases = pd.read_csv(tmp_path / "s1" / "phases.csv")
    assert phases["phase_id"].tolist() == REFS
    text = (tmp_path / "s1" / "summary.txt").read_text(encoding="utf-8")
    assert "Rwp" in text and "solver: lbfgsb" in text


def test_summary_text_mentions_standard_and_removals(lib, make_mixture):
    res = fps(
        lib,
        make_mixture({"qtz": 70, "cal": 20, "cor": 10}),
        refs=REFS,
        std="cor",
        std_conc=10.0,
        align=0,
    )
    lines = build_phase_summary_text(res)
    assert any("Internal standard: cor" in line for line in lines)
    assert any(line.startswith("removed kln") for line in lines)
    assert any(line.startswith("Quartz:") for line in lines)


def test_save_batch_outputs(tmp_path, lib, make_mixture):
    results = {
        "a": fps(lib, make_mixture({"qtz": 60, "cal": 40}), refs=["qtz", "cal"]),
        "b": fps(lib, make_mixture({"qtz": 50, "kln": 50}), refs=["qtz", "kln"]),
    }

    save_batch_outputs(tmp_path, results)

    summary = pd.read_csv(tmp_path / "summary_grouped.csv", index_col=0)
    assert list(summary.index) == ["a", "b"]
    assert (tmp_path / "summary_phases.csv").exists()
    assert (tmp_path / "b" / "phases.csv").exists()
    assert not (tmp_path / "b" / "fit.png").exists()


def test_plot_library(lib):
    fig, ax = plot_library(lib, ids=["qtz", "cal"], show=False)
    assert len(ax.get_lines()) == 2


def test_plot_diffractogram_with_overlay(lib, make_mixture):
    smpl = make_mixture({"qtz": 50, "cal": 50})
    pattern = lib.pattern("qtz")
    fig, ax = plot_diffractogram(
        smpl["two_theta"],
        smpl["intensity"],
        title="soil",
        overlay=[(pattern["two_theta"], pattern["intensity"], "Quartz")],
        show=False,
    )
    assert len(ax.get_lines()) == 2
    assert ax.get_title() == "soil"
