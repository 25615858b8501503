import sys

import numpy as np
import pandas as pd
import pytest

import main
from soilxrd.fitting.afps import afps
from soilxrd.fitting.quantify import close_quant
from soilxrd.reading.data_from import diffractogram_from_file, library_from_files, write_xy
from soilxrd.utils.preprocessing import pretreat_xy


def write_library(lib, tmp_path):
    xrd = lib.xrd.copy()
    xrd.insert(0, "two_theta", lib.tth)
    xrd.to_csv(tmp_path / "lib_xrd.csv", index=False)
    lib.phases.to_csv(tmp_path / "lib_phases.csv", index=False)
    return tmp_path / "lib_xrd.csv", tmp_path / "lib_phases.csv"


def test_pipeline_smoke(tmp_path, lib, make_mixture):
    rng = np.random.default_rng(42)
    smpl = make_mixture({"qtz": 45, "cal": 25, "kln": 20, "cor": 10}, scale=10.0)
    smpl["intensity"] += 50 + rng.normal(0, 0.5, size=len(smpl))

    write_xy(smpl, str(tmp_path / "soil.xy"))
    xrd_path, phases_path = write_library(lib, tmp_path)

    df = pretreat_xy(diffractogram_from_file(str(tmp_path / "soil.xy")), use_baseline=True, baseline_deg=1)
    loaded = library_from_files(str(xrd_path), str(phases_path))

    res = afps(loaded, df, std="cor", lod=0.5)
    closed = close_quant(res)

    assert {"qtz", "cal", "kln"} <= set(res.phase_percent.index)
    assert closed.total_percent == pytest.approx(100.0)
    assert closed.phase_percent["qtz"] == pytest.approx(45.0, abs=3.0)
    assert res.quality.r2 > 0.99


def test_cli_runs_fps_on_files(tmp_path, lib, make_mixture, monkeypatch, capsys):
    xrd_path, phases_path = write_library(lib, tmp_path)
    write_xy(make_mixture({"qtz": 40, "cal": 20, "kln": 30, "cor": 10}), str(tmp_path / "a.xy"))
    write_xy(make_mixture({"qtz": 70, "kln": 20, "cor": 10}), str(tmp_path / "b.xy"))
    out_dir = tmp_path / "out"

    monkeypatch.setattr(
        sys,
        "argv",
        [
            "main.py",
            "fps",
            "-path",
            str(tmp_path / "a.xy"),
            str(tmp_path / "b.xy"),
            str(tmp_path / "missing.xy"),
            "--lib-xrd",
            str(xrd_path),
            "--lib-phases",
            str(phases_path),
            "--refs",
            "qtz",
            "cal",
            "kln",
            "cor",
            "--std",
            "cor",
            "--align",
            "0",
            "-o",
            str(out_dir),
        ],
    )
    main.main()

    captured = capsys.readouterr()
    assert "=== a ===" in captured.out and "=== b ===" in captured.out
    assert "missing.xy" in captured.err
    summary = pd.read_csv(out_dir / "summary_grouped.csv", index_col=0)
    assert summary.loc["b", "Calcite"] == 0.0
    assert np.isclose(summary.loc["a", "Quartz"], 40.0, atol=0.5)


def test_cli_afps_requires_standard(tmp_path, lib, monkeypatch):
    xrd_path, phases_path = write_library(lib, tmp_path)
    monkeypatch.setattr(
        sys, "argv", ["main.py", "afps", "--lib-xrd", str(xrd_path), "--lib-phases", str(phases_path)]
    )
    with pytest.raises(SystemExit):
        main.main()


def test_cli_parallel_skips_failed_sample(tmp_path, lib, make_mixture, monkeypatch, capsys):
    xrd_path, phases_path = write_library(lib, tmp_path)
    write_xy(make_mixture({"qtz": 40, "cal": 20, "kln": 30, "cor": 10}), str(tmp_path / "a.xy"))
    far = pd.DataFrame({"two_theta": np.linspace(70, 80, 501), "intensity": np.ones(501)})
    write_xy(far, str(tmp_path / "bad.xy"))

    monkeypatch.setattr(
        sys,
        "argv",
        [
            "main.py",
            "fps",
            "-path",
            str(tmp_path / "a.xy"),
            str(tmp_path / "bad.xy"),
            "--lib-xrd",
            str(xrd_path),
            "--lib-phases",
            str(phases_path),
            "--n-jobs",
            "2",
            "-o",
            str(tmp_path / "out"),
        ],
    )
    main.main()

    captured = capsys.readouterr()
    assert "=== a ===" in captured.out
    assert "=== bad ===" not in captured.out
    assert "[ERROR] bad:" in captured.err
    assert (tmp_path / "out" / "a" / "phases.csv").exists()


def test_cli_reports_unreadable_multi_table(tmp_path, lib, make_mixture, monkeypatch, capsys):
    xrd_path, phases_path = write_library(lib, tmp_path)
    write_xy(make_mixture({"qtz": 60, "cal": 40}), str(tmp_path / "a.xy"))

    monkeypatch.setattr(
        sys,
        "argv",
        [
            "main.py",
            "fps",
            "-path",
            str(tmp_path / "a.xy"),
            "--multi",
            str(tmp_path / "missing.csv"),
            "--lib-xrd",
            str(xrd_path),
            "--lib-phases",
            str(phases_path),
        ],
    )
    main.main()

    captured = capsys.readouterr()
    assert "missing.csv" in captured.err
    assert "=== a ===" in captured.out
