import argparse
import logging
import sys
from pathlib import Path

import pandas as pd

from soilxrd.analysis.batch import fps_batch, samples_from_table
from soilxrd.analysis.phase_summary import summarise_results
from soilxrd.config import CONFIG
from soilxrd.fitting.fit_model import OBJECTIVES, SOLVERS
from soilxrd.outputting.report import build_phase_summary_text, save_batch_outputs
from soilxrd.reading.data_from import (
    diffractogram_from_file,
    library_from_files,
    multi_xy_from_file,
)
from soilxrd.utils.preprocessing import pretreat_xy

logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Full pattern summation quantification of XRPD diffractograms."
    )
    parser.add_argument(
        "mode",
        help="fps: fit the given references; afps: automated phase selection",
        type=str,
        choices=["fps", "afps"],
    )
    parser.add_argument(
        "-path",
        "--sample_paths",
        help="Two-column ASCII diffractogram file(s)",
        nargs="+",
        default=[],
    )
    parser.add_argument(
        "--multi",
        help="Multi-sample CSV table (first column 2θ, one column per sample)",
        default=None,
    )
    parser.add_argument("--lib-xrd", help="Library intensity table (CSV)", required=True)
    parser.add_argument("--lib-phases", help="Library metadata table: phase_id, phase_name, rir (CSV)", required=True)
    parser.add_argument("--refs", help="Reference ids to fit (default: all)", nargs="+", default=None)
    parser.add_argument("--std", help="Internal standard id", default=None)
    parser.add_argument("--std-conc", help="Internal standard concentration (wt %%)", type=float, default=None)
    parser.add_argument("--align", help="Max alignment shift against the standard (deg)", type=float, default=CONFIG.align)
    parser.add_argument("--shift", help="Max per-reference shift (deg), 0 disables", type=float, default=CONFIG.shift)
    parser.add_argument("--tth-fps", help="2θ range to fit", type=float, nargs=2, default=None)
    parser.add_argument("--no-harmonise", help="Fail instead of interpolating mismatched axes", action="store_true")
    parser.add_argument("--closed", help="Close concentrations to 100 %%", action="store_true")
    parser.add_argument("--lod", help="Detection limit of the internal standard (wt %%, afps)", type=float, default=CONFIG.lod)
    parser.add_argument("--force", help="Ids never removed (afps)", nargs="+", default=None)
    parser.add_argument("--amorphous", help="Ids of amorphous references", nargs="+", default=None)
    parser.add_argument(
        "--amorphous-lod", help="Removal limit for amorphous phases (wt %%, afps)", type=float, default=CONFIG.amorphous_lod
    )
    parser.add_argument("--solver", choices=SOLVERS, default=CONFIG.solver)
    parser.add_argument("--objective", choices=OBJECTIVES, default=CONFIG.objective)
    parser.add_argument("--subtract-baseline", help="Subtract a polynomial baseline first", action="store_true")
    parser.add_argument("--n-jobs", help="Worker processes for several samples", type=int, default=CONFIG.n_jobs)
    parser.add_argument("-o", "--output", help="Directory for tables, plots and summaries", default=None)
    parser.add_argument("--plots", help="Save fit plots for every sample", action="store_true")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser.parse_args()


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def load_samples(args: argparse.Namespace) -> dict[str, pd.DataFrame]:
    samples: dict[str, pd.DataFrame] = {}
    for path in args.sample_paths:
        name = Path(path).stem
        try:
            samples[name] = diffractogram_from_file(path)
        except (FileNotFoundError, KeyError, ValueError) as exc:
            print(f"[ERROR] Failed to read sample '{path}': {exc}", file=sys.stderr)

    if args.multi:
        try:
            samples.update(samples_from_table(multi_xy_from_file(args.multi)))
        except (FileNotFoundError, KeyError, ValueError) as exc:
            print(f"[ERROR] Failed to read multi-sample table '{args.multi}': {exc}", file=sys.stderr)

    if args.subtract_baseline:
        samples = {name: pretreat_xy(df, use_baseline=True) for name, df in samples.items()}
    return samples


def fit_kwargs_from_args(args: argparse.Namespace) -> dict:
    kwargs = dict(
        refs=args.refs,
        std=args.std,
        std_conc=args.std_conc,
        align=args.align,
        shift=args.shift,
        tth_fps=tuple(args.tth_fps) if args.tth_fps else None,
        harmonise=not args.no_harmonise,
        closed=args.closed,
        force=args.force,
        amorphous=args.amorphous,
        solver=args.solver,
        objective=args.objective,
    )
    if args.mode == "afps":
        kwargs.update(lod=args.lod, amorphous_lod=args.amorphous_lod)
    return kwargs


def report_failure(name: str, exc: Exception) -> None:
    """Print a failed sample; the batch moves on."""
    print(f"[ERROR] {name}: {exc}", file=sys.stderr)


def main() -> None:
    args = parse_args()
    setup_logging(args.log_level)

    if args.mode == "afps" and args.std is None:
        print("[ERROR] afps needs an internal standard (--std).", file=sys.stderr)
        sys.exit(2)

    try:
        lib = library_from_files(args.lib_xrd, args.lib_phases)
    except (FileNotFoundError, KeyError, ValueError) as exc:
        print(f"[ERROR] Failed to load library: {exc}", file=sys.stderr)
        sys.exit(1)
    logger.info("Library: %d reference patterns, %d points", len(lib), lib.tth.size)

    samples = load_samples(args)
    if not samples:
        print("[ERROR] No samples to fit (use -path and/or --multi).", file=sys.stderr)
        sys.exit(1)

    fit_kwargs = fit_kwargs_from_args(args)
    automated = args.mode == "afps"

    n_jobs = args.n_jobs if len(samples) > 1 else 1
    results = fps_batch(lib, samples, automated=automated, n_jobs=n_jobs, on_error=report_failure, **fit_kwargs)

    for name, res in results.items():
        print(f"\n=== {name} ===")
        for line in build_phase_summary_text(res):
            print(line)

    if len(results) > 1:
        print("\nSummary (wt %):")
        print(summarise_results(results).round(2))

    if args.output and results:
        save_batch_outputs(Path(args.output), results, plots=args.plots)
        print(f"\nResults saved to {args.output}")


if __name__ == "__main__":
    main()
