"""
CLI for continental-group differential expression.

Fits one negative-binomial GLM (``~ covariates + population``) and tests,
for each focal continental group, the contrast "focal group vs. the
unweighted average of the other groups" built from the fitted design matrix.

Usage:
    popexpr differential \\
        --counts data/geuvadis.pseudocounts.tsv \\
        --metadata data/samples.tsv \\
        --output results/differential \\
        --group-col population \\
        --covariates sex \\
        --focal EUR AFR \\
        --n-cpus 8
"""

from __future__ import annotations

import argparse
import logging
from datetime import datetime
from pathlib import Path

from popexpr.cli._validators import (
    _existing_file,
    _non_negative_int,
    _positive_float,
    _positive_int,
    _probability,
)
from popexpr.cli.config import DEFAULT_GROUP_MAP, ConfigSchema, load_config, merge_config_with_args

logger = logging.getLogger(__name__)


def setup_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the differential subcommand."""
    defaults = ConfigSchema()

    parser = subparsers.add_parser(
        "differential",
        help="Continental group vs. rest differential expression",
        description=(
            "Differential expression of each continental group against the "
            "unweighted average of the remaining groups, using DESeq2 on "
            "RNA-seq pseudocounts."
        ),
    )

    # Input/output
    parser.add_argument("--counts", type=_existing_file,
                        help="Gene x sample pseudocount table (tsv/csv)")
    parser.add_argument("--metadata", type=_existing_file,
                        help="Sample metadata table (one row per sample)")
    parser.add_argument("--output", "-o", type=Path,
                        help="Output directory")
    parser.add_argument("--config", type=Path,
                        help="YAML/JSON config file; explicit CLI flags take precedence")
    parser.add_argument("--sample-col", default=None,
                        help="Metadata column with sample ids (default: first column)")
    parser.add_argument("--drop-columns", nargs="*", default=[],
                        help="Numeric annotation columns in the count table to ignore")

    # Design
    parser.add_argument("--group-col", default=defaults.group_col,
                        help=f"Metadata column with population labels (default: {defaults.group_col})")
    parser.add_argument("--covariates", nargs="*", default=list(defaults.covariates),
                        help="Metadata columns to adjust for (e.g. sex)")
    parser.add_argument("--focal", nargs="+", default=None,
                        help="Groups to test (default: every group in the group map)")
    parser.add_argument("--reference", nargs="+", default=None,
                        help="Groups forming the baseline (default: all other groups)")

    # Filtering
    parser.add_argument("--min-count", type=_non_negative_int,
                        default=defaults.filtering.min_count,
                        help=f"Minimum count per sample (default: {defaults.filtering.min_count})")
    parser.add_argument("--min-samples", type=_positive_int,
                        default=defaults.filtering.min_samples,
                        help="Samples that must reach --min-count "
                             f"(default: {defaults.filtering.min_samples})")

    # Testing
    parser.add_argument("--alpha", type=_probability, default=defaults.testing.alpha,
                        help=f"Adjusted p-value threshold (default: {defaults.testing.alpha})")
    parser.add_argument("--n-cpus", type=_positive_int, default=defaults.testing.n_cpus,
                        help="Threads for model fitting (default: %(default)s)")
    parser.add_argument("--no-cooks-refit", action="store_true",
                        help="Do not refit genes with Cooks outliers")

    # Output
    parser.add_argument("--formats", nargs="+", choices=["csv", "xlsx"], default=["csv", "xlsx"],
                        help="Results table formats (default: csv xlsx)")
    parser.add_argument("--lfc-threshold", type=_positive_float, default=1.0,
                        help="|log2FC| line on volcano plots (default: 1.0)")
    parser.add_argument("--no-plots", action="store_true",
                        help="Skip volcano/MA/p-value plots")
    parser.add_argument("--contrasts-only", action="store_true",
                        help="Build and write contrast vectors without fitting the model")

    parser.set_defaults(func=run_differential, groups=None)


def _print_contrast(contrast) -> None:
    print(f"  {contrast.name}: {contrast.focal} vs {' + '.join(contrast.reference)}")
    for col, weight in contrast.vector.items():
        if abs(weight) > 1e-12:
            print(f"    {col:<32} {weight:+.4f}")


def run_differential(args: argparse.Namespace) -> int:
    """Execute the differential command."""
    from popexpr.io.filters import filter_low_counts, prune_group_map, restrict_to_groups
    from popexpr.io.loaders import align_samples, load_count_matrix, load_sample_metadata
    from popexpr.io.writers import (
        write_contrast_table,
        write_group_coefficients,
        write_manifest,
    )
    from popexpr.stats.contrasts import build_all_group_contrasts
    from popexpr.stats.design_matrix import build_design_matrix

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        if args.config:
            config = load_config(args.config)
            args = merge_config_with_args(config, args, getattr(args, "cli_args", None))
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    missing = [name for name in ("counts", "metadata", "output") if getattr(args, name) is None]
    if missing:
        print(f"Error: missing required inputs: {', '.join('--' + m for m in missing)} "
              "(pass on the command line or in --config)")
        return 1

    start_time = datetime.now()
    print("=" * 70)
    print("  Population Differential Expression")
    print("  (group vs. unweighted average of other groups)")
    print("=" * 70)
    print(f"Started: {start_time.strftime('%Y-%m-%d %H:%M:%S')}")
    print()

    output_dir = Path(args.output)
    group_map = args.groups or {g: list(p) for g, p in DEFAULT_GROUP_MAP.items()}

    try:
        print(f"Loading counts: {args.counts}")
        counts = load_count_matrix(args.counts, drop_columns=args.drop_columns or None)
        print(f"  {counts.shape[0]} genes × {counts.shape[1]} samples")

        print(f"Loading metadata: {args.metadata}")
        metadata = load_sample_metadata(args.metadata, sample_col=args.sample_col)
        metadata = restrict_to_groups(metadata, args.group_col, group_map)

        counts, metadata = align_samples(counts, metadata)
        print(f"  Aligned: {counts.shape[1]} samples")

        observed = metadata[args.group_col].astype(str).unique()
        group_map = prune_group_map(group_map, observed)
        print("\nGroups:")
        for group, pops in group_map.items():
            n = int(metadata[args.group_col].astype(str).isin(pops).sum())
            print(f"  {group}: {', '.join(pops)} ({n} samples)")

        if len(group_map) < 2:
            raise ValueError(
                f"Need at least two groups with samples to form a contrast, got {list(group_map)}"
            )

        counts, filter_summary = filter_low_counts(
            counts, min_count=args.min_count, min_samples=args.min_samples
        )
        print(f"\nGene filter (>= {args.min_count} counts in >= {args.min_samples} samples): "
              f"{filter_summary.n_after} of {filter_summary.n_before} genes kept")

        design = build_design_matrix(metadata, args.group_col, args.covariates)
        print(f"\nDesign: {design.formula} ({design.n_params} coefficients, "
              f"{design.df_residual} residual df)")

        if args.contrasts_only:
            X, labels = design.X, design.group_labels
            dds = None
        else:
            from popexpr.stats.deseq import engine_design_matrix, engine_group_labels, fit_deseq

            print(f"\nFitting DESeq2 model (n_cpus={args.n_cpus})...")
            dds = fit_deseq(
                counts, metadata, design.formula,
                n_cpus=args.n_cpus, refit_cooks=not args.no_cooks_refit,
            )
            X = engine_design_matrix(dds)
            labels = engine_group_labels(dds, args.group_col)

        contrasts = build_all_group_contrasts(
            X, labels, group_map, focal_groups=args.focal, reference=args.reference
        )
        print("\nContrasts:")
        for contrast in contrasts:
            _print_contrast(contrast)

        output_dir.mkdir(parents=True, exist_ok=True)
        write_contrast_table(contrasts, output_dir / "contrasts.csv")
        write_group_coefficients(contrasts[0], output_dir / "group_coefficients.csv")

        summaries = []
        if dds is not None:
            summaries = _test_and_export(dds, contrasts, args, output_dir)

    except (FileNotFoundError, KeyError, ValueError, RuntimeError) as e:
        print(f"\nError: {e}")
        return 1

    write_manifest(output_dir / "manifest.json", {
        "command": "differential",
        "started": start_time.isoformat(),
        "finished": datetime.now().isoformat(),
        "counts": str(args.counts),
        "metadata": str(args.metadata),
        "design": design.formula,
        "group_col": args.group_col,
        "groups": group_map,
        "filtering": filter_summary.to_dict(),
        "alpha": args.alpha,
        "n_cpus": args.n_cpus,
        "contrasts_only": bool(args.contrasts_only),
        "contrasts": {c.name: c.vector.to_dict() for c in contrasts},
        "results": summaries,
    })

    print(f"\n{'=' * 70}")
    print(f"Results written to {output_dir}")
    print(f"Elapsed: {datetime.now() - start_time}")
    return 0


def _test_and_export(dds, contrasts, args: argparse.Namespace, output_dir: Path) -> list[dict]:
    from popexpr.io.writers import write_results
    from popexpr.stats.deseq import run_contrast_test

    summaries = []
    print(f"\n{'=' * 70}")
    print("Testing contrasts...")
    for contrast in contrasts:
        result = run_contrast_test(dds, contrast, alpha=args.alpha, n_cpus=args.n_cpus)
        write_results(result, output_dir / contrast.name, formats=args.formats)
        print(f"  {contrast.name}: {result.n_significant} significant genes "
              f"({result.n_up} up, {result.n_down} down) at padj < {args.alpha}")
        if not args.no_plots:
            _save_plots(result, args, output_dir)
        summaries.append(result.to_dict())
    return summaries


def _save_plots(result, args: argparse.Namespace, output_dir: Path) -> None:
    from popexpr.viz.plots import plot_ma, plot_pvalue_histogram, plot_volcano
    from popexpr.viz.styles import configure_style

    palette = configure_style("paper")
    figures = {
        "volcano": plot_volcano(result.results, alpha=args.alpha,
                                lfc_threshold=args.lfc_threshold,
                                title=result.name, palette=palette),
        "ma": plot_ma(result.results, alpha=args.alpha,
                      title=result.name, palette=palette),
        "pvalues": plot_pvalue_histogram(result.results,
                                         title=result.name, palette=palette),
    }
    for kind, fig in figures.items():
        fig.save(output_dir / f"{result.name}.{kind}.png")
        fig.close()
