"""
popexpr selscan command - Ohana selection scan for one VCF.

Usage:
    popexpr selscan --vcf ALL.chr22.phase3.vcf.gz --ident chr22 \\
        --downsample-dir downsampled/ --ohana-bin ~/progs/ohana/bin
"""

import argparse
import logging
from datetime import datetime
from pathlib import Path

from popexpr.cli._validators import _identifier, _positive_float, _positive_int
from popexpr.cli.config import load_config, merge_config_with_args


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the selscan subcommand."""
    parser = subparsers.add_parser(
        "selscan",
        help="Ohana allele-frequency inference and selection scan",
        description=(
            "Convert a VCF to Ohana's genotype format, infer admixture-corrected "
            "allele frequencies with a precomputed Q matrix, and run selscan once "
            "per ancestry component."
        ),
    )

    parser.add_argument("--vcf", type=Path, help="VCF of variants")
    parser.add_argument("--ident", type=_identifier,
                        help="Identifier for outputs (e.g. chromosome)")
    parser.add_argument("--downsample-dir", type=Path,
                        help="Directory with the precomputed Q matrix and c_matrices/")
    parser.add_argument("--config", type=Path,
                        help="YAML/JSON config file (reads the 'ohana' section)")
    parser.add_argument("--ohana-bin", type=Path, default=None,
                        help="Ohana bin directory (default: search PATH)")
    parser.add_argument("--plink", default="plink",
                        help="plink executable (default: plink)")
    parser.add_argument("--workdir", type=Path, default=Path("."),
                        help="Root for vcfs/, f_matrices/ and selscan/ (default: .)")
    parser.add_argument("-k", dest="k", type=_positive_int, default=8,
                        help="Number of ancestry components (default: 8)")
    parser.add_argument("--max-iter", type=_positive_int, default=50,
                        help="qpas maximum iterations (default: 50)")
    parser.add_argument("--epsilon", type=_positive_float, default=0.0001,
                        help="qpas convergence threshold (default: 0.0001)")
    parser.add_argument("--q-matrix", default="chr21_pruned_50_Q.matrix",
                        help="Q matrix file inside --downsample-dir")
    parser.add_argument("--c-matrix", default="c_matrices/chr21_pruned_50_C.matrix",
                        help="Genome-wide C matrix relative to --downsample-dir")
    parser.add_argument("--c-component-template",
                        default="c_matrices/chr21_pruned_50_C_p{i}.matrix",
                        help="Per-component C matrix; {i} is the component number")

    parser.set_defaults(func=run_selscan_command)


def run_selscan_command(args: argparse.Namespace) -> int:
    """Execute the selscan command."""
    from popexpr.popgen.ohana import ExternalToolError, OhanaConfig, run_ohana_scan

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    try:
        if args.config:
            config = load_config(args.config)
            args = merge_config_with_args(config, args, getattr(args, "cli_args", None))
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    missing = [name for name in ("vcf", "ident", "downsample_dir") if getattr(args, name) is None]
    if missing:
        print(f"Error: missing required inputs: "
              f"{', '.join('--' + m.replace('_', '-') for m in missing)}")
        return 1

    start_time = datetime.now()
    print("=" * 70)
    print(f"  Ohana selection scan: {args.ident}")
    print("=" * 70)

    try:
        ohana_config = OhanaConfig(
            downsample_dir=args.downsample_dir,
            ohana_bin=args.ohana_bin,
            plink=args.plink,
            workdir=args.workdir,
            k=args.k,
            max_iter=args.max_iter,
            epsilon=args.epsilon,
            q_matrix=args.q_matrix,
            c_matrix=args.c_matrix,
            c_component_template=args.c_component_template,
        )
        run = run_ohana_scan(args.vcf, args.ident, ohana_config)
    except (ExternalToolError, FileNotFoundError, ValueError) as e:
        print(f"\nError: {e}")
        return 1

    print(f"\nGenotype matrix: {run.dgm}")
    print(f"Allele frequencies: {run.f_matrix}")
    for path in run.outputs:
        print(f"  {path}")
    print(f"Elapsed: {datetime.now() - start_time}")
    return 0
