"""
popexpr CLI - population-level expression contrasts and selection scans.

Commands:
    popexpr differential  - Continental group vs. rest differential expression
    popexpr selscan       - Ohana allele-frequency inference + selection scan
"""

import argparse
import sys
from typing import Optional, List


def main(args: Optional[List[str]] = None) -> int:
    """Main CLI dispatcher for popexpr."""
    parser = argparse.ArgumentParser(
        prog="popexpr",
        description="Population-level differential expression and selection scans",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  differential  Continental group vs. rest differential expression (DESeq2)
  selscan       Ohana allele-frequency inference and per-component selection scan

Examples:
  popexpr differential --counts counts.tsv --metadata samples.tsv --output results/de
  popexpr differential --config analysis.yaml --focal EUR --n-cpus 8
  popexpr selscan --vcf chr22.vcf.gz --ident chr22 --downsample-dir downsampled/
        """
    )

    parser.add_argument(
        "--version", "-V",
        action="version",
        version="%(prog)s 0.1.0"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    from popexpr.cli import differential, selscan
    differential.setup_parser(subparsers)
    selscan.register_parser(subparsers)

    raw_args = sys.argv[1:] if args is None else list(args)
    parsed_args = parser.parse_args(raw_args)

    if parsed_args.command is None:
        parser.print_help()
        return 0

    # Subcommands need the raw argv to tell explicit flags from defaults
    parsed_args.cli_args = raw_args
    return parsed_args.func(parsed_args)


if __name__ == "__main__":
    sys.exit(main())
