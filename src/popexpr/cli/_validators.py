"""Shared argparse type validators for CLI parameter bounds checking.

Intended to be used as the ``type=`` argument in ``add_argument()`` so that
``--alpha 2.0``, ``--n-cpus 0`` or a misspelled ``--counts`` path fail at
parse time with a clear message instead of deep inside a run.
"""

from __future__ import annotations

import argparse
import re
from pathlib import Path

# Identifiers become file names (vcfs/IDENT.ped, selscan/IDENT_ohanascan_...).
_IDENT_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def _positive_int(value: str) -> int:
    """argparse type for positive integers (> 0)."""
    ivalue = int(value)
    if ivalue <= 0:
        raise argparse.ArgumentTypeError(f"{value} is not a positive integer")
    return ivalue


def _non_negative_int(value: str) -> int:
    """argparse type for count thresholds (>= 0)."""
    ivalue = int(value)
    if ivalue < 0:
        raise argparse.ArgumentTypeError(f"{value} is not a non-negative integer")
    return ivalue


def _probability(value: str) -> float:
    """argparse type for significance levels in the open interval (0, 1)."""
    fvalue = float(value)
    if not (0 < fvalue < 1):
        raise argparse.ArgumentTypeError(
            f"{value} is not a valid probability (must be in (0, 1))"
        )
    return fvalue


def _positive_float(value: str) -> float:
    """argparse type for thresholds and tolerances (> 0)."""
    fvalue = float(value)
    if fvalue <= 0:
        raise argparse.ArgumentTypeError(f"{value} is not a positive float")
    return fvalue


def _existing_file(value: str) -> Path:
    """argparse type for input tables that must already exist."""
    path = Path(value).expanduser()
    if not path.is_file():
        raise argparse.ArgumentTypeError(f"{value} does not exist or is not a file")
    return path


def _identifier(value: str) -> str:
    """argparse type for run identifiers used in output file names."""
    if not _IDENT_PATTERN.match(value):
        raise argparse.ArgumentTypeError(
            f"{value!r} is not a valid identifier "
            "(letters, digits, '.', '_' or '-'; no path separators)"
        )
    return value
