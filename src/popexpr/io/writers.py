"""
Writers for differential expression results.

Output layout for one run (``output/``):

    output/
    ├── EUR_vs_rest.csv          # per-gene results, sorted by padj
    ├── EUR_vs_rest.xlsx         # same table as a spreadsheet
    ├── contrasts.csv            # one row per contrast, one column per coefficient
    ├── group_coefficients.csv   # population coefficient rows
    └── manifest.json            # parameters and per-contrast summary

The spreadsheet copy exists for collaborators who browse results in Excel;
the CSV is the canonical machine-readable output.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Sequence

import pandas as pd

from popexpr.stats.contrasts import GroupContrast
from popexpr.stats.deseq import DifferentialResult

logger = logging.getLogger(__name__)

__all__ = [
    "SUPPORTED_FORMATS",
    "write_results",
    "write_contrast_table",
    "write_group_coefficients",
    "write_manifest",
]

SUPPORTED_FORMATS = ("csv", "xlsx")

# Excel caps sheet names at 31 characters.
_MAX_SHEET_NAME = 31


def _ensure_parent(path: Path) -> Path:
    path = Path(path)
    if path.parent != Path(".") and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    return path


def write_results(
    result: DifferentialResult,
    prefix: Path,
    formats: Sequence[str] = ("csv",),
) -> list[Path]:
    """
    Write one contrast's results table.

    Args:
        result: Output of ``run_contrast_test``.
        prefix: Path without extension; ``.csv`` / ``.xlsx`` are appended.
        formats: Any of ``SUPPORTED_FORMATS``.

    Returns:
        Paths written, in ``formats`` order.

    Raises:
        ValueError: On an unsupported format or an empty results table.
        OSError: If a file cannot be written.
    """
    unknown = [f for f in formats if f not in SUPPORTED_FORMATS]
    if unknown:
        raise ValueError(
            f"Unsupported output formats {unknown}; choose from {SUPPORTED_FORMATS}"
        )
    if result.results.empty:
        raise ValueError(f"Results for {result.name} are empty")

    prefix = _ensure_parent(Path(prefix))
    table = result.results.sort_values("padj", na_position="last")

    written = []
    for fmt in formats:
        path = Path(f"{prefix}.{fmt}")
        try:
            if fmt == "csv":
                table.to_csv(path)
            else:
                table.to_excel(
                    path, sheet_name=result.name[:_MAX_SHEET_NAME], engine="openpyxl"
                )
        except OSError as e:
            raise OSError(f"Failed to write results file {path}: {e}") from e
        logger.info("Wrote %s results to %s", result.name, path)
        written.append(path)
    return written


def write_contrast_table(contrasts: Sequence[GroupContrast], path: Path) -> Path:
    """One row per contrast (index = contrast name), one column per coefficient."""
    path = _ensure_parent(Path(path))
    table = pd.DataFrame({c.name: c.vector for c in contrasts}).T
    table.index.name = "contrast"
    table.to_csv(path)
    logger.info("Wrote %d contrast vectors to %s", len(contrasts), path)
    return path


def write_group_coefficients(contrast: GroupContrast, path: Path) -> Path:
    """Population coefficient rows used to build ``contrast``."""
    path = _ensure_parent(Path(path))
    table = pd.DataFrame(contrast.group_coefficients).T
    table.index.name = "population"
    table.to_csv(path)
    return path


def write_manifest(path: Path, payload: dict[str, Any]) -> Path:
    """Write the run manifest as indented JSON."""
    path = _ensure_parent(Path(path))
    with open(path, "w") as f:
        json.dump(payload, f, indent=2, default=str)
    logger.info("Wrote manifest to %s", path)
    return path
