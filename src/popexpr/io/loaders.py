"""
Loaders for pseudocount tables and sample metadata.

Biological Context:
    Transcript quantifiers (salmon, kallisto) summarised to genes produce
    *pseudocounts*: estimated read counts that are usually non-integer.
    The count model needs integers, so values are rounded on load.

    Typical count table (tab or comma delimited):
    ```
    gene_id          gene_name  HG00096  HG00097  NA18486
    ENSG00000000003  TSPAN6     612.31   1056.0   0.0
    ENSG00000000005  TNMD       0.0      1.2      0.0
    ```
    - First column: unique gene identifier
    - Non-numeric annotation columns (gene_name, biotype, ...) are dropped
    - Remaining columns: one per sample

    Sample metadata has one row per sample with at least the population
    label, e.g. ``sample  population  sex``.

Examples:
    >>> from pathlib import Path
    >>> from popexpr.io.loaders import load_count_matrix, load_sample_metadata
    >>> counts = load_count_matrix(Path("geuvadis.pseudocounts.tsv"))
    >>> metadata = load_sample_metadata(Path("samples.tsv"))
    >>> counts, metadata = align_samples(counts, metadata)
"""

from __future__ import annotations

import csv
import logging
from pathlib import Path

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

__all__ = [
    "sniff_delimiter",
    "load_count_matrix",
    "load_sample_metadata",
    "align_samples",
]


def sniff_delimiter(path: Path, sample_size: int = 8192) -> str:
    """
    Auto-detect delimiter from file content.

    Uses csv.Sniffer, falling back to counting candidates in the header line.

    Raises:
        ValueError: If no delimiter can be detected.
    """
    with open(path, "r", encoding="utf-8", errors="ignore") as f:
        sample = f.read(sample_size)

    try:
        return csv.Sniffer().sniff(sample, delimiters="\t,;").delimiter
    except csv.Error:
        pass

    header = sample.split("\n")[0]
    counts = {d: header.count(d) for d in ("\t", ",", ";")}
    if max(counts.values()) == 0:
        raise ValueError(f"Could not detect delimiter in {path}")
    return max(counts, key=counts.get)


def _read_table(path: Path, index_col: int | str = 0) -> pd.DataFrame:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    if not path.is_file():
        raise ValueError(f"Path is not a file: {path}")

    sep = sniff_delimiter(path)
    try:
        df = pd.read_csv(path, sep=sep, index_col=index_col)
    except pd.errors.EmptyDataError as e:
        raise ValueError(f"File is empty: {path}") from e

    if df.empty:
        raise ValueError(f"File contains no data: {path}")
    return df


def load_count_matrix(
    path: Path,
    round_counts: bool = True,
    drop_columns: list[str] | None = None,
) -> pd.DataFrame:
    """
    Load a gene x sample (pseudo)count table.

    Args:
        path: Delimited file, first column = gene id.
        round_counts: Round pseudocounts to the nearest integer.
        drop_columns: Numeric annotation columns to discard (e.g. "start",
            "end", "length"). Non-numeric columns are always discarded.

    Returns:
        DataFrame, genes as rows and samples as columns. Integer dtype when
        ``round_counts`` is True.

    Raises:
        FileNotFoundError: If path does not exist.
        ValueError: If gene ids repeat, no numeric columns remain, or values
            are missing or negative.
    """
    df = _read_table(path)
    df.index = df.index.astype(str)
    df.index.name = "gene_id"

    if df.index.duplicated().any():
        dups = df.index[df.index.duplicated()].unique()
        raise ValueError(
            f"Duplicate gene ids in {path}: {list(dups[:5])}"
            + (f" (+{len(dups) - 5} more)" if len(dups) > 5 else "")
        )

    if drop_columns:
        absent = [c for c in drop_columns if c not in df.columns]
        if absent:
            raise KeyError(f"Columns {absent} not in {path}")
        df = df.drop(columns=list(drop_columns))

    numeric_cols = [c for c in df.columns if pd.api.types.is_numeric_dtype(df[c])]
    dropped = [c for c in df.columns if c not in numeric_cols]
    if dropped:
        logger.info("Dropping %d annotation columns: %s", len(dropped), dropped)
    if not numeric_cols:
        raise ValueError(f"No numeric sample columns in {path}")

    counts = df[numeric_cols].astype(np.float64)

    if counts.isna().any().any():
        n_missing = int(counts.isna().sum().sum())
        raise ValueError(f"{n_missing} missing count values in {path}")
    if (counts < 0).any().any():
        raise ValueError(f"Negative counts in {path}")

    if round_counts:
        counts = counts.round().astype(np.int64)

    counts.columns = counts.columns.astype(str)
    logger.info(
        "Loaded count matrix: %d genes x %d samples", counts.shape[0], counts.shape[1]
    )
    return counts


def load_sample_metadata(
    path: Path,
    sample_col: str | None = None,
) -> pd.DataFrame:
    """
    Load sample metadata indexed by sample id.

    Args:
        path: Delimited file.
        sample_col: Column holding sample ids; defaults to the first column.

    Raises:
        KeyError: If ``sample_col`` is not a column.
        ValueError: If sample ids repeat.
    """
    if sample_col is None:
        df = _read_table(path, index_col=0)
    else:
        df = _read_table(path, index_col=None)
        if sample_col not in df.columns:
            raise KeyError(
                f"Sample column '{sample_col}' not in {path}. "
                f"Available: {list(df.columns)}"
            )
        df = df.set_index(sample_col)

    df.index = df.index.astype(str)
    df.index.name = "sample"
    if df.index.duplicated().any():
        dups = list(df.index[df.index.duplicated()].unique()[:5])
        raise ValueError(f"Duplicate sample ids in {path}: {dups}")

    logger.info("Loaded metadata for %d samples (%s)", len(df), list(df.columns))
    return df


def align_samples(
    counts: pd.DataFrame,
    metadata: pd.DataFrame,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """
    Restrict counts and metadata to their common samples, in count order.

    Raises:
        ValueError: If no samples are shared.
    """
    common = [s for s in counts.columns if s in metadata.index]
    if not common:
        raise ValueError(
            "No common samples between count matrix and metadata. "
            f"Counts: {list(counts.columns[:3])}..., "
            f"metadata: {list(metadata.index[:3])}..."
        )

    missing_in_meta = len(counts.columns) - len(common)
    missing_in_counts = len(metadata.index) - len(common)
    if missing_in_meta:
        logger.warning(
            "%d samples in count matrix but not in metadata (excluded)",
            missing_in_meta,
        )
    if missing_in_counts:
        logger.info(
            "%d samples in metadata but not in count matrix (ignored)",
            missing_in_counts,
        )

    return counts[common], metadata.loc[common]
