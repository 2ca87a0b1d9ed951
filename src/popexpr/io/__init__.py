"""
I/O for pseudocount matrices, sample metadata and result tables.

Key Functions:
    - load_count_matrix: Gene x sample counts (tsv/csv, delimiter sniffed)
    - load_sample_metadata: One row per sample, indexed by sample id
    - align_samples: Restrict counts and metadata to shared samples
    - filter_low_counts: Drop genes without enough counts
    - write_results: Per-contrast tables as csv and/or xlsx

Examples:
    >>> from popexpr.io import load_count_matrix, load_sample_metadata, align_samples
    >>> counts = load_count_matrix(Path("geuvadis.pseudocounts.tsv"))
    >>> metadata = load_sample_metadata(Path("samples.tsv"))
    >>> counts, metadata = align_samples(counts, metadata)
"""

from popexpr.io.loaders import (
    sniff_delimiter,
    load_count_matrix,
    load_sample_metadata,
    align_samples,
)
from popexpr.io.filters import (
    FilterSummary,
    filter_low_counts,
    restrict_to_groups,
    prune_group_map,
)
from popexpr.io.writers import (
    SUPPORTED_FORMATS,
    write_results,
    write_contrast_table,
    write_group_coefficients,
    write_manifest,
)

__all__ = [
    "sniff_delimiter",
    "load_count_matrix",
    "load_sample_metadata",
    "align_samples",
    "FilterSummary",
    "filter_low_counts",
    "restrict_to_groups",
    "prune_group_map",
    "SUPPORTED_FORMATS",
    "write_results",
    "write_contrast_table",
    "write_group_coefficients",
    "write_manifest",
]
