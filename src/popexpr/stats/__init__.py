"""
Statistical core for group-vs-rest differential expression.

Exports:
- Design matrix construction and rank checks
- Group, composite and contrast coefficient vectors

The DESeq2 driver lives in ``popexpr.stats.deseq`` and is imported
explicitly, since it pulls in PyDESeq2.
"""

from .contrasts import (
    ContrastError,
    EmptyGroupError,
    UnknownGroupError,
    DimensionMismatchError,
    GroupContrast,
    compute_group_coefficients,
    compute_composite_coefficient,
    compute_contrast,
    build_group_contrast,
    build_all_group_contrasts,
)
from .design_matrix import (
    CollinearDesignError,
    PopulationDesign,
    design_formula,
    build_design_matrix,
    check_full_rank,
)

__all__ = [
    "ContrastError",
    "EmptyGroupError",
    "UnknownGroupError",
    "DimensionMismatchError",
    "GroupContrast",
    "compute_group_coefficients",
    "compute_composite_coefficient",
    "compute_contrast",
    "build_group_contrast",
    "build_all_group_contrasts",
    "CollinearDesignError",
    "PopulationDesign",
    "design_formula",
    "build_design_matrix",
    "check_full_rank",
]
