"""
popexpr - Population-level expression contrasts and selection scans

Differential expression between continental groups of 1000 Genomes
populations (each group tested against the unweighted average of the
others) on top of a single DESeq2 fit, plus a driver for Ohana
admixture-aware selection scans.
"""

__version__ = "0.1.0"

from popexpr.stats.contrasts import GroupContrast, build_all_group_contrasts, build_group_contrast
from popexpr.stats.design_matrix import PopulationDesign, build_design_matrix

__all__ = [
    "GroupContrast",
    "PopulationDesign",
    "build_design_matrix",
    "build_group_contrast",
    "build_all_group_contrasts",
]
