"""
Driver for the negative-binomial GLM engine (PyDESeq2).

Everything statistical (size factors, dispersion shrinkage, Wald tests,
Benjamini-Hochberg correction, Cooks outlier handling) happens inside
PyDESeq2. This module only:

- builds the DeseqDataSet from aligned counts + metadata,
- checks that the engine's design matrix has full column rank,
- hands a numeric contrast vector to DeseqStats and collects the table.

The contrast vector is ordered by the engine's own design matrix columns
(``dds.obsm["design_matrix"]``), so contrasts should be built from
``engine_design_matrix(dds)`` rather than from an independently constructed
design.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd

from popexpr.stats.contrasts import DimensionMismatchError, GroupContrast
from popexpr.stats.design_matrix import check_full_rank

logger = logging.getLogger(__name__)

__all__ = [
    "RESULT_COLUMNS",
    "DifferentialResult",
    "fit_deseq",
    "engine_design_matrix",
    "engine_group_labels",
    "run_contrast_test",
    "summarize_results",
]

RESULT_COLUMNS = ["baseMean", "log2FoldChange", "lfcSE", "stat", "pvalue", "padj"]


@dataclass(frozen=True)
class DifferentialResult:
    """Per-gene results for one contrast.

    Attributes:
        contrast: The contrast that was tested.
        results: Engine results table indexed by gene id with columns
            baseMean, log2FoldChange, lfcSE, stat, pvalue, padj.
        alpha: Adjusted p-value threshold used for the summary counts.
        n_significant: Genes with padj < alpha.
        n_up: Significant genes with positive log2 fold change.
        n_down: Significant genes with negative log2 fold change.
    """

    contrast: GroupContrast
    results: pd.DataFrame
    alpha: float
    n_significant: int
    n_up: int
    n_down: int

    @property
    def name(self) -> str:
        return self.contrast.name

    def to_dict(self) -> dict:
        return {
            "contrast": self.contrast.name,
            "focal": self.contrast.focal,
            "reference": list(self.contrast.reference),
            "n_tested": int(self.results["padj"].notna().sum()),
            "n_significant": self.n_significant,
            "n_up": self.n_up,
            "n_down": self.n_down,
            "alpha": self.alpha,
        }


def _prepare_metadata(metadata: pd.DataFrame, factors: list[str]) -> pd.DataFrame:
    meta = metadata.copy()
    for col in factors:
        if col not in meta.columns:
            raise KeyError(f"Design factor '{col}' not in metadata columns")
        if not pd.api.types.is_numeric_dtype(meta[col]):
            meta[col] = meta[col].astype(str)
    return meta


def fit_deseq(
    counts: pd.DataFrame,
    metadata: pd.DataFrame,
    design: str,
    n_cpus: int = 1,
    refit_cooks: bool = True,
):
    """
    Fit the DESeq2 model.

    Args:
        counts: Integer count matrix, genes as rows and samples as columns.
        metadata: Sample metadata indexed by the same sample ids.
        design: Formula, e.g. ``"~ sex + population"``.
        n_cpus: Worker threads the engine may use for fitting.
        refit_cooks: Refit genes with Cooks outliers after replacing them.

    Returns:
        Fitted ``pydeseq2.dds.DeseqDataSet``.

    Raises:
        ValueError: If counts and metadata samples differ.
        CollinearDesignError: If the engine's design matrix is rank-deficient.
    """
    from pydeseq2.dds import DeseqDataSet
    from pydeseq2.default_inference import DefaultInference

    if list(counts.columns) != list(metadata.index):
        raise ValueError(
            "Counts columns and metadata index must list the same samples in "
            "the same order; call align_samples() first"
        )

    factors = [t.strip() for t in design.lstrip("~").split("+") if t.strip()]
    meta = _prepare_metadata(metadata, factors)

    logger.info(
        "Fitting DESeq2 %s on %d genes x %d samples (n_cpus=%d)",
        design, counts.shape[0], counts.shape[1], n_cpus,
    )

    inference = DefaultInference(n_cpus=n_cpus)
    dds = DeseqDataSet(
        counts=counts.T,
        metadata=meta,
        design=design,
        refit_cooks=refit_cooks,
        inference=inference,
        quiet=True,
    )
    check_full_rank(engine_design_matrix(dds))

    dds.deseq2()
    logger.info("DESeq2 fit complete")
    return dds


def engine_design_matrix(dds) -> pd.DataFrame:
    """The engine's design matrix as a DataFrame (samples x coefficients)."""
    X = dds.obsm["design_matrix"]
    if not isinstance(X, pd.DataFrame):
        X = pd.DataFrame(np.asarray(X), index=dds.obs_names)
    return X.astype(np.float64)


def engine_group_labels(dds, group_col: str) -> pd.Series:
    """Population label per row of the engine's design matrix."""
    return dds.obs[group_col].astype(str)


def summarize_results(results: pd.DataFrame, alpha: float) -> tuple[int, int, int]:
    """Return (n_significant, n_up, n_down) at adjusted p < alpha."""
    sig = results["padj"] < alpha
    n_up = int((sig & (results["log2FoldChange"] > 0)).sum())
    n_down = int((sig & (results["log2FoldChange"] < 0)).sum())
    return int(sig.sum()), n_up, n_down


def run_contrast_test(
    dds,
    contrast: GroupContrast,
    alpha: float = 0.05,
    n_cpus: int = 1,
    cooks_filter: bool = True,
    independent_filter: bool = True,
) -> DifferentialResult:
    """
    Wald test of a numeric contrast against the fitted model.

    Raises:
        DimensionMismatchError: If the contrast does not match the engine's
            design columns.
    """
    from pydeseq2.default_inference import DefaultInference
    from pydeseq2.ds import DeseqStats

    design_cols = engine_design_matrix(dds).columns
    vector = contrast.vector
    if len(vector) != len(design_cols):
        raise DimensionMismatchError(
            f"Contrast {contrast.name} has {len(vector)} entries but the fitted "
            f"design has {len(design_cols)} coefficients"
        )
    if not isinstance(vector.index, pd.RangeIndex):
        if set(vector.index) != set(design_cols):
            raise DimensionMismatchError(
                f"Contrast {contrast.name} columns {list(vector.index)} do not "
                f"match design columns {list(design_cols)}"
            )
        vector = vector.reindex(design_cols)

    logger.info("Testing contrast %s", contrast.name)
    stat_res = DeseqStats(
        dds,
        contrast=vector.to_numpy(dtype=np.float64),
        alpha=alpha,
        cooks_filter=cooks_filter,
        independent_filter=independent_filter,
        inference=DefaultInference(n_cpus=n_cpus),
        quiet=True,
    )
    stat_res.summary()
    results = stat_res.results_df.copy()
    results.index.name = "gene_id"

    n_sig, n_up, n_down = summarize_results(results, alpha)
    logger.info(
        "%s: %d significant genes (%d up, %d down)",
        contrast.name, n_sig, n_up, n_down,
    )

    return DifferentialResult(
        contrast=contrast,
        results=results,
        alpha=alpha,
        n_significant=n_sig,
        n_up=n_up,
        n_down=n_down,
    )
