"""
Differential expression plots for one contrast.

- plot_volcano: log2 fold change vs -log10(padj), top genes labelled
- plot_ma: mean normalized count vs log2 fold change
- plot_pvalue_histogram: raw p-value distribution (should be flat with a
  spike near 0 when the model is well calibrated)

All functions take the engine's results table (columns baseMean,
log2FoldChange, pvalue, padj; index = gene id) and return a ``Figure``.
"""

from __future__ import annotations

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from adjustText import adjust_text

from popexpr.viz.core import Figure
from popexpr.viz.styles import DEFAULT_PALETTE, Palette

__all__ = ["classify_direction", "plot_volcano", "plot_ma", "plot_pvalue_histogram"]


def classify_direction(
    results: pd.DataFrame,
    alpha: float = 0.05,
    lfc_threshold: float = 0.0,
) -> pd.Series:
    """Label each gene 'up', 'down' or 'ns'.

    Genes with a missing padj (filtered by the engine) are 'ns'.
    """
    sig = (results["padj"] < alpha) & (results["log2FoldChange"].abs() > lfc_threshold)
    direction = pd.Series("ns", index=results.index)
    direction[sig & (results["log2FoldChange"] > 0)] = "up"
    direction[sig & (results["log2FoldChange"] < 0)] = "down"
    return direction


def plot_volcano(
    results: pd.DataFrame,
    alpha: float = 0.05,
    lfc_threshold: float = 1.0,
    n_labels: int = 10,
    title: str = "Volcano plot",
    palette: Palette = DEFAULT_PALETTE,
    figsize: tuple[float, float] = (6, 5),
) -> Figure:
    """
    Volcano plot with significance/effect thresholds and top-gene labels.

    Args:
        results: Engine results table.
        alpha: Adjusted p-value threshold (horizontal line).
        lfc_threshold: |log2 fold change| threshold (vertical lines).
        n_labels: Number of most significant genes to label.
        title: Axes title.
    """
    data = results.dropna(subset=["padj", "log2FoldChange"])
    # padj of exactly 0 would map to +inf; clip at the smallest positive float
    neg_log_p = -np.log10(data["padj"].clip(lower=np.finfo(float).tiny))
    direction = classify_direction(data, alpha, lfc_threshold)

    fig, ax = plt.subplots(figsize=figsize)
    colors = {"up": palette.up, "down": palette.down, "ns": palette.neutral}
    for label in ("ns", "down", "up"):
        mask = direction == label
        ax.scatter(
            data.loc[mask, "log2FoldChange"],
            neg_log_p[mask],
            s=6 if label == "ns" else 10,
            c=colors[label],
            alpha=0.5 if label == "ns" else 0.8,
            linewidths=0,
            label=f"{label} ({int(mask.sum())})",
            rasterized=True,
        )

    ax.axhline(-np.log10(alpha), color=palette.threshold, ls="--", lw=0.8)
    if lfc_threshold > 0:
        for x in (-lfc_threshold, lfc_threshold):
            ax.axvline(x, color=palette.threshold, ls="--", lw=0.8)

    texts = []
    if n_labels > 0:
        top = data[direction != "ns"].nsmallest(n_labels, "padj")
        for gene, row in top.iterrows():
            texts.append(
                ax.text(row["log2FoldChange"], neg_log_p[gene], str(gene), fontsize=7)
            )
    if texts:
        adjust_text(texts, ax=ax, arrowprops=dict(arrowstyle="-", lw=0.5, color="#475569"))

    ax.set_xlabel("log$_2$ fold change")
    ax.set_ylabel("-log$_{10}$ adjusted p")
    ax.set_title(title)
    ax.legend(loc="upper left", markerscale=2)

    return Figure(
        fig=fig,
        title=title,
        description="Effect size vs. adjusted significance per gene",
        metadata={"alpha": alpha, "lfc_threshold": lfc_threshold, "n_genes": len(data)},
    )


def plot_ma(
    results: pd.DataFrame,
    alpha: float = 0.05,
    title: str = "MA plot",
    palette: Palette = DEFAULT_PALETTE,
    figsize: tuple[float, float] = (6, 4),
) -> Figure:
    """Mean of normalized counts (log scale) vs log2 fold change."""
    data = results.dropna(subset=["log2FoldChange"])
    data = data[data["baseMean"] > 0]
    direction = classify_direction(data.fillna({"padj": 1.0}), alpha)

    fig, ax = plt.subplots(figsize=figsize)
    point_colors = direction.map(
        {"up": palette.up, "down": palette.down, "ns": palette.neutral}
    )
    ax.scatter(
        data["baseMean"], data["log2FoldChange"],
        s=5, c=point_colors.to_list(), linewidths=0, alpha=0.7, rasterized=True,
    )
    ax.axhline(0, color=palette.threshold, lw=0.8)
    ax.set_xscale("log")
    ax.set_xlabel("Mean of normalized counts")
    ax.set_ylabel("log$_2$ fold change")
    ax.set_title(title)

    return Figure(
        fig=fig,
        title=title,
        description="Fold change as a function of expression level",
        metadata={"alpha": alpha, "n_genes": len(data)},
    )


def plot_pvalue_histogram(
    results: pd.DataFrame,
    bins: int = 50,
    title: str = "p-value distribution",
    palette: Palette = DEFAULT_PALETTE,
    figsize: tuple[float, float] = (5, 3.5),
) -> Figure:
    """Histogram of raw p-values."""
    pvalues = results["pvalue"].dropna()

    fig, ax = plt.subplots(figsize=figsize)
    ax.hist(pvalues, bins=bins, range=(0, 1), color=palette.neutral, edgecolor="white")
    ax.set_xlabel("p-value")
    ax.set_ylabel("Genes")
    ax.set_title(title)

    return Figure(
        fig=fig,
        title=title,
        description="Raw p-value histogram",
        metadata={"n_genes": int(len(pvalues))},
    )
