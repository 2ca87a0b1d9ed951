"""
Figures for one differential expression contrast.

Examples
--------
>>> from popexpr.viz import configure_style, plot_volcano
>>>
>>> palette = configure_style("paper")
>>> fig = plot_volcano(result.results, alpha=0.05, palette=palette)
>>> fig.save("figures/EUR_vs_rest.volcano.pdf")
"""

from popexpr.viz.core import Figure
from popexpr.viz.styles import DEFAULT_PALETTE, Palette, configure_style
from popexpr.viz.plots import classify_direction, plot_ma, plot_pvalue_histogram, plot_volcano

__all__ = [
    "Figure",
    "Palette",
    "DEFAULT_PALETTE",
    "configure_style",
    "classify_direction",
    "plot_volcano",
    "plot_ma",
    "plot_pvalue_histogram",
]
