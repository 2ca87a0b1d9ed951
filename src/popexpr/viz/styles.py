"""
Plot styling for differential expression figures.

Color semantics
---------------
- Up in focal group = teal (#0d9488)
- Down in focal group = orange (#f97316)
- Not significant = slate (#94a3b8)
- Threshold lines = dark gray, dashed
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

import matplotlib.pyplot as plt
import seaborn as sns


@dataclass(frozen=True)
class Palette:
    """Colors for differential expression plots."""
    up: str = "#0d9488"
    down: str = "#f97316"
    neutral: str = "#94a3b8"
    threshold: str = "#334155"
    highlight: str = "#dc2626"


DEFAULT_PALETTE = Palette()


def configure_style(
    style: Literal["paper", "notebook"] = "paper",
    font_scale: float = 1.0,
) -> Palette:
    """
    Configure matplotlib and seaborn for consistent figures.

    Parameters
    ----------
    style : {"paper", "notebook"}
        paper: small fonts, high DPI. notebook: larger fonts, screen DPI.
    font_scale : float
        Multiplier for all font sizes.

    Returns
    -------
    Palette
        The color palette plots should use.
    """
    base_params = {
        "figure.facecolor": "white",
        "axes.facecolor": "white",
        "axes.edgecolor": "#333333",
        "axes.labelcolor": "#333333",
        "text.color": "#333333",
        "axes.spines.top": False,
        "axes.spines.right": False,
        "legend.frameon": False,
    }

    if style == "paper":
        style_params = {
            "font.size": 10 * font_scale,
            "axes.titlesize": 11 * font_scale,
            "axes.labelsize": 10 * font_scale,
            "legend.fontsize": 9 * font_scale,
            "figure.dpi": 300,
            "savefig.dpi": 300,
        }
        context = "paper"
    else:
        style_params = {
            "font.size": 11 * font_scale,
            "axes.titlesize": 12 * font_scale,
            "axes.labelsize": 11 * font_scale,
            "legend.fontsize": 10 * font_scale,
            "figure.dpi": 100,
            "savefig.dpi": 150,
        }
        context = "notebook"

    sns.set_theme(style="ticks", context=context, font_scale=font_scale)
    plt.rcParams.update({**base_params, **style_params})

    return DEFAULT_PALETTE

