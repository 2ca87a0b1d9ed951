"""
Figure wrapper used by all plotting functions.

Plot functions return a ``Figure`` rather than a bare matplotlib figure so
that callers (the CLI, notebooks) save and close figures the same way and
carry a title/description along for reports.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Literal, Optional

import matplotlib.figure
import matplotlib.pyplot as plt

OutputFormat = Literal["png", "pdf", "svg"]


@dataclass
class Figure:
    """
    Matplotlib figure with metadata.

    Attributes
    ----------
    fig : matplotlib.figure.Figure
        The underlying figure object
    title : str
        Human-readable title for the figure
    description : str
        What the figure shows
    metadata : dict
        Parameters used to draw it (contrast, thresholds, ...)

    Examples
    --------
    >>> fig = plot_volcano(result.results, alpha=0.05)
    >>> fig.save("EUR_vs_rest.volcano.pdf")
    >>> fig.close()
    """
    fig: matplotlib.figure.Figure
    title: str
    description: str = ""
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        if "created_at" not in self.metadata:
            self.metadata["created_at"] = datetime.now().isoformat()

    def save(
        self,
        path: Path | str,
        format: Optional[OutputFormat] = None,
        dpi: int = 300,
        **kwargs
    ) -> Path:
        """
        Save figure to file.

        The format is inferred from the extension when not given; unknown
        extensions fall back to png.
        """
        path = Path(path)

        if format is None:
            format = path.suffix.lstrip(".").lower()
            if format not in ("png", "pdf", "svg"):
                format = "png"

        path.parent.mkdir(parents=True, exist_ok=True)
        save_kwargs = {
            "dpi": dpi,
            "bbox_inches": "tight",
            "facecolor": "white",
            **kwargs
        }
        self.fig.savefig(path, format=format, **save_kwargs)
        return path

    def close(self):
        """Close the figure to free memory."""
        plt.close(self.fig)
