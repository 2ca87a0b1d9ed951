"""
Simple threshold filters applied before model fitting.

Two filters are used in the population analysis:

1. Gene filter: keep genes with at least ``min_count`` reads in at least
   ``min_samples`` samples. Removes genes that are essentially unexpressed
   and would only add multiple-testing burden.
2. Sample filter: keep samples whose population belongs to one of the
   configured continental groups. Populations outside the group map cannot
   contribute to any contrast.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Sequence

import pandas as pd

logger = logging.getLogger(__name__)

__all__ = ["FilterSummary", "filter_low_counts", "restrict_to_groups", "prune_group_map"]


@dataclass(frozen=True)
class FilterSummary:
    """Bookkeeping for the gene filter."""

    n_before: int
    n_after: int
    min_count: int
    min_samples: int

    @property
    def n_removed(self) -> int:
        return self.n_before - self.n_after

    def to_dict(self) -> dict:
        return {
            "n_before": self.n_before,
            "n_after": self.n_after,
            "n_removed": self.n_removed,
            "min_count": self.min_count,
            "min_samples": self.min_samples,
        }


def filter_low_counts(
    counts: pd.DataFrame,
    min_count: int = 10,
    min_samples: int = 1,
) -> tuple[pd.DataFrame, FilterSummary]:
    """
    Keep genes with ``>= min_count`` reads in ``>= min_samples`` samples.

    Args:
        counts: Genes as rows, samples as columns.
        min_count: Per-sample count threshold.
        min_samples: Number of samples that must reach ``min_count``.

    Returns:
        (filtered counts, FilterSummary)

    Raises:
        ValueError: On invalid thresholds or if no gene passes.
    """
    if min_count < 0:
        raise ValueError(f"min_count must be >= 0, got {min_count}")
    if min_samples < 1 or min_samples > counts.shape[1]:
        raise ValueError(
            f"min_samples must be in [1, {counts.shape[1]}], got {min_samples}"
        )

    keep = (counts >= min_count).sum(axis=1) >= min_samples
    filtered = counts.loc[keep]

    summary = FilterSummary(
        n_before=counts.shape[0],
        n_after=filtered.shape[0],
        min_count=min_count,
        min_samples=min_samples,
    )
    logger.info(
        "Genes passing filter (>= %d counts in >= %d samples): %d of %d",
        min_count, min_samples, summary.n_after, summary.n_before,
    )

    if filtered.empty:
        raise ValueError(
            f"No genes pass the count filter (min_count={min_count}, "
            f"min_samples={min_samples})"
        )
    return filtered, summary


def restrict_to_groups(
    metadata: pd.DataFrame,
    group_col: str,
    group_map: Mapping[str, Sequence[str]],
) -> pd.DataFrame:
    """
    Drop samples whose population is not a member of any group.

    Raises:
        KeyError: If ``group_col`` is not a metadata column.
        ValueError: If no sample remains.
    """
    if group_col not in metadata.columns:
        raise KeyError(
            f"Group column '{group_col}' not in metadata. "
            f"Available: {list(metadata.columns)}"
        )

    members = {str(p) for pops in group_map.values() for p in pops}
    labels = metadata[group_col].astype(str)
    keep = labels.isin(members)

    if not keep.all():
        dropped = labels[~keep].value_counts()
        logger.warning(
            "Dropping %d samples from unmapped populations: %s",
            int((~keep).sum()), dict(dropped),
        )

    restricted = metadata.loc[keep]
    if restricted.empty:
        raise ValueError(
            f"No samples belong to the configured groups {list(group_map)}"
        )
    return restricted


def prune_group_map(
    group_map: Mapping[str, Sequence[str]],
    observed: Sequence[str],
) -> dict[str, list[str]]:
    """
    Keep only observed populations; drop groups left with no members.

    A group map usually lists every population of the reference panel while
    a given expression study covers only a few of them.
    """
    observed_set = {str(o) for o in observed}
    pruned: dict[str, list[str]] = {}
    for group, pops in group_map.items():
        present = [str(p) for p in pops if str(p) in observed_set]
        if present:
            pruned[group] = present
        else:
            logger.info("Group %s has no observed populations; skipped", group)

    unmapped = observed_set - {p for pops in pruned.values() for p in pops}
    if unmapped:
        logger.warning("Observed populations not in any group: %s", sorted(unmapped))
    return pruned
