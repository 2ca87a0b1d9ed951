"""
Group-vs-rest contrast vectors for population-level differential expression.

The fitted model uses one dummy column per population (plus covariates such
as sex), so a continental comparison like "EUR vs the other super-populations"
is not a single model term. It is assembled from the design matrix itself:

    1. Group coefficient rows: column-wise mean of the design matrix over the
       samples of each population. This is the expected covariate pattern of
       a member of that population (e.g. intercept=1, population dummy=1,
       sex dummy=fraction of males).
    2. Composite rows: unweighted mean of the group rows of the populations
       making up one continental group.
    3. Contrast: focal composite minus the unweighted mean of the other
       composites.

Design matrix:
    X = [Intercept | covariate dummies | population dummies]

Contrast vector:
    c = composite(focal) - mean(composite(g) for g in reference)

The reference average is deliberately NOT weighted by sample counts: every
continental group contributes equally to the baseline regardless of how many
individuals were sequenced from it.

All operations are pure. Inputs are never mutated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Hashable, Mapping, Sequence, Union

import numpy as np
import pandas as pd
from numpy.typing import NDArray

logger = logging.getLogger(__name__)

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
]


class ContrastError(ValueError):
    """Base class for malformed contrast requests."""
    pass


class EmptyGroupError(ContrastError):
    """Raised when a declared group has no observations or no members."""
    pass


class UnknownGroupError(ContrastError):
    """Raised when a requested group is not present in the fitted data."""
    pass


class DimensionMismatchError(ContrastError):
    """Raised when coefficient rows being combined have inconsistent width."""
    pass


Row = Union[pd.Series, NDArray[np.float64], Sequence[float]]


@dataclass(frozen=True)
class GroupContrast:
    """A focal-vs-reference contrast and the rows it was built from.

    Attributes:
        name: Human-readable contrast name (e.g. "EUR_vs_rest").
        focal: Top-level group being tested.
        reference: Top-level groups averaged (unweighted) into the baseline.
        vector: Contrast vector indexed by design matrix column.
        group_coefficients: Per-population coefficient rows.
        composites: Per top-level group composite rows (focal + reference).
    """

    name: str
    focal: str
    reference: tuple[str, ...]
    vector: pd.Series
    group_coefficients: dict[Hashable, pd.Series]
    composites: dict[str, pd.Series]

    @property
    def n_params(self) -> int:
        return len(self.vector)

    def to_array(self) -> NDArray[np.float64]:
        """Contrast as a plain float array, in design column order."""
        return self.vector.to_numpy(dtype=np.float64)


def _as_row(row: Row) -> NDArray[np.float64]:
    arr = np.asarray(row, dtype=np.float64)
    if arr.ndim != 1:
        raise DimensionMismatchError(
            f"Coefficient rows must be 1-D, got shape {arr.shape}"
        )
    return arr


def _check_widths(rows: Sequence[Row], what: str) -> None:
    widths = {len(_as_row(r)) for r in rows}
    if len(widths) > 1:
        raise DimensionMismatchError(
            f"{what} have inconsistent widths: {sorted(widths)}"
        )

    indexes = [r.index for r in rows if isinstance(r, pd.Series)]
    for idx in indexes[1:]:
        if not idx.equals(indexes[0]):
            raise DimensionMismatchError(
                f"{what} are indexed by different design columns: "
                f"{list(indexes[0])} vs {list(idx)}"
            )


def _wrap_like(template: Row, values: NDArray[np.float64]) -> Row:
    # Series in, Series out; anything else comes back as an ndarray.
    if isinstance(template, pd.Series):
        return pd.Series(values, index=template.index)
    return values


def compute_group_coefficients(
    design_matrix: pd.DataFrame | NDArray,
    group_labels: pd.Series | Sequence[Hashable],
    levels: Sequence[Hashable] | None = None,
) -> dict[Hashable, pd.Series]:
    """
    Average the design matrix rows of each group.

    Args:
        design_matrix: (n_samples, n_params) design with a constant intercept
            column. A DataFrame keeps its column names in the returned rows.
        group_labels: One label per design matrix row.
        levels: Declared group values. Defaults to the categories of a
            categorical ``group_labels``, else the observed unique values
            in order of first appearance.

    Returns:
        Dict mapping group value -> column-wise mean row (pd.Series indexed
        by design column).

    Raises:
        ValueError: If labels and rows differ in length or a label is missing.
        EmptyGroupError: If a declared level has no rows.
    """
    if isinstance(design_matrix, pd.DataFrame):
        columns = design_matrix.columns
        X = design_matrix.to_numpy(dtype=np.float64)
    else:
        X = np.asarray(design_matrix, dtype=np.float64)
        if X.ndim != 2:
            raise DimensionMismatchError(
                f"Design matrix must be 2-D, got shape {X.shape}"
            )
        columns = pd.RangeIndex(X.shape[1])

    labels = pd.Series(group_labels).reset_index(drop=True)
    if len(labels) != X.shape[0]:
        raise ValueError(
            f"group_labels has {len(labels)} entries but design matrix has "
            f"{X.shape[0]} rows"
        )
    if labels.isna().any():
        missing = int(labels.isna().sum())
        raise ValueError(f"{missing} design matrix rows have no group label")

    if levels is None:
        if isinstance(labels.dtype, pd.CategoricalDtype):
            levels = list(labels.cat.categories)
        else:
            levels = list(pd.unique(labels))

    label_values = labels.to_numpy()
    coefficients: dict[Hashable, pd.Series] = {}
    for level in levels:
        mask = label_values == level
        n_rows = int(mask.sum())
        if n_rows == 0:
            raise EmptyGroupError(f"Group '{level}' has no observations")
        coefficients[level] = pd.Series(X[mask].mean(axis=0), index=columns)
        logger.debug("Group %s: %d rows", level, n_rows)

    return coefficients


def compute_composite_coefficient(
    group_coefficients: Mapping[Hashable, Row],
    member_labels: Sequence[Hashable],
) -> Row:
    """
    Unweighted mean of several group coefficient rows.

    The result does not depend on the order of ``member_labels``.

    Raises:
        EmptyGroupError: If ``member_labels`` is empty.
        UnknownGroupError: If a member is not a key of ``group_coefficients``.
        DimensionMismatchError: If the selected rows differ in width.
    """
    members = list(member_labels)
    if not members:
        raise EmptyGroupError("A composite needs at least one member group")

    unknown = [m for m in members if m not in group_coefficients]
    if unknown:
        raise UnknownGroupError(
            f"Groups {unknown} not found; available: {list(group_coefficients)}"
        )

    rows = [group_coefficients[m] for m in members]
    _check_widths(rows, "Group coefficient rows")

    composite = np.vstack([_as_row(r) for r in rows]).mean(axis=0)
    return _wrap_like(rows[0], composite)


def compute_contrast(
    focal_composite: Row,
    other_composites: Sequence[Row],
) -> Row:
    """
    Focal composite minus the unweighted mean of the other composites.

    With a single other composite this reduces to plain subtraction, and
    swapping focal and other negates the result.

    Raises:
        DimensionMismatchError: If ``other_composites`` is empty or any row
            differs in width from ``focal_composite``.
    """
    others = list(other_composites)
    if not others:
        raise DimensionMismatchError(
            "Contrast needs at least one other composite to compare against"
        )
    _check_widths([focal_composite, *others], "Composite rows")

    focal = _as_row(focal_composite)
    baseline = np.vstack([_as_row(r) for r in others]).mean(axis=0)
    return _wrap_like(focal_composite, focal - baseline)


def build_group_contrast(
    design_matrix: pd.DataFrame | NDArray,
    group_labels: pd.Series | Sequence[Hashable],
    group_map: Mapping[str, Sequence[Hashable]],
    focal: str,
    reference: Sequence[str] | None = None,
) -> GroupContrast:
    """
    Build the contrast "focal group vs. unweighted average of reference groups".

    Args:
        design_matrix: Fitted design matrix (one row per sample).
        group_labels: Fine-grained label (population) per sample.
        group_map: Top-level group -> member populations.
        focal: Top-level group to test.
        reference: Top-level groups forming the baseline. Defaults to every
            other group in ``group_map``.

    Returns:
        GroupContrast with the vector and the intermediate rows.

    Raises:
        UnknownGroupError: If focal/reference groups are not in ``group_map``
            or a member population has no coefficient row.
        EmptyGroupError, DimensionMismatchError: As raised by the steps.
    """
    if focal not in group_map:
        raise UnknownGroupError(
            f"Focal group '{focal}' not in group map: {list(group_map)}"
        )

    if reference is None:
        reference = [g for g in group_map if g != focal]
    reference = list(reference)
    unknown = [g for g in reference if g not in group_map]
    if unknown:
        raise UnknownGroupError(
            f"Reference groups {unknown} not in group map: {list(group_map)}"
        )
    if focal in reference:
        raise ValueError(f"Focal group '{focal}' cannot also be a reference group")

    group_coefficients = compute_group_coefficients(design_matrix, group_labels)

    composites: dict[str, pd.Series] = {}
    for group in [focal, *reference]:
        composites[group] = compute_composite_coefficient(
            group_coefficients, group_map[group]
        )

    vector = compute_contrast(
        composites[focal], [composites[g] for g in reference]
    )
    if not isinstance(vector, pd.Series):
        vector = pd.Series(vector)

    if set(reference) == set(group_map) - {focal}:
        name = f"{focal}_vs_rest"
    else:
        name = f"{focal}_vs_{'+'.join(reference)}"

    logger.info(
        "Built contrast %s (%d reference groups, %d coefficients)",
        name, len(reference), len(vector),
    )

    return GroupContrast(
        name=name,
        focal=focal,
        reference=tuple(reference),
        vector=vector,
        group_coefficients=group_coefficients,
        composites=composites,
    )


def build_all_group_contrasts(
    design_matrix: pd.DataFrame | NDArray,
    group_labels: pd.Series | Sequence[Hashable],
    group_map: Mapping[str, Sequence[Hashable]],
    focal_groups: Sequence[str] | None = None,
    reference: Sequence[str] | None = None,
) -> list[GroupContrast]:
    """
    One contrast per focal group (default: every group vs. the rest).

    With a shared ``reference`` and no ``focal_groups``, every group outside
    the reference is tested against it.
    """
    if focal_groups is None:
        excluded = set(reference or ())
        focal_groups = [g for g in group_map if g not in excluded]

    contrasts = []
    for focal in focal_groups:
        ref = None
        if reference is not None:
            ref = [g for g in reference if g != focal]
        contrasts.append(
            build_group_contrast(design_matrix, group_labels, group_map, focal, ref)
        )
    return contrasts
