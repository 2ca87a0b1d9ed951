"""
Treatment-coded design matrices for population differential expression.

Builds the same design the count model fits from a formula such as
``~ sex + population``:

    X = [Intercept | covariate columns | population dummies]

Categorical columns are dummy coded against their first (sorted) level,
matching formulaic's ``C(x)[T.level]`` naming without the ``C()`` wrapper.
Numeric covariates enter unchanged.

The design must have full column rank. A covariate that is constant within
populations (e.g. sequencing lab when every population was sequenced by a
single lab) is collinear with the population dummies and cannot be fitted;
``check_full_rank`` reports this as CollinearDesignError instead of letting
the GLM fail later with an opaque linear-algebra error.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

__all__ = [
    "CollinearDesignError",
    "PopulationDesign",
    "design_formula",
    "build_design_matrix",
    "check_full_rank",
]


class CollinearDesignError(ValueError):
    """Raised when a design matrix is rank-deficient."""
    pass


@dataclass(frozen=True)
class PopulationDesign:
    """Design matrix and formula for a population-level model.

    Attributes:
        X: Design matrix (n_samples, n_params), full column rank, indexed by
            sample id with coefficient names as columns.
        formula: Formula string handed to the count model.
        group_col: Metadata column holding the population label.
        covariates: Metadata columns adjusted for, in formula order.
        group_labels: Population label per row of ``X``.
    """

    X: pd.DataFrame
    formula: str
    group_col: str
    covariates: list[str] = field(default_factory=list)
    group_labels: pd.Series | None = None

    @property
    def n_params(self) -> int:
        return self.X.shape[1]

    @property
    def n_samples(self) -> int:
        return self.X.shape[0]

    @property
    def df_residual(self) -> int:
        return self.n_samples - self.n_params


def design_formula(group_col: str, covariates: list[str] | None = None) -> str:
    """Formula with covariates first and the population factor last.

    >>> design_formula("population", ["sex"])
    '~ sex + population'
    """
    terms = list(covariates or []) + [group_col]
    return "~ " + " + ".join(terms)


def _encode_column(series: pd.Series) -> pd.DataFrame:
    name = str(series.name)
    if not pd.api.types.is_numeric_dtype(series) or pd.api.types.is_bool_dtype(series):
        levels = sorted(series.astype(str).unique())
        cat = pd.Categorical(series.astype(str), categories=levels)
        dummies = pd.get_dummies(cat, drop_first=True, dtype=float)
        dummies.columns = [f"{name}[T.{level}]" for level in dummies.columns]
        dummies.index = series.index
        return dummies
    return series.astype(np.float64).to_frame(name)


def build_design_matrix(
    metadata: pd.DataFrame,
    group_col: str,
    covariates: list[str] | None = None,
) -> PopulationDesign:
    """
    Build the design matrix for ``~ covariates + group_col``.

    Args:
        metadata: Sample metadata, one row per sample (index = sample id).
        group_col: Population column.
        covariates: Additional metadata columns to adjust for.

    Returns:
        PopulationDesign with the design matrix and formula.

    Raises:
        KeyError: If a requested column is missing from ``metadata``.
        ValueError: If any used column has missing values.
        CollinearDesignError: If the design is rank-deficient.
    """
    import statsmodels.api as sm

    covariates = list(covariates or [])
    columns = covariates + [group_col]
    missing_cols = [c for c in columns if c not in metadata.columns]
    if missing_cols:
        raise KeyError(
            f"Columns {missing_cols} not in metadata. "
            f"Available: {list(metadata.columns)}"
        )

    used = metadata[columns]
    na_rows = used.isna().any(axis=1)
    if na_rows.any():
        raise ValueError(
            f"{int(na_rows.sum())} samples have missing values in {columns}: "
            f"{list(used.index[na_rows][:5])}"
        )

    parts = [_encode_column(used[col]) for col in columns]
    X = pd.concat(parts, axis=1)
    X = sm.add_constant(X, has_constant="add")
    X = X.rename(columns={"const": "Intercept"}).astype(np.float64)

    check_full_rank(X)

    # Numeric covariates enter X raw; judge conditioning on their z-scores
    numeric = [c for c in covariates if c in X.columns]
    X_scaled = X.copy()
    for col in numeric:
        sd = X_scaled[col].std()
        X_scaled[col] = (X_scaled[col] - X_scaled[col].mean()) / (sd if sd > 0 else 1.0)

    cond_number = np.linalg.cond(X_scaled.to_numpy())
    if cond_number > 30:
        warnings.warn(
            f"Design matrix condition number is high ({cond_number:.1f} > 30). "
            f"Near-collinearity may cause unstable estimates."
        )

    formula = design_formula(group_col, covariates)
    logger.info(
        "Design %s: %d samples x %d coefficients", formula, X.shape[0], X.shape[1]
    )

    return PopulationDesign(
        X=X,
        formula=formula,
        group_col=group_col,
        covariates=covariates,
        group_labels=metadata[group_col].astype(str),
    )


def check_full_rank(design_matrix: pd.DataFrame | np.ndarray) -> None:
    """
    Raise CollinearDesignError if the design matrix is rank-deficient.

    Also rejects designs with no residual degrees of freedom.
    """
    if isinstance(design_matrix, pd.DataFrame):
        col_names = list(design_matrix.columns)
        X = design_matrix.to_numpy(dtype=np.float64)
    else:
        X = np.asarray(design_matrix, dtype=np.float64)
        col_names = list(range(X.shape[1]))

    n_samples, n_params = X.shape
    rank = np.linalg.matrix_rank(X)
    if rank < n_params:
        raise CollinearDesignError(
            f"Design matrix is rank-deficient: rank={rank}, n_params={n_params}. "
            f"Columns: {col_names}. A covariate may be collinear with the "
            f"population factor or another covariate."
        )

    if n_samples - n_params < 1:
        raise CollinearDesignError(
            f"Design matrix is rank-deficient for estimation: {n_samples} samples - "
            f"{n_params} params = {n_samples - n_params} residual df."
        )
