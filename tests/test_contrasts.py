"""Tests for group, composite and contrast coefficient rows."""

import numpy as np
import pandas as pd
import pytest

from popexpr.stats.contrasts import (
    ContrastError,
    DimensionMismatchError,
    EmptyGroupError,
    GroupContrast,
    UnknownGroupError,
    build_all_group_contrasts,
    build_group_contrast,
    compute_composite_coefficient,
    compute_contrast,
    compute_group_coefficients,
)
from popexpr.stats.design_matrix import build_design_matrix


@pytest.fixture
def design(metadata):
    return build_design_matrix(metadata, "population", ["sex"])


class TestComputeGroupCoefficients:
    """Tests for compute_group_coefficients."""

    def test_intercept_is_one_for_every_group(self, design):
        """Every group row keeps the intercept at exactly 1."""
        rows = compute_group_coefficients(design.X, design.group_labels)

        assert set(rows) == {"CEU", "GBR", "YRI", "CHB", "JPT"}
        for row in rows.values():
            assert row["Intercept"] == 1.0

    def test_rows_are_column_means(self):
        """Each row is the column-wise mean over the group's samples."""
        X = pd.DataFrame(
            [[1, 0, 1], [1, 0, 0], [1, 1, 0], [1, 1, 1]],
            columns=["Intercept", "b", "c"],
            dtype=float,
        )
        rows = compute_group_coefficients(X, ["a", "a", "b", "b"])

        np.testing.assert_array_equal(rows["a"].to_numpy(), [1.0, 0.0, 0.5])
        np.testing.assert_array_equal(rows["b"].to_numpy(), [1.0, 1.0, 0.5])
        assert list(rows["a"].index) == ["Intercept", "b", "c"]

    def test_population_dummy_is_indicator(self, design):
        """Without within-group variation the population dummy is 0 or 1."""
        rows = compute_group_coefficients(design.X, design.group_labels)

        assert rows["YRI"]["population[T.YRI]"] == 1.0
        assert rows["CEU"]["population[T.YRI]"] == 0.0
        # 3 of 5 CHB samples are male
        assert rows["CHB"]["sex[T.male]"] == pytest.approx(0.6)

    def test_label_index_is_ignored(self, design):
        """Labels are matched to rows by position, not by index."""
        labels = design.group_labels.copy()
        labels.index = range(100, 100 + len(labels))
        rows = compute_group_coefficients(design.X, labels)
        assert rows["GBR"]["population[T.GBR]"] == 1.0

    def test_plain_array_input(self):
        """A bare ndarray gets positional column labels."""
        X = np.array([[1.0, 2.0], [1.0, 4.0]])
        rows = compute_group_coefficients(X, ["g", "g"])
        np.testing.assert_array_equal(rows["g"].to_numpy(), [1.0, 3.0])
        assert list(rows["g"].index) == [0, 1]

    def test_declared_level_without_rows_raises(self):
        """A declared group with zero observations is an EmptyGroupError."""
        X = np.ones((3, 2))
        with pytest.raises(EmptyGroupError, match="'c'"):
            compute_group_coefficients(X, ["a", "b", "b"], levels=["a", "b", "c"])

    def test_unused_categorical_level_raises(self):
        """Unused categories of a categorical label count as declared levels."""
        X = np.ones((2, 2))
        labels = pd.Categorical(["a", "a"], categories=["a", "b"])
        with pytest.raises(EmptyGroupError):
            compute_group_coefficients(X, labels)

    def test_length_mismatch_raises(self):
        with pytest.raises(ValueError, match="3 rows"):
            compute_group_coefficients(np.ones((3, 2)), ["a", "b"])

    def test_missing_label_raises(self):
        with pytest.raises(ValueError, match="no group label"):
            compute_group_coefficients(np.ones((2, 2)), ["a", None])

    def test_input_not_mutated(self, design):
        X_before = design.X.copy()
        compute_group_coefficients(design.X, design.group_labels)
        pd.testing.assert_frame_equal(design.X, X_before)


class TestComputeCompositeCoefficient:
    """Tests for compute_composite_coefficient."""

    @pytest.fixture
    def rows(self):
        return {
            "g1": np.array([1.0, 0.0, 1.0]),
            "g2": np.array([1.0, 1.0, 0.0]),
            "g3": np.array([1.0, 0.5, 0.5]),
        }

    def test_unweighted_mean(self, rows):
        composite = compute_composite_coefficient(rows, ["g1", "g2"])
        np.testing.assert_array_equal(composite, [1.0, 0.5, 0.5])

    def test_order_invariant(self, rows):
        """Member order does not change the composite."""
        forward = compute_composite_coefficient(rows, ["g1", "g2", "g3"])
        for order in (["g3", "g1", "g2"], ["g2", "g3", "g1"], ["g3", "g2", "g1"]):
            np.testing.assert_allclose(
                compute_composite_coefficient(rows, order), forward
            )

    def test_single_member_is_identity(self, rows):
        np.testing.assert_array_equal(
            compute_composite_coefficient(rows, ["g3"]), rows["g3"]
        )

    def test_empty_members_raises(self, rows):
        """An empty member list is rejected."""
        with pytest.raises(EmptyGroupError):
            compute_composite_coefficient(rows, [])

    def test_unknown_member_raises(self, rows):
        with pytest.raises(UnknownGroupError, match="g9"):
            compute_composite_coefficient(rows, ["g1", "g9"])

    def test_width_mismatch_raises(self, rows):
        rows = dict(rows, g4=np.array([1.0, 0.0, 0.0, 1.0]))
        with pytest.raises(DimensionMismatchError):
            compute_composite_coefficient(rows, ["g1", "g4"])

    def test_series_rows_stay_series(self):
        idx = ["Intercept", "x"]
        rows = {"a": pd.Series([1.0, 0.0], index=idx), "b": pd.Series([1.0, 1.0], index=idx)}
        composite = compute_composite_coefficient(rows, ["a", "b"])
        assert isinstance(composite, pd.Series)
        assert composite["x"] == 0.5

    def test_series_with_different_columns_raises(self):
        rows = {
            "a": pd.Series([1.0, 0.0], index=["Intercept", "x"]),
            "b": pd.Series([1.0, 1.0], index=["Intercept", "y"]),
        }
        with pytest.raises(DimensionMismatchError, match="different design columns"):
            compute_composite_coefficient(rows, ["a", "b"])


class TestComputeContrast:
    """Tests for compute_contrast."""

    def test_single_other_is_subtraction(self):
        A = np.array([1.0, 0.3, 0.7, 0.25])
        B = np.array([1.0, 0.6, 0.1, 0.5])
        np.testing.assert_array_equal(compute_contrast(A, [B]), A - B)

    def test_antisymmetric(self):
        A = np.array([1.0, 0.3, 0.7])
        B = np.array([1.0, 0.6, 0.1])
        np.testing.assert_array_equal(
            compute_contrast(A, [B]), -compute_contrast(B, [A])
        )

    def test_focal_equal_to_baseline_gives_zero(self):
        """Composite of g1+g2 against g3 alone, which equals it."""
        rows = {
            "g1": [1.0, 0.0, 1.0],
            "g2": [1.0, 1.0, 0.0],
            "g3": [1.0, 0.5, 0.5],
        }
        focal = compute_composite_coefficient(rows, ["g1", "g2"])
        other = compute_composite_coefficient(rows, ["g3"])

        np.testing.assert_array_equal(focal, [1.0, 0.5, 0.5])
        np.testing.assert_array_equal(compute_contrast(focal, [other]), [0.0, 0.0, 0.0])

    def test_baseline_is_mean_of_others(self):
        contrast = compute_contrast([1.0, 2.0, 3.0], [[1.0, 0.0, 1.0], [1.0, 4.0, 5.0]])
        np.testing.assert_array_equal(contrast, [0.0, 0.0, 0.0])

    def test_intercept_cancels(self):
        """Rows with intercept 1 give a contrast with intercept 0."""
        contrast = compute_contrast(
            [1.0, 1.0, 0.0], [[1.0, 0.0, 1.0], [1.0, 0.0, 0.0], [1.0, 0.5, 0.5]]
        )
        assert contrast[0] == 0.0

    def test_width_mismatch_raises(self):
        with pytest.raises(DimensionMismatchError):
            compute_contrast([1.0, 0.0, 1.0], [[1.0, 0.0, 1.0, 0.0]])

    def test_width_mismatch_among_others_raises(self):
        with pytest.raises(DimensionMismatchError):
            compute_contrast([1.0, 0.0, 1.0], [[1.0, 0.0, 1.0], [1.0, 0.0]])

    def test_no_others_raises(self):
        with pytest.raises(DimensionMismatchError, match="at least one"):
            compute_contrast([1.0, 0.0, 1.0], [])

    def test_errors_are_value_errors(self):
        """Callers catching ValueError see every contrast error."""
        assert issubclass(ContrastError, ValueError)
        with pytest.raises(ValueError):
            compute_contrast([1.0], [[1.0, 2.0]])


class TestBuildGroupContrast:
    """Tests for the full design -> contrast chain."""

    @pytest.fixture
    def design_no_covariates(self, metadata):
        return build_design_matrix(metadata, "population")

    def test_known_vector(self, design_no_covariates, group_map):
        """EUR vs. unweighted mean of AFR and EAS, worked out by hand."""
        d = design_no_covariates
        contrast = build_group_contrast(d.X, d.group_labels, group_map, "EUR")

        # columns: Intercept, CHB, GBR, JPT, YRI (CEU is the reference level)
        # EUR = [1, 0, .5, 0, 0]; AFR = [1, 0, 0, 0, 1]; EAS = [1, .5, 0, .5, 0]
        expected = pd.Series(
            [0.0, -0.25, 0.5, -0.25, -0.5],
            index=[
                "Intercept",
                "population[T.CHB]",
                "population[T.GBR]",
                "population[T.JPT]",
                "population[T.YRI]",
            ],
        )
        pd.testing.assert_series_equal(contrast.vector, expected, check_names=False)
        assert contrast.name == "EUR_vs_rest"
        assert contrast.reference == ("AFR", "EAS")

    def test_baseline_is_not_weighted_by_sample_count(self, metadata, group_map):
        """Doubling one population's samples leaves the contrast unchanged."""
        base = build_design_matrix(metadata, "population")
        c1 = build_group_contrast(base.X, base.group_labels, group_map, "AFR")

        extra = metadata[metadata["population"] == "CHB"].copy()
        extra.index = [f"{s}_dup" for s in extra.index]
        bigger = build_design_matrix(pd.concat([metadata, extra]), "population")
        c2 = build_group_contrast(bigger.X, bigger.group_labels, group_map, "AFR")

        pd.testing.assert_series_equal(c1.vector, c2.vector)

    def test_covariate_weight(self, design, group_map):
        """Sex enters through each group's male fraction."""
        contrast = build_group_contrast(design.X, design.group_labels, group_map, "EUR")
        # EUR male fraction 0.5; baseline mean(0.5 AFR, 0.6 EAS) = 0.55
        assert contrast.vector["sex[T.male]"] == pytest.approx(-0.05)
        assert contrast.vector["Intercept"] == 0.0
        assert contrast.n_params == design.n_params

    def test_explicit_reference(self, design, group_map):
        contrast = build_group_contrast(
            design.X, design.group_labels, group_map, "EUR", reference=["AFR"]
        )
        assert contrast.name == "EUR_vs_AFR"
        np.testing.assert_allclose(
            contrast.to_array(),
            (contrast.composites["EUR"] - contrast.composites["AFR"]).to_numpy(),
        )

    def test_unknown_focal_raises(self, design, group_map):
        with pytest.raises(UnknownGroupError, match="SAS"):
            build_group_contrast(design.X, design.group_labels, group_map, "SAS")

    def test_unknown_reference_raises(self, design, group_map):
        with pytest.raises(UnknownGroupError):
            build_group_contrast(
                design.X, design.group_labels, group_map, "EUR", reference=["AMR"]
            )

    def test_member_population_without_samples_raises(self, design):
        group_map = {"EUR": ["CEU", "FIN"], "AFR": ["YRI"]}
        with pytest.raises(UnknownGroupError, match="FIN"):
            build_group_contrast(design.X, design.group_labels, group_map, "EUR")

    def test_focal_in_reference_raises(self, design, group_map):
        with pytest.raises(ValueError, match="cannot also be a reference"):
            build_group_contrast(
                design.X, design.group_labels, group_map, "EUR", reference=["EUR", "AFR"]
            )

    def test_result_is_frozen(self, design, group_map):
        contrast = build_group_contrast(design.X, design.group_labels, group_map, "AFR")
        assert isinstance(contrast, GroupContrast)
        with pytest.raises(AttributeError):
            contrast.name = "other"


class TestBuildAllGroupContrasts:
    """Tests for build_all_group_contrasts."""

    def test_one_per_group(self, design, group_map):
        contrasts = build_all_group_contrasts(design.X, design.group_labels, group_map)
        assert [c.name for c in contrasts] == ["EUR_vs_rest", "AFR_vs_rest", "EAS_vs_rest"]

    def test_group_vs_rest_contrasts_sum_to_zero(self, design, group_map):
        """With unweighted baselines the k group-vs-rest vectors cancel."""
        contrasts = build_all_group_contrasts(design.X, design.group_labels, group_map)
        total = sum(c.to_array() for c in contrasts)
        np.testing.assert_allclose(total, 0.0, atol=1e-12)

    def test_focal_subset(self, design, group_map):
        contrasts = build_all_group_contrasts(
            design.X, design.group_labels, group_map, focal_groups=["AFR"]
        )
        assert len(contrasts) == 1
        assert contrasts[0].focal == "AFR"

    def test_shared_reference_excludes_focal(self, design, group_map):
        contrasts = build_all_group_contrasts(
            design.X, design.group_labels, group_map,
            focal_groups=["EUR", "AFR"], reference=["AFR", "EAS"],
        )
        assert contrasts[0].name == "EUR_vs_rest"
        assert contrasts[1].name == "AFR_vs_EAS"

    def test_reference_without_focal_tests_remaining_groups(self, design, group_map):
        contrasts = build_all_group_contrasts(
            design.X, design.group_labels, group_map, reference=["AFR"]
        )
        assert [c.name for c in contrasts] == ["EUR_vs_AFR", "EAS_vs_AFR"]
        assert all(c.reference == ("AFR",) for c in contrasts)
