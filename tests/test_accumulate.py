"""Tests for the accumulation sweeps and the CoxAccumulation snapshot."""

from __future__ import annotations

import logging

import numpy as np
import pytest

from coxph_kernel import (
    CoxAccumulation,
    InvalidInputError,
    RiskSetLayout,
    accumulate,
    inverse_risk_1st,
    inverse_risk_2nd,
    risk_set_sums,
    weighted_risk_set_sums,
)

# ------------------------------------------------------------------ #
# Hand-computed scenarios
# ------------------------------------------------------------------ #


class TestNoTiesScenario:
    """n=4, ascending times, censoring [1, 0, 1, 1], eta = 0."""

    def setup_method(self) -> None:
        self.layout = RiskSetLayout([1, 0, 1, 1], [0, 1, 2, 3], [0, 1, 2, 3], [0, 1, 2, 3])
        self.eta = np.zeros(4)

    def test_exp_accum(self, backend: str) -> None:
        acc = accumulate(self.layout, self.eta, backend=backend)
        np.testing.assert_allclose(acc.exp_accum, [4.0, 3.0, 2.0, 1.0])

    def test_outer_1st(self, backend: str) -> None:
        acc = accumulate(self.layout, self.eta, backend=backend)
        expected = [0.25, 0.25, 0.25 + 0.5, 0.25 + 0.5 + 1.0]
        np.testing.assert_allclose(acc.outer_1st, expected)

    def test_outer_2nd_with_unit_right_vector(self, backend: str) -> None:
        acc = accumulate(self.layout, self.eta, np.ones(4), backend=backend)
        # With Z = 1 the weighted sums equal the plain ones, so each
        # second-order term W / W**2 equals the first-order term.
        np.testing.assert_allclose(acc.expZ_accum, acc.exp_accum)
        np.testing.assert_allclose(acc.outer_2nd, acc.outer_1st)

    def test_component_functions_match(self, backend: str) -> None:
        layout = self.layout
        w = risk_set_sums(self.eta, layout.ordering, backend=backend)
        c1 = inverse_risk_1st(w, layout.censoring, layout.ordering, layout.rankmin, backend=backend)
        z = np.array([1.0, 2.0, 3.0, 4.0])
        wz = weighted_risk_set_sums(self.eta, z, layout.ordering, backend=backend)
        c2 = inverse_risk_2nd(w, wz, layout.censoring, layout.ordering, layout.rankmin, backend=backend)
        np.testing.assert_allclose(w, [4.0, 3.0, 2.0, 1.0])
        np.testing.assert_allclose(c1, [0.25, 0.25, 0.75, 1.75])
        np.testing.assert_allclose(wz, [10.0, 9.0, 7.0, 4.0])
        np.testing.assert_allclose(c2, [10 / 16, 10 / 16, 10 / 16 + 7 / 4, 10 / 16 + 7 / 4 + 4.0])


class TestAllTiedScenario:
    """n=3, one shared time, censoring [1, 1, 0]."""

    def test_ranks_and_shared_values(self, layout_from_times, backend: str) -> None:
        layout = layout_from_times([5.0, 5.0, 5.0], [1, 1, 0])
        np.testing.assert_array_equal(layout.rankmin, [0, 0, 0])
        np.testing.assert_array_equal(layout.rankmax, [2, 2, 2])

        eta = np.array([0.1, -0.3, 0.7])
        z = np.array([1.0, 2.0, -1.0])
        acc = accumulate(layout, eta, z, backend=backend)

        total = np.exp(eta).sum()
        # Every event reads the full risk set at rankmin = 0.
        read_1st = acc.outer_1st[layout.rankmax]
        read_2nd = acc.outer_2nd[layout.rankmax]
        assert np.unique(read_1st).size == 1
        assert np.unique(read_2nd).size == 1
        np.testing.assert_allclose(read_1st[0], 2.0 / total)
        np.testing.assert_allclose(read_2nd[0], 2.0 * np.sum(z * np.exp(eta)) / total**2)

    def test_natural_order_is_irrelevant(self, layout_from_times) -> None:
        layout = layout_from_times([2.0, 2.0, 2.0], [0, 1, 1])
        acc = accumulate(layout, [0.0, 0.0, 0.0], backend="numpy")
        np.testing.assert_allclose(acc.outer_1st[layout.rankmax], [2 / 3] * 3)


class TestTiesInTheMiddle:
    def test_tied_events_share_one_risk_set(self, layout_from_times) -> None:
        # times 1, 2, 2, 3 -> tie group at sorted positions 1..2
        layout = layout_from_times([1.0, 2.0, 2.0, 3.0], [1, 1, 1, 1])
        acc = accumulate(layout, np.zeros(4), backend="numpy")
        np.testing.assert_allclose(acc.exp_accum, [4.0, 3.0, 2.0, 1.0])
        # Both tied events divide by W[1] = 3, not by W[2] = 2.
        np.testing.assert_allclose(acc.outer_1st, [0.25, 0.25 + 1 / 3, 0.25 + 2 / 3, 0.25 + 2 / 3 + 1.0])


# ------------------------------------------------------------------ #
# Properties on random data
# ------------------------------------------------------------------ #


class TestMonotonicity:
    @pytest.mark.parametrize("n_distinct", [None, 5, 1])
    def test_exp_accum_non_increasing(self, random_survival, backend, n_distinct) -> None:
        layout, eta, _ = random_survival(n=60, seed=3, n_distinct_times=n_distinct)
        acc = accumulate(layout, eta, backend=backend)
        # Relative slack covers the tree-shaped cumsum of the JAX backend.
        assert np.all(np.diff(acc.exp_accum) <= 1e-12 * acc.exp_accum[:-1])

    @pytest.mark.parametrize("n_distinct", [None, 5])
    def test_outer_sums_non_decreasing(self, random_survival, backend, n_distinct) -> None:
        layout, eta, _ = random_survival(n=60, seed=4, n_distinct_times=n_distinct)
        z = np.abs(np.random.default_rng(1).standard_normal(60))
        acc = accumulate(layout, eta, z, backend=backend)
        assert np.all(np.diff(acc.outer_1st) >= -1e-12 * acc.outer_1st[1:])
        assert np.all(np.diff(acc.outer_2nd) >= -1e-12 * acc.outer_2nd[1:])

    def test_exp_accum_head_is_total(self, random_survival) -> None:
        layout, eta, _ = random_survival(n=30, seed=5)
        acc = accumulate(layout, eta, backend="numpy")
        np.testing.assert_allclose(acc.exp_accum[0], np.exp(eta).sum())

    def test_outer_1st_ignores_censored_subjects(self, random_survival) -> None:
        layout, eta, _ = random_survival(n=30, seed=6)
        acc = accumulate(layout, eta, backend="numpy")
        increments = np.diff(np.concatenate([[0.0], acc.outer_1st]))
        censored_positions = layout.censoring[layout.ordering] == 0
        np.testing.assert_array_equal(increments[censored_positions], 0.0)


class TestMatrixRightVector:
    def test_columns_match_vector_calls(self, random_survival, backend) -> None:
        layout, eta, _ = random_survival(n=25, seed=7, n_distinct_times=6)
        Z = np.random.default_rng(2).standard_normal((25, 3))
        acc = accumulate(layout, eta, Z, backend=backend)
        assert acc.expZ_accum.shape == (25, 3)
        assert acc.outer_2nd.shape == (25, 3)
        for k in range(3):
            col = accumulate(layout, eta, Z[:, k], backend=backend)
            np.testing.assert_allclose(acc.expZ_accum[:, k], col.expZ_accum, rtol=1e-12, atol=1e-12)
            np.testing.assert_allclose(acc.outer_2nd[:, k], col.outer_2nd, rtol=1e-12, atol=1e-12)


# ------------------------------------------------------------------ #
# Snapshot behaviour and input checks
# ------------------------------------------------------------------ #


class TestSnapshot:
    def test_arrays_are_read_only_copies(self, random_survival) -> None:
        layout, eta, _ = random_survival(n=10, seed=8)
        acc = accumulate(layout, eta, backend="numpy")
        eta[:] = 100.0
        assert not np.any(acc.linear_predictor == 100.0)
        for name in ("linear_predictor", "exp_accum", "outer_1st"):
            assert not acc[name].flags.writeable

    def test_first_order_only(self, random_survival) -> None:
        layout, eta, _ = random_survival(n=10, seed=9)
        acc = accumulate(layout, eta, backend="numpy")
        assert isinstance(acc, CoxAccumulation)
        assert not acc.has_second_order
        assert acc.expZ_accum is None and acc.outer_2nd is None
        assert acc.backend == "numpy"
        assert acc.n == 10

    def test_to_dict_is_plain_python(self, random_survival) -> None:
        layout, eta, _ = random_survival(n=5, seed=10)
        d = accumulate(layout, eta, np.ones(5), backend="numpy").to_dict()
        assert isinstance(d["exp_accum"], list)
        assert isinstance(d["layout"]["ordering"], list)
        assert d["backend"] == "numpy"


class TestInputChecks:
    def setup_method(self) -> None:
        self.layout = RiskSetLayout([1, 0, 1], [0, 1, 2], [0, 1, 2], [0, 1, 2])

    def test_layout_type(self) -> None:
        with pytest.raises(TypeError, match="RiskSetLayout"):
            accumulate({"ordering": [0, 1, 2]}, np.zeros(3))

    def test_predictor_length(self) -> None:
        with pytest.raises(InvalidInputError, match="has length 4"):
            accumulate(self.layout, np.zeros(4))

    def test_predictor_must_be_vector(self) -> None:
        with pytest.raises(InvalidInputError, match=r"shape \(n,\)"):
            accumulate(self.layout, np.zeros((3, 2)))

    def test_predictor_column_is_flattened(self) -> None:
        acc = accumulate(self.layout, np.zeros((3, 1)), backend="numpy")
        assert acc.linear_predictor.shape == (3,)

    def test_non_finite_predictor(self) -> None:
        with pytest.raises(InvalidInputError, match="NaN or infinite"):
            accumulate(self.layout, [0.0, np.nan, 0.0])

    def test_right_vector_length(self) -> None:
        with pytest.raises(InvalidInputError, match="'right_vector' has length 2"):
            accumulate(self.layout, np.zeros(3), np.ones(2))

    def test_right_vector_rank(self) -> None:
        with pytest.raises(InvalidInputError, match=r"\(n,\) or \(n, k\)"):
            accumulate(self.layout, np.zeros(3), np.ones((3, 2, 2)))

    def test_overflow_warns(self) -> None:
        with pytest.warns(RuntimeWarning, match="overflowed"):
            accumulate(self.layout, [800.0, 0.0, 0.0], backend="numpy")


class TestObservability:
    def test_hook_receives_accumulation(self, random_survival) -> None:
        layout, eta, _ = random_survival(n=8, seed=11)
        seen: list[CoxAccumulation] = []
        acc = accumulate(layout, eta, backend="numpy", hook=seen.append)
        assert seen == [acc]

    def test_debug_log(self, random_survival, caplog) -> None:
        layout, eta, _ = random_survival(n=8, seed=12)
        with caplog.at_level(logging.DEBUG, logger="coxph_kernel.accumulate"):
            accumulate(layout, eta, backend="numpy")
        assert "Accumulated n=8" in caplog.text
