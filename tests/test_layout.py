"""Tests for RiskSetLayout conversion and contract checks."""

import numpy as np
import pandas as pd
import pytest

from coxph_kernel import (
    InvalidInputError,
    InvalidPermutationError,
    RiskSetLayout,
)

# Four subjects, times already ascending, no ties.
_CENSORING = [1, 0, 1, 1]
_ORDERING = [0, 1, 2, 3]
_RANKS = [0, 1, 2, 3]


def _layout(**overrides):
    kwargs = {
        "censoring": _CENSORING,
        "ordering": _ORDERING,
        "rankmin": _RANKS,
        "rankmax": _RANKS,
    }
    kwargs.update(overrides)
    return RiskSetLayout(**kwargs)


class TestConversion:
    def test_fields_become_read_only_int64(self) -> None:
        layout = _layout()
        for name in ("censoring", "ordering", "rankmin", "rankmax"):
            arr = getattr(layout, name)
            assert arr.dtype == np.int64
            assert not arr.flags.writeable

    def test_caller_array_is_not_frozen(self) -> None:
        ordering = np.arange(4, dtype=np.int64)
        _layout(ordering=ordering)
        ordering[0] = 0  # still writeable
        assert ordering.flags.writeable

    def test_boolean_censoring(self) -> None:
        layout = _layout(censoring=[True, False, True, True])
        np.testing.assert_array_equal(layout.censoring, [1, 0, 1, 1])

    def test_integral_floats_accepted(self) -> None:
        layout = _layout(rankmin=[0.0, 1.0, 2.0, 3.0])
        np.testing.assert_array_equal(layout.rankmin, _RANKS)

    def test_pandas_inputs(self) -> None:
        layout = _layout(
            censoring=pd.Series(_CENSORING),
            ordering=pd.DataFrame({"o": _ORDERING}),
        )
        assert layout.n == 4
        np.testing.assert_array_equal(layout.ordering, _ORDERING)

    def test_derived_properties(self) -> None:
        layout = _layout(ordering=[2, 0, 1, 3], rankmin=[1, 2, 0, 3], rankmax=[1, 2, 0, 3])
        assert layout.n == 4
        assert layout.n_events == 3
        np.testing.assert_array_equal(layout.sorted_position, [1, 2, 0, 3])

    def test_to_dict_and_item_access(self) -> None:
        layout = _layout()
        d = layout.to_dict()
        assert d == {
            "censoring": _CENSORING,
            "ordering": _ORDERING,
            "rankmin": _RANKS,
            "rankmax": _RANKS,
        }
        assert "validate" not in d
        assert "ordering" in layout
        np.testing.assert_array_equal(layout["rankmax"], _RANKS)
        with pytest.raises(KeyError):
            layout["times"]


class TestValidation:
    def test_empty_layout(self) -> None:
        with pytest.raises(InvalidInputError, match="at least one subject"):
            RiskSetLayout([], [], [], [])

    def test_length_mismatch(self) -> None:
        with pytest.raises(InvalidInputError, match="'rankmax' has length 3"):
            _layout(rankmax=[0, 1, 2])

    def test_two_dimensional_input(self) -> None:
        with pytest.raises(InvalidInputError, match="one-dimensional"):
            _layout(ordering=np.zeros((2, 2), dtype=int))

    def test_non_integral_ranks(self) -> None:
        with pytest.raises(InvalidInputError, match="integers only"):
            _layout(rankmin=[0.0, 1.5, 2.0, 3.0])

    def test_string_dtype_rejected(self) -> None:
        with pytest.raises(InvalidInputError, match="integer array"):
            _layout(censoring=np.array(["a", "b", "c", "d"]))

    def test_none_rejected(self) -> None:
        with pytest.raises(TypeError, match="array-like"):
            _layout(ordering=None)

    def test_censoring_values(self) -> None:
        with pytest.raises(InvalidInputError, match="only 0 and 1"):
            _layout(censoring=[1, 2, 0, 1])

    def test_ordering_out_of_range(self) -> None:
        with pytest.raises(InvalidPermutationError, match=r"\[0, 4\)"):
            _layout(ordering=[0, 1, 2, 4])

    def test_ordering_repeats(self) -> None:
        with pytest.raises(InvalidPermutationError, match="repeated indices: \\[1\\]"):
            _layout(ordering=[0, 1, 1, 3])

    def test_permutation_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            _layout(ordering=[3, 3, 3, 3])

    def test_rank_out_of_range(self) -> None:
        with pytest.raises(InvalidInputError, match="'rankmax' entries"):
            _layout(rankmax=[0, 1, 2, 7])

    def test_rankmin_exceeds_rankmax(self) -> None:
        with pytest.raises(InvalidInputError, match="must not exceed"):
            _layout(rankmin=[0, 2, 2, 3], rankmax=[0, 1, 2, 3])

    def test_ranks_inconsistent_with_ordering(self) -> None:
        # Subject 0 sits at sorted position 0 but claims rank 1.
        with pytest.raises(InvalidInputError, match="subject 0"):
            _layout(rankmin=[1, 1, 2, 3], rankmax=[1, 1, 2, 3])

    def test_rankmin_collapsed_onto_first_group(self) -> None:
        # Distinct times, but every subject claims the first risk set.
        with pytest.raises(InvalidInputError, match="disagree on the tie group"):
            _layout(rankmin=[0, 0, 0, 0], rankmax=[0, 1, 2, 3])

    def test_rankmax_collapsed_onto_last_group(self) -> None:
        with pytest.raises(InvalidInputError, match="disagree on the tie group"):
            _layout(rankmin=[0, 1, 2, 3], rankmax=[3, 3, 3, 3])

    def test_rankmin_skipping_a_group_start(self) -> None:
        # Position 2 neither starts a group nor continues the one before.
        with pytest.raises(InvalidInputError, match="contiguous tie groups"):
            _layout(rankmin=[0, 0, 1, 3], rankmax=[2, 2, 2, 3])

    def test_permuted_tie_groups_accepted(self) -> None:
        layout = _layout(ordering=[3, 1, 0, 2], rankmin=[2, 0, 2, 0], rankmax=[3, 1, 3, 1])
        assert layout.n == 4

    def test_tie_group_ranks_accepted(self) -> None:
        layout = _layout(rankmin=[0, 0, 2, 2], rankmax=[1, 1, 3, 3])
        assert layout.n == 4

    def test_validation_can_be_skipped(self) -> None:
        layout = _layout(ordering=[0, 0, 0, 0], validate=False)
        np.testing.assert_array_equal(layout.ordering, [0, 0, 0, 0])

    def test_layout_from_times_helper(self, layout_from_times) -> None:
        layout = layout_from_times([3.0, 1.0, 3.0, 2.0], [1, 1, 0, 1])
        np.testing.assert_array_equal(layout.ordering, [1, 3, 0, 2])
        np.testing.assert_array_equal(layout.rankmin, [2, 0, 2, 1])
        np.testing.assert_array_equal(layout.rankmax, [3, 0, 3, 1])
