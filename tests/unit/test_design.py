"""Unit tests for trialpower.core.design - ConditionSpec and generate_design."""

import numpy as np
import pandas as pd
import pytest


class TestGenerateDesign:
    """Tests for generate_design."""

    def test_row_count(self, spec):
        from trialpower.core.design import generate_design

        design = generate_design(3, 4, 5, spec)
        assert len(design) == 3 * 4 * 5 * 3

    def test_columns(self, small_design):
        assert list(small_design.columns) == ["exp_id", "sub_id", "trial_id", "condition"]

    def test_one_row_per_combination(self, small_design):
        keys = small_design[["exp_id", "sub_id", "trial_id", "condition"]].astype(str)
        assert not keys.duplicated().any()

    def test_ids_are_one_based_and_complete(self, small_design):
        assert sorted(small_design["exp_id"].unique()) == [1, 2, 3]
        assert sorted(small_design["sub_id"].unique()) == [1, 2, 3, 4]
        assert sorted(small_design["trial_id"].unique()) == [1, 2, 3, 4, 5]

    def test_condition_is_categorical_in_declared_order(self):
        from trialpower.core.design import generate_design

        design = generate_design(1, 1, 1, ["C", "A", "B"])
        assert isinstance(design["condition"].dtype, pd.CategoricalDtype)
        assert list(design["condition"].cat.categories) == ["C", "A", "B"]
        assert list(design["condition"]) == ["C", "A", "B"]

    def test_experiments_are_contiguous(self, small_design):
        exp_ids = small_design["exp_id"].to_numpy()
        assert np.all(np.diff(exp_ids) >= 0)

    def test_rows_per_experiment(self, small_design):
        assert (small_design.groupby("exp_id").size() == 4 * 5 * 3).all()

    def test_single_condition(self):
        from trialpower.core.design import generate_design

        design = generate_design(2, 2, 2, ["only"])
        assert len(design) == 8
        assert set(design["condition"]) == {"only"}

    @pytest.mark.parametrize("bad", [0, -1, 2.5, True, "3"])
    def test_invalid_counts_rejected(self, bad):
        from trialpower.core.design import generate_design
        from trialpower.utils.validators import ConfigurationError

        with pytest.raises(ConfigurationError):
            generate_design(bad, 2, 2, ["A", "B"])

    def test_numpy_integer_counts_accepted(self):
        from trialpower.core.design import generate_design

        design = generate_design(np.int64(2), np.int32(2), 2, ["A", "B"])
        assert len(design) == 16

    def test_empty_conditions_rejected(self):
        from trialpower.core.design import generate_design
        from trialpower.utils.validators import ConfigurationError

        with pytest.raises(ConfigurationError, match="At least one condition"):
            generate_design(1, 1, 1, [])

    def test_duplicate_conditions_rejected(self):
        from trialpower.core.design import generate_design
        from trialpower.utils.validators import ConfigurationError

        with pytest.raises(ConfigurationError, match="Duplicate"):
            generate_design(1, 1, 1, ["A", "A"])


class TestConditionSpec:
    """Tests for ConditionSpec."""

    def test_from_means_preserves_order(self, spec):
        assert spec.labels == ("A", "B", "C")
        assert spec.accuracy == (0.90, 0.85, 0.80)
        assert spec.latency == (5.2, 5.0, 6.3)

    def test_reference_defaults_to_first(self, spec):
        assert spec.reference == "A"

    def test_explicit_reference(self):
        from trialpower.core.design import ConditionSpec

        spec = ConditionSpec.from_means({"A": (0.9, 5.2), "B": (0.8, 5.0)}, reference="B")
        assert spec.reference == "B"

    def test_unknown_reference_rejected(self):
        from trialpower.core.design import ConditionSpec
        from trialpower.utils.validators import ConfigurationError

        with pytest.raises(ConfigurationError, match="Reference"):
            ConditionSpec.from_means({"A": (0.9, 5.2)}, reference="Z")

    def test_mismatched_lengths_rejected(self):
        from trialpower.core.design import ConditionSpec
        from trialpower.utils.validators import ConfigurationError

        with pytest.raises(ConfigurationError, match="one value per condition"):
            ConditionSpec(labels=("A", "B"), accuracy=(0.9,), latency=(5.2, 5.0))

    def test_pair_required(self):
        from trialpower.core.design import ConditionSpec
        from trialpower.utils.validators import ConfigurationError

        with pytest.raises(ConfigurationError, match="two means"):
            ConditionSpec.from_means({"A": (0.9, 5.2, 1.0)})

    def test_unknown_scale_rejected(self):
        from trialpower.core.design import ConditionSpec
        from trialpower.utils.validators import ConfigurationError

        with pytest.raises(ConfigurationError, match="latency_scale"):
            ConditionSpec.from_means({"A": (0.9, 5.2)}, latency_scale="seconds")

    def test_with_shift_latency(self, spec):
        shifted = spec.with_shift("B", "rt", 0.1)
        assert shifted.latency == pytest.approx((5.2, 5.3, 6.3))
        assert shifted.accuracy == spec.accuracy
        assert shifted.latency_scale == "log"

    def test_with_shift_zero_equalises(self, spec):
        shifted = spec.with_shift("B", "rt", 0.0)
        assert shifted.latency[1] == shifted.latency[0]

    def test_with_shift_accuracy_moves_to_logit(self, spec):
        from scipy.special import logit

        shifted = spec.with_shift("B", "acc", 0.5)
        assert shifted.accuracy_scale == "logit"
        assert shifted.accuracy[1] == pytest.approx(logit(0.9) + 0.5)
        assert shifted.accuracy[0] == pytest.approx(logit(0.9))

    def test_with_shift_does_not_mutate(self, spec):
        spec.with_shift("B", "rt", 1.0)
        assert spec.latency == (5.2, 5.0, 6.3)

    def test_with_shift_unknown_label(self, spec):
        from trialpower.utils.validators import ConfigurationError

        with pytest.raises(ConfigurationError, match="not found"):
            spec.with_shift("Z", "rt", 0.1)
