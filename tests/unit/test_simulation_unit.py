"""Unit tests for trialpower.core.simulation - SimulationRunner and batch generation."""

import numpy as np
import pytest

from tests.config import SEED


@pytest.fixture
def metadata(spec):
    from trialpower.core.simulation import SimulationMetadata

    return SimulationMetadata(spec, n_experiments=8, n_trials=4, contrast="B")


class TestSimulationMetadata:
    """Tests for SimulationMetadata helpers."""

    def test_cell_spec_none_keeps_means(self, metadata, spec):
        assert metadata.cell_spec(None) is spec

    def test_cell_spec_shift(self, metadata):
        assert metadata.cell_spec(0.1).latency == pytest.approx((5.2, 5.3, 6.3))

    def test_expected_sign_follows_true_difference(self, metadata, spec):
        assert metadata.cell_expected_sign(spec) == -1.0
        assert metadata.cell_expected_sign(metadata.cell_spec(0.2)) == 1.0

    def test_expected_sign_zero_is_positive(self, metadata):
        assert metadata.cell_expected_sign(metadata.cell_spec(0.0)) == 1.0

    def test_expected_sign_override(self, spec):
        from trialpower.core.simulation import SimulationMetadata

        metadata = SimulationMetadata(spec, 8, 4, "B", expected_sign=2.0)
        assert metadata.cell_expected_sign(spec) == 1.0

    def test_prepare_metadata_reads_facade(self, small_sim):
        from trialpower.core.simulation import prepare_metadata

        md = prepare_metadata(small_sim)
        assert md.n_experiments == small_sim.n_experiments
        assert md.contrast == "B"
        assert md.spec is small_sim.conditions

    def test_dimension_follows_analysed_response(self, metadata):
        from trialpower.stats.models import AnalysisModel

        assert metadata.target is None
        assert metadata.cell_dimension(AnalysisModel.from_formula("acc ~ condition")) == "acc"
        assert metadata.cell_dimension(AnalysisModel.from_formula("log(rt) ~ condition + (1|sub_id)")) == "rt"

    def test_explicit_target_must_match_response(self, spec):
        from trialpower.core.simulation import SimulationMetadata
        from trialpower.stats.models import AnalysisModel
        from trialpower.utils.validators import ConfigurationError

        metadata = SimulationMetadata(spec, 8, 4, "B", target="rt")
        assert metadata.cell_dimension(AnalysisModel.from_formula("rt ~ condition")) == "rt"
        with pytest.raises(ConfigurationError, match="does not match the response"):
            metadata.cell_dimension(AnalysisModel.from_formula("acc ~ condition"))

    def test_accuracy_shift_and_sign(self, metadata, spec):
        # B is less accurate but faster than A
        assert metadata.cell_expected_sign(spec, "acc") == -1.0
        assert metadata.cell_expected_sign(spec, "rt") == -1.0

        shifted = metadata.cell_spec(0.5, "acc")
        assert shifted.latency == spec.latency
        assert metadata.cell_expected_sign(shifted, "acc") == 1.0

    def test_cell_label(self):
        from trialpower.core.simulation import GridCell
        from trialpower.stats.models import AnalysisModel

        model = AnalysisModel.from_formula("log(rt) ~ condition + (1|sub_id)")
        assert GridCell(24, 0.05, model).label == "N=24, effect=0.05, log(rt) ~ condition + (1|sub_id)"
        assert GridCell(12, None, model).label == "N=12, effect=configured, log(rt) ~ condition + (1|sub_id)"

class TestSimulateBatch:
    """Tests for simulate_batch."""

    def test_shape(self, metadata):
        from trialpower.core.simulation import simulate_batch

        batch = simulate_batch(metadata, 5, seed=SEED)
        assert len(batch) == 8 * 5 * 4 * 3
        for col in ["acc_mean_logit", "rt_mean_log", "sub_acc_offset", "sub_rt_offset", "acc", "rt"]:
            assert col in batch.columns

    def test_idempotent(self, metadata):
        from trialpower.core.simulation import simulate_batch

        assert simulate_batch(metadata, 5, seed=SEED).equals(simulate_batch(metadata, 5, seed=SEED))

    def test_seed_sequence_root_matches_int(self, metadata):
        from trialpower.core.simulation import simulate_batch

        a = simulate_batch(metadata, 5, seed=np.random.SeedSequence(SEED))
        b = simulate_batch(metadata, 5, seed=SEED)
        assert a.equals(b)

    def test_common_random_numbers_across_effect_sizes(self, metadata):
        from trialpower.core.simulation import simulate_batch

        a = simulate_batch(metadata, 5, effect_size=0.0, seed=SEED)
        b = simulate_batch(metadata, 5, effect_size=0.3, seed=SEED)
        assert np.array_equal(a["sub_rt_offset"], b["sub_rt_offset"])
        assert np.array_equal(a["acc"], b["acc"])
        unshifted = a["condition"] != "B"
        assert np.array_equal(a.loc[unshifted, "rt"], b.loc[unshifted, "rt"])
        assert (b.loc[~unshifted, "rt"].to_numpy() >= a.loc[~unshifted, "rt"].to_numpy()).all()

    def test_different_sample_sizes_independent(self, metadata):
        from trialpower.core.simulation import simulate_batch

        a = simulate_batch(metadata, 5, seed=SEED)
        b = simulate_batch(metadata, 6, seed=SEED)
        assert not np.allclose(a["sub_rt_offset"].iloc[:5], b["sub_rt_offset"].iloc[:5])

    def test_rowwise_mode_matches_batch(self, spec):
        from trialpower.core.simulation import SimulationMetadata, simulate_batch

        fast = SimulationMetadata(spec, 3, 4, "B", sampling_mode="batch")
        slow = SimulationMetadata(spec, 3, 4, "B", sampling_mode="rowwise")
        assert simulate_batch(fast, 4, seed=SEED).equals(simulate_batch(slow, 4, seed=SEED))


class TestSimulationRunner:
    """Tests for SimulationRunner."""

    def test_run_cell(self, metadata):
        from trialpower.core.simulation import GridCell, SimulationRunner
        from trialpower.stats.models import LM_LOG

        estimate, analyses = SimulationRunner(seed=SEED).run_cell(metadata, GridCell(6, None, LM_LOG))
        assert len(analyses) == 8
        assert estimate.n_experiments == 8
        assert estimate.sample_size == 6
        assert estimate.approach == "log(rt) ~ condition"
        assert 0.0 <= estimate.power <= 1.0

    def test_run_cell_reproducible(self, metadata):
        from trialpower.core.results import results_table
        from trialpower.core.simulation import GridCell, SimulationRunner
        from trialpower.stats.models import LM

        cell = GridCell(6, 0.1, LM)
        a, _ = SimulationRunner(seed=SEED).run_cell(metadata, cell)
        b, _ = SimulationRunner(seed=SEED).run_cell(metadata, cell)
        assert results_table([a]).equals(results_table([b]))

    def test_grid_order_does_not_matter(self, metadata):
        from trialpower.core.results import results_table
        from trialpower.core.simulation import GridCell, SimulationRunner
        from trialpower.stats.models import LM

        cells = [GridCell(4, 0.0, LM), GridCell(8, 0.1, LM)]
        forward = SimulationRunner(seed=SEED).run_grid(metadata, cells)
        backward = SimulationRunner(seed=SEED).run_grid(metadata, cells[::-1])
        assert results_table(forward).equals(results_table(backward[::-1]))

    def test_degenerate_cell_fails_before_simulation(self, metadata, monkeypatch):
        import trialpower.core.simulation as simulation
        from trialpower.stats.models import AnalysisModel
        from trialpower.utils.validators import SamplingDegeneracy

        calls = []
        monkeypatch.setattr(simulation, "simulate_batch", lambda *a, **k: calls.append(a))
        acc_model = AnalysisModel.from_formula("acc ~ condition")
        # a non-finite logit shift is degenerate
        cells = [simulation.GridCell(4, 0.1, acc_model), simulation.GridCell(4, float("inf"), acc_model)]
        with pytest.raises(SamplingDegeneracy, match="effect=inf"):
            simulation.SimulationRunner(seed=SEED).run_grid(metadata, cells)
        assert calls == []

    def test_cancel_between_cells(self, metadata):
        from trialpower.core.simulation import GridCell, SimulationRunner
        from trialpower.progress import SimulationCancelled
        from trialpower.stats.models import LM

        with pytest.raises(SimulationCancelled):
            SimulationRunner(seed=SEED).run_grid(metadata, [GridCell(4, None, LM)], cancel_check=lambda: True)
