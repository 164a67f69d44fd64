"""Tests for the expanded prediction table and influence-curve algebra."""

import numpy as np
import pandas as pd
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from tmle_exposed.estimators.influence import (
    aggregate_over_mediator,
    eic_psi0,
    eic_psi1,
    influence_se,
    mediator_density,
    mediator_density_ratio,
    observed_rows,
    psi0_plugin,
    psi1_empirical,
)
from tmle_exposed.utils.validation import (
    EXPOSURE,
    MEDIATOR,
    OBSERVATION_KEY,
    OBSERVED_MEDIATOR,
    OUTCOME,
)


class TestExpandedTable:
    """Test the table with the mediator forced to 1 and to 0."""

    def test_shape_and_replicas(self, analysis_frame, expanded_frame):
        n = len(analysis_frame)

        assert len(expanded_frame) == 2 * n
        assert (expanded_frame[MEDIATOR].iloc[:n] == 1).all()
        assert (expanded_frame[MEDIATOR].iloc[n:] == 0).all()
        np.testing.assert_array_equal(
            expanded_frame[OBSERVED_MEDIATOR].iloc[:n], analysis_frame[MEDIATOR]
        )
        np.testing.assert_array_equal(
            expanded_frame[OBSERVED_MEDIATOR].iloc[n:], analysis_frame[MEDIATOR]
        )

    def test_one_observed_row_per_observation(self, analysis_frame, expanded_frame):
        observed = observed_rows(expanded_frame)

        assert len(observed) == len(analysis_frame)
        assert observed[OBSERVATION_KEY].is_unique

    def test_input_frame_not_modified(self, analysis_frame, true_models):
        from tmle_exposed.estimators.idie_exposed import build_counterfactual_predictions

        original = analysis_frame.copy()
        build_counterfactual_predictions(
            analysis_frame, true_models, ["sex", "age"], ["sex", "age", "disease"],
            ["sex", "age", "disease"],
        )
        pd.testing.assert_frame_equal(analysis_frame, original)

    def test_counterfactual_mediator_predictions(self, expanded_frame, generator):
        np.testing.assert_allclose(
            expanded_frame["gammahat_a0"], generator.mediator_probability(expanded_frame, 0)
        )
        np.testing.assert_allclose(
            expanded_frame["gammahat_a1"], generator.mediator_probability(expanded_frame, 1)
        )

    def test_counterfactual_outcome_predictions(self, expanded_frame, generator):
        np.testing.assert_allclose(
            expanded_frame["Qhat_a1"],
            generator.outcome_probability(expanded_frame, 1, expanded_frame[MEDIATOR]),
        )
        np.testing.assert_allclose(
            expanded_frame["Qhat_a1_z0"], generator.outcome_probability(expanded_frame, 1, 0)
        )
        np.testing.assert_allclose(
            expanded_frame["Qhat_a1_z1"], generator.outcome_probability(expanded_frame, 1, 1)
        )

    def test_observed_predictions_for_exposed(self, expanded_frame):
        exposed = expanded_frame.loc[expanded_frame[EXPOSURE] == 1]
        np.testing.assert_array_equal(exposed["Qhat"], exposed["Qhat_a1"])
        np.testing.assert_array_equal(exposed["gammahat"], exposed["gammahat_a1"])

    def test_psi0_column_is_mixture(self, expanded_frame):
        expected = expanded_frame["gammahat_a0"] * expanded_frame["Qhat_a1_z1"] + (
            1 - expanded_frame["gammahat_a0"]
        ) * expanded_frame["Qhat_a1_z0"]
        np.testing.assert_allclose(expanded_frame["psi_0"], expected)

    def test_psi_columns_constant_within_observation(self, expanded_frame):
        spread = expanded_frame.groupby(OBSERVATION_KEY)[["psi_0", "psi_1"]].nunique()
        assert (spread == 1).all().all()

    def test_plugin_matches_true_risk(self, idie_frame, expanded_frame, generator):
        observed = observed_rows(expanded_frame)
        pibar = float(np.mean(observed[EXPOSURE] == 1))

        assert psi0_plugin(observed, pibar) == pytest.approx(generator.true_psi0(idie_frame))


def _hand_built_table():
    """Two observations, each with a mediator-1 and a mediator-0 row."""
    return pd.DataFrame(
        {
            OBSERVATION_KEY: [0, 1, 0, 1],
            EXPOSURE: [1, 0, 1, 0],
            MEDIATOR: [1, 1, 0, 0],
            OBSERVED_MEDIATOR: [1, 0, 1, 0],
            OUTCOME: [1, 0, 1, 0],
            "pihat": [0.6, 0.3, 0.6, 0.3],
            "gammahat_a0": [0.2, 0.4, 0.2, 0.4],
            "gammahat_a1": [0.5, 0.7, 0.5, 0.7],
            "Qhat_a1": [0.3, 0.6, 0.1, 0.2],
        }
    )


class TestInfluenceAlgebra:
    """Test plug-in estimates and influence curves on a hand-built table."""

    def test_mediator_density(self):
        np.testing.assert_allclose(
            mediator_density(np.array([1, 0]), np.array([0.3, 0.3])), [0.3, 0.7]
        )

    def test_density_ratio(self):
        table = _hand_built_table()
        np.testing.assert_allclose(
            mediator_density_ratio(table), [0.2 / 0.5, 0.4 / 0.7, 0.8 / 0.5, 0.6 / 0.3]
        )

    def test_aggregate_over_mediator(self):
        table = _hand_built_table()
        psi_0 = aggregate_over_mediator(table, "gammahat_a0")

        expected_first = 0.2 * 0.3 + 0.8 * 0.1
        expected_second = 0.4 * 0.6 + 0.6 * 0.2
        np.testing.assert_allclose(
            psi_0, [expected_first, expected_second, expected_first, expected_second]
        )

    def test_observed_rows(self):
        observed = observed_rows(_hand_built_table())
        assert list(observed.index) == [0, 3]

    def test_psi0_plugin_and_eic(self):
        table = _hand_built_table()
        table["psi_0"] = aggregate_over_mediator(table, "gammahat_a0")
        observed = observed_rows(table)
        pibar = 0.5
        psi0 = psi0_plugin(observed, pibar)

        psi_0_first = 0.2 * 0.3 + 0.8 * 0.1
        psi_0_second = 0.4 * 0.6 + 0.6 * 0.2
        assert psi0 == pytest.approx(psi_0_first)

        eic = eic_psi0(observed, pibar, psi0)
        expected = [
            1 / pibar * (0.2 / 0.5) * (1 - 0.3) + 1 / pibar * (psi_0_first - psi0),
            1 / (1 - 0.3) * 0.3 / pibar * (0.2 - psi_0_second),
        ]
        np.testing.assert_allclose(eic, expected)

    def test_psi1_empirical(self):
        observed = observed_rows(_hand_built_table())
        assert psi1_empirical(observed) == 1.0

    def test_influence_se(self):
        ic = np.array([1.0, -1.0, 1.0, -1.0])
        assert influence_se(ic, 4) == pytest.approx(0.5)


class TestInfluenceProperties:
    """Property-based checks of the exposed-group influence curve."""

    @given(
        exposure=st.lists(st.integers(0, 1), min_size=2, max_size=50),
        outcome_seed=st.integers(0, 2**16),
    )
    @settings(max_examples=50, deadline=None)
    def test_eic1_has_mean_zero(self, exposure, outcome_seed):
        exposure = np.array(exposure)
        if exposure.sum() == 0:
            exposure[0] = 1
        rng = np.random.default_rng(outcome_seed)
        observed = pd.DataFrame(
            {EXPOSURE: exposure, OUTCOME: rng.integers(0, 2, len(exposure))}
        )
        pibar = float(np.mean(exposure))
        psi1 = psi1_empirical(observed)

        assert abs(np.mean(eic_psi1(observed, pibar, psi1))) < 1e-12

    @given(st.lists(st.floats(-10, 10), min_size=1, max_size=50))
    def test_influence_se_non_negative(self, values):
        se = influence_se(np.array(values), len(values))
        assert np.isfinite(se)
        assert se >= 0
