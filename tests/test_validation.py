"""Tests for input validation and the analysis frame."""

import numpy as np
import pandas as pd
import pytest
from pydantic import ValidationError

from tmle_exposed.core.base import DataValidationError, IDIEData
from tmle_exposed.utils.validation import (
    EXPOSURE,
    MEDIATOR,
    OBSERVATION_KEY,
    OUTCOME,
    bound_probabilities,
    summarize_distribution,
    validate_binary_variable,
    validate_idie_data,
)


def _idie_data(frame, **overrides):
    kwargs = {
        "data": frame,
        "exposure": "exposure",
        "mediator": "mediator",
        "outcome": "outcome",
        "confounders_a": ["age", "sex"],
        "confounders_z": ["age", "sex"],
        "confounders_y": ["age"],
    }
    kwargs.update(overrides)
    return IDIEData(**kwargs)


class TestValidateBinaryVariable:
    """Test binary recoding of exposure, mediator and outcome."""

    def test_zero_one_passthrough(self):
        values = np.array([0, 1, 1, 0])
        np.testing.assert_array_equal(validate_binary_variable(values, "A"), values)

    def test_lower_value_maps_to_zero(self):
        result = validate_binary_variable(pd.Series([2, 5, 5, 2]), "A")
        np.testing.assert_array_equal(result, [0, 1, 1, 0])

    def test_string_levels(self):
        result = validate_binary_variable(np.array(["no", "yes", "no"]), "A")
        np.testing.assert_array_equal(result, [0, 1, 0])

    def test_three_levels_rejected(self):
        with pytest.raises(DataValidationError, match="must be binary"):
            validate_binary_variable(np.array([0, 1, 2]), "Z")

    def test_constant_rejected(self):
        with pytest.raises(DataValidationError, match="must be binary"):
            validate_binary_variable(np.ones(10), "Y")

    def test_missing_values_rejected(self):
        with pytest.raises(DataValidationError, match="missing"):
            validate_binary_variable(np.array([0.0, 1.0, np.nan]), "Y")


class TestBoundProbabilities:
    """Test probability clipping."""

    def test_clips_to_bound(self):
        result = bound_probabilities(np.array([0.0, 0.5, 1.0]), bound=1e-3)
        np.testing.assert_allclose(result, [1e-3, 0.5, 1 - 1e-3])

    def test_interior_values_unchanged(self):
        p = np.array([0.2, 0.4, 0.9])
        np.testing.assert_array_equal(bound_probabilities(p), p)

    def test_out_of_range_rejected(self):
        with pytest.raises(DataValidationError):
            bound_probabilities(np.array([0.5, 1.2]))

    def test_nan_rejected(self):
        with pytest.raises(DataValidationError):
            bound_probabilities(np.array([0.5, np.nan]))


class TestIDIEData:
    """Test the input data model."""

    def test_empty_name_rejected(self, toy_binary_frame):
        with pytest.raises(ValidationError, match="Please specify names"):
            _idie_data(toy_binary_frame, mediator="")

    def test_empty_frame_rejected(self):
        with pytest.raises(ValidationError):
            _idie_data(pd.DataFrame())

    def test_all_confounders_preserves_order(self, toy_binary_frame):
        data = _idie_data(
            toy_binary_frame, confounders_a=["sex"], confounders_z=["age", "sex"]
        )
        assert data.all_confounders == ["sex", "age"]
        assert data.role_columns == ["exposure", "mediator", "outcome"]


class TestValidateIDIEData:
    """Test construction of the analysis frame."""

    def test_analysis_frame_columns(self, toy_binary_frame):
        frame = validate_idie_data(_idie_data(toy_binary_frame))

        assert list(frame.columns) == [OBSERVATION_KEY, EXPOSURE, MEDIATOR, OUTCOME, "age", "sex"]
        assert len(frame) == len(toy_binary_frame)
        np.testing.assert_array_equal(frame[OBSERVATION_KEY], np.arange(len(frame)))

    def test_id_column_carried(self, toy_binary_frame):
        toy_binary_frame["pid"] = np.arange(100, 100 + len(toy_binary_frame))
        frame = validate_idie_data(_idie_data(toy_binary_frame, id_column="pid"))
        np.testing.assert_array_equal(frame["id"], toy_binary_frame["pid"])

    def test_duplicate_ids_rejected(self, toy_binary_frame):
        toy_binary_frame["pid"] = 1
        with pytest.raises(DataValidationError, match="unique"):
            validate_idie_data(_idie_data(toy_binary_frame, id_column="pid"))

    def test_missing_column(self, toy_binary_frame):
        with pytest.raises(DataValidationError, match="not found"):
            validate_idie_data(_idie_data(toy_binary_frame, confounders_y=["income"]))

    def test_roles_must_be_distinct(self, toy_binary_frame):
        with pytest.raises(DataValidationError, match="distinct"):
            validate_idie_data(_idie_data(toy_binary_frame, mediator="exposure"))

    def test_confounders_must_exclude_roles(self, toy_binary_frame):
        with pytest.raises(DataValidationError, match="cov_z"):
            validate_idie_data(
                _idie_data(toy_binary_frame, confounders_z=["age", "exposure"])
            )

    def test_reserved_confounder_name(self, toy_binary_frame):
        toy_binary_frame["Qhat"] = 0.5
        with pytest.raises(DataValidationError, match="clash"):
            validate_idie_data(_idie_data(toy_binary_frame, confounders_a=["Qhat"]))

    def test_non_binary_mediator(self, toy_binary_frame):
        toy_binary_frame.loc[0, "mediator"] = 2
        with pytest.raises(DataValidationError, match="must be binary"):
            validate_idie_data(_idie_data(toy_binary_frame))

    def test_missing_confounder_values(self, toy_binary_frame):
        toy_binary_frame.loc[3, "age"] = np.nan
        with pytest.raises(DataValidationError, match="missing"):
            validate_idie_data(_idie_data(toy_binary_frame))

    def test_input_frame_not_modified(self, toy_binary_frame):
        toy_binary_frame["exposure"] = toy_binary_frame["exposure"].map({0: "no", 1: "yes"})
        original = toy_binary_frame.copy()

        frame = validate_idie_data(_idie_data(toy_binary_frame))

        pd.testing.assert_frame_equal(toy_binary_frame, original)
        assert set(frame[EXPOSURE]) == {0, 1}


class TestSummarizeDistribution:
    """Test the six-number summary."""

    def test_summary_values(self):
        summary = summarize_distribution(np.array([1.0, 2.0, 3.0, 4.0, 5.0]))

        assert list(summary) == ["min", "q1", "median", "mean", "q3", "max"]
        assert summary["min"] == 1.0
        assert summary["q1"] == 2.0
        assert summary["median"] == 3.0
        assert summary["mean"] == 3.0
        assert summary["q3"] == 4.0
        assert summary["max"] == 5.0
