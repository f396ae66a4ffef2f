"""Tests for the structural design container."""

import numpy as np
import pandas as pd
import pytest

from pstrata.design import StructuralDesign
from pstrata.exceptions import ConfigurationError


@pytest.fixture()
def frame():
    rng = np.random.default_rng(0)
    n = 12
    return pd.DataFrame(
        {
            "Z": np.tile([0, 1], n // 2),
            "D": np.tile([0, 0, 1], n // 3),
            "Y": rng.standard_normal(n),
            "age": rng.uniform(20, 60, n),
            "sex": np.tile([0, 1, 1, 0], n // 4),
            "status": np.ones(n, dtype=int),
        }
    )


class TestFromFrame:
    def test_selects_columns(self, frame):
        design = StructuralDesign.from_frame(
            frame,
            treatment="Z",
            intermediate="D",
            response="Y",
            strata_covariates=["age"],
            outcome_covariates=["age", "sex"],
        )
        assert design.n_obs == 12
        assert list(design.strata_covariates.columns) == ["age"]
        assert list(design.outcome_covariates.columns) == ["age", "sex"]
        assert design.response_name == "Y"
        assert design.event is None

    def test_no_covariates(self, frame):
        design = StructuralDesign.from_frame(frame, treatment="Z", intermediate="D", response="Y")
        assert design.strata_covariates.shape == (12, 0)
        assert design.outcome_covariates.shape == (12, 0)

    def test_event_column(self, frame):
        design = StructuralDesign.from_frame(
            frame, treatment="Z", intermediate="D", response="Y", event="status"
        )
        assert design.event.dtype == np.int64
        assert design.event.tolist() == [1] * 12

    def test_missing_column(self, frame):
        with pytest.raises(ConfigurationError, match="not found"):
            StructuralDesign.from_frame(frame, treatment="T", intermediate="D", response="Y")

    def test_rejects_non_frame(self):
        with pytest.raises(TypeError, match="pandas DataFrame"):
            StructuralDesign.from_frame([1, 2], treatment="Z", intermediate="D", response="Y")


class TestValidation:
    def _design(self, **overrides):
        kwargs = dict(
            treatment=pd.Series([0, 1, 0]),
            intermediate=np.array([0, 1, 1]),
            response=np.array([0.1, 0.2, 0.3]),
            strata_covariates=pd.DataFrame({"x": [1.0, 2.0, 3.0]}),
            outcome_covariates=pd.DataFrame(index=range(3)),
        )
        kwargs.update(overrides)
        return StructuralDesign(**kwargs)

    def test_valid(self):
        design = self._design()
        assert design.intermediate.dtype == np.int64

    def test_bool_intermediate(self):
        design = self._design(intermediate=np.array([True, False, True]))
        assert design.intermediate.tolist() == [1, 0, 1]

    def test_length_mismatch(self):
        with pytest.raises(ConfigurationError, match="'treatment' has 2 rows"):
            self._design(treatment=pd.Series([0, 1]))

    def test_negative_intermediate(self):
        with pytest.raises(ConfigurationError, match="non-negative integers"):
            self._design(intermediate=np.array([0, -1, 1]))

    def test_fractional_intermediate(self):
        with pytest.raises(ConfigurationError, match="non-negative integers"):
            self._design(intermediate=np.array([0.0, 0.5, 1.0]))

    def test_non_numeric_covariate(self):
        with pytest.raises(ConfigurationError, match="non-numeric"):
            self._design(strata_covariates=pd.DataFrame({"g": ["a", "b", "c"]}))

    def test_missing_covariate_value(self):
        with pytest.raises(ConfigurationError, match="missing values"):
            self._design(strata_covariates=pd.DataFrame({"x": [1.0, np.nan, 3.0]}))

    def test_event_must_be_binary(self):
        with pytest.raises(ConfigurationError, match="0/1"):
            self._design(event=np.array([1, 2, 0]))

    def test_empty_design(self):
        with pytest.raises(ConfigurationError, match="no observations"):
            StructuralDesign(
                treatment=pd.Series([], dtype=int),
                intermediate=np.array([], dtype=int),
                response=np.array([]),
                strata_covariates=pd.DataFrame(),
                outcome_covariates=pd.DataFrame(),
            )
