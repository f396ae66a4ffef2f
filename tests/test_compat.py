"""Tests for Polars DataFrame input compatibility."""

import numpy as np
import pandas as pd
import pytest

from pstrata._compat import _ensure_pandas_df

# Import polars; skip all tests in this module if not installed.
pl = pytest.importorskip("polars")


class TestEnsurePandasDf:
    """Tests for the _ensure_pandas_df converter."""

    def test_pandas_passthrough(self):
        df = pd.DataFrame({"a": [1, 2, 3]})
        result = _ensure_pandas_df(df)
        assert result is df  # exact same object, no copy

    def test_polars_converted(self):
        pl_df = pl.DataFrame({"a": [1, 2, 3]})
        result = _ensure_pandas_df(pl_df)
        assert isinstance(result, pd.DataFrame)
        assert result["a"].tolist() == [1, 2, 3]

    def test_polars_lazyframe_collected_and_converted(self):
        lf = pl.DataFrame({"a": [1, 2, 3]}).lazy()
        result = _ensure_pandas_df(lf)
        assert result["a"].tolist() == [1, 2, 3]

    def test_error_includes_name(self):
        with pytest.raises(TypeError, match="'X'"):
            _ensure_pandas_df({"a": 1}, name="X")


class TestPolarsDesign:
    """A design built from a Polars frame matches the pandas one."""

    def test_from_frame_matches_pandas(self):
        from pstrata.design import StructuralDesign

        rng = np.random.default_rng(42)
        data = {
            "Z": [0, 1, 0, 1, 1, 0],
            "D": [0, 1, 0, 0, 1, 1],
            "Y": rng.standard_normal(6).tolist(),
            "x": rng.standard_normal(6).tolist(),
        }
        kwargs = dict(treatment="Z", intermediate="D", response="Y", strata_covariates=["x"])
        from_pl = StructuralDesign.from_frame(pl.DataFrame(data), **kwargs)
        from_pd = StructuralDesign.from_frame(pd.DataFrame(data), **kwargs)

        np.testing.assert_array_equal(from_pl.response, from_pd.response)
        np.testing.assert_array_equal(from_pl.intermediate, from_pd.intermediate)
        np.testing.assert_allclose(
            from_pl.strata_covariates.to_numpy(), from_pd.strata_covariates.to_numpy()
        )
