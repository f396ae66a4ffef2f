"""Tests for the inference-engine layer."""

import numpy as np
import pytest

import pstrata._config as _cfg
from pstrata.engine import (
    _ENGINES,
    CmdStanEngine,
    InferenceEngine,
    available_engines,
    register_engine,
    resolve_engine,
    run_engine,
)
from pstrata.exceptions import InferenceEngineError

# ------------------------------------------------------------------ #
# Fake engines
# ------------------------------------------------------------------ #


class _FixedEngine:
    """Returns preset draws and records the call."""

    name = "fixed"

    def __init__(self, draws=None):
        self.draws = draws if draws is not None else {"mean_effect": np.zeros((10, 4))}
        self.calls = []

    def sample(self, program, data, **kwargs):
        self.calls.append((program, dict(data), kwargs))
        return self.draws


class _FailingEngine:
    name = "failing"

    def sample(self, program, data, **kwargs):
        raise OSError("compiler not found")


@pytest.fixture(autouse=True)
def _reset_registry():
    _cfg._engine_override = None
    yield
    _cfg._engine_override = None
    for key in [k for k in _ENGINES if k != "cmdstanpy"]:
        _ENGINES.pop(key)


class TestResolveEngine:
    def test_cmdstan_registered_by_default(self):
        assert "cmdstanpy" in available_engines()

    def test_default_is_cmdstan(self):
        engine = resolve_engine()
        assert isinstance(engine, CmdStanEngine)
        assert isinstance(engine, InferenceEngine)

    def test_instance_passthrough(self):
        engine = _FixedEngine()
        assert resolve_engine(engine) is engine

    def test_registered_name(self):
        register_engine("fixed", _FixedEngine)
        assert isinstance(resolve_engine("Fixed"), _FixedEngine)

    def test_configured_name(self):
        register_engine("fixed", _FixedEngine)
        _cfg._engine_override = "fixed"
        assert isinstance(resolve_engine(), _FixedEngine)

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="Unknown engine"):
            resolve_engine("pymc")

    def test_not_an_engine(self):
        with pytest.raises(TypeError, match="InferenceEngine protocol"):
            resolve_engine(object())

    def test_register_rejects_auto(self):
        with pytest.raises(ValueError, match="Invalid engine name"):
            register_engine("auto", _FixedEngine)


class TestRunEngine:
    def test_returns_float_draws_and_forwards_kwargs(self):
        engine = _FixedEngine({"mean_effect": np.ones((5, 2), dtype=int)})
        draws = run_engine(engine, "model {}", {"N": 1}, required=("mean_effect",), chains=2)
        assert draws["mean_effect"].dtype == float
        assert engine.calls == [("model {}", {"N": 1}, {"chains": 2})]

    def test_failure_is_chained(self):
        with pytest.raises(InferenceEngineError, match="compiler not found") as info:
            run_engine(_FailingEngine(), "model {}", {})
        assert isinstance(info.value.__cause__, OSError)

    def test_missing_variable(self):
        engine = _FixedEngine({"other": np.zeros((5, 2))})
        with pytest.raises(InferenceEngineError, match="no draws for \\['mean_effect'\\]"):
            run_engine(engine, "model {}", {}, required=("mean_effect",))

    def test_zero_draws(self):
        engine = _FixedEngine({"mean_effect": np.zeros((0, 4))})
        with pytest.raises(InferenceEngineError, match="zero draws"):
            run_engine(engine, "model {}", {}, required=("mean_effect",))


class TestCmdStanEngine:
    def test_defaults(self):
        engine = CmdStanEngine()
        assert engine.name == "cmdstanpy"
        assert (engine.chains, engine.iter_warmup, engine.iter_sampling) == (4, 1000, 1000)

    def test_sample_calls_cmdstanpy(self, monkeypatch, tmp_path):
        cmdstanpy = pytest.importorskip("cmdstanpy")
        captured = {}

        class _Fit:
            def stan_variables(self):
                return {"mean_effect": np.ones((8, 3))}

        class _Model:
            def __init__(self, stan_file):
                captured["stan_file"] = stan_file

            def sample(self, **kwargs):
                captured["kwargs"] = kwargs
                return _Fit()

        monkeypatch.setenv("PSTRATA_CACHE_DIR", str(tmp_path))
        monkeypatch.setattr(cmdstanpy, "CmdStanModel", _Model)

        draws = CmdStanEngine(chains=2, seed=11).sample("model {}", {"N": 3}, iter_sampling=4)
        assert draws["mean_effect"].shape == (8, 3)
        assert captured["stan_file"].startswith(str(tmp_path))
        kwargs = captured["kwargs"]
        assert kwargs["chains"] == 2
        assert kwargs["iter_sampling"] == 4
        assert kwargs["seed"] == 11
        assert kwargs["data"] == {"N": 3}
