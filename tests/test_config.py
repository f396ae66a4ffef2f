"""Tests for the inference-engine configuration."""

import os

import pytest

import pstrata._config as _cfg
from pstrata._config import get_engine, set_engine
from pstrata.engine import _ENGINES, register_engine


class _NullEngine:
    name = "null"

    def sample(self, program, data, **kwargs):
        return {}


class TestGetEngine:
    """Tests for get_engine() resolution order."""

    def setup_method(self):
        _cfg._engine_override = None
        os.environ.pop("PSTRATA_ENGINE", None)
        register_engine("null", _NullEngine)

    def teardown_method(self):
        _cfg._engine_override = None
        os.environ.pop("PSTRATA_ENGINE", None)
        _ENGINES.pop("null", None)

    def test_default(self):
        assert get_engine() == "cmdstanpy"

    def test_env_var(self):
        os.environ["PSTRATA_ENGINE"] = "null"
        assert get_engine() == "null"

    def test_env_var_case_insensitive(self):
        os.environ["PSTRATA_ENGINE"] = "NULL"
        assert get_engine() == "null"

    def test_unknown_env_var_ignored(self):
        os.environ["PSTRATA_ENGINE"] = "pymc"
        assert get_engine() == "cmdstanpy"

    def test_programmatic_override_wins_over_env(self):
        os.environ["PSTRATA_ENGINE"] = "cmdstanpy"
        set_engine("null")
        assert get_engine() == "null"

    def test_auto_restores_default(self):
        set_engine("null")
        set_engine("auto")
        assert get_engine() == "cmdstanpy"


class TestSetEngine:
    def setup_method(self):
        _cfg._engine_override = None

    def teardown_method(self):
        _cfg._engine_override = None

    def test_case_insensitive(self):
        set_engine("CmdStanPy")
        assert get_engine() == "cmdstanpy"

    def test_rejects_invalid_name(self):
        with pytest.raises(ValueError, match="Unknown engine"):
            set_engine("tensorflow")
