"""Tests for prior specifications."""

import numpy as np
import pytest

from pstrata.exceptions import UnsupportedCombinationError
from pstrata.families import Domain
from pstrata.priors import (
    ModelPriors,
    PriorSpec,
    check_prior_domain,
    prior_cauchy,
    prior_chisq,
    prior_exponential,
    prior_flat,
    prior_gamma,
    prior_inv_chisq,
    prior_inv_gamma,
    prior_lasso,
    prior_logistic,
    prior_normal,
    prior_t,
    prior_weibull,
)

REAL_PRIORS = [prior_normal, prior_t, prior_cauchy, prior_lasso, prior_logistic]
POSITIVE_PRIORS = [
    prior_chisq,
    prior_inv_chisq,
    prior_exponential,
    prior_gamma,
    prior_inv_gamma,
    prior_weibull,
]


class TestConstructors:
    @pytest.mark.parametrize("ctor", REAL_PRIORS)
    def test_real_domain(self, ctor):
        assert ctor().domain is Domain.REAL

    @pytest.mark.parametrize("ctor", POSITIVE_PRIORS)
    def test_positive_domain(self, ctor):
        assert ctor().domain is Domain.POSITIVE

    @pytest.mark.parametrize("ctor", REAL_PRIORS + POSITIVE_PRIORS)
    def test_scipy_support_matches_domain(self, ctor):
        prior = ctor()
        lower, _ = prior.to_scipy().support()
        if prior.domain is Domain.POSITIVE:
            assert lower >= 0
        else:
            assert np.isinf(lower)

    def test_flat(self):
        prior = prior_flat()
        assert prior.is_flat
        assert prior.call is None
        assert prior.statement("beta") == ""
        assert prior.to_scipy() is None

    def test_args_read_only(self):
        prior = prior_normal(1, 2)
        with pytest.raises(TypeError):
            prior.args["mu"] = 5.0


class TestRendering:
    def test_normal_statement(self):
        assert prior_normal(0, 2).statement("alpha") == "alpha ~ normal(0.0, 2.0);"

    def test_t_argument_order(self):
        assert prior_t(mu=1, sigma=2, df=3).call == ("student_t", (3.0, 1.0, 2.0))

    def test_lasso_maps_to_double_exponential(self):
        assert prior_lasso().call[0] == "double_exponential"

    def test_fractional_literals(self):
        assert prior_inv_gamma(0.5, 2.5).statement("s") == "s ~ inv_gamma(0.5, 2.5);"

    def test_to_dict(self):
        assert prior_normal(0, 3).to_dict() == {
            "name": "normal",
            "domain": "real",
            "args": {"mu": 0.0, "sigma": 3.0},
        }


class TestValidation:
    def test_unknown_distribution(self):
        with pytest.raises(UnsupportedCombinationError, match="Unknown prior"):
            PriorSpec("beta", Domain.REAL, {"a": 1, "b": 1})

    def test_wrong_hyperparameters(self):
        with pytest.raises(ValueError, match="takes hyperparameters"):
            PriorSpec("normal", Domain.REAL, {"mu": 0})

    def test_non_positive_scale(self):
        with pytest.raises(ValueError, match="must be positive"):
            prior_normal(0, -1)

    def test_non_finite(self):
        with pytest.raises(ValueError, match="finite"):
            prior_normal(np.inf, 1)

    def test_flat_with_args(self):
        with pytest.raises(ValueError, match="no hyperparameters"):
            PriorSpec("flat", Domain.REAL, {"mu": 0})

    def test_domain_mismatch_at_construction(self):
        with pytest.raises(UnsupportedCombinationError, match="supported on"):
            PriorSpec("normal", Domain.POSITIVE, {"mu": 0, "sigma": 1})

    def test_check_prior_domain(self):
        check_prior_domain(prior_inv_gamma(), Domain.POSITIVE, "sigma")
        with pytest.raises(UnsupportedCombinationError, match="'sigma'"):
            check_prior_domain(prior_normal(), Domain.POSITIVE, "sigma")

    def test_flat_accepted_everywhere(self):
        for domain in Domain:
            check_prior_domain(prior_flat(), domain, "x")


class TestModelPriors:
    def test_defaults(self):
        priors = ModelPriors()
        assert priors.intercept.is_flat
        assert priors.coefficient.name == "normal"
        assert priors.for_aux("sigma").name == "inv_gamma"
        assert priors.for_aux("alpha").name == "inv_gamma"
        assert priors.for_aux("lambda").name == "inv_gamma"
        assert priors.for_aux("theta").name == "normal"

    def test_partial_override_keeps_other_defaults(self):
        priors = ModelPriors(auxiliary={"sigma": prior_gamma(2, 1)})
        assert priors.for_aux("sigma").name == "gamma"
        assert priors.for_aux("alpha").name == "inv_gamma"

    def test_unknown_aux(self):
        with pytest.raises(UnsupportedCombinationError, match="'nu'"):
            ModelPriors().for_aux("nu")

    def test_dict_access(self):
        priors = ModelPriors()
        assert priors["intercept"].is_flat
        assert "coefficient" in priors
        assert priors.to_dict()["auxiliary"]["theta"]["name"] == "normal"
