"""Tests for the family/link registry."""

import numpy as np
import pytest
from scipy import integrate, stats

from pstrata.exceptions import UnsupportedCombinationError
from pstrata.families import (
    Domain,
    Family,
    FamilyLinkEntry,
    Link,
    default_link,
    registry_entries,
    resolve,
    supported_families,
    supported_links,
)


@pytest.fixture()
def rng():
    return np.random.default_rng(42)


class TestRegistryTotality:
    def test_every_family_registered(self):
        assert set(supported_families()) == set(Family)

    @pytest.mark.parametrize("family", list(Family))
    def test_every_supported_link_resolves(self, family):
        for link in supported_links(family):
            entry = resolve(family, link)
            assert isinstance(entry, FamilyLinkEntry)
            assert entry.family is family
            assert entry.link is link

    @pytest.mark.parametrize("entry", registry_entries(), ids=lambda e: f"{e.family.value}-{e.link.value}")
    def test_link_range_fits_kernel_domain(self, entry):
        assert entry.location_domain.contains(entry.link_range)

    @pytest.mark.parametrize("entry", registry_entries(), ids=lambda e: f"{e.family.value}-{e.link.value}")
    def test_aux_fields_consistent(self, entry):
        assert entry.has_aux == (entry.aux_domain is not None)

    def test_default_link_is_first_row(self):
        assert default_link("gaussian") is Link.IDENTITY
        assert default_link("binomial") is Link.LOGIT
        assert default_link("poisson") is Link.LOG

    def test_resolve_without_link_uses_default(self):
        assert resolve("gamma").link is Link.LOG


class TestScenarios:
    def test_binomial_probit(self):
        entry = resolve("binomial", "probit")
        assert entry.kernel == "bernoulli"
        assert entry.link_inverse == "Phi"
        assert not entry.has_aux
        assert entry.aux_name is None

    def test_poisson_logit_rejected(self):
        with pytest.raises(UnsupportedCombinationError, match="does not support link 'logit'"):
            resolve("poisson", "logit")

    def test_binomial_log_not_advertised(self):
        assert Link.LOG not in supported_links("binomial")
        with pytest.raises(UnsupportedCombinationError):
            resolve("binomial", "log")

    def test_unknown_family(self):
        with pytest.raises(UnsupportedCombinationError, match="Available families"):
            resolve("tweedie")

    def test_unknown_link(self):
        with pytest.raises(UnsupportedCombinationError, match="Available links"):
            resolve("gaussian", "sqrt")

    def test_survival_entries(self):
        cox = resolve("survival_Cox")
        aft = resolve("survival_AFT")
        assert cox.is_survival and aft.is_survival
        assert cox.aux_name == "theta" and cox.aux_domain is Domain.REAL
        assert aft.aux_name == "sigma" and aft.aux_domain is Domain.POSITIVE


class TestParse:
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("Gamma", Family.GAMMA),
            ("inverse.gaussian", Family.INVERSE_GAUSSIAN),
            ("survival_Cox", Family.SURVIVAL_COX),
            (Family.POISSON, Family.POISSON),
        ],
    )
    def test_family_spellings(self, name, expected):
        assert Family.parse(name) is expected

    def test_link_case_insensitive(self):
        assert Link.parse("Probit") is Link.PROBIT


class TestNumerics:
    def test_inverse_links(self):
        eta = np.array([-1.0, 0.0, 2.0])
        np.testing.assert_allclose(resolve("binomial", "probit").inverse_link(eta), stats.norm.cdf(eta))
        np.testing.assert_allclose(resolve("poisson").inverse_link(eta), np.exp(eta))
        np.testing.assert_allclose(
            resolve("binomial", "logit").inverse_link(eta), 1 / (1 + np.exp(-eta))
        )

    def test_gaussian_log_likelihood(self, rng):
        y = rng.standard_normal(20)
        mu = rng.standard_normal(20)
        ll = resolve("gaussian").log_likelihood(y, mu, aux=2.0)
        np.testing.assert_allclose(ll, stats.norm.logpdf(y, mu, 2.0))

    def test_gamma_mean_parameterisation(self, rng):
        mu, alpha = 3.0, 2.5
        y = stats.gamma.rvs(alpha, scale=mu / alpha, size=20000, random_state=rng)
        np.testing.assert_allclose(y.mean(), mu, rtol=0.05)
        ll = resolve("gamma").log_likelihood(y[:5], np.full(5, mu), aux=alpha)
        np.testing.assert_allclose(ll, stats.gamma.logpdf(y[:5], alpha, scale=mu / alpha))

    def test_inverse_gaussian_density_integrates(self):
        entry = resolve("inverse_gaussian")
        grid = np.linspace(1e-4, 60, 200001)
        dens = np.exp(entry.log_likelihood(grid, np.full_like(grid, 2.0), aux=3.0))
        np.testing.assert_allclose(integrate.trapezoid(dens, grid), 1.0, atol=1e-3)

    def test_weibull_ph_survival(self):
        entry = resolve("survival_cox")
        y = np.array([0.5, 1.0, 2.0])
        mu, theta = np.full(3, 0.3), 0.4
        k = np.exp(theta)
        # Censored units contribute log S(y) = -y^k exp(mu).
        censored = entry.log_likelihood(y, mu, aux=theta, event=np.zeros(3))
        np.testing.assert_allclose(censored, -(y**k) * np.exp(0.3))
        observed = entry.log_likelihood(y, mu, aux=theta, event=np.ones(3))
        expected = theta + (k - 1) * np.log(y) + 0.3 - (y**k) * np.exp(0.3)
        np.testing.assert_allclose(observed, expected)

    def test_lognormal_aft(self):
        entry = resolve("survival_aft")
        y = np.array([0.5, 2.0])
        ll = entry.log_likelihood(y, np.zeros(2), aux=1.5, event=np.array([1, 0]))
        np.testing.assert_allclose(ll[0], stats.lognorm.logpdf(0.5, s=1.5))
        np.testing.assert_allclose(ll[1], stats.lognorm.logsf(2.0, s=1.5))

    def test_missing_aux(self):
        with pytest.raises(ValueError, match="needs 'sigma'"):
            resolve("gaussian").log_likelihood([0.0], [0.0])


class TestValidateResponse:
    def test_binomial_requires_binary(self):
        with pytest.raises(ValueError, match="0/1"):
            resolve("binomial").validate_response(np.array([0, 1, 2]))

    def test_poisson_requires_counts(self):
        with pytest.raises(ValueError, match="non-negative integer"):
            resolve("poisson").validate_response(np.array([0.5, 1.0]))

    def test_gamma_requires_positive(self):
        with pytest.raises(ValueError, match="positive"):
            resolve("gamma").validate_response(np.array([1.0, 0.0]))

    def test_gaussian_accepts_any_real(self, rng):
        resolve("gaussian").validate_response(rng.standard_normal(10))

    def test_non_finite_rejected(self):
        with pytest.raises(ValueError, match="missing or infinite"):
            resolve("gaussian").validate_response(np.array([1.0, np.nan]))

    def test_non_numeric_rejected(self):
        with pytest.raises(ValueError, match="numeric"):
            resolve("gaussian").validate_response(np.array(["a", "b"]))
