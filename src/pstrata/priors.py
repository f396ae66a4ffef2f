"""Prior specifications.

A :class:`PriorSpec` is an immutable description of a prior
distribution: its name, the domain it is supported on, and its named
hyperparameters.  Rendering the prior into program text is a separate
step (:attr:`PriorSpec.call`, :meth:`PriorSpec.statement`) so the same
spec can be shared by any number of model parameters.

The flat prior is the spec with no hyperparameters and no call.  The
synthesizer omits its sampling statement entirely and lets the
generative model fall back on its default (improper uniform) prior.

Supported distributions
~~~~~~~~~~~~~~~~~~~~~~~

=====================  ==============================  ========
Constructor            Stan call                       Domain
=====================  ==============================  ========
``prior_flat``         (none)                          real
``prior_normal``       ``normal(mu, sigma)``           real
``prior_t``            ``student_t(df, mu, sigma)``    real
``prior_cauchy``       ``cauchy(mu, sigma)``           real
``prior_lasso``        ``double_exponential(mu, s)``   real
``prior_logistic``     ``logistic(mu, sigma)``         real
``prior_chisq``        ``chi_square(df)``              positive
``prior_inv_chisq``    ``inv_chi_square(df)``          positive
``prior_exponential``  ``exponential(beta)``           positive
``prior_gamma``        ``gamma(alpha, beta)``          positive
``prior_inv_gamma``    ``inv_gamma(alpha, beta)``      positive
``prior_weibull``      ``weibull(alpha, sigma)``       positive
=====================  ==============================  ========
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, ClassVar, NamedTuple

import numpy as np
from scipy import stats

from ._results import _DictAccessMixin
from .exceptions import UnsupportedCombinationError
from .families import Domain

# ------------------------------------------------------------------ #
# Distribution table
# ------------------------------------------------------------------ #


class _Distribution(NamedTuple):
    stan_name: str
    arg_order: tuple[str, ...]
    positive_args: frozenset[str]
    domain: Domain
    scipy: Callable[..., Any]


_DISTRIBUTIONS: dict[str, _Distribution] = {
    "normal": _Distribution(
        "normal",
        ("mu", "sigma"),
        frozenset({"sigma"}),
        Domain.REAL,
        lambda mu, sigma: stats.norm(loc=mu, scale=sigma),
    ),
    "t": _Distribution(
        "student_t",
        ("df", "mu", "sigma"),
        frozenset({"df", "sigma"}),
        Domain.REAL,
        lambda mu, sigma, df: stats.t(df, loc=mu, scale=sigma),
    ),
    "cauchy": _Distribution(
        "cauchy",
        ("mu", "sigma"),
        frozenset({"sigma"}),
        Domain.REAL,
        lambda mu, sigma: stats.cauchy(loc=mu, scale=sigma),
    ),
    "double_exponential": _Distribution(
        "double_exponential",
        ("mu", "sigma"),
        frozenset({"sigma"}),
        Domain.REAL,
        lambda mu, sigma: stats.laplace(loc=mu, scale=sigma),
    ),
    "logistic": _Distribution(
        "logistic",
        ("mu", "sigma"),
        frozenset({"sigma"}),
        Domain.REAL,
        lambda mu, sigma: stats.logistic(loc=mu, scale=sigma),
    ),
    "chi_square": _Distribution(
        "chi_square",
        ("df",),
        frozenset({"df"}),
        Domain.POSITIVE,
        lambda df: stats.chi2(df),
    ),
    # 1 / X with X ~ chi2(df) is inverse-gamma(df / 2, scale 1 / 2).
    "inv_chi_square": _Distribution(
        "inv_chi_square",
        ("df",),
        frozenset({"df"}),
        Domain.POSITIVE,
        lambda df: stats.invgamma(df / 2.0, scale=0.5),
    ),
    "exponential": _Distribution(
        "exponential",
        ("beta",),
        frozenset({"beta"}),
        Domain.POSITIVE,
        lambda beta: stats.expon(scale=1.0 / beta),
    ),
    "gamma": _Distribution(
        "gamma",
        ("alpha", "beta"),
        frozenset({"alpha", "beta"}),
        Domain.POSITIVE,
        lambda alpha, beta: stats.gamma(alpha, scale=1.0 / beta),
    ),
    "inv_gamma": _Distribution(
        "inv_gamma",
        ("alpha", "beta"),
        frozenset({"alpha", "beta"}),
        Domain.POSITIVE,
        lambda alpha, beta: stats.invgamma(alpha, scale=beta),
    ),
    "weibull": _Distribution(
        "weibull",
        ("alpha", "sigma"),
        frozenset({"alpha", "sigma"}),
        Domain.POSITIVE,
        lambda alpha, sigma: stats.weibull_min(alpha, scale=sigma),
    ),
}


def _fmt_number(value: float) -> str:
    """Render a hyperparameter as a Stan literal."""
    if float(value).is_integer() and abs(value) < 1e15:
        return f"{float(value):.1f}"
    return repr(float(value))


# ------------------------------------------------------------------ #
# PriorSpec
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class PriorSpec(_DictAccessMixin):
    """Immutable prior distribution.

    Attributes:
        name: Distribution name (``"flat"``, ``"normal"``, ...).
        domain: Support of the distribution.
        args: Read-only mapping of hyperparameter name to value, in
            constructor order.

    Raises:
        UnsupportedCombinationError: If *name* is unknown or *domain*
            does not match the distribution's natural support.
        ValueError: If a hyperparameter is missing, non-finite, or a
            scale/shape hyperparameter is not positive.
    """

    _SERIALIZERS: ClassVar[dict[str, Any]] = {"args": dict}

    name: str
    domain: Domain
    args: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        args = {k: float(v) for k, v in self.args.items()}
        object.__setattr__(self, "args", MappingProxyType(args))
        object.__setattr__(self, "domain", Domain(self.domain))

        if self.name == "flat":
            if args:
                raise ValueError("The flat prior takes no hyperparameters.")
            return

        dist = _DISTRIBUTIONS.get(self.name)
        if dist is None:
            valid = ", ".join(["flat", *sorted(_DISTRIBUTIONS)])
            raise UnsupportedCombinationError(
                f"Unknown prior distribution {self.name!r}.  Available: {valid}."
            )
        if set(args) != set(dist.arg_order):
            raise ValueError(
                f"Prior {self.name!r} takes hyperparameters {list(dist.arg_order)}, "
                f"got {list(args)}."
            )
        for key, value in args.items():
            if not np.isfinite(value):
                raise ValueError(f"Prior {self.name!r}: {key} must be finite.")
            if key in dist.positive_args and value <= 0:
                raise ValueError(f"Prior {self.name!r}: {key} must be positive, got {value}.")

        lower, upper = self.to_scipy().support()
        natural = Domain.POSITIVE if lower >= 0 and np.isinf(upper) else Domain.REAL
        if np.isfinite(lower) and lower < 0:
            natural = None
        if self.domain is not natural or dist.domain is not natural:
            raise UnsupportedCombinationError(
                f"Prior {self.name!r} is supported on "
                f"{natural.value if natural else (lower, upper)}, "
                f"not on {self.domain.value}."
            )

    @property
    def is_flat(self) -> bool:
        return self.name == "flat"

    @property
    def call(self) -> tuple[str, tuple[float, ...]] | None:
        """Serializable call form: ``(stan_function, positional_args)``.

        ``None`` for the flat prior.
        """
        if self.is_flat:
            return None
        dist = _DISTRIBUTIONS[self.name]
        return dist.stan_name, tuple(self.args[k] for k in dist.arg_order)

    def statement(self, target: str) -> str:
        """Render the sampling statement for *target* (empty if flat)."""
        call = self.call
        if call is None:
            return ""
        fn, args = call
        return f"{target} ~ {fn}({', '.join(_fmt_number(a) for a in args)});"

    def to_scipy(self) -> Any:
        """Frozen ``scipy.stats`` distribution, or ``None`` if flat."""
        if self.is_flat:
            return None
        return _DISTRIBUTIONS[self.name].scipy(**self.args)


def check_prior_domain(prior: PriorSpec, domain: Domain, parameter: str) -> None:
    """Reject a prior whose domain differs from its target parameter's.

    The flat prior is accepted for every domain: it renders to no
    statement, leaving the parameter's declared constraint in charge.

    Raises:
        UnsupportedCombinationError: On a domain mismatch.
    """
    if prior.is_flat:
        return
    if prior.domain is not domain:
        raise UnsupportedCombinationError(
            f"Parameter {parameter!r} lives on the {domain.value} domain but "
            f"received a {prior.domain.value} prior ({prior.name})."
        )


# ------------------------------------------------------------------ #
# Constructors
# ------------------------------------------------------------------ #


def prior_flat() -> PriorSpec:
    return PriorSpec("flat", Domain.REAL)


def prior_normal(mu: float = 0, sigma: float = 1) -> PriorSpec:
    return PriorSpec("normal", Domain.REAL, {"mu": mu, "sigma": sigma})


def prior_t(mu: float = 0, sigma: float = 1, df: float = 1) -> PriorSpec:
    """Student-t prior with *df* degrees of freedom."""
    return PriorSpec("t", Domain.REAL, {"mu": mu, "sigma": sigma, "df": df})


def prior_cauchy(mu: float = 0, sigma: float = 1) -> PriorSpec:
    return PriorSpec("cauchy", Domain.REAL, {"mu": mu, "sigma": sigma})


def prior_lasso(mu: float = 0, sigma: float = 1) -> PriorSpec:
    """Double-exponential (Laplace) prior."""
    return PriorSpec("double_exponential", Domain.REAL, {"mu": mu, "sigma": sigma})


def prior_logistic(mu: float = 0, sigma: float = 1) -> PriorSpec:
    return PriorSpec("logistic", Domain.REAL, {"mu": mu, "sigma": sigma})


def prior_chisq(df: float = 1) -> PriorSpec:
    return PriorSpec("chi_square", Domain.POSITIVE, {"df": df})


def prior_inv_chisq(df: float = 1) -> PriorSpec:
    return PriorSpec("inv_chi_square", Domain.POSITIVE, {"df": df})


def prior_exponential(beta: float = 1) -> PriorSpec:
    """Exponential prior with rate *beta*."""
    return PriorSpec("exponential", Domain.POSITIVE, {"beta": beta})


def prior_gamma(alpha: float = 1, beta: float = 1) -> PriorSpec:
    """Gamma prior with shape *alpha* and rate *beta*."""
    return PriorSpec("gamma", Domain.POSITIVE, {"alpha": alpha, "beta": beta})


def prior_inv_gamma(alpha: float = 1, beta: float = 1) -> PriorSpec:
    """Inverse-gamma prior with shape *alpha* and scale *beta*."""
    return PriorSpec("inv_gamma", Domain.POSITIVE, {"alpha": alpha, "beta": beta})


def prior_weibull(alpha: float = 1, sigma: float = 1) -> PriorSpec:
    """Weibull prior with shape *alpha* and scale *sigma*."""
    return PriorSpec("weibull", Domain.POSITIVE, {"alpha": alpha, "sigma": sigma})


# ------------------------------------------------------------------ #
# ModelPriors
# ------------------------------------------------------------------ #


def _default_auxiliary() -> Mapping[str, PriorSpec]:
    return {
        "sigma": prior_inv_gamma(),
        "alpha": prior_inv_gamma(),
        "lambda": prior_inv_gamma(),
        "theta": prior_normal(),
    }


@dataclass(frozen=True)
class ModelPriors(_DictAccessMixin):
    """Priors of one principal stratification model.

    ``intercept`` and ``coefficient`` apply to both the stratum model
    and the outcome model.  ``auxiliary`` is keyed by the auxiliary
    parameter name of the outcome family.
    """

    _SERIALIZERS: ClassVar[dict[str, Any]] = {
        "intercept": lambda p: p.to_dict(),
        "coefficient": lambda p: p.to_dict(),
        "auxiliary": lambda m: {k: p.to_dict() for k, p in m.items()},
    }

    intercept: PriorSpec = field(default_factory=prior_flat)
    coefficient: PriorSpec = field(default_factory=prior_normal)
    auxiliary: Mapping[str, PriorSpec] = field(default_factory=_default_auxiliary)

    def __post_init__(self) -> None:
        merged = dict(_default_auxiliary())
        merged.update(self.auxiliary)
        object.__setattr__(self, "auxiliary", MappingProxyType(merged))

    def for_aux(self, name: str) -> PriorSpec:
        """Prior of the auxiliary parameter *name*.

        Raises:
            UnsupportedCombinationError: If no prior is registered.
        """
        try:
            return self.auxiliary[name]
        except KeyError:
            raise UnsupportedCombinationError(
                f"No prior given for auxiliary parameter {name!r}."
            ) from None
