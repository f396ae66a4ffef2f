"""Outcome family / link registry.

Every outcome model is identified by a (family, link) pair.  The pair
resolves to a :class:`FamilyLinkEntry` naming

* the log-likelihood **kernel** that scores an outcome given its
  location parameter (and the auxiliary parameter, if any),
* the **inverse link** that maps the unconstrained linear predictor
  onto the kernel's location domain,
* the **auxiliary parameter** (``sigma``, ``alpha``, ``lambda``,
  ``theta``) and the domain it lives on.

Architecture
~~~~~~~~~~~~
The registry is a fixed table shipped as ``data/family_links.csv``.
It is read once at import, validated row by row, and frozen into a
read-only mapping; nothing mutates it afterwards.  Validation rejects
a row whose inverse link can leave the kernel's location domain (e.g.
a log link on a Bernoulli kernel), so every pair that resolves is
mathematically consistent by construction.  The first row of each
family is that family's default link.

Numerics
~~~~~~~~
The entries also evaluate themselves in Python: the inverse link via
the statsmodels GLM link objects and the kernel via ``scipy.stats``.
The program synthesizer emits the same kernels in Stan; the Python
versions serve response validation and direct checks of the table.

Survival kernels
~~~~~~~~~~~~~~~~
Both survival families take a right-censoring indicator as an extra
observed input.  A unit contributes

    event * log f(y) + (1 - event) * log S(y)

where ``f`` is the density and ``S`` the survival function.

* ``weibull_ph`` (Cox): Weibull proportional hazards with log-shape
  ``theta``; hazard ``k t^(k-1) exp(mu)`` with ``k = exp(theta)``.
* ``lognormal_aft`` (AFT): ``log T ~ Normal(mu, sigma)``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from importlib import resources
from types import MappingProxyType
from typing import Any

import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy import stats

from ._results import _DictAccessMixin
from .exceptions import ConfigurationError, UnsupportedCombinationError

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------ #
# Tagged names
# ------------------------------------------------------------------ #


class Family(str, Enum):
    """Supported outcome families."""

    GAUSSIAN = "gaussian"
    BINOMIAL = "binomial"
    GAMMA = "gamma"
    POISSON = "poisson"
    INVERSE_GAUSSIAN = "inverse_gaussian"
    SURVIVAL_COX = "survival_cox"
    SURVIVAL_AFT = "survival_aft"

    @classmethod
    def parse(cls, name: str | Family) -> Family:
        """Accept enum members and the R-style spellings.

        ``"Gamma"``, ``"inverse.gaussian"`` and ``"survival_Cox"`` all
        resolve; matching is case-insensitive and treats ``.`` as
        ``_``.

        Raises:
            UnsupportedCombinationError: For an unknown family name.
        """
        if isinstance(name, Family):
            return name
        key = str(name).strip().lower().replace(".", "_")
        try:
            return cls(key)
        except ValueError:
            valid = ", ".join(f.value for f in cls)
            raise UnsupportedCombinationError(
                f"Unknown family {name!r}.  Available families: {valid}."
            ) from None


class Link(str, Enum):
    """Supported link functions."""

    IDENTITY = "identity"
    LOG = "log"
    INVERSE = "inverse"
    LOGIT = "logit"
    PROBIT = "probit"
    CAUCHIT = "cauchit"
    CLOGLOG = "cloglog"

    @classmethod
    def parse(cls, name: str | Link) -> Link:
        if isinstance(name, Link):
            return name
        try:
            return cls(str(name).strip().lower())
        except ValueError:
            valid = ", ".join(link.value for link in cls)
            raise UnsupportedCombinationError(
                f"Unknown link {name!r}.  Available links: {valid}."
            ) from None


class Domain(str, Enum):
    """Support of a parameter: the real line, (0, inf), or (0, 1)."""

    REAL = "real"
    POSITIVE = "positive"
    UNIT = "unit"

    def contains(self, other: Domain) -> bool:
        """``True`` when *other* is a subset of this domain."""
        order = {Domain.UNIT: 0, Domain.POSITIVE: 1, Domain.REAL: 2}
        return order[other] <= order[self]


# ------------------------------------------------------------------ #
# Link and kernel tables
# ------------------------------------------------------------------ #
#
# Per link: the statsmodels link class used for numeric evaluation,
# the name of its inverse in the table, and the range of that inverse
# over the whole real line.

_LINKS: dict[Link, tuple[type, str, Domain]] = {
    Link.IDENTITY: (sm.families.links.Identity, "identity", Domain.REAL),
    Link.LOG: (sm.families.links.Log, "exp", Domain.POSITIVE),
    Link.INVERSE: (sm.families.links.InversePower, "inv", Domain.REAL),
    Link.LOGIT: (sm.families.links.Logit, "inv_logit", Domain.UNIT),
    Link.PROBIT: (sm.families.links.Probit, "Phi", Domain.UNIT),
    Link.CAUCHIT: (sm.families.links.Cauchy, "inv_cauchit", Domain.UNIT),
    Link.CLOGLOG: (sm.families.links.CLogLog, "inv_cloglog", Domain.UNIT),
}

# Per kernel: location domain, whether the censoring indicator is an
# input, and whether the response is integer-valued.
_KERNELS: dict[str, tuple[Domain, bool, bool]] = {
    "normal": (Domain.REAL, False, False),
    "bernoulli": (Domain.UNIT, False, True),
    "gamma_mean": (Domain.POSITIVE, False, False),
    "poisson": (Domain.POSITIVE, False, True),
    "inv_gaussian": (Domain.POSITIVE, False, False),
    "weibull_ph": (Domain.REAL, True, False),
    "lognormal_aft": (Domain.REAL, True, False),
}


def _kernel_logpdf(kernel: str, y: np.ndarray, mu: np.ndarray, aux: Any) -> np.ndarray:
    if kernel == "normal":
        return stats.norm.logpdf(y, loc=mu, scale=aux)
    if kernel == "bernoulli":
        return stats.bernoulli.logpmf(y, mu)
    if kernel == "gamma_mean":
        # shape alpha, mean mu  ->  scale mu / alpha
        return stats.gamma.logpdf(y, a=aux, scale=mu / aux)
    if kernel == "poisson":
        return stats.poisson.logpmf(y, mu)
    if kernel == "inv_gaussian":
        # mean mu, shape lambda  ->  scipy invgauss(mu / lambda, scale=lambda)
        return stats.invgauss.logpdf(y, mu / aux, scale=aux)
    if kernel == "weibull_ph":
        k = np.exp(aux)
        return stats.weibull_min.logpdf(y, k, scale=np.exp(-mu / k))
    if kernel == "lognormal_aft":
        return stats.lognorm.logpdf(y, s=aux, scale=np.exp(mu))
    raise UnsupportedCombinationError(f"No density registered for kernel {kernel!r}.")


def _kernel_logsf(kernel: str, y: np.ndarray, mu: np.ndarray, aux: Any) -> np.ndarray:
    if kernel == "weibull_ph":
        k = np.exp(aux)
        return stats.weibull_min.logsf(y, k, scale=np.exp(-mu / k))
    if kernel == "lognormal_aft":
        return stats.lognorm.logsf(y, s=aux, scale=np.exp(mu))
    raise UnsupportedCombinationError(
        f"Kernel {kernel!r} has no survival term; it is not a survival kernel."
    )


# ------------------------------------------------------------------ #
# FamilyLinkEntry
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class FamilyLinkEntry(_DictAccessMixin):
    """One row of the family/link registry.

    Attributes:
        family: The outcome family.
        link: The link function.
        kernel: Name of the log-likelihood kernel.
        link_inverse: Name of the inverse-link function.
        aux_name: Name of the auxiliary parameter, or ``None``.
        aux_domain: Domain of the auxiliary parameter, or ``None``.
    """

    family: Family
    link: Link
    kernel: str
    link_inverse: str
    aux_name: str | None
    aux_domain: Domain | None

    @property
    def has_aux(self) -> bool:
        return self.aux_name is not None

    @property
    def is_survival(self) -> bool:
        return _KERNELS[self.kernel][1]

    @property
    def integer_response(self) -> bool:
        return _KERNELS[self.kernel][2]

    @property
    def location_domain(self) -> Domain:
        """Domain the kernel requires of its location parameter."""
        return _KERNELS[self.kernel][0]

    @property
    def link_range(self) -> Domain:
        """Range of the inverse link over the real line."""
        return _LINKS[self.link][2]

    # ---- Numerics --------------------------------------------------

    def inverse_link(self, eta: np.ndarray) -> np.ndarray:
        """Map the linear predictor onto the location scale."""
        link_cls = _LINKS[self.link][0]
        return np.asarray(link_cls().inverse(np.asarray(eta, dtype=float)))

    def log_likelihood(
        self,
        y: np.ndarray,
        mu: np.ndarray,
        aux: float | np.ndarray | None = None,
        event: np.ndarray | None = None,
    ) -> np.ndarray:
        """Per-unit log-likelihood of *y* at location *mu*.

        Args:
            y: Outcomes, shape ``(n,)``.
            mu: Location parameter, already on the inverse-link scale.
            aux: Auxiliary parameter, required when :attr:`has_aux`.
            event: Censoring indicator (1 = observed), survival only.
                Defaults to all observed.

        Returns:
            Log-likelihood contributions of shape ``(n,)``.
        """
        y = np.asarray(y, dtype=float)
        mu = np.asarray(mu, dtype=float)
        if self.has_aux and aux is None:
            raise ValueError(f"Family {self.family.value!r} needs {self.aux_name!r}.")
        logpdf = _kernel_logpdf(self.kernel, y, mu, aux)
        if not self.is_survival:
            return np.asarray(logpdf)
        delta = np.ones_like(y) if event is None else np.asarray(event, dtype=float)
        logsf = _kernel_logsf(self.kernel, y, mu, aux)
        # Censored units contribute only the survival term.
        return np.where(delta == 1, logpdf, 0.0) + np.where(delta == 1, 0.0, logsf)

    # ---- Validation ------------------------------------------------
    #
    # Catch response values outside the kernel's support before they
    # reach the sampler, where they surface as an opaque rejection.

    def validate_response(self, y: np.ndarray) -> None:
        """Reject responses outside the support of this family.

        Raises:
            ValueError: If *y* is non-numeric, non-finite, or outside
                the family's support.
        """
        y = np.asarray(y)
        if not np.issubdtype(y.dtype, np.number) and y.dtype != bool:
            raise ValueError(
                f"{self.family.value} family requires a numeric response, "
                f"got dtype {y.dtype}."
            )
        y = y.astype(float)
        if not np.all(np.isfinite(y)):
            raise ValueError("The response contains missing or infinite values.")
        if self.kernel == "bernoulli":
            if not np.all(np.isin(y, [0.0, 1.0])):
                raise ValueError("binomial family requires a 0/1 response.")
        elif self.kernel == "poisson":
            if np.any(y < 0) or not np.all(np.mod(y, 1) == 0):
                raise ValueError("poisson family requires non-negative integer counts.")
        elif self.kernel != "normal" and np.any(y <= 0):
            raise ValueError(f"{self.family.value} family requires a positive response.")


# ------------------------------------------------------------------ #
# Registry loading
# ------------------------------------------------------------------ #

_TABLE_COLUMNS = (
    "family",
    "link",
    "kernel",
    "link_inverse",
    "has_aux",
    "aux_name",
    "aux_domain",
)


def _entry_from_row(row: pd.Series) -> FamilyLinkEntry:
    """Build and validate one registry entry from a table row."""
    where = f"registry row ({row['family']}, {row['link']})"
    try:
        family = Family.parse(row["family"])
        link = Link.parse(row["link"])
    except UnsupportedCombinationError as exc:
        raise ConfigurationError(f"{where}: {exc}") from None

    kernel = row["kernel"]
    if kernel not in _KERNELS:
        raise ConfigurationError(f"{where}: unknown kernel {kernel!r}.")
    expected_inverse = _LINKS[link][1]
    if row["link_inverse"] != expected_inverse:
        raise ConfigurationError(
            f"{where}: link {link.value!r} has inverse {expected_inverse!r}, "
            f"table says {row['link_inverse']!r}."
        )

    has_aux = row["has_aux"].strip() == "1"
    aux_name = row["aux_name"].strip() or None
    aux_domain = Domain(row["aux_domain"].strip()) if row["aux_domain"].strip() else None
    if has_aux != (aux_name is not None) or has_aux != (aux_domain is not None):
        raise ConfigurationError(f"{where}: has_aux disagrees with aux_name/aux_domain.")

    entry = FamilyLinkEntry(
        family=family,
        link=link,
        kernel=kernel,
        link_inverse=expected_inverse,
        aux_name=aux_name,
        aux_domain=aux_domain,
    )
    if not entry.location_domain.contains(entry.link_range):
        raise ConfigurationError(
            f"{where}: inverse link ranges over {entry.link_range.value} but "
            f"kernel {kernel!r} needs a {entry.location_domain.value} location."
        )
    return entry


def _load_registry() -> tuple[
    MappingProxyType[tuple[Family, Link], FamilyLinkEntry],
    MappingProxyType[Family, Link],
]:
    source = resources.files(__package__) / "data" / "family_links.csv"
    with source.open("r", encoding="utf-8") as fh:
        table = pd.read_csv(fh, dtype=str, keep_default_na=False)
    missing = set(_TABLE_COLUMNS) - set(table.columns)
    if missing:
        raise ConfigurationError(f"Registry table lacks columns {sorted(missing)}.")

    entries: dict[tuple[Family, Link], FamilyLinkEntry] = {}
    defaults: dict[Family, Link] = {}
    for _, row in table.iterrows():
        entry = _entry_from_row(row)
        key = (entry.family, entry.link)
        if key in entries:
            raise ConfigurationError(
                f"Duplicate registry row ({entry.family.value}, {entry.link.value})."
            )
        entries[key] = entry
        defaults.setdefault(entry.family, entry.link)

    absent = [f.value for f in Family if f not in defaults]
    if absent:
        raise ConfigurationError(f"Registry table has no link for families {absent}.")

    logger.debug("Loaded %d family/link registry entries.", len(entries))
    return MappingProxyType(entries), MappingProxyType(defaults)


_REGISTRY, _DEFAULT_LINKS = _load_registry()


# ------------------------------------------------------------------ #
# Query contract
# ------------------------------------------------------------------ #


def resolve(
    family: str | Family,
    link: str | Link | None = None,
) -> FamilyLinkEntry:
    """Resolve a (family, link) pair to its registry entry.

    Args:
        family: Family name or :class:`Family` member.
        link: Link name or :class:`Link` member; ``None`` selects the
            family's default link.

    Returns:
        The matching :class:`FamilyLinkEntry`.

    Raises:
        UnsupportedCombinationError: For an unknown family or link, or
            a pair that is not registered.
    """
    fam = Family.parse(family)
    lnk = _DEFAULT_LINKS[fam] if link is None else Link.parse(link)
    entry = _REGISTRY.get((fam, lnk))
    if entry is None:
        available = ", ".join(sorted(x.value for x in supported_links(fam)))
        raise UnsupportedCombinationError(
            f"Family {fam.value!r} does not support link {lnk.value!r}.  "
            f"Supported links: {available}."
        )
    return entry


def supported_links(family: str | Family) -> frozenset[Link]:
    """Links registered for *family*."""
    fam = Family.parse(family)
    return frozenset(lnk for (f, lnk) in _REGISTRY if f is fam)


def supported_families() -> tuple[Family, ...]:
    """Families in registry order."""
    return tuple(_DEFAULT_LINKS)


def default_link(family: str | Family) -> Link:
    return _DEFAULT_LINKS[Family.parse(family)]


def registry_entries() -> tuple[FamilyLinkEntry, ...]:
    """All entries in table order."""
    return tuple(_REGISTRY.values())
