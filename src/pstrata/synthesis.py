"""Stan program synthesis for principal stratification models.

Given the group table, a resolved family/link entry, the model priors
and the structural design, :func:`synthesize` emits a Stan program and
the data payload it expects.

Generated model
~~~~~~~~~~~~~~~
* **Stratum model**: multinomial logit over strata with the first
  stratum as reference (``S_intercept``, ``S_coef``).
* **Outcome model**: one parameter block per group id: intercept
  ``Y_intercept[g]``, coefficients ``Y_coef[g]`` and, when the family
  has one, the auxiliary vector ``Y_<aux>[g]``.
* **Likelihood**: for unit *n* with observed treatment *z* and
  intermediate value *d*::

      log sum_{s : SZD[s, z] == d} pi_s(x_n) * L(y_n | group SZG[s, z])

  computed with ``log_sum_exp``.  Wildcard cells are coded ``-1`` in
  ``SZD`` and never equal an observed value, so they drop out of the
  sum.
* **Generated quantities**: per group, the stratum-probability
  weighted average of the outcome mean (``mean_effect``) or, for
  survival families, of the survival probability at each time point
  (``mean_surv_prob``) and the restricted mean survival up to each
  time point (``mean_RACE``).  They are indexed by group id through
  the same ``SZG`` map the reshaper uses.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, ClassVar, NamedTuple

import numpy as np

from ._results import _DictAccessMixin
from .design import StructuralDesign
from .exceptions import ConfigurationError, SynthesisError
from .families import Domain, FamilyLinkEntry
from .priors import ModelPriors, PriorSpec, check_prior_domain
from .strata import GroupTable

logger = logging.getLogger(__name__)

DEFAULT_TIME_POINTS = 50
"""Number of survival time points when none are given."""

_TIME_QUANTILE = 0.9

# ------------------------------------------------------------------ #
# Stan templates
# ------------------------------------------------------------------ #
#
# Kernel templates are formatted with ``y``, ``mu`` and ``aux``; the
# survival template with ``t``, ``mu`` and ``aux``.


class _Kernel(NamedTuple):
    lpdf: str
    lccdf: str | None
    survival: str | None
    response_decl: str
    functions: str


_INV_GAUSSIAN_FN = """\
  real inv_gaussian_lpdf(real y, real mu, real shape) {
    return 0.5 * log(shape / (2 * pi())) - 1.5 * log(y)
           - shape * square(y - mu) / (2 * square(mu) * y);
  }"""

_WEIBULL_PH_FN = """\
  real weibull_ph_lpdf(real y, real mu, real theta) {
    real k = exp(theta);
    return theta + (k - 1) * log(y) + mu - pow(y, k) * exp(mu);
  }
  real weibull_ph_lccdf(real y, real mu, real theta) {
    return -pow(y, exp(theta)) * exp(mu);
  }"""

_INV_CAUCHIT_FN = """\
  real inv_cauchit(real x) {
    return atan(x) / pi() + 0.5;
  }"""

_KERNEL_TEMPLATES: dict[str, _Kernel] = {
    "normal": _Kernel(
        "normal_lpdf({y} | {mu}, {aux})", None, None, "vector[N] Y;", ""
    ),
    "bernoulli": _Kernel(
        "bernoulli_lpmf({y} | {mu})",
        None,
        None,
        "array[N] int<lower=0, upper=1> Y;",
        "",
    ),
    "gamma_mean": _Kernel(
        "gamma_lpdf({y} | {aux}, {aux} / {mu})",
        None,
        None,
        "vector<lower=0>[N] Y;",
        "",
    ),
    "poisson": _Kernel(
        "poisson_lpmf({y} | {mu})", None, None, "array[N] int<lower=0> Y;", ""
    ),
    "inv_gaussian": _Kernel(
        "inv_gaussian_lpdf({y} | {mu}, {aux})",
        None,
        None,
        "vector<lower=0>[N] Y;",
        _INV_GAUSSIAN_FN,
    ),
    "weibull_ph": _Kernel(
        "weibull_ph_lpdf({y} | {mu}, {aux})",
        "weibull_ph_lccdf({y} | {mu}, {aux})",
        "exp(weibull_ph_lccdf({t} | {mu}, {aux}))",
        "vector<lower=0>[N] Y;",
        _WEIBULL_PH_FN,
    ),
    "lognormal_aft": _Kernel(
        "lognormal_lpdf({y} | {mu}, {aux})",
        "lognormal_lccdf({y} | {mu}, {aux})",
        "({t} > 0 ? exp(lognormal_lccdf({t} | {mu}, {aux})) : 1.0)",
        "vector<lower=0>[N] Y;",
        "",
    ),
}

# Inverse-link templates, keyed by the registry's link_inverse name.
_LINK_TEMPLATES: dict[str, tuple[str, str]] = {
    "identity": ("{eta}", ""),
    "exp": ("exp({eta})", ""),
    "inv": ("inv({eta})", ""),
    "inv_logit": ("inv_logit({eta})", ""),
    "Phi": ("Phi({eta})", ""),
    "inv_cauchit": ("inv_cauchit({eta})", _INV_CAUCHIT_FN),
    "inv_cloglog": ("inv_cloglog({eta})", ""),
}

_ETA = "Y_intercept[g] + XY[n] * Y_coef[g]'"
_STRATUM_ETA = "append_row(0, S_intercept + S_coef * XS[n]')"


# ------------------------------------------------------------------ #
# Result type
# ------------------------------------------------------------------ #


@dataclass(frozen=True, eq=False)
class SynthesizedModel(_DictAccessMixin):
    """A generated Stan program together with its data payload.

    Attributes:
        program: Stan program text.
        data: Mapping of data-block names to arrays/scalars.
        parameters: Names of the parameters the program declares.
        outputs: Names of the generated quantities.
        time_points: Survival time points, ``None`` otherwise.
    """

    _SERIALIZERS: ClassVar[dict[str, Any]] = {"data": dict}

    program: str
    data: Mapping[str, Any]
    parameters: tuple[str, ...]
    outputs: tuple[str, ...]
    time_points: np.ndarray | None = None

    @property
    def is_survival(self) -> bool:
        return self.time_points is not None


# ------------------------------------------------------------------ #
# Time points
# ------------------------------------------------------------------ #


def resolve_time_points(
    response: np.ndarray,
    time_points: int | Sequence[float] = DEFAULT_TIME_POINTS,
) -> np.ndarray:
    """Time points at which survival probabilities are evaluated.

    Args:
        response: Observed survival times.
        time_points: Either a count, giving that many equally spaced
            points from 0 to the 90th percentile of *response*, or an
            explicit non-decreasing sequence of non-negative times,
            used verbatim.

    Returns:
        Float array of time points.

    Raises:
        ConfigurationError: For a non-positive count or an invalid
            explicit sequence.
    """
    if isinstance(time_points, (int, np.integer)) and not isinstance(time_points, bool):
        if time_points < 1:
            raise ConfigurationError(
                f"survival_time_points must be at least 1, got {time_points}."
            )
        upper = float(np.quantile(np.asarray(response, dtype=float), _TIME_QUANTILE))
        return np.linspace(0.0, upper, int(time_points))

    points = np.atleast_1d(np.asarray(time_points, dtype=float))
    if points.ndim != 1 or points.size == 0:
        raise ConfigurationError("Explicit time points must be a non-empty 1-D sequence.")
    if not np.all(np.isfinite(points)) or np.any(points < 0):
        raise ConfigurationError("Time points must be finite and non-negative.")
    if np.any(np.diff(points) < 0):
        raise ConfigurationError("Time points must be in non-decreasing order.")
    return points


# ------------------------------------------------------------------ #
# Consistency checks
# ------------------------------------------------------------------ #


def _check_groups(group_table: GroupTable) -> np.ndarray:
    """Validate group ids and return the owning stratum of each group."""
    n_groups = group_table.n_groups
    ids = set(group_table.group_ids)
    if ids != set(range(1, n_groups + 1)):
        raise SynthesisError(
            f"Group ids {sorted(ids)} are not the contiguous range 1..{n_groups}."
        )
    return group_table.group_strata()


def _check_parameter_blocks(group_table: GroupTable, n_blocks: int) -> None:
    """Every group referenced by the outputs must own a parameter block."""
    referenced = set(int(g) for g in group_table.group_matrix().ravel())
    referenced |= set(range(1, group_table.n_groups + 1))
    missing = sorted(g for g in referenced if not 1 <= g <= n_blocks)
    if missing:
        raise SynthesisError(
            f"Groups {missing} are referenced by generated quantities but "
            f"only {n_blocks} parameter blocks are declared."
        )


def _check_consistent_strata(
    szd: np.ndarray,
    treatment_codes: np.ndarray,
    intermediate: np.ndarray,
) -> None:
    """Every unit must match at least one stratum."""
    matches = szd[:, treatment_codes] == intermediate[np.newaxis, :]
    orphan = ~matches.any(axis=0)
    if orphan.any():
        combos = sorted(
            {(int(z), int(d)) for z, d in zip(treatment_codes[orphan], intermediate[orphan])}
        )
        raise ConfigurationError(
            f"{int(orphan.sum())} units are consistent with no declared stratum; "
            f"unmatched (treatment, intermediate) pairs: {combos}."
        )


# ------------------------------------------------------------------ #
# Program assembly
# ------------------------------------------------------------------ #


def _prior_lines(priors: Sequence[tuple[PriorSpec, str]]) -> list[str]:
    lines = []
    for prior, target in priors:
        stmt = prior.statement(target)
        if stmt:
            lines.append(f"  {stmt}")
    return lines


def _functions_block(kernel: _Kernel, link_fn: str) -> list[str]:
    parts = [src for src in (kernel.functions, link_fn) if src]
    if not parts:
        return []
    return ["functions {", *parts, "}"]


def _data_block(kernel: _Kernel, survival: bool) -> list[str]:
    lines = [
        "data {",
        "  int<lower=1> N;",
        "  int<lower=1> S_count;",
        "  int<lower=1> Z_count;",
        "  int<lower=1> G_count;",
        "  int<lower=0> PS;",
        "  int<lower=0> PY;",
        "  array[N] int<lower=0, upper=Z_count - 1> Z;",
        "  array[N] int<lower=0> D;",
        f"  {kernel.response_decl}",
        "  matrix[N, PS] XS;",
        "  matrix[N, PY] XY;",
        "  array[S_count, Z_count] int<lower=1, upper=G_count> SZG;",
        "  array[S_count, Z_count] int<lower=-1> SZD;",
        "  array[G_count] int<lower=1, upper=S_count> G_stratum;",
    ]
    if survival:
        lines += [
            "  array[N] int<lower=0, upper=1> event;",
            "  int<lower=1> T_count;",
            "  vector<lower=0>[T_count] time;",
        ]
    lines.append("}")
    return lines


def _parameters_block(aux_var: str | None, aux_domain: Domain | None) -> list[str]:
    lines = [
        "parameters {",
        "  vector[S_count - 1] S_intercept;",
        "  matrix[S_count - 1, PS] S_coef;",
        "  vector[G_count] Y_intercept;",
        "  matrix[G_count, PY] Y_coef;",
    ]
    if aux_var is not None:
        bound = "<lower=0>" if aux_domain is Domain.POSITIVE else ""
        lines.append(f"  vector{bound}[G_count] {aux_var};")
    lines.append("}")
    return lines


def _model_block(
    kernel: _Kernel,
    link_expr: str,
    aux_ref: str,
    prior_lines: list[str],
) -> list[str]:
    mu = link_expr.format(eta=_ETA)
    term = kernel.lpdf.format(y="Y[n]", mu="mu", aux=aux_ref)
    if kernel.lccdf is not None:
        censored = kernel.lccdf.format(y="Y[n]", mu="mu", aux=aux_ref)
        term = f"event[n] * {term}\n                 + (1 - event[n]) * {censored}"
    return [
        "model {",
        *prior_lines,
        "  for (n in 1:N) {",
        f"    vector[S_count] log_pi = log_softmax({_STRATUM_ETA});",
        "    vector[S_count] lp = rep_vector(negative_infinity(), S_count);",
        "    for (s in 1:S_count) {",
        "      if (SZD[s, Z[n] + 1] == D[n]) {",
        "        int g = SZG[s, Z[n] + 1];",
        f"        real mu = {mu};",
        f"        lp[s] = log_pi[s] + {term};",
        "      }",
        "    }",
        "    target += log_sum_exp(lp);",
        "  }",
        "}",
    ]


def _strata_probabilities() -> list[str]:
    return [
        "    matrix[N, S_count] prob_S;",
        "    for (n in 1:N) {",
        f"      prob_S[n] = softmax({_STRATUM_ETA})';",
        "    }",
    ]


def _generated_block(kernel: _Kernel, link_expr: str, aux_ref: str) -> list[str]:
    mu = link_expr.format(eta=_ETA)
    if kernel.survival is None:
        return [
            "generated quantities {",
            "  vector[G_count] mean_effect;",
            "  {",
            *_strata_probabilities(),
            "    for (g in 1:G_count) {",
            "      int s = G_stratum[g];",
            "      real num = 0;",
            "      real den = 0;",
            "      for (n in 1:N) {",
            f"        real mu = {mu};",
            "        num += prob_S[n, s] * mu;",
            "        den += prob_S[n, s];",
            "      }",
            "      mean_effect[g] = num / den;",
            "    }",
            "  }",
            "}",
        ]

    surv = kernel.survival.format(t="time[t]", mu="mu", aux=aux_ref)
    return [
        "generated quantities {",
        "  matrix[G_count, T_count] mean_surv_prob;",
        "  matrix[G_count, T_count] mean_RACE;",
        "  {",
        *_strata_probabilities(),
        "    for (g in 1:G_count) {",
        "      int s = G_stratum[g];",
        "      real den = sum(col(prob_S, s));",
        "      real prev_t = 0;",
        "      real prev_surv = 1;",
        "      real area = 0;",
        "      for (t in 1:T_count) {",
        "        real num = 0;",
        "        for (n in 1:N) {",
        f"          real mu = {mu};",
        f"          num += prob_S[n, s] * {surv};",
        "        }",
        "        mean_surv_prob[g, t] = num / den;",
        "        area += (time[t] - prev_t) * (mean_surv_prob[g, t] + prev_surv) / 2;",
        "        mean_RACE[g, t] = area;",
        "        prev_t = time[t];",
        "        prev_surv = mean_surv_prob[g, t];",
        "      }",
        "    }",
        "  }",
        "}",
    ]


# ------------------------------------------------------------------ #
# Entry point
# ------------------------------------------------------------------ #


def synthesize(
    group_table: GroupTable,
    entry: FamilyLinkEntry,
    priors: ModelPriors,
    design: StructuralDesign,
    *,
    treatment_codes: np.ndarray,
    time_points: int | Sequence[float] | None = None,
) -> SynthesizedModel:
    """Assemble the Stan program and data payload of one model.

    Args:
        group_table: Output of :func:`~pstrata.strata.enumerate_groups`.
        entry: Resolved family/link entry.
        priors: Model priors.
        design: Structural design.
        treatment_codes: Treatment coded ``0..Z-1``, shape ``(n,)``.
        time_points: Survival time points, a count or explicit values
            passed through :func:`resolve_time_points`; defaults to
            that function's default.  Ignored for other families.

    Returns:
        The :class:`SynthesizedModel`.

    Raises:
        SynthesisError: When the group table and the program would
            disagree, or the entry has no program template.
        ConfigurationError: When a unit matches no stratum or the
            response lies outside the family's support.
        UnsupportedCombinationError: When a prior's domain does not
            match its parameter.
    """
    kernel = _KERNEL_TEMPLATES.get(entry.kernel)
    link = _LINK_TEMPLATES.get(entry.link_inverse)
    if kernel is None or link is None:
        raise SynthesisError(
            f"No program template for kernel {entry.kernel!r} / inverse link "
            f"{entry.link_inverse!r}; the registry and the synthesizer disagree."
        )
    if (kernel.survival is not None) != entry.is_survival:
        raise SynthesisError(
            f"Kernel {entry.kernel!r} survival template disagrees with the registry."
        )

    g_stratum = _check_groups(group_table)
    n_groups = group_table.n_groups
    _check_parameter_blocks(group_table, n_groups)

    try:
        entry.validate_response(design.response)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc

    codes = np.asarray(treatment_codes, dtype=np.int64)
    if codes.shape != (design.n_obs,):
        raise ConfigurationError(
            f"Expected {design.n_obs} treatment codes, got shape {codes.shape}."
        )
    if codes.size and (codes.min() < 0 or codes.max() >= group_table.n_treatment):
        raise ConfigurationError(
            f"Treatment codes must lie in 0..{group_table.n_treatment - 1}."
        )
    szd = group_table.intermediate_matrix()
    _check_consistent_strata(szd, codes, design.intermediate)

    # ---- Priors ----------------------------------------------------
    aux_var = f"Y_{entry.aux_name}" if entry.has_aux else None
    prior_targets: list[tuple[PriorSpec, str]] = [
        (priors.intercept, "S_intercept"),
        (priors.coefficient, "to_vector(S_coef)"),
        (priors.intercept, "Y_intercept"),
        (priors.coefficient, "to_vector(Y_coef)"),
    ]
    check_prior_domain(priors.intercept, Domain.REAL, "intercept")
    check_prior_domain(priors.coefficient, Domain.REAL, "coefficient")
    if aux_var is not None:
        aux_prior = priors.for_aux(entry.aux_name)
        check_prior_domain(aux_prior, entry.aux_domain, entry.aux_name)
        prior_targets.append((aux_prior, aux_var))

    # ---- Program ---------------------------------------------------
    link_expr, link_fn = link
    aux_ref = f"{aux_var}[g]" if aux_var is not None else ""
    survival = entry.is_survival
    blocks = [
        _functions_block(kernel, link_fn),
        _data_block(kernel, survival),
        _parameters_block(aux_var, entry.aux_domain),
        _model_block(kernel, link_expr, aux_ref, _prior_lines(prior_targets)),
        _generated_block(kernel, link_expr, aux_ref),
    ]
    program = "\n".join("\n".join(b) for b in blocks if b) + "\n"

    # ---- Data ------------------------------------------------------
    response = np.asarray(design.response)
    response = response.astype(np.int64) if entry.integer_response else response.astype(float)
    xs = design.strata_covariates.to_numpy(dtype=float).reshape(design.n_obs, -1)
    xy = design.outcome_covariates.to_numpy(dtype=float).reshape(design.n_obs, -1)
    data: dict[str, Any] = {
        "N": design.n_obs,
        "S_count": group_table.n_strata,
        "Z_count": group_table.n_treatment,
        "G_count": n_groups,
        "PS": xs.shape[1],
        "PY": xy.shape[1],
        "Z": codes,
        "D": design.intermediate,
        "Y": response,
        "XS": xs,
        "XY": xy,
        "SZG": group_table.group_matrix(),
        "SZD": szd,
        "G_stratum": g_stratum + 1,
    }

    points = None
    if survival:
        points = resolve_time_points(
            response, DEFAULT_TIME_POINTS if time_points is None else time_points
        )
        event = design.event
        if event is None:
            event = np.ones(design.n_obs, dtype=np.int64)
        data.update({"event": event, "T_count": len(points), "time": points})
        outputs: tuple[str, ...] = ("mean_surv_prob", "mean_RACE")
    else:
        outputs = ("mean_effect",)

    parameters = ("S_intercept", "S_coef", "Y_intercept", "Y_coef")
    if aux_var is not None:
        parameters += (aux_var,)

    logger.debug(
        "Synthesized %s/%s program: %d groups, %d units, %d lines.",
        entry.family.value,
        entry.link.value,
        n_groups,
        design.n_obs,
        program.count("\n"),
    )
    return SynthesizedModel(
        program=program,
        data=data,
        parameters=parameters,
        outputs=outputs,
        time_points=points,
    )
