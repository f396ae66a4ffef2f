"""Principal stratification model: configuration, fitting and outcomes.

:class:`PStrataModel` ties the pieces together.  At construction it
resolves, once,

* the declared strata and their group table,
* the treatment coding,
* the family/link registry entry,
* the priors, and
* for survival families, the time points,

and it never changes afterwards.  :meth:`PStrataModel.synthesize`
emits the program; :meth:`PStrataModel.fit` runs it on an inference
engine and returns a :class:`PStrataFit`, whose
:meth:`~PStrataFit.outcome` reshapes the generated quantities onto the
(stratum, treatment[, time]) grid.

Example::

    design = StructuralDesign.from_frame(
        df, treatment="Z", intermediate="D", response="Y",
        strata_covariates=["age"], outcome_covariates=["age"],
    )
    model = PStrataModel(
        design,
        strata={"n": "00*", "c": "01", "a": "11*"},
        family="gaussian",
        prior_coefficient=prior_normal(0, 2),
    )
    fit = model.fit(chains=4, iter_sampling=1000, seed=1)
    summarize(fit.outcome())
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, ClassVar

import numpy as np

from ._results import _DictAccessMixin
from .design import StructuralDesign
from .engine import InferenceEngine, run_engine
from .exceptions import ConfigurationError
from .families import Family, FamilyLinkEntry, Link, resolve
from .outcome import PosteriorOutcome, reshape
from .priors import (
    ModelPriors,
    PriorSpec,
    prior_flat,
    prior_inv_gamma,
    prior_normal,
)
from .strata import GroupTable, StrataInfo, encode_treatment, enumerate_groups
from .synthesis import (
    DEFAULT_TIME_POINTS,
    SynthesizedModel,
    resolve_time_points,
    synthesize,
)

logger = logging.getLogger(__name__)

_OUTCOME_TYPES = ("probability", "RACE")


class PStrataModel:
    """A principal stratification model ready to be fitted.

    Args:
        design: Response, treatment, intermediate and covariates.
        strata: A :class:`StrataInfo`, or the compact notation accepted
            by :meth:`StrataInfo.from_strings`.
        family: Outcome family name.
        link: Link name; ``None`` selects the family's default.
        er: Exclusion-restriction override when *strata* is given in
            compact notation.
        prior_intercept: Prior of every intercept.
        prior_coefficient: Prior of every coefficient.
        prior_sigma: Prior of ``sigma`` (gaussian, survival_aft).
        prior_alpha: Prior of ``alpha`` (gamma).
        prior_lambda: Prior of ``lambda`` (inverse_gaussian).
        prior_theta: Prior of ``theta`` (survival_cox).
        survival_time_points: Number of time points, or the explicit
            time points, for survival families.  Ignored otherwise.

    Raises:
        ConfigurationError: On inconsistent strata, treatment coding or
            response.
        UnsupportedCombinationError: On an unregistered family/link
            pair.
    """

    def __init__(
        self,
        design: StructuralDesign,
        strata: StrataInfo | Mapping[str, str] | Sequence[str],
        family: str | Family = "gaussian",
        link: str | Link | None = None,
        *,
        er: Mapping[str, bool] | Sequence[bool] | Sequence[str] | None = None,
        prior_intercept: PriorSpec | None = None,
        prior_coefficient: PriorSpec | None = None,
        prior_sigma: PriorSpec | None = None,
        prior_alpha: PriorSpec | None = None,
        prior_lambda: PriorSpec | None = None,
        prior_theta: PriorSpec | None = None,
        survival_time_points: int | Sequence[float] = DEFAULT_TIME_POINTS,
    ) -> None:
        if isinstance(strata, StrataInfo):
            if er is not None:
                raise ConfigurationError(
                    "'er' only applies to strata given in compact notation."
                )
            strata_info = strata
        else:
            strata_info = StrataInfo.from_strings(strata, er=er)

        self._design = design
        self._strata_info = strata_info
        self._treatment_codes, self._treatment_names = encode_treatment(
            design.treatment, strata_info.n_treatment
        )
        self._group_table = enumerate_groups(strata_info, n_treatment=len(self._treatment_names))
        self._entry = resolve(family, link)
        try:
            self._entry.validate_response(design.response)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

        self._priors = ModelPriors(
            intercept=prior_intercept if prior_intercept is not None else prior_flat(),
            coefficient=prior_coefficient if prior_coefficient is not None else prior_normal(),
            auxiliary={
                "sigma": prior_sigma if prior_sigma is not None else prior_inv_gamma(),
                "alpha": prior_alpha if prior_alpha is not None else prior_inv_gamma(),
                "lambda": prior_lambda if prior_lambda is not None else prior_inv_gamma(),
                "theta": prior_theta if prior_theta is not None else prior_normal(),
            },
        )
        self._time_points = (
            resolve_time_points(design.response, survival_time_points)
            if self._entry.is_survival
            else None
        )
        logger.debug(
            "PStrataModel: %d strata, %d treatments, %d groups, %s/%s.",
            strata_info.n_strata,
            strata_info.n_treatment,
            self._group_table.n_groups,
            self._entry.family.value,
            self._entry.link.value,
        )

    # ---- Read-only views -------------------------------------------

    @property
    def design(self) -> StructuralDesign:
        return self._design

    @property
    def strata_info(self) -> StrataInfo:
        return self._strata_info

    @property
    def group_table(self) -> GroupTable:
        return self._group_table

    @property
    def entry(self) -> FamilyLinkEntry:
        return self._entry

    @property
    def priors(self) -> ModelPriors:
        return self._priors

    @property
    def treatment_codes(self) -> np.ndarray:
        return self._treatment_codes.copy()

    @property
    def treatment_names(self) -> tuple[str, ...]:
        return self._treatment_names

    @property
    def time_points(self) -> np.ndarray | None:
        return None if self._time_points is None else self._time_points.copy()

    @property
    def is_survival(self) -> bool:
        return self._entry.is_survival

    def __repr__(self) -> str:
        strata = ", ".join(f"{k}={v!r}" for k, v in self._strata_info.to_strings().items())
        return (
            f"PStrataModel(strata=[{strata}], family={self._entry.family.value!r}, "
            f"link={self._entry.link.value!r}, n_obs={self._design.n_obs})"
        )

    # ---- Pipeline --------------------------------------------------

    def synthesize(self) -> SynthesizedModel:
        """Generate the program and data payload of this model."""
        return synthesize(
            self._group_table,
            self._entry,
            self._priors,
            self._design,
            treatment_codes=self._treatment_codes,
            time_points=self._time_points,
        )

    def fit(
        self,
        engine: str | InferenceEngine | None = None,
        **sampler_kwargs: Any,
    ) -> PStrataFit:
        """Sample the posterior.

        Args:
            engine: Engine name or instance; ``None`` uses the
                configured default (see :func:`~pstrata.get_engine`).
            **sampler_kwargs: Forwarded to the engine's ``sample``
                (e.g. ``chains``, ``iter_warmup``, ``iter_sampling``,
                ``seed``).

        Returns:
            A :class:`PStrataFit`.

        Raises:
            InferenceEngineError: If the engine fails or returns
                incomplete draws.
        """
        program = self.synthesize()
        draws = run_engine(
            engine,
            program.program,
            program.data,
            required=program.outputs,
            **sampler_kwargs,
        )
        return PStrataFit(model=self, program=program, draws=draws)


@dataclass(frozen=True, eq=False)
class PStrataFit(_DictAccessMixin):
    """Posterior draws of a fitted :class:`PStrataModel`.

    Attributes:
        model: The fitted model.
        program: The program that was sampled.
        draws: Mapping of variable name to draws, iteration axis first.
    """

    _EXCLUDE_FROM_DICT: ClassVar[frozenset[str]] = frozenset({"model"})
    _SERIALIZERS: ClassVar[dict[str, Any]] = {
        "program": lambda p: p.to_dict(),
        "draws": dict,
    }

    model: PStrataModel
    program: SynthesizedModel
    draws: Mapping[str, np.ndarray]

    @property
    def n_iterations(self) -> int:
        return int(next(iter(self.draws[o] for o in self.program.outputs)).shape[0])

    def outcome(self, type: str = "probability") -> PosteriorOutcome:
        """Mean outcome per (stratum, treatment[, time]) and iteration.

        Args:
            type: ``"probability"`` for the survival probability or
                ``"RACE"`` for the restricted mean survival time.  Only
                meaningful for survival families; other families
                always return ``mean_effect``.

        Raises:
            ValueError: For an unknown *type*.
        """
        if type not in _OUTCOME_TYPES:
            raise ValueError(f"type must be one of {list(_OUTCOME_TYPES)}, got {type!r}.")
        model = self.model
        if not model.is_survival:
            return reshape(
                self.draws["mean_effect"],
                model.group_table,
                model.strata_info.names,
                model.treatment_names,
            )
        key = "mean_surv_prob" if type == "probability" else "mean_RACE"
        return reshape(
            self.draws[key],
            model.group_table,
            model.strata_info.names,
            model.treatment_names,
            time_points=self.program.time_points,
        )
