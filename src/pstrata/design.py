"""Structural design: the arrays a principal stratification model consumes.

Turning the two model formulas into design matrices is the job of an
external formula layer.  This module only fixes the shape of what
that layer hands over, and offers :meth:`StructuralDesign.from_frame`
for the common case where the columns already exist in a data frame.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
import pandas as pd

from ._compat import DataFrameLike, _ensure_pandas_df
from .exceptions import ConfigurationError


@dataclass(frozen=True, eq=False)
class StructuralDesign:
    """Response, treatment, intermediate and covariates of one dataset.

    Attributes:
        treatment: Observed treatment, shape ``(n,)``; coded later by
            :func:`~pstrata.strata.encode_treatment`.
        intermediate: Observed intermediate outcome, non-negative
            integers of shape ``(n,)``.
        response: Observed outcome, shape ``(n,)``.
        strata_covariates: Covariates of the stratum-membership model,
            ``(n, p_s)``; may have zero columns.
        outcome_covariates: Covariates of the outcome model,
            ``(n, p_y)``; may have zero columns.
        event: Censoring indicator for survival outcomes, 1 when the
            event was observed and 0 when right-censored.
        response_name: Label of the response, used in displays.
    """

    treatment: pd.Series
    intermediate: np.ndarray
    response: np.ndarray
    strata_covariates: pd.DataFrame
    outcome_covariates: pd.DataFrame
    event: np.ndarray | None = None
    response_name: str = "Y"

    def __post_init__(self) -> None:
        n = len(self.response)
        treatment = pd.Series(self.treatment).reset_index(drop=True)
        response = np.asarray(self.response)
        xs = pd.DataFrame(self.strata_covariates).reset_index(drop=True)
        xy = pd.DataFrame(self.outcome_covariates).reset_index(drop=True)

        for label, length in (
            ("treatment", len(treatment)),
            ("intermediate", len(self.intermediate)),
            ("strata_covariates", len(xs)),
            ("outcome_covariates", len(xy)),
        ):
            if length != n:
                raise ConfigurationError(
                    f"'{label}' has {length} rows but the response has {n}."
                )
        if n == 0:
            raise ConfigurationError("The design has no observations.")

        intermediate = np.asarray(self.intermediate)
        if intermediate.dtype == bool:
            intermediate = intermediate.astype(np.int64)
        if (
            not np.issubdtype(intermediate.dtype, np.number)
            or not np.all(np.isfinite(intermediate))
            or np.any(intermediate < 0)
            or not np.all(np.mod(intermediate, 1) == 0)
        ):
            raise ConfigurationError(
                "The intermediate outcome must be coded as non-negative integers."
            )

        for label, frame in (("strata_covariates", xs), ("outcome_covariates", xy)):
            if frame.shape[1] == 0:
                continue
            non_numeric = [
                str(c) for c in frame.columns if not pd.api.types.is_numeric_dtype(frame[c])
            ]
            if non_numeric:
                raise ConfigurationError(
                    f"'{label}' has non-numeric columns {non_numeric}; encode "
                    "them before building the design."
                )
            if frame.isna().to_numpy().any():
                raise ConfigurationError(f"'{label}' contains missing values.")

        event = self.event
        if event is not None:
            event = np.asarray(event)
            if len(event) != n:
                raise ConfigurationError(
                    f"'event' has {len(event)} rows but the response has {n}."
                )
            if not np.all(np.isin(event, [0, 1])):
                raise ConfigurationError("'event' must be a 0/1 indicator.")
            event = event.astype(np.int64)

        object.__setattr__(self, "treatment", treatment)
        object.__setattr__(self, "intermediate", intermediate.astype(np.int64))
        object.__setattr__(self, "response", response)
        object.__setattr__(self, "strata_covariates", xs)
        object.__setattr__(self, "outcome_covariates", xy)
        object.__setattr__(self, "event", event)

    @property
    def n_obs(self) -> int:
        return len(self.response)

    @classmethod
    def from_frame(
        cls,
        data: DataFrameLike,
        *,
        treatment: str,
        intermediate: str,
        response: str,
        strata_covariates: Sequence[str] = (),
        outcome_covariates: Sequence[str] = (),
        event: str | None = None,
    ) -> StructuralDesign:
        """Select the design columns from a pandas or Polars frame.

        Args:
            data: Source frame.
            treatment: Treatment column.
            intermediate: Intermediate-outcome column.
            response: Response column.
            strata_covariates: Covariate columns of the stratum model.
            outcome_covariates: Covariate columns of the outcome model.
            event: Censoring-indicator column (survival outcomes).

        Raises:
            ConfigurationError: If a named column is absent.
        """
        df = _ensure_pandas_df(data, name="data")
        wanted = [treatment, intermediate, response, *strata_covariates, *outcome_covariates]
        if event is not None:
            wanted.append(event)
        missing = [c for c in wanted if c not in df.columns]
        if missing:
            raise ConfigurationError(f"Columns not found in data: {missing}.")
        return cls(
            treatment=df[treatment],
            intermediate=df[intermediate].to_numpy(),
            response=df[response].to_numpy(),
            strata_covariates=df[list(strata_covariates)],
            outcome_covariates=df[list(outcome_covariates)],
            event=None if event is None else df[event].to_numpy(),
            response_name=str(response),
        )
