"""Posterior outcome arrays: reshaping group draws and summarizing them.

The sampler reports draws per *group*.  :func:`reshape` scatters them
onto the (stratum, treatment) grid through the group table, so two
cells governed by the same group hold copies of the same draws.
:func:`summarize` turns the result into a tidy table.

Axis layout of :attr:`PosteriorOutcome.values`:

=========  =============================  =========================
Axis       Size                           Labels
=========  =============================  =========================
0          number of strata               stratum names
1          number of treatment levels     treatment names
2          number of time points          time points (survival only)
last       number of iterations           0 .. I-1
=========  =============================  =========================
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any, ClassVar

import numpy as np
import pandas as pd

from ._results import _DictAccessMixin
from .exceptions import DimensionMismatchError
from .strata import GroupTable

SUMMARY_COLUMNS: tuple[str, ...] = ("mean", "sd", "2.5%", "25%", "median", "75%", "97.5%")

_QUANTILES = np.array([0.025, 0.25, 0.5, 0.75, 0.975])


# ------------------------------------------------------------------ #
# PosteriorOutcome
# ------------------------------------------------------------------ #


@dataclass(frozen=True, eq=False)
class PosteriorOutcome(_DictAccessMixin):
    """Posterior draws laid out on the (stratum, treatment[, time]) grid.

    Attributes:
        values: Read-only array ``(S, Z, [T], I)``.
        strata: Stratum labels for axis 0.
        treatments: Treatment labels for axis 1.
        time_points: Time labels for axis 2, or ``None`` when the
            outcome has no time axis.
    """

    _SERIALIZERS: ClassVar[dict[str, Any]] = {"strata": list, "treatments": list}

    values: np.ndarray
    strata: tuple[str, ...]
    treatments: tuple[str, ...]
    time_points: np.ndarray | None = None

    def __post_init__(self) -> None:
        values = np.array(self.values, dtype=float, copy=True)
        strata = tuple(str(s) for s in self.strata)
        treatments = tuple(str(z) for z in self.treatments)
        times = None
        if self.time_points is not None:
            times = np.array(self.time_points, dtype=float, copy=True)
            times.setflags(write=False)

        expected_ndim = 3 if times is None else 4
        if values.ndim != expected_ndim:
            raise DimensionMismatchError(
                f"Expected a {expected_ndim}-D array, got shape {values.shape}."
            )
        label_sizes = [len(strata), len(treatments)]
        if times is not None:
            label_sizes.append(len(times))
        if list(values.shape[:-1]) != label_sizes:
            raise DimensionMismatchError(
                f"Array shape {values.shape} does not match label counts {label_sizes}."
            )

        values.setflags(write=False)
        object.__setattr__(self, "values", values)
        object.__setattr__(self, "strata", strata)
        object.__setattr__(self, "treatments", treatments)
        object.__setattr__(self, "time_points", times)

    @property
    def is_survival(self) -> bool:
        return self.time_points is not None

    @property
    def dims(self) -> tuple[str, ...]:
        """Axis names, ``("S", "Z", ["T",] "I")``."""
        return ("S", "Z", "T", "I") if self.is_survival else ("S", "Z", "I")

    @property
    def n_iterations(self) -> int:
        return self.values.shape[-1]

    def select(
        self,
        stratum: str | Sequence[str] | None = None,
        treatment: str | Sequence[str] | None = None,
        time: float | Sequence[float] | None = None,
        iteration: int | Sequence[int] | None = None,
    ) -> PosteriorOutcome:
        """Subset by labels, keeping every axis.

        Each argument takes one label or a sequence of labels; ``None``
        keeps the whole axis.  The order of the given labels is the
        order of the result.

        Raises:
            KeyError: For a label not present on its axis.
            ValueError: If *time* is given for an outcome without a
                time axis.
        """
        s_idx = _label_index(stratum, self.strata, "stratum")
        z_idx = _label_index(treatment, self.treatments, "treatment")
        i_idx = _iteration_index(iteration, self.n_iterations)

        if self.time_points is None:
            if time is not None:
                raise ValueError("This outcome has no time axis.")
            subset = self.values[np.ix_(s_idx, z_idx, i_idx)]
            times = None
        else:
            t_idx = _time_index(time, self.time_points)
            subset = self.values[np.ix_(s_idx, z_idx, t_idx, i_idx)]
            times = self.time_points[t_idx]

        return PosteriorOutcome(
            values=subset,
            strata=tuple(self.strata[i] for i in s_idx),
            treatments=tuple(self.treatments[i] for i in z_idx),
            time_points=times,
        )


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        return [value]
    return list(value)


def _label_index(value: Any, labels: tuple[str, ...], axis: str) -> list[int]:
    if value is None:
        return list(range(len(labels)))
    out = []
    for label in _as_list(value):
        try:
            out.append(labels.index(str(label)))
        except ValueError:
            raise KeyError(f"Unknown {axis} {label!r}; available: {list(labels)}.") from None
    return out


def _time_index(value: Any, times: np.ndarray) -> list[int]:
    if value is None:
        return list(range(len(times)))
    out = []
    for t in _as_list(value):
        hits = np.flatnonzero(np.isclose(times, float(t)))
        if hits.size == 0:
            raise KeyError(f"Time point {t!r} is not on the time axis.")
        out.append(int(hits[0]))
    return out


def _iteration_index(value: Any, n: int) -> list[int]:
    if value is None:
        return list(range(n))
    out = []
    for i in _as_list(value):
        i = int(i)
        if not -n <= i < n:
            raise KeyError(f"Iteration {i} out of range for {n} iterations.")
        out.append(i % n)
    return out


# ------------------------------------------------------------------ #
# Reshaping
# ------------------------------------------------------------------ #


def reshape(
    raw_draws: np.ndarray,
    group_table: GroupTable,
    strata_names: Sequence[str],
    treatment_names: Sequence[str],
    time_points: Sequence[float] | np.ndarray | None = None,
) -> PosteriorOutcome:
    """Scatter per-group draws onto the (stratum, treatment) grid.

    Args:
        raw_draws: ``(I, G)`` or, with *time_points*, ``(I, G, T)``.
        group_table: Table mapping each cell to its group.
        strata_names: One label per stratum.
        treatment_names: One label per treatment level.
        time_points: Time labels for survival outputs.

    Returns:
        :class:`PosteriorOutcome` with values ``(S, Z, [T], I)``.

    Raises:
        DimensionMismatchError: If the group or time axis of
            *raw_draws* disagrees with *group_table* / *time_points*,
            or a label count disagrees with the table.
    """
    draws = np.asarray(raw_draws, dtype=float)
    expected_ndim = 2 if time_points is None else 3
    if draws.ndim != expected_ndim:
        raise DimensionMismatchError(
            f"Expected {expected_ndim}-D draws, got shape {draws.shape}."
        )
    if draws.shape[1] != group_table.n_groups:
        raise DimensionMismatchError(
            f"Draws have {draws.shape[1]} groups but the group table has "
            f"{group_table.n_groups}."
        )
    if time_points is not None and draws.shape[2] != len(time_points):
        raise DimensionMismatchError(
            f"Draws have {draws.shape[2]} time points, expected {len(time_points)}."
        )
    if len(strata_names) != group_table.n_strata:
        raise DimensionMismatchError(
            f"Got {len(strata_names)} stratum names for {group_table.n_strata} strata."
        )
    if len(treatment_names) != group_table.n_treatment:
        raise DimensionMismatchError(
            f"Got {len(treatment_names)} treatment names for "
            f"{group_table.n_treatment} treatment levels."
        )

    # (I, G, ...) -> (G, ..., I)
    by_group = np.moveaxis(draws, 0, -1)
    values = by_group[group_table.group_matrix() - 1]

    return PosteriorOutcome(
        values=values,
        strata=tuple(strata_names),
        treatments=tuple(treatment_names),
        time_points=None if time_points is None else np.asarray(time_points, dtype=float),
    )


# ------------------------------------------------------------------ #
# Summaries
# ------------------------------------------------------------------ #


def _summary_stats(samples: np.ndarray) -> np.ndarray:
    """Summary statistics over the last axis -> ``(..., 7)``."""
    mean = samples.mean(axis=-1)
    sd = samples.std(axis=-1, ddof=1) if samples.shape[-1] > 1 else np.full(mean.shape, np.nan)
    q = np.moveaxis(np.quantile(samples, _QUANTILES, axis=-1), 0, -1)
    return np.concatenate([mean[..., None], sd[..., None], q], axis=-1)


def summary_array(outcome: PosteriorOutcome) -> np.ndarray:
    """Numeric summary of shape ``(S, Z, [T], 7)``.

    The last axis follows :data:`SUMMARY_COLUMNS`.
    """
    return _summary_stats(outcome.values)


def summarize(
    outcome: PosteriorOutcome,
    by: Sequence[str] | None = None,
) -> pd.DataFrame:
    """Tidy summary table of *outcome*.

    Args:
        outcome: The posterior outcome array.
        by: Label axes to group by, a subset of ``("S", "Z", "T")``.
            Axes not listed are pooled together with the iterations.
            ``None`` groups by every label axis.

    Returns:
        DataFrame with one column per grouping axis followed by
        :data:`SUMMARY_COLUMNS`; rows are ordered by the grouping axes
        in declaration order.

    Raises:
        ValueError: For an unknown or repeated axis name.
    """
    label_dims = outcome.dims[:-1]
    if by is None:
        by = label_dims
    else:
        by = tuple(by) if not isinstance(by, str) else (by,)
        unknown = [d for d in by if d not in label_dims]
        if unknown or len(set(by)) != len(by):
            raise ValueError(
                f"'by' must be distinct axes from {list(label_dims)}, got {list(by)}."
            )
    # Keep declaration order of the axes, not the order given.
    keep = [d for d in label_dims if d in by]
    pooled = [d for d in label_dims if d not in by]

    axis_of = {d: i for i, d in enumerate(outcome.dims)}
    order = [axis_of[d] for d in keep] + [axis_of[d] for d in pooled] + [axis_of["I"]]
    arranged = np.transpose(outcome.values, order)
    kept_shape = arranged.shape[: len(keep)]
    samples = arranged.reshape(*kept_shape, -1)
    stats = _summary_stats(samples).reshape(-1, len(SUMMARY_COLUMNS))

    labels = {
        "S": list(outcome.strata),
        "Z": list(outcome.treatments),
        "T": [] if outcome.time_points is None else outcome.time_points.tolist(),
    }
    if keep:
        index = pd.MultiIndex.from_product([labels[d] for d in keep], names=keep)
        frame = index.to_frame(index=False)
    else:
        frame = pd.DataFrame(index=range(1))
    for j, col in enumerate(SUMMARY_COLUMNS):
        frame[col] = stats[:, j]
    return frame
