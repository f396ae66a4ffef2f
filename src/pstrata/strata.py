"""Principal strata declarations and the stratum-group enumerator.

A principal stratum is a latent class of units defined by the values
the intermediate variable *D* would take under every treatment arm.
:class:`StrataInfo` records those values, one row per stratum and one
column per treatment level, together with a flag per stratum saying
whether the exclusion restriction (ER) holds in it.

From a ``StrataInfo`` the enumerator derives the :class:`GroupTable`:
one row per (stratum, treatment) cell carrying the cell's intermediate
value and the *group* whose outcome-model parameters govern it.

Collapsing rule
~~~~~~~~~~~~~~~
Cells are visited stratum by stratum, treatment by treatment, in
declaration order.  A cell reuses an earlier group only when

* its stratum is exclusion-restricted, and
* an earlier cell **of the same stratum** has the same concrete
  intermediate value (first match wins).

Every other cell opens a fresh group.  Wildcard cells never collapse:
the outcome is not observable there, so the group only ever serves
data generation.  Group ids start at 1 and are contiguous.

Compact notation
~~~~~~~~~~~~~~~~
``StrataInfo.from_strings`` accepts the notation used throughout the
package documentation: one character per treatment level, a digit for
a concrete intermediate value, ``?`` for a wildcard, and a trailing
``*`` for exclusion restriction::

    StrataInfo.from_strings({"n": "00*", "c": "01", "a": "11*"})
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, NamedTuple

import numpy as np
import pandas as pd

from ._typing import ArrayLike, CellValue
from .exceptions import ConfigurationError, SynthesisError

logger = logging.getLogger(__name__)

WILDCARD: CellValue = None
"""Cell value meaning "unconstrained / not observable under this arm"."""

_WILDCARD_CHAR = "?"
_ER_MARK = "*"

# Wildcard cells are written as -1 in integer views of the table.  Any
# observed intermediate value is non-negative, so -1 never matches.
_WILDCARD_CODE = -1


# ------------------------------------------------------------------ #
# StrataInfo
# ------------------------------------------------------------------ #


@dataclass(frozen=True)
class StrataInfo:
    """Declared principal strata.

    Attributes:
        names: Unique stratum names in declaration order.
        values: One row per stratum, one entry per treatment level:
            the intermediate value under that treatment, or
            :data:`WILDCARD`.
        er: One flag per stratum; ``True`` when the exclusion
            restriction holds in that stratum.

    Raises:
        ConfigurationError: On duplicate names, ragged rows, negative
            or non-integer values, or a flag count that does not match
            the number of strata.
    """

    names: tuple[str, ...]
    values: tuple[tuple[CellValue, ...], ...]
    er: tuple[bool, ...]

    def __post_init__(self) -> None:
        names = tuple(str(n) for n in self.names)
        values = tuple(tuple(row) for row in self.values)
        er = tuple(bool(flag) for flag in self.er)

        if not names:
            raise ConfigurationError("At least one stratum must be declared.")
        if len(set(names)) != len(names):
            dupes = sorted({n for n in names if names.count(n) > 1})
            raise ConfigurationError(f"Duplicate stratum names: {dupes}.")
        if len(values) != len(names):
            raise ConfigurationError(
                f"Got {len(values)} value rows for {len(names)} strata."
            )
        if len(er) != len(names):
            raise ConfigurationError(
                f"Got {len(er)} exclusion-restriction flags for "
                f"{len(names)} strata."
            )

        widths = {len(row) for row in values}
        if len(widths) != 1:
            raise ConfigurationError(
                "Every stratum must declare one value per treatment level; "
                f"got row lengths {sorted(widths)}."
            )
        if widths == {0}:
            raise ConfigurationError("At least one treatment level is required.")

        clean: list[tuple[CellValue, ...]] = []
        for name, row in zip(names, values):
            cells: list[CellValue] = []
            for value in row:
                if value is WILDCARD:
                    cells.append(WILDCARD)
                    continue
                if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
                    raise ConfigurationError(
                        f"Stratum {name!r}: intermediate values must be "
                        f"non-negative integers or None, got {value!r}."
                    )
                if value < 0:
                    raise ConfigurationError(
                        f"Stratum {name!r}: intermediate values must be "
                        f"non-negative, got {value}."
                    )
                cells.append(int(value))
            clean.append(tuple(cells))

        object.__setattr__(self, "names", names)
        object.__setattr__(self, "values", tuple(clean))
        object.__setattr__(self, "er", er)

    @property
    def n_strata(self) -> int:
        return len(self.names)

    @property
    def n_treatment(self) -> int:
        return len(self.values[0])

    @classmethod
    def from_strings(
        cls,
        strata: Mapping[str, str] | Sequence[str],
        er: Mapping[str, bool] | Sequence[bool] | Sequence[str] | None = None,
    ) -> StrataInfo:
        """Build strata from the compact string notation.

        Args:
            strata: Mapping of stratum name to its string, or a
                sequence of strings (names then default to the string
                without the ``*`` marker).
            er: Optional override of the ``*`` markers.  Either a
                mapping name -> flag, a sequence of flags aligned with
                *strata*, or a collection of the names of the
                exclusion-restricted strata.

        Returns:
            The parsed :class:`StrataInfo`.

        Raises:
            ConfigurationError: On unparseable strings or an *er*
                argument that does not line up with *strata*.
        """
        if isinstance(strata, str):
            strata = [strata]
        if isinstance(strata, Mapping):
            names = [str(k) for k in strata]
            codes = [str(v) for v in strata.values()]
        else:
            codes = [str(v) for v in strata]
            names = [c[:-1] if c.endswith(_ER_MARK) else c for c in codes]

        values: list[tuple[CellValue, ...]] = []
        marks: list[bool] = []
        for name, code in zip(names, codes):
            marked = code.endswith(_ER_MARK)
            body = code[:-1] if marked else code
            if not body:
                raise ConfigurationError(f"Stratum {name!r} declares no treatment levels.")
            cells: list[CellValue] = []
            for ch in body:
                if ch == _WILDCARD_CHAR:
                    cells.append(WILDCARD)
                elif ch.isdigit():
                    cells.append(int(ch))
                else:
                    raise ConfigurationError(
                        f"Stratum {name!r}: cannot parse {code!r}; use digits, "
                        f"{_WILDCARD_CHAR!r} for a wildcard and a trailing "
                        f"{_ER_MARK!r} for exclusion restriction."
                    )
            values.append(tuple(cells))
            marks.append(marked)

        if er is not None:
            marks = _resolve_er(names, er)

        return cls(names=tuple(names), values=tuple(values), er=tuple(marks))

    def to_strings(self) -> dict[str, str]:
        """Inverse of :meth:`from_strings`."""
        out: dict[str, str] = {}
        for name, row, flag in zip(self.names, self.values, self.er):
            body = "".join(_WILDCARD_CHAR if v is WILDCARD else str(v) for v in row)
            out[name] = body + (_ER_MARK if flag else "")
        return out


def _resolve_er(names: list[str], er: Any) -> list[bool]:
    """Normalise the *er* override of :meth:`StrataInfo.from_strings`."""
    if isinstance(er, Mapping):
        unknown = sorted(set(map(str, er)) - set(names))
        if unknown:
            raise ConfigurationError(f"ER flags given for unknown strata: {unknown}.")
        return [bool(er.get(n, False)) for n in names]
    if isinstance(er, str):
        er = [er]
    items = list(er)
    if items and all(isinstance(x, (bool, np.bool_)) for x in items):
        if len(items) != len(names):
            raise ConfigurationError(
                f"Got {len(items)} ER flags for {len(names)} strata."
            )
        return [bool(x) for x in items]
    unknown = sorted(set(map(str, items)) - set(names))
    if unknown:
        raise ConfigurationError(f"ER flags given for unknown strata: {unknown}.")
    chosen = set(map(str, items))
    return [n in chosen for n in names]


# ------------------------------------------------------------------ #
# GroupTable
# ------------------------------------------------------------------ #


class GroupRow(NamedTuple):
    """One (stratum, treatment) cell of the group table (0-based ids)."""

    stratum: int
    treatment: int
    intermediate: CellValue
    group: int


@dataclass(frozen=True)
class GroupTable:
    """Canonical (stratum, treatment, intermediate, group) table.

    A total function from (stratum, treatment) to exactly one
    (intermediate, group) pair.  Stratum and treatment ids are 0-based;
    group ids are 1-based.  Lookups go through a hash map built once at
    construction.

    Raises:
        ConfigurationError: If some cell is missing or appears twice.
    """

    rows: tuple[GroupRow, ...]
    n_strata: int
    n_treatment: int
    _index: dict[tuple[int, int], GroupRow] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        rows = tuple(GroupRow(*r) for r in self.rows)
        index: dict[tuple[int, int], GroupRow] = {}
        for row in rows:
            key = (row.stratum, row.treatment)
            if key in index:
                raise ConfigurationError(f"Cell (S={key[0]}, Z={key[1]}) appears twice.")
            index[key] = row
        expected = {
            (s, z) for s in range(self.n_strata) for z in range(self.n_treatment)
        }
        if set(index) != expected:
            missing = sorted(expected - set(index))
            extra = sorted(set(index) - expected)
            raise ConfigurationError(
                f"Group table is not total: missing cells {missing}, "
                f"unexpected cells {extra}."
            )
        object.__setattr__(self, "rows", rows)
        object.__setattr__(self, "_index", index)

    def __iter__(self) -> Iterator[GroupRow]:
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def group_ids(self) -> tuple[int, ...]:
        """Distinct group ids in first-appearance order."""
        return tuple(dict.fromkeys(row.group for row in self.rows))

    @property
    def n_groups(self) -> int:
        return len(self.group_ids)

    def group_of(self, stratum: int, treatment: int) -> int:
        """Group id governing cell (*stratum*, *treatment*)."""
        return self._index[(stratum, treatment)].group

    def intermediate_of(self, stratum: int, treatment: int) -> CellValue:
        return self._index[(stratum, treatment)].intermediate

    def group_matrix(self) -> np.ndarray:
        """``(S, Z)`` integer array of group ids."""
        out = np.empty((self.n_strata, self.n_treatment), dtype=np.int64)
        for row in self.rows:
            out[row.stratum, row.treatment] = row.group
        return out

    def intermediate_matrix(self) -> np.ndarray:
        """``(S, Z)`` integer array of intermediate values, wildcard = -1."""
        out = np.empty((self.n_strata, self.n_treatment), dtype=np.int64)
        for row in self.rows:
            out[row.stratum, row.treatment] = (
                _WILDCARD_CODE if row.intermediate is WILDCARD else row.intermediate
            )
        return out

    def group_strata(self) -> np.ndarray:
        """Stratum (0-based) owning each group, indexed by ``group - 1``.

        Raises:
            SynthesisError: If a group spans two strata or the group
                ids are not ``1..n_groups``.
        """
        n = self.n_groups
        owner = np.full(n, -1, dtype=np.int64)
        for row in self.rows:
            if not 1 <= row.group <= n:
                raise SynthesisError(
                    f"Group id {row.group} outside 1..{n}; ids must be contiguous."
                )
            prev = owner[row.group - 1]
            if prev not in (-1, row.stratum):
                raise SynthesisError(
                    f"Group {row.group} is shared by strata {prev} and "
                    f"{row.stratum}; groups must not span strata."
                )
            owner[row.group - 1] = row.stratum
        return owner

    def to_frame(
        self,
        strata_names: Sequence[str] | None = None,
        treatment_names: Sequence[str] | None = None,
    ) -> pd.DataFrame:
        """Tabular view with columns ``S, Z, D, G``.

        When names are given, ``S`` and ``Z`` hold the labels instead
        of the 0-based ids.  ``D`` is a nullable integer column with
        ``<NA>`` for wildcard cells.
        """
        frame = pd.DataFrame(
            {
                "S": [r.stratum for r in self.rows],
                "Z": [r.treatment for r in self.rows],
                "D": pd.array([r.intermediate for r in self.rows], dtype="Int64"),
                "G": [r.group for r in self.rows],
            }
        )
        if strata_names is not None:
            frame["S"] = [strata_names[s] for s in frame["S"]]
        if treatment_names is not None:
            frame["Z"] = [treatment_names[z] for z in frame["Z"]]
        return frame


# ------------------------------------------------------------------ #
# Enumerator
# ------------------------------------------------------------------ #


def enumerate_groups(
    strata_info: StrataInfo,
    n_treatment: int | None = None,
) -> GroupTable:
    """Enumerate the group table of *strata_info*.

    Single pass over the cells in declaration order.  Each stratum
    keeps its own value -> group map, so reuse never crosses strata and
    no earlier rows are rescanned.

    Args:
        strata_info: The declared strata.
        n_treatment: Treatment level count derived from the observed
            treatment variable, if known.

    Returns:
        The :class:`GroupTable`.

    Raises:
        ConfigurationError: If *n_treatment* disagrees with the number
            of treatment levels declared in *strata_info*.
    """
    if n_treatment is not None and n_treatment != strata_info.n_treatment:
        raise ConfigurationError(
            f"The strata declare {strata_info.n_treatment} treatment levels "
            f"but the treatment variable has {n_treatment}."
        )

    rows: list[GroupRow] = []
    next_group = 0
    for s, (cells, restricted) in enumerate(zip(strata_info.values, strata_info.er)):
        seen: dict[int, int] = {}
        for z, value in enumerate(cells):
            group = None
            if restricted and value is not WILDCARD:
                group = seen.get(value)
            if group is None:
                next_group += 1
                group = next_group
                if restricted and value is not WILDCARD:
                    seen[value] = group
            rows.append(GroupRow(s, z, value, group))

    table = GroupTable(
        rows=tuple(rows),
        n_strata=strata_info.n_strata,
        n_treatment=strata_info.n_treatment,
    )
    logger.debug(
        "Enumerated %d groups over %d strata x %d treatments.",
        table.n_groups,
        table.n_strata,
        table.n_treatment,
    )
    return table


# ------------------------------------------------------------------ #
# Treatment coding
# ------------------------------------------------------------------ #


def encode_treatment(
    z: ArrayLike,
    n_treatment: int,
) -> tuple[np.ndarray, tuple[str, ...]]:
    """Map an observed treatment vector onto codes ``0..n_treatment-1``.

    * A pandas Categorical uses its category order.
    * Values already in ``0..n_treatment-1`` are used verbatim.
    * Anything else is factorised in sorted order, with a warning that
      the levels were determined automatically.

    Args:
        z: Observed treatment values.
        n_treatment: Number of treatment levels declared by the strata.

    Returns:
        ``(codes, names)``: integer codes of shape ``(n,)`` and the
        level labels in code order.

    Raises:
        ConfigurationError: On missing values, or when the number of
            levels found differs from *n_treatment*.
    """
    series = pd.Series(z)
    if series.isna().any():
        raise ConfigurationError("The treatment variable contains missing values.")

    if isinstance(series.dtype, pd.CategoricalDtype):
        codes = series.cat.codes.to_numpy().astype(np.int64)
        names = tuple(str(c) for c in series.cat.categories)
    else:
        values = series.to_numpy()
        if values.dtype == bool:
            values = values.astype(np.int64)
        if np.issubdtype(values.dtype, np.number) and np.all(
            np.isin(values, np.arange(n_treatment))
        ):
            codes = values.astype(np.int64)
            names = tuple(str(i) for i in range(n_treatment))
        else:
            warnings.warn(
                "The treatment variable does not start from 0 or is not a "
                "categorical. Treatment levels are determined automatically "
                "in sorted order; pass a pandas Categorical to control them.",
                UserWarning,
                stacklevel=2,
            )
            uniques, inverse = np.unique(values, return_inverse=True)
            codes = inverse.astype(np.int64)
            names = tuple(str(u) for u in uniques)

    if len(names) != n_treatment:
        raise ConfigurationError(
            f"The strata declare {n_treatment} treatment levels but the "
            f"treatment variable has {len(names)}: {list(names)}."
        )
    return codes, names
