"""Formatted ASCII table display utilities.

Three tables, all 80 columns wide:

* :func:`print_strata_table`: the declared strata and the group that
  governs each (stratum, treatment) cell, so the effect of exclusion
  restrictions on parameter sharing is visible at a glance.
* :func:`print_family_table`: the family/link registry.
* :func:`print_outcome_summary`: posterior summaries of an outcome
  array, one row per (stratum, treatment[, time]).
"""

from __future__ import annotations

import textwrap
from collections.abc import Sequence
from typing import TYPE_CHECKING

import numpy as np

from .families import FamilyLinkEntry, registry_entries
from .outcome import SUMMARY_COLUMNS, PosteriorOutcome, summarize
from .strata import WILDCARD, StrataInfo, enumerate_groups

if TYPE_CHECKING:
    from .model import PStrataModel


def _truncate(name: str, max_len: int) -> str:
    """Truncate *name* to *max_len*, appending ``'...'`` if needed."""
    if len(name) <= max_len:
        return name
    return name[: max_len - 3] + "..."


def _wrap(text: str, width: int = 80, indent: int = 2) -> str:
    """Word-wrap *text* to *width*, indenting continuation lines."""
    return textwrap.fill(
        text,
        width=width,
        subsequent_indent=" " * indent,
        break_long_words=False,
        break_on_hyphens=False,
    )


def _print_title(title: str, width: int) -> None:
    print("=" * width)
    for line in textwrap.wrap(title, width=width - 2):
        print(f"{line:^{width}}")
    print("=" * width)


def print_strata_table(
    strata: StrataInfo | PStrataModel,
    treatment_names: Sequence[str] | None = None,
    *,
    title: str = "Principal Strata",
) -> None:
    """Print the strata and their group assignment.

    Each cell shows ``D=<value>`` (``D=?`` for a wildcard) and the
    group id that governs it.  Strata marked ``ER`` are
    exclusion-restricted.

    Args:
        strata: A :class:`StrataInfo` or a fitted-ready
            :class:`~pstrata.model.PStrataModel`.
        treatment_names: Column labels; defaults to the model's
            treatment levels or ``0..Z-1``.
        title: Title for the output table.
    """
    if isinstance(strata, StrataInfo):
        info = strata
        table = enumerate_groups(info)
    else:
        info = strata.strata_info
        table = strata.group_table
        if treatment_names is None:
            treatment_names = strata.treatment_names
    if treatment_names is None:
        treatment_names = [str(z) for z in range(info.n_treatment)]

    W = 80
    lw = 16  # stratum label column width
    cw = max(12, (W - lw - 4) // max(info.n_treatment, 1))

    _print_title(title, W)
    header = f"{'Stratum':<{lw}}{'ER':<4}" + "".join(
        f"{_truncate('Z=' + str(z), cw - 1):>{cw}}" for z in treatment_names
    )
    print(header)
    print("-" * W)
    for s, (name, flag) in enumerate(zip(info.names, info.er)):
        cells = []
        for z in range(info.n_treatment):
            value = table.intermediate_of(s, z)
            shown = "?" if value is WILDCARD else str(value)
            cells.append(f"{f'D={shown} G{table.group_of(s, z)}':>{cw}}")
        print(f"{_truncate(name, lw - 1):<{lw}}{'yes' if flag else '':<4}" + "".join(cells))
    print("-" * W)
    print(
        f"  {info.n_strata} strata x {info.n_treatment} treatments -> "
        f"{table.n_groups} outcome groups"
    )
    print("=" * W)
    print()


def print_family_table(
    entries: Sequence[FamilyLinkEntry] | None = None,
    *,
    title: str = "Supported Families and Links",
) -> None:
    """Print registry entries (all of them by default).

    Args:
        entries: Entries to show; ``None`` shows the whole registry.
        title: Title for the output table.
    """
    if entries is None:
        entries = registry_entries()

    W = 80
    _print_title(title, W)
    print(
        f"{'Family':<18}{'Link':<10}{'Kernel':<16}{'Inverse link':<14}"
        f"{'Aux':<8}{'Aux domain':>14}"
    )
    print("-" * W)
    for e in entries:
        print(
            f"{e.family.value:<18}{e.link.value:<10}{e.kernel:<16}"
            f"{e.link_inverse:<14}{e.aux_name or '-':<8}"
            f"{e.aux_domain.value if e.aux_domain else '-':>14}"
        )
    print("=" * W)
    print()


def print_outcome_summary(
    outcome: PosteriorOutcome,
    *,
    title: str = "Posterior Outcome Summary",
    max_rows: int | None = None,
    digits: int = 3,
) -> None:
    """Print posterior summaries of *outcome*.

    Args:
        outcome: Reshaped posterior outcome.
        title: Title for the output table.
        max_rows: Truncate after this many rows (survival outcomes can
            have many time points); ``None`` prints all.
        digits: Decimal places.
    """
    frame = summarize(outcome)
    W = 80
    label_cols = list(outcome.dims[:-1])
    lw = 12 if len(label_cols) == 2 else 9  # label column width
    vw = (W - lw * len(label_cols)) // len(SUMMARY_COLUMNS)

    _print_title(title, W)
    print(
        "".join(f"{c:<{lw}}" for c in label_cols)
        + "".join(f"{c:>{vw}}" for c in SUMMARY_COLUMNS)
    )
    print("-" * W)

    shown = frame if max_rows is None else frame.head(max_rows)
    for _, row in shown.iterrows():
        labels = []
        for c in label_cols:
            value = row[c]
            text = f"{value:.{digits}g}" if isinstance(value, (float, np.floating)) else str(value)
            labels.append(f"{_truncate(text, lw - 1):<{lw}}")
        values = "".join(f"{row[c]:>{vw}.{digits}f}" for c in SUMMARY_COLUMNS)
        print("".join(labels) + values)

    hidden = len(frame) - len(shown)
    print("-" * W)
    if hidden > 0:
        print(f"  ... {hidden} more rows (use summarize() for the full table)")
    print(
        _wrap(
            f"  {outcome.n_iterations} posterior iterations; sd uses ddof=1, "
            "percentiles use linear interpolation.",
            width=W,
            indent=2,
        )
    )
    print("=" * W)
    print()
