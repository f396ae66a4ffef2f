"""Tests for the display module."""

import numpy as np

from pstrata.display import (
    _truncate,
    print_family_table,
    print_outcome_summary,
    print_strata_table,
)
from pstrata.families import resolve
from pstrata.outcome import reshape
from pstrata.strata import StrataInfo, enumerate_groups


class TestTruncate:
    def test_short_name_unchanged(self):
        assert _truncate("abc", 10) == "abc"

    def test_long_name_truncated(self):
        result = _truncate("abcdefghijk", 10)
        assert len(result) == 10
        assert result.endswith("...")


def _lines(captured):
    return [line for line in captured.out.splitlines() if line]


class TestPrintStrataTable:
    def test_groups_and_wildcards(self, capsys):
        info = StrataInfo.from_strings({"n": "0?*", "c": "01", "a": "?1*"})
        print_strata_table(info, ["ctrl", "trt"])
        out = capsys.readouterr().out
        assert "Z=ctrl" in out and "Z=trt" in out
        assert "D=? G2" in out
        assert "D=1 G4" in out
        assert "3 strata x 2 treatments -> 6 outcome groups" in out

    def test_width(self, capsys):
        print_strata_table(StrataInfo.from_strings(["00*", "01", "11*"]))
        assert all(len(line) <= 80 for line in _lines(capsys.readouterr()))


class TestPrintFamilyTable:
    def test_lists_registry(self, capsys):
        print_family_table()
        out = capsys.readouterr().out
        assert "survival_cox" in out
        assert "inv_cauchit" in out

    def test_subset(self, capsys):
        print_family_table([resolve("binomial", "probit")], title="Chosen")
        out = capsys.readouterr().out
        assert "Chosen" in out
        assert "Phi" in out
        assert "gaussian" not in out


class TestPrintOutcomeSummary:
    def test_rows_and_width(self, capsys):
        table = enumerate_groups(StrataInfo.from_strings({"n": "00*", "c": "01", "a": "11*"}))
        rng = np.random.default_rng(0)
        outcome = reshape(rng.standard_normal((40, 4)), table, ("n", "c", "a"), ("0", "1"))
        print_outcome_summary(outcome)
        lines = _lines(capsys.readouterr())
        assert all(len(line) <= 80 for line in lines)
        assert any(line.startswith("c") for line in lines)
        assert any("40 posterior iterations" in line for line in lines)

    def test_max_rows(self, capsys):
        table = enumerate_groups(StrataInfo.from_strings({"n": "00*", "c": "01", "a": "11*"}))
        rng = np.random.default_rng(1)
        outcome = reshape(
            rng.uniform(size=(30, 4, 5)), table, ("n", "c", "a"), ("0", "1"), np.arange(5.0)
        )
        print_outcome_summary(outcome, max_rows=4)
        out = capsys.readouterr().out
        assert "26 more rows" in out
