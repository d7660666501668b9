"""
tests/test_trace.py
===================
Pytest test suite for TraceTable and TraceParser.

Data fixtures
-------------
  ramp_100.csv
      Comma-separated, one '#' comment line, header ``state,x,y``.
      100 rows: state = 0, 1000, ..., 99000;  x = 1..100;  y = 100..1

  beast.log
      Tab-separated BEAST log, two '#' comment lines, a blank line between
      data rows.  Header: state posterior likelihood clock.rate
      treeModel.rootHeight; 6 rows, state = 0..5000 step 1000.
"""

import io
import logging
import os
import sys

import numpy as np
import pytest

_DATA_DIR = os.path.join(os.path.dirname(__file__), "data")

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from phylotrace._errors import NonNumericFieldError, SchemaMismatchError
from phylotrace._trace import TraceTable, column
from phylotrace._trace_parser import TraceParser, parse_trace, read_trace


# ======================================================================== #
# Fixtures                                                                  #
# ======================================================================== #


@pytest.fixture(scope="module")
def ramp():
    return read_trace(os.path.join(_DATA_DIR, "ramp_100.csv"))


@pytest.fixture(scope="module")
def beast():
    return read_trace(os.path.join(_DATA_DIR, "beast.log"), delimiter="\t")


@pytest.fixture
def small():
    return TraceTable(
        ["mu", "kappa"],
        [[0.1, 2.0], [0.2, 2.5], [0.3, 3.0], [0.4, 3.5]],
        steps=[0, 10, 20, 30],
    )


# ======================================================================== #
# 1. TraceTable                                                             #
# ======================================================================== #


class TestTraceTable:
    def test_shape(self, small):
        assert small.n_rows == 4
        assert len(small) == 4
        assert small.n_parameters == 2
        assert small.parameters == ("mu", "kappa")

    def test_column(self, small):
        np.testing.assert_array_equal(small.column("kappa"), [2.0, 2.5, 3.0, 3.5])
        np.testing.assert_array_equal(column(small, "mu"), small["mu"])

    def test_column_read_only(self, small):
        with pytest.raises(ValueError):
            small.column("mu")[0] = 9.0

    def test_unknown_column(self, small):
        with pytest.raises(KeyError):
            small.column("omega")

    def test_contains(self, small):
        assert "mu" in small
        assert "omega" not in small

    def test_row(self, small):
        assert small.row(1) == {"mu": 0.2, "kappa": 2.5}

    def test_rows_view(self, small):
        tail = small.rows(1)
        assert tail.n_rows == 3
        assert tail.offset == 1
        assert list(tail.steps) == [10, 20, 30]
        assert np.shares_memory(tail.data, small.data)
        assert small.n_rows == 4

    def test_rows_offset_accumulates(self, small):
        assert small.rows(1).rows(2).offset == 3
        assert list(small.rows(1).rows(2).original_indices) == [3]

    def test_original_indices(self, small):
        assert list(small.original_indices) == [0, 1, 2, 3]

    def test_select(self, small):
        only = small.select(["kappa"])
        assert only.parameters == ("kappa",)
        np.testing.assert_array_equal(only.column("kappa"), small.column("kappa"))
        with pytest.raises(KeyError):
            small.select(["kappa", "omega"])

    def test_input_copied(self):
        values = np.array([[1.0], [2.0]])
        table = TraceTable(["x"], values)
        values[0, 0] = 99.0
        assert table.column("x")[0] == 1.0

    def test_empty_table(self):
        table = TraceTable(["x", "y"], [])
        assert table.n_rows == 0
        assert table.data.shape == (0, 2)

    @pytest.mark.parametrize(
        "parameters,values",
        [
            (["x", "y"], [[1.0], [2.0]]),
            (["x", "x"], [[1.0, 2.0]]),
            (["x", ""], [[1.0, 2.0]]),
        ],
    )
    def test_invalid(self, parameters, values):
        with pytest.raises(ValueError):
            TraceTable(parameters, values)

    def test_steps_length_checked(self):
        with pytest.raises(ValueError):
            TraceTable(["x"], [[1.0], [2.0]], steps=[0])


# ======================================================================== #
# 2. Parsing files                                                          #
# ======================================================================== #


class TestParseFiles:
    def test_ramp_shape(self, ramp):
        assert ramp.parameters == ("x", "y")
        assert ramp.n_rows == 100

    def test_ramp_values(self, ramp):
        np.testing.assert_array_equal(ramp.column("x"), np.arange(1, 101))
        np.testing.assert_array_equal(ramp.column("y"), np.arange(100, 0, -1))

    def test_ramp_steps(self, ramp):
        assert ramp.steps[0] == 0
        assert ramp.steps[-1] == 99000
        assert ramp.steps.dtype == np.int64

    def test_beast_tab_delimited(self, beast):
        assert beast.parameters == (
            "posterior",
            "likelihood",
            "clock.rate",
            "treeModel.rootHeight",
        )
        assert beast.n_rows == 6
        assert list(beast.steps) == [0, 1000, 2000, 3000, 4000, 5000]

    def test_beast_scientific_notation(self, beast):
        assert abs(beast.column("clock.rate")[1] - 1.1e-3) < 1e-15

    def test_read_from_handle(self):
        table = read_trace(io.StringIO("state,x\n0,1.5\n10,2.5\n"))
        assert list(table.column("x")) == [1.5, 2.5]

    def test_summary_logged(self, caplog):
        with caplog.at_level(logging.INFO, logger="phylotrace.trace"):
            parse_trace("state,x,y\n0,1,2\n")
        assert "1 rows x 2 parameters" in caplog.text


# ======================================================================== #
# 3. Step column                                                            #
# ======================================================================== #


class TestStepColumn:
    @pytest.mark.parametrize("name", ["state", "STATE", "Gen", "generation", "iteration", "sample", "step"])
    def test_auto_detected(self, name):
        table = parse_trace(f"{name},x\n0,1\n5,2\n")
        assert table.parameters == ("x",)
        assert list(table.steps) == [0, 5]

    def test_auto_only_leading_column(self):
        table = parse_trace("x,state\n1,0\n")
        assert table.parameters == ("x", "state")
        assert table.steps is None

    def test_disabled(self):
        table = TraceParser(step_column=None).parse("state,x\n0,1\n")
        assert table.parameters == ("state", "x")
        assert table.steps is None

    def test_explicit(self):
        table = TraceParser(step_column="gen").parse("x,gen,y\n1,10,2\n")
        assert table.parameters == ("x", "y")
        assert list(table.steps) == [10]

    def test_explicit_missing(self):
        with pytest.raises(SchemaMismatchError):
            TraceParser(step_column="iter").parse("x,y\n1,2\n")

    def test_integral_float_accepted(self):
        assert list(parse_trace("state,x\n1e3,2\n").steps) == [1000]

    def test_fractional_step_rejected(self):
        with pytest.raises(NonNumericFieldError) as info:
            parse_trace("state,x\n1.5,2\n")
        assert info.value.column == "state"

    @pytest.mark.parametrize("token", ["99999999999999999999", "-99999999999999999999", "1e30"])
    def test_out_of_int64_range(self, token):
        with pytest.raises(NonNumericFieldError) as info:
            parse_trace(f"state,x\n0,1\n{token},2\n")
        assert info.value.line == 3
        assert info.value.column == "state"
        assert "out of range" in str(info.value)

    def test_int64_max_accepted(self):
        table = parse_trace("state,x\n9223372036854775807,1\n")
        assert table.steps[0] == np.iinfo(np.int64).max


# ======================================================================== #
# 4. Malformed logs                                                         #
# ======================================================================== #


class TestMalformed:
    def test_wrong_field_count(self):
        with pytest.raises(SchemaMismatchError) as info:
            parse_trace("a,b\n1,2\n3\n")
        assert info.value.line == 3

    def test_non_numeric(self):
        with pytest.raises(NonNumericFieldError) as info:
            parse_trace("# comment\na,b\n1,x\n")
        err = info.value
        assert err.line == 3
        assert err.column == "b"
        assert err.token == "x"
        assert "in column 'b'" in str(err)
        assert isinstance(err, ValueError)

    def test_empty_field(self):
        with pytest.raises(NonNumericFieldError):
            parse_trace("a,b\n1,\n")

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "# only comments\n\n",
            "a,a\n1,2\n",
            "a,,b\n1,2,3\n",
            "state\n0\n",
        ],
    )
    def test_bad_header(self, text):
        with pytest.raises(SchemaMismatchError):
            parse_trace(text)

    def test_header_only(self, caplog):
        with caplog.at_level(logging.WARNING, logger="phylotrace.trace"):
            table = parse_trace("state,x\n")
        assert table.n_rows == 0
        assert "no samples" in caplog.text

    def test_quoted_header_names(self):
        table = parse_trace('"a,b",c\n1,2\n')
        assert table.parameters == ("a,b", "c")

    def test_custom_comment(self):
        table = TraceParser(delimiter="\t", comment="[").parse("[ID: 42]\nGen\tLnL\n1\t-10.5\n")
        assert table.parameters == ("LnL",)
        assert table.column("LnL")[0] == -10.5
