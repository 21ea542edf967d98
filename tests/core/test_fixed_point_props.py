"""Property tests for fixed-point rounding direction."""

from __future__ import annotations

import importlib.util

import pytest

if importlib.util.find_spec("hypothesis") is None:  # pragma: no cover
    pytest.skip("hypothesis not installed", allow_module_level=True)

import hypothesis.strategies as st
from hypothesis import given, settings

from perpmarket.core.fixed_point import (
    MAX_NATURAL_EXPONENT,
    MIN_NATURAL_EXPONENT,
    ONE,
    div_down,
    div_up,
    exp_down,
    exp_up,
    mul_down,
    mul_up,
)

amounts = st.integers(min_value=0, max_value=10**30)
positive = st.integers(min_value=1, max_value=10**30)
exponents = st.integers(min_value=MIN_NATURAL_EXPONENT, max_value=MAX_NATURAL_EXPONENT)


@given(a=amounts, b=amounts)
def test_mul_up_is_mul_down_or_one_more(a, b):
    assert mul_up(a, b) - mul_down(a, b) in (0, 1)
    assert mul_down(a, b) * ONE <= a * b <= mul_up(a, b) * ONE


@given(a=amounts, b=positive)
def test_div_up_is_div_down_or_one_more(a, b):
    assert div_up(a, b) - div_down(a, b) in (0, 1)
    assert div_down(a, b) * b <= a * ONE <= div_up(a, b) * b


@settings(max_examples=200, deadline=None)
@given(x=exponents)
def test_exp_brackets(x):
    assert exp_up(x) - exp_down(x) in (0, 1)


@settings(max_examples=200, deadline=None)
@given(x=exponents, y=exponents)
def test_exp_monotone(x, y):
    lo, hi = sorted((x, y))
    assert exp_down(lo) <= exp_down(hi)
    assert exp_up(lo) <= exp_up(hi)
