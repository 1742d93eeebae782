# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for FinancialCalculations.

Covers NPV, IRR by bracketed bisection, equity multiple, payback, terminal
value and the DSCR / LTV ratios, including the cases where a metric is
undefined and reported as None.
"""

import numpy as np
import pytest

from capstack.core import FinancialCalculations
from capstack.core.primitives import ValuationSettings


class TestNpv:
    """Net present value with Year 0 undiscounted."""

    def test_npv_at_irr_is_zero(self):
        npv = FinancialCalculations.calculate_npv([-100.0, 110.0], 0.10)
        assert abs(npv) < 1e-9

    def test_year_zero_is_not_discounted(self):
        npv = FinancialCalculations.calculate_npv([-100.0, 0.0, 121.0], 0.10)
        assert abs(npv - 0.0) < 1e-9

    def test_empty_series(self):
        assert FinancialCalculations.calculate_npv([], 0.10) == 0.0

    def test_rate_at_minus_one_is_undefined(self):
        assert FinancialCalculations.calculate_npv([-100.0, 110.0], -1.0) is None


class TestIrr:
    """IRR edge cases and accuracy."""

    def test_simple_irr(self):
        irr = FinancialCalculations.calculate_irr([-100.0, 110.0])
        assert abs(irr - 0.10) < 1e-6

    def test_multi_period_irr(self):
        irr = FinancialCalculations.calculate_irr([-100.0, 50.0, 50.0, 50.0])
        assert irr == pytest.approx(0.2338, abs=1e-3)
        npv = FinancialCalculations.calculate_npv([-100.0, 50.0, 50.0, 50.0], irr)
        assert abs(npv) < 1e-4

    def test_accepts_numpy_arrays(self):
        irr = FinancialCalculations.calculate_irr(np.array([-100.0, 110.0]))
        assert abs(irr - 0.10) < 1e-6

    def test_negative_irr(self):
        irr = FinancialCalculations.calculate_irr([-100.0, 90.0])
        assert abs(irr - (-0.10)) < 1e-6

    def test_no_sign_change_returns_none(self):
        assert FinancialCalculations.calculate_irr([100.0, 50.0]) is None
        assert FinancialCalculations.calculate_irr([-100.0, -50.0]) is None
        assert FinancialCalculations.calculate_irr([0.0, 0.0]) is None

    def test_too_few_flows_returns_none(self):
        assert FinancialCalculations.calculate_irr([]) is None
        assert FinancialCalculations.calculate_irr([-100.0]) is None

    def test_unbracketed_series_returns_none(self):
        # NPV = 100 * (1 - 1/(1+r))^2 never crosses zero inside the bracket
        assert FinancialCalculations.calculate_irr([100.0, -200.0, 100.0]) is None

    def test_custom_bracket(self):
        settings = ValuationSettings(irr_lower_bound=0.5, irr_upper_bound=2.0)
        # True IRR of 10% lies outside the narrowed bracket
        assert FinancialCalculations.calculate_irr([-100.0, 110.0], settings) is None

    def test_invalid_bracket_rejected(self):
        with pytest.raises(ValueError):
            ValuationSettings(irr_lower_bound=0.5, irr_upper_bound=0.1)


class TestEquityMultipleAndPayback:
    def test_equity_multiple(self):
        assert FinancialCalculations.calculate_equity_multiple([-100.0, 150.0]) == 1.5

    def test_equity_multiple_sums_all_flows(self):
        em = FinancialCalculations.calculate_equity_multiple([-100.0, 50.0, -50.0, 300.0])
        assert abs(em - 350.0 / 150.0) < 1e-12

    def test_equity_multiple_without_investment(self):
        assert FinancialCalculations.calculate_equity_multiple([10.0, 20.0]) is None

    def test_equity_multiple_without_returns(self):
        assert FinancialCalculations.calculate_equity_multiple([-100.0]) == 0.0

    def test_payback_interpolates(self):
        payback = FinancialCalculations.calculate_payback_period([-100.0, 60.0, 60.0])
        assert abs(payback - (1 + 40.0 / 60.0)) < 1e-12

    def test_payback_exact_year(self):
        assert FinancialCalculations.calculate_payback_period([-100.0, 50.0, 50.0]) == 2.0

    def test_payback_immediate(self):
        assert FinancialCalculations.calculate_payback_period([50.0, 10.0]) == 0.0

    def test_payback_never(self):
        assert FinancialCalculations.calculate_payback_period([-100.0, 10.0, 10.0]) is None


class TestTerminalValueAndRatios:
    def test_gordon_growth(self):
        tv = FinancialCalculations.calculate_terminal_value(100.0, 0.10, 0.02)
        assert abs(tv - 1275.0) < 1e-9

    def test_growth_at_or_above_rate_is_undefined(self):
        assert FinancialCalculations.calculate_terminal_value(100.0, 0.05, 0.05) is None
        assert FinancialCalculations.calculate_terminal_value(100.0, 0.05, 0.06) is None

    def test_dscr(self):
        assert abs(FinancialCalculations.calculate_dscr(120.0, 100.0) - 1.2) < 1e-12

    def test_dscr_without_debt_service(self):
        assert FinancialCalculations.calculate_dscr(100.0, 0.0) is None

    def test_dscr_negative_noi(self):
        assert FinancialCalculations.calculate_dscr(-50.0, 100.0) == -0.5

    def test_ltv(self):
        assert FinancialCalculations.calculate_ltv(60.0, 100.0) == 0.6
        assert FinancialCalculations.calculate_ltv(0.0, 100.0) == 0.0

    def test_ltv_without_value(self):
        assert FinancialCalculations.calculate_ltv(50.0, 0.0) is None
