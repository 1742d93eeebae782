# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

"""Loan amortization calculations"""

import logging
from typing import Tuple

import numpy as np
import pandas as pd
from pydantic import Field
from pyxirr import pmt

from ..core.primitives import (
    AmortizationTypeEnum,
    Model,
    PositiveInt,
    PostIOAmortizationEnum,
)
from .tranche import DebtTranche

logger = logging.getLogger(__name__)

# Balances below this are treated as fully repaid
_BALANCE_EPSILON = 1e-9


class LoanAmortization(Model):
    """
    Period-by-period amortization schedule for a single tranche.

    The same engine produces the annual schedule (``periods_per_year=1``) and
    the monthly schedule used by covenant monitoring (``periods_per_year=12``).
    Interest for a period is charged on the balance at the start of the
    period at ``interest_rate / periods_per_year``.

    Handles four phases:
    1. Before ``start_year`` and after maturity: no balance
    2. Interest-only periods: no principal reduction
    3. Amortizing periods: straight-line or level payment over the remaining
       amortization periods, recomputed from the current balance
    4. Maturity: remaining balance repaid (balloon / bullet)

    Refinancing happens in the last period of ``refinance_at_year``: the
    repaid share of the balance is retired and any replacement principal is
    added to the ending balance.

    Attributes:
        tranche: Tranche to amortize
        periods_per_year: 1 for annual, 12 for monthly

    Examples:
        >>> tranche = DebtTranche(id="senior", principal=1_000_000.0,
        ...                       interest_rate=0.06, term_years=10)
        >>> schedule, summary = LoanAmortization(tranche=tranche).amortization_schedule(10)
        >>> round(schedule["End Balance"].iloc[-1], 6)
        0.0
    """

    tranche: DebtTranche
    periods_per_year: PositiveInt = Field(
        default=1, ge=1, description="Schedule periods per year (1 = annual, 12 = monthly)"
    )

    def _scheduled_principal(
        self,
        periods_since_start: int,
        balance: float,
        periodic_rate: float,
        interest: float,
        io_periods: int,
        amortization_periods: int,
    ) -> float:
        """Principal due in a regular (non-maturity, non-refinance) period."""
        tranche = self.tranche
        if balance <= _BALANCE_EPSILON:
            return 0.0
        if tranche.amortization_type == AmortizationTypeEnum.BULLET:
            return 0.0
        if periods_since_start < io_periods:
            return 0.0
        if amortization_periods <= 0:
            # Interest-only without an amortization period: bullet at maturity
            return 0.0

        remaining_periods = amortization_periods - periods_since_start
        if remaining_periods <= 1:
            return balance

        if (
            tranche.amortization_type == AmortizationTypeEnum.INTEREST_ONLY
            and tranche.post_io_amortization == PostIOAmortizationEnum.STRAIGHT_LINE
        ):
            return balance / remaining_periods

        if periodic_rate > 0:
            # Level payment over the remaining amortization periods
            payment = pmt(periodic_rate, remaining_periods, balance) * -1
            return min(payment - interest, balance)
        return balance / remaining_periods

    def amortization_schedule(self, horizon_years: int) -> Tuple[pd.DataFrame, pd.Series]:
        """
        Generate the amortization schedule over the analysis horizon.

        Args:
            horizon_years: Number of schedule years to produce

        Returns:
            Tuple containing:
            - DataFrame indexed by Period (0-based) with columns:
                - Year: Schedule year of the period
                - Begin Balance: Balance after any funding at period start
                - Interest: Interest charged on the beginning balance
                - Principal: Principal repaid (scheduled, balloon or refinance payoff)
                - End Balance: Balance carried to the next period
                - Payment: Interest + Principal
                - Funding: New principal funded at period start
                - Refinance Proceeds: Replacement principal originated at refinance
                - Origination Fee: Fee on principal originated in the period
                - Exit Fee: Fee on balance retired at maturity or refinance
            - Series with summary statistics:
                - Total Principal Paid
                - Total Interest Paid
                - Total Funded: Initial funding plus refinance principal
                - Final Balance
                - Floored Periods: Periods where a negative balance was floored
        """
        tranche = self.tranche
        ppy = self.periods_per_year
        total_periods = horizon_years * ppy
        periodic_rate = tranche.interest_rate / ppy

        start = tranche.start_year * ppy
        end = tranche.end_year * ppy
        io_periods = tranche.effective_io_years * ppy
        amortization_periods = (tranche.amortization_years or 0) * ppy
        refinance_period = (
            (tranche.refinance_at_year + 1) * ppy - 1
            if tranche.refinance_at_year is not None
            else None
        )

        begin_balances = np.zeros(total_periods)
        interest_paid = np.zeros(total_periods)
        principal_paid = np.zeros(total_periods)
        end_balances = np.zeros(total_periods)
        funding = np.zeros(total_periods)
        refinance_proceeds = np.zeros(total_periods)
        origination_fees = np.zeros(total_periods)
        exit_fees = np.zeros(total_periods)
        floored_periods = 0

        balance = 0.0
        for i in range(total_periods):
            if not tranche.is_funded or not (start <= i < end):
                balance = 0.0
                continue

            if i == start:
                balance = tranche.principal
                funding[i] = tranche.principal
                origination_fees[i] = tranche.principal * tranche.origination_fee_pct

            begin_balance = balance
            interest = begin_balance * periodic_rate
            new_principal = 0.0

            if refinance_period is not None and i == refinance_period:
                # Refinance: retire the repaid share, originate any replacement loan
                repaid = begin_balance * tranche.refinance_amount_pct
                if i == end - 1:
                    repaid = begin_balance
                new_principal = tranche.refinance_principal or 0.0
                principal = repaid
                exit_fees[i] = repaid * tranche.exit_fee_pct
                refinance_proceeds[i] = new_principal
                origination_fees[i] += new_principal * tranche.origination_fee_pct
            elif i == end - 1:
                # Maturity: bullet, balloon or final amortizing payment
                principal = begin_balance
                exit_fees[i] = begin_balance * tranche.exit_fee_pct
            else:
                principal = self._scheduled_principal(
                    i - start,
                    begin_balance,
                    periodic_rate,
                    interest,
                    io_periods,
                    amortization_periods,
                )

            ending_balance = begin_balance - principal + new_principal
            if ending_balance < -_BALANCE_EPSILON:
                floored_periods += 1
                logger.warning(
                    f"Tranche '{tranche.id}': negative balance {ending_balance:,.2f} "
                    f"floored to 0 in period {i}"
                )
            ending_balance = max(0.0, ending_balance)

            begin_balances[i] = begin_balance
            interest_paid[i] = interest
            principal_paid[i] = principal
            end_balances[i] = ending_balance
            balance = ending_balance

        df = pd.DataFrame(
            {
                "Period": np.arange(total_periods),
                "Year": np.arange(total_periods) // ppy,
                "Begin Balance": begin_balances,
                "Interest": interest_paid,
                "Principal": principal_paid,
                "End Balance": end_balances,
                "Payment": interest_paid + principal_paid,
                "Funding": funding,
                "Refinance Proceeds": refinance_proceeds,
                "Origination Fee": origination_fees,
                "Exit Fee": exit_fees,
            }
        )
        df.set_index("Period", inplace=True)

        summary = pd.Series(
            {
                "Total Principal Paid": principal_paid.sum(),
                "Total Interest Paid": interest_paid.sum(),
                "Total Funded": funding.sum() + refinance_proceeds.sum(),
                "Final Balance": end_balances[-1] if total_periods else 0.0,
                "Floored Periods": floored_periods,
            }
        )

        return df, summary
