# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for LoanAmortization.

Covers level-payment mortgages, balloons, interest-only and bullet loans,
delayed funding, refinancing and the monthly schedule.
"""

from capstack.debt import DebtTranche, LoanAmortization

MILLION = 1_000_000.0


def schedule_for(horizon: int = 10, periods_per_year: int = 1, **params):
    defaults = dict(id="loan", principal=MILLION, interest_rate=0.06, term_years=10)
    defaults.update(params)
    tranche = DebtTranche(**defaults)
    return LoanAmortization(
        tranche=tranche, periods_per_year=periods_per_year
    ).amortization_schedule(horizon)


class TestMortgage:
    def test_fully_amortizing_mortgage_ends_at_zero(self):
        df, summary = schedule_for()
        assert abs(df["End Balance"].iloc[-1]) < 1e-6
        assert abs(summary["Total Principal Paid"] - MILLION) < 1e-6
        assert summary["Final Balance"] < 1e-6

    def test_level_payment(self):
        df, _ = schedule_for()
        expected = MILLION * 0.06 / (1 - 1.06 ** -10)
        assert abs(df["Payment"].iloc[0] - expected) < 0.01
        assert (df["Payment"] - expected).abs().max() < 0.01

    def test_interest_on_beginning_balance(self):
        df, _ = schedule_for()
        assert abs(df["Interest"].iloc[0] - 60_000.0) < 1e-9
        assert abs(df["Interest"].iloc[1] - df["Begin Balance"].iloc[1] * 0.06) < 1e-9

    def test_balloon_at_maturity(self):
        df, summary = schedule_for(
            interest_rate=0.065, term_years=10, amortization_years=25
        )
        assert df["Principal"].iloc[-1] > 700_000
        assert df["End Balance"].iloc[-1] == 0.0
        assert abs(summary["Total Principal Paid"] - MILLION) < 1e-6

    def test_zero_rate_amortizes_straight_line(self):
        df, _ = schedule_for(interest_rate=0.0, term_years=4, horizon=4)
        assert (df["Principal"] - 250_000.0).abs().max() < 1e-6
        assert df["Interest"].sum() == 0.0

    def test_horizon_shorter_than_term_leaves_balance(self):
        df, summary = schedule_for(horizon=5)
        assert len(df) == 5
        assert summary["Final Balance"] > 0
        repaid = summary["Total Principal Paid"] + summary["Final Balance"]
        assert abs(repaid - MILLION) < 1e-6

    def test_monthly_schedule(self):
        df, summary = schedule_for(periods_per_year=12)
        assert len(df) == 120
        assert df["Year"].iloc[11] == 0
        assert df["Year"].iloc[12] == 1
        assert abs(df["Interest"].iloc[0] - MILLION * 0.06 / 12) < 1e-9
        assert summary["Final Balance"] < 1e-6


class TestInterestOnlyAndBullet:
    def test_bullet(self):
        df, _ = schedule_for(
            amortization_type="bullet", interest_rate=0.05, term_years=5, horizon=5
        )
        assert (df["Interest"] - 50_000.0).abs().max() < 1e-9
        assert (df["Principal"].iloc[:4] == 0).all()
        assert df["Principal"].iloc[4] == MILLION

    def test_interest_only_whole_term(self):
        df, _ = schedule_for(
            amortization_type="interest_only", interest_rate=0.05, term_years=5, horizon=5
        )
        assert (df["Principal"].iloc[:4] == 0).all()
        assert df["Principal"].iloc[4] == MILLION

    def test_interest_only_then_straight_line(self):
        df, _ = schedule_for(
            amortization_type="interest_only",
            io_years=2,
            amortization_years=5,
            term_years=5,
            horizon=5,
        )
        assert (df["Principal"].iloc[:2] == 0).all()
        for year in (2, 3, 4):
            assert abs(df["Principal"].iloc[year] - MILLION / 3) < 1e-6
        assert df["End Balance"].iloc[-1] < 1e-6

    def test_interest_only_then_mortgage(self):
        df, _ = schedule_for(
            amortization_type="interest_only",
            io_years=2,
            amortization_years=5,
            term_years=5,
            post_io_amortization="mortgage",
            horizon=5,
        )
        assert (df["Principal"].iloc[:2] == 0).all()
        payments = df["Payment"].iloc[2:]
        assert (payments - payments.iloc[0]).abs().max() < 0.01


class TestFundingAndRefinance:
    def test_delayed_funding(self):
        df, summary = schedule_for(
            amortization_type="bullet", term_years=3, start_year=2, horizon=6
        )
        assert (df["Begin Balance"].iloc[:2] == 0).all()
        assert df["Funding"].iloc[2] == MILLION
        assert df["Principal"].iloc[4] == MILLION
        assert df["Begin Balance"].iloc[5] == 0
        assert summary["Total Funded"] == MILLION

    def test_refinance_retires_tranche(self):
        df, summary = schedule_for(
            amortization_type="bullet",
            term_years=5,
            horizon=5,
            refinance_at_year=2,
            exit_fee_pct=0.01,
        )
        assert df["Principal"].iloc[2] == MILLION
        assert abs(df["Exit Fee"].iloc[2] - 10_000.0) < 1e-9
        assert df["End Balance"].iloc[2] == 0
        assert df["Interest"].iloc[3:].sum() == 0
        assert summary["Final Balance"] == 0

    def test_refinance_into_new_principal(self):
        df, summary = schedule_for(
            amortization_type="bullet",
            term_years=5,
            horizon=5,
            refinance_at_year=2,
            refinance_principal=1_200_000.0,
            origination_fee_pct=0.01,
        )
        # Year-end refinance: old balance retired, replacement carried forward
        assert df["Principal"].iloc[2] == MILLION
        assert df["Refinance Proceeds"].iloc[2] == 1_200_000.0
        assert df["End Balance"].iloc[2] == 1_200_000.0
        assert abs(df["Origination Fee"].iloc[2] - 12_000.0) < 1e-9
        assert abs(df["Interest"].iloc[3] - 1_200_000.0 * 0.06) < 1e-9
        assert df["Principal"].iloc[4] == 1_200_000.0
        assert summary["Total Funded"] == 2_200_000.0
        assert abs(summary["Total Principal Paid"] - 2_200_000.0) < 1e-6

    def test_partial_refinance(self):
        df, _ = schedule_for(
            amortization_type="bullet",
            term_years=5,
            horizon=5,
            refinance_at_year=1,
            refinance_amount_pct=0.4,
        )
        assert abs(df["Principal"].iloc[1] - 400_000.0) < 1e-9
        assert abs(df["End Balance"].iloc[1] - 600_000.0) < 1e-9
        assert abs(df["Principal"].iloc[4] - 600_000.0) < 1e-9
