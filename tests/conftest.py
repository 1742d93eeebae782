# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

"""
Test utilities and fixtures for capstack testing.

Provides small, fully specified capital structures, waterfalls and scenarios
so individual tests only spell out what they vary.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from capstack.debt import CapitalStructureConfig, DebtTranche
from capstack.debt.results import MonthlyCashFlow, MonthlyDebtKpi
from capstack.deal import (
    EquityClass,
    PreferredReturnTier,
    PromoteTier,
    ReturnOfCapitalTier,
    WaterfallConfig,
)

LP_GP_SPLIT = {"lp": 0.9, "gp": 0.1}


# Debt Utilities
def senior_mortgage(**overrides: Any) -> DebtTranche:
    """$60M, 8%, 10-year fully amortizing senior mortgage."""
    params = dict(
        id="senior",
        principal=60_000_000.0,
        interest_rate=0.08,
        amortization_type="mortgage",
        term_years=10,
    )
    params.update(overrides)
    return DebtTranche(**params)


def capital_structure(
    tranches: Optional[List[DebtTranche]] = None,
    initial_investment: float = 100_000_000.0,
    **kwargs: Any,
) -> CapitalStructureConfig:
    return CapitalStructureConfig(
        initial_investment=initial_investment,
        debt_tranches=tranches or [],
        **kwargs,
    )


# Waterfall Utilities
def lp_gp_classes() -> List[EquityClass]:
    return [
        EquityClass(id="lp", name="Limited Partner", contribution_pct=0.9),
        EquityClass(id="gp", name="Sponsor", contribution_pct=0.1),
    ]


def european_waterfall(
    hurdle_irr: float = 0.08,
    promote_split: Optional[Dict[str, float]] = None,
    **promote_kwargs: Any,
) -> WaterfallConfig:
    """Return of capital, IRR hurdle and an 80/20 promote for an LP/GP pair."""
    promote_split = promote_split or {"lp": 0.8, "gp": 0.2}
    return WaterfallConfig(
        equity_classes=lp_gp_classes(),
        tiers=[
            ReturnOfCapitalTier(id="roc", distribution_splits=LP_GP_SPLIT),
            PreferredReturnTier(
                id="pref", hurdle_irr=hurdle_irr, distribution_splits=LP_GP_SPLIT
            ),
            PromoteTier(id="promote", distribution_splits=promote_split, **promote_kwargs),
        ],
    )


# Covenant Utilities
def monthly_kpis(
    dscr: List[Optional[float]],
    ltv: Optional[List[Optional[float]]] = None,
    tranche_dscr: Optional[Dict[str, List[Optional[float]]]] = None,
) -> List[MonthlyDebtKpi]:
    ltv = ltv or [0.5] * len(dscr)
    tranche_dscr = tranche_dscr or {}
    return [
        MonthlyDebtKpi(
            month_number=month,
            year_index=month // 12,
            dscr=dscr[month],
            ltv=ltv[month],
            tranche_dscr={tid: values[month] for tid, values in tranche_dscr.items()},
            tranche_ltv={tid: ltv[month] for tid in tranche_dscr},
        )
        for month in range(len(dscr))
    ]


def monthly_cash(positions: List[float]) -> List[MonthlyCashFlow]:
    return [
        MonthlyCashFlow(
            month_number=month,
            year_index=month // 12,
            noi=0.0,
            debt_service=0.0,
            maintenance_capex=0.0,
            cash_flow=0.0,
            cash_position=position,
        )
        for month, position in enumerate(positions)
    ]


# Scenario Utilities
def scenario_dict(years: int = 10, **overrides: Any) -> Dict[str, Any]:
    """Stabilized $100M project with 60% senior leverage and an LP/GP waterfall."""
    scenario = {
        "project": {
            "discount_rate": 0.10,
            "terminal_growth_rate": 0.02,
            "initial_investment": 100_000_000.0,
            "cost_of_equity": 0.12,
        },
        "capital": {
            "initial_investment": 100_000_000.0,
            "debt_tranches": [
                {
                    "id": "senior",
                    "principal": 60_000_000.0,
                    "interest_rate": 0.08,
                    "amortization_type": "mortgage",
                    "term_years": 10,
                    "amortization_years": 25,
                }
            ],
        },
        "waterfall": {
            "equity_classes": [
                {"id": "lp", "contribution_pct": 0.9},
                {"id": "gp", "contribution_pct": 0.1},
            ],
            "tiers": [
                {"type": "return_of_capital", "id": "roc", "distribution_splits": LP_GP_SPLIT},
                {
                    "type": "preferred_return",
                    "id": "pref",
                    "hurdle_irr": 0.08,
                    "distribution_splits": LP_GP_SPLIT,
                },
                {
                    "type": "promote",
                    "id": "promote",
                    "distribution_splits": {"lp": 0.8, "gp": 0.2},
                },
            ],
        },
        "cash_flows": {
            "unlevered_fcf": [9_000_000.0] * (years - 1) + [109_000_000.0],
            "noi": [9_000_000.0] * years,
        },
    }
    scenario.update(overrides)
    return scenario


@pytest.fixture
def sample_scenario() -> Dict[str, Any]:
    return scenario_dict()


@pytest.fixture
def sample_waterfall() -> WaterfallConfig:
    return european_waterfall()
