# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

import importlib
import logging

"""
capstack - Capital Structure & Equity Waterfall Engine

Turns a project's unlevered cash flow into a levered cash flow through a
multi-tranche debt schedule, values it, and distributes it among equity
partners through a multi-tier waterfall.

Key Entry Points:
- capstack.analysis.run_pipeline() - Debt, valuation, waterfall and covenants in one call
- capstack.analysis.MonteCarloSimulator - Correlated resampling of the full pipeline
- capstack.debt.* - Tranches, debt schedules, WACC and covenants
- capstack.deal.* - Equity classes, waterfall tiers and the waterfall engine
- capstack.valuation.* - Discounted cash flow valuation

Example Usage:
    ```python
    from capstack.analysis import run_pipeline

    result = run_pipeline({
        "project": {"discount_rate": 0.10, "initial_investment": 100_000_000},
        "capital": {
            "initial_investment": 100_000_000,
            "debt_tranches": [
                {"id": "senior", "principal": 60_000_000, "interest_rate": 0.08,
                 "amortization_type": "mortgage", "term_years": 10},
            ],
        },
        "waterfall": {"equity_classes": [{"id": "lp", "contribution_pct": 1.0}]},
        "cash_flows": {"unlevered_fcf": [9_000_000] * 10},
    })
    if result.ok:
        irr = result.data.waterfall.partners[0].irr
        if irr is not None:
            print(f"Levered IRR: {irr:.2%}")
    ```
"""

# Add a NullHandler so applications that don't configure logging see no
# "No handlers could be found" warnings.
logging.getLogger(__name__).addHandler(logging.NullHandler())


# Public API surface (lazy-loaded on first attribute access)
__all__ = [  # noqa: F822 - lazy loading
    "analysis",
    "core",
    "deal",
    "debt",
    "valuation",
]


_LAZY_MODULES = {
    "analysis": "capstack.analysis",
    "core": "capstack.core",
    "deal": "capstack.deal",
    "debt": "capstack.debt",
    "valuation": "capstack.valuation",
}


def __getattr__(name: str):
    module_path = _LAZY_MODULES.get(name)
    if module_path is None:
        raise AttributeError(f"module 'capstack' has no attribute '{name}'")
    module = importlib.import_module(module_path)
    globals()[name] = module
    return module
