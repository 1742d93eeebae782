# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

"""
Deal equity: partners, waterfall tiers and the distribution engine.
"""

from .distribution_calculator import WaterfallEngine
from .entities import EquityClass
from .partnership import (
    AnyWaterfallTier,
    BaseWaterfallTier,
    PreferredReturnTier,
    PromoteTier,
    ReturnOfCapitalTier,
    WaterfallConfig,
)
from .results import AnnualWaterfallRow, PartnerDistributionSeries, WaterfallResult

__all__ = [
    # Partners
    "EquityClass",
    # Tiers
    "BaseWaterfallTier",
    "ReturnOfCapitalTier",
    "PreferredReturnTier",
    "PromoteTier",
    "AnyWaterfallTier",
    "WaterfallConfig",
    # Engine
    "WaterfallEngine",
    # Results
    "AnnualWaterfallRow",
    "PartnerDistributionSeries",
    "WaterfallResult",
]
