# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

"""
Waterfall result models.
"""

from typing import Dict, List, Optional

import pandas as pd
from pydantic import Field

from ..core.primitives import Model


class AnnualWaterfallRow(Model):
    """
    One year of the waterfall.

    ``partner_distributions`` are the amounts produced by the tiers before any
    clawback; ``clawback_adjustments`` (when present) sum to zero and are
    added on top to get each partner's net flow for the year.
    """

    year_index: int
    owner_cash_flow: float
    partner_distributions: Dict[str, float]
    clawback_adjustments: Optional[Dict[str, float]] = None
    tier_distributions: Dict[str, Dict[str, float]] = Field(default_factory=dict)

    def net_distribution(self, partner_id: str) -> float:
        amount = self.partner_distributions.get(partner_id, 0.0)
        if self.clawback_adjustments:
            amount += self.clawback_adjustments.get(partner_id, 0.0)
        return amount


class PartnerDistributionSeries(Model):
    """A partner's net cash flows (after clawback) and return metrics."""

    partner_id: str
    cash_flows: List[float]
    cumulative_cash_flows: List[float]
    irr: Optional[float] = None
    moic: Optional[float] = None
    total_contributions: float = 0.0
    total_distributions: float = 0.0


class WaterfallResult(Model):
    owner_cash_flows: List[float] = Field(default_factory=list)
    partners: List[PartnerDistributionSeries] = Field(default_factory=list)
    annual_rows: List[AnnualWaterfallRow] = Field(default_factory=list)

    def partner(self, partner_id: str) -> Optional[PartnerDistributionSeries]:
        for series in self.partners:
            if series.partner_id == partner_id:
                return series
        return None

    def to_dataframe(self) -> pd.DataFrame:
        """Net partner flows by year, with the owner flow alongside."""
        data = {"Owner": self.owner_cash_flows}
        for series in self.partners:
            data[series.partner_id] = series.cash_flows
        df = pd.DataFrame(data)
        df.index.name = "Year"
        return df
