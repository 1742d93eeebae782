# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

"""
Waterfall Tier Models for Equity Distribution

This module defines the tiers of a multi-tier equity waterfall and the
configuration that groups them with the equity classes they distribute to.

Tiers are a tagged union on ``type`` and are evaluated in declaration order,
conventionally return of capital, then preferred return, then promote:

- ReturnOfCapitalTier: returns unreturned contributions pro rata
- PreferredReturnTier: pays accrued preference, either an IRR hurdle
  (``hurdle_irr``) or a simple / compounding rate (``pref_rate``)
- PromoteTier: splits what is left, with optional catch-up and clawback

Example:
    ```python
    config = WaterfallConfig(
        equity_classes=[
            EquityClass(id="lp", contribution_pct=0.9),
            EquityClass(id="gp", contribution_pct=0.1),
        ],
        tiers=[
            ReturnOfCapitalTier(id="roc", distribution_splits={"lp": 0.9, "gp": 0.1}),
            PreferredReturnTier(
                id="pref", hurdle_irr=0.08, distribution_splits={"lp": 0.9, "gp": 0.1}
            ),
            PromoteTier(
                id="promote",
                distribution_splits={"lp": 0.8, "gp": 0.2},
                enable_catch_up=True,
                catch_up_target_split={"lp": 0.8, "gp": 0.2},
            ),
        ],
    )
    ```
"""

from typing import Dict, List, Literal, Optional, Union

from pydantic import Field, field_validator, model_validator
from typing_extensions import Annotated

from ..core.primitives import (
    ClawbackMethodEnum,
    ClawbackTriggerEnum,
    FloatBetween0And1,
    Model,
    Rate,
)
from .entities import EquityClass

# Allowed deviation of a split map from 1.0
SPLIT_SUM_TOLERANCE = 1e-6


def _validate_split_map(splits: Dict[str, float], label: str) -> Dict[str, float]:
    for partner_id, value in splits.items():
        if value < 0:
            raise ValueError(f"{label}: split for '{partner_id}' cannot be negative")
    total = sum(splits.values())
    if abs(total - 1.0) > SPLIT_SUM_TOLERANCE:
        raise ValueError(f"{label}: splits must sum to 1.0, got {total:.6f}")
    return splits


# =============================================================================
# WATERFALL TIERS
# =============================================================================


class BaseWaterfallTier(Model):
    """
    Common fields of every tier.

    ``distribution_splits`` maps partner id to the fraction of the tier's
    cash that partner receives; partners missing from the map get nothing
    from the tier.
    """

    id: str = Field(..., min_length=1)
    distribution_splits: Dict[str, float] = Field(
        ..., description="Partner id to fraction of tier cash (sums to 1)"
    )

    @field_validator("distribution_splits")
    @classmethod
    def validate_splits(cls, v: Dict[str, float]) -> Dict[str, float]:
        return _validate_split_map(v, "distribution_splits")


class ReturnOfCapitalTier(BaseWaterfallTier):
    """Returns each partner's unreturned capital, pro rata by contribution."""

    type: Literal["return_of_capital"] = "return_of_capital"


class PreferredReturnTier(BaseWaterfallTier):
    """
    Preferred return tier.

    Accrual modes:
    - ``hurdle_irr``: each partner's hurdle account compounds at the hurdle,
      grows with contributions and shrinks with every distribution; paying the
      balance brings the partner's IRR to the hurdle.
    - ``pref_rate``: preference accrues on unreturned capital each year, and
      also on unpaid preference when ``compound_pref`` is set.
    """

    type: Literal["preferred_return"] = "preferred_return"
    hurdle_irr: Optional[Rate] = Field(None, description="Target IRR")
    pref_rate: Optional[float] = Field(None, ge=0, description="Annual preference rate")
    compound_pref: bool = False

    @model_validator(mode="after")
    def validate_accrual(self) -> "PreferredReturnTier":
        if self.compound_pref and self.pref_rate is None:
            raise ValueError(f"Preferred return tier '{self.id}': compound_pref requires pref_rate")
        if self.hurdle_irr is None and self.pref_rate is None:
            raise ValueError(
                f"Preferred return tier '{self.id}' must define hurdle_irr or pref_rate"
            )
        if self.hurdle_irr is not None and self.pref_rate is not None:
            raise ValueError(
                f"Preferred return tier '{self.id}': hurdle_irr and pref_rate are "
                "mutually exclusive"
            )
        return self

    @property
    def uses_hurdle(self) -> bool:
        return self.hurdle_irr is not None

    @property
    def hurdle_rate(self) -> float:
        """Rate the tier accrues at, whichever mode is configured."""
        return self.hurdle_irr if self.hurdle_irr is not None else self.pref_rate


class PromoteTier(BaseWaterfallTier):
    """
    Promote tier with optional catch-up and clawback.

    Catch-up sends ``catch_up_rate`` of each dollar to ``catch_up_receiver``
    (default: the partner with the smallest contribution) until its share of
    cumulative profit distributions reaches its ``catch_up_target_split``
    share; the rest of the tier uses ``distribution_splits``.

    Clawback re-checks the receiver's cumulative distributions at the
    configured trigger and moves any excess back to the other partners.
    """

    type: Literal["promote"] = "promote"
    enable_catch_up: bool = False
    catch_up_target_split: Optional[Dict[str, float]] = None
    catch_up_rate: FloatBetween0And1 = 1.0
    catch_up_receiver: Optional[str] = None
    enable_clawback: bool = False
    clawback_trigger: ClawbackTriggerEnum = ClawbackTriggerEnum.FINAL_PERIOD
    clawback_method: ClawbackMethodEnum = ClawbackMethodEnum.HYPOTHETICAL_LIQUIDATION
    hurdle_irr: Optional[Rate] = Field(
        None, description="LP hurdle for lookback clawback"
    )

    @field_validator("catch_up_target_split")
    @classmethod
    def validate_target_split(
        cls, v: Optional[Dict[str, float]]
    ) -> Optional[Dict[str, float]]:
        if v is not None:
            _validate_split_map(v, "catch_up_target_split")
        return v

    @model_validator(mode="after")
    def validate_catch_up(self) -> "PromoteTier":
        if self.enable_catch_up:
            if not self.catch_up_target_split:
                raise ValueError(
                    f"Promote tier '{self.id}': enable_catch_up requires catch_up_target_split"
                )
            if self.catch_up_rate <= 0:
                raise ValueError(f"Promote tier '{self.id}': catch_up_rate must be positive")
        return self


AnyWaterfallTier = Annotated[
    Union[ReturnOfCapitalTier, PreferredReturnTier, PromoteTier],
    Field(discriminator="type"),
]


# =============================================================================
# WATERFALL CONFIGURATION
# =============================================================================


class WaterfallConfig(Model):
    """
    Equity classes and the ordered tiers that distribute cash among them.

    With no tiers the waterfall runs in single-tier mode: distributions are
    split by each class's ``distribution_pct`` (falling back to
    ``contribution_pct``).
    """

    equity_classes: List[EquityClass] = Field(default_factory=list)
    tiers: List[AnyWaterfallTier] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_references(self) -> "WaterfallConfig":
        ids = self.partner_ids
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate equity class ids: {', '.join(duplicates)}")

        tier_ids = [tier.id for tier in self.tiers]
        duplicate_tiers = sorted({i for i in tier_ids if tier_ids.count(i) > 1})
        if duplicate_tiers:
            raise ValueError(f"Duplicate tier ids: {', '.join(duplicate_tiers)}")

        if self.tiers and not self.equity_classes:
            raise ValueError("Multi-tier waterfalls require at least one equity class")

        known = set(ids)
        for tier in self.tiers:
            unknown = set(tier.distribution_splits) - known
            if unknown:
                raise ValueError(
                    f"Tier '{tier.id}' splits reference unknown partners: "
                    f"{', '.join(sorted(unknown))}"
                )
            if isinstance(tier, PromoteTier):
                if tier.catch_up_target_split:
                    unknown = set(tier.catch_up_target_split) - known
                    if unknown:
                        raise ValueError(
                            f"Tier '{tier.id}' catch-up split references unknown "
                            f"partners: {', '.join(sorted(unknown))}"
                        )
                if tier.catch_up_receiver is not None and tier.catch_up_receiver not in known:
                    raise ValueError(
                        f"Tier '{tier.id}' catch_up_receiver '{tier.catch_up_receiver}' "
                        "is not an equity class"
                    )
                if (
                    tier.enable_clawback
                    and tier.clawback_method == ClawbackMethodEnum.LOOKBACK
                    and self.lookback_hurdle(tier) is None
                ):
                    raise ValueError(
                        f"Tier '{tier.id}': lookback clawback needs hurdle_irr on the "
                        "tier or a preferred return tier"
                    )
        return self

    @property
    def partner_ids(self) -> List[str]:
        return [cls.id for cls in self.equity_classes]

    def promote_receiver(self, tier: PromoteTier) -> str:
        """Partner receiving catch-up and subject to clawback for a promote tier."""
        if tier.catch_up_receiver is not None:
            return tier.catch_up_receiver
        # Smallest contributor is the sponsor; ties resolve to the last class
        receiver = self.equity_classes[-1]
        for cls in self.equity_classes:
            if cls.contribution_pct < receiver.contribution_pct:
                receiver = cls
        return receiver.id

    def lookback_hurdle(self, tier: PromoteTier) -> Optional[float]:
        if tier.hurdle_irr is not None:
            return tier.hurdle_irr
        for candidate in self.tiers:
            if isinstance(candidate, PreferredReturnTier):
                return candidate.hurdle_rate
        return None
