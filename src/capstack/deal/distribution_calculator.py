# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

"""
Equity Waterfall Distribution Engine

This module distributes the owner's levered cash flows among equity classes.

Two modes are supported:

1. Single-tier: no tiers configured. Capital calls are split by contribution
   share and distributions by distribution share; the last class absorbs the
   rounding remainder so every year reconciles exactly.

2. Multi-tier: capital calls are split by contribution share and each
   positive year flows through the tiers in declaration order. Each tier
   consumes what it is owed and passes the rest down:
   - return of capital, pro rata by contribution, capped at unreturned capital
   - preferred return, by the tier's splits, capped at each partner's accrual
   - promote, optional catch-up to the receiver then the tier's splits
   Cash left after the last tier is allocated pro rata by contribution.

Clawback is evaluated after the tiers have run and is recorded as per-year
adjustments that sum to zero, so raw distributions plus adjustments still
reconcile to the owner cash flow. The hypothetical liquidation target runs
cumulative cash through the tiers once, with preferred return accounts
measured on the actual timing of every contribution and distribution.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
from pydantic import ValidationError

from ..core.calculations import FinancialCalculations
from ..core.primitives import ClawbackMethodEnum, ClawbackTriggerEnum, EngineSettings
from ..core.result import (
    EngineError,
    ErrorCode,
    capture,
    from_validation_error,
    success,
)
from .entities import EquityClass
from .partnership import (
    PreferredReturnTier,
    PromoteTier,
    ReturnOfCapitalTier,
    WaterfallConfig,
)
from .results import AnnualWaterfallRow, PartnerDistributionSeries, WaterfallResult

logger = logging.getLogger(__name__)

DEFAULT_PARTNER_ID = "owner"
RESIDUAL_TIER_ID = "residual"

# Amounts below this are treated as fully allocated
_EPS = 1e-9


def _normalized(weights: Dict[str, float]) -> Dict[str, float]:
    """Scale non-negative weights to sum to 1; all-zero weights become equal."""
    total = sum(max(w, 0.0) for w in weights.values())
    if total <= 0:
        equal = 1.0 / len(weights)
        return {pid: equal for pid in weights}
    return {pid: max(w, 0.0) / total for pid, w in weights.items()}


def _allocate_capped(
    amount: float,
    weights: Dict[str, float],
    caps: Optional[Dict[str, float]] = None,
) -> Dict[str, float]:
    """
    Allocate ``amount`` pro rata by ``weights`` without exceeding ``caps``.

    Shares a capped partner cannot absorb are re-allocated among the others
    by their weights. Partners with zero weight receive nothing. Any cash
    that cannot be placed is left unallocated for the caller.
    """
    allocation = {pid: 0.0 for pid in weights}
    remaining = amount
    active = [
        pid
        for pid, weight in weights.items()
        if weight > 0 and (caps is None or caps.get(pid, 0.0) > _EPS)
    ]

    while remaining > _EPS and active:
        total_weight = sum(weights[pid] for pid in active)
        shares = {pid: remaining * weights[pid] / total_weight for pid in active}
        capped = []
        if caps is not None:
            capped = [pid for pid in active if allocation[pid] + shares[pid] >= caps[pid]]

        if not capped:
            for pid in active:
                allocation[pid] += shares[pid]
            remaining = 0.0
            break

        for pid in capped:
            room = caps[pid] - allocation[pid]
            allocation[pid] += room
            remaining -= room
        active = [pid for pid in active if pid not in capped]

    return allocation


@dataclass
class _PartnerState:
    contributed: float = 0.0
    unreturned: float = 0.0
    distributed: float = 0.0
    # Everything except return of capital
    profit: float = 0.0


@dataclass
class _WaterfallPass:
    """Raw output of one pass through the tiers (no clawback)."""

    rows: List[Dict[str, float]] = field(default_factory=list)
    tier_rows: List[Dict[str, Dict[str, float]]] = field(default_factory=list)
    # Promote tier id -> receiver's promote receipts per year
    promote_receipts: Dict[str, List[float]] = field(default_factory=dict)
    # Per year: rate-mode pref tier id -> preference accrued to date per partner
    pref_earned: List[Dict[str, Dict[str, float]]] = field(default_factory=list)


class WaterfallEngine:
    """
    Distributes owner levered cash flows through an equity waterfall.

    Example:
        ```python
        engine = WaterfallEngine(config)
        result = engine.run([-1_000_000, 100_000, 100_000, 1_300_000])
        if result.ok:
            lp = result.data.partner("lp")
            if lp.irr is not None:
                print(f"LP IRR: {lp.irr:.2%}")
        ```
    """

    def __init__(
        self,
        config: Union[WaterfallConfig, Dict[str, Any]],
        settings: Optional[EngineSettings] = None,
    ):
        self.config = config
        self.settings = settings or EngineSettings()

    def run(self, owner_cash_flows: Sequence[float]):
        """
        Run the waterfall.

        Args:
            owner_cash_flows: Owner levered cash flows, Year 0 first

        Returns:
            EngineResult carrying a ``WaterfallResult``; an invalid
            configuration fails with ``INVALID_WATERFALL``.
        """
        config = self.config
        if not isinstance(config, WaterfallConfig):
            try:
                config = WaterfallConfig.model_validate(config)
            except ValidationError as exc:
                return from_validation_error(
                    exc, "Invalid waterfall configuration", ErrorCode.INVALID_WATERFALL
                )
        return capture(self._run, config, owner_cash_flows)

    def _run(self, config: WaterfallConfig, owner_cash_flows: Sequence[float]):
        flows = [float(cf) for cf in owner_cash_flows]
        if not all(np.isfinite(flows)):
            raise EngineError(
                ErrorCode.VALIDATION_ERROR, "Owner cash flows must be finite numbers"
            )

        warnings = []
        if len(flows) < 2:
            message = "Fewer than two owner cash flows; no distributions produced"
            logger.warning(message)
            return success(WaterfallResult(owner_cash_flows=flows), [message])

        classes = list(config.equity_classes) or [
            EquityClass(id=DEFAULT_PARTNER_ID, contribution_pct=1.0)
        ]
        total_contribution = sum(cls.contribution_pct for cls in classes)
        if abs(total_contribution - 1.0) > self.settings.waterfall.conservation_tolerance:
            message = (
                f"Equity class contributions sum to {total_contribution:.4f}; "
                "shares were normalized"
            )
            logger.warning(message)
            warnings.append(message)

        if config.tiers:
            logger.debug(f"Running {len(config.tiers)}-tier waterfall over {len(flows)} years")
            wf_pass = self._distribute(config, classes, flows)
            adjustments = self._clawback(config, classes, flows, wf_pass)
        else:
            logger.debug(f"Running single-tier waterfall over {len(flows)} years")
            wf_pass = self._single_tier(classes, flows)
            adjustments = [None] * len(flows)

        annual_rows = [
            AnnualWaterfallRow(
                year_index=year,
                owner_cash_flow=flows[year],
                partner_distributions=wf_pass.rows[year],
                clawback_adjustments=adjustments[year],
                tier_distributions=wf_pass.tier_rows[year],
            )
            for year in range(len(flows))
        ]

        partners = [
            self._partner_series(cls.id, annual_rows) for cls in classes
        ]

        tolerance = self.settings.waterfall.conservation_tolerance
        for row in annual_rows:
            distributed = sum(row.net_distribution(cls.id) for cls in classes)
            gap = row.owner_cash_flow - distributed
            if abs(gap) > tolerance:
                message = (
                    f"Year {row.year_index}: partner flows {distributed:,.2f} do not "
                    f"reconcile to owner cash flow {row.owner_cash_flow:,.2f}"
                )
                logger.warning(message)
                warnings.append(message)

        return success(
            WaterfallResult(
                owner_cash_flows=flows, partners=partners, annual_rows=annual_rows
            ),
            warnings,
        )

    def _partner_series(
        self, partner_id: str, rows: List[AnnualWaterfallRow]
    ) -> PartnerDistributionSeries:
        cash_flows = [row.net_distribution(partner_id) for row in rows]
        valuation = self.settings.valuation
        return PartnerDistributionSeries(
            partner_id=partner_id,
            cash_flows=cash_flows,
            cumulative_cash_flows=np.cumsum(cash_flows).tolist(),
            irr=FinancialCalculations.calculate_irr(cash_flows, valuation),
            moic=FinancialCalculations.calculate_equity_multiple(cash_flows),
            total_contributions=-sum(cf for cf in cash_flows if cf < 0),
            total_distributions=sum(cf for cf in cash_flows if cf > 0),
        )

    # ------------------------------------------------------------------
    # Single-tier mode
    # ------------------------------------------------------------------

    def _single_tier(
        self, classes: List[EquityClass], flows: List[float]
    ) -> _WaterfallPass:
        contribution = _normalized({cls.id: cls.contribution_pct for cls in classes})
        distribution = _normalized(
            {cls.id: cls.effective_distribution_pct for cls in classes}
        )
        wf_pass = _WaterfallPass()
        for cf in flows:
            weights = contribution if cf < 0 else distribution
            row = {}
            allocated = 0.0
            for cls in classes[:-1]:
                row[cls.id] = cf * weights[cls.id]
                allocated += row[cls.id]
            row[classes[-1].id] = cf - allocated
            wf_pass.rows.append(row)
            wf_pass.tier_rows.append({})
        return wf_pass

    # ------------------------------------------------------------------
    # Multi-tier mode
    # ------------------------------------------------------------------

    def _distribute(
        self,
        config: WaterfallConfig,
        classes: List[EquityClass],
        flows: List[float],
    ) -> _WaterfallPass:
        ids = [cls.id for cls in classes]
        contribution = _normalized({cls.id: cls.contribution_pct for cls in classes})
        state = {pid: _PartnerState() for pid in ids}

        pref_tiers = [t for t in config.tiers if isinstance(t, PreferredReturnTier)]
        hurdle_tier_ids = [t.id for t in pref_tiers if t.uses_hurdle]
        # Hurdle account (hurdle mode) or unpaid preference (rate mode)
        accounts = {t.id: {pid: 0.0 for pid in ids} for t in pref_tiers}
        earned = {t.id: {pid: 0.0 for pid in ids} for t in pref_tiers if not t.uses_hurdle}

        receivers = {
            t.id: config.promote_receiver(t)
            for t in config.tiers
            if isinstance(t, PromoteTier)
        }
        wf_pass = _WaterfallPass(promote_receipts={tid: [] for tid in receivers})

        for year, cf in enumerate(flows):
            if year > 0:
                self._accrue(pref_tiers, accounts, earned, state)

            row = {pid: 0.0 for pid in ids}
            tier_row = {}
            receipts = {tid: 0.0 for tid in receivers}

            if cf < 0:
                for pid in ids:
                    call = -cf * contribution[pid]
                    row[pid] = -call
                    state[pid].contributed += call
                    state[pid].unreturned += call
                    for tier_id in hurdle_tier_ids:
                        accounts[tier_id][pid] += call

            elif cf > 0:
                row, tier_row, receipts = self._allocate(
                    config, cf, contribution, state, accounts, receivers
                )

            wf_pass.rows.append(row)
            wf_pass.tier_rows.append(tier_row)
            wf_pass.pref_earned.append(
                {tid: dict(amounts) for tid, amounts in earned.items()}
            )
            for tier_id, amount in receipts.items():
                wf_pass.promote_receipts[tier_id].append(amount)

        return wf_pass

    def _allocate(
        self,
        config: WaterfallConfig,
        amount: float,
        contribution: Dict[str, float],
        state: Dict[str, _PartnerState],
        accounts: Dict[str, Dict[str, float]],
        receivers: Dict[str, str],
    ) -> Tuple[Dict[str, float], Dict[str, Dict[str, float]], Dict[str, float]]:
        """
        Run one positive distribution through the tiers in order.

        Updates partner state and preferred return accounts in place and
        returns the partner row, the per-tier allocations and the promote
        receiver's receipts per promote tier.
        """
        ids = list(contribution)
        hurdle_tier_ids = [
            t.id for t in config.tiers if isinstance(t, PreferredReturnTier) and t.uses_hurdle
        ]
        row = {pid: 0.0 for pid in ids}
        tier_row = {}
        receipts = {tid: 0.0 for tid in receivers}

        def book(allocation: Dict[str, float], profit: bool):
            for pid, value in allocation.items():
                if value == 0:
                    continue
                row[pid] += value
                state[pid].distributed += value
                if profit:
                    state[pid].profit += value
                for tier_id in hurdle_tier_ids:
                    accounts[tier_id][pid] -= value

        remaining = amount
        for tier in config.tiers:
            if remaining <= _EPS:
                break

            if isinstance(tier, ReturnOfCapitalTier):
                caps = {pid: state[pid].unreturned for pid in ids}
                allocation = _allocate_capped(remaining, contribution, caps)
                for pid, value in allocation.items():
                    state[pid].unreturned -= value
                book(allocation, profit=False)

            elif isinstance(tier, PreferredReturnTier):
                needs = {pid: max(accounts[tier.id][pid], 0.0) for pid in ids}
                splits = {pid: tier.distribution_splits.get(pid, 0.0) for pid in ids}
                allocation = _allocate_capped(remaining, splits, needs)
                if not tier.uses_hurdle:
                    for pid, value in allocation.items():
                        accounts[tier.id][pid] -= value
                book(allocation, profit=True)

            elif isinstance(tier, PromoteTier):
                receiver = receivers[tier.id]
                allocation = self._promote(
                    tier, receiver, remaining, state, contribution, ids
                )
                receipts[tier.id] += allocation[receiver]
                book(allocation, profit=True)

            else:
                raise EngineError(
                    ErrorCode.INVALID_WATERFALL,
                    f"Tier '{tier.id}' has unsupported type {type(tier).__name__}",
                )

            tier_row[tier.id] = allocation
            remaining -= sum(allocation.values())

        if remaining > _EPS:
            allocation = {pid: remaining * contribution[pid] for pid in ids}
            tier_row[RESIDUAL_TIER_ID] = allocation
            book(allocation, profit=True)

        return row, tier_row, receipts

    @staticmethod
    def _accrue(
        pref_tiers: List[PreferredReturnTier],
        accounts: Dict[str, Dict[str, float]],
        earned: Dict[str, Dict[str, float]],
        state: Dict[str, _PartnerState],
    ) -> None:
        """Roll every preferred return account forward one year."""
        for tier in pref_tiers:
            account = accounts[tier.id]
            for pid in account:
                if tier.uses_hurdle:
                    account[pid] *= 1.0 + tier.hurdle_irr
                else:
                    base = state[pid].unreturned
                    if tier.compound_pref:
                        base += account[pid]
                    accrual = tier.pref_rate * base
                    account[pid] += accrual
                    earned[tier.id][pid] += accrual

    def _promote(
        self,
        tier: PromoteTier,
        receiver: str,
        amount: float,
        state: Dict[str, _PartnerState],
        contribution: Dict[str, float],
        ids: List[str],
    ) -> Dict[str, float]:
        allocation = {pid: 0.0 for pid in ids}
        remaining = amount
        tolerance = self.settings.waterfall.catch_up_tolerance

        if tier.enable_catch_up:
            target = tier.catch_up_target_split.get(receiver, 0.0)
            total_profit = sum(s.profit for s in state.values())
            shortfall = target * total_profit - state[receiver].profit

            if shortfall > tolerance:
                rate = tier.catch_up_rate
                if rate - target > tolerance:
                    catch_up = min(remaining, shortfall / (rate - target))
                else:
                    # Receiver can never reach its target share at this rate
                    catch_up = remaining

                others = {
                    pid: tier.catch_up_target_split.get(pid, 0.0)
                    for pid in ids
                    if pid != receiver
                }
                if others:
                    if sum(others.values()) <= 0:
                        others = {pid: contribution[pid] for pid in others}
                    allocation[receiver] += rate * catch_up
                    for pid, weight in _normalized(others).items():
                        allocation[pid] += (1.0 - rate) * catch_up * weight
                else:
                    allocation[receiver] += catch_up
                remaining -= catch_up

        if remaining > 0:
            for pid in ids:
                allocation[pid] += remaining * tier.distribution_splits.get(pid, 0.0)
        return allocation

    # ------------------------------------------------------------------
    # Clawback
    # ------------------------------------------------------------------

    def _clawback(
        self,
        config: WaterfallConfig,
        classes: List[EquityClass],
        flows: List[float],
        wf_pass: _WaterfallPass,
    ) -> List[Optional[Dict[str, float]]]:
        n = len(flows)
        adjustments: List[Optional[Dict[str, float]]] = [None] * n
        ids = [cls.id for cls in classes]
        contribution = {cls.id: cls.contribution_pct for cls in classes}
        tolerance = self.settings.waterfall.catch_up_tolerance

        def net_flows(partner_id: str, through: int) -> List[float]:
            values = []
            for year in range(through + 1):
                amount = wf_pass.rows[year][partner_id]
                if adjustments[year]:
                    amount += adjustments[year].get(partner_id, 0.0)
                values.append(amount)
            return values

        def record(year: int, moves: Dict[str, float]) -> None:
            row = adjustments[year] or {pid: 0.0 for pid in ids}
            for pid, amount in moves.items():
                row[pid] += amount
            adjustments[year] = row

        for tier in config.tiers:
            if not (isinstance(tier, PromoteTier) and tier.enable_clawback):
                continue
            receiver = config.promote_receiver(tier)
            others = [pid for pid in ids if pid != receiver]
            if not others:
                continue

            if tier.clawback_trigger == ClawbackTriggerEnum.FINAL_PERIOD:
                years = [n - 1]
            else:
                years = list(range(1, n))

            clawed_back = 0.0
            for year in years:
                if tier.clawback_method == ClawbackMethodEnum.HYPOTHETICAL_LIQUIDATION:
                    actual = sum(net_flows(receiver, year))
                    target = self._liquidation_entitlement(
                        config,
                        classes,
                        flows[: year + 1],
                        {pid: net_flows(pid, year) for pid in ids},
                        wf_pass.pref_earned[year],
                        receiver,
                    )
                    excess = actual - target
                    if excess <= tolerance:
                        continue
                    weights = _normalized({pid: contribution[pid] for pid in others})
                else:
                    hurdle = config.lookback_hurdle(tier)
                    shortfalls = {}
                    for pid in others:
                        history = net_flows(pid, year)
                        balance = sum(
                            -amount * (1.0 + hurdle) ** (year - t)
                            for t, amount in enumerate(history)
                        )
                        if balance > tolerance:
                            shortfalls[pid] = balance
                    if not shortfalls:
                        continue
                    receipts = sum(wf_pass.promote_receipts[tier.id][: year + 1])
                    excess = min(sum(shortfalls.values()), receipts - clawed_back)
                    if excess <= tolerance:
                        continue
                    weights = _normalized(shortfalls)

                moves = {receiver: -excess}
                for pid, weight in weights.items():
                    moves[pid] = moves.get(pid, 0.0) + excess * weight
                record(year, moves)
                clawed_back += excess
                logger.debug(
                    f"Clawback of {excess:,.2f} from '{receiver}' in year {year} "
                    f"({tier.clawback_method.value})"
                )

        return adjustments

    def _liquidation_entitlement(
        self,
        config: WaterfallConfig,
        classes: List[EquityClass],
        flows: List[float],
        histories: Dict[str, List[float]],
        pref_earned: Dict[str, Dict[str, float]],
        receiver: str,
    ) -> float:
        """
        Receiver's cumulative net flow if the partnership liquidated at the
        end of ``flows``.

        All positive cash to date is run through the tiers as one amount, but
        preferred return accounts keep the actual timing of every flow:
        hurdle accounts are the partner's contributions and distributions
        compounded to the evaluation year, plus the distributions at face
        value; rate-mode accounts hold the preference accrued to date. Early
        distributions therefore earn the partner hurdle credit for the years
        they were held.
        """
        year = len(flows) - 1
        contribution = _normalized({cls.id: cls.contribution_pct for cls in classes})
        called = -sum(min(cf, 0.0) for cf in flows)

        state = {}
        for pid in contribution:
            state[pid] = _PartnerState(
                contributed=called * contribution[pid],
                unreturned=called * contribution[pid],
            )

        accounts = {}
        for tier in config.tiers:
            if not isinstance(tier, PreferredReturnTier):
                continue
            if tier.uses_hurdle:
                growth = 1.0 + tier.hurdle_irr
                accounts[tier.id] = {
                    pid: sum(
                        -amount * growth ** (year - t) + max(amount, 0.0)
                        for t, amount in enumerate(histories[pid])
                    )
                    for pid in contribution
                }
            else:
                accounts[tier.id] = dict(pref_earned[tier.id])

        receivers = {
            t.id: config.promote_receiver(t)
            for t in config.tiers
            if isinstance(t, PromoteTier)
        }
        pooled = sum(max(cf, 0.0) for cf in flows)
        row, _, _ = self._allocate(
            config, pooled, contribution, state, accounts, receivers
        )
        return row[receiver] - state[receiver].contributed
