# Copyright 2024-2025 David Gordon Nix
# SPDX-License-Identifier: Apache-2.0

"""
Debt Tranche - Individual layer of a multi-tranche capital structure.

Each tranche carries its own principal, rate, amortization style, term,
refinancing plan and fee structure. Tranches are scheduled independently and
aggregated by the ``DebtScheduleBuilder``.
"""

from typing import Any, Optional

from pydantic import Field, model_validator

from ..core.primitives import (
    AmortizationTypeEnum,
    FloatBetween0And1,
    Model,
    PositiveFloat,
    PositiveInt,
    PostIOAmortizationEnum,
    SeniorityEnum,
)

# Input keys accepted for the principal amount, in order of precedence.
# Older configurations used ``amount`` or ``initial_principal``.
_LEGACY_PRINCIPAL_KEYS = ("initial_principal", "amount")


class DebtTranche(Model):
    """
    Individual debt tranche.

    Attributes:
        id: Tranche identifier, unique within a capital structure
        label: Display name (defaults to the id)
        seniority: Position in the capital stack
        principal: Amount funded at ``start_year``
        interest_rate: Annual nominal rate as decimal
        amortization_type: interest_only, mortgage or bullet
        term_years: Years from funding to maturity
        io_years: Initial interest-only years
        amortization_years: Amortization period; may exceed the term (balloon)
        post_io_amortization: Repayment after the IO window of an
            interest-only tranche
        start_year: Schedule year in which the tranche funds (0 = at closing)
        refinance_at_year: Schedule year in which the tranche is refinanced
        refinance_amount_pct: Share of the outstanding balance repaid at refinance
        refinance_principal: New principal originated at refinance, if any
        origination_fee_pct: Fee on principal originated
        exit_fee_pct: Fee on balance repaid at maturity or refinance

    Example:
        # Senior mortgage: 25-year amortization, 10-year term (balloon)
        senior = DebtTranche(
            id="senior",
            principal=60_000_000,
            interest_rate=0.065,
            amortization_type="mortgage",
            term_years=10,
            amortization_years=25,
            origination_fee_pct=0.01,
        )

        # Mezzanine: 3 years interest-only then straight-line to maturity
        mezz = DebtTranche(
            id="mezz",
            seniority="mezzanine",
            principal=10_000_000,
            interest_rate=0.11,
            amortization_type="interest_only",
            term_years=5,
            io_years=3,
            amortization_years=5,
        )
    """

    id: str = Field(..., min_length=1, description="Tranche identifier")
    label: Optional[str] = Field(default=None, description="Display name")
    seniority: SeniorityEnum = SeniorityEnum.SENIOR
    principal: PositiveFloat = Field(default=0.0, description="Principal funded")
    interest_rate: PositiveFloat = Field(..., description="Annual nominal rate")
    amortization_type: AmortizationTypeEnum = AmortizationTypeEnum.MORTGAGE
    term_years: PositiveInt = Field(..., description="Years to maturity")
    io_years: Optional[PositiveInt] = None
    amortization_years: Optional[PositiveInt] = None
    post_io_amortization: PostIOAmortizationEnum = PostIOAmortizationEnum.STRAIGHT_LINE
    start_year: PositiveInt = 0
    refinance_at_year: Optional[PositiveInt] = None
    refinance_amount_pct: FloatBetween0And1 = 1.0
    refinance_principal: Optional[PositiveFloat] = None
    origination_fee_pct: FloatBetween0And1 = 0.0
    exit_fee_pct: FloatBetween0And1 = 0.0

    @model_validator(mode="before")
    @classmethod
    def normalize_legacy_fields(cls, values: Any) -> Any:
        """Fold legacy principal keys into ``principal`` and default the label."""
        if not isinstance(values, dict):
            return values

        values = dict(values)
        legacy = {key: values.pop(key) for key in _LEGACY_PRINCIPAL_KEYS if key in values}
        if values.get("principal") is None:
            for key in _LEGACY_PRINCIPAL_KEYS:
                if legacy.get(key) is not None:
                    values["principal"] = legacy[key]
                    break

        if not values.get("label") and values.get("id"):
            values["label"] = values["id"]

        # Mortgages amortize over their term unless told otherwise
        amortization_type = values.get("amortization_type", AmortizationTypeEnum.MORTGAGE)
        if (
            amortization_type in (AmortizationTypeEnum.MORTGAGE, "mortgage")
            and values.get("amortization_years") is None
            and values.get("term_years") is not None
        ):
            values["amortization_years"] = values["term_years"]
        return values

    @model_validator(mode="after")
    def validate_structure(self) -> "DebtTranche":
        if self.principal > 0 and self.term_years < 1:
            raise ValueError(
                f"Tranche '{self.id}': term_years must be at least 1 when principal is funded"
            )
        if self.io_years is not None and self.io_years > self.term_years:
            raise ValueError(
                f"Tranche '{self.id}': io_years ({self.io_years}) cannot exceed "
                f"term_years ({self.term_years})"
            )
        if self.amortization_years is not None:
            if self.amortization_years < 1:
                raise ValueError(
                    f"Tranche '{self.id}': amortization_years must be positive"
                )
            if self.amortization_years < self.term_years:
                raise ValueError(
                    f"Tranche '{self.id}': amortization_years ({self.amortization_years}) "
                    f"cannot be shorter than term_years ({self.term_years})"
                )
        if self.refinance_at_year is not None and not (
            self.start_year <= self.refinance_at_year < self.end_year
        ):
            raise ValueError(
                f"Tranche '{self.id}': refinance_at_year ({self.refinance_at_year}) must "
                f"fall within the active years [{self.start_year}, {self.end_year})"
            )
        if self.refinance_principal is not None:
            if self.refinance_at_year is None:
                raise ValueError(
                    f"Tranche '{self.id}': refinance_principal requires refinance_at_year"
                )
            if self.refinance_at_year >= self.maturity_year:
                raise ValueError(
                    f"Tranche '{self.id}': a replacement loan needs at least one year "
                    f"before maturity (refinance_at_year < {self.maturity_year})"
                )
        return self

    @property
    def end_year(self) -> int:
        """First schedule year after maturity (exclusive bound)."""
        return self.start_year + self.term_years

    @property
    def maturity_year(self) -> int:
        return self.end_year - 1

    @property
    def effective_io_years(self) -> int:
        """IO years actually applied: whole term for an interest-only tranche without io_years."""
        if self.io_years is not None:
            return self.io_years
        if self.amortization_type == AmortizationTypeEnum.INTEREST_ONLY:
            return self.term_years
        return 0

    @property
    def is_funded(self) -> bool:
        return self.principal > 0 and self.term_years > 0

    def is_active(self, year_index: int) -> bool:
        return self.start_year <= year_index < self.end_year
