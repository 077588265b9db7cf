"""Tax rule set and the derived estimate value objects."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from rental_tax_ledger.domain.value_objects import ZERO, quantize_money


@dataclass(frozen=True, slots=True)
class TaxBand:
    name: str
    rate: Decimal
    width: Decimal | None = None  # None = unbounded top band


@dataclass(frozen=True, slots=True)
class TaxRules:
    """A progressive income tax scheme with an allowance taper and
    relief-at-source for finance costs.

    The allowance is reduced by one unit for every ``taper_ratio`` units of
    total income above ``taper_threshold``, never below zero. Bands are
    applied in order to income remaining after the allowance.
    """

    personal_allowance: Decimal
    taper_threshold: Decimal
    taper_ratio: Decimal
    bands: tuple[TaxBand, ...]
    finance_cost_relief_rate: Decimal

    def __post_init__(self) -> None:
        if not self.bands:
            raise ValueError("at least one tax band is required")
        for band in self.bands[:-1]:
            if band.width is None:
                raise ValueError(f"only the top band may be unbounded: {band.name}")


UK_RULES = TaxRules(
    personal_allowance=Decimal("12570"),
    taper_threshold=Decimal("100000"),
    taper_ratio=Decimal("2"),
    bands=(
        TaxBand("basic", Decimal("0.20"), Decimal("37700")),
        TaxBand("higher", Decimal("0.40"), Decimal("125140") - Decimal("50270")),
        TaxBand("additional", Decimal("0.45")),
    ),
    finance_cost_relief_rate=Decimal("0.20"),
)


@dataclass(frozen=True, slots=True)
class BandResult:
    name: str
    rate: Decimal
    taxable_amount: Decimal
    tax: Decimal


@dataclass(frozen=True, slots=True)
class TaxBreakdown:
    personal_allowance: Decimal
    bands: tuple[BandResult, ...] = ()

    def tax_for(self, band_name: str) -> Decimal:
        return next((b.tax for b in self.bands if b.name == band_name), ZERO)

    @property
    def basic_rate_tax(self) -> Decimal:
        return self.tax_for("basic")

    @property
    def higher_rate_tax(self) -> Decimal:
        return self.tax_for("higher")

    @property
    def additional_rate_tax(self) -> Decimal:
        return self.tax_for("additional")


@dataclass(frozen=True, slots=True)
class TaxEstimate:
    """Derived, never persisted. All figures are unrounded Decimals."""

    gross_income: Decimal = ZERO
    deductible_expenses: Decimal = ZERO
    finance_costs: Decimal = ZERO
    taxable_profit: Decimal = ZERO
    net_cash_flow: Decimal = ZERO
    supplemental_income: Decimal = ZERO
    total_income: Decimal = ZERO
    net_taxable_income: Decimal = ZERO
    tax_before_relief: Decimal = ZERO
    finance_cost_relief: Decimal = ZERO
    final_tax: Decimal = ZERO
    breakdown: TaxBreakdown = field(
        default_factory=lambda: TaxBreakdown(personal_allowance=ZERO)
    )

    @property
    def personal_allowance(self) -> Decimal:
        return self.breakdown.personal_allowance

    @property
    def effective_rate(self) -> Decimal:
        if self.total_income <= ZERO:
            return ZERO
        return self.final_tax / self.total_income

    def to_dict(self) -> dict[str, Any]:
        """Presentation view, rounded to pennies."""
        return {
            "gross_income": quantize_money(self.gross_income),
            "deductible_expenses": quantize_money(self.deductible_expenses),
            "finance_costs": quantize_money(self.finance_costs),
            "taxable_profit": quantize_money(self.taxable_profit),
            "net_cash_flow": quantize_money(self.net_cash_flow),
            "supplemental_income": quantize_money(self.supplemental_income),
            "total_income": quantize_money(self.total_income),
            "personal_allowance": quantize_money(self.personal_allowance),
            "net_taxable_income": quantize_money(self.net_taxable_income),
            "tax_before_relief": quantize_money(self.tax_before_relief),
            "finance_cost_relief": quantize_money(self.finance_cost_relief),
            "final_tax": quantize_money(self.final_tax),
            "effective_rate": self.effective_rate.quantize(Decimal("0.0001")),
            "breakdown": {
                "personal_allowance": quantize_money(self.personal_allowance),
                "basic_rate_tax": quantize_money(self.breakdown.basic_rate_tax),
                "higher_rate_tax": quantize_money(self.breakdown.higher_rate_tax),
                "additional_rate_tax": quantize_money(
                    self.breakdown.additional_rate_tax
                ),
            },
        }
