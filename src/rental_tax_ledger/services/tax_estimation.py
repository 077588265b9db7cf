"""Property income tax estimation.

Finance costs (mortgage interest) are not deducted from profit; they earn a
basic-rate credit against the computed tax instead, capped so tax never goes
negative.
"""

from collections.abc import Iterable
from decimal import Decimal

from rental_tax_ledger.domain.records import Transaction
from rental_tax_ledger.domain.tax import (
    UK_RULES,
    BandResult,
    TaxBreakdown,
    TaxEstimate,
    TaxRules,
)
from rental_tax_ledger.domain.tax_years import TaxYear
from rental_tax_ledger.domain.value_objects import ZERO, to_decimal
from rental_tax_ledger.logging_config import get_logger
from rental_tax_ledger.repositories.interfaces import RecordStore

logger = get_logger(__name__)


def tapered_allowance(total_income: Decimal, rules: TaxRules = UK_RULES) -> Decimal:
    """Personal allowance after the high-income taper."""
    excess = total_income - rules.taper_threshold
    if excess <= ZERO:
        return rules.personal_allowance
    return max(ZERO, rules.personal_allowance - excess / rules.taper_ratio)


def apply_bands(
    net_taxable_income: Decimal, rules: TaxRules = UK_RULES
) -> tuple[BandResult, ...]:
    """Tax each band's slice of income in ascending order."""
    remaining = max(ZERO, net_taxable_income)
    results: list[BandResult] = []
    for band in rules.bands:
        slice_ = remaining if band.width is None else min(remaining, band.width)
        results.append(
            BandResult(
                name=band.name,
                rate=band.rate,
                taxable_amount=slice_,
                tax=slice_ * band.rate,
            )
        )
        remaining -= slice_
    return tuple(results)


def estimate_tax(
    transactions: Iterable[Transaction],
    supplemental_income: Decimal | int | float | str = ZERO,
    rules: TaxRules = UK_RULES,
) -> TaxEstimate:
    """Compute the tax breakdown for an already period-filtered transaction set.

    Personal and unclassified outgoings are not deductible. Sums are kept at
    full Decimal precision; only ``TaxEstimate.to_dict`` rounds.
    """
    supplemental = to_decimal(supplemental_income)

    gross_income = ZERO
    finance_costs = ZERO
    deductible = ZERO
    for txn in transactions:
        if txn.amount > ZERO:
            gross_income += txn.amount
        if txn.category.is_finance_cost:
            finance_costs += abs(txn.amount)
        elif txn.is_allowable_expense:
            deductible += abs(txn.amount)

    taxable_profit = max(ZERO, gross_income - deductible)
    net_cash_flow = gross_income - deductible - finance_costs
    total_income = taxable_profit + supplemental

    allowance = tapered_allowance(total_income, rules)
    net_taxable_income = max(ZERO, total_income - allowance)

    bands = apply_bands(net_taxable_income, rules)
    tax_before_relief = sum((b.tax for b in bands), ZERO)

    relief = min(finance_costs * rules.finance_cost_relief_rate, tax_before_relief)
    final_tax = tax_before_relief - relief

    return TaxEstimate(
        gross_income=gross_income,
        deductible_expenses=deductible,
        finance_costs=finance_costs,
        taxable_profit=taxable_profit,
        net_cash_flow=net_cash_flow,
        supplemental_income=supplemental,
        total_income=total_income,
        net_taxable_income=net_taxable_income,
        tax_before_relief=tax_before_relief,
        finance_cost_relief=relief,
        final_tax=final_tax,
        breakdown=TaxBreakdown(personal_allowance=allowance, bands=bands),
    )


class TaxEstimationService:
    """Scopes the store's transactions to one tax year and estimates tax."""

    def __init__(self, store: RecordStore, rules: TaxRules = UK_RULES) -> None:
        self._store = store
        self._rules = rules

    def estimate(
        self,
        tax_year: TaxYear | str,
        supplemental_income: Decimal | int | float | str = ZERO,
    ) -> TaxEstimate:
        year = TaxYear.parse(tax_year)
        in_period = [t for t in self._store.load_transactions() if year.contains(t.date)]
        estimate = estimate_tax(in_period, supplemental_income, self._rules)
        logger.info(
            "tax_estimated",
            tax_year=year.value,
            transaction_count=len(in_period),
            final_tax=str(estimate.final_tax),
        )
        return estimate
