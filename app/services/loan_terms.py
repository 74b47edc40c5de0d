from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

TWOPLACES = Decimal("0.01")


@dataclass(frozen=True)
class LoanTerms:
    amount: Decimal
    term_months: int
    interest_rate: Decimal
    monthly_payment: Decimal
    total_repayment: Decimal


def _as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _monthly_rate(annual_rate_percent: Decimal) -> Decimal:
    return annual_rate_percent / Decimal("1200")


def monthly_payment(principal: Decimal, annual_rate_percent: Decimal, term_months: int) -> Decimal:
    if term_months <= 0:
        return Decimal("0")
    rate = _monthly_rate(annual_rate_percent)
    if rate == 0:
        return (principal / Decimal(term_months)).quantize(TWOPLACES, rounding=ROUND_HALF_UP)
    factor = (Decimal("1") + rate) ** term_months
    payment = principal * rate * factor / (factor - Decimal("1"))
    return payment.quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def compute_loan_terms(amount, term_months: int, annual_rate_percent) -> LoanTerms:
    principal = _as_decimal(amount).quantize(TWOPLACES, rounding=ROUND_HALF_UP)
    rate = _as_decimal(annual_rate_percent).quantize(TWOPLACES, rounding=ROUND_HALF_UP)
    payment = monthly_payment(principal, rate, term_months)
    total = (payment * Decimal(term_months)).quantize(TWOPLACES, rounding=ROUND_HALF_UP)
    return LoanTerms(
        amount=principal,
        term_months=term_months,
        interest_rate=rate,
        monthly_payment=payment,
        total_repayment=total,
    )
