"""
Installment schedule arithmetic.

Everything here is a pure function of the contract terms, the start date and
the number of installments already paid. The engine computes the schedule
once at contract creation and then advances it one installment at a time,
so no field is ever recomputed from scratch on an edit.

Amounts are accepted with at most two decimal places, the precision they are
stored with.

Rounding: the monthly payment is the financed amount divided by the number
of months, rounded half-up to a whole currency unit. The last installment
absorbs whatever the rounding left over, so the installments always add up
to exactly ``total_amount - down_payment``. Terms whose monthly payment would
round down to zero while something is still financed are rejected.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from retail_ledger.core.clock import add_days, add_months
from retail_ledger.core.config import PAYMENT_CADENCE_FIXED_DAYS, settings
from retail_ledger.core.errors import InvalidTerms
from retail_ledger.core.money import clamp_non_negative, quantize_money, round_whole_units, to_decimal
from retail_ledger.models.installments import ContractStatus

MIN_DURATION_MONTHS = 1


@dataclass(frozen=True)
class ContractTerms:
    total_amount: Decimal
    down_payment: Decimal
    duration_months: int

    @property
    def financed_amount(self) -> Decimal:
        return self.total_amount - self.down_payment


@dataclass(frozen=True)
class Schedule:
    financed_amount: Decimal
    monthly_payment: Decimal
    final_payment: Decimal
    remaining_amount: Decimal
    next_payment_date: date | None
    end_date: date


@dataclass(frozen=True)
class Installment:
    number: int
    amount: Decimal
    due_date: date


def make_terms(total_amount, down_payment, duration_months: int) -> ContractTerms:
    return ContractTerms(
        total_amount=to_decimal(total_amount),
        down_payment=to_decimal(down_payment),
        duration_months=int(duration_months),
    )


def validate_terms(terms: ContractTerms, *, max_duration_months: int | None = None) -> None:
    max_duration = max_duration_months or settings.max_duration_months
    if not MIN_DURATION_MONTHS <= terms.duration_months <= max_duration:
        raise InvalidTerms(f"durationMonths must be between {MIN_DURATION_MONTHS} and {max_duration}")
    if terms.total_amount <= 0:
        raise InvalidTerms("totalAmount must be positive")
    if terms.down_payment < 0:
        raise InvalidTerms("downPayment must not be negative")
    if terms.down_payment > terms.total_amount:
        raise InvalidTerms("downPayment must not exceed totalAmount")
    for field, value in (("totalAmount", terms.total_amount), ("downPayment", terms.down_payment)):
        if value != quantize_money(value):
            raise InvalidTerms(f"{field} must have at most two decimal places")
    if terms.financed_amount > 0 and monthly_payment_for(terms) <= 0:
        raise InvalidTerms("financed amount is too small to spread over durationMonths")


def monthly_payment_for(terms: ContractTerms) -> Decimal:
    return round_whole_units(terms.financed_amount / Decimal(terms.duration_months))


def remaining_after(terms: ContractTerms, monthly_payment: Decimal, paid_months: int) -> Decimal:
    if paid_months >= terms.duration_months:
        return Decimal("0")
    return clamp_non_negative(terms.financed_amount - monthly_payment * paid_months)


def installment_amount(terms: ContractTerms, monthly_payment: Decimal, number: int) -> Decimal:
    """Amount due for the 1-based installment ``number``."""
    before = remaining_after(terms, monthly_payment, number - 1)
    if number >= terms.duration_months:
        return before
    return min(monthly_payment, before)


def due_date(start_date: date, number: int, *, cadence: str | None = None, cadence_days: int | None = None) -> date:
    cadence = cadence or settings.payment_cadence
    if cadence == PAYMENT_CADENCE_FIXED_DAYS:
        return add_days(start_date, number * (cadence_days or settings.payment_cadence_days))
    return add_months(start_date, number)


def next_payment_date(
    terms: ContractTerms,
    start_date: date,
    paid_months: int,
    remaining_amount: Decimal,
    **cadence,
) -> date | None:
    if paid_months >= terms.duration_months or remaining_amount <= 0:
        return None
    return due_date(start_date, paid_months + 1, **cadence)


def compute_schedule(terms: ContractTerms, start_date: date, paid_months: int = 0, **cadence) -> Schedule:
    validate_terms(terms)
    monthly = monthly_payment_for(terms)
    remaining = remaining_after(terms, monthly, paid_months)
    return Schedule(
        financed_amount=terms.financed_amount,
        monthly_payment=monthly,
        final_payment=installment_amount(terms, monthly, terms.duration_months),
        remaining_amount=remaining,
        next_payment_date=next_payment_date(terms, start_date, paid_months, remaining, **cadence),
        end_date=due_date(start_date, terms.duration_months, **cadence),
    )


def build_installments(terms: ContractTerms, monthly_payment: Decimal, start_date: date, **cadence) -> list[Installment]:
    return [
        Installment(
            number=number,
            amount=installment_amount(terms, monthly_payment, number),
            due_date=due_date(start_date, number, **cadence),
        )
        for number in range(1, terms.duration_months + 1)
    ]


def derive_status(
    *,
    paid_months: int,
    duration_months: int,
    remaining_amount: Decimal,
    next_payment_date: date | None,
    today: date,
    cancelled: bool = False,
    grace_days: int | None = None,
) -> ContractStatus:
    if cancelled:
        return ContractStatus.CANCELLED
    if remaining_amount <= 0 or paid_months >= duration_months:
        return ContractStatus.COMPLETED
    grace = settings.overdue_grace_days if grace_days is None else grace_days
    if next_payment_date is not None and add_days(next_payment_date, grace) < today:
        return ContractStatus.OVERDUE
    return ContractStatus.ACTIVE
