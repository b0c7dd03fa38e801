from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP, getcontext
from typing import Tuple, Union

from dateutil.relativedelta import relativedelta


# Set high precision for intermediate calculations
getcontext().prec = 28


TWOPLACES = Decimal("0.01")
ZERO = Decimal(0)

Number = Union[Decimal, int, float, str]


class InvalidInput(ValueError):
    """Raised when loan terms cannot produce a schedule.

    ``constraint`` names the offending field, e.g. ``principal`` or
    ``term_months``.
    """

    def __init__(self, constraint: str, message: str) -> None:
        super().__init__(message)
        self.constraint = constraint
        self.message = message


def to_money(value: Decimal) -> Decimal:
    return value.quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def _as_decimal(value: Number, field: str) -> Decimal:
    # floats go through str() so 0.1 stays 0.1
    if isinstance(value, float):
        value = str(value)
    try:
        result = Decimal(value)
    except (ArithmeticError, TypeError, ValueError) as exc:
        raise InvalidInput(field, f"{field} is not a number: {value!r}") from exc
    if not result.is_finite():
        raise InvalidInput(field, f"{field} must be finite")
    return result


@dataclass(frozen=True)
class LoanTerms:
    """Validated loan inputs; raw numbers are coerced to ``Decimal``."""

    principal: Decimal
    annual_rate_percent: Decimal
    term_months: int

    def __post_init__(self) -> None:
        amount = _as_decimal(self.principal, "principal")
        rate = _as_decimal(self.annual_rate_percent, "annual_rate_percent")
        if amount <= 0:
            raise InvalidInput("principal", "Principal must be greater than zero")
        if isinstance(self.term_months, bool) or not isinstance(self.term_months, int):
            raise InvalidInput("term_months", "Term must be a whole number of months")
        if self.term_months < 1:
            raise InvalidInput("term_months", "Term must be at least one month")
        if rate < 0:
            raise InvalidInput("annual_rate_percent", "Interest rate cannot be negative")
        object.__setattr__(self, "principal", amount)
        object.__setattr__(self, "annual_rate_percent", rate)

    @property
    def monthly_rate(self) -> Decimal:
        return self.annual_rate_percent / Decimal(100) / Decimal(12)


@dataclass(frozen=True)
class PaymentPeriod:
    index: int
    due_date: date
    payment_amount: Decimal
    principal_portion: Decimal
    interest_portion: Decimal
    remaining_balance: Decimal


@dataclass(frozen=True)
class Schedule:
    terms: LoanTerms
    start_date: date
    monthly_payment: Decimal
    periods: Tuple[PaymentPeriod, ...]

    @property
    def total_repayment(self) -> Decimal:
        return self.monthly_payment * self.terms.term_months

    @property
    def total_interest(self) -> Decimal:
        return self.total_repayment - self.terms.principal

    @property
    def final_due_date(self) -> date:
        return self.periods[-1].due_date


@dataclass(frozen=True)
class MonthSummary:
    month: int
    principal_paid: Decimal
    interest_paid: Decimal
    remaining_balance: Decimal


def add_months(start: date, months: int) -> date:
    """Return ``start`` moved forward by ``months`` calendar months.

    The day of month is kept when the target month has it and clamped to the
    month's last day otherwise, so Jan 31 + 1 month is the end of February.
    """
    return start + relativedelta(months=months)


def _payment_for(terms: LoanTerms) -> Decimal:
    monthly_rate = terms.monthly_rate
    n = terms.term_months

    if monthly_rate == 0:
        return terms.principal / Decimal(n)

    factor = (1 + monthly_rate) ** n
    return terms.principal * monthly_rate * factor / (factor - 1)


def compute_monthly_payment(principal: Number, annual_rate_percent: Number, term_months: int) -> Decimal:
    """Fixed monthly payment of an annuity loan, unrounded.

    payment = P * r * (1 + r)^n / ((1 + r)^n - 1), with r the monthly rate.
    A zero rate falls back to straight-line repayment P / n.
    """
    return _payment_for(LoanTerms(principal, annual_rate_percent, term_months))


def build_schedule(
    principal: Number, annual_rate_percent: Number, term_months: int, start_date: date
) -> Schedule:
    terms = LoanTerms(principal, annual_rate_percent, term_months)
    return schedule_for(terms, start_date)


def schedule_for(terms: LoanTerms, start_date: date) -> Schedule:
    """Build the period-by-period repayment schedule for validated terms."""
    monthly_rate = terms.monthly_rate
    payment = _payment_for(terms)

    periods = []
    balance = terms.principal

    for index in range(1, terms.term_months + 1):
        interest = balance * monthly_rate
        principal_portion = payment - interest
        # Drift on the last period can leave a tiny negative residue
        balance = max(balance - principal_portion, ZERO)
        periods.append(
            PaymentPeriod(
                index=index,
                due_date=add_months(start_date, index),
                payment_amount=payment,
                principal_portion=principal_portion,
                interest_portion=interest,
                remaining_balance=balance,
            )
        )

    return Schedule(
        terms=terms,
        start_date=start_date,
        monthly_payment=payment,
        periods=tuple(periods),
    )


def summarize_through(schedule: Schedule, month: int) -> MonthSummary:
    """Cumulative principal and interest paid after ``month`` periods."""
    if month < 1 or month > len(schedule.periods):
        raise InvalidInput("month", "Month must fall within the loan term")

    paid = schedule.periods[:month]
    return MonthSummary(
        month=month,
        principal_paid=sum((p.principal_portion for p in paid), ZERO),
        interest_paid=sum((p.interest_portion for p in paid), ZERO),
        remaining_balance=paid[-1].remaining_balance,
    )
