from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_UP, Decimal
from typing import Iterable, Optional, Union

from marketplace.amortization import (
    TWOPLACES,
    ZERO,
    InvalidInput,
    LoanTerms,
    Schedule,
    schedule_for,
    summarize_through,
    to_money,
)
from marketplace.models import (
    CAPITAL_COMPLETED,
    CAPITAL_DEPOSIT,
    LOAN_ACTIVE,
    LOAN_COMPLETED,
    LOAN_PENDING,
    OFFER_ACTIVE,
    Loan,
    LoanOffer,
    VendorCapital,
)
from marketplace.schemas import (
    LenderDashboard,
    LoanSummary,
    PaymentPeriodOut,
    RepaymentProgress,
    ScheduleOut,
)


logger = logging.getLogger(__name__)

UNEMPLOYED = "unemployed"


def loan_terms_for(record: Union[Loan, LoanOffer], amount: Optional[Decimal] = None,
                   term_months: Optional[int] = None) -> LoanTerms:
    """Map a loan or offer row into engine terms.

    Offers carry an amount range rather than a principal, so callers quoting
    an offer pass the requested ``amount`` (and optionally a shorter term).
    """
    if amount is None:
        amount = record.amount
    return LoanTerms(
        principal=Decimal(str(amount)),
        annual_rate_percent=Decimal(str(record.interest_rate)),
        term_months=term_months if term_months is not None else record.term_months,
    )


def schedule_to_out(schedule: Schedule) -> ScheduleOut:
    return ScheduleOut(
        principal=to_money(schedule.terms.principal),
        annual_rate_percent=schedule.terms.annual_rate_percent,
        term_months=schedule.terms.term_months,
        start_date=schedule.start_date,
        monthly_payment=to_money(schedule.monthly_payment),
        total_repayment=to_money(schedule.total_repayment),
        total_interest=to_money(schedule.total_interest),
        periods=[
            PaymentPeriodOut(
                index=period.index,
                due_date=period.due_date,
                payment_amount=to_money(period.payment_amount),
                principal_portion=to_money(period.principal_portion),
                interest_portion=to_money(period.interest_portion),
                remaining_balance=to_money(period.remaining_balance),
            )
            for period in schedule.periods
        ],
    )


def summary_to_out(schedule: Schedule, month: int) -> LoanSummary:
    summary = summarize_through(schedule, month)
    return LoanSummary(
        month=summary.month,
        principal_balance=to_money(summary.remaining_balance),
        total_principal_paid=to_money(summary.principal_paid),
        total_interest_paid=to_money(summary.interest_paid),
    )


def validate_quote_request(offer: LoanOffer, amount: Decimal, term_months: Optional[int]) -> None:
    """Raise ``InvalidInput`` when a request falls outside the offer's limits."""
    if amount < offer.min_amount or amount > offer.max_amount:
        raise InvalidInput(
            "principal",
            f"Amount must be between {offer.min_amount} and {offer.max_amount}",
        )
    if term_months is not None and not 1 <= term_months <= offer.term_months:
        raise InvalidInput(
            "term_months", f"Term must be between 1 and {offer.term_months} months"
        )


def check_eligibility(
    monthly_income: Optional[Decimal],
    employment_status: Optional[str],
    monthly_payment: Decimal,
    max_payment_to_income: Decimal,
) -> bool:
    """Affordability rule: employed, and the repayment fits within the income share."""
    if employment_status == UNEMPLOYED:
        return False
    income = Decimal(str(monthly_income)) if monthly_income is not None else ZERO
    eligible = monthly_payment <= income * max_payment_to_income
    logger.debug(
        "Eligibility payment=%s income=%s ratio=%s eligible=%s",
        monthly_payment, income, max_payment_to_income, eligible,
    )
    return eligible


def billed_installment(schedule: Schedule) -> Decimal:
    """Installment the borrower is asked for, rounded up to the cent.

    Rounding up keeps ``term`` installments from falling short of principal
    plus interest, and never yields a zero installment on tiny loans.
    """
    return schedule.monthly_payment.quantize(TWOPLACES, rounding=ROUND_UP)


def billed_total(schedule: Schedule) -> Decimal:
    return billed_installment(schedule) * schedule.terms.term_months


@dataclass
class Progress:
    amount_paid: Decimal
    outstanding: Decimal
    periods_paid: int
    next_payment_date: Optional[date]

    def is_overdue(self, today: date) -> bool:
        return self.next_payment_date is not None and self.next_payment_date < today


def repayment_progress(schedule: Schedule, paid_total: Decimal) -> Progress:
    installment = billed_installment(schedule)
    outstanding = max(billed_total(schedule) - paid_total, ZERO)

    periods_paid = min(int(paid_total // installment), len(schedule.periods))
    next_payment_date = None
    if outstanding > 0:
        next_payment_date = schedule.periods[periods_paid].due_date

    return Progress(
        amount_paid=paid_total,
        outstanding=outstanding,
        periods_paid=periods_paid,
        next_payment_date=next_payment_date,
    )


def progress_to_out(loan: Loan, progress: Progress, today: date) -> RepaymentProgress:
    return RepaymentProgress(
        loan_id=loan.id,
        status=loan.status,
        total_repayment=to_money(Decimal(str(loan.total_repayment))),
        amount_paid=to_money(progress.amount_paid),
        outstanding=to_money(progress.outstanding),
        periods_paid=progress.periods_paid,
        next_payment_date=progress.next_payment_date,
        overdue=loan.status == LOAN_ACTIVE and progress.is_overdue(today),
    )


def generate_receipt_number() -> str:
    return "RCPT-" + secrets.token_hex(6).upper()


def available_capital(entries: Iterable[VendorCapital]) -> Decimal:
    """Completed deposits minus completed withdrawals; pending entries don't count."""
    balance = ZERO
    for entry in entries:
        if entry.status != CAPITAL_COMPLETED:
            continue
        amount = Decimal(str(entry.amount))
        balance += amount if entry.type == CAPITAL_DEPOSIT else -amount
    return to_money(balance)


def loan_progress(loan: Loan) -> Progress:
    """Progress of an approved loan from its stored payments."""
    paid = sum((Decimal(str(p.amount)) for p in loan.payments), ZERO)
    return repayment_progress(schedule_for(loan_terms_for(loan), loan.start_date), paid)


def is_overdue(loan: Loan, today: date) -> bool:
    if loan.status != LOAN_ACTIVE or loan.start_date is None:
        return False
    return loan_progress(loan).is_overdue(today)


def lender_dashboard(
    loans: Iterable[Loan],
    offers: Iterable[LoanOffer],
    capital: Iterable[VendorCapital],
    today: date,
) -> LenderDashboard:
    loans = list(loans)
    lent = [Decimal(str(loan.amount)) for loan in loans if loan.status in (LOAN_ACTIVE, LOAN_COMPLETED)]
    return LenderDashboard(
        total_loans=len(loans),
        pending_loans=sum(1 for loan in loans if loan.status == LOAN_PENDING),
        active_loans=sum(1 for loan in loans if loan.status == LOAN_ACTIVE),
        completed_loans=sum(1 for loan in loans if loan.status == LOAN_COMPLETED),
        total_lent=to_money(sum(lent, ZERO)),
        total_customers=len({loan.customer_id for loan in loans}),
        active_offers=sum(1 for offer in offers if offer.status == OFFER_ACTIVE),
        overdue_loans=sum(1 for loan in loans if is_overdue(loan, today)),
        available_capital=available_capital(capital),
    )
