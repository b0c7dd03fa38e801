from datetime import date
from decimal import Decimal

from marketplace.amortization import build_schedule
from marketplace.models import (
    CAPITAL_COMPLETED,
    CAPITAL_DEPOSIT,
    CAPITAL_PENDING,
    CAPITAL_WITHDRAWAL,
    LOAN_ACTIVE,
    LOAN_COMPLETED,
    LOAN_PENDING,
    OFFER_ACTIVE,
    OFFER_DRAFT,
    Loan,
    LoanOffer,
    VendorCapital,
)
from marketplace.services import (
    available_capital,
    billed_installment,
    billed_total,
    check_eligibility,
    lender_dashboard,
    repayment_progress,
)


RATIO = Decimal("0.4")


def test_eligibility_rules():
    assert check_eligibility(Decimal("1000"), "employed", Decimal("400"), RATIO) is True
    assert check_eligibility(Decimal("1000"), "employed", Decimal("400.01"), RATIO) is False
    assert check_eligibility(Decimal("100000"), "unemployed", Decimal("10"), RATIO) is False
    assert check_eligibility(None, None, Decimal("10"), RATIO) is False


def test_repayment_progress_tracks_covered_periods():
    schedule = build_schedule(Decimal("1200"), Decimal("0"), 12, date(2024, 1, 31))

    progress = repayment_progress(schedule, Decimal("0"))
    assert progress.periods_paid == 0
    assert progress.next_payment_date == date(2024, 2, 29)

    progress = repayment_progress(schedule, Decimal("250.00"))
    assert progress.periods_paid == 2
    assert progress.outstanding == Decimal("950.00")
    assert progress.next_payment_date == date(2024, 4, 30)

    progress = repayment_progress(schedule, Decimal("1200.00"))
    assert progress.periods_paid == 12
    assert progress.outstanding == 0
    assert progress.next_payment_date is None


def test_billed_installments_settle_the_billed_total():
    schedule = build_schedule(Decimal("1000"), Decimal("12"), 6, date(2024, 1, 15))
    assert billed_installment(schedule) == Decimal("172.55")
    assert billed_total(schedule) == Decimal("1035.30")

    progress = repayment_progress(schedule, billed_installment(schedule) * 5)
    assert progress.periods_paid == 5
    assert progress.outstanding == Decimal("172.55")

    progress = repayment_progress(schedule, billed_total(schedule))
    assert progress.periods_paid == 6
    assert progress.outstanding == 0


def test_billed_installment_never_rounds_to_zero():
    schedule = build_schedule(Decimal("0.01"), Decimal("0"), 12, date(2024, 1, 1))
    assert billed_installment(schedule) == Decimal("0.01")
    assert repayment_progress(schedule, Decimal("0.05")).periods_paid == 5


def test_progress_is_overdue_only_after_a_missed_due_date():
    schedule = build_schedule(Decimal("1200"), Decimal("0"), 12, date(2024, 1, 31))
    progress = repayment_progress(schedule, Decimal("100.00"))
    assert progress.next_payment_date == date(2024, 3, 31)
    assert not progress.is_overdue(date(2024, 3, 31))
    assert progress.is_overdue(date(2024, 4, 1))

    settled = repayment_progress(schedule, Decimal("1200.00"))
    assert not settled.is_overdue(date(2030, 1, 1))


def test_available_capital_counts_completed_entries():
    entries = [
        VendorCapital(amount=Decimal("5000"), type=CAPITAL_DEPOSIT, status=CAPITAL_COMPLETED),
        VendorCapital(amount=Decimal("1200.50"), type=CAPITAL_WITHDRAWAL, status=CAPITAL_COMPLETED),
        VendorCapital(amount=Decimal("9999"), type=CAPITAL_DEPOSIT, status=CAPITAL_PENDING),
    ]
    assert available_capital(entries) == Decimal("3799.50")
    assert available_capital([]) == Decimal("0.00")


def test_lender_dashboard_counts():
    overdue = Loan(
        customer_id=1, status=LOAN_ACTIVE, amount=Decimal("200"),
        interest_rate=Decimal("0"), term_months=2, start_date=date(2024, 1, 31),
    )
    current = Loan(
        customer_id=3, status=LOAN_ACTIVE, amount=Decimal("400"),
        interest_rate=Decimal("0"), term_months=4, start_date=date(2024, 5, 15),
    )
    loans = [
        Loan(customer_id=1, status=LOAN_PENDING, amount=Decimal("100")),
        overdue,
        current,
        Loan(customer_id=2, status=LOAN_COMPLETED, amount=Decimal("300")),
    ]
    offers = [LoanOffer(status=OFFER_ACTIVE), LoanOffer(status=OFFER_DRAFT)]
    capital = [VendorCapital(amount=Decimal("1000"), type=CAPITAL_DEPOSIT, status=CAPITAL_COMPLETED)]

    stats = lender_dashboard(loans, offers, capital, date(2024, 6, 1))
    assert stats.total_loans == 4
    assert stats.pending_loans == 1
    assert stats.active_loans == 2
    assert stats.completed_loans == 1
    assert stats.total_lent == Decimal("900.00")
    assert stats.total_customers == 3
    assert stats.active_offers == 1
    assert stats.overdue_loans == 1
    assert stats.available_capital == Decimal("1000.00")
