from datetime import date
from decimal import Decimal

import pytest

from marketplace.amortization import (
    InvalidInput,
    LoanTerms,
    add_months,
    build_schedule,
    compute_monthly_payment,
    summarize_through,
    to_money,
)


TOLERANCE = Decimal("0.01")


def test_monthly_payment_matches_annuity_formula():
    payment = compute_monthly_payment(Decimal("1000"), Decimal("12"), 6)
    assert abs(payment - Decimal("172.548")) < Decimal("0.001")
    assert to_money(payment) == Decimal("172.55")


def test_zero_rate_payment_is_straight_line():
    assert compute_monthly_payment(1200, 0, 12) == Decimal(100)


def test_float_inputs_are_read_as_written():
    assert compute_monthly_payment(1000.10, 0.0, 2) == Decimal("500.05")


def test_reference_schedule():
    schedule = build_schedule(Decimal("1000"), Decimal("12"), 6, date(2024, 1, 15))

    assert len(schedule.periods) == 6
    first = schedule.periods[0]
    assert first.index == 1
    assert first.due_date == date(2024, 2, 15)
    assert first.interest_portion == Decimal("10.00")
    assert abs(first.principal_portion - Decimal("162.548")) < Decimal("0.001")
    assert abs(first.remaining_balance - Decimal("837.452")) < Decimal("0.001")
    assert to_money(schedule.total_repayment) == Decimal("1035.29")
    assert to_money(schedule.total_interest) == Decimal("35.29")
    assert schedule.periods[-1].due_date == date(2024, 7, 15)


def test_each_period_splits_payment_into_principal_and_interest():
    schedule = build_schedule(5000, Decimal("18.5"), 24, date(2024, 3, 1))
    for period in schedule.periods:
        assert abs(period.principal_portion + period.interest_portion - period.payment_amount) < TOLERANCE
        assert period.payment_amount == schedule.monthly_payment


def test_balance_decreases_to_zero():
    schedule = build_schedule(10000, 10, 24, date(2024, 1, 1))
    balances = [period.remaining_balance for period in schedule.periods]
    assert all(later < earlier for earlier, later in zip(balances, balances[1:]))
    assert schedule.periods[-1].remaining_balance >= 0
    assert schedule.periods[-1].remaining_balance < Decimal("1e-9")


@pytest.mark.parametrize(
    "principal, rate, term",
    [
        (Decimal("1000"), Decimal("12"), 6),
        (Decimal("999999999.99"), Decimal("5.5"), 360),
        (Decimal("250"), Decimal("50"), 1),
        (Decimal("3000"), Decimal("0"), 7),
    ],
)
def test_principal_portions_add_up_to_principal(principal, rate, term):
    schedule = build_schedule(principal, rate, term, date(2024, 1, 1))
    assert len(schedule.periods) == term
    repaid = sum(period.principal_portion for period in schedule.periods)
    assert abs(repaid - principal) < TOLERANCE


def test_zero_rate_schedule():
    schedule = build_schedule(Decimal("1000"), Decimal("0"), 3, date(2024, 1, 1))
    for period in schedule.periods:
        assert period.payment_amount == Decimal(1000) / Decimal(3)
        assert period.interest_portion == 0
    assert schedule.total_interest < TOLERANCE


def test_schedule_is_deterministic():
    first = build_schedule(Decimal("4321.09"), Decimal("7.25"), 18, date(2024, 5, 31))
    second = build_schedule(Decimal("4321.09"), Decimal("7.25"), 18, date(2024, 5, 31))
    assert first == second


def test_month_end_start_clamps_without_drifting():
    schedule = build_schedule(Decimal("500"), Decimal("10"), 2, date(2024, 1, 31))
    assert [p.due_date for p in schedule.periods] == [date(2024, 2, 29), date(2024, 3, 31)]


def test_add_months_clamps_in_common_years():
    assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
    assert add_months(date(2023, 10, 31), 4) == date(2024, 2, 29)
    assert add_months(date(2023, 12, 15), 1) == date(2024, 1, 15)


@pytest.mark.parametrize(
    "principal, rate, term, constraint",
    [
        (0, 5, 12, "principal"),
        (-100, 5, 12, "principal"),
        (1000, 5, 0, "term_months"),
        (1000, 5, 1.5, "term_months"),
        (1000, 5, True, "term_months"),
        (1000, -1, 12, "annual_rate_percent"),
        ("abc", 5, 12, "principal"),
        (Decimal("NaN"), 5, 12, "principal"),
    ],
)
def test_invalid_inputs_are_rejected(principal, rate, term, constraint):
    with pytest.raises(InvalidInput) as excinfo:
        build_schedule(principal, rate, term, date(2024, 1, 1))
    assert excinfo.value.constraint == constraint

    with pytest.raises(InvalidInput):
        compute_monthly_payment(principal, rate, term)


def test_loan_terms_monthly_rate():
    terms = LoanTerms("1000", "12", 6)
    assert terms.principal == Decimal("1000")
    assert terms.monthly_rate == Decimal("0.01")


def test_loan_terms_validate_on_direct_construction():
    with pytest.raises(InvalidInput) as excinfo:
        LoanTerms(principal=Decimal("1000"), annual_rate_percent=Decimal("5"), term_months=0)
    assert excinfo.value.constraint == "term_months"

    with pytest.raises(InvalidInput) as excinfo:
        LoanTerms(principal=Decimal("0"), annual_rate_percent=Decimal("5"), term_months=12)
    assert excinfo.value.constraint == "principal"


def test_summarize_through_month():
    schedule = build_schedule(Decimal("10000"), Decimal("10"), 24, date(2024, 1, 1))

    first = summarize_through(schedule, 1)
    assert first.interest_paid == schedule.periods[0].interest_portion
    assert first.remaining_balance == schedule.periods[0].remaining_balance

    last = summarize_through(schedule, 24)
    assert abs(last.principal_paid - Decimal("10000")) < TOLERANCE
    assert abs(last.interest_paid - schedule.total_interest) < TOLERANCE

    with pytest.raises(InvalidInput):
        summarize_through(schedule, 0)
    with pytest.raises(InvalidInput):
        summarize_through(schedule, 25)
