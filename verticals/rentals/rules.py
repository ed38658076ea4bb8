"""Rental business rules: pure functions.

Builds on the rules engine pattern: each rule returns a RuleResult and
touches no storage. Authorization predicates take (caller, resource).
"""

import math
from datetime import datetime, timedelta
from typing import Sequence

from core.identity import CallerIdentity
from patterns.rules_engine import RuleResult, RuleSetResult, evaluate_rules
from verticals.rentals.workflow import PaymentStatus, RentalStatus, rental_workflow

ONE_DAY = timedelta(days=1)

# Payment states in which no money has changed hands.
UNPAID_STATUSES = frozenset({PaymentStatus.PENDING, PaymentStatus.CANCELLED})

__all__ = [
    "RuleResult",
    "RuleSetResult",
    "evaluate_rules",
    "check_rental_term",
    "check_status",
    "check_payment_confirmed",
    "check_cancellable",
    "check_ownership",
    "check_admin",
    "compute_fine",
    "reconcile_payment_on_cancel",
]


def check_rental_term(days: int, allowed_days: Sequence[int]) -> RuleResult:
    """Only the priced term lengths may be booked."""
    passed = days in allowed_days
    return RuleResult(
        passed=passed,
        rule_name="rental_term",
        message=(
            f"{days}-day term"
            if passed
            else f"Rental term must be one of {list(allowed_days)} days, got {days}"
        ),
        details={"days": days, "allowed_days": list(allowed_days)},
    )


def check_status(rental, expected: RentalStatus) -> RuleResult:
    passed = rental.status == expected.value
    return RuleResult(
        passed=passed,
        rule_name="rental_status",
        message=(
            f"Rental is {rental.status}"
            if passed
            else f"Rental is {rental.status}, expected {expected.value}"
        ),
        details={"status": rental.status, "expected": expected.value},
    )


def check_payment_confirmed(rental) -> RuleResult:
    """A copy is handed over only after the payment has been verified."""
    passed = rental.payment_status == PaymentStatus.PAID.value
    return RuleResult(
        passed=passed,
        rule_name="payment_confirmed",
        message=(
            "Payment confirmed"
            if passed
            else f"Payment not confirmed (payment status is {rental.payment_status})"
        ),
        details={"payment_status": rental.payment_status},
    )


def check_cancellable(rental) -> RuleResult:
    """Only a booking that has not been picked up can be cancelled."""
    passed = rental_workflow(rental).can_transition(RentalStatus.CANCELLED)
    return RuleResult(
        passed=passed,
        rule_name="cancellable",
        message=(
            "Booking can be cancelled"
            if passed
            else f"Cannot cancel a rental that is {rental.status}"
        ),
        details={"status": rental.status},
    )


def check_ownership(user_id: str, rental) -> RuleResult:
    """Only the member who booked a rental may act on it as its owner."""
    passed = user_id == rental.user_id
    return RuleResult(
        passed=passed,
        rule_name="ownership",
        message="Caller owns the rental" if passed else "You cannot act on another member's rental",
        details={"caller": user_id},
    )


def check_admin(caller: CallerIdentity) -> RuleResult:
    return RuleResult(
        passed=caller.is_admin,
        rule_name="admin_role",
        message="Admin" if caller.is_admin else "Administrator role required",
        details={"role": caller.role.value},
    )


def compute_fine(due_date: datetime, returned_at: datetime, per_day: float) -> float:
    """Late fee: every started day past the due date costs per_day.

    Returning at or before the due instant costs nothing.
    """
    if returned_at <= due_date:
        return 0.0
    days_late = math.ceil((returned_at - due_date) / ONE_DAY)
    return days_late * per_day


def reconcile_payment_on_cancel(payment_status: str) -> PaymentStatus:
    """Payment status a booking moves to when it is cancelled.

    If money may have been submitted the payment goes to manual refund
    verification, otherwise it is simply cancelled.
    """
    if PaymentStatus(payment_status) in UNPAID_STATUSES:
        return PaymentStatus.CANCELLED
    return PaymentStatus.REFUND_VERIFICATION
