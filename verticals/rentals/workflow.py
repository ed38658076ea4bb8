"""Rental lifecycle states and transition tables.

    booked -> rented -> returned
    booked -> cancelled

A rented copy cannot be cancelled; it has to come back as a return.
Payment status moves on its own table; cancellation reconciliation is a
rule (see rules.reconcile_payment_on_cancel) rather than a table entry.
"""

from enum import Enum

from patterns.workflow_states import WorkflowInstance


class BookStatus(str, Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class RentalStatus(str, Enum):
    BOOKED = "booked"
    RENTED = "rented"
    RETURNED = "returned"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"
    REFUND_VERIFICATION = "refund_verification"
    REFUNDED = "refunded"


RENTAL_TRANSITIONS: dict[RentalStatus, list[RentalStatus]] = {
    RentalStatus.BOOKED: [RentalStatus.RENTED, RentalStatus.CANCELLED],
    RentalStatus.RENTED: [RentalStatus.RETURNED],
    RentalStatus.RETURNED: [],   # terminal
    RentalStatus.CANCELLED: [],  # terminal
}

# Moves the payment collaborator may make through update_payment_status.
PAYMENT_TRANSITIONS: dict[PaymentStatus, list[PaymentStatus]] = {
    PaymentStatus.PENDING: [PaymentStatus.PAID],
    PaymentStatus.PAID: [],
    PaymentStatus.CANCELLED: [],
    PaymentStatus.REFUND_VERIFICATION: [PaymentStatus.REFUNDED],
    PaymentStatus.REFUNDED: [],
}


def rental_workflow(rental) -> WorkflowInstance[RentalStatus]:
    """Workflow instance over a rental's current status."""
    return WorkflowInstance(
        workflow_id=str(rental.id),
        current_state=RentalStatus(rental.status),
        transitions=RENTAL_TRANSITIONS,
    )


def payment_workflow(rental) -> WorkflowInstance[PaymentStatus]:
    """Workflow instance over a rental's current payment status."""
    return WorkflowInstance(
        workflow_id=str(rental.id),
        current_state=PaymentStatus(rental.payment_status),
        transitions=PAYMENT_TRANSITIONS,
    )
