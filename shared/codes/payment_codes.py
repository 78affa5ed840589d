"""
Purchase/payment specific codes and provider event mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    SIGNATURE_ERROR = 60002

    # Purchase lifecycle (61xxx)
    PURCHASE_NOT_FOUND = 61000
    COURSE_NOT_FOUND = 61001
    INVALID_TRANSITION = 61002


# Provider event type -> state machine command.
# Anything missing here is acknowledged without touching state.
PROVIDER_EVENT_TO_ACTION = {
    "stripe": {
        "checkout.session.completed": "complete",
        "checkout.session.async_payment_succeeded": "complete",
        "checkout.session.expired": "fail",
        "checkout.session.async_payment_failed": "fail",
    },
}

# Provider status -> reconciliation outcome (paid / failed / open)
PROVIDER_STATUS_TO_INTERNAL = {
    "stripe": {
        "complete": "paid",
        "expired": "failed",
        "open": "open",
    },
    "razorpay": {
        "paid": "paid",
        "attempted": "open",
        "created": "open",
    },
}

# Checkout payment states that prove money was collected
STRIPE_PAID_STATES = {"paid", "no_payment_required"}
