# storefront/services/exceptions.py
from __future__ import annotations

import uuid


class ServiceError(Exception):
    """Base class for service-layer errors.

    ``retryable`` tells callers whether issuing the same request again (after
    a new checkout, for payments) can succeed without fixing anything first.
    """

    retryable: bool = False

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class ResourceNotFoundError(ServiceError):
    """A referenced cart, order, product or user does not exist."""


class InvalidStateError(ServiceError):
    """A precondition failed before anything was written (e.g. empty cart)."""


class InvalidTransitionError(ServiceError):
    """Attempted to move an order out of a terminal status."""


class PaymentFailedError(ServiceError):
    """The gateway declined or errored; the order has already been marked FAILED."""

    retryable = True

    def __init__(self, detail: str, *, order_id: uuid.UUID | None = None):
        super().__init__(detail)
        self.order_id = order_id


class ConfigurationError(PaymentFailedError):
    """The payment gateway is unusable (missing credentials and similar)."""

    retryable = False


class OrderPersistenceError(ServiceError):
    """The order store failed while checking out.

    ``order_id`` is set once a PENDING order has been committed.
    ``payment_error`` holds the gateway failure that could not be recorded,
    if there was one.
    """

    def __init__(
        self,
        detail: str,
        *,
        order_id: uuid.UUID | None = None,
        payment_error: PaymentFailedError | None = None,
    ):
        super().__init__(detail)
        self.order_id = order_id
        self.payment_error = payment_error
