"""
Booking error taxonomy and the DRF exception handler that renders it.

Every error a booking operation raises is a ``BookingError``. The handler turns
them into ``{"error": "<message>"}`` bodies; anything unexpected becomes a
logged 500 with a generic message so internal detail never reaches the caller.
"""

import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler, set_rollback

logger = logging.getLogger(__name__)

UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred."


class BookingError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "The booking request could not be completed."
    default_code = "booking_error"


class ValidationError(BookingError):
    """Missing or malformed input; the message is shown to the caller as-is."""

    default_detail = "Missing required booking data."
    default_code = "invalid"


class AuthorizationError(BookingError):
    """The caller may not act on this booking. The reason is logged, never returned."""

    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You are not allowed to modify this booking."
    default_code = "forbidden"

    def __init__(self, reason: str | None = None):
        self.reason = reason
        super().__init__()


class NotFoundError(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Booking not found."
    default_code = "not_found"


class InvalidStateError(BookingError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The booking cannot change from its current state."
    default_code = "invalid_state"


class PaymentProcessorError(BookingError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "The payment provider could not process the request. Please try again."
    default_code = "payment_processor_error"


class PersistenceError(BookingError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "The booking could not be saved. Please try again."
    default_code = "persistence_error"


def booking_exception_handler(exc, context):
    if isinstance(exc, BookingError):
        if isinstance(exc, AuthorizationError) and exc.reason:
            logger.warning("Denied booking action: %s", exc.reason)
        set_rollback()
        return Response({"error": str(exc.detail)}, status=exc.status_code)

    response = exception_handler(exc, context)
    if response is not None:
        return response

    view = context.get("view")
    logger.error(
        "Unhandled error in %s",
        view.__class__.__name__ if view is not None else "view",
        exc_info=(type(exc), exc, exc.__traceback__),
    )
    set_rollback()
    return Response(
        {"error": UNEXPECTED_ERROR_MESSAGE},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
