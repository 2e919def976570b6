from django.db.models import Q
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from bookings.exceptions import ValidationError
from bookings.models import Booking
from bookings.permissions import IsBookingParticipant
from bookings.serializers import (
    BookingSerializer,
    CancelRequestSerializer,
    CheckoutRequestSerializer,
    RefundSerializer,
    VerifyPaymentRequestSerializer,
)
from bookings.services.cancellation import cancel_booking
from bookings.services.checkout import start_checkout
from bookings.services.completion import complete_booking
from bookings.services.reconciliation import reconcile_payment


def _first_error(errors) -> str:
    if isinstance(errors, dict):
        for field_name, value in errors.items():
            message = _first_error(value)
            if field_name in ("non_field_errors", "detail"):
                return message
            return f"{field_name}: {message}"
    if isinstance(errors, (list, tuple)) and errors:
        return _first_error(errors[0])
    return str(errors)


def _validated(serializer_class, data):
    serializer = serializer_class(data=data)
    if not serializer.is_valid():
        raise ValidationError(_first_error(serializer.errors))
    return serializer


class CreateBookingCheckoutView(APIView):
    """Create a pending booking for the caller and return the Stripe Checkout URL."""

    def post(self, request, *args, **kwargs):
        serializer = _validated(CheckoutRequestSerializer, request.data)
        result = start_checkout(serializer.to_draft(), athlete=request.user)
        return Response(
            {
                "url": result.url,
                "bookingId": str(result.booking.pk),
                "sessionId": result.session_id,
            }
        )


class VerifyBookingPaymentView(APIView):
    """Reconcile the redirect back from Stripe Checkout."""

    def post(self, request, *args, **kwargs):
        serializer = _validated(VerifyPaymentRequestSerializer, request.data)
        result = reconcile_payment(
            session_id=serializer.validated_data["sessionId"],
            booking_id=serializer.validated_data["bookingId"],
            caller=request.user,
        )
        if not result.paid:
            return Response(
                {
                    "success": False,
                    "paymentStatus": result.payment_status,
                    "message": "Payment not completed",
                }
            )
        return Response(
            {
                "success": True,
                "paymentStatus": result.payment_status,
                "booking": BookingSerializer(result.booking).data,
            }
        )


class CancelBookingView(APIView):
    def post(self, request, *args, **kwargs):
        serializer = _validated(CancelRequestSerializer, request.data)
        result = cancel_booking(serializer.validated_data["bookingId"], request.user)
        payload = {"success": True, "message": result.message}
        if result.refund is not None:
            payload["refund"] = RefundSerializer(result.refund).data
        return Response(payload, status=status.HTTP_200_OK)


class BookingViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = BookingSerializer
    permission_classes = [permissions.IsAuthenticated, IsBookingParticipant]
    filterset_fields = ["status", "payment_status", "session_date", "coach"]
    ordering_fields = ["session_date", "start_time", "created_at"]

    def get_queryset(self):
        user = self.request.user
        queryset = Booking.objects.select_related("coach", "coach__user", "athlete").order_by(
            "session_date", "start_time"
        )
        role = self.request.query_params.get("role", "").strip().lower()
        if role == "athlete":
            return queryset.filter(athlete=user)
        if role == "coach":
            return queryset.filter(coach__user=user)
        return queryset.filter(Q(athlete=user) | Q(coach__user=user))

    @action(detail=True, methods=["post"])
    def complete(self, request, pk=None):
        booking = complete_booking(pk, request.user)
        return Response(BookingSerializer(booking).data)
