from rest_framework import serializers

from bookings.models import Booking
from bookings.services.checkout import CheckoutDraft


class CheckoutRequestSerializer(serializers.Serializer):
    """
    Body of ``create-booking-checkout``.

    Presence of the required fields is checked by the checkout service so the
    caller gets one consistent message; this serializer only parses types.
    """

    coachId = serializers.IntegerField(required=False, allow_null=True)
    coachName = serializers.CharField(required=False, allow_blank=True, default="")
    sessionDate = serializers.DateField(required=False, allow_null=True)
    startTime = serializers.TimeField(required=False, allow_null=True)
    endTime = serializers.TimeField(required=False, allow_null=True)
    duration = serializers.IntegerField(required=False, default=60)
    sessionType = serializers.CharField(required=False, default=Booking.ONE_ON_ONE)
    price = serializers.DecimalField(max_digits=8, decimal_places=2, required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True, default="")

    def to_draft(self) -> CheckoutDraft:
        data = self.validated_data
        return CheckoutDraft(
            coach_id=data.get("coachId"),
            coach_name=data.get("coachName") or "",
            session_date=data.get("sessionDate"),
            start_time=data.get("startTime"),
            end_time=data.get("endTime"),
            duration_minutes=data.get("duration"),
            session_type=data.get("sessionType"),
            price=data.get("price"),
            notes=data.get("notes") or "",
        )


class VerifyPaymentRequestSerializer(serializers.Serializer):
    sessionId = serializers.CharField(max_length=255)
    bookingId = serializers.UUIDField()


class CancelRequestSerializer(serializers.Serializer):
    bookingId = serializers.UUIDField()


class BookingSerializer(serializers.ModelSerializer):
    coach_name = serializers.CharField(source="coach.display_name", read_only=True)
    athlete_name = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = [
            "id",
            "coach",
            "coach_name",
            "athlete",
            "athlete_name",
            "session_date",
            "start_time",
            "end_time",
            "duration_minutes",
            "session_type",
            "price",
            "notes",
            "status",
            "payment_status",
            "stripe_session_id",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_athlete_name(self, obj: Booking) -> str:
        athlete = obj.athlete
        return athlete.display_name or f"{athlete.first_name} {athlete.last_name}".strip() or athlete.email


class RefundSerializer(serializers.Serializer):
    refundId = serializers.CharField(source="refund_id")
    amount = serializers.DecimalField(max_digits=8, decimal_places=2, coerce_to_string=False)
    status = serializers.CharField()
