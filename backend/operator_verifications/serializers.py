from decimal import Decimal

from rest_framework import serializers

from bookings.models import Booking, BookingMessage, TripCharge
from disputes.models import DisputeCase
from payments.ledger import booking_ledger_totals
from payments.stripe_api import LineItemAdjustment

from .actions import ActionRequest


def _display_name(user) -> str:
    if not user:
        return ""
    name = (user.get_full_name() or "").strip()
    if name:
        return name
    for attr in ("username", "email"):
        value = (getattr(user, attr, "") or "").strip()
        if value:
            return value
    return f"User {user.id}" if getattr(user, "id", None) else ""


class OperatorVerificationUserSerializer(serializers.Serializer):
    id = serializers.IntegerField(read_only=True)
    email = serializers.EmailField(read_only=True, allow_blank=True)
    name = serializers.SerializerMethodField()
    phone = serializers.CharField(read_only=True, allow_blank=True)

    def get_name(self, obj):
        return _display_name(obj)


class ChargeAdjustmentSerializer(serializers.Serializer):
    type = serializers.ChoiceField(choices=TripCharge.CATEGORIES)
    original_amount = serializers.DecimalField(max_digits=10, decimal_places=2)
    adjusted_amount = serializers.DecimalField(max_digits=10, decimal_places=2)
    included = serializers.BooleanField(required=False, default=True)
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class VerificationActionSerializer(serializers.Serializer):
    action = serializers.CharField()
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    is_post_trip = serializers.BooleanField(required=False, default=False)
    waive_percentage = serializers.DecimalField(
        max_digits=6,
        decimal_places=2,
        required=False,
        allow_null=True,
    )
    waive_reason = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    charge_adjustments = ChargeAdjustmentSerializer(many=True, required=False)

    def to_action_request(self) -> ActionRequest:
        data = self.validated_data
        return ActionRequest(
            notes=data.get("notes"),
            is_post_trip=data.get("is_post_trip", False),
            waive_percentage=data.get("waive_percentage"),
            waive_reason=data.get("waive_reason"),
            charge_adjustments=[
                LineItemAdjustment(
                    type=item["type"],
                    original_amount=item["original_amount"],
                    adjusted_amount=item["adjusted_amount"],
                    included=item.get("included", True),
                    reason=item.get("reason", ""),
                )
                for item in data.get("charge_adjustments") or []
            ],
        )


class TripChargeSerializer(serializers.ModelSerializer):
    outstanding_amount = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)

    class Meta:
        model = TripCharge
        fields = [
            "id",
            "mileage_charge",
            "fuel_charge",
            "late_charge",
            "damage_charge",
            "cleaning_charge",
            "total",
            "charge_status",
            "waived_amount",
            "outstanding_amount",
            "waive_reason",
            "waived_at",
            "charged_amount",
            "stripe_charge_id",
            "charged_at",
            "failure_reason",
            "adjustment_record",
            "in_flight_action",
            "attempt_count",
            "created_at",
        ]
        read_only_fields = fields


class DisputeSerializer(serializers.ModelSerializer):
    opened_by = OperatorVerificationUserSerializer(read_only=True)

    class Meta:
        model = DisputeCase
        fields = [
            "id",
            "trip_charge",
            "opened_by",
            "category",
            "description",
            "status",
            "filed_at",
            "review_started_at",
            "resolved_at",
        ]
        read_only_fields = fields


class BookingMessageSerializer(serializers.ModelSerializer):
    actor = OperatorVerificationUserSerializer(read_only=True)

    class Meta:
        model = BookingMessage
        fields = ["id", "trip_charge", "actor", "category", "kind", "text", "payload", "created_at"]
        read_only_fields = fields


class VerificationBookingListSerializer(serializers.ModelSerializer):
    renter = OperatorVerificationUserSerializer(read_only=True)
    owner = OperatorVerificationUserSerializer(read_only=True)
    listing_title = serializers.SerializerMethodField()

    class Meta:
        model = Booking
        fields = [
            "id",
            "booking_code",
            "listing",
            "listing_title",
            "owner",
            "renter",
            "start_date",
            "end_date",
            "status",
            "verification_status",
            "payment_status",
            "total_amount",
            "pending_charges_amount",
            "created_at",
        ]
        read_only_fields = fields

    def get_listing_title(self, obj):
        listing = getattr(obj, "listing", None)
        return listing.display_name if listing else ""


class VerificationBookingDetailSerializer(VerificationBookingListSerializer):
    trip_charges = TripChargeSerializer(many=True, read_only=True)
    disputes = DisputeSerializer(source="dispute_cases", many=True, read_only=True)
    messages = BookingMessageSerializer(many=True, read_only=True)
    ledger = serializers.SerializerMethodField()
    reviewed_by = OperatorVerificationUserSerializer(read_only=True)

    class Meta(VerificationBookingListSerializer.Meta):
        fields = VerificationBookingListSerializer.Meta.fields + [
            "guest_name",
            "guest_email",
            "pickup_location",
            "pickup_window_start",
            "pickup_window_end",
            "payment_intent_id",
            "stripe_charge_id",
            "payment_failure_reason",
            "charges_waived_amount",
            "charges_waived_reason",
            "charges_adjusted_amount",
            "charges_processed_at",
            "reviewed_by",
            "reviewed_at",
            "verification_notes",
            "trip_charges",
            "disputes",
            "messages",
            "ledger",
        ]
        read_only_fields = fields

    @staticmethod
    def prefetches():
        return ["trip_charges", "dispute_cases__opened_by", "messages__actor"]

    def get_ledger(self, obj):
        return booking_ledger_totals(obj)


def _money_or_none(value):
    if value is None:
        return None
    return f"{Decimal(value):.2f}"


def resolution_response(result) -> dict:
    """Shape a ResolutionResult for the action endpoint."""
    data = {
        "success": result.success,
        "message": result.message,
        "booking": VerificationBookingDetailSerializer(result.booking).data,
    }
    if result.charge_result is not None:
        data["charge_result"] = result.charge_result
    if result.payment_result is not None:
        data["payment_result"] = result.payment_result
    if result.waived_amount is not None:
        data["waived_amount"] = _money_or_none(result.waived_amount)
    if result.remaining_amount is not None:
        data["remaining_amount"] = _money_or_none(result.remaining_amount)
    if result.adjustment_record is not None:
        data["adjustment_record"] = result.adjustment_record
    return data
