import django_filters as filters

from bookings.models import Booking
from disputes.models import DisputeCase


class VerificationQueueFilter(filters.FilterSet):
    verification_status = filters.CharFilter(field_name="verification_status", lookup_expr="iexact")
    payment_status = filters.CharFilter(field_name="payment_status", lookup_expr="iexact")
    created_at_after = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    created_at_before = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")
    renter = filters.NumberFilter(field_name="renter_id")
    has_open_disputes = filters.BooleanFilter(method="filter_has_open_disputes")

    class Meta:
        model = Booking
        fields = ["verification_status", "payment_status", "renter", "has_open_disputes"]

    def filter_has_open_disputes(self, queryset, name, value):
        if value is None:
            return queryset
        open_q = {"dispute_cases__status": DisputeCase.Status.OPEN}
        if value:
            return queryset.filter(**open_q).distinct()
        return queryset.exclude(**open_q)
