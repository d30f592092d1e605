"""API views for the booking domain."""

from __future__ import annotations

from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from apps.discounts.quotes import Rejection
from apps.payments import gateway as payment_gateway
from apps.payments.serializers import PaymentIntentSerializer
from apps.pricing.composer import compose
from apps.pricing.serializers import OrderContextSerializer
from shared.domain.errors import ConflictError, ValidationError

from . import state_machine
from .models import Booking
from .reservations import CAPACITY_EXCEEDED, reserve
from .serializers import BookingCreatedSerializer, BookingSerializer, CancelSerializer, PaySerializer


class IsBookingOwner(permissions.BasePermission):
    """Booking owner or staff."""

    def has_object_permission(self, request, view, obj: Booking):  # type: ignore
        user = request.user
        if getattr(user, "is_staff", False) or getattr(user, "is_superuser", False):
            return True
        return obj.user_id == user.id


class BookingViewSet(
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """Create, list and act on the caller's bookings, addressed by reference."""

    queryset = Booking.objects.all()
    serializer_class = BookingSerializer
    permission_classes = [permissions.IsAuthenticated, IsBookingOwner]
    lookup_field = "reference"
    filterset_fields = ["status", "bookable_type", "booking_date"]

    def get_queryset(self):  # type: ignore
        user = self.request.user
        qs = super().get_queryset()
        if getattr(user, "is_staff", False) or getattr(user, "is_superuser", False):
            return qs
        return qs.filter(user_id=user.id)

    def get_serializer_class(self):  # type: ignore
        if self.action == "create":
            return OrderContextSerializer
        return BookingSerializer

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = OrderContextSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = serializer.to_order(user_id=request.user.id)

        breakdown = compose(order)
        if breakdown.rejections:
            # every requested discount must apply
            raise ValidationError(
                "Some of the selected discounts cannot be applied",
                code="DISCOUNT_REJECTED",
                rejections=[r.to_dict() for r in breakdown.rejections],
            )

        result = reserve(order, breakdown)
        if isinstance(result, Rejection):
            error = ValidationError if result.reason == CAPACITY_EXCEEDED else ConflictError
            raise error(result.detail, code=result.reason)

        data = BookingCreatedSerializer(result.booking).data
        return Response(data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"])
    def cancel(self, request, reference=None):  # type: ignore
        booking: Booking = self.get_object()  # type: ignore
        serializer = CancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = state_machine.cancel(booking.reference, serializer.validated_data["reason"])
        return Response({"status": booking.status}, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"])
    def pay(self, request, reference=None):  # type: ignore
        booking: Booking = self.get_object()  # type: ignore
        serializer = PaySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        intent = payment_gateway.create_intent(booking, serializer.validated_data["provider"])
        return Response(PaymentIntentSerializer(intent).data, status=status.HTTP_201_CREATED)
