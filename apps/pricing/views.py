"""Quote API."""

from __future__ import annotations

from rest_framework import permissions, status  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import APIView  # type: ignore

from .composer import compose
from .serializers import OrderContextSerializer


class QuoteView(APIView):
    """Price an order without reserving anything. Open to anonymous visitors."""

    permission_classes = [permissions.AllowAny]
    serializer_class = OrderContextSerializer

    def post(self, request, *args, **kwargs):  # type: ignore
        serializer = OrderContextSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user_id = request.user.id if request.user.is_authenticated else None
        breakdown = compose(serializer.to_order(user_id=user_id))
        return Response(breakdown.to_dict(), status=status.HTTP_200_OK)
