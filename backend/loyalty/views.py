from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from shop.exceptions import ServiceError
from shop.models import AuditAction
from shop.services import log_audit
from shop.throttles import WithdrawRateThrottle
from users.permissions import IsAdminUserRole, IsCustomerOrAdminRole

from .models import LoyaltyTransaction, WithdrawRequest
from .serializers import (
    LoyaltyTransactionSerializer,
    WithdrawDecisionSerializer,
    WithdrawRequestSerializer,
    WithdrawSubmitSerializer,
)
from .services import (
    approve_withdraw_request,
    reject_withdraw_request,
    submit_withdraw_request,
    wallet_stats,
)


class WalletView(APIView):
    permission_classes = [IsCustomerOrAdminRole]

    def get(self, request):
        return Response(wallet_stats(request.user))


class LoyaltyTransactionViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = LoyaltyTransaction.objects.all()
    serializer_class = LoyaltyTransactionSerializer
    permission_classes = [IsCustomerOrAdminRole]

    def get_queryset(self):
        qs = super().get_queryset()
        user = self.request.user
        if not user.is_admin_role:
            return qs.filter(user=user)
        user_filter = self.request.query_params.get("user")
        if user_filter:
            qs = qs.filter(user_id=user_filter)
        type_filter = self.request.query_params.get("type")
        if type_filter:
            qs = qs.filter(type=type_filter)
        return qs


class WithdrawRequestViewSet(mixins.CreateModelMixin, viewsets.ReadOnlyModelViewSet):
    queryset = WithdrawRequest.objects.select_related("user").all()
    serializer_class = WithdrawRequestSerializer

    def get_permissions(self):
        if self.action in {"approve", "reject"}:
            permission_classes = [IsAdminUserRole]
        else:
            permission_classes = [IsCustomerOrAdminRole]
        return [perm() for perm in permission_classes]

    def get_throttles(self):
        if self.action == "create":
            return [WithdrawRateThrottle()]
        return super().get_throttles()

    def get_queryset(self):
        qs = super().get_queryset()
        if not self.request.user.is_admin_role:
            qs = qs.filter(user=self.request.user)
        status_filter = self.request.query_params.get("status")
        if status_filter:
            qs = qs.filter(status=status_filter)
        return qs

    def create(self, request, *args, **kwargs):
        serializer = WithdrawSubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            withdraw_request = submit_withdraw_request(request.user, **serializer.validated_data)
        except ServiceError as exc:
            return Response({"detail": exc.detail}, status=status.HTTP_400_BAD_REQUEST)
        return Response(self.get_serializer(withdraw_request).data, status=status.HTTP_201_CREATED)

    def _decide(self, request, handler, audit_action):
        withdraw_request = self.get_object()
        serializer = WithdrawDecisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            withdraw_request = handler(withdraw_request, admin=request.user, note=serializer.validated_data["note"])
        except ServiceError as exc:
            return Response({"detail": exc.detail}, status=status.HTTP_400_BAD_REQUEST)
        log_audit(
            audit_action,
            user=request.user,
            metadata={
                "request_id": withdraw_request.pk,
                "user_id": withdraw_request.user_id,
                "points": withdraw_request.points_amount,
            },
        )
        return Response(self.get_serializer(withdraw_request).data)

    @action(detail=True, methods=["post"], url_path="approve")
    def approve(self, request, pk=None):
        return self._decide(request, approve_withdraw_request, AuditAction.WITHDRAW_APPROVE)

    @action(detail=True, methods=["post"], url_path="reject")
    def reject(self, request, pk=None):
        return self._decide(request, reject_withdraw_request, AuditAction.WITHDRAW_REJECT)
