from django.db.models import ProtectedError, Q
from django.shortcuts import get_object_or_404
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from users.permissions import IsAdminUserRole, IsCustomerOrAdminRole, is_admin

from .exceptions import ServiceError
from .models import AuditAction, Coupon, Order, Product, Review, ReviewStatus, StoreSettings
from .reports import DateRangeError, csv_response, loyalty_report, order_report, parse_date_range
from .serializers import (
    CartItemSerializer,
    CartLineInputSerializer,
    CheckoutSerializer,
    CouponSerializer,
    OrderSerializer,
    OrderStatusSerializer,
    ProductSerializer,
    ReviewEditSerializer,
    ReviewInputSerializer,
    ReviewModerationSerializer,
    ReviewSerializer,
    StoreSettingsSerializer,
    WishlistItemSerializer,
    WishlistProductSerializer,
)
from .services import (
    CartService,
    WishlistService,
    change_order_status,
    delete_review,
    log_audit,
    moderate_review,
    order_stats,
    place_order,
    product_review_stats,
    submit_review,
    update_review,
)
from .throttles import CouponRateThrottle, ReportsRateThrottle


def _error_response(exc: ServiceError):
    return Response({"detail": exc.detail}, status=status.HTTP_400_BAD_REQUEST)


class ProductViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Product.objects.filter(is_active=True).order_by("name")
    serializer_class = ProductSerializer
    permission_classes = [AllowAny]

    @action(detail=True, methods=["get"], url_path="review-stats")
    def review_stats(self, request, pk=None):
        return Response(product_review_stats(self.get_object()))


class CouponViewSet(viewsets.ModelViewSet):
    queryset = Coupon.objects.prefetch_related("products").order_by("-created_at")
    serializer_class = CouponSerializer
    permission_classes = [IsAdminUserRole]

    @action(detail=True, methods=["post"], url_path="toggle")
    def toggle(self, request, pk=None):
        coupon = self.get_object()
        coupon.is_active = not coupon.is_active
        coupon.save(update_fields=["is_active", "updated_at"])
        log_audit(
            AuditAction.COUPON_TOGGLE,
            user=request.user,
            metadata={"coupon": coupon.code, "is_active": coupon.is_active},
        )
        return Response(self.get_serializer(coupon).data)


class CartViewSet(viewsets.ViewSet):
    permission_classes = [AllowAny]

    @staticmethod
    def _cart_payload(service: CartService):
        data = service.totals()
        data["items"] = CartItemSerializer(service.items(), many=True).data
        return data

    def list(self, request):
        service = CartService.for_request(request)
        return Response(self._cart_payload(service))

    @action(detail=False, methods=["post"], url_path="items")
    def add_item(self, request):
        serializer = CartLineInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        service = CartService.for_request(request)
        try:
            service.add(
                serializer.validated_data["product"],
                quantity=serializer.validated_data["quantity"],
                size=serializer.validated_data["selected_size"],
            )
        except ServiceError as exc:
            return _error_response(exc)
        return Response(self._cart_payload(service), status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["post"], url_path="items/update")
    def update_item(self, request):
        serializer = CartLineInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        service = CartService.for_request(request)
        try:
            service.update_quantity(serializer.validated_data["product"], serializer.validated_data["quantity"])
        except ServiceError as exc:
            return _error_response(exc)
        return Response(self._cart_payload(service))

    @action(detail=False, methods=["post"], url_path="items/remove")
    def remove_item(self, request):
        product = get_object_or_404(Product, pk=request.data.get("product_id"))
        service = CartService.for_request(request)
        service.remove(product)
        return Response(self._cart_payload(service))

    @action(detail=False, methods=["post"], url_path="clear")
    def clear(self, request):
        service = CartService.for_request(request)
        service.clear()
        return Response(self._cart_payload(service))

    @action(detail=False, methods=["post"], url_path="coupon", throttle_classes=[CouponRateThrottle])
    def apply_coupon(self, request):
        code = request.data.get("code")
        if not code:
            return Response({"detail": "code is required"}, status=status.HTTP_400_BAD_REQUEST)
        service = CartService.for_request(request)
        try:
            service.apply_coupon(code)
        except ServiceError as exc:
            return _error_response(exc)
        return Response(self._cart_payload(service))

    @action(detail=False, methods=["post"], url_path="coupon/remove")
    def remove_coupon(self, request):
        service = CartService.for_request(request)
        service.remove_coupon()
        return Response(self._cart_payload(service))


class CheckoutView(APIView):
    permission_classes = [AllowAny]

    def post(self, request):
        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        service = CartService.for_request(request)
        try:
            order = place_order(
                service,
                customer=request.user,
                shipping=serializer.validated_data["shipping_address"],
                payment_method=serializer.validated_data["payment_method"],
                transaction_id=serializer.validated_data["transaction_id"],
            )
        except ServiceError as exc:
            return _error_response(exc)
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)


class OrderViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    queryset = Order.objects.select_related("customer").prefetch_related("items").all()
    serializer_class = OrderSerializer

    def get_permissions(self):
        admin_only_actions = {"destroy", "set_status", "stats"}
        if self.action in admin_only_actions:
            permission_classes = [IsAdminUserRole]
        else:
            permission_classes = [IsCustomerOrAdminRole]
        return [perm() for perm in permission_classes]

    def get_queryset(self):
        qs = super().get_queryset()
        if not self.request.user.is_admin_role:
            qs = qs.filter(customer=self.request.user)
        status_filter = self.request.query_params.get("status")
        if status_filter:
            qs = qs.filter(status=status_filter)
        search = self.request.query_params.get("q")
        if search:
            qs = qs.filter(customer_name__icontains=search)
        return qs

    def destroy(self, request, *args, **kwargs):
        order = self.get_object()
        try:
            order.delete()
        except ProtectedError:
            return Response(
                {"detail": "Orders with loyalty ledger entries cannot be deleted"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["post"], url_path="status")
    def set_status(self, request, pk=None):
        order = self.get_object()
        serializer = OrderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            result = change_order_status(order, serializer.validated_data["status"], actor=request.user)
        except ServiceError as exc:
            return _error_response(exc)

        data = {
            "order": OrderSerializer(result.order).data,
            "changed": result.changed,
            "detail": result.detail,
            "loyalty_error": result.loyalty_error,
            "points_credited": result.loyalty_transaction.points if result.loyalty_transaction else 0,
        }
        return Response(data)

    @action(detail=False, methods=["get"], url_path="stats")
    def stats(self, request):
        return Response(order_stats(Order.objects.all()))


class StoreSettingsViewSet(viewsets.ViewSet):
    permission_classes = [IsAdminUserRole]

    def list(self, request):
        return Response(StoreSettingsSerializer(StoreSettings.get_solo()).data)

    def create(self, request):
        serializer = StoreSettingsSerializer(StoreSettings.get_solo(), data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data)



class ReviewViewSet(viewsets.ModelViewSet):
    queryset = Review.objects.select_related("user", "product").all()
    serializer_class = ReviewSerializer

    def get_permissions(self):
        if self.action in {"list", "retrieve"}:
            permission_classes = [AllowAny]
        elif self.action == "moderate":
            permission_classes = [IsAdminUserRole]
        else:
            permission_classes = [IsCustomerOrAdminRole]
        return [perm() for perm in permission_classes]

    def get_queryset(self):
        qs = super().get_queryset()
        product_filter = self.request.query_params.get("product")
        if product_filter:
            qs = qs.filter(product_id=product_filter)
        user = self.request.user
        if is_admin(user):
            status_filter = self.request.query_params.get("status")
            if status_filter:
                qs = qs.filter(status=status_filter)
            return qs
        visible = Q(status=ReviewStatus.APPROVED)
        if user.is_authenticated:
            visible |= Q(user=user)
        return qs.filter(visible)

    def create(self, request, *args, **kwargs):
        serializer = ReviewInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            review = submit_review(request.user, **serializer.validated_data)
        except ServiceError as exc:
            return _error_response(exc)
        return Response(self.get_serializer(review).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        review = self.get_object()
        data = {"rating": review.rating, "comment": review.comment} if kwargs.get("partial") else {}
        data.update(request.data.items())
        serializer = ReviewEditSerializer(data=data)
        serializer.is_valid(raise_exception=True)
        try:
            review = update_review(review, request.user, **serializer.validated_data)
        except ServiceError as exc:
            return _error_response(exc)
        return Response(self.get_serializer(review).data)

    def destroy(self, request, *args, **kwargs):
        try:
            delete_review(self.get_object(), request.user)
        except ServiceError as exc:
            return _error_response(exc)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["post"], url_path="moderate")
    def moderate(self, request, pk=None):
        review = self.get_object()
        serializer = ReviewModerationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        review = moderate_review(review, serializer.validated_data["status"], actor=request.user)
        return Response(self.get_serializer(review).data)


class WishlistViewSet(viewsets.ViewSet):
    permission_classes = [AllowAny]

    @staticmethod
    def _wishlist_payload(service: WishlistService):
        items = service.items()
        return {"total_items": len(items), "items": WishlistItemSerializer(items, many=True).data}

    def list(self, request):
        return Response(self._wishlist_payload(WishlistService.for_request(request)))

    @action(detail=False, methods=["post"], url_path="items")
    def add_item(self, request):
        serializer = WishlistProductSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        service = WishlistService.for_request(request)
        try:
            service.add(serializer.validated_data["product"])
        except ServiceError as exc:
            return _error_response(exc)
        return Response(self._wishlist_payload(service), status=status.HTTP_201_CREATED)

    @action(detail=False, methods=["post"], url_path="items/remove")
    def remove_item(self, request):
        serializer = WishlistProductSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        service = WishlistService.for_request(request)
        service.remove(serializer.validated_data["product"])
        return Response(self._wishlist_payload(service))


class ReportView(APIView):
    permission_classes = [IsAdminUserRole]
    throttle_classes = [ReportsRateThrottle]
    build_report = None
    csv_filename = None

    def get(self, request):
        try:
            start_date, end_date = parse_date_range(request.query_params)
        except DateRangeError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        data = self.build_report(start_date=start_date, end_date=end_date)
        if self.csv_filename:
            return csv_response(data, self.csv_filename)
        return Response(data)


class OrderReportView(ReportView):
    build_report = staticmethod(order_report)


class OrderReportCsvView(ReportView):
    build_report = staticmethod(order_report)
    csv_filename = "order_report.csv"


class LoyaltyReportView(ReportView):
    build_report = staticmethod(loyalty_report)


class LoyaltyReportCsvView(ReportView):
    build_report = staticmethod(loyalty_report)
    csv_filename = "loyalty_report.csv"
