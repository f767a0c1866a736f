from django.urls import path
from rest_framework.routers import DefaultRouter

from .views import (
    CartViewSet,
    CheckoutView,
    CouponViewSet,
    LoyaltyReportCsvView,
    LoyaltyReportView,
    OrderReportCsvView,
    OrderReportView,
    OrderViewSet,
    ProductViewSet,
    ReviewViewSet,
    StoreSettingsViewSet,
    WishlistViewSet,
)

router = DefaultRouter()
router.register(r"products", ProductViewSet, basename="products")
router.register(r"coupons", CouponViewSet, basename="coupons")
router.register(r"cart", CartViewSet, basename="cart")
router.register(r"orders", OrderViewSet, basename="orders")
router.register(r"settings", StoreSettingsViewSet, basename="settings")
router.register(r"reviews", ReviewViewSet, basename="reviews")
router.register(r"wishlist", WishlistViewSet, basename="wishlist")

urlpatterns = [
    *router.urls,
    path("checkout/", CheckoutView.as_view(), name="checkout"),
    path("reports/orders/", OrderReportView.as_view(), name="reports-orders"),
    path("reports/orders/csv/", OrderReportCsvView.as_view(), name="reports-orders-csv"),
    path("reports/loyalty/", LoyaltyReportView.as_view(), name="reports-loyalty"),
    path("reports/loyalty/csv/", LoyaltyReportCsvView.as_view(), name="reports-loyalty-csv"),
]
