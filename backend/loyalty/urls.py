from django.urls import path
from rest_framework.routers import DefaultRouter

from .views import LoyaltyTransactionViewSet, WalletView, WithdrawRequestViewSet

router = DefaultRouter()
router.register(r"loyalty/transactions", LoyaltyTransactionViewSet, basename="loyalty-transactions")
router.register(r"loyalty/withdrawals", WithdrawRequestViewSet, basename="withdrawals")

urlpatterns = [
    *router.urls,
    path("loyalty/wallet/", WalletView.as_view(), name="loyalty-wallet"),
]
