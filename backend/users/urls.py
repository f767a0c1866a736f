from django.urls import path
from rest_framework.routers import DefaultRouter

from .views import MeView, ReferralQrView, SignupView, UserViewSet

router = DefaultRouter()
router.register(r"users", UserViewSet, basename="users")

urlpatterns = [
    *router.urls,
    path("auth/signup/", SignupView.as_view(), name="auth-signup"),
    path("auth/me/", MeView.as_view(), name="auth-me"),
    path("auth/me/referral-qr/", ReferralQrView.as_view(), name="auth-referral-qr"),
]
