import io

import qrcode
from django.conf import settings
from django.contrib.auth import get_user_model
from django.http import HttpResponse
from rest_framework import generics, status, viewsets
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from shop.throttles import ReferralQrRateThrottle

from .middleware import REFERRAL_SESSION_KEY
from .permissions import IsAdminUserRole, IsCustomerOrAdminRole
from .serializers import ProfileSerializer, SignupSerializer


def build_referral_link(user) -> str:
    return f"{settings.SITE_URL.rstrip('/')}/?ref={user.referral_code}"


class SignupView(APIView):
    permission_classes = [AllowAny]

    def post(self, request):
        data = request.data.copy()
        if not data.get("referral_code"):
            data["referral_code"] = request.session.get(REFERRAL_SESSION_KEY)
        serializer = SignupSerializer(data=data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        request.session.pop(REFERRAL_SESSION_KEY, None)
        return Response(ProfileSerializer(user).data, status=status.HTTP_201_CREATED)


class MeView(generics.RetrieveUpdateAPIView):
    serializer_class = ProfileSerializer
    permission_classes = [IsCustomerOrAdminRole]

    def get_object(self):
        return self.request.user

    def retrieve(self, request, *args, **kwargs):
        data = self.get_serializer(request.user).data
        data["referral_link"] = build_referral_link(request.user)
        return Response(data)


class ReferralQrView(APIView):
    permission_classes = [IsCustomerOrAdminRole]
    throttle_classes = [ReferralQrRateThrottle]

    def get(self, request):
        img = qrcode.make(build_referral_link(request.user))
        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        return HttpResponse(buffer.getvalue(), content_type="image/png")


class UserViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = get_user_model().objects.order_by("-date_joined")
    serializer_class = ProfileSerializer
    permission_classes = [IsAdminUserRole]

    def get_queryset(self):
        qs = super().get_queryset()
        role = self.request.query_params.get("role")
        if role:
            qs = qs.filter(role=role)
        search = self.request.query_params.get("q")
        if search:
            qs = qs.filter(username__icontains=search) | qs.filter(email__icontains=search)
        return qs
