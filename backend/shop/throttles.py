from rest_framework.throttling import SimpleRateThrottle


class BaseUserRateThrottle(SimpleRateThrottle):
    """Rate limit per signed-in user, falling back to the client address for guests."""

    def get_cache_key(self, request, view):
        if request.user and request.user.is_authenticated:
            ident = f"user:{request.user.pk}"
        else:
            ident = f"anon:{self.get_ident(request)}"
        return self.cache_format % {"scope": self.scope, "ident": ident}


class CouponRateThrottle(BaseUserRateThrottle):
    scope = "coupon"


class WithdrawRateThrottle(BaseUserRateThrottle):
    scope = "withdraw"


class ReferralQrRateThrottle(BaseUserRateThrottle):
    scope = "referral_qr"


class ReportsRateThrottle(BaseUserRateThrottle):
    scope = "reports"
