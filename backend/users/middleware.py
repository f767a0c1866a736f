REFERRAL_SESSION_KEY = "referral_code"


class ReferralCaptureMiddleware:
    """Remember a ``?ref=`` referral code in the session until signup."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        code = request.GET.get("ref")
        session = getattr(request, "session", None)
        if code and session is not None:
            session[REFERRAL_SESSION_KEY] = code.strip().upper()
        return self.get_response(request)
