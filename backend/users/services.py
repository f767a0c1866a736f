import logging

from django.contrib.auth import get_user_model
from django.db import transaction

logger = logging.getLogger(__name__)


def resolve_referrer(referral_code: str | None):
    if not referral_code:
        return None
    code = referral_code.strip().upper()
    if not code:
        return None
    return get_user_model().objects.filter(referral_code=code).first()


@transaction.atomic
def register_user(
    username: str,
    password: str,
    email: str = "",
    full_name: str = "",
    phone: str = "",
    referral_code: str | None = None,
):
    user_model = get_user_model()
    referrer = resolve_referrer(referral_code)
    if referral_code and referrer is None:
        logger.info("Ignoring unknown referral code %s for %s", referral_code, username)

    user = user_model.objects.create_user(
        username=username,
        password=password,
        email=email,
        full_name=full_name,
        phone=phone,
        referred_by=referrer,
    )
    if referrer is not None:
        logger.info("User %s referred by %s", user.pk, referrer.pk)
    return user
