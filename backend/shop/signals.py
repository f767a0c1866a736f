import logging

from django.contrib.auth.signals import user_logged_in
from django.dispatch import receiver

from .services import GUEST_SESSION_KEY, merge_guest_cart, merge_guest_wishlist

logger = logging.getLogger(__name__)


@receiver(user_logged_in)
def adopt_guest_shopping(sender, request, user, **kwargs):
    """Carry the cart and wishlist a visitor built as a guest into their account."""
    session = getattr(request, "session", None)
    if session is None:
        return
    guest_key = session.pop(GUEST_SESSION_KEY, None)
    if not guest_key:
        return
    merge_guest_cart(user, guest_key)
    moved = merge_guest_wishlist(user, guest_key)
    logger.debug("Moved %s guest wishlist items to user %s", moved, user.pk)
