"""Loyalty ledger: referral commissions, withdrawals and wallet totals.

Every balance change locks the user row and applies an ``F()`` increment in
the same transaction as the ledger row it belongs to, so the stored balance
and the ledger move together or not at all.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal

from django.contrib.auth import get_user_model
from django.db import IntegrityError, models, transaction
from django.db.models import F
from django.utils import timezone

from shop.exceptions import WithdrawError
from shop.models import Order, StoreSettings

from .models import LoyaltyTransaction, TransactionType, WithdrawRequest, WithdrawStatus

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def compute_commission(items, store_settings: StoreSettings) -> Decimal:
    rate = store_settings.commission_percent / Decimal("100")
    return sum((item.price * item.quantity * rate for item in items), Decimal("0"))


def currency_to_points(amount: Decimal, store_settings: StoreSettings) -> int:
    points = amount * store_settings.points_per_currency_unit
    return int(points.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def points_to_currency(points: int, store_settings: StoreSettings) -> Decimal:
    return (Decimal(points) / Decimal(store_settings.points_per_currency_unit)).quantize(
        CENT, rounding=ROUND_HALF_UP
    )


def _adjust_balance(user_id, delta: int) -> None:
    get_user_model().objects.filter(pk=user_id).update(loyalty_points=F("loyalty_points") + delta)


def credit_referral_commission(order: Order) -> LoyaltyTransaction | None:
    """Credit the referrer of ``order``'s customer with points for the order.

    Returns the ``EARN_REFERRAL`` transaction, or ``None`` when the order is a
    guest order, the customer was not referred, the commission rounds to zero
    points or the order was already credited.
    """
    if order.customer_id is None:
        return None

    user_model = get_user_model()
    referrer_id = (
        user_model.objects.filter(pk=order.customer_id).values_list("referred_by_id", flat=True).first()
    )
    if referrer_id is None:
        return None

    store_settings = StoreSettings.get_solo()
    commission_tk = compute_commission(order.items.all(), store_settings)
    earned_points = currency_to_points(commission_tk, store_settings)
    if earned_points <= 0:
        return None

    try:
        with transaction.atomic():
            user_model.objects.select_for_update().get(pk=referrer_id)
            already_credited = LoyaltyTransaction.objects.filter(
                order=order,
                type=TransactionType.EARN_REFERRAL,
            ).exists()
            if already_credited:
                logger.info("Order %s already credited, skipping commission", order.pk)
                return None

            _adjust_balance(referrer_id, earned_points)
            entry = LoyaltyTransaction.objects.create(
                user_id=referrer_id,
                type=TransactionType.EARN_REFERRAL,
                points=earned_points,
                tk_amount=commission_tk.quantize(CENT, rounding=ROUND_HALF_UP),
                order=order,
                meta={"from_customer": order.customer_id},
            )
    except IntegrityError:
        # a concurrent credit for the same order won the unique constraint
        logger.warning("Duplicate commission credit for order %s rejected", order.pk)
        return None

    logger.info(
        "Credited %s points (%s) to referrer %s for order %s",
        earned_points,
        commission_tk,
        referrer_id,
        order.pk,
    )
    return entry


@transaction.atomic
def submit_withdraw_request(user, points: int, method: str, number: str) -> WithdrawRequest:
    store_settings = StoreSettings.get_solo()
    points = int(points)

    if points < 1:
        raise WithdrawError("Withdrawal amount must be at least 1 point")
    if points < store_settings.min_withdraw_points:
        raise WithdrawError(f"Minimum withdrawal is {store_settings.min_withdraw_points} points")

    locked = get_user_model().objects.select_for_update().get(pk=user.pk)
    if points > locked.loyalty_points:
        raise WithdrawError("Insufficient points")

    withdraw_tk = points_to_currency(points, store_settings)
    _adjust_balance(locked.pk, -points)
    request = WithdrawRequest.objects.create(
        user=locked,
        points_amount=points,
        withdraw_tk=withdraw_tk,
        method=method,
        number=number,
        status=WithdrawStatus.PROCESSING,
    )
    LoyaltyTransaction.objects.create(
        user=locked,
        type=TransactionType.WITHDRAW_REQUEST,
        points=-points,
        tk_amount=-withdraw_tk,
        meta={"request_id": request.pk, "method": method},
    )
    user.refresh_from_db(fields=["loyalty_points"])
    logger.info("Withdraw request %s for %s points filed by user %s", request.pk, points, user.pk)
    return request


def _lock_processing_request(request: WithdrawRequest) -> WithdrawRequest:
    locked = WithdrawRequest.objects.select_for_update().get(pk=request.pk)
    if not locked.is_processing:
        raise WithdrawError(f"Request is already {locked.status.lower()}")
    return locked


def _close_request(locked: WithdrawRequest, status: str, admin, note: str) -> None:
    locked.status = status
    locked.processed_by = admin
    locked.processed_at = timezone.now()
    if note:
        locked.note = note
    locked.save(update_fields=["status", "processed_by", "processed_at", "note", "updated_at"])


@transaction.atomic
def approve_withdraw_request(request: WithdrawRequest, admin=None, note: str = "") -> WithdrawRequest:
    locked = _lock_processing_request(request)
    _close_request(locked, WithdrawStatus.COMPLETED, admin, note)
    LoyaltyTransaction.objects.create(
        user_id=locked.user_id,
        type=TransactionType.WITHDRAW_COMPLETED,
        points=0,
        tk_amount=Decimal("0"),
        meta={"request_id": locked.pk},
    )
    logger.info("Withdraw request %s approved", locked.pk)
    return locked


@transaction.atomic
def reject_withdraw_request(request: WithdrawRequest, admin=None, note: str = "") -> WithdrawRequest:
    locked = _lock_processing_request(request)
    get_user_model().objects.select_for_update().get(pk=locked.user_id)
    _close_request(locked, WithdrawStatus.REJECTED, admin, note)
    _adjust_balance(locked.user_id, locked.points_amount)
    LoyaltyTransaction.objects.create(
        user_id=locked.user_id,
        type=TransactionType.WITHDRAW_REJECTED_REFUND,
        points=locked.points_amount,
        tk_amount=Decimal("0"),
        meta={"request_id": locked.pk},
    )
    logger.info("Withdraw request %s rejected, %s points refunded", locked.pk, locked.points_amount)
    return locked


def wallet_stats(user) -> dict:
    user.refresh_from_db(fields=["loyalty_points"])
    earned = LoyaltyTransaction.objects.filter(
        user=user,
        type=TransactionType.EARN_REFERRAL,
    ).aggregate(total=models.Sum("points"))["total"]
    withdrawn = WithdrawRequest.objects.filter(
        user=user,
        status=WithdrawStatus.COMPLETED,
    ).aggregate(total=models.Sum("points_amount"))["total"]
    return {
        "points_balance": user.loyalty_points,
        "total_earned": earned or 0,
        "total_withdrawn": withdrawn or 0,
    }
