import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from django.db import IntegrityError, models, transaction

from loyalty.models import LoyaltyTransaction
from loyalty.services import credit_referral_commission

from .exceptions import CartError, CheckoutError, CouponError, OrderStatusError, ReviewError, WishlistError
from .models import (
    AuditAction,
    AuditLog,
    Cart,
    CartItem,
    Coupon,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    Review,
    ReviewStatus,
    StoreSettings,
    WishlistItem,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
SHIPPING_FIELDS = ("name", "phone", "address", "city", "village", "postal_code")
PAID_UPFRONT_METHODS = {PaymentMethod.MOBILE, PaymentMethod.CARD}
GUEST_SESSION_KEY = "guest_session_key"


def log_audit(action, user=None, order=None, metadata=None) -> AuditLog:
    return AuditLog.objects.create(
        action=action,
        user=user if user is not None and user.is_authenticated else None,
        order=order,
        metadata=metadata or {},
    )


def find_coupon(code: str) -> Coupon:
    normalized = (code or "").strip().upper()
    if not normalized:
        raise CouponError()
    coupon = Coupon.objects.prefetch_related("products").filter(code=normalized, is_active=True).first()
    if coupon is None:
        raise CouponError()
    if coupon.is_expired:
        raise CouponError("This coupon code has expired.")
    return coupon


def compute_discount(coupon: Coupon, lines) -> Decimal:
    """Return the discount ``coupon`` grants on ``lines``.

    ``lines`` are ``(product_id, unit_price, quantity)`` tuples. Coupons tied to
    products only discount the matching lines.
    """
    product_ids = {product.pk for product in coupon.products.all()}
    if product_ids:
        eligible = sum(
            (price * quantity for product_id, price, quantity in lines if product_id in product_ids),
            Decimal("0"),
        )
        if eligible == 0:
            raise CouponError("This coupon is not applicable to any items in your cart.")
    else:
        eligible = sum((price * quantity for _, price, quantity in lines), Decimal("0"))
    discount = eligible * coupon.percentage / Decimal("100")
    return discount.quantize(CENT, rounding=ROUND_HALF_UP)


def guest_session_key(request) -> str:
    """Session key that owns a guest's cart and wishlist.

    The key is also stored inside the session so it survives the key rotation
    done by ``login()``; the post-login merge reads it back from there.
    """
    session = request.session
    if session.session_key is None:
        session.save()
    if session.get(GUEST_SESSION_KEY) != session.session_key:
        session[GUEST_SESSION_KEY] = session.session_key
    return session.session_key


class CartService:
    """Cart operations for a single request.

    Each mutation runs in its own transaction so a failing step leaves the
    stored cart exactly as it was. Line changes recompute the applied coupon's
    discount, so the preview always matches what checkout will charge.
    """

    def __init__(self, cart: Cart, store_settings: StoreSettings | None = None):
        self.cart = cart
        self.store_settings = store_settings or StoreSettings.get_solo()

    @classmethod
    def for_request(cls, request) -> "CartService":
        if request.user and request.user.is_authenticated:
            cart, _ = Cart.objects.get_or_create(user=request.user)
        else:
            cart, _ = Cart.objects.get_or_create(session_key=guest_session_key(request))
        return cls(cart)

    def items(self):
        return list(self.cart.items.select_related("product").order_by("id"))

    def lines(self):
        return [(item.product_id, item.product.price, item.quantity) for item in self.items()]

    def totals(self) -> dict:
        items = self.items()
        subtotal = sum((item.line_total for item in items), Decimal("0"))
        total_price = max(Decimal("0"), subtotal - self.cart.discount)
        shipping = self.store_settings.shipping_for(total_price) if items else Decimal("0")
        return {
            "total_items": sum(item.quantity for item in items),
            "subtotal": subtotal,
            "discount": self.cart.discount,
            "applied_coupon": self.cart.applied_coupon.code if self.cart.applied_coupon else None,
            "total_price": total_price,
            "shipping": shipping,
            "final_total": total_price + shipping,
        }

    def _reset_discount(self) -> None:
        self.cart.discount = Decimal("0")
        self.cart.applied_coupon = None
        self.cart.save(update_fields=["discount", "applied_coupon", "updated_at"])

    def refresh_discount(self) -> None:
        if self.cart.applied_coupon_id is None:
            return
        lines = self.lines()
        if not lines:
            self._reset_discount()
            return
        code = self.cart.applied_coupon.code
        try:
            discount = compute_discount(find_coupon(code), lines)
        except CouponError as exc:
            logger.info("Coupon %s dropped from cart %s: %s", code, self.cart.pk, exc.detail)
            self._reset_discount()
            return
        if discount != self.cart.discount:
            self.cart.discount = discount
            self.cart.save(update_fields=["discount", "updated_at"])

    @transaction.atomic
    def add(self, product, quantity: int = 1, size: str | None = None) -> CartItem:
        if quantity < 1:
            raise CartError("Quantity must be at least 1")
        if not product.is_active:
            raise CartError("Product is not available")
        item, created = CartItem.objects.select_for_update().get_or_create(
            cart=self.cart,
            product=product,
            selected_size=size or "",
            defaults={"quantity": quantity},
        )
        if not created:
            item.quantity += quantity
            item.save(update_fields=["quantity", "updated_at"])
        self.refresh_discount()
        return item

    @transaction.atomic
    def remove(self, product) -> None:
        self.cart.items.filter(product=product).delete()
        self.refresh_discount()

    @transaction.atomic
    def update_quantity(self, product, quantity: int) -> None:
        if quantity < 1:
            self.remove(product)
            return
        updated = self.cart.items.filter(product=product).update(quantity=quantity)
        if not updated:
            raise CartError("Product is not in the cart")
        self.refresh_discount()

    @transaction.atomic
    def clear(self) -> None:
        self.cart.items.all().delete()
        self._reset_discount()

    @transaction.atomic
    def apply_coupon(self, code: str) -> Decimal:
        coupon = find_coupon(code)
        discount = compute_discount(coupon, self.lines())
        self.cart.applied_coupon = coupon
        self.cart.discount = discount
        self.cart.save(update_fields=["discount", "applied_coupon", "updated_at"])
        logger.info("Coupon %s applied to cart %s: %s off", coupon.code, self.cart.pk, discount)
        return discount

    @transaction.atomic
    def remove_coupon(self) -> None:
        self._reset_discount()


@transaction.atomic
def merge_guest_cart(user, session_key: str) -> Cart | None:
    """Move the guest cart stored under ``session_key`` into ``user``'s cart.

    Lines of the same product and size are summed. The guest coupon carries
    over only when the account cart has none. The guest cart is deleted.
    """
    guest = (
        Cart.objects.select_for_update()
        .select_related("applied_coupon")
        .filter(session_key=session_key, user__isnull=True)
        .first()
    )
    if guest is None:
        return None

    cart, _ = Cart.objects.get_or_create(user=user)
    service = CartService(cart)
    for item in guest.items.select_related("product").order_by("id"):
        if item.product.is_active:
            service.add(item.product, quantity=item.quantity, size=item.selected_size)
    if cart.applied_coupon_id is None and guest.applied_coupon_id is not None:
        cart.applied_coupon = guest.applied_coupon
        cart.save(update_fields=["applied_coupon", "updated_at"])
    guest_id = guest.pk
    guest.delete()
    service.refresh_discount()
    logger.info("Guest cart %s merged into cart %s of user %s", guest_id, cart.pk, user.pk)
    return cart


@transaction.atomic
def place_order(
    cart_service: CartService,
    customer=None,
    shipping: dict | None = None,
    payment_method: str = PaymentMethod.CASH_ON_DELIVERY,
    transaction_id: str = "",
) -> Order:
    shipping = shipping or {}
    items = cart_service.items()
    if not items:
        raise CheckoutError("Your cart is empty")
    missing = [field for field in SHIPPING_FIELDS if not str(shipping.get(field) or "").strip()]
    if missing:
        raise CheckoutError(f"Please fill in all shipping details: {', '.join(missing)}")
    if payment_method not in PaymentMethod.values:
        raise CheckoutError("Invalid payment method")
    if payment_method in PAID_UPFRONT_METHODS and not transaction_id:
        raise CheckoutError("Please provide the payment transaction ID")

    subtotal = sum((item.line_total for item in items), Decimal("0"))
    discount = Decimal("0")
    coupon_code = ""
    coupon = cart_service.cart.applied_coupon
    if coupon is not None:
        # the cart's stored discount is only a preview
        coupon = find_coupon(coupon.code)
        discount = compute_discount(coupon, cart_service.lines())
        coupon_code = coupon.code

    total_price = max(Decimal("0"), subtotal - discount)
    shipping_cost = cart_service.store_settings.shipping_for(total_price)

    order = Order.objects.create(
        customer=customer if customer is not None and customer.is_authenticated else None,
        customer_name=shipping["name"],
        subtotal=subtotal,
        discount=discount,
        shipping=shipping_cost,
        total=total_price + shipping_cost,
        coupon_code=coupon_code,
        payment_method=payment_method,
        transaction_id=transaction_id if payment_method in PAID_UPFRONT_METHODS else "",
        shipping_name=shipping["name"],
        shipping_phone=shipping["phone"],
        shipping_address=shipping["address"],
        shipping_city=shipping["city"],
        shipping_village=shipping["village"],
        shipping_postal_code=shipping["postal_code"],
    )
    OrderItem.objects.bulk_create(
        [
            OrderItem(
                order=order,
                product=item.product,
                name=item.product.name,
                price=item.product.price,
                quantity=item.quantity,
                selected_size=item.selected_size,
            )
            for item in items
        ]
    )
    cart_service.clear()
    logger.info("Order %s placed (%s items, total %s)", order.pk, len(items), order.total)
    return order


@dataclass
class StatusChange:
    order: Order
    changed: bool
    detail: str
    loyalty_transaction: LoyaltyTransaction | None = None
    loyalty_error: bool = False


def change_order_status(order: Order, new_status: str, actor=None) -> StatusChange:
    if new_status not in OrderStatus.values:
        raise OrderStatusError(f"Unknown order status: {new_status}")

    with transaction.atomic():
        locked = Order.objects.select_for_update().get(pk=order.pk)
        if locked.status == OrderStatus.DEAL_COMPLETE:
            if new_status == OrderStatus.DEAL_COMPLETE:
                return StatusChange(order=locked, changed=False, detail="This deal is already complete.")
            raise OrderStatusError("Completed deals cannot change status")

        previous = locked.status
        locked.status = new_status
        locked.save(update_fields=["status", "updated_at"])
        log_audit(
            AuditAction.ORDER_STATUS,
            user=actor,
            order=locked,
            metadata={"from": previous, "to": new_status},
        )

    result = StatusChange(order=locked, changed=True, detail=f"Order {locked.pk} marked as {new_status}.")
    if new_status != OrderStatus.DEAL_COMPLETE:
        return result

    try:
        result.loyalty_transaction = credit_referral_commission(locked)
    except Exception:
        logger.exception("Loyalty System Error while crediting order %s", locked.pk)
        result.loyalty_error = True
        result.detail = "Loyalty System Error: failed to process referral rewards."
    else:
        if result.loyalty_transaction is not None:
            result.detail = f"Referrer credited with {result.loyalty_transaction.points} points."
    return result


def order_stats(orders) -> dict:
    revenue = orders.exclude(status=OrderStatus.CANCELLED).aggregate(total=models.Sum("total"))["total"]
    return {
        "total_revenue": revenue or Decimal("0"),
        "total_orders": orders.count(),
        "active_orders": orders.filter(status__in=[OrderStatus.PROCESSING, OrderStatus.SHIPPED]).count(),
    }


def _check_rating(rating) -> int:
    if not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ReviewError("Rating must be between 1 and 5")
    return rating


def submit_review(user, product, rating: int, comment: str = "") -> Review:
    """Create ``user``'s review of ``product``; new reviews wait for moderation."""
    _check_rating(rating)
    duplicate = ReviewError("You have already reviewed this product. Please edit your existing review.")
    if Review.objects.filter(product=product, user=user).exists():
        raise duplicate
    try:
        with transaction.atomic():
            review = Review.objects.create(
                product=product,
                user=user,
                rating=rating,
                comment=(comment or "").strip(),
                status=ReviewStatus.PENDING,
            )
    except IntegrityError:
        raise duplicate from None
    logger.info("Review %s submitted for product %s by user %s", review.pk, product.pk, user.pk)
    return review


def update_review(review: Review, actor, rating: int, comment: str = "", status: str | None = None) -> Review:
    """Edit a review. Edits by the author send it back to moderation.

    Admins may set the status in the same edit; without one it falls back to
    pending as well.
    """
    _check_rating(rating)
    if review.user_id != actor.pk and not actor.is_admin_role:
        raise ReviewError("You can only edit your own reviews")
    if status is not None and status not in ReviewStatus.values:
        raise ReviewError(f"Unknown review status: {status}")

    review.rating = rating
    review.comment = (comment or "").strip()
    review.status = (status or ReviewStatus.PENDING) if actor.is_admin_role else ReviewStatus.PENDING
    review.save(update_fields=["rating", "comment", "status", "updated_at"])
    return review


def moderate_review(review: Review, new_status: str, actor) -> Review:
    if new_status not in ReviewStatus.values:
        raise ReviewError(f"Unknown review status: {new_status}")
    previous = review.status
    review.status = new_status
    review.save(update_fields=["status", "updated_at"])
    log_audit(
        AuditAction.REVIEW_MODERATE,
        user=actor,
        metadata={"review_id": review.pk, "from": previous, "to": new_status},
    )
    return review


def delete_review(review: Review, actor) -> None:
    if review.user_id != actor.pk and not actor.is_admin_role:
        raise ReviewError("You can only delete your own reviews")
    review.delete()


def product_review_stats(product) -> dict:
    distribution = {rating: 0 for rating in range(1, 6)}
    approved = Review.objects.filter(product=product, status=ReviewStatus.APPROVED)
    for row in approved.order_by().values("rating").annotate(count=models.Count("id")):
        distribution[row["rating"]] = row["count"]

    total = sum(distribution.values())
    average = Decimal("0")
    if total:
        rating_sum = sum(rating * count for rating, count in distribution.items())
        average = (Decimal(rating_sum) / total).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return {
        "average_rating": average,
        "total_reviews": total,
        "rating_distribution": distribution,
    }


class WishlistService:
    """Saved products of a signed-in user, or of a guest session."""

    def __init__(self, user=None, session_key: str | None = None):
        if user is not None:
            self.owner = {"user": user}
        else:
            self.owner = {"session_key": session_key, "user__isnull": True}

    @classmethod
    def for_request(cls, request) -> "WishlistService":
        if request.user and request.user.is_authenticated:
            return cls(user=request.user)
        return cls(session_key=guest_session_key(request))

    def _queryset(self):
        return WishlistItem.objects.filter(**self.owner)

    def items(self):
        return list(self._queryset().select_related("product"))

    def contains(self, product) -> bool:
        return self._queryset().filter(product=product).exists()

    def add(self, product) -> WishlistItem:
        if not product.is_active:
            raise WishlistError("Product is not available")
        owner = {key: value for key, value in self.owner.items() if not key.endswith("__isnull")}
        item, _ = WishlistItem.objects.get_or_create(product=product, **owner)
        return item

    def remove(self, product) -> None:
        self._queryset().filter(product=product).delete()


@transaction.atomic
def merge_guest_wishlist(user, session_key: str) -> int:
    """Attach the guest wishlist to ``user``; products already saved are dropped."""
    saved = WishlistItem.objects.filter(user=user).values_list("product_id", flat=True)
    guest = WishlistItem.objects.filter(session_key=session_key, user__isnull=True)
    guest.filter(product_id__in=list(saved)).delete()
    return guest.update(user=user, session_key=None)
