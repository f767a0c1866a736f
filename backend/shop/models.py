from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Product(TimeStampedModel):
    name = models.CharField(max_length=255)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    stock = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)

    def __str__(self) -> str:
        return self.name


class StoreSettings(TimeStampedModel):
    store_name = models.CharField(max_length=255, default="ShopVely")
    support_email = models.EmailField(default="contact.shopvely@gmail.com")
    maintenance_mode = models.BooleanField(default=False)

    shipping_fee = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("100"),
        validators=[MinValueValidator(Decimal("0"))],
    )
    free_shipping_threshold = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("5000"),
        validators=[MinValueValidator(Decimal("0"))],
    )

    commission_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("5"),
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("100"))],
    )
    # points per 1 tk; withdrawals divide by it
    points_per_currency_unit = models.PositiveIntegerField(default=10, validators=[MinValueValidator(1)])
    min_withdraw_points = models.PositiveIntegerField(default=1000, validators=[MinValueValidator(1)])

    def __str__(self) -> str:
        return "Store Settings"

    @classmethod
    def get_solo(cls) -> "StoreSettings":
        obj, _ = cls.objects.get_or_create(id=1)
        return obj

    def shipping_for(self, amount: Decimal) -> Decimal:
        if amount >= self.free_shipping_threshold:
            return Decimal("0")
        return self.shipping_fee


class Coupon(TimeStampedModel):
    code = models.CharField(max_length=50, unique=True)
    percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("1")), MaxValueValidator(Decimal("100"))],
    )
    expiry_date = models.DateField()
    is_active = models.BooleanField(default=True)
    products = models.ManyToManyField(Product, related_name="coupons", blank=True)

    def __str__(self) -> str:
        return f"{self.code} ({self.percentage}%)"

    @property
    def is_expired(self) -> bool:
        return self.expiry_date < timezone.localdate()

    def save(self, *args, **kwargs):
        self.code = (self.code or "").strip().upper()
        super().save(*args, **kwargs)


class ReviewStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"


class Review(TimeStampedModel):
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="reviews")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="reviews")
    rating = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(5)])
    comment = models.TextField(blank=True, default="")
    status = models.CharField(max_length=20, choices=ReviewStatus.choices, default=ReviewStatus.PENDING)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.UniqueConstraint(fields=["product", "user"], name="one_review_per_user_product"),
        ]

    def __str__(self) -> str:
        return f"{self.rating}/5 on {self.product_id} by {self.user_id} ({self.status})"

    @property
    def author_name(self) -> str:
        return self.user.full_name or (self.user.email or "").split("@")[0] or "Anonymous"


class WishlistItem(TimeStampedModel):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="wishlist_items",
        null=True,
        blank=True,
    )
    session_key = models.CharField(max_length=40, null=True, blank=True)
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="wishlist_items")

    class Meta:
        ordering = ["created_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["user", "product"],
                condition=Q(user__isnull=False),
                name="unique_wishlist_product_per_user",
            ),
            models.UniqueConstraint(
                fields=["session_key", "product"],
                condition=Q(session_key__isnull=False),
                name="unique_wishlist_product_per_session",
            ),
            models.CheckConstraint(
                condition=Q(user__isnull=False) | Q(session_key__isnull=False),
                name="wishlist_item_has_owner",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.product_id} for {self.user_id or self.session_key}"


class Cart(TimeStampedModel):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="cart",
        null=True,
        blank=True,
    )
    session_key = models.CharField(max_length=40, null=True, blank=True, unique=True)
    applied_coupon = models.ForeignKey(
        Coupon,
        on_delete=models.SET_NULL,
        related_name="carts",
        null=True,
        blank=True,
    )
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=Q(user__isnull=False) | Q(session_key__isnull=False),
                name="cart_has_owner",
            )
        ]

    def __str__(self) -> str:
        owner = self.user_id or self.session_key
        return f"Cart {self.pk} ({owner})"


class CartItem(TimeStampedModel):
    cart = models.ForeignKey(Cart, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="cart_items")
    quantity = models.PositiveIntegerField(default=1)
    selected_size = models.CharField(max_length=20, blank=True, default="")

    class Meta:
        unique_together = ("cart", "product", "selected_size")

    def __str__(self) -> str:
        return f"{self.quantity} x {self.product.name}"

    @property
    def line_total(self) -> Decimal:
        return self.product.price * self.quantity


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PROCESSING = "Processing", "Processing"
    SHIPPED = "Shipped", "Shipped"
    DELIVERED = "Delivered", "Delivered"
    CANCELLED = "Cancelled", "Cancelled"
    DEAL_COMPLETE = "DEAL_COMPLETE", "Deal Complete"


class PaymentMethod(models.TextChoices):
    CASH_ON_DELIVERY = "cod", "Cash on Delivery"
    MOBILE = "mobile", "Mobile Banking"
    CARD = "card", "Card"


class Order(TimeStampedModel):
    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="orders",
        null=True,
        blank=True,
    )
    customer_name = models.CharField(max_length=255)
    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )

    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    shipping = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    coupon_code = models.CharField(max_length=50, blank=True, default="")

    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        default=PaymentMethod.CASH_ON_DELIVERY,
    )
    transaction_id = models.CharField(max_length=100, blank=True, default="")

    shipping_name = models.CharField(max_length=255)
    shipping_phone = models.CharField(max_length=20)
    shipping_address = models.CharField(max_length=255)
    shipping_city = models.CharField(max_length=100)
    shipping_village = models.CharField(max_length=100)
    shipping_postal_code = models.CharField(max_length=20)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"Order {self.pk} - {self.customer_name} ({self.status})"


class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(
        Product,
        on_delete=models.SET_NULL,
        related_name="order_items",
        null=True,
        blank=True,
    )
    name = models.CharField(max_length=255)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    quantity = models.PositiveIntegerField(default=1)
    selected_size = models.CharField(max_length=20, blank=True, default="")

    def __str__(self) -> str:
        return f"{self.quantity} x {self.name}"

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


class AuditAction(models.TextChoices):
    ORDER_STATUS = "order_status", "Order Status"
    WITHDRAW_APPROVE = "withdraw_approve", "Withdraw Approve"
    WITHDRAW_REJECT = "withdraw_reject", "Withdraw Reject"
    COUPON_TOGGLE = "coupon_toggle", "Coupon Toggle"
    REVIEW_MODERATE = "review_moderate", "Review Moderate"


class AuditLog(TimeStampedModel):
    action = models.CharField(max_length=30, choices=AuditAction.choices)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_logs",
    )
    order = models.ForeignKey(
        Order,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_logs",
    )
    metadata = models.JSONField(default=dict, blank=True)

    def __str__(self) -> str:
        return f"{self.action} ({self.created_at})"
