from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q

from shop.models import TimeStampedModel


class TransactionType(models.TextChoices):
    EARN_REFERRAL = "EARN_REFERRAL", "Referral Commission"
    WITHDRAW_REQUEST = "WITHDRAW_REQUEST", "Withdraw Request"
    WITHDRAW_COMPLETED = "WITHDRAW_COMPLETED", "Withdraw Completed"
    WITHDRAW_REJECTED_REFUND = "WITHDRAW_REJECTED_REFUND", "Withdraw Rejected Refund"


class LoyaltyTransaction(models.Model):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="loyalty_transactions",
    )
    type = models.CharField(max_length=30, choices=TransactionType.choices)
    points = models.IntegerField()
    tk_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    order = models.ForeignKey(
        "shop.Order",
        on_delete=models.PROTECT,
        related_name="loyalty_transactions",
        null=True,
        blank=True,
    )
    meta = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["order", "type"],
                condition=Q(order__isnull=False),
                name="unique_transaction_type_per_order",
            )
        ]

    def __str__(self) -> str:
        return f"{self.type} {self.points:+d} ({self.user_id})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Loyalty transactions are append-only")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Loyalty transactions are append-only")


class WithdrawStatus(models.TextChoices):
    PROCESSING = "PROCESSING", "Processing"
    COMPLETED = "COMPLETED", "Completed"
    REJECTED = "REJECTED", "Rejected"


class PayoutMethod(models.TextChoices):
    BKASH = "BKASH", "bKash"
    NAGAD = "NAGAD", "Nagad"


class WithdrawRequest(TimeStampedModel):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="withdraw_requests",
    )
    points_amount = models.PositiveIntegerField()
    withdraw_tk = models.DecimalField(max_digits=12, decimal_places=2)
    method = models.CharField(max_length=10, choices=PayoutMethod.choices)
    number = models.CharField(max_length=20)
    status = models.CharField(
        max_length=20,
        choices=WithdrawStatus.choices,
        default=WithdrawStatus.PROCESSING,
    )
    note = models.TextField(blank=True, default="")
    processed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="processed_withdrawals",
        null=True,
        blank=True,
    )
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.points_amount} pts via {self.method} ({self.status})"

    @property
    def is_processing(self) -> bool:
        return self.status == WithdrawStatus.PROCESSING
