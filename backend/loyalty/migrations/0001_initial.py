from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("shop", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="LoyaltyTransaction",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "type",
                    models.CharField(
                        choices=[
                            ("EARN_REFERRAL", "Referral Commission"),
                            ("WITHDRAW_REQUEST", "Withdraw Request"),
                            ("WITHDRAW_COMPLETED", "Withdraw Completed"),
                            ("WITHDRAW_REJECTED_REFUND", "Withdraw Rejected Refund"),
                        ],
                        max_length=30,
                    ),
                ),
                ("points", models.IntegerField()),
                ("tk_amount", models.DecimalField(decimal_places=2, default=Decimal("0"), max_digits=12)),
                ("meta", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "order",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="loyalty_transactions",
                        to="shop.order",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="loyalty_transactions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("order__isnull", False)),
                        fields=("order", "type"),
                        name="unique_transaction_type_per_order",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="WithdrawRequest",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("points_amount", models.PositiveIntegerField()),
                ("withdraw_tk", models.DecimalField(decimal_places=2, max_digits=12)),
                (
                    "method",
                    models.CharField(choices=[("BKASH", "bKash"), ("NAGAD", "Nagad")], max_length=10),
                ),
                ("number", models.CharField(max_length=20)),
                (
                    "status",
                    models.CharField(
                        choices=[("PROCESSING", "Processing"), ("COMPLETED", "Completed"), ("REJECTED", "Rejected")],
                        default="PROCESSING",
                        max_length=20,
                    ),
                ),
                ("note", models.TextField(blank=True, default="")),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "processed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="processed_withdrawals",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="withdraw_requests",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"ordering": ["-created_at"]},
        ),
    ]
