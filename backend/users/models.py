import random
import re

from django.contrib.auth.models import AbstractUser
from django.db import models


class UserRole(models.TextChoices):
    CUSTOMER = "customer", "Customer"
    ADMIN = "admin", "Admin"


class User(AbstractUser):
    role = models.CharField(
        max_length=20,
        choices=UserRole.choices,
        default=UserRole.CUSTOMER,
    )
    full_name = models.CharField(max_length=255, blank=True)
    phone = models.CharField(max_length=20, blank=True)

    loyalty_points = models.PositiveIntegerField(default=0)
    referral_code = models.CharField(max_length=20, unique=True, editable=False)
    referred_by = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        related_name="referrals",
        null=True,
        blank=True,
    )

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"

    @property
    def is_admin_role(self) -> bool:
        return self.is_superuser or self.role == UserRole.ADMIN

    def _referral_base(self) -> str:
        source = self.full_name or (self.email or "").split("@")[0]
        base = re.sub(r"[^A-Z0-9]", "", source.upper())[:6]
        return base or "USER"

    def generate_referral_code(self) -> str:
        return f"{self._referral_base()}{random.randint(1000, 9999)}"

    def save(self, *args, **kwargs):
        if not self.referral_code:
            self.referral_code = self.generate_referral_code()
            while type(self).objects.filter(referral_code=self.referral_code).exists():
                self.referral_code = self.generate_referral_code()
        super().save(*args, **kwargs)
