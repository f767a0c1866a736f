from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from .models import User


@admin.register(User)
class ShopUserAdmin(UserAdmin):
    list_display = ("username", "email", "role", "loyalty_points", "referral_code", "referred_by")
    search_fields = ("username", "email", "full_name", "referral_code")
    list_filter = ("role", "is_staff")
    readonly_fields = ("referral_code", "referred_by", "loyalty_points")
    fieldsets = UserAdmin.fieldsets + (
        ("Shop", {"fields": ("role", "full_name", "phone")}),
        ("Loyalty", {"fields": ("loyalty_points", "referral_code", "referred_by")}),
    )
