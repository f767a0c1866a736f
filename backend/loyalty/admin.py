from django.contrib import admin

from .models import LoyaltyTransaction, WithdrawRequest


@admin.register(LoyaltyTransaction)
class LoyaltyTransactionAdmin(admin.ModelAdmin):
    list_display = ("user", "type", "points", "tk_amount", "order", "created_at")
    list_filter = ("type", "created_at")
    search_fields = ("user__username", "user__referral_code")

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(WithdrawRequest)
class WithdrawRequestAdmin(admin.ModelAdmin):
    list_display = ("user", "points_amount", "withdraw_tk", "method", "number", "status", "created_at")
    list_filter = ("status", "method")
    search_fields = ("user__username", "number")
    readonly_fields = ("points_amount", "withdraw_tk", "status", "processed_by", "processed_at")
