from django.contrib import admin

from .models import (
    AuditLog,
    Cart,
    CartItem,
    Coupon,
    Order,
    OrderItem,
    Product,
    Review,
    StoreSettings,
    WishlistItem,
)


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "price", "stock", "is_active")
    search_fields = ("name",)
    list_filter = ("is_active",)


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = ("code", "percentage", "expiry_date", "is_active")
    search_fields = ("code",)
    list_filter = ("is_active",)
    filter_horizontal = ("products",)


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "session_key", "applied_coupon", "discount", "updated_at")
    inlines = [CartItemInline]


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "customer_name", "customer", "status", "total", "created_at")
    search_fields = ("customer_name", "customer__username", "shipping_phone")
    list_filter = ("status", "payment_method")
    # status changes go through the API so commissions are credited
    readonly_fields = ("status",)
    inlines = [OrderItemInline]


@admin.register(Review)
class ReviewAdmin(admin.ModelAdmin):
    list_display = ("product", "user", "rating", "status", "created_at")
    list_filter = ("status", "rating")
    search_fields = ("product__name", "user__username", "comment")


@admin.register(WishlistItem)
class WishlistItemAdmin(admin.ModelAdmin):
    list_display = ("product", "user", "session_key", "created_at")
    search_fields = ("product__name", "user__username")


@admin.register(StoreSettings)
class StoreSettingsAdmin(admin.ModelAdmin):
    list_display = (
        "store_name",
        "shipping_fee",
        "free_shipping_threshold",
        "commission_percent",
        "points_per_currency_unit",
        "min_withdraw_points",
    )


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ("action", "user", "order", "created_at")
    list_filter = ("action", "created_at")
    search_fields = ("user__username",)
