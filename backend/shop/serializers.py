from rest_framework import serializers

from .models import (
    CartItem,
    Coupon,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    Product,
    Review,
    ReviewStatus,
    StoreSettings,
    WishlistItem,
)


class ProductSerializer(serializers.ModelSerializer):
    class Meta:
        model = Product
        fields = ["id", "name", "price", "stock", "is_active"]


class CouponSerializer(serializers.ModelSerializer):
    product_ids = serializers.PrimaryKeyRelatedField(
        queryset=Product.objects.all(),
        source="products",
        many=True,
        required=False,
    )

    class Meta:
        model = Coupon
        fields = ["id", "code", "percentage", "expiry_date", "is_active", "product_ids"]

    def validate_code(self, value):
        code = value.strip().upper()
        if not code:
            raise serializers.ValidationError("Code is required")
        existing = Coupon.objects.filter(code=code)
        if self.instance is not None:
            existing = existing.exclude(pk=self.instance.pk)
        if existing.exists():
            raise serializers.ValidationError("A coupon with this code already exists")
        return code


class CartItemSerializer(serializers.ModelSerializer):
    product = ProductSerializer(read_only=True)
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = CartItem
        fields = ["id", "product", "quantity", "selected_size", "line_total"]


class CartLineInputSerializer(serializers.Serializer):
    product_id = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all(), source="product")
    quantity = serializers.IntegerField(default=1)
    selected_size = serializers.CharField(required=False, allow_blank=True, default="")


class ShippingAddressSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    phone = serializers.CharField(max_length=20)
    address = serializers.CharField(max_length=255)
    city = serializers.CharField(max_length=100)
    village = serializers.CharField(max_length=100)
    postal_code = serializers.CharField(max_length=20)


class CheckoutSerializer(serializers.Serializer):
    shipping_address = ShippingAddressSerializer()
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices, default=PaymentMethod.CASH_ON_DELIVERY)
    transaction_id = serializers.CharField(required=False, allow_blank=True, default="")


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = ["id", "product", "name", "price", "quantity", "selected_size"]


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    shipping_address = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id",
            "customer",
            "customer_name",
            "status",
            "subtotal",
            "discount",
            "shipping",
            "total",
            "coupon_code",
            "payment_method",
            "transaction_id",
            "shipping_address",
            "items",
            "created_at",
        ]
        read_only_fields = fields

    def get_shipping_address(self, obj):
        return {
            "name": obj.shipping_name,
            "phone": obj.shipping_phone,
            "address": obj.shipping_address,
            "city": obj.shipping_city,
            "village": obj.shipping_village,
            "postal_code": obj.shipping_postal_code,
        }


class OrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)


class StoreSettingsSerializer(serializers.ModelSerializer):
    class Meta:
        model = StoreSettings
        fields = [
            "store_name",
            "support_email",
            "maintenance_mode",
            "shipping_fee",
            "free_shipping_threshold",
            "commission_percent",
            "points_per_currency_unit",
            "min_withdraw_points",
        ]


class ReviewSerializer(serializers.ModelSerializer):
    author_name = serializers.CharField(read_only=True)

    class Meta:
        model = Review
        fields = ["id", "product", "user", "author_name", "rating", "comment", "status", "created_at", "updated_at"]
        read_only_fields = fields


class ReviewInputSerializer(serializers.Serializer):
    product_id = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all(), source="product")
    rating = serializers.IntegerField(min_value=1, max_value=5)
    comment = serializers.CharField(required=False, allow_blank=True, default="")


class ReviewEditSerializer(serializers.Serializer):
    rating = serializers.IntegerField(min_value=1, max_value=5)
    comment = serializers.CharField(required=False, allow_blank=True, default="")
    status = serializers.ChoiceField(choices=ReviewStatus.choices, required=False)


class ReviewModerationSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=ReviewStatus.choices)


class WishlistItemSerializer(serializers.ModelSerializer):
    product = ProductSerializer(read_only=True)

    class Meta:
        model = WishlistItem
        fields = ["id", "product", "created_at"]


class WishlistProductSerializer(serializers.Serializer):
    product_id = serializers.PrimaryKeyRelatedField(queryset=Product.objects.all(), source="product")
