from rest_framework import serializers

from .models import LoyaltyTransaction, PayoutMethod, WithdrawRequest


class LoyaltyTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = LoyaltyTransaction
        fields = ["id", "user", "type", "points", "tk_amount", "order", "meta", "created_at"]
        read_only_fields = fields


class WithdrawRequestSerializer(serializers.ModelSerializer):
    class Meta:
        model = WithdrawRequest
        fields = [
            "id",
            "user",
            "points_amount",
            "withdraw_tk",
            "method",
            "number",
            "status",
            "note",
            "processed_by",
            "processed_at",
            "created_at",
        ]
        read_only_fields = fields


class WithdrawSubmitSerializer(serializers.Serializer):
    points = serializers.IntegerField(min_value=1)
    method = serializers.ChoiceField(choices=PayoutMethod.choices)
    number = serializers.RegexField(r"^\+?\d{11,14}$", max_length=20)


class WithdrawDecisionSerializer(serializers.Serializer):
    note = serializers.CharField(required=False, allow_blank=True, default="")
