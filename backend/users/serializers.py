from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers

from .services import register_user


class ProfileSerializer(serializers.ModelSerializer):
    referred_by = serializers.SerializerMethodField()

    class Meta:
        model = get_user_model()
        fields = [
            "id",
            "username",
            "email",
            "full_name",
            "phone",
            "role",
            "loyalty_points",
            "referral_code",
            "referred_by",
            "date_joined",
        ]
        read_only_fields = [
            "id",
            "username",
            "role",
            "loyalty_points",
            "referral_code",
            "date_joined",
        ]

    def get_referred_by(self, obj):
        return obj.referred_by_id


class SignupSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=150)
    password = serializers.CharField(write_only=True)
    email = serializers.EmailField(required=False, allow_blank=True, default="")
    full_name = serializers.CharField(required=False, allow_blank=True, default="")
    phone = serializers.CharField(required=False, allow_blank=True, default="")
    referral_code = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate_username(self, value):
        if get_user_model().objects.filter(username=value).exists():
            raise serializers.ValidationError("Username already taken")
        return value

    def validate_password(self, value):
        validate_password(value)
        return value

    def create(self, validated_data):
        return register_user(**validated_data)
