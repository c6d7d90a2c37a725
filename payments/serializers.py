# payments/serializers.py
from rest_framework import serializers


class CheckoutInitSerializer(serializers.Serializer):
    email = serializers.EmailField(max_length=254)
    first_name = serializers.CharField(required=False, allow_blank=True, max_length=80)
    last_name = serializers.CharField(required=False, allow_blank=True, max_length=80)

    def __init__(self, *args, require_name: bool = False, **kwargs):
        super().__init__(*args, **kwargs)
        self.require_name = require_name

    def validate_email(self, value):
        return value.strip()

    def validate(self, attrs):
        if self.require_name:
            missing = {
                name: "This field is required."
                for name in ("first_name", "last_name")
                if not (attrs.get(name) or "").strip()
            }
            if missing:
                raise serializers.ValidationError(missing)
        return attrs


class CheckoutInitResponseSerializer(serializers.Serializer):
    ok = serializers.BooleanField()
    reference = serializers.CharField()
    access_code = serializers.CharField()
    authorization_url = serializers.CharField(allow_blank=True)
    public_key = serializers.CharField(allow_blank=True)


class VerifyQuerySerializer(serializers.Serializer):
    reference = serializers.CharField(max_length=64)


class VerifyResponseSerializer(serializers.Serializer):
    ok = serializers.BooleanField()
    verified = serializers.BooleanField()
    status = serializers.CharField(required=False)
    token = serializers.CharField(required=False)
    expires_at = serializers.DateTimeField(required=False)
    redirect = serializers.CharField(required=False)


class PublicConfigSerializer(serializers.Serializer):
    public_key = serializers.CharField(allow_blank=True)
    product = serializers.DictField()
    site_url = serializers.CharField(allow_blank=True)
